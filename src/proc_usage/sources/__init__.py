"""Platform metric sources.

A metric source supplies the raw counters the sampler diffs. Every method
raises ReadFailure (or ParseError for malformed kernel data) instead of
returning partial values.
"""

import sys
from typing import Protocol

from proc_usage.errors import PlatformUnsupported
from proc_usage.models import MemorySize, RawStat


class MetricSource(Protocol):
    """Interface the sampler consumes. One implementation per OS."""

    def total_system_cpu_ticks(self) -> int:
        """Total CPU ticks of the whole system since boot."""
        ...

    def process_raw_stat(self, pid: int) -> RawStat:
        """Current raw stat of a process."""
        ...

    def thread_ids(self, pid: int) -> list[int]:
        """Thread ids of a process. Empty, not an error, when not introspectable."""
        ...

    def thread_raw_stat(self, pid: int, tid: int) -> RawStat:
        """Current raw stat of one thread of a process."""
        ...

    def total_system_memory(self) -> MemorySize:
        """Total physical memory."""
        ...

    def process_memory(self, pid: int) -> MemorySize:
        """Resident memory of a process."""
        ...

    def child_ids(self, pid: int) -> list[int]:
        """Direct child process ids, ascending."""
        ...


def create_metric_source(platform: str | None = None) -> MetricSource:
    """Build the metric source for the running (or given) platform.

    Raises:
        PlatformUnsupported: If no source exists for the platform.
    """
    platform = platform or sys.platform
    if platform.startswith("linux"):
        from proc_usage.sources.procfs import ProcfsSource

        return ProcfsSource()
    if platform == "win32":
        from proc_usage.sources.win32 import Win32Source

        return Win32Source()
    raise PlatformUnsupported(f"No metric source for platform {platform!r}")
