"""Delta-based CPU and memory usage sampling for a process and its threads."""

from proc_usage.errors import (
    ParseError,
    ParseFailure,
    PlatformUnsupported,
    ReadFailure,
    SamplingError,
    UsageError,
)
from proc_usage.models import MemorySize, ProcessUsage, RawStat, ThreadUsage, UsageSnapshotKey
from proc_usage.sampler import UsageSampler, create_sampler

__all__ = [
    "MemorySize",
    "ParseError",
    "ParseFailure",
    "PlatformUnsupported",
    "ProcessUsage",
    "RawStat",
    "ReadFailure",
    "SamplingError",
    "ThreadUsage",
    "UsageError",
    "UsageSampler",
    "UsageSnapshotKey",
    "create_sampler",
]
