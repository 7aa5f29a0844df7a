"""Stateful delta-based usage sampler.

Each call to UsageSampler.current_process_usage() is one sampling round:

1. Read total system CPU ticks and the process's raw stat and memory
2. Look up the previous snapshot; a process seen for the first time reports
   0% CPU (cold start), otherwise CPU% comes from the tick deltas
3. Optionally repeat per thread against the process's thread map, which is
   then replaced wholesale by the threads observed this round
4. Optionally recurse into child processes

Every read of a round happens before any snapshot is written, so a failed
round leaves the cache exactly as the last successful round left it.
"""

import os
from dataclasses import dataclass, field

import psutil
import structlog

from proc_usage.calculator import cpu_time_delta, memory_percent, safe_cpu_percents
from proc_usage.errors import ReadFailure, SamplingError, UsageError
from proc_usage.models import MemorySize, ProcessUsage, RawStat, ThreadUsage, UsageSnapshotKey
from proc_usage.snapshots import SnapshotStore
from proc_usage.sources import MetricSource, create_metric_source

log = structlog.get_logger()


@dataclass
class _RoundWrites:
    """Snapshots gathered during a round, committed only if the round succeeds."""

    processes: dict[int, RawStat] = field(default_factory=dict)
    system_ticks: dict[int, int] = field(default_factory=dict)
    thread_maps: dict[int, dict[int, RawStat]] = field(default_factory=dict)

    def merge(self, other: "_RoundWrites") -> None:
        self.processes.update(other.processes)
        self.system_ticks.update(other.system_ticks)
        self.thread_maps.update(other.thread_maps)

    def commit(self, store: SnapshotStore) -> None:
        for pid, stat in self.processes.items():
            store.put(UsageSnapshotKey(pid), stat)
        for pid, ticks in self.system_ticks.items():
            store.put_system_ticks(pid, ticks)
        for pid, threads in self.thread_maps.items():
            store.replace_thread_map(pid, threads)


class UsageSampler:
    """Samples CPU and memory usage of a process and its threads.

    Not safe for concurrent calls: the snapshot cache is read and then
    written within a round. Use one sampler per monitoring loop, or serialize
    calls externally.

    Args:
        source: Platform metric source to read counters from
        pid: Process to sample (defaults to the current process)
        core_count: Logical CPU count for absolute percentages (defaults to psutil's)
        clamp_negative: Report 0% instead of negative CPU for backwards tick deltas

    Raises:
        ReadFailure: If total system memory cannot be read. No sampler is created.
    """

    def __init__(
        self,
        source: MetricSource,
        pid: int | None = None,
        core_count: int | None = None,
        clamp_negative: bool = True,
    ) -> None:
        self._source = source
        self._pid = pid or os.getpid()
        self._core_count = core_count or psutil.cpu_count(logical=True) or 1
        self._clamp_negative = clamp_negative
        self._store = SnapshotStore()
        self._total_memory = source.total_system_memory()
        log.info(
            "sampler_created",
            pid=self._pid,
            core_count=self._core_count,
            total_memory_bytes=self._total_memory.bytes,
        )

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def core_count(self) -> int:
        return self._core_count

    @property
    def total_memory(self) -> MemorySize:
        return self._total_memory

    def __enter__(self) -> "UsageSampler":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def dispose(self) -> None:
        """Drop all cached snapshots. Safe to call repeatedly.

        The next round for any process is a cold start.
        """
        if len(self._store) == 0:
            return
        self._store.clear()
        log.info("sampler_disposed", pid=self._pid)

    # ─────────────────────────────────────────────────────────────────────
    # Public sampling API
    # ─────────────────────────────────────────────────────────────────────

    def current_process_usage(
        self,
        include_threads: bool = True,
        include_children: bool = False,
    ) -> ProcessUsage:
        """Sample the target process.

        Raises:
            SamplingError: If any required read fails. The cache is unchanged.
        """
        return self.process_usage(self._pid, include_threads, include_children)

    def process_usage(
        self,
        pid: int,
        include_threads: bool = True,
        include_children: bool = False,
    ) -> ProcessUsage:
        """Sample an arbitrary process with this sampler's cache.

        Raises:
            SamplingError: If any required read fails. The cache is unchanged.
        """
        writes = _RoundWrites()
        try:
            system_ticks = self._source.total_system_cpu_ticks()
            usage = self._sample_process(
                pid, system_ticks, include_threads, include_children, writes, visited={pid}
            )
        except UsageError as e:
            causes = [line for line in str(e).splitlines() if line] or [type(e).__name__]
            log.warning("sample_failed", pid=pid, causes=causes)
            raise SamplingError(causes, pid=pid) from e

        writes.commit(self._store)
        return usage

    # ─────────────────────────────────────────────────────────────────────
    # Round internals
    # ─────────────────────────────────────────────────────────────────────

    def _percents(
        self, delta_total: int, delta_entity: int, **context: int
    ) -> tuple[float, float]:
        """Normalized and absolute CPU% with zero-delta and negative guards."""
        if self._clamp_negative and delta_entity < 0 and delta_total > 0:
            log.debug("negative_cpu_delta_clamped", delta=delta_entity, **context)
        return safe_cpu_percents(delta_total, delta_entity, self._core_count, self._clamp_negative)

    def _sample_process(
        self,
        pid: int,
        system_ticks: int,
        include_threads: bool,
        include_children: bool,
        writes: _RoundWrites,
        visited: set[int],
    ) -> ProcessUsage:
        stat = self._source.process_raw_stat(pid)
        memory = self._source.process_memory(pid)

        prev = self._store.get(UsageSnapshotKey(pid))
        prev_ticks = self._store.get_system_ticks(pid)
        if prev is None or prev_ticks is None:
            log.debug("sample_cold_start", pid=pid)
            delta_total = 0
            normalized, absolute = 0.0, 0.0
        else:
            delta_total = system_ticks - prev_ticks
            normalized, absolute = self._percents(
                delta_total, cpu_time_delta(prev, stat), pid=pid
            )

        writes.processes[pid] = stat
        writes.system_ticks[pid] = system_ticks

        threads: list[ThreadUsage] = []
        if include_threads:
            threads = self._sample_threads(pid, delta_total, writes)
        else:
            # Thread snapshots would span several rounds of system ticks
            writes.thread_maps[pid] = {}

        children: list[ProcessUsage] = []
        if include_children:
            children = self._sample_children(pid, system_ticks, include_threads, writes, visited)

        return ProcessUsage(
            pid=pid,
            name=stat.command,
            cpu_percent_normalized=normalized,
            cpu_percent=absolute,
            memory=memory,
            memory_percent=memory_percent(self._total_memory, memory),
            threads=threads,
            children=children,
        )

    def _sample_threads(
        self, pid: int, delta_total: int, writes: _RoundWrites
    ) -> list[ThreadUsage]:
        """Per-thread usage against the process's thread map.

        A thread without a previous entry reports 0%. A failed thread read
        fails the whole round.
        """
        prev_threads = self._store.get_thread_map(pid)
        current: dict[int, RawStat] = {}
        usages: list[ThreadUsage] = []

        for tid in self._source.thread_ids(pid):
            stat = self._source.thread_raw_stat(pid, tid)
            prev = prev_threads.get(tid)
            if prev is None:
                log.debug("thread_cold_start", pid=pid, tid=tid)
                normalized, absolute = 0.0, 0.0
            else:
                normalized, absolute = self._percents(
                    delta_total, cpu_time_delta(prev, stat), pid=pid, tid=tid
                )
            usages.append(
                ThreadUsage(tid=tid, cpu_percent_normalized=normalized, cpu_percent=absolute)
            )
            current[tid] = stat

        writes.thread_maps[pid] = current
        return usages

    def _sample_children(
        self,
        pid: int,
        system_ticks: int,
        include_threads: bool,
        writes: _RoundWrites,
        visited: set[int],
    ) -> list[ProcessUsage]:
        """Usage of direct children, each recursing into its own children.

        A child whose counters can no longer be read (it exited after enumeration)
        is skipped.
        """
        children: list[ProcessUsage] = []
        for child in self._source.child_ids(pid):
            if child in visited:
                continue
            visited.add(child)
            child_writes = _RoundWrites()
            try:
                usage = self._sample_process(
                    child, system_ticks, include_threads, True, child_writes, visited
                )
            except ReadFailure as e:
                log.debug("child_skipped", pid=pid, child=child, error=str(e))
                continue
            writes.merge(child_writes)
            children.append(usage)
        return children


def create_sampler(
    pid: int | None = None,
    *,
    source: MetricSource | None = None,
    platform: str | None = None,
    core_count: int | None = None,
    clamp_negative: bool = True,
) -> UsageSampler:
    """Build a sampler with the metric source for the running platform.

    Raises:
        PlatformUnsupported: If the platform has no metric source.
        ReadFailure: If total system memory cannot be read.
    """
    if source is None:
        source = create_metric_source(platform)
    return UsageSampler(source, pid=pid, core_count=core_count, clamp_negative=clamp_negative)
