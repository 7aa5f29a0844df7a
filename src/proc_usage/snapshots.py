"""Per-sampler cache of the most recent raw stats."""

from collections.abc import Mapping

from proc_usage.models import RawStat, UsageSnapshotKey


class SnapshotStore:
    """Most recent RawStat per process id and per (process id, thread id).

    Holds at most one RawStat per key. Writes replace unconditionally; there is
    no eviction beyond explicit replacement and clear(). Not thread-safe: the
    owning sampler serializes access.

    Alongside each process snapshot the store keeps the total system CPU ticks
    observed in the same round, so several processes sampled in one round each
    diff against their own baseline.
    """

    def __init__(self) -> None:
        self._processes: dict[int, RawStat] = {}
        self._system_ticks: dict[int, int] = {}
        self._threads: dict[int, dict[int, RawStat]] = {}

    def __len__(self) -> int:
        """Number of cached entries, process and thread."""
        return len(self._processes) + sum(len(m) for m in self._threads.values())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, UsageSnapshotKey):
            return False
        return self.get(key) is not None

    def get(self, key: UsageSnapshotKey) -> RawStat | None:
        """Return the cached stat for a key, or None if unseen."""
        if key.tid is None:
            return self._processes.get(key.pid)
        return self._threads.get(key.pid, {}).get(key.tid)

    def put(self, key: UsageSnapshotKey, stat: RawStat) -> None:
        """Store a stat, replacing any previous entry for the key."""
        if key.tid is None:
            self._processes[key.pid] = stat
        else:
            self._threads.setdefault(key.pid, {})[key.tid] = stat

    def get_system_ticks(self, pid: int) -> int | None:
        """System CPU ticks recorded with the process's last snapshot."""
        return self._system_ticks.get(pid)

    def put_system_ticks(self, pid: int, ticks: int) -> None:
        self._system_ticks[pid] = ticks

    def get_thread_map(self, pid: int) -> Mapping[int, RawStat]:
        """Thread snapshots of a process keyed by thread id (empty if none)."""
        return self._threads.get(pid, {})

    def replace_thread_map(self, pid: int, threads: Mapping[int, RawStat]) -> None:
        """Swap the whole thread map of a process.

        Threads absent from the new map lose their history.
        """
        self._threads[pid] = dict(threads)

    def clear(self) -> None:
        """Drop every cached entry."""
        self._processes.clear()
        self._system_ticks.clear()
        self._threads.clear()
