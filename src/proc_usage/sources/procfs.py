"""Linux metric source reading /proc.

Files consumed:
- /proc/stat: aggregate "cpu " line, summed for total system ticks
- /proc/meminfo: MemTotal
- /proc/[pid]/stat: process times (see statparse)
- /proc/[pid]/status: VmRSS
- /proc/[pid]/task/[tid]/stat: thread times
"""

from dataclasses import replace
from pathlib import Path

import structlog

from proc_usage.errors import ParseError, ReadFailure
from proc_usage.models import MemorySize, RawStat
from proc_usage.statparse import parse_stat_line

log = structlog.get_logger()


class ProcfsSource:
    """Reads raw counters from a procfs mount.

    Args:
        root: procfs mount point. Tests point this at a synthetic tree.
    """

    def __init__(self, root: Path | str = "/proc") -> None:
        self.root = Path(root)
        self._children: dict[int, list[int]] | None = None

    def _read_text(self, path: Path) -> str:
        try:
            return path.read_text()
        except OSError as e:
            log.debug("read_failed", path=str(path), error=str(e))
            raise ReadFailure(f"Failed to read {path}: {e}") from e

    def _read_kb_field(self, path: Path, name: str) -> MemorySize:
        """Read a "Name:   1234 kB" line as a MemorySize."""
        for line in self._read_text(path).splitlines():
            if not line.startswith(name):
                continue
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                return MemorySize.from_kilobytes(int(parts[1]))
        raise ReadFailure(f"No {name!r} line in {path}")

    # ─────────────────────────────────────────────────────────────────────
    # CPU
    # ─────────────────────────────────────────────────────────────────────

    def total_system_cpu_ticks(self) -> int:
        # A new round starts here, so the next child lookup rescans /proc
        self._children = None
        path = self.root / "stat"
        for line in self._read_text(path).splitlines():
            if line.startswith("cpu "):
                # Sum every numeric column (user, nice, system, idle, iowait, ...)
                return sum(int(p) for p in line.split()[1:] if p.isdigit())
        raise ReadFailure(f"No aggregate cpu line in {path}")

    def process_raw_stat(self, pid: int) -> RawStat:
        return parse_stat_line(self._read_text(self.root / str(pid) / "stat"))

    def thread_ids(self, pid: int) -> list[int]:
        task_dir = self.root / str(pid) / "task"
        try:
            names = [entry.name for entry in task_dir.iterdir()]
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as e:
            raise ReadFailure(f"Failed to list {task_dir}: {e}") from e
        return sorted(int(name) for name in names if name.isdigit())

    def thread_raw_stat(self, pid: int, tid: int) -> RawStat:
        stat = parse_stat_line(self._read_text(self.root / str(pid) / "task" / str(tid) / "stat"))
        # The id field of a task stat line is the thread id
        return replace(stat, pid=pid, tid=stat.pid)

    def child_ids(self, pid: int) -> list[int]:
        """Direct children of pid, ascending.

        /proc is scanned once per round: the parent map is built on the first
        lookup after total_system_cpu_ticks() and reused for the rest of it.
        """
        if self._children is None:
            self._children = self._scan_children()
        return list(self._children.get(pid, []))

    def _scan_children(self) -> dict[int, list[int]]:
        children: dict[int, list[int]] = {}
        for entry in self.root.iterdir():
            if not entry.name.isdigit():
                continue
            try:
                stat = parse_stat_line((entry / "stat").read_text())
            except OSError:
                continue  # Process exited while scanning
            except ParseError as e:
                log.debug("child_scan_skipped", pid=entry.name, error=str(e))
                continue
            children.setdefault(stat.ppid, []).append(stat.pid)
        for pids in children.values():
            pids.sort()
        return children

    # ─────────────────────────────────────────────────────────────────────
    # Memory
    # ─────────────────────────────────────────────────────────────────────

    def total_system_memory(self) -> MemorySize:
        return self._read_kb_field(self.root / "meminfo", "MemTotal:")

    def process_memory(self, pid: int) -> MemorySize:
        return self._read_kb_field(self.root / str(pid) / "status", "VmRSS:")
