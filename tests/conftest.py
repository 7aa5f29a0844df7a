"""Shared test fixtures for proc-usage."""

import logging
from pathlib import Path

import pytest
import structlog

from proc_usage.errors import ReadFailure
from proc_usage.models import MemorySize, RawStat
from proc_usage.sampler import UsageSampler

PID = 100


def make_stat(
    pid: int = PID,
    user: int = 0,
    kernel: int = 0,
    tid: int | None = None,
    command: str = "proc",
    state: str = "S",
    ppid: int = 1,
) -> RawStat:
    """Create a RawStat for testing."""
    return RawStat(
        pid=pid,
        command=command,
        state=state,
        ppid=ppid,
        user_ticks=user,
        kernel_ticks=kernel,
        tid=tid,
    )


class FakeMetricSource:
    """Scripted metric source.

    Tests set counters directly between rounds. Any method name in `fail`
    raises ReadFailure instead of answering.
    """

    def __init__(self, total_memory: MemorySize | None = None) -> None:
        self.system_ticks = 0
        self.total_memory = total_memory or MemorySize.from_gigabytes(16)
        self.stats: dict[int, RawStat] = {}
        self.memory: dict[int, MemorySize] = {}
        self.threads: dict[int, dict[int, RawStat]] = {}
        self.children: dict[int, list[int]] = {}
        self.fail: set[str] = set()
        self.calls: list[str] = []

    def set_process(
        self,
        pid: int = PID,
        user: int = 0,
        kernel: int = 0,
        memory: MemorySize | None = None,
        command: str = "proc",
        ppid: int = 1,
    ) -> None:
        self.stats[pid] = make_stat(pid, user, kernel, command=command, ppid=ppid)
        self.memory[pid] = memory if memory is not None else MemorySize.from_megabytes(512)

    def set_thread(self, pid: int, tid: int, user: int = 0, kernel: int = 0) -> None:
        self.threads.setdefault(pid, {})[tid] = make_stat(pid, user, kernel, tid=tid)

    def remove_thread(self, pid: int, tid: int) -> None:
        self.threads.get(pid, {}).pop(tid, None)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise ReadFailure(f"{name} failed")

    def total_system_cpu_ticks(self) -> int:
        self._check("total_system_cpu_ticks")
        return self.system_ticks

    def process_raw_stat(self, pid: int) -> RawStat:
        self._check("process_raw_stat")
        if pid not in self.stats:
            raise ReadFailure(f"no such process {pid}")
        return self.stats[pid]

    def thread_ids(self, pid: int) -> list[int]:
        self._check("thread_ids")
        return sorted(self.threads.get(pid, {}))

    def thread_raw_stat(self, pid: int, tid: int) -> RawStat:
        self._check("thread_raw_stat")
        try:
            return self.threads[pid][tid]
        except KeyError:
            raise ReadFailure(f"no such thread {tid}") from None

    def total_system_memory(self) -> MemorySize:
        self._check("total_system_memory")
        return self.total_memory

    def process_memory(self, pid: int) -> MemorySize:
        self._check("process_memory")
        if pid not in self.memory:
            raise ReadFailure(f"no memory for {pid}")
        return self.memory[pid]

    def child_ids(self, pid: int) -> list[int]:
        self._check("child_ids")
        return sorted(self.children.get(pid, []))


@pytest.fixture
def source() -> FakeMetricSource:
    """Fake source with one 512 MB process on a 16 GB machine."""
    fake = FakeMetricSource()
    fake.set_process(PID, user=100, kernel=50)
    return fake


@pytest.fixture
def sampler(source: FakeMetricSource) -> UsageSampler:
    """Sampler on the fake source with 4 cores."""
    return UsageSampler(source, pid=PID, core_count=4)


def write_stat(
    root: Path,
    pid: int,
    user: int,
    kernel: int,
    command: str = "proc",
    ppid: int = 1,
    tid: int | None = None,
) -> None:
    """Write a kernel-format stat line into a synthetic /proc tree."""
    entity = tid if tid is not None else pid
    directory = root / str(pid)
    if tid is not None:
        directory = directory / "task" / str(tid)
    directory.mkdir(parents=True, exist_ok=True)
    # state ppid pgrp session tty tpgid flags minflt cminflt majflt cmajflt utime stime ...
    fields = f"S {ppid} {pid} {pid} 0 -1 4194560 120 0 0 0 {user} {kernel} 0 0 20 0 1 0 500"
    (directory / "stat").write_text(f"{entity} ({command}) {fields}\n")


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """Synthetic /proc with one process (pid 100, two threads) on a 16 GB machine."""
    root = tmp_path / "proc"
    root.mkdir()
    (root / "stat").write_text(
        "cpu  1000 20 300 5000 10 0 5 0 0 0\n"
        "cpu0 500 10 150 2500 5 0 3 0 0 0\n"
        "intr 12345\n"
    )
    (root / "meminfo").write_text("MemTotal:       16777216 kB\nMemFree:         8000000 kB\n")
    write_stat(root, 100, user=100, kernel=50, command="my (weird) proc")
    (root / "100" / "status").write_text(
        "Name:\tproc\nVmPeak:\t  600000 kB\nVmRSS:\t  524288 kB\n"
    )
    write_stat(root, 100, user=60, kernel=30, tid=100)
    write_stat(root, 100, user=40, kernel=20, tid=101)
    return root


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the home directory (and so config/state paths) at tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def isolated_logging():
    """Restore stdlib and structlog logging state after the test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
