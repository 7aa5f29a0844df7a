"""Data models for proc-usage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Bytes-level tolerance for MemorySize equality (values may come from division)
_MEMORY_TOLERANCE = 1e-8


@dataclass(slots=True, frozen=True)
class RawStat:
    """Immutable kernel-reported time snapshot for a process or thread.

    Ticks are in the platform's own unit (jiffies on Linux, 100ns on Windows)
    and are only ever compared with ticks from the same platform.
    """

    pid: int
    command: str
    state: str  # 'R', 'S', 'Z', 'D', etc. '?' where the platform has none
    ppid: int
    user_ticks: int
    kernel_ticks: int
    tid: int | None = None

    @property
    def total_ticks(self) -> int:
        """User plus kernel ticks."""
        return self.user_ticks + self.kernel_ticks


@dataclass(slots=True, frozen=True)
class UsageSnapshotKey:
    """Cache slot identity: a process id, or a (process id, thread id) pair."""

    pid: int
    tid: int | None = None

    @property
    def is_thread(self) -> bool:
        return self.tid is not None


class MemorySize:
    """A byte quantity with KB/MB/GB views.

    Arithmetic and ordering work on bytes. Plain numbers are accepted as byte
    counts on either side. Dividing one MemorySize by another gives a plain
    float ratio, not a MemorySize.
    """

    __slots__ = ("_bytes",)

    def __init__(self, num_bytes: float = 0.0) -> None:
        self._bytes = float(num_bytes)

    # ─────────────────────────────────────────────────────────────────────
    # Constructors
    # ─────────────────────────────────────────────────────────────────────

    @classmethod
    def from_bytes(cls, num_bytes: float) -> MemorySize:
        return cls(num_bytes)

    @classmethod
    def from_kilobytes(cls, kb: float) -> MemorySize:
        return cls(int(kb * 1024))

    @classmethod
    def from_megabytes(cls, mb: float) -> MemorySize:
        return cls(int(mb * 1024 * 1024))

    @classmethod
    def from_gigabytes(cls, gb: float) -> MemorySize:
        return cls(int(gb * 1024 * 1024 * 1024))

    # ─────────────────────────────────────────────────────────────────────
    # Unit views
    # ─────────────────────────────────────────────────────────────────────

    @property
    def bytes(self) -> float:
        return self._bytes

    @property
    def kilobytes(self) -> float:
        return self._bytes / 1024.0

    @property
    def megabytes(self) -> float:
        return self._bytes / 1024.0 / 1024.0

    @property
    def gigabytes(self) -> float:
        return self._bytes / 1024.0 / 1024.0 / 1024.0

    def __str__(self) -> str:
        if self.gigabytes >= 1:
            return f"{self.gigabytes:.2f} GB"
        if self.megabytes >= 1:
            return f"{self.megabytes:.2f} MB"
        if self.kilobytes >= 1:
            return f"{self.kilobytes:.2f} KB"
        return f"{self._bytes:g} B"

    def __repr__(self) -> str:
        return f"MemorySize({self._bytes!r})"

    # ─────────────────────────────────────────────────────────────────────
    # Conversions
    # ─────────────────────────────────────────────────────────────────────

    def __float__(self) -> float:
        return self._bytes

    def __int__(self) -> int:
        return int(self._bytes)

    def __bool__(self) -> bool:
        return self._bytes != 0

    # ─────────────────────────────────────────────────────────────────────
    # Arithmetic
    # ─────────────────────────────────────────────────────────────────────

    def __add__(self, other: MemorySize | float) -> MemorySize:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return MemorySize(self._bytes + value)

    __radd__ = __add__

    def __sub__(self, other: MemorySize | float) -> MemorySize:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return MemorySize(self._bytes - value)

    def __rsub__(self, other: float) -> MemorySize:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return MemorySize(value - self._bytes)

    def __mul__(self, other: MemorySize | float) -> MemorySize:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return MemorySize(self._bytes * value)

    __rmul__ = __mul__

    def __truediv__(self, other: MemorySize | float) -> Any:
        if isinstance(other, MemorySize):
            return self._bytes / other._bytes
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return MemorySize(self._bytes / value)

    # ─────────────────────────────────────────────────────────────────────
    # Comparison
    # ─────────────────────────────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return abs(self._bytes - value) < _MEMORY_TOLERANCE

    # Tolerant equality is not transitive, so no hash can agree with it
    __hash__ = None  # type: ignore[assignment]

    def __lt__(self, other: MemorySize | float) -> bool:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return self._bytes < value

    def __le__(self, other: MemorySize | float) -> bool:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return self._bytes <= value

    def __gt__(self, other: MemorySize | float) -> bool:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return self._bytes > value

    def __ge__(self, other: MemorySize | float) -> bool:
        value = _as_bytes(other)
        if value is None:
            return NotImplemented
        return self._bytes >= value


def _as_bytes(value: object) -> float | None:
    """Byte count of a MemorySize or plain number, None for anything else."""
    if isinstance(value, MemorySize):
        return value.bytes
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


@dataclass(slots=True)
class ThreadUsage:
    """CPU usage of one thread over the last sampling interval."""

    tid: int
    cpu_percent_normalized: float
    cpu_percent: float

    def to_dict(self) -> dict:
        return {
            "tid": self.tid,
            "cpu_percent_normalized": self.cpu_percent_normalized,
            "cpu_percent": self.cpu_percent,
        }


@dataclass(slots=True)
class ProcessUsage:
    """CPU and memory usage of one process over the last sampling interval.

    cpu_percent_normalized is 0-100 where 100 means one full core saturated.
    cpu_percent is that value scaled by core count, so it can exceed 100.
    """

    pid: int
    cpu_percent_normalized: float
    cpu_percent: float
    memory: MemorySize
    memory_percent: float
    name: str = ""
    threads: list[ThreadUsage] = field(default_factory=list)
    children: list[ProcessUsage] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "pid": self.pid,
            "name": self.name,
            "cpu_percent_normalized": self.cpu_percent_normalized,
            "cpu_percent": self.cpu_percent,
            "memory_bytes": self.memory.bytes,
            "memory_percent": self.memory_percent,
            "threads": [t.to_dict() for t in self.threads],
            "children": [c.to_dict() for c in self.children],
        }
