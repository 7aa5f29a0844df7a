"""Pure functions converting tick deltas into CPU and memory percentages."""

from proc_usage.models import MemorySize, RawStat


def cpu_time_delta(prev: RawStat, curr: RawStat) -> int:
    """Ticks spent by an entity between two snapshots.

    Returns the raw difference even when a kernel component is non-positive
    (an incomplete sample). Callers treat a negative result as "no meaningful
    usage this round", not as an error.
    """
    return curr.total_ticks - prev.total_ticks


def normalized_cpu_percent(delta_total: int, delta_entity: int) -> float:
    """Entity ticks as a percentage of system ticks in the same interval.

    Raises:
        ZeroDivisionError: If delta_total is 0. Callers must guard.
    """
    return delta_entity / delta_total * 100


def absolute_cpu_percent(normalized: float, core_count: int) -> float:
    """Scale a normalized percent by core count (can exceed 100)."""
    return normalized * core_count


def average_per_core_percent(total_percent: float, core_count: int) -> float:
    """Average percent per core, floored at zero."""
    return max(0.0, total_percent / core_count)


def memory_percent(total: MemorySize, used: MemorySize) -> float:
    """Used memory as a percentage of total memory."""
    return used / total * 100


def safe_cpu_percents(
    delta_total: int,
    delta_entity: int,
    core_count: int,
    clamp_negative: bool = True,
) -> tuple[float, float]:
    """Normalized and absolute CPU percent with the zero/negative guards applied.

    A non-positive system delta yields 0% (never NaN or infinity). With
    clamp_negative, a negative entity delta (clock adjustment, counter reset,
    id reuse) also yields 0%.

    Returns:
        Tuple of (normalized percent, absolute percent)
    """
    if delta_total <= 0:
        return 0.0, 0.0
    normalized = normalized_cpu_percent(delta_total, delta_entity)
    if clamp_negative and normalized < 0:
        normalized = 0.0
    return normalized, absolute_cpu_percent(normalized, core_count)
