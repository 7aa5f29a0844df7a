"""Tests for data models."""

import dataclasses

import pytest

from proc_usage.models import MemorySize, ProcessUsage, ThreadUsage, UsageSnapshotKey
from tests.conftest import make_stat


def test_raw_stat_total_ticks():
    """total_ticks is user plus kernel."""
    assert make_stat(user=140, kernel=70).total_ticks == 210


def test_raw_stat_is_immutable():
    """RawStat cannot be mutated after construction."""
    stat = make_stat(user=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        stat.user_ticks = 2  # type: ignore[misc]


def test_snapshot_key_identity():
    """Keys compare by value and distinguish process from thread slots."""
    assert UsageSnapshotKey(1) == UsageSnapshotKey(1, None)
    assert UsageSnapshotKey(1) != UsageSnapshotKey(1, 1)
    assert not UsageSnapshotKey(1).is_thread
    assert UsageSnapshotKey(1, 7).is_thread
    assert len({UsageSnapshotKey(1), UsageSnapshotKey(1), UsageSnapshotKey(1, 2)}) == 2


class TestMemorySize:
    """Tests for MemorySize."""

    def test_unit_views(self):
        """KB/MB/GB views divide by 1024 steps."""
        size = MemorySize.from_gigabytes(2)
        assert size.bytes == 2 * 1024**3
        assert size.megabytes == 2048
        assert size.kilobytes == 2 * 1024**2
        assert size.gigabytes == 2

    def test_from_kilobytes_truncates(self):
        """Fractional bytes from unit constructors are truncated."""
        assert MemorySize.from_kilobytes(1.5).bytes == 1536
        assert MemorySize.from_kilobytes(0.0009).bytes == 0

    def test_equality_tolerance(self):
        """Values within the tolerance compare equal, numbers count as bytes."""
        assert MemorySize(1.0) == MemorySize(1.0 + 1e-10)
        assert MemorySize(1.0) != MemorySize(1.0 + 1e-6)
        assert MemorySize(1024) == 1024
        assert MemorySize(1024) != "1024"

    def test_unhashable(self):
        """Tolerant equality rules out hashing."""
        with pytest.raises(TypeError):
            hash(MemorySize(1024))

    def test_arithmetic_is_bytewise(self):
        """+, -, * work on bytes and accept plain numbers on either side."""
        a = MemorySize(300)
        b = MemorySize(100)
        assert a + b == MemorySize(400)
        assert a - b == MemorySize(200)
        assert 500 - a == MemorySize(200)
        assert a * 2 == MemorySize(600)
        assert 2 * a == MemorySize(600)
        assert 100 + a == MemorySize(400)

    def test_division(self):
        """MemorySize / MemorySize is a ratio; MemorySize / number is a MemorySize."""
        ratio = MemorySize.from_megabytes(512) / MemorySize.from_gigabytes(16)
        assert isinstance(ratio, float)
        assert ratio == pytest.approx(0.03125)

        half = MemorySize(1000) / 2
        assert isinstance(half, MemorySize)
        assert half == MemorySize(500)

    def test_ordering(self):
        """Ordering compares bytes."""
        assert MemorySize(1) < MemorySize(2)
        assert MemorySize(2) >= 2
        assert sorted([MemorySize(3), MemorySize(1)]) == [MemorySize(1), MemorySize(3)]

    def test_bool_is_rejected_as_number(self):
        """Booleans are not byte counts."""
        with pytest.raises(TypeError):
            MemorySize(1) + True

    def test_conversions(self):
        """int() and float() give the byte count."""
        size = MemorySize(1536.7)
        assert int(size) == 1536
        assert float(size) == 1536.7
        assert not MemorySize(0)

    @pytest.mark.parametrize(
        ("size", "text"),
        [
            (MemorySize.from_megabytes(512), "512.00 MB"),
            (MemorySize.from_gigabytes(16), "16.00 GB"),
            (MemorySize.from_kilobytes(1.5), "1.50 KB"),
            (MemorySize(100), "100 B"),
        ],
    )
    def test_str_uses_largest_unit(self, size, text):
        """str() renders the largest unit that is at least 1."""
        assert str(size) == text


class TestUsageToDict:
    """Tests for JSON serialization of results."""

    def test_process_usage_to_dict(self):
        """to_dict nests threads and children."""
        child = ProcessUsage(
            pid=2,
            cpu_percent_normalized=1.0,
            cpu_percent=4.0,
            memory=MemorySize(10),
            memory_percent=0.5,
        )
        usage = ProcessUsage(
            pid=1,
            name="bash",
            cpu_percent_normalized=30.0,
            cpu_percent=120.0,
            memory=MemorySize.from_megabytes(1),
            memory_percent=3.125,
            threads=[ThreadUsage(tid=7, cpu_percent_normalized=10.0, cpu_percent=40.0)],
            children=[child],
        )

        data = usage.to_dict()

        assert data["pid"] == 1
        assert data["name"] == "bash"
        assert data["memory_bytes"] == 1024 * 1024
        assert data["threads"] == [
            {"tid": 7, "cpu_percent_normalized": 10.0, "cpu_percent": 40.0}
        ]
        assert data["children"][0]["pid"] == 2
        assert data["children"][0]["threads"] == []
