"""Tests for the snapshot cache."""

from proc_usage.models import UsageSnapshotKey
from proc_usage.snapshots import SnapshotStore
from tests.conftest import make_stat


def test_empty_store():
    """A new store has no entries."""
    store = SnapshotStore()
    assert len(store) == 0
    assert store.get(UsageSnapshotKey(1)) is None
    assert store.get(UsageSnapshotKey(1, 2)) is None
    assert store.get_system_ticks(1) is None
    assert dict(store.get_thread_map(1)) == {}


def test_put_replaces_unconditionally():
    """At most one stat per key; the latest put wins."""
    store = SnapshotStore()
    key = UsageSnapshotKey(1)
    store.put(key, make_stat(1, user=10))
    store.put(key, make_stat(1, user=5))

    assert len(store) == 1
    assert store.get(key).user_ticks == 5
    assert key in store
    assert UsageSnapshotKey(2) not in store
    assert "not a key" not in store


def test_thread_keys_live_in_thread_map():
    """Thread keys are stored in their process's thread map."""
    store = SnapshotStore()
    store.put(UsageSnapshotKey(1, 7), make_stat(1, user=3, tid=7))

    assert store.get(UsageSnapshotKey(1, 7)).user_ticks == 3
    assert store.get(UsageSnapshotKey(1)) is None
    assert set(store.get_thread_map(1)) == {7}


def test_replace_thread_map_drops_missing_threads():
    """Replacing a thread map forgets threads absent from the new map."""
    store = SnapshotStore()
    store.replace_thread_map(1, {7: make_stat(1, tid=7), 8: make_stat(1, tid=8)})
    store.replace_thread_map(1, {8: make_stat(1, user=9, tid=8)})

    assert store.get(UsageSnapshotKey(1, 7)) is None
    assert store.get(UsageSnapshotKey(1, 8)).user_ticks == 9
    assert len(store) == 1


def test_replace_thread_map_copies():
    """Later changes to the caller's dict do not leak into the store."""
    store = SnapshotStore()
    threads = {7: make_stat(1, tid=7)}
    store.replace_thread_map(1, threads)
    threads[8] = make_stat(1, tid=8)

    assert set(store.get_thread_map(1)) == {7}


def test_system_ticks_per_pid():
    """Each process keeps its own system tick baseline."""
    store = SnapshotStore()
    store.put_system_ticks(1, 100)
    store.put_system_ticks(2, 250)

    assert store.get_system_ticks(1) == 100
    assert store.get_system_ticks(2) == 250


def test_clear():
    """clear() drops processes, threads and tick baselines."""
    store = SnapshotStore()
    store.put(UsageSnapshotKey(1), make_stat(1))
    store.put_system_ticks(1, 100)
    store.replace_thread_map(1, {7: make_stat(1, tid=7)})

    store.clear()

    assert len(store) == 0
    assert store.get_system_ticks(1) is None
    assert dict(store.get_thread_map(1)) == {}
