"""Tests for the polling monitor."""

import time

import pytest

from proc_usage.errors import SamplingError
from proc_usage.monitor import UsageMonitor


def wait_until(condition, timeout=2.0, interval=0.01):
    """Wait until condition() returns True, or timeout."""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise TimeoutError(f"Condition not met within {timeout}s")
        time.sleep(interval)


class TestRun:
    """Tests for the foreground loop."""

    def test_runs_count_rounds(self, sampler):
        """run(count) returns after exactly count rounds."""
        samples = []
        monitor = UsageMonitor(
            sampler, interval=0.01, on_sample=lambda u, ms: samples.append((u, ms))
        )

        monitor.run(count=3)

        assert monitor.rounds == 3
        assert monitor.failures == 0
        assert len(samples) == 3
        assert all(ms >= 0 for _, ms in samples)

    def test_failed_round_goes_to_on_error(self, source, sampler):
        """A failed round is reported and the loop keeps going."""
        errors = []
        samples = []

        def on_sample(usage, elapsed_ms):
            samples.append(usage)
            source.fail.add("process_raw_stat")

        monitor = UsageMonitor(
            sampler, interval=0.01, on_sample=on_sample, on_error=errors.append
        )
        monitor.run(count=3)

        assert len(samples) == 1
        assert len(errors) == 2
        assert all(isinstance(e, SamplingError) for e in errors)
        assert monitor.failures == 2

    def test_deltas_across_rounds(self, source, sampler):
        """Rounds after the first report deltas."""
        usages = []

        def on_sample(usage, elapsed_ms):
            usages.append(usage)
            source.system_ticks += 100
            stat = source.stats[usage.pid]
            source.set_process(usage.pid, user=stat.user_ticks + 50, kernel=stat.kernel_ticks)

        UsageMonitor(sampler, interval=0.01, on_sample=on_sample).run(count=2)

        assert usages[0].cpu_percent_normalized == 0.0
        assert usages[1].cpu_percent_normalized == pytest.approx(50.0)

    def test_stop_from_callback(self, sampler):
        """stop() inside a callback ends the foreground loop."""
        monitor = UsageMonitor(sampler, interval=0.01)
        monitor._on_sample = lambda usage, ms: monitor.stop()

        monitor.run()

        assert monitor.rounds == 1

    def test_does_not_dispose_sampler(self, sampler):
        """The sampler keeps its cache after the loop ends."""
        UsageMonitor(sampler, interval=0.01).run(count=1)
        assert len(sampler._store) > 0

    def test_invalid_interval(self, sampler):
        """A non-positive interval is rejected."""
        with pytest.raises(ValueError, match="interval"):
            UsageMonitor(sampler, interval=0)


class TestBackground:
    """Tests for the daemon-thread loop."""

    def test_start_and_stop(self, sampler):
        """The background loop samples until stopped."""
        monitor = UsageMonitor(sampler, interval=0.01)
        monitor.start()
        try:
            assert monitor.is_running
            wait_until(lambda: monitor.rounds >= 2)
        finally:
            monitor.stop(timeout=2.0)

        assert not monitor.is_running

    def test_stop_is_idempotent(self, sampler):
        """stop() can be called repeatedly, even before start()."""
        monitor = UsageMonitor(sampler, interval=0.01)
        monitor.stop()
        monitor.start()
        monitor.stop(timeout=2.0)
        monitor.stop(timeout=2.0)
        assert not monitor.is_running

    def test_start_twice_is_noop(self, sampler):
        """A second start() while running keeps the same thread."""
        monitor = UsageMonitor(sampler, interval=0.05)
        monitor.start()
        try:
            thread = monitor._thread
            monitor.start()
            assert monitor._thread is thread
        finally:
            monitor.stop(timeout=2.0)
