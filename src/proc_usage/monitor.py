"""Fixed-interval polling loop around a UsageSampler."""

import threading
import time
from collections.abc import Callable

import structlog

from proc_usage.errors import SamplingError
from proc_usage.models import ProcessUsage
from proc_usage.sampler import UsageSampler

log = structlog.get_logger()

SampleCallback = Callable[[ProcessUsage, float], None]
ErrorCallback = Callable[[SamplingError], None]


class UsageMonitor:
    """Samples a process every `interval` seconds until stopped.

    Each round is timed with perf_counter. Successful rounds go to
    on_sample(usage, elapsed_ms); a failed round goes to on_error(error) and
    the next tick simply retries. The monitor never disposes the sampler;
    its owner does.

    Args:
        sampler: Sampler to poll
        interval: Seconds between round starts
        on_sample: Called with each usage and the round duration in ms
        on_error: Called with the SamplingError of each failed round
        include_threads: Sample per-thread usage
        include_children: Sample child processes
    """

    def __init__(
        self,
        sampler: UsageSampler,
        interval: float = 1.0,
        on_sample: SampleCallback | None = None,
        on_error: ErrorCallback | None = None,
        include_threads: bool = True,
        include_children: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.sampler = sampler
        self.interval = interval
        self._on_sample = on_sample
        self._on_error = on_error
        self._include_threads = include_threads
        self._include_children = include_children
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.rounds = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Run the loop on a daemon thread. No-op if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="usage-monitor", daemon=True)
        self._thread.start()
        log.info("monitor_started", pid=self.sampler.pid, interval=self.interval)

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the background thread.

        Safe to call repeatedly, and from within a callback.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def run(self, count: int | None = None) -> None:
        """Run the loop in the calling thread.

        Args:
            count: Number of rounds before returning (None = until stop())
        """
        self._stop_event.clear()
        self._loop(count)

    def sample_once(self) -> ProcessUsage | None:
        """Run one timed round and dispatch it to the callbacks."""
        start = time.perf_counter()
        try:
            usage = self.sampler.current_process_usage(
                include_threads=self._include_threads,
                include_children=self._include_children,
            )
        except SamplingError as e:
            self.rounds += 1
            self.failures += 1
            if self._on_error is not None:
                self._on_error(e)
            return None

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.rounds += 1
        if self._on_sample is not None:
            self._on_sample(usage, elapsed_ms)
        return usage

    def _loop(self, count: int | None = None) -> None:
        done = 0
        while not self._stop_event.is_set():
            round_start = time.perf_counter()
            self.sample_once()
            done += 1
            if count is not None and done >= count:
                break

            # Sleep for the rest of the interval, waking early on stop()
            elapsed = time.perf_counter() - round_start
            remaining = self.interval - elapsed
            if remaining > 0 and self._stop_event.wait(remaining):
                break
        log.info("monitor_stopped", rounds=self.rounds, failures=self.failures)
