"""Synthetic CPU and memory load for exercising the sampler.

CPU workers spin on small factorials; memory workers keep allocating blocks
and drop the oldest half once their budget is reached. All workers are
daemon threads and exit when their stop event is set.
"""

import threading

import structlog

log = structlog.get_logger()

_JOIN_TIMEOUT = 0.5


def _factorial(n: int) -> int:
    fact = 1
    for j in range(2, min(n, 20) + 1):
        fact *= j
    return fact


def _cpu_worker(stop: threading.Event) -> None:
    i = 1
    while not stop.is_set():
        _factorial(i)
        i = i % 10_000_000 + 1


def _memory_worker(stop: threading.Event, block_size: int, max_bytes: int, sleep: float) -> None:
    blocks: list[bytearray] = []
    held = 0
    while not stop.wait(sleep):
        block = bytearray(block_size)
        # Touch every page so the allocation is resident
        for offset in range(0, block_size, 4096):
            block[offset] = 1
        blocks.append(block)
        held += block_size
        if held >= max_bytes:
            del blocks[: len(blocks) // 2]
            held = sum(len(b) for b in blocks)


class LoadSimulator:
    """Starts and stops CPU and memory load threads inside this process.

    Args:
        block_size: Bytes allocated per memory-worker step
        max_bytes: Per-worker allocation budget before old blocks are released
        load_sleep: Seconds a memory worker sleeps between allocations
    """

    def __init__(
        self,
        block_size: int = 1024 * 1024,
        max_bytes: int = 64 * 1024 * 1024,
        load_sleep: float = 0.04,
    ) -> None:
        if block_size <= 0:
            raise ValueError(f"block_size must be > 0, got {block_size}")
        if max_bytes < block_size:
            raise ValueError(f"max_bytes must be >= block_size, got {max_bytes}")
        self.block_size = block_size
        self.max_bytes = max_bytes
        self.load_sleep = load_sleep
        self._cpu_threads: list[threading.Thread] = []
        self._memory_threads: list[threading.Thread] = []
        self._cpu_stop = threading.Event()
        self._memory_stop = threading.Event()

    @property
    def cpu_started(self) -> bool:
        return any(t.is_alive() for t in self._cpu_threads)

    @property
    def memory_started(self) -> bool:
        return any(t.is_alive() for t in self._memory_threads)

    def __enter__(self) -> "LoadSimulator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_cpu_load()
        self.stop_memory_load()

    def start_cpu_load(self, threads: int = 1) -> None:
        """Start CPU-bound worker threads. No-op if CPU load is running."""
        if self.cpu_started:
            return
        self._cpu_stop = threading.Event()
        self._cpu_threads = _spawn(threads, "cpu-load", _cpu_worker, (self._cpu_stop,))
        log.info("cpu_load_started", threads=threads)

    def stop_cpu_load(self) -> None:
        """Stop the CPU workers, waiting briefly for each to exit."""
        _stop(self._cpu_stop, self._cpu_threads)
        self._cpu_threads = []

    def start_memory_load(self, threads: int = 1) -> None:
        """Start allocating worker threads. No-op if memory load is running."""
        if self.memory_started:
            return
        self._memory_stop = threading.Event()
        self._memory_threads = _spawn(
            threads,
            "memory-load",
            _memory_worker,
            (self._memory_stop, self.block_size, self.max_bytes, self.load_sleep),
        )
        log.info("memory_load_started", threads=threads, max_bytes=self.max_bytes)

    def stop_memory_load(self) -> None:
        """Stop the memory workers; their blocks are released with them."""
        _stop(self._memory_stop, self._memory_threads)
        self._memory_threads = []


def _spawn(count: int, name: str, target, args: tuple) -> list[threading.Thread]:
    if count < 1:
        raise ValueError(f"thread count must be >= 1, got {count}")
    threads = [
        threading.Thread(target=target, args=args, name=f"{name}-{i}", daemon=True)
        for i in range(count)
    ]
    for t in threads:
        t.start()
    return threads


def _stop(event: threading.Event, threads: list[threading.Thread]) -> None:
    event.set()
    for t in threads:
        if t.is_alive():
            t.join(_JOIN_TIMEOUT)
    if threads:
        log.info("load_stopped", threads=len(threads))
