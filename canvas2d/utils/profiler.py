"""Lightweight profiling: wall-clock timers.

Provides:
    - timer(): context manager for wall-clock timing with optional sink
    - TimerAccumulator: aggregate per-tile timings during a dispatch

Used to measure:
    - Full-frame renders (CLI, renderer facade)
    - Per-workgroup kernel time (dispatch, logged at DEBUG)
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds); if None, logs at INFO

    Examples
    --------
    >>> with timer("render", sink=lambda n, t: print(f"{n}: {t:.3f}s")):
    ...     grid = renderer.render_commands(stream, 64, 64)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            logger.info(f"{name}: {elapsed:.3f} s")


class TimerAccumulator:
    """Accumulate timing measurements for averaging.

    Attributes
    ----------
    name : str
        Timer name
    total_time : float
        Accumulated time in seconds
    count : int
        Number of measurements
    """

    def __init__(self, name: str):
        self.name = name
        self.total_time = 0.0
        self.count = 0

    @contextmanager
    def measure(self):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.add(time.perf_counter() - start)

    def add(self, elapsed: float) -> None:
        """Record a measurement taken elsewhere (e.g. on a worker thread)."""
        self.total_time += elapsed
        self.count += 1

    def mean(self) -> float:
        return self.total_time / self.count if self.count > 0 else 0.0

    def __repr__(self) -> str:
        return f"TimerAccumulator({self.name}, mean={self.mean():.4f}s, count={self.count})"
