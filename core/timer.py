# =============================================================================
# core/timer.py — Restartable monotonic stopwatch
# =============================================================================

import time
from typing import Callable, Optional


class Timer:
    """
    Measures elapsed seconds since the last start().

    The clock is injectable so offline replays and tests can drive time
    deterministically instead of reading the wall clock.

    Usage:
        t = Timer()
        t.start()
        ...
        dt = t.elapsed_seconds()
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock if clock is not None else time.perf_counter
        self._start = self._clock()

    def start(self) -> None:
        self._start = self._clock()

    def elapsed_seconds(self) -> float:
        return max(0.0, self._clock() - self._start)
