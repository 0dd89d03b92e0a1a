"""Timer-based debouncing of callbacks."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class Debouncer:
    """Runs the last submitted callback once ``delay`` seconds have passed.

    A new call cancels the previously scheduled callback when less than
    ``delay * threshold`` seconds passed since it was scheduled. With a
    threshold of zero the previous callback is always cancelled.
    """

    def __init__(self, delay: float, threshold: float) -> None:
        self._delay = delay
        self._threshold_delay = delay * threshold
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._start = 0.0

    def __call__(self, func: Callable[[], object]) -> None:
        with self._lock:
            previous_timer = self._timer
            previous_start = self._start

            timer = threading.Timer(self._delay, func)
            timer.daemon = True
            timer.start()
            self._timer = timer
            self._start = time.monotonic()

            if previous_timer is not None and (
                self._threshold_delay == 0
                or time.monotonic() - previous_start < self._threshold_delay
            ):
                previous_timer.cancel()


def debounce(delay: float, threshold: float) -> Debouncer:
    """Create a debouncer for the given delay in seconds and threshold ratio."""
    return Debouncer(delay, threshold)