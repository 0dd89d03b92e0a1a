import threading
import time

from barco.debouncer import Debouncer, debounce

TIMER_PRECISION = 0.02
SETTLE = 0.06


class _Counter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.value = 0

    def __call__(self) -> None:
        with self._lock:
            self.value += 1


def test_fires_once_when_threshold_is_zero():
    delay = 0.02
    debouncer = debounce(delay, 0)
    counter = _Counter()
    for _ in range(10):
        debouncer(counter)
    time.sleep(delay + SETTLE)
    assert counter.value == 1


def test_fires_once_within_threshold():
    delay = 0.1
    debouncer = debounce(delay, 0.5)
    counter = _Counter()
    for _ in range(3):
        debouncer(counter)
        time.sleep(TIMER_PRECISION)
    time.sleep(delay + SETTLE)
    assert counter.value == 1


def test_fires_multiple_times():
    delay = 0.02
    debouncer = debounce(delay, 0)
    counter = _Counter()
    debouncer(counter)
    time.sleep(delay + SETTLE)
    debouncer(counter)
    time.sleep(delay + SETTLE)
    assert counter.value == 2


def test_fires_multiple_times_outside_threshold():
    delay = 0.04
    debouncer = Debouncer(delay, 0.1)
    counter = _Counter()
    debouncer(counter)
    # More than 10% of the delay passes before the second call
    time.sleep(TIMER_PRECISION)
    debouncer(counter)
    time.sleep(delay + SETTLE)
    assert counter.value == 2