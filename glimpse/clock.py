import time
from typing import Callable

# Every time-driven rule reads "now" through one of these, in epoch milliseconds.
Clock = Callable[[], int]

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


def system_clock() -> int:
    return int(time.time() * 1000)


__all__ = ["Clock", "DAY_MS", "HOUR_MS", "system_clock"]
