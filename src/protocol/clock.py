"""Time sources for accrual."""

import time


class SystemClock:
    """Wall-clock seconds."""

    def __call__(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock advanced explicitly, for simulations and tests."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = start

    def __call__(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = timestamp
