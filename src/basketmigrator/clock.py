"""Injectable clock sources for timelock checks."""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of the current unix timestamp in seconds."""

    @abstractmethod
    def now(self) -> int:
        ...


class SystemClock(Clock):
    def now(self) -> int:
        return int(time.time())


class FakeClock(Clock):
    """Manually advanced clock for rehearsals and tests."""

    def __init__(self, start: int = 1_615_000_000):
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = timestamp
