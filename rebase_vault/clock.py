"""
Clock Module

The ledger never manages time itself. "Now" is an externally supplied,
monotonically non-decreasing reading in whole unix seconds.
"""

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of the current time for ledger operations"""

    @abstractmethod
    def now(self) -> int:
        """Return the current time in whole seconds"""
        pass


class SystemClock(Clock):
    """Wall-clock time, truncated to whole seconds"""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            # Never report a reading earlier than one already handed out
            self._last = max(self._last, int(time.time()))
            return self._last


class ManualClock(Clock):
    """Deterministic clock driven explicitly by the caller (tests, simulations)"""

    def __init__(self, start: int = 1):
        # 0 is reserved: ledgers treat it as "never settled"
        if start < 1:
            raise ValueError("Clock must start at a positive time")
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> int:
        """Jump to an absolute time; going backwards is rejected"""
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards: {timestamp} < {self._now}")
        self._now = timestamp
        return self._now

    def advance(self, seconds: int) -> int:
        """Move time forward by a number of seconds"""
        if seconds < 0:
            raise ValueError("Cannot advance clock by a negative amount")
        self._now += seconds
        return self._now
