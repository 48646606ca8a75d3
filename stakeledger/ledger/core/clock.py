# MIT License
# Copyright (c) 2025 Hashborn

"""
Time sources for the execution host.

Contracts never read the wall clock directly; the runtime hands them `now()`
from whichever clock it was built with.
"""
import time
import threading


class SystemClock:
    """Wall-clock time in whole unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Deterministic clock for tests and devnet.

    Time only moves when `advance` or `set` is called.
    """

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("Clock cannot start before the epoch")
        self._now = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Cannot move clock backwards")
        with self._lock:
            self._now += int(seconds)
            return self._now

    def set(self, timestamp: int) -> int:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(f"Cannot move clock backwards: {timestamp} < {self._now}")
            self._now = int(timestamp)
            return self._now
