"""Time sources for window checks. Readings are integer seconds."""

from __future__ import annotations

import time


class SystemClock:
    def __call__(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock advanced explicitly by the caller (tests, scenario replay)."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self.now += seconds
        return self.now

    def set(self, now: int) -> int:
        if now < self.now:
            raise ValueError("clock cannot move backwards")
        self.now = now
        return self.now
