"""
Pacing for the server-side geocode run.

The batch geocoder paces its own workers. The run issues one lookup at a
time, so a fixed gap between lookups is all it needs.
"""

from __future__ import annotations

import time
import threading

from .base import RateLimiter


class IntervalGate(RateLimiter):
    """Keeps consecutive lookups at least ``interval_s`` seconds apart."""

    def __init__(self, interval_s: float):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")

        self.interval_s = float(interval_s)
        self._last: float | None = None
        self._lock = threading.Lock()

    @classmethod
    def for_pacing(cls, interval_s: float) -> RateLimiter:
        """Gate for a configured pacing; zero or less turns pacing off."""
        if interval_s <= 0:
            return NoOpRateLimiter()
        return cls(interval_s)

    def wait(self) -> None:
        self.acquire(1)

    def acquire(self, count: int = 1) -> None:
        """Sleep out the remainder of the gap, then reserve ``count`` slots."""
        with self._lock:
            if self._last is not None:
                remaining = self._last + self.interval_s - time.monotonic()
                if remaining > 0:
                    time.sleep(remaining)
            self._last = time.monotonic() + self.interval_s * (count - 1)


class NoOpRateLimiter(RateLimiter):
    """Never waits. Used when pacing is configured to zero."""

    def wait(self) -> None:
        pass

    def acquire(self, count: int = 1) -> None:
        pass
