"""
Clock Source - the time input the pricing function reads.

The ledger reads the clock once per transaction and hands that single
value to every instruction in it. The auction program never reads a
clock itself, so a price is always the price at the instant the
transaction executes, not when it was built.

The only guarantee the program relies on is monotonicity. Granularity is
whatever the source offers (seconds, slots); nothing assumes sub-unit
resolution.
"""

import time
from typing import Protocol

from dutch.core.errors import ClockUnavailable
from dutch.utils.logger import get_logger

logger = get_logger("clock")


class Clock(Protocol):
    """Anything that can report the current logical time."""

    def read_now(self) -> int:
        """Return the current time value. Must be non-decreasing."""
        ...


class SystemClock:
    """Unix wall-clock seconds, clamped so it never runs backwards."""

    def __init__(self):
        self._last = 0

    def read_now(self) -> int:
        now = int(time.time())
        if now < self._last:
            logger.warning(f"Wall clock stepped back {self._last - now}s, holding at {self._last}")
            now = self._last
        self._last = now
        return now


class ManualClock:
    """
    Clock advanced explicitly by its owner.

    Used for deterministic scenarios and tests. Moving it backwards raises
    ValueError, mirroring the monotonicity the ledger expects. Marking it
    unavailable makes every read fail with ClockUnavailable.
    """

    def __init__(self, now: int = 0):
        self._now = now
        self.available = True

    def read_now(self) -> int:
        if not self.available:
            raise ClockUnavailable("Manual clock marked unavailable")
        return self._now

    def set(self, now: int) -> None:
        """Jump to an absolute time (not earlier than the current one)."""
        if now < self._now:
            raise ValueError(f"Clock cannot move backwards: {now} < {self._now}")
        self._now = now

    def advance(self, delta: int) -> int:
        """Move forward by `delta` units and return the new time."""
        if delta < 0:
            raise ValueError("delta must be non-negative")
        self._now += delta
        return self._now

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now})"
