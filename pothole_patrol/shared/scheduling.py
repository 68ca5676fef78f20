"""Clock and deadline helpers for the detection polling loop."""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    def time(self) -> float:
        """Wall-clock seconds since the epoch."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary, never decreasing origin."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""


class SystemClock:
    """Clock backed by :mod:`time` and :func:`asyncio.sleep`."""

    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


def now_ms(clock: Clock) -> int:
    """Return ``clock`` wall time in integer milliseconds."""

    return int(clock.time() * 1000)


class IntervalScheduler:
    """Track monotonic deadlines for fixed-delay periodic tasks."""

    def __init__(self, interval: float, clock: Clock | None = None) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._clock = clock or SystemClock()
        self._next_deadline = self._clock.monotonic()

    def timeout(self) -> float:
        """Return the time remaining until the next deadline."""

        return max(0.0, self._next_deadline - self._clock.monotonic())

    def executed(self) -> None:
        """Record that the job has run; the next run is ``interval`` after now."""

        self._next_deadline = self._clock.monotonic() + self.interval

    def defer(self) -> None:
        """Skip the current tick and reschedule for ``interval`` seconds later."""

        self._next_deadline = self._clock.monotonic() + self.interval

    def skip_if(self, condition: bool) -> bool:
        """Skip the tick if ``condition`` holds, returning ``True`` if skipped."""

        if condition:
            self.defer()
            return True
        return False


class MonotonicStamp:
    """Millisecond stamps that strictly increase even when the clock does not."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._last = 0

    def next(self) -> int:
        stamp = max(now_ms(self._clock), self._last + 1)
        self._last = stamp
        return stamp
