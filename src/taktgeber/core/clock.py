"""
Time sources for the scheduler.

The host supplies the clock. `MonotonicClock` follows wall time, `VirtualClock`
only moves when told to, which makes headless runs and tests deterministic.
"""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> float:
        ...


class MonotonicClock:
    """Real-time clock backed by time.monotonic"""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, duration: float) -> None:
        if duration > 0:
            time.sleep(duration)

    def __repr__(self) -> str:
        return "MonotonicClock()"


class VirtualClock:
    """
    Manually advanced clock.

    `advance_to` never moves time backwards, so macrotask due times stay
    non-decreasing in execution order.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, delta: float) -> float:
        if delta < 0:
            raise ValueError("Cannot advance a clock by a negative amount")
        self._now += delta
        return self._now

    def advance_to(self, when: float) -> float:
        if when > self._now:
            self._now = when
        return self._now

    def sleep(self, duration: float) -> None:
        self.advance(max(duration, 0.0))

    def __repr__(self) -> str:
        return f"VirtualClock(now={self._now})"


def clock_from_name(name: str) -> Clock:
    """Build a clock from its config name ('monotonic' or 'virtual')"""
    if name == "monotonic":
        return MonotonicClock()
    if name == "virtual":
        return VirtualClock()
    raise ValueError(f"Unknown clock: {name!r}")
