"""
clock.py - Time sources for the ledger

Interest math never reads ambient "now"; every ledger receives a Clock.

Classes:
- Clock: Protocol returning the current instant
- SystemClock: UTC wall clock for live sessions
- ManualClock: Deterministic clock for tests and simulations

All instants are timezone-aware UTC datetimes.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def __repr__(self):
        return "SystemClock()"


class ManualClock:
    """
    Clock that only moves when told to.

    Time can only move forward, never backward, mirroring how the ledger
    treats its logical clock.

    Example:
        clock = ManualClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        clock.advance(seconds=5)
    """

    def __init__(self, start: Optional[datetime] = None):
        start = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._now = _as_utc(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: Union[timedelta, None] = None, *, seconds: float = 0) -> datetime:
        """
        Move the clock forward by a timedelta and/or a number of seconds.

        Raises:
            ValueError: If the total step is negative.
        """
        step = (delta or timedelta(0)) + timedelta(seconds=seconds)
        if step < timedelta(0):
            raise ValueError(f"Cannot move time backwards by {step}")
        self._now = self._now + step
        return self._now

    def set(self, new_time: datetime) -> None:
        """
        Jump to an absolute instant.

        Raises:
            ValueError: If new_time is before the current time.
        """
        new_time = _as_utc(new_time)
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time

    def __repr__(self):
        return f"ManualClock({self._now.isoformat()})"


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
