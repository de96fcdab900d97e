"""
Injectable time source.

Every "today" and "now" the engine uses comes from a `Clock`, so window
arithmetic is deterministic under test and never reads ambient globals.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware."""
        ...

    def today(self) -> date:
        """Current calendar date in the player's local timezone."""
        ...


class SystemClock:
    """Wall clock in a fixed local timezone (system local time by default)."""

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self._tz = tz

    def now(self) -> datetime:
        if self._tz is None:
            return datetime.now(timezone.utc).astimezone()
        return datetime.now(self._tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """
    Manually driven clock for tests and replays.

    >>> clock = FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))
    >>> clock.advance(days=1).today().isoformat()
    '2024-03-02'
    """

    def __init__(self, current: datetime) -> None:
        if current.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._current = current

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.date()

    def set(self, current: datetime) -> "FixedClock":
        if current.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._current = current
        return self

    def advance(self, **delta: float) -> "FixedClock":
        self._current = self._current + timedelta(**delta)
        return self
