"""
Time window policies for gated actions.

Three cadence families:

- daily-local: once per player-local calendar day
- rolling-N-days: once per N days since the previous acceptance
- weekly-fixed-day: calendar-anchored reset on a fixed weekday (the weekly
  boost pool)

Elapsed days are floored and the boundary is inclusive: exactly N days
after the previous acceptance the window is open again.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import Optional

SECONDS_PER_DAY = 86_400


class Weekday(IntEnum):
    """Weekdays numbered like ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_value(cls, value: "Weekday | int | str") -> "Weekday":
        """
        >>> Weekday.from_value("sunday")
        <Weekday.SUNDAY: 6>
        """
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"unknown weekday: {value!r}") from None
        return cls(int(value))


@dataclass(frozen=True)
class WindowDecision:
    allowed: bool
    days_remaining: int = 0


def daily_local_window(last_local_date: Optional[date], today: date) -> WindowDecision:
    """Allowed iff there is no prior occurrence or it was on another local day."""
    return WindowDecision(allowed=last_local_date is None or last_local_date != today)


def elapsed_days(last_instant: datetime, now: datetime) -> int:
    """Whole days between two instants, floored."""
    return math.floor((now - last_instant).total_seconds() / SECONDS_PER_DAY)


def rolling_window(
    last_instant: Optional[datetime],
    now: datetime,
    window_days: int,
) -> WindowDecision:
    """
    Rolling N-day gate.

    days_remaining = max(0, window_days - floor(elapsed days))

    >>> from datetime import timezone
    >>> now = datetime(2024, 1, 8, tzinfo=timezone.utc)
    >>> rolling_window(now - timedelta(days=7), now, 7)
    WindowDecision(allowed=True, days_remaining=0)
    >>> rolling_window(now - timedelta(days=6.99), now, 7)
    WindowDecision(allowed=False, days_remaining=1)
    """
    if window_days < 0:
        raise ValueError(f"window_days must be non-negative, got {window_days}")
    if last_instant is None:
        return WindowDecision(allowed=True)

    days_remaining = max(0, window_days - elapsed_days(last_instant, now))
    return WindowDecision(allowed=days_remaining == 0, days_remaining=days_remaining)


def weekly_fixed_day_reset(today: date, reset_weekday: Weekday = Weekday.SUNDAY) -> int:
    """
    Days until the next reset weekday, in 1..7.

    On the reset weekday itself the next reset is a full week away.

    >>> weekly_fixed_day_reset(date(2024, 1, 7))  # a Sunday
    7
    >>> weekly_fixed_day_reset(date(2024, 1, 8))  # Monday
    6
    """
    days = (int(reset_weekday) - today.weekday()) % 7
    return days or 7


def week_start(today: date, reset_weekday: Weekday = Weekday.SUNDAY) -> date:
    """
    First day of the current boost-pool week (the most recent reset weekday,
    today included).
    """
    return today - timedelta(days=(today.weekday() - int(reset_weekday)) % 7)
