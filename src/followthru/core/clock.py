"""Clock abstraction and calendar predicates for the generator.

Rules never read wall-clock time directly. The generator owns a clock and
passes ``now`` down, so rules stay pure and tests can pin the date.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytz

QUARTER_START_MONTHS = (1, 4, 7, 10)


class Clock:
    """Wall clock localized to a timezone."""

    def __init__(self, timezone: str = "UTC"):
        self._tz = pytz.timezone(timezone)

    @property
    def tz(self) -> pytz.BaseTzInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class FixedClock(Clock):
    """Clock frozen at a given instant. Naive datetimes are localized."""

    def __init__(self, at: datetime, timezone: str = "UTC"):
        super().__init__(timezone)
        if at.tzinfo is None:
            at = self._tz.localize(at)
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs) -> None:
        """Move the clock forward by a timedelta given as keyword arguments."""
        self._at = self._at + timedelta(**kwargs)


def is_monday(now: datetime) -> bool:
    return now.weekday() == 0


def is_first_monday_of_month(now: datetime) -> bool:
    """True on the first Monday of the month (a Monday within days 1-7)."""
    return is_monday(now) and now.day <= 7


def is_first_day_of_quarter(now: datetime) -> bool:
    """True on Jan 1, Apr 1, Jul 1 and Oct 1."""
    return now.day == 1 and now.month in QUARTER_START_MONTHS


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days from ``earlier`` to ``later``.

    A naive datetime is compared against the wall time of the aware one.
    """
    if (earlier.tzinfo is None) != (later.tzinfo is None):
        earlier = earlier.replace(tzinfo=None)
        later = later.replace(tzinfo=None)
    return (later - earlier).days
