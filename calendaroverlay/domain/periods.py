"""
Day and week boundaries and ISO week numbers in a target timezone.
"""

from __future__ import annotations

from datetime import date
from typing import List, Union

import pendulum
from pendulum import DateTime

from .models import Period, ViewMode

DateLike = Union[date, str]


def _civil_date(value: DateLike) -> date:
    if isinstance(value, str):
        parsed = pendulum.from_format(value, "YYYY-MM-DD")
        return date(parsed.year, parsed.month, parsed.day)
    return date(value.year, value.month, value.day)


def _midnight(value: DateLike, timezone: str) -> DateTime:
    civil = _civil_date(value)
    return pendulum.datetime(civil.year, civil.month, civil.day, tz=timezone)


def day_bounds(value: DateLike, timezone: str) -> Period:
    """Return 00:00:00 to 23:59:59 of the given civil date."""
    start = _midnight(value, timezone)
    end = start.set(hour=23, minute=59, second=59)
    return Period(start=start, end=end, view=ViewMode.DAY, anchor=start)


def week_bounds(value: DateLike, timezone: str) -> Period:
    """
    Return the Monday-Sunday week containing the given date.

    A Sunday belongs to the week that ends on it.
    """
    anchor = _midnight(value, timezone)
    monday = anchor.subtract(days=anchor.weekday())
    sunday = monday.add(days=6)
    return Period(
        start=monday,
        end=sunday.set(hour=23, minute=59, second=59),
        view=ViewMode.WEEK,
        anchor=anchor,
    )


def iso_week_number(value: DateLike) -> int:
    """ISO-8601 week number: week 1 holds the year's first Thursday."""
    return _civil_date(value).isocalendar()[1]


def period_for(value: DateLike, view: ViewMode, timezone: str) -> Period:
    if view == ViewMode.WEEK:
        return week_bounds(value, timezone)
    return day_bounds(value, timezone)


def days_in_period(period: Period) -> List[DateTime]:
    """Midnight of every calendar day covered by the period."""
    days: List[DateTime] = []
    current = period.start.start_of("day")

    while current <= period.end:
        days.append(current)
        current = current.add(days=1)

    return days
