"""
Tests for day/week boundaries and ISO week numbers.
"""

from datetime import date

import pendulum

from calendaroverlay.domain.models import ViewMode
from calendaroverlay.domain.periods import (
    day_bounds,
    days_in_period,
    iso_week_number,
    period_for,
    week_bounds,
)

TZ = "Europe/Oslo"


def test_day_bounds_cover_whole_day():
    """Day bounds run from midnight to 23:59:59."""
    period = day_bounds("2024-11-27", TZ)

    assert period.start == pendulum.datetime(2024, 11, 27, 0, 0, 0, tz=TZ)
    assert period.end == pendulum.datetime(2024, 11, 27, 23, 59, 59, tz=TZ)
    assert period.view == ViewMode.DAY


def test_week_bounds_from_midweek():
    """A Wednesday maps to the Monday-Sunday week around it."""
    period = week_bounds(date(2024, 11, 27), TZ)

    assert period.start == pendulum.datetime(2024, 11, 25, tz=TZ)
    assert period.end == pendulum.datetime(2024, 12, 1, 23, 59, 59, tz=TZ)
    assert period.view == ViewMode.WEEK


def test_sunday_belongs_to_week_ending_on_it():
    """Sunday is the last day of its week, not the first of the next."""
    period = week_bounds("2024-12-01", TZ)

    assert period.start == pendulum.datetime(2024, 11, 25, tz=TZ)
    assert period.end.to_date_string() == "2024-12-01"


def test_week_bounds_from_monday():
    """A Monday starts its own week."""
    period = week_bounds("2024-11-25", TZ)

    assert period.start == pendulum.datetime(2024, 11, 25, tz=TZ)


def test_iso_week_numbers_around_new_year():
    """Week 1 is the week holding the year's first Thursday."""
    assert iso_week_number("2024-12-30") == 1
    assert iso_week_number("2021-01-03") == 53
    assert iso_week_number(date(2024, 11, 27)) == 48


def test_period_for_dispatches_on_view():
    """period_for returns day or week bounds by view."""
    assert period_for("2024-11-27", ViewMode.DAY, TZ) == day_bounds("2024-11-27", TZ)
    assert period_for("2024-11-27", ViewMode.WEEK, TZ) == week_bounds("2024-11-27", TZ)


def test_days_in_period():
    """A week period yields its seven midnights; a day period yields one."""
    week = days_in_period(week_bounds("2024-11-27", TZ))
    day = days_in_period(day_bounds("2024-11-27", TZ))

    assert [d.to_date_string() for d in week] == [
        "2024-11-25",
        "2024-11-26",
        "2024-11-27",
        "2024-11-28",
        "2024-11-29",
        "2024-11-30",
        "2024-12-01",
    ]
    assert [d.to_date_string() for d in day] == ["2024-11-27"]


def test_period_iso_strings_are_utc():
    """Fetch windows are sent to providers as UTC timestamps."""
    period = day_bounds("2024-11-27", TZ)

    assert period.start_iso() == "2024-11-26T23:00:00Z"
    assert period.end_iso() == "2024-11-27T22:59:59Z"
