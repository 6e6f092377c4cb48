"""
Domain layer - Pure business logic without external dependencies.
"""

from .intervals import clamp_to_workday, invert_to_free, merge
from .models import (
    BusyBlock,
    EventDetail,
    Period,
    Source,
    TimeRange,
    ViewMode,
    WorkHours,
    WorkWeek,
)
from .periods import day_bounds, iso_week_number, period_for, week_bounds
from .slot_calculator import SlotCalculator

__all__ = [
    "BusyBlock",
    "EventDetail",
    "Period",
    "SlotCalculator",
    "Source",
    "TimeRange",
    "ViewMode",
    "WorkHours",
    "WorkWeek",
    "clamp_to_workday",
    "day_bounds",
    "invert_to_free",
    "iso_week_number",
    "merge",
    "period_for",
    "week_bounds",
]
