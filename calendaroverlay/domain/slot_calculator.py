"""
Core business logic for calculating free time slots.

Pure domain logic without any external dependencies (no API calls, no I/O).
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from .intervals import invert_to_free
from .models import Period, TimeRange, WorkWeek
from .periods import days_in_period


class SlotCalculator:
    """
    Derives free slots per day from the aggregated busy ranges.

    Algorithm, repeated independently for every day of the period:
    1. Look up that day's work hours
    2. Clamp the busy ranges to the workday and merge them
    3. Invert the merged set to the gaps of the workday
    4. Drop gaps shorter than the minimum
    """

    def __init__(self, work_week: WorkWeek, min_gap_minutes: int = 30):
        self.work_week = work_week
        self.min_gap_minutes = min_gap_minutes

    def free_slots_by_day(
        self,
        period: Period,
        busy: Iterable[TimeRange],
    ) -> Dict[str, List[TimeRange]]:
        """
        Map each day of the period (``YYYY-MM-DD``) to its free slots.
        """
        busy_ranges = list(busy)
        slots: Dict[str, List[TimeRange]] = {}

        for day in days_in_period(period):
            slots[day.to_date_string()] = self.free_slots_for_day(day, busy_ranges)

        return slots

    def free_slots_for_day(self, day, busy: Iterable[TimeRange]) -> List[TimeRange]:
        hours = self.work_week.for_day(day)
        if hours.end <= hours.start:
            return []

        # Only ranges touching this day matter
        day_start, day_end = hours.bounds_for_day(day)
        relevant = [b for b in busy if b.start < day_end and b.end > day_start]

        return invert_to_free(
            relevant,
            day,
            hours.start,
            hours.end,
            self.min_gap_minutes,
        )
