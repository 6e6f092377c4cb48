"""
Interval algebra over time ranges: merge, clamp to a workday, invert to free.

Pure functions without any I/O. Inputs are never mutated.
"""

from __future__ import annotations

from typing import Iterable, List

from pendulum import DateTime

from .models import TimeRange


def merge(intervals: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or touching time ranges.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]

    The result is sorted by start, pairwise disjoint and minimal.
    """
    sorted_ranges = sorted(intervals, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    first = sorted_ranges[0]
    merged: List[TimeRange] = [TimeRange(start=first.start, end=first.end)]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        # Touching ranges merge too: back-to-back meetings are one busy block
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
        else:
            merged.append(TimeRange(start=current.start, end=current.end))

    return merged


def clamp_to_workday(
    intervals: Iterable[TimeRange],
    day: DateTime,
    work_start: int,
    work_end: int,
) -> List[TimeRange]:
    """
    Intersect each range with ``[day@work_start, day@work_end]``.

    Ranges left empty after clamping are dropped.
    """
    base = day.start_of("day")
    day_start = base.set(hour=work_start)
    day_end = base.set(hour=work_end)

    clamped: List[TimeRange] = []
    for interval in intervals:
        start = max(interval.start, day_start)
        end = min(interval.end, day_end)
        if end > start:
            clamped.append(TimeRange(start=start, end=end))

    return clamped


def invert_to_free(
    busy: Iterable[TimeRange],
    day: DateTime,
    work_start: int,
    work_end: int,
    min_minutes: float,
) -> List[TimeRange]:
    """
    Return the gaps of the workday not covered by ``busy``.

    Working: 09:00 - 17:00
    Busy: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]

    Gaps shorter than ``min_minutes`` are omitted, not folded into
    neighbours. Busy ranges are clamped and merged first, so callers may
    pass raw provider data as well.
    """
    base = day.start_of("day")
    day_start = base.set(hour=work_start)
    day_end = base.set(hour=work_end)

    covered = merge(clamp_to_workday(busy, day, work_start, work_end))

    gaps: List[TimeRange] = []
    cursor = day_start

    for interval in covered:
        if interval.start > cursor:
            gaps.append(TimeRange(start=cursor, end=interval.start))
        # The cursor only moves forward
        if interval.end > cursor:
            cursor = interval.end

    if cursor < day_end:
        gaps.append(TimeRange(start=cursor, end=day_end))

    return [gap for gap in gaps if gap.duration_minutes() >= min_minutes]
