"""
Domain models for intervals, busy blocks and work hours.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import pendulum
from pendulum import DateTime

PRIVATE_PLACEHOLDER = "(Private)"
UNTITLED_PLACEHOLDER = "(No title)"


class Source(str, Enum):
    """Calendar provider a record originates from."""

    MICROSOFT = "microsoft"
    GOOGLE = "google"


class ViewMode(str, Enum):
    """Granularity of the displayed period."""

    DAY = "day"
    WEEK = "week"


class FetchMode(str, Enum):
    """Free/busy only, or free/busy plus limited event details."""

    FREE_BUSY = "freebusy"
    DETAILS = "details"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> float:
        """Return the duration in minutes."""
        return (self.end - self.start).total_seconds() / 60

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class BusyBlock(TimeRange):
    """A busy range reported by one provider."""
    source: Source


@dataclass(frozen=True)
class EventDetail:
    """
    Limited per-event fields exposed in details mode.

    Private records never carry their original title or location: the
    placeholder title is forced here so that no construction path can
    produce an unredacted private record.
    """
    source: Source
    start: DateTime
    end: DateTime
    title: Optional[str] = None
    location: Optional[str] = None
    is_private: bool = False

    def __post_init__(self):
        if self.is_private:
            object.__setattr__(self, "title", PRIVATE_PLACEHOLDER)
            object.__setattr__(self, "location", None)


def _clamp_hour(value: int) -> int:
    return max(0, min(23, int(value)))


@dataclass(frozen=True)
class WorkHours:
    """
    Start and end hour of a workday.

    Hours are clamped into [0, 23]. An end before the start snaps up to
    the start, so a workday can be empty but never negative.
    """
    start: int = 8
    end: int = 17

    def __post_init__(self):
        start = _clamp_hour(self.start)
        end = max(_clamp_hour(self.end), start)
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def with_start(self, hour: int) -> "WorkHours":
        """Move the start, never past the current end."""
        return WorkHours(start=min(_clamp_hour(hour), self.end), end=self.end)

    def with_end(self, hour: int) -> "WorkHours":
        """Move the end, never before the current start."""
        return WorkHours(start=self.start, end=max(_clamp_hour(hour), self.start))

    def bounds_for_day(self, day: DateTime) -> Tuple[DateTime, DateTime]:
        """Return the workday start and end instants on the given day."""
        base = day.start_of("day")
        return base.set(hour=self.start), base.set(hour=self.end)


@dataclass(frozen=True)
class WorkWeek:
    """Work hours per weekday (Monday=0 ... Sunday=6)."""
    days: Tuple[WorkHours, ...] = field(default_factory=lambda: tuple(WorkHours() for _ in range(7)))

    def __post_init__(self):
        if len(self.days) != 7:
            raise ValueError(f"A work week needs 7 entries, got {len(self.days)}")

    @classmethod
    def uniform(cls, start: int, end: int) -> "WorkWeek":
        hours = WorkHours(start=start, end=end)
        return cls(days=tuple(hours for _ in range(7)))

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[int]]) -> "WorkWeek":
        return cls(days=tuple(WorkHours(start=s, end=e) for s, e in pairs))

    def for_day(self, day: DateTime) -> WorkHours:
        return self.days[day.weekday()]

    def replace_day(self, weekday: int, hours: WorkHours) -> "WorkWeek":
        days = list(self.days)
        days[weekday] = hours
        return WorkWeek(days=tuple(days))


@dataclass(frozen=True)
class Period:
    """
    A fetch window: either one calendar day or one Monday-Sunday week.
    """
    start: DateTime
    end: DateTime
    view: ViewMode
    anchor: DateTime

    @property
    def timezone(self) -> str:
        return self.start.timezone_name

    def start_iso(self) -> str:
        return self.start.in_timezone("UTC").to_iso8601_string()

    def end_iso(self) -> str:
        return self.end.in_timezone("UTC").to_iso8601_string()


def parse_instant(value: str, timezone: str) -> DateTime:
    """
    Parse an ISO 8601 timestamp, interpreting naive values in ``timezone``.
    """
    parsed = pendulum.parse(value, tz=timezone)
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Could not parse datetime: {value}")
    return parsed.in_timezone(timezone)
