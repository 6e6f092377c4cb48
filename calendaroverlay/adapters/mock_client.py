"""
Mock calendar adapters for running without any provider account.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum

from ..domain.models import (
    UNTITLED_PLACEHOLDER,
    BusyBlock,
    EventDetail,
    Period,
    Source,
    parse_instant,
)
from .graph_client import is_busy_status


class MockCalendarAdapter:
    """
    Adapter that serves events from mock_calendar_data.json.

    Entries are filtered by ``source`` and by overlap with the requested
    period. Dates in the file are shifted so the first day of the data
    lines up with the current week.
    """

    def __init__(
        self,
        source: Source,
        timezone: str = "Europe/Oslo",
        events: Optional[List[Dict[str, Any]]] = None,
    ):
        self.source = source
        self.timezone = timezone
        self.calendar_events = events if events is not None else self._load_calendar_data()

    @staticmethod
    def _load_calendar_data() -> List[Dict[str, Any]]:
        """Load mock calendar data from JSON file."""
        data_file = Path(__file__).parent / "mock_calendar_data.json"

        if data_file.exists():
            with open(data_file, "r", encoding="utf-8") as f:
                return json.load(f)
        return []

    def _events_in(self, period: Period):
        for event in self.calendar_events:
            if event.get("source") != self.source.value:
                continue

            try:
                start = self._resolve(event["start"])
                end = self._resolve(event["end"])
            except (KeyError, ValueError):
                continue

            if end > start and start < period.end and end > period.start:
                yield event, start, end

    def _resolve(self, value: str):
        """
        Parse a mock timestamp; ``+Nd HH:MM`` means N days after this Monday.
        """
        if value.startswith("+"):
            offset, clock = value[1:].split(" ", 1)
            hour, minute = clock.split(":")
            monday = pendulum.now(self.timezone).start_of("week")
            return monday.add(days=int(offset.rstrip("d"))).set(hour=int(hour), minute=int(minute))
        return parse_instant(value, self.timezone)

    async def fetch_busy(self, period: Period) -> List[BusyBlock]:
        return [
            BusyBlock(start=start, end=end, source=self.source)
            for event, start, end in self._events_in(period)
            if is_busy_status(event.get("showAs"))
        ]

    async def fetch_details(self, period: Period) -> List[EventDetail]:
        return [
            EventDetail(
                source=self.source,
                start=start,
                end=end,
                title=event.get("subject") or UNTITLED_PLACEHOLDER,
                location=event.get("location"),
                is_private=bool(event.get("private")),
            )
            for event, start, end in self._events_in(period)
        ]


class MockIdentityProvider:
    """
    Identity provider that bypasses actual sign-in.

    Useful for trying the application without any OAuth client setup.
    """

    def __init__(self, name: str = "mock"):
        self.name = name
        self.account: Optional[Dict[str, str]] = None

    def initialize(self) -> None:
        pass

    def get_active_account(self) -> Optional[Dict[str, str]]:
        return self.account

    def acquire_token_silent(self, account: Any) -> str:
        return f"mock-{self.name}-token"

    def acquire_token_interactive(self) -> str:
        self.account = {"username": f"mock.user@{self.name}.example.com"}
        return f"mock-{self.name}-token"

    def logout(self) -> None:
        self.account = None
