"""
Google Calendar API adapter (free/busy and events list).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import (
    UNTITLED_PLACEHOLDER,
    BusyBlock,
    EventDetail,
    Period,
    Source,
    parse_instant,
)
from .base import CalendarAdapter

logger = logging.getLogger(__name__)

PRIVATE_VISIBILITIES = {"private", "confidential"}


class GoogleCalendarClient(CalendarAdapter):
    """
    Adapter for the Google Calendar v3 API on the primary calendar.
    """

    source = Source.GOOGLE

    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"
    CALENDAR_ID = "primary"
    EVENT_FIELDS = "items(start,end,visibility,transparency,location,summary),nextPageToken"

    async def fetch_busy(self, period: Period) -> List[BusyBlock]:
        """
        Query the freeBusy endpoint, which reports busy ranges directly.

        Response format:
        {
            "calendars": {
                "primary": {"busy": [{"start": "...", "end": "..."}]}
            }
        }
        """
        token = await self._token()
        if token is None:
            return []

        payload = {
            "timeMin": period.start_iso(),
            "timeMax": period.end_iso(),
            "timeZone": self.timezone,
            "items": [{"id": self.CALENDAR_ID}],
        }
        data = await self._request_json(
            "POST",
            f"{self.API_ENDPOINT}/freeBusy",
            token=token,
            json=payload,
        )

        calendar = (data.get("calendars") or {}).get(self.CALENDAR_ID) or {}
        if calendar.get("errors"):
            reasons = ", ".join(e.get("reason", "unknown") for e in calendar["errors"])
            raise CalendarAPIError(self.provider, None, f"free/busy unavailable ({reasons})")

        blocks: List[BusyBlock] = []
        for item in calendar.get("busy", []):
            try:
                start = parse_instant(item["start"], self.timezone)
                end = parse_instant(item["end"], self.timezone)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Could not parse free/busy range: %s", e)
                continue

            if end > start:
                blocks.append(BusyBlock(start=start, end=end, source=self.source))

        return blocks

    async def fetch_details(self, period: Period) -> List[EventDetail]:
        """
        List single events of the period, following ``nextPageToken``.

        Events with ``private`` or ``confidential`` visibility are redacted
        before they leave the adapter.
        """
        token = await self._token()
        if token is None:
            return []

        url = f"{self.API_ENDPOINT}/calendars/{self.CALENDAR_ID}/events"
        params = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeMin": period.start_iso(),
            "timeMax": period.end_iso(),
            "timeZone": self.timezone,
            "fields": self.EVENT_FIELDS,
        }

        details: List[EventDetail] = []
        while True:
            data = await self._request_json("GET", url, token=token, params=params)

            for item in data.get("items", []):
                detail = self._to_detail(item)
                if detail is not None:
                    details.append(detail)

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        return details

    def _to_detail(self, item: Dict[str, Any]) -> Optional[EventDetail]:
        parsed = self._parse_range(item)
        if parsed is None:
            return None

        if (item.get("visibility") or "").lower() in PRIVATE_VISIBILITIES:
            return EventDetail(source=self.source, start=parsed[0], end=parsed[1], is_private=True)

        return EventDetail(
            source=self.source,
            start=parsed[0],
            end=parsed[1],
            title=item.get("summary") or UNTITLED_PLACEHOLDER,
            location=item.get("location") or None,
        )

    def _parse_range(self, item: Dict[str, Any]) -> Optional[Tuple[DateTime, DateTime]]:
        """
        Return (start, end) for an event, or None if unusable or empty.

        All-day events only carry dates; their end date is exclusive, so
        they run until 23:59:59 of the day before it.
        """
        try:
            start_field = item["start"]
            end_field = item["end"]

            if "dateTime" in start_field:
                start = parse_instant(start_field["dateTime"], self.timezone)
            else:
                start = parse_instant(start_field["date"], self.timezone).start_of("day")

            if "dateTime" in end_field:
                end = parse_instant(end_field["dateTime"], self.timezone)
            else:
                end = parse_instant(end_field["date"], self.timezone).start_of("day").subtract(seconds=1)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Could not parse calendar event: %s", e)
            return None

        if end <= start:
            return None
        return start, end
