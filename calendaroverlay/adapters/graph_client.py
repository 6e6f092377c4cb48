"""
Microsoft Graph API adapter for fetching calendar data.
"""

from __future__ import annotations

import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from pendulum import DateTime

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

PRIVATE_SENSITIVITIES = {"private", "confidential"}

# Graph emits 7 fractional digits; keep microsecond precision
_FRACTION = re.compile(r"(\.\d{6})\d+")


def is_busy_status(show_as: Optional[str]) -> bool:
    """Anything that is not explicitly "free" counts as busy."""
    return (show_as or "").lower() != "free"


class GraphClient(CalendarAdapter):
    """
    Adapter for the Microsoft Graph calendar view.

    Uses the /me/calendarView endpoint for both busy ranges and details.
    """

    source = Source.MICROSOFT

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"
    BUSY_FIELDS = "start,end,showAs,sensitivity"
    DETAIL_FIELDS = "start,end,showAs,sensitivity,location,subject"

    async def fetch_busy(self, period: Period) -> List[BusyBlock]:
        """
        Get busy ranges for the period.

        Returns:
            Busy blocks for every entry whose ``showAs`` is not ``free``
        """
        token = await self._token()
        if token is None:
            return []

        blocks: List[BusyBlock] = []
        async for entry in self._calendar_view(token, period, self.BUSY_FIELDS):
            if not is_busy_status(entry.get("showAs")):
                continue

            parsed = self._parse_range(entry)
            if parsed is not None:
                blocks.append(BusyBlock(start=parsed[0], end=parsed[1], source=self.source))

        return blocks

    async def fetch_details(self, period: Period) -> List[EventDetail]:
        """
        Get limited event details for the period.

        Entries with ``private`` or ``confidential`` sensitivity lose their
        subject and location here, before leaving the adapter.
        """
        token = await self._token()
        if token is None:
            return []

        details: List[EventDetail] = []
        async for entry in self._calendar_view(token, period, self.DETAIL_FIELDS):
            parsed = self._parse_range(entry)
            if parsed is None:
                continue

            is_private = (entry.get("sensitivity") or "").lower() in PRIVATE_SENSITIVITIES
            if is_private:
                details.append(
                    EventDetail(source=self.source, start=parsed[0], end=parsed[1], is_private=True)
                )
                continue

            location = (entry.get("location") or {}).get("displayName") or None
            details.append(
                EventDetail(
                    source=self.source,
                    start=parsed[0],
                    end=parsed[1],
                    title=entry.get("subject") or UNTITLED_PLACEHOLDER,
                    location=location,
                )
            )

        return details

    async def _calendar_view(
        self,
        token: str,
        period: Period,
        fields: str,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield calendar view entries, following ``@odata.nextLink``.

        Response format:
        {
            "value": [
                {
                    "showAs": "busy",
                    "sensitivity": "normal",
                    "start": {"dateTime": "...", "timeZone": "..."},
                    "end": {"dateTime": "...", "timeZone": "..."}
                }
            ],
            "@odata.nextLink": "https://graph.microsoft.com/v1.0/me/calendarView?$skip=10"
        }
        """
        url: Optional[str] = f"{self.GRAPH_API_ENDPOINT}/me/calendarView"
        params: Optional[Dict[str, str]] = {
            "startDateTime": period.start_iso(),
            "endDateTime": period.end_iso(),
            "$select": fields,
            "$orderby": "start/dateTime",
        }
        headers = {"Prefer": f'outlook.timezone="{self.timezone}"'}

        while url:
            data = await self._request_json("GET", url, token=token, params=params, headers=headers)
            for entry in data.get("value", []):
                yield entry

            # The next link already carries the query string
            url = data.get("@odata.nextLink")
            params = None

    def _parse_range(self, entry: Dict[str, Any]) -> Optional[Tuple[DateTime, DateTime]]:
        """Return (start, end) for an entry, or None if unusable or empty."""
        try:
            start = self._parse_datetime(entry["start"])
            end = self._parse_datetime(entry["end"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Could not parse calendar entry: %s", e)
            return None

        if end <= start:
            return None
        return start, end

    def _parse_datetime(self, value: Any) -> DateTime:
        """
        Parse a Graph dateTimeTimeZone object (or a bare string).

        With the ``Prefer: outlook.timezone`` header the values come back
        naive in the requested timezone.
        """
        raw = value.get("dateTime") if isinstance(value, dict) else value
        if not isinstance(raw, str):
            raise ValueError(f"Could not parse datetime: {raw!r}")

        return parse_instant(_FRACTION.sub(r"\1", raw), self.timezone)
