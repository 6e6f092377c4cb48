"""
Tests for the Google Calendar adapter.
"""

import asyncio
import random

import pytest

from calendaroverlay.adapters.backoff import RetryPolicy
from calendaroverlay.adapters.google_client import GoogleCalendarClient
from calendaroverlay.domain.exceptions import CalendarAPIError
from calendaroverlay.domain.models import PRIVATE_PLACEHOLDER, UNTITLED_PLACEHOLDER, Source
from calendaroverlay.domain.periods import day_bounds, week_bounds

from conftest import TZ, StubResponse, StubSession, at, token_supplier

PERIOD = day_bounds("2024-11-25", TZ)


def make_client(session, sleep=None, token="test-token"):
    return GoogleCalendarClient(
        token_supplier=token_supplier(token),
        timezone=TZ,
        session=session,
        retry_policy=RetryPolicy(rng=random.Random(0)),
        sleep=sleep,
    )


def event(start, end, visibility=None, summary=None, location=None):
    item = {
        "start": {"dateTime": f"2024-11-25T{start}:00+01:00"},
        "end": {"dateTime": f"2024-11-25T{end}:00+01:00"},
    }
    if visibility:
        item["visibility"] = visibility
    if summary is not None:
        item["summary"] = summary
    if location is not None:
        item["location"] = location
    return item


class TestGoogleFetchBusy:
    """Tests for GoogleCalendarClient.fetch_busy."""

    def test_free_busy_request_and_parsing(self):
        """The freeBusy query covers the period on the primary calendar."""
        session = StubSession(
            [
                StubResponse(
                    payload={
                        "calendars": {
                            "primary": {
                                "busy": [
                                    {"start": "2024-11-25T08:00:00Z", "end": "2024-11-25T09:30:00Z"},
                                    {"start": "2024-11-25T13:00:00Z", "end": "2024-11-25T14:00:00Z"},
                                ]
                            }
                        }
                    }
                )
            ]
        )

        blocks = asyncio.run(make_client(session).fetch_busy(PERIOD))

        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://www.googleapis.com/calendar/v3/freeBusy"
        assert call["json"] == {
            "timeMin": PERIOD.start_iso(),
            "timeMax": PERIOD.end_iso(),
            "timeZone": TZ,
            "items": [{"id": "primary"}],
        }
        assert [(b.start, b.end) for b in blocks] == [
            (at("2024-11-25 09:00"), at("2024-11-25 10:30")),
            (at("2024-11-25 14:00"), at("2024-11-25 15:00")),
        ]
        assert all(b.source == Source.GOOGLE for b in blocks)

    def test_calendar_errors_raise(self):
        """Per-calendar errors in the free/busy answer are not silently empty."""
        session = StubSession(
            [StubResponse(payload={"calendars": {"primary": {"errors": [{"reason": "notFound"}]}}})]
        )

        with pytest.raises(CalendarAPIError, match="notFound"):
            asyncio.run(make_client(session).fetch_busy(PERIOD))

    def test_no_token_makes_no_request(self):
        """A disconnected provider contributes nothing."""
        session = StubSession([])

        assert asyncio.run(make_client(session, token=None).fetch_busy(PERIOD)) == []
        assert session.calls == []

    def test_throttling_is_retried(self, recording_sleep):
        """Google requests share the retry loop."""
        session = StubSession(
            [
                StubResponse(status_code=429, headers={"Retry-After": "1"}),
                StubResponse(payload={"calendars": {"primary": {"busy": []}}}),
            ]
        )

        assert asyncio.run(make_client(session, sleep=recording_sleep).fetch_busy(PERIOD)) == []
        assert len(recording_sleep.delays) == 1
        assert 1 <= recording_sleep.delays[0] < 2

    def test_terminal_error(self):
        """A 401 surfaces as CalendarAPIError for google."""
        session = StubSession([StubResponse(status_code=401)])

        with pytest.raises(CalendarAPIError) as excinfo:
            asyncio.run(make_client(session).fetch_busy(PERIOD))

        assert excinfo.value.provider == "google"
        assert excinfo.value.status == 401


class TestGoogleFetchDetails:
    """Tests for GoogleCalendarClient.fetch_details."""

    def test_pages_are_followed(self):
        """nextPageToken is passed back until the last page."""
        session = StubSession(
            [
                StubResponse(payload={"items": [event("09:00", "10:00", summary="A")], "nextPageToken": "p2"}),
                StubResponse(payload={"items": [event("11:00", "12:00", summary="B")]}),
            ]
        )

        details = asyncio.run(make_client(session).fetch_details(PERIOD))

        assert [d.title for d in details] == ["A", "B"]
        assert "pageToken" not in session.calls[0]["params"]
        assert session.calls[1]["params"]["pageToken"] == "p2"
        assert session.calls[0]["params"]["singleEvents"] == "true"
        assert session.calls[0]["params"]["orderBy"] == "startTime"

    def test_private_events_are_redacted(self):
        """Private and confidential events lose summary and location."""
        session = StubSession(
            [
                StubResponse(
                    payload={
                        "items": [
                            event("09:00", "10:00", visibility="private", summary="Dentist", location="Downtown"),
                            event("10:00", "11:00", visibility="confidential", summary="Offer", location="HQ"),
                            event("11:00", "12:00", visibility="public", summary="Lunch", location="Cafe"),
                            event("13:00", "14:00"),
                        ]
                    }
                )
            ]
        )

        details = asyncio.run(make_client(session).fetch_details(PERIOD))

        assert [(d.title, d.location) for d in details] == [
            (PRIVATE_PLACEHOLDER, None),
            (PRIVATE_PLACEHOLDER, None),
            ("Lunch", "Cafe"),
            (UNTITLED_PLACEHOLDER, None),
        ]

    def test_all_day_event_end_is_exclusive(self):
        """An all-day event runs until 23:59:59 of its last day."""
        session = StubSession(
            [
                StubResponse(
                    payload={
                        "items": [
                            {
                                "start": {"date": "2024-11-26"},
                                "end": {"date": "2024-11-27"},
                                "summary": "Conference",
                            }
                        ]
                    }
                )
            ]
        )

        details = asyncio.run(make_client(session).fetch_details(week_bounds("2024-11-25", TZ)))

        assert len(details) == 1
        assert details[0].start == at("2024-11-26 00:00")
        assert details[0].end == at("2024-11-26 23:59:59")
