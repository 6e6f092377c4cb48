"""
Tests for the mock adapters used by --mock.
"""

import asyncio

import pendulum

from calendaroverlay.adapters.mock_client import MockCalendarAdapter, MockIdentityProvider
from calendaroverlay.domain.models import PRIVATE_PLACEHOLDER, Source
from calendaroverlay.domain.periods import week_bounds

TZ = "Europe/Oslo"

EVENTS = [
    {"source": "microsoft", "start": "2024-11-25T09:00:00", "end": "2024-11-25T10:00:00", "showAs": "busy", "subject": "Standup"},
    {"source": "microsoft", "start": "2024-11-25T11:00:00", "end": "2024-11-25T12:00:00", "showAs": "free", "subject": "Optional"},
    {"source": "microsoft", "start": "2024-11-26T09:00:00", "end": "2024-11-26T10:00:00", "showAs": "busy", "subject": "Doctor", "location": "Clinic", "private": True},
    {"source": "google", "start": "2024-11-25T13:00:00", "end": "2024-11-25T14:00:00", "showAs": "busy", "subject": "Gym"},
    {"source": "microsoft", "start": "2024-12-09T09:00:00", "end": "2024-12-09T10:00:00", "showAs": "busy", "subject": "Later"},
]


def test_busy_filters_source_status_and_period():
    """Only this source's non-free events inside the period are busy."""
    adapter = MockCalendarAdapter(Source.MICROSOFT, TZ, events=EVENTS)

    blocks = asyncio.run(adapter.fetch_busy(week_bounds("2024-11-25", TZ)))

    assert [b.start.to_datetime_string() for b in blocks] == [
        "2024-11-25 09:00:00",
        "2024-11-26 09:00:00",
    ]


def test_details_are_redacted():
    """Private mock events come back as placeholders."""
    adapter = MockCalendarAdapter(Source.MICROSOFT, TZ, events=EVENTS)

    details = asyncio.run(adapter.fetch_details(week_bounds("2024-11-25", TZ)))

    private = [d for d in details if d.is_private]
    assert len(details) == 3
    assert private[0].title == PRIVATE_PLACEHOLDER
    assert private[0].location is None


def test_relative_dates_land_in_current_week():
    """The bundled sample data is anchored to the current week."""
    adapter = MockCalendarAdapter(Source.GOOGLE, TZ)
    today = pendulum.now(TZ)

    blocks = asyncio.run(adapter.fetch_busy(week_bounds(today.date(), TZ)))

    assert blocks
    assert all(b.source == Source.GOOGLE for b in blocks)


def test_mock_identity_sign_in():
    """Interactive sign-in creates the account that silent acquisition uses."""
    identity = MockIdentityProvider("google")

    assert identity.get_active_account() is None
    assert identity.acquire_token_interactive() == "mock-google-token"
    assert identity.get_active_account() is not None

    identity.logout()
    assert identity.get_active_account() is None
