"""
Shared stubs for adapter and service tests.
"""

from typing import Any, Dict, List, Optional

import pendulum
import pytest

TZ = "Europe/Berlin"


def at(value: str):
    """Parse 'YYYY-MM-DD HH:mm' in the test timezone."""
    return pendulum.parse(value, tz=TZ)


class StubResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.headers = headers or {}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class StubSession:
    """Plays back canned responses and records every request."""

    def __init__(self, responses: List[StubResponse]):
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": dict(headers or {}),
                "params": dict(params) if params else None,
                "json": json,
            }
        )
        if not self._responses:
            raise AssertionError(f"Unexpected request to {url}")
        return self._responses.pop(0)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def token_supplier(token: Optional[str] = "test-token"):
    async def supply():
        return token

    return supply


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
