"""
Shared request loop for provider adapters: bearer auth, retry on throttling,
terminal errors on every other non-2xx status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests

from ..domain.exceptions import CalendarAPIError
from ..domain.models import BusyBlock, EventDetail, Period, Source
from .backoff import RetryPolicy

logger = logging.getLogger(__name__)

TokenSupplier = Callable[[], Awaitable[Optional[str]]]
Sleeper = Callable[[float], Awaitable[Any]]


class CalendarAdapter:
    """
    Base class for the per-provider adapters.

    Requests run on a worker thread through a ``requests.Session`` so that
    both providers can be fetched concurrently from the event loop.
    """

    source: Source = Source.MICROSOFT

    def __init__(
        self,
        token_supplier: TokenSupplier,
        timezone: str,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleeper] = None,
        timeout: float = 30,
    ):
        self._token_supplier = token_supplier
        self.timezone = timezone
        self._session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self.timeout = timeout

    @property
    def provider(self) -> str:
        return self.source.value

    async def fetch_busy(self, period: Period) -> List[BusyBlock]:
        raise NotImplementedError

    async def fetch_details(self, period: Period) -> List[EventDetail]:
        raise NotImplementedError

    async def _token(self) -> Optional[str]:
        """Return a bearer token, or None when the provider is not connected."""
        token = await self._token_supplier()
        if not token:
            logger.debug("%s not connected, skipping fetch", self.provider)
            return None
        return token

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        token: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Send one request, retrying on 429/503 as the retry policy allows.

        Raises:
            CalendarAPIError: On transport errors, any other non-2xx status,
                an exhausted retry budget or a non-JSON body.
        """
        request_headers = {"Authorization": f"Bearer {token}"}
        if headers:
            request_headers.update(headers)

        attempt = 0
        while True:
            try:
                response = await asyncio.to_thread(
                    self._session.request,
                    method,
                    url,
                    headers=request_headers,
                    params=params,
                    json=json,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as exc:
                raise CalendarAPIError(self.provider, None, str(exc)) from exc

            status = response.status_code

            if self.retry_policy.is_retryable(status):
                if not self.retry_policy.allows(attempt):
                    raise CalendarAPIError(self.provider, status, "retry budget exhausted")

                delay = self.retry_policy.delay_for(response.headers)
                logger.warning(
                    "%s throttled with HTTP %s, retrying in %.2fs (attempt %d)",
                    self.provider,
                    status,
                    delay,
                    attempt + 1,
                )
                await self._sleep(delay)
                attempt += 1
                continue

            if not 200 <= status < 300:
                raise CalendarAPIError(self.provider, status)

            try:
                return response.json()
            except ValueError as exc:
                raise CalendarAPIError(self.provider, status, "response body is not JSON") from exc
