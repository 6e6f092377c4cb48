"""
Wait-time policy for throttled provider requests (HTTP 429 / 503).
"""

from __future__ import annotations

import math
import random
from typing import Mapping, Optional

RETRYABLE_STATUSES = frozenset({429, 503})


class RetryPolicy:
    """
    Decides how long to wait before retrying a throttled request.

    A numeric ``Retry-After`` header is honoured with up to one second of
    jitter. Without it the wait is ``base`` scaled by a random factor in
    [1, 3), capped at ``cap``. The wait does not grow between attempts;
    ``max_retries`` bounds how often it is applied.
    """

    def __init__(
        self,
        base_seconds: float = 1.0,
        cap_seconds: float = 8.0,
        max_retries: Optional[int] = 10,
        rng: Optional[random.Random] = None,
    ):
        self.base_seconds = base_seconds
        self.cap_seconds = cap_seconds
        self.max_retries = max_retries
        self._rng = rng or random.Random()

    @staticmethod
    def is_retryable(status: int) -> bool:
        return status in RETRYABLE_STATUSES

    def allows(self, attempt: int) -> bool:
        """Whether retry number ``attempt`` (0-based) is still within budget."""
        return self.max_retries is None or attempt < self.max_retries

    def delay_for(self, headers: Mapping[str, str]) -> float:
        """Return the wait in seconds before the next retry."""
        retry_after = _retry_after_seconds(headers)
        if retry_after is not None:
            return retry_after + self._rng.random()

        scaled = self.base_seconds * (1 + self._rng.random() * 2)
        return min(scaled, self.cap_seconds)


def _retry_after_seconds(headers: Mapping[str, str]) -> Optional[float]:
    raw = None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            raw = value
            break

    if raw is None:
        return None

    try:
        seconds = float(str(raw).strip())
    except ValueError:
        # HTTP-date form falls through to exponential backoff
        return None

    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds
