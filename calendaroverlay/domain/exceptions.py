"""
Domain-specific exception hierarchy for the calendar overlay.
"""

from __future__ import annotations

from typing import Optional


class OverlayError(Exception):
    """Base class for all application-level errors."""


class CalendarAPIError(OverlayError):
    """Raised when calendar data cannot be fetched or parsed."""

    def __init__(self, provider: str, status: Optional[int], message: str = "") -> None:
        self.provider = provider
        self.status = status
        detail = f"{provider} request failed"
        if status is not None:
            detail += f" with HTTP {status}"
        if message:
            detail += f": {message}"
        super().__init__(detail)


class AuthenticationError(OverlayError):
    """Raised when authentication or token handling fails."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider} authentication failed: {message}")


class ConfigurationError(OverlayError):
    """Raised when the application configuration is unusable."""
