"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .aggregator import AvailabilityAggregator, AvailabilitySnapshot, CalendarAdapterProtocol
from .session_manager import InactivityWatchdog, ProviderSession, SessionManager, SessionState

__all__ = [
    "AvailabilityAggregator",
    "AvailabilitySnapshot",
    "CalendarAdapterProtocol",
    "InactivityWatchdog",
    "ProviderSession",
    "SessionManager",
    "SessionState",
]
