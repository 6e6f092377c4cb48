"""
Adapters layer - External integrations (Microsoft Graph, Google Calendar, storage).
"""

from .backoff import RetryPolicy
from .base import CalendarAdapter
from .google_client import GoogleCalendarClient
from .graph_client import GraphClient
from .identity import GoogleIdentityProvider, IdentityProvider, MsalIdentityProvider
from .mock_client import MockCalendarAdapter, MockIdentityProvider
from .storage import MemoryStore, PersistentStore, SessionStore

__all__ = [
    "CalendarAdapter",
    "GoogleCalendarClient",
    "GoogleIdentityProvider",
    "GraphClient",
    "IdentityProvider",
    "MemoryStore",
    "MockCalendarAdapter",
    "MockIdentityProvider",
    "MsalIdentityProvider",
    "PersistentStore",
    "RetryPolicy",
    "SessionStore",
]
