"""
Identity providers: MSAL (device code flow) and Google OAuth (installed app flow).

Both expose the same small capability surface so the session manager never
touches an SDK object directly.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol

import msal
import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from rich.console import Console

from ..domain.exceptions import AuthenticationError
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

console = Console()


class IdentityProvider(Protocol):
    """Capability surface of an identity provider SDK."""

    def initialize(self) -> None:
        """Prepare the SDK; safe to call more than once."""

    def get_active_account(self) -> Optional[Any]:
        """Return the signed-in account, or None."""

    def acquire_token_silent(self, account: Any) -> str:
        """Return an access token without user interaction."""

    def acquire_token_interactive(self) -> str:
        """Sign the user in and return an access token."""

    def logout(self) -> None:
        """Revoke or forget every credential held for this provider."""


class MsalIdentityProvider:
    """
    Handles authentication with Microsoft Graph API using Device Code Flow.

    This flow is ideal for CLI applications:
    1. User requests access
    2. App displays a code and URL
    3. User visits URL in browser and enters code
    4. User grants permissions
    5. App receives access token

    The MSAL token cache is serialized into a session-lifetime store, never
    into a long-lived file.
    """

    # Read-only calendar access
    SCOPES = ["Calendars.Read"]
    CACHE_KEY = "msal.token_cache"

    def __init__(
        self,
        client_id: str,
        tenant: str = "common",
        store: Optional[KeyValueStore] = None,
        application: Optional[Any] = None,
    ):
        """
        Initialize the provider.

        Args:
            client_id: Azure AD application (client) ID
            tenant: Azure AD tenant ID or ``common``
            store: Where the serialized token cache lives
            application: Pre-built MSAL client (tests)
        """
        self.client_id = client_id
        self.authority = f"https://login.microsoftonline.com/{tenant}"
        self.store = store if store is not None else MemoryStore()
        self.cache: Optional[msal.SerializableTokenCache] = None
        self.app = application

    def initialize(self) -> None:
        if self.app is not None:
            return

        self.cache = self._load_cache()
        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache,
        )

    def _load_cache(self) -> msal.SerializableTokenCache:
        """Load the token cache from the session store if present."""
        cache = msal.SerializableTokenCache()
        serialized = self.store.get(self.CACHE_KEY)

        if serialized:
            try:
                cache.deserialize(serialized)
            except ValueError as exc:
                logger.warning("Could not deserialize token cache: %s", exc)

        return cache

    def _save_cache(self) -> None:
        if self.cache is not None and self.cache.has_state_changed:
            self.store.set(self.CACHE_KEY, self.cache.serialize())

    def get_active_account(self) -> Optional[Dict[str, Any]]:
        self.initialize()
        accounts = self.app.get_accounts()
        return accounts[0] if accounts else None

    def acquire_token_silent(self, account: Any) -> str:
        self.initialize()
        result = self.app.acquire_token_silent(scopes=self.SCOPES, account=account)

        if result and "access_token" in result:
            self._save_cache()
            return result["access_token"]

        error = (result or {}).get("error_description", "no cached token")
        raise AuthenticationError("microsoft", f"silent acquisition failed: {error}")

    def acquire_token_interactive(self) -> str:
        """
        Perform device code flow authentication.

        Raises:
            AuthenticationError: If authentication fails
        """
        self.initialize()

        console.print("\n[bold cyan]🔐 Microsoft Authentication Required[/bold cyan]")

        try:
            flow = self.app.initiate_device_flow(scopes=self.SCOPES)
        except Exception as exc:  # pragma: no cover - MSAL internal failure
            raise AuthenticationError("microsoft", f"failed to initiate device flow: {exc}") from exc

        if "user_code" not in flow:
            raise AuthenticationError(
                "microsoft",
                f"failed to initiate device flow: {flow.get('error_description', 'Unknown error')}",
            )

        console.print(f"1. Open a browser and go to: [bold cyan]{flow['verification_uri']}[/bold cyan]")
        console.print(f"2. Enter this code: [bold yellow]{flow['user_code']}[/bold yellow]")
        console.print("3. Sign in and grant read access to your calendar\n")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            raise AuthenticationError("microsoft", result.get("error_description", "Unknown error"))

        self._save_cache()
        return result["access_token"]

    def logout(self) -> None:
        """Forget every account and drop the serialized cache."""
        if self.app is not None:
            for account in self.app.get_accounts():
                self.app.remove_account(account)
        self.store.delete(self.CACHE_KEY)
        self.app = None
        self.cache = None


class GoogleIdentityProvider:
    """
    Google OAuth for installed applications.

    Credentials are only ever held in this object's memory; nothing is
    written to disk or to any store.
    """

    SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        flow_factory: Optional[Callable[..., Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._flow_factory = flow_factory or InstalledAppFlow.from_client_config
        self._session = session or requests.Session()
        self._credentials: Optional[Credentials] = None

    def initialize(self) -> None:
        """Nothing to prepare: credentials only exist after sign-in."""

    def get_active_account(self) -> Optional[Credentials]:
        return self._credentials

    def acquire_token_silent(self, account: Credentials) -> str:
        if account.valid:
            return account.token

        if not (account.expired and account.refresh_token):
            raise AuthenticationError("google", "access token expired")

        try:
            account.refresh(Request())
        except RefreshError as exc:
            raise AuthenticationError("google", f"token refresh failed: {exc}") from exc

        return account.token

    def acquire_token_interactive(self) -> str:
        client_config = {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": ["http://localhost"],
            }
        }

        console.print("\n[bold cyan]🔐 Google Authentication Required[/bold cyan]")
        console.print("[dim]A browser window opens for sign-in...[/dim]\n")

        try:
            flow = self._flow_factory(client_config, scopes=self.SCOPES)
            credentials = flow.run_local_server(port=0, prompt="consent")
        except Exception as exc:
            raise AuthenticationError("google", f"sign-in did not complete: {exc}") from exc

        if not credentials or not credentials.token:
            raise AuthenticationError("google", "no access token returned")

        self._credentials = credentials
        return credentials.token

    def logout(self) -> None:
        """Revoke the token with Google; failures are logged and ignored."""
        credentials, self._credentials = self._credentials, None
        if credentials is None or not credentials.token:
            return

        try:
            self._session.post(
                self.REVOKE_URL,
                params={"token": credentials.token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=10,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Google token revocation failed: %s", exc)
