"""
Tests for the MSAL and Google identity providers with fake SDK objects.
"""

import pytest
import requests

from calendaroverlay.adapters.identity import GoogleIdentityProvider, MsalIdentityProvider
from calendaroverlay.adapters.storage import MemoryStore
from calendaroverlay.domain.exceptions import AuthenticationError


class FakeMsalApp:
    def __init__(self, accounts=None, silent_result=None, device_result=None, flow=None):
        self.accounts = list(accounts or [])
        self.silent_result = silent_result
        self.device_result = device_result or {}
        self.flow = flow or {"user_code": "ABCD", "verification_uri": "https://microsoft.com/devicelogin"}
        self.removed = []

    def get_accounts(self):
        return list(self.accounts)

    def acquire_token_silent(self, scopes, account):
        return self.silent_result

    def initiate_device_flow(self, scopes):
        return self.flow

    def acquire_token_by_device_flow(self, flow):
        return self.device_result

    def remove_account(self, account):
        self.removed.append(account)
        self.accounts.remove(account)


class FakeCredentials:
    def __init__(self, token="google-token", valid=True, expired=False, refresh_token="refresh", refresh_error=None):
        self.token = token
        self.valid = valid
        self.expired = expired
        self.refresh_token = refresh_token
        self._refresh_error = refresh_error

    def refresh(self, request):
        if self._refresh_error is not None:
            raise self._refresh_error
        self.token = "refreshed-token"
        self.valid = True
        self.expired = False


class FakeFlow:
    def __init__(self, credentials):
        self.credentials = credentials
        self.kwargs = None

    def run_local_server(self, **kwargs):
        self.kwargs = kwargs
        return self.credentials


class RecordingPostSession:
    def __init__(self, error=None):
        self.posts = []
        self._error = error

    def post(self, url, params=None, headers=None, timeout=None):
        self.posts.append({"url": url, "params": params})
        if self._error is not None:
            raise self._error


class TestMsalIdentityProvider:
    """Tests for MsalIdentityProvider."""

    def test_active_account(self):
        """The first cached account is the active one."""
        app = FakeMsalApp(accounts=[{"username": "a@example.com"}])
        provider = MsalIdentityProvider("client", application=app)

        assert provider.get_active_account() == {"username": "a@example.com"}

    def test_silent_success(self):
        """A cached token is returned."""
        app = FakeMsalApp(silent_result={"access_token": "ms-token"})
        provider = MsalIdentityProvider("client", application=app)

        assert provider.acquire_token_silent({"username": "a"}) == "ms-token"

    def test_silent_failure_raises(self):
        """No cached token raises AuthenticationError."""
        provider = MsalIdentityProvider("client", application=FakeMsalApp(silent_result=None))

        with pytest.raises(AuthenticationError, match="silent acquisition failed"):
            provider.acquire_token_silent({"username": "a"})

    def test_device_flow(self):
        """Device code flow returns the access token."""
        app = FakeMsalApp(device_result={"access_token": "device-token"})
        provider = MsalIdentityProvider("client", application=app)

        assert provider.acquire_token_interactive() == "device-token"

    def test_device_flow_failure(self):
        """A failed device flow raises with the SDK's description."""
        app = FakeMsalApp(device_result={"error_description": "expired_token"})
        provider = MsalIdentityProvider("client", application=app)

        with pytest.raises(AuthenticationError, match="expired_token"):
            provider.acquire_token_interactive()

    def test_logout_forgets_accounts_and_cache(self):
        """Logout removes accounts and the stored cache."""
        account = {"username": "a"}
        app = FakeMsalApp(accounts=[account])
        store = MemoryStore()
        store.set(MsalIdentityProvider.CACHE_KEY, "{}")
        provider = MsalIdentityProvider("client", store=store, application=app)

        provider.logout()

        assert app.removed == [account]
        assert store.get(MsalIdentityProvider.CACHE_KEY) is None
        assert provider.app is None


class TestGoogleIdentityProvider:
    """Tests for GoogleIdentityProvider."""

    def test_no_account_before_sign_in(self):
        """Credentials only exist after sign-in."""
        assert GoogleIdentityProvider("client").get_active_account() is None

    def test_interactive_sign_in(self):
        """The installed app flow runs on a local port and keeps credentials in memory."""
        flow = FakeFlow(FakeCredentials())
        configs = []

        def factory(config, scopes):
            configs.append((config, scopes))
            return flow

        provider = GoogleIdentityProvider("client", "secret", flow_factory=factory)

        assert provider.acquire_token_interactive() == "google-token"
        assert provider.get_active_account() is flow.credentials
        assert flow.kwargs["port"] == 0
        assert configs[0][0]["installed"]["client_id"] == "client"
        assert configs[0][1] == GoogleIdentityProvider.SCOPES

    def test_silent_valid_token(self):
        """A valid token is returned as is."""
        provider = GoogleIdentityProvider("client")

        assert provider.acquire_token_silent(FakeCredentials()) == "google-token"

    def test_silent_refresh(self):
        """An expired token with a refresh token is refreshed."""
        provider = GoogleIdentityProvider("client")
        credentials = FakeCredentials(valid=False, expired=True)

        assert provider.acquire_token_silent(credentials) == "refreshed-token"

    def test_silent_without_refresh_token(self):
        """An expired token without a refresh token needs interactive sign-in."""
        provider = GoogleIdentityProvider("client")

        with pytest.raises(AuthenticationError):
            provider.acquire_token_silent(FakeCredentials(valid=False, expired=True, refresh_token=None))

    def test_logout_revokes_and_forgets(self):
        """Logout revokes the token and drops the credentials."""
        session = RecordingPostSession()
        provider = GoogleIdentityProvider(
            "client",
            flow_factory=lambda config, scopes: FakeFlow(FakeCredentials()),
            session=session,
        )
        provider.acquire_token_interactive()

        provider.logout()

        assert session.posts == [{"url": GoogleIdentityProvider.REVOKE_URL, "params": {"token": "google-token"}}]
        assert provider.get_active_account() is None

    def test_logout_tolerates_revocation_failure(self):
        """Revocation errors do not keep credentials alive."""
        session = RecordingPostSession(error=requests.exceptions.ConnectionError("offline"))
        provider = GoogleIdentityProvider(
            "client",
            flow_factory=lambda config, scopes: FakeFlow(FakeCredentials()),
            session=session,
        )
        provider.acquire_token_interactive()

        provider.logout()

        assert provider.get_active_account() is None
