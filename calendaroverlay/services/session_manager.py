"""
Per-provider connection state and token lifecycle.

Each provider moves between three states:

    DISCONNECTED --connect()--> AUTHENTICATING --ok--> CONNECTED
    CONNECTED --silent token fails--> AUTHENTICATING --interactive ok--> CONNECTED
                                                     \\--fails--> DISCONNECTED
    any --panic() / inactivity timeout--> DISCONNECTED (all state reset)
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from ..adapters.identity import IdentityProvider
from ..adapters.storage import KeyValueStore
from ..domain.exceptions import AuthenticationError
from ..domain.models import Source

logger = logging.getLogger(__name__)

DEFAULT_INACTIVITY_TIMEOUT = 45 * 60

ResetHook = Callable[[], None]


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"


class ProviderSession:
    """
    Connection state of one provider, backed by its identity provider.
    """

    def __init__(self, source: Source, identity: IdentityProvider):
        self.source = source
        self.identity = identity
        self.state = SessionState.DISCONNECTED
        self.last_auth_error: Optional[AuthenticationError] = None

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    async def restore(self) -> bool:
        """Pick up an account that already exists in this session."""
        await asyncio.to_thread(self.identity.initialize)
        account = await asyncio.to_thread(self.identity.get_active_account)
        self.state = SessionState.CONNECTED if account is not None else SessionState.DISCONNECTED
        return self.is_connected

    async def connect(self) -> None:
        """User-initiated sign-in."""
        self.state = SessionState.AUTHENTICATING
        try:
            await asyncio.to_thread(self.identity.initialize)
            await asyncio.to_thread(self.identity.acquire_token_interactive)
        except AuthenticationError:
            self.state = SessionState.DISCONNECTED
            raise

        self.state = SessionState.CONNECTED
        self.last_auth_error = None
        logger.info("%s connected", self.source.value)

    async def get_token(self) -> Optional[str]:
        """
        Return a usable access token.

        Silent acquisition first, interactive sign-in as fallback. Returns
        None when no account exists at all.

        Raises:
            AuthenticationError: If both silent and interactive acquisition fail
        """
        await asyncio.to_thread(self.identity.initialize)
        account = await asyncio.to_thread(self.identity.get_active_account)
        if account is None:
            self.state = SessionState.DISCONNECTED
            return None

        try:
            token = await asyncio.to_thread(self.identity.acquire_token_silent, account)
        except AuthenticationError as exc:
            logger.info("%s silent token failed, signing in again: %s", self.source.value, exc)
            self.state = SessionState.AUTHENTICATING
            try:
                token = await asyncio.to_thread(self.identity.acquire_token_interactive)
            except AuthenticationError:
                self.state = SessionState.DISCONNECTED
                raise

        self.state = SessionState.CONNECTED
        return token

    async def disconnect(self) -> None:
        """Best-effort logout; local state is dropped whatever happens."""
        try:
            await asyncio.to_thread(self.identity.logout)
        except Exception as exc:
            logger.warning("%s logout failed: %s", self.source.value, exc)
        finally:
            self.state = SessionState.DISCONNECTED
            self.last_auth_error = None


class SessionManager:
    """
    Owns every provider session and the teardown ("panic") path.
    """

    def __init__(
        self,
        sessions: Iterable[ProviderSession],
        session_stores: Iterable[KeyValueStore] = (),
    ):
        self._sessions: Dict[Source, ProviderSession] = {s.source: s for s in sessions}
        self._session_stores: List[KeyValueStore] = list(session_stores)
        self._reset_hooks: List[ResetHook] = []

    @property
    def sources(self) -> List[Source]:
        return list(self._sessions)

    def session(self, source: Source) -> ProviderSession:
        return self._sessions[source]

    def is_connected(self, source: Source) -> bool:
        session = self._sessions.get(source)
        return session is not None and session.is_connected

    def state(self, source: Source) -> SessionState:
        return self._sessions[source].state

    async def restore(self) -> None:
        for session in self._sessions.values():
            await session.restore()

    async def connect(self, source: Source) -> None:
        await self._sessions[source].connect()

    def token_supplier(self, source: Source) -> Callable[[], Awaitable[Optional[str]]]:
        """
        Token callable for an adapter.

        Authentication failures are recorded on the session and reported as
        "not connected" so the other provider can still be fetched.
        """
        session = self._sessions[source]

        async def supply() -> Optional[str]:
            try:
                return await session.get_token()
            except AuthenticationError as exc:
                session.last_auth_error = exc
                return None

        return supply

    def auth_errors(self) -> Dict[Source, AuthenticationError]:
        return {
            source: session.last_auth_error
            for source, session in self._sessions.items()
            if session.last_auth_error is not None
        }

    def clear_auth_errors(self) -> None:
        for session in self._sessions.values():
            session.last_auth_error = None

    def on_reset(self, hook: ResetHook) -> None:
        """Register a callback run at the end of every panic."""
        self._reset_hooks.append(hook)

    async def panic(self) -> None:
        """
        Revoke every credential, wipe session storage and reset all state.
        """
        logger.info("Panic: revoking credentials and resetting state")

        for session in self._sessions.values():
            await session.disconnect()

        for store in self._session_stores:
            store.clear()

        for hook in self._reset_hooks:
            hook()


class InactivityWatchdog:
    """
    Calls ``on_expire`` once no activity has been reported for ``timeout`` seconds.

    ``touch()`` must be called from within a running event loop.
    """

    def __init__(
        self,
        on_expire: Callable[[], Awaitable[None]],
        timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
    ):
        self.timeout = timeout
        self._on_expire = on_expire
        self._task: Optional[asyncio.Task] = None
        self.expired = False

    def touch(self) -> None:
        """Record user activity and restart the countdown."""
        self.stop()
        self.expired = False
        self._task = asyncio.get_running_loop().create_task(self._countdown())

    start = touch

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _countdown(self) -> None:
        await asyncio.sleep(self.timeout)
        # Detach first so a touch() from the expiry handler starts fresh
        self._task = None
        self.expired = True
        logger.info("No activity for %s seconds, tearing down session", self.timeout)
        await self._on_expire()
