"""
Cached, subscribed view of the auth provider's session.

One ``SessionStore`` is created per composition root (an HTTP request or a
live socket) and handed to every consumer that needs the current user. The
provider owns the session; this store only mirrors it.
"""
import logging
from collections.abc import Callable
from enum import StrEnum

from core.platform import AuthSubscription, Platform, PlatformError
from schemas.auth import AuthSession, AuthUser

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionStore"], None]


class StoreState(StrEnum):
    """Lifecycle of a SessionStore."""

    CREATED = "created"
    SUBSCRIBED = "subscribed"
    DISPOSED = "disposed"


class SessionStore:
    """Mirrors {user, expires_at, loading} and exposes the sign-in and sign-out actions."""

    def __init__(
        self,
        platform: Platform,
        *,
        callback_url: str,
        provider: str = "google",
    ) -> None:
        self._platform = platform
        self._callback_url = callback_url
        self._provider = provider
        self._listeners: list[SessionListener] = []
        self._subscription: AuthSubscription | None = None
        self.state = StoreState.CREATED
        self.user: AuthUser | None = None
        self.expires_at: int | None = None
        self.loading = True

    async def initialize(self) -> None:
        """
        Subscribe to auth transitions, then resolve the current session.

        ``loading`` is False once the lookup resolves, whether a session was
        found or not. A failed lookup is logged and treated as anonymous.
        """
        if self.state is not StoreState.CREATED:
            raise RuntimeError(f"SessionStore cannot initialize from state {self.state}")

        self._subscription = self._platform.on_auth_state_change(self._on_auth_state_change)
        self.state = StoreState.SUBSCRIBED

        try:
            session = await self._platform.get_session()
        except PlatformError as e:
            logger.error("Error getting session: %s", e.message)
            session = None
        self._apply(session)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener`` for every transition; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self) -> str | None:
        """
        Start the OAuth handshake with the configured provider.

        Returns:
            The provider URL the browser must visit, or None if initiation
            failed. Failures are logged only.
        """
        try:
            return await self._platform.sign_in_with_oauth(self._provider, self._callback_url)
        except PlatformError as e:
            logger.error("Error signing in: %s", e.message)
            return None

    async def sign_out(self) -> None:
        """Ask the provider to end the session. Failures are logged only."""
        try:
            await self._platform.sign_out()
        except PlatformError as e:
            logger.error("Error signing out: %s", e.message)

    def dispose(self) -> None:
        """Stop following the provider and drop all listeners."""
        if self.state is StoreState.DISPOSED:
            return
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()
        self.state = StoreState.DISPOSED

    def _on_auth_state_change(self, event: str, session: AuthSession | None) -> None:
        logger.debug("Auth state change: %s", event)
        self._apply(session)

    def _apply(self, session: AuthSession | None) -> None:
        self.user = session.user if session else None
        self.expires_at = session.expires_at if session else None
        self.loading = False
        # Copy: listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            listener(self)
