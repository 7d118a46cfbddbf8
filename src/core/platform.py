"""
Capability set of the backend platform.

Everything the application needs from the hosted backend (auth, table
storage, realtime change feed) goes through a ``Platform``. Views and
services depend on this protocol only; ``core.supabase_platform`` provides
the production implementation.
"""
from collections.abc import Callable
from typing import Any, Protocol

from schemas.auth import AuthSession
from schemas.realtime import ChangeEvent

AuthStateListener = Callable[[str, AuthSession | None], None]
ChangeListener = Callable[[ChangeEvent], None]


class PlatformError(Exception):
    """Raised when the platform rejects or fails a request."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthSubscription(Protocol):
    """Handle returned when listening to auth state transitions."""

    def unsubscribe(self) -> None:
        """Stop receiving auth state transitions."""
        ...


class ChannelSubscription(Protocol):
    """Cancellable handle for an open realtime channel."""

    async def unsubscribe(self) -> None:
        """Leave the channel and release its resources."""
        ...


class Platform(Protocol):
    """Operations the application relies on. All failures raise PlatformError."""

    async def get_session(self) -> AuthSession | None:
        """Return the current session, or None when anonymous."""
        ...

    def on_auth_state_change(self, listener: AuthStateListener) -> AuthSubscription:
        """Call ``listener(event, session)`` on every auth state transition."""
        ...

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        """Start an OAuth handshake and return the provider URL to visit."""
        ...

    async def sign_out(self) -> None:
        """Terminate the current session."""
        ...

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        """Exchange a provider-issued authorization code for a session."""
        ...

    async def select(
        self,
        table: str,
        *,
        match: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Return rows of ``table`` whose columns equal ``match``."""
        ...

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert ``row`` and return the stored record."""
        ...

    async def delete(self, table: str, *, match: dict[str, Any]) -> None:
        """Delete rows of ``table`` whose columns equal ``match``."""
        ...

    async def subscribe(
        self,
        channel: str,
        *,
        table: str,
        event: str,
        listener: ChangeListener,
    ) -> ChannelSubscription:
        """Open ``channel`` delivering ``event`` changes on ``table`` to ``listener``."""
        ...

    async def close(self) -> None:
        """Release every open channel."""
        ...
