"""Supabase implementation of the platform capability set."""
import logging
from typing import Any

import httpx
from supabase import (
    AsyncClient,
    AsyncClientOptions,
    AuthError,
    PostgrestAPIError,
    acreate_client,
)
from supabase._async.client import SupabaseException

from core.config import Settings
from core.cookie_storage import CookieStorage
from core.platform import AuthStateListener, AuthSubscription, ChangeListener, PlatformError
from schemas.auth import AuthSession, AuthUser
from schemas.realtime import ChangeEvent

logger = logging.getLogger(__name__)

REALTIME_SCHEMA = "public"


def _to_session(session: Any) -> AuthSession:  # noqa: ANN401
    """Convert a supabase auth Session into an AuthSession."""
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user=AuthUser(id=str(session.user.id), email=session.user.email),
        expires_at=session.expires_at,
    )


def _error_message(e: Exception) -> str:
    message = getattr(e, "message", None)
    return str(message) if message else str(e)


class SupabaseChannel:
    """Open realtime channel; ``unsubscribe`` removes it from the client."""

    def __init__(self, client: AsyncClient, channel: Any) -> None:  # noqa: ANN401
        self._client = client
        self._channel = channel
        self._closed = False

    async def unsubscribe(self) -> None:
        """Leave the channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._client.remove_channel(self._channel)


class SupabasePlatform:
    """
    Platform backed by a ``supabase.AsyncClient``.

    Translates every client-side failure (auth errors, PostgREST errors and
    transport errors) into ``PlatformError`` so callers handle one type.
    """

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def get_session(self) -> AuthSession | None:
        """
        Return the current session, re-validated with the auth server.

        A session restored from storage is passed back through ``set_session``
        so the token is verified and the table and realtime clients switch from
        the anonymous key to the user's token.
        """
        try:
            stored = await self._client.auth.get_session()
            if stored is None:
                return None
            response = await self._client.auth.set_session(
                stored.access_token, stored.refresh_token,
            )
        except (AuthError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e
        if response.session is None:
            return None
        return _to_session(response.session)

    def on_auth_state_change(self, listener: AuthStateListener) -> AuthSubscription:
        """Forward auth transitions to ``listener`` with converted sessions."""

        def callback(event: str, session: Any) -> None:  # noqa: ANN401
            listener(str(event), _to_session(session) if session else None)

        return self._client.auth.on_auth_state_change(callback)

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        """Start the OAuth (PKCE) flow; the verifier lands in client storage."""
        try:
            response = await self._client.auth.sign_in_with_oauth(
                {"provider": provider, "options": {"redirect_to": redirect_to}},
            )
        except (AuthError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e
        return response.url

    async def sign_out(self) -> None:
        """Terminate the session and clear it from storage."""
        try:
            await self._client.auth.sign_out()
        except (AuthError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        """Exchange an authorization code using the stored PKCE verifier."""
        try:
            response = await self._client.auth.exchange_code_for_session({"auth_code": code})
        except (AuthError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e
        if response.session is None:
            raise PlatformError("Code exchange returned no session")
        return _to_session(response.session)

    async def select(
        self,
        table: str,
        *,
        match: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Select all columns of matching rows."""
        query = self._client.table(table).select("*")
        for column, value in match.items():
            query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        try:
            response = await query.execute()
        except (PostgrestAPIError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e
        return list(response.data)

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return the representation the store kept."""
        try:
            response = await self._client.table(table).insert(row).execute()
        except (PostgrestAPIError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e
        if not response.data:
            raise PlatformError("Insert returned no rows")
        return response.data[0]

    async def delete(self, table: str, *, match: dict[str, Any]) -> None:
        """Delete matching rows."""
        query = self._client.table(table).delete()
        for column, value in match.items():
            query = query.eq(column, value)
        try:
            await query.execute()
        except (PostgrestAPIError, httpx.HTTPError) as e:
            raise PlatformError(_error_message(e)) from e

    async def subscribe(
        self,
        channel: str,
        *,
        table: str,
        event: str,
        listener: ChangeListener,
    ) -> SupabaseChannel:
        """Open a postgres_changes channel; unknown payloads are dropped."""

        def callback(payload: dict[str, Any]) -> None:
            change = ChangeEvent.from_payload(payload)
            if change is None:
                logger.debug("Ignoring realtime payload on %s: %s", channel, payload)
                return
            listener(change)

        realtime_channel = self._client.channel(channel)
        realtime_channel.on_postgres_changes(
            event, callback=callback, table=table, schema=REALTIME_SCHEMA,
        )
        try:
            await realtime_channel.subscribe()
        except Exception as e:
            # The realtime client re-raises socket errors and a bare Exception
            # once its connect retries run out
            raise PlatformError(_error_message(e)) from e
        return SupabaseChannel(self._client, realtime_channel)

    async def close(self) -> None:
        """Remove every channel this client opened."""
        await self._client.remove_all_channels()


async def create_platform(
    settings: Settings,
    storage: CookieStorage | None = None,
) -> SupabasePlatform:
    """
    Build one configured platform handle.

    The auth client uses the PKCE flow with ``storage`` holding the verifier
    and the session, and does not refresh tokens in the background: every
    handle lives for a single request or a single socket connection, and a
    socket asks its page to reload before the access token expires. The
    reload refreshes the session on an HTTP request, where the rotated
    tokens can be written back to the cookies.

    Raises:
        PlatformError: If the client cannot be built, e.g. the URL or key is missing.
    """
    options = AsyncClientOptions(
        flow_type="pkce",
        auto_refresh_token=False,
        persist_session=True,
    )
    if storage is not None:
        options.storage = storage
    try:
        client = await acreate_client(
            settings.supabase_url,
            settings.supabase_anon_key,
            options=options,
        )
    except (SupabaseException, AuthError, httpx.HTTPError) as e:
        raise PlatformError(_error_message(e)) from e
    return SupabasePlatform(client)
