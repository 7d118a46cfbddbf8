"""Pytest fixtures for testing."""
import itertools
import time
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from core.config import Settings, get_settings
from core.cookie_storage import CookieStorage
from core.platform import AuthStateListener, ChangeListener, PlatformError
from schemas.auth import AuthSession, AuthUser
from schemas.realtime import ChangeEvent, ChangeEventType

SESSION_KEY = "sb-test-auth-token"
VERIFIER_KEY = "sb-test-auth-token-code-verifier"

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


class FakeChannel:
    """Realtime channel registered on the fake backend."""

    def __init__(
        self,
        backend: "FakeBackend",
        name: str,
        table: str,
        event: str,
        listener: ChangeListener,
    ) -> None:
        self.backend = backend
        self.name = name
        self.table = table
        self.event = event
        self.listener = listener
        self.closed = False

    async def unsubscribe(self) -> None:
        self.closed = True
        if self in self.backend.channels:
            self.backend.channels.remove(self)


class FakeBackend:
    """
    In-memory stand-in for the hosted platform shared by every handle.

    Holds table rows, issued sessions and authorization codes, and the open
    realtime channels. Mutations are echoed to every open channel, the way
    the hosted change feed reports them to all sessions of a user.
    """

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.tokens: dict[str, AuthSession] = {}
        self.codes: dict[str, str] = {}
        self.channels: list[FakeChannel] = []
        self.calls: list[str] = []
        self.errors: dict[str, str] = {}
        self.echo = True
        self._clock = itertools.count()
        self._token_ids = itertools.count(1)

    def record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.errors:
            raise PlatformError(self.errors[operation])

    def call_count(self, operation: str) -> int:
        return self.calls.count(operation)

    def issue_session(
        self,
        user_id: str = USER_ID,
        email: str | None = "me@example.com",
        expires_in: int = 3600,
    ) -> str:
        """Register a session and return its token (the cookie value)."""
        token = f"token-{next(self._token_ids)}"
        self.tokens[token] = AuthSession(
            access_token=token,
            refresh_token=f"refresh-{token}",
            user=AuthUser(id=user_id, email=email),
            expires_at=int(time.time()) + expires_in,
        )
        return token

    def expire(self, token: str) -> None:
        """Make the access token behind ``token`` expired."""
        self.tokens[token] = self.tokens[token].model_copy(
            update={"expires_at": int(time.time()) - 1},
        )

    def is_expired(self, token: str) -> bool:
        session = self.tokens.get(token)
        if session is None:
            return True
        return session.expires_at is not None and session.expires_at <= time.time()

    def issue_code(self, user_id: str = USER_ID) -> str:
        """Register an authorization code the callback can exchange."""
        code = f"code-{uuid4().hex[:8]}"
        self.codes[code] = self.issue_session(user_id)
        return code

    def add_row(self, title: str, url: str, user_id: str = USER_ID) -> dict[str, Any]:
        """Store a row directly, without echoing it."""
        row = {
            "id": str(uuid4()),
            "title": title,
            "url": url,
            "user_id": user_id,
            "created_at": (
                datetime(2025, 1, 1, tzinfo=UTC) + timedelta(seconds=next(self._clock))
            ).isoformat(),
        }
        self.rows.append(row)
        return dict(row)

    def broadcast(self, event: ChangeEvent) -> None:
        for channel in list(self.channels):
            if channel.event in ("*", event.event_type.value):
                channel.listener(event)


class FakeAuthSubscription:
    def __init__(self, platform: "FakePlatform", listener: AuthStateListener) -> None:
        self._platform = platform
        self._listener = listener

    def unsubscribe(self) -> None:
        if self._listener in self._platform.auth_listeners:
            self._platform.auth_listeners.remove(self._listener)


class FakePlatform:
    """Platform handle over a FakeBackend, persisting auth state in a CookieStorage."""

    def __init__(self, backend: FakeBackend, storage: CookieStorage | None = None) -> None:
        self.backend = backend
        self.storage = storage if storage is not None else CookieStorage()
        self.auth_listeners: list[AuthStateListener] = []
        self.opened: list[FakeChannel] = []
        self.closed = False
        self.sign_in_args: tuple[str, str] | None = None
        # Access token the handle sends with table requests
        self.token: str | None = None

    def emit_auth(self, event: str, session: AuthSession | None) -> None:
        for listener in list(self.auth_listeners):
            listener(event, session)

    async def get_session(self) -> AuthSession | None:
        """Restore the stored session, refreshing it when the access token expired."""
        self.backend.record("get_session")
        token = await self.storage.get_item(SESSION_KEY)
        session = self.backend.tokens.get(token) if token else None
        if session is None:
            return None
        if self.backend.is_expired(token):
            self.backend.record("refresh_session")
            del self.backend.tokens[token]
            token = self.backend.issue_session(session.user.id, session.user.email)
            session = self.backend.tokens[token]
            await self.storage.set_item(SESSION_KEY, token)
            self.emit_auth("TOKEN_REFRESHED", session)
        self.token = token
        return session

    def authorize(self) -> None:
        if self.token is not None and self.backend.is_expired(self.token):
            raise PlatformError("JWT expired")

    def on_auth_state_change(self, listener: AuthStateListener) -> FakeAuthSubscription:
        self.auth_listeners.append(listener)
        return FakeAuthSubscription(self, listener)

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        self.backend.record("sign_in_with_oauth")
        self.sign_in_args = (provider, redirect_to)
        await self.storage.set_item(VERIFIER_KEY, "verifier")
        return f"https://auth.example.com/authorize?provider={provider}"

    async def sign_out(self) -> None:
        self.backend.record("sign_out")
        await self.storage.remove_item(SESSION_KEY)
        self.emit_auth("SIGNED_OUT", None)

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        self.backend.record("exchange_code_for_session")
        if not await self.storage.get_item(VERIFIER_KEY):
            raise PlatformError("Code verifier not found in storage")
        token = self.backend.codes.pop(code, None)
        if token is None:
            raise PlatformError("Invalid flow state")
        await self.storage.remove_item(VERIFIER_KEY)
        await self.storage.set_item(SESSION_KEY, token)
        self.token = token
        session = self.backend.tokens[token]
        self.emit_auth("SIGNED_IN", session)
        return session

    async def select(
        self,
        table: str,  # noqa: ARG002
        *,
        match: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        self.backend.record("select")
        self.authorize()
        rows = [
            dict(row) for row in self.backend.rows
            if all(str(row.get(k)) == str(v) for k, v in match.items())
        ]
        if order_by:
            rows.sort(key=lambda row: row[order_by], reverse=descending)
        return rows

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:  # noqa: ARG002
        self.backend.record("insert")
        self.authorize()
        stored = self.backend.add_row(row["title"], row["url"], row["user_id"])
        if self.backend.echo:
            self.backend.broadcast(ChangeEvent(event_type=ChangeEventType.INSERT, new=stored))
        return stored

    async def delete(self, table: str, *, match: dict[str, Any]) -> None:  # noqa: ARG002
        self.backend.record("delete")
        self.authorize()
        removed = [
            row for row in self.backend.rows
            if all(str(row.get(k)) == str(v) for k, v in match.items())
        ]
        for row in removed:
            self.backend.rows.remove(row)
            if self.backend.echo:
                self.backend.broadcast(
                    ChangeEvent(event_type=ChangeEventType.DELETE, old={"id": row["id"]}),
                )

    async def subscribe(
        self,
        channel: str,
        *,
        table: str,
        event: str,
        listener: ChangeListener,
    ) -> FakeChannel:
        self.backend.record("subscribe")
        fake_channel = FakeChannel(self.backend, channel, table, event, listener)
        self.backend.channels.append(fake_channel)
        self.opened.append(fake_channel)
        return fake_channel

    async def close(self) -> None:
        self.closed = True
        for channel in self.opened:
            await channel.unsubscribe()


@pytest.fixture
def backend() -> FakeBackend:
    """Fresh in-memory platform state."""
    return FakeBackend()


@pytest.fixture
def platform(backend: FakeBackend) -> FakePlatform:
    """Anonymous platform handle."""
    return FakePlatform(backend)


@pytest.fixture
def signed_in_platform(backend: FakeBackend) -> FakePlatform:
    """Platform handle whose storage carries a valid session for USER_ID."""
    token = backend.issue_session(USER_ID)
    return FakePlatform(backend, CookieStorage({SESSION_KEY: token}))


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the local environment and .env file."""
    return Settings(
        _env_file=None,
        SUPABASE_URL="https://project.supabase.test",
        SUPABASE_ANON_KEY="anon-key",
        SITE_URL="http://test",
    )


@pytest.fixture
def platforms() -> list[FakePlatform]:
    """Every platform handle built by the app during a test."""
    return []


@pytest.fixture
def override_app(
    backend: FakeBackend,
    platforms: list[FakePlatform],
    test_settings: Settings,
) -> Callable[[], None]:
    """Point the app at the fake backend; returns a callable that clears overrides."""
    from api.dependencies import get_platform_factory  # noqa: PLC0415
    from api.main import app  # noqa: PLC0415

    def override_get_platform_factory() -> Callable[[CookieStorage], Any]:
        async def factory(storage: CookieStorage) -> FakePlatform:
            fake = FakePlatform(backend, storage)
            platforms.append(fake)
            return fake

        return factory

    app.dependency_overrides[get_platform_factory] = override_get_platform_factory
    app.dependency_overrides[get_settings] = lambda: test_settings
    return app.dependency_overrides.clear


@pytest.fixture
async def client(override_app: Callable[[], None]) -> AsyncGenerator[AsyncClient]:
    """Create a test client wired to the fake backend."""
    from api.main import app  # noqa: PLC0415

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    override_app()


@pytest.fixture
def unconfigured_settings() -> Settings:
    """Settings with the platform URL and key missing."""
    return Settings(
        _env_file=None,
        SUPABASE_URL="",
        SUPABASE_ANON_KEY="",
        SITE_URL="http://test",
    )


@pytest.fixture
async def unconfigured_client(unconfigured_settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Client for an app that builds real platform handles without configuration."""
    from api.main import app  # noqa: PLC0415

    app.dependency_overrides[get_settings] = lambda: unconfigured_settings
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
