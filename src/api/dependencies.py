"""FastAPI dependencies for injection."""
from collections.abc import Awaitable, Callable

from fastapi import Depends
from fastapi.requests import HTTPConnection

from core.config import Settings, get_settings
from core.cookie_storage import CookieStorage
from core.platform import Platform
from core.supabase_platform import create_platform

PlatformFactory = Callable[[CookieStorage], Awaitable[Platform]]


def get_cookie_storage(
    connection: HTTPConnection,
    settings: Settings = Depends(get_settings),
) -> CookieStorage:
    """Auth storage seeded from the cookies of the current request or socket."""
    return CookieStorage(connection.cookies, secure=settings.cookie_secure)


def get_platform_factory(settings: Settings = Depends(get_settings)) -> PlatformFactory:
    """
    Return the factory that builds a platform handle around a cookie storage.

    Routes build the handle themselves so they decide when (and whether) to
    talk to the platform at all.
    """

    async def factory(storage: CookieStorage) -> Platform:
        return await create_platform(settings, storage)

    return factory


def get_callback_url(
    connection: HTTPConnection,
    settings: Settings = Depends(get_settings),
) -> str:
    """Absolute OAuth callback URL on this origin."""
    return settings.callback_url(str(connection.base_url))


__all__ = [
    "PlatformFactory",
    "get_callback_url",
    "get_cookie_storage",
    "get_platform_factory",
    "get_settings",
]
