"""OAuth callback and sign-in/sign-out endpoints."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from api.dependencies import (
    PlatformFactory,
    get_callback_url,
    get_cookie_storage,
    get_platform_factory,
    get_settings,
)
from core.config import Settings
from core.cookie_storage import CookieStorage
from core.platform import PlatformError
from views.redirect_guard import LOGIN_PATH
from views.session_store import SessionStore

logger = logging.getLogger(__name__)

HOME_PATH = "/"

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/callback")
async def auth_callback(
    code: str | None = None,
    storage: CookieStorage = Depends(get_cookie_storage),
    platform_factory: PlatformFactory = Depends(get_platform_factory),
) -> RedirectResponse:
    """
    Exchange the provider's authorization code for a session.

    Always redirects home; a failed exchange leaves the visitor anonymous and
    the redirect guard on the home view sends them back to login.
    """
    if code:
        try:
            platform = await platform_factory(storage)
            await platform.exchange_code_for_session(code)
        except PlatformError as e:
            logger.warning("OAuth code exchange failed: %s", e.message)
    return storage.apply(RedirectResponse(url=HOME_PATH, status_code=307))


@router.post("/sign-in")
async def sign_in(
    storage: CookieStorage = Depends(get_cookie_storage),
    platform_factory: PlatformFactory = Depends(get_platform_factory),
    settings: Settings = Depends(get_settings),
    callback_url: str = Depends(get_callback_url),
) -> RedirectResponse:
    """Start the OAuth handshake; falls back to the login view if it cannot start."""
    try:
        platform = await platform_factory(storage)
    except PlatformError as e:
        logger.error("Error signing in: %s", e.message)
        return RedirectResponse(url=LOGIN_PATH, status_code=303)
    session_store = SessionStore(
        platform, callback_url=callback_url, provider=settings.oauth_provider,
    )
    provider_url = await session_store.sign_in()
    return storage.apply(RedirectResponse(url=provider_url or LOGIN_PATH, status_code=303))


@router.post("/sign-out")
async def sign_out(
    storage: CookieStorage = Depends(get_cookie_storage),
    platform_factory: PlatformFactory = Depends(get_platform_factory),
    settings: Settings = Depends(get_settings),
    callback_url: str = Depends(get_callback_url),
) -> RedirectResponse:
    """End the session and return to the login view."""
    try:
        platform = await platform_factory(storage)
    except PlatformError as e:
        logger.error("Error signing out: %s", e.message)
        return RedirectResponse(url=LOGIN_PATH, status_code=303)
    session_store = SessionStore(
        platform, callback_url=callback_url, provider=settings.oauth_provider,
    )
    await session_store.sign_out()
    return storage.apply(RedirectResponse(url=LOGIN_PATH, status_code=303))
