"""HTML views: the bookmark page and the login page."""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response

from api.dependencies import (
    PlatformFactory,
    get_callback_url,
    get_cookie_storage,
    get_platform_factory,
    get_settings,
)
from api.templating import templates
from core.config import Settings
from core.cookie_storage import CookieStorage
from core.platform import PlatformError
from views.redirect_guard import LOGIN_PATH, RedirectGuard
from views.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])


async def _load_session(
    storage: CookieStorage,
    platform_factory: PlatformFactory,
    settings: Settings,
    callback_url: str,
) -> SessionStore | None:
    """Resolve the visitor's session; None when the platform cannot be reached."""
    try:
        platform = await platform_factory(storage)
    except PlatformError as e:
        logger.error("Error getting session: %s", e.message)
        return None
    session_store = SessionStore(
        platform, callback_url=callback_url, provider=settings.oauth_provider,
    )
    await session_store.initialize()
    return session_store


@router.get("/", name="home")
async def home(
    request: Request,
    storage: CookieStorage = Depends(get_cookie_storage),
    platform_factory: PlatformFactory = Depends(get_platform_factory),
    settings: Settings = Depends(get_settings),
    callback_url: str = Depends(get_callback_url),
) -> Response:
    """Bookmark page; anonymous visitors are redirected to the login view."""
    session_store = await _load_session(storage, platform_factory, settings, callback_url)
    if session_store is None:
        return RedirectResponse(url=LOGIN_PATH, status_code=307)
    try:
        redirects: list[str] = []
        if RedirectGuard(session_store, redirects.append).check():
            return storage.apply(RedirectResponse(url=redirects[0], status_code=307))
        response = templates.TemplateResponse(
            request, "index.html", {"user": session_store.user},
        )
        return storage.apply(response)
    finally:
        session_store.dispose()


@router.get("/login", name="login")
async def login(
    request: Request,
    storage: CookieStorage = Depends(get_cookie_storage),
    platform_factory: PlatformFactory = Depends(get_platform_factory),
    settings: Settings = Depends(get_settings),
    callback_url: str = Depends(get_callback_url),
) -> Response:
    """Login page with the single supported provider; signed-in visitors go home."""
    session_store = await _load_session(storage, platform_factory, settings, callback_url)
    if session_store is not None:
        try:
            if session_store.user is not None:
                return storage.apply(RedirectResponse(url="/", status_code=307))
        finally:
            session_store.dispose()
    response = templates.TemplateResponse(
        request, "login.html", {"provider": settings.oauth_provider},
    )
    return storage.apply(response)
