"""
Live bookmark view over a WebSocket.

Each connection is one mounted view instance: it owns a platform handle, a
session store, a redirect guard and a bookmark list view, and releases all
of them when the socket closes.

Client messages::

    {"action": "add", "title": "...", "url": "..."}
    {"action": "delete", "id": "..."}
    {"action": "visibility", "state": "visible" | "hidden"}

Server messages::

    {"type": "state", "bookmarks": [...], "title": "", "url": "", "adding": false}
    {"type": "alert", "message": "..."}
    {"type": "redirect", "location": "/login"}
    {"type": "reload"}

The socket's platform handle never refreshes its access token, so the page
is told to reload shortly before the token expires; the page request
refreshes the session and rewrites the cookies.
"""
import asyncio
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

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
from views.bookmark_list import BookmarkListView
from views.redirect_guard import LOGIN_PATH, RedirectGuard
from views.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

# Seconds before access token expiry at which the page is asked to reload
RELOAD_MARGIN = 60


def state_message(view: BookmarkListView) -> dict[str, Any]:
    """Snapshot of the view as sent to the browser."""
    return {
        "type": "state",
        "bookmarks": [b.model_dump(mode="json") for b in view.bookmarks],
        "title": view.title,
        "url": view.url,
        "adding": view.adding,
    }


async def dispatch(view: BookmarkListView, message: dict[str, Any]) -> None:
    """Apply one client message to the view."""
    action = message.get("action")
    if action == "add":
        view.set_form(title=str(message.get("title", "")), url=str(message.get("url", "")))
        await view.add()
    elif action == "delete" and message.get("id") is not None:
        await view.delete(str(message["id"]))
    elif action == "visibility":
        await view.handle_visibility_change(str(message.get("state", "")))
    else:
        logger.warning("Ignoring unknown live message: %r", message)


def reload_delay(expires_at: int | None, now: float) -> float | None:
    """Seconds to wait before asking the page to reload, or None if the session never expires."""
    if expires_at is None:
        return None
    return max(0.0, expires_at - RELOAD_MARGIN - now)


async def _reload_before_expiry(
    session_store: SessionStore,
    outbox: asyncio.Queue[dict[str, Any]],
) -> None:
    delay = reload_delay(session_store.expires_at, time.time())
    if delay is None:
        return
    await asyncio.sleep(delay)
    logger.info("Access token about to expire; asking the page to reload")
    outbox.put_nowait({"type": "reload"})


async def _send_outbox(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


@router.websocket("/ws/bookmarks")
async def bookmarks_socket(
    websocket: WebSocket,
    storage: CookieStorage = Depends(get_cookie_storage),
    platform_factory: PlatformFactory = Depends(get_platform_factory),
    settings: Settings = Depends(get_settings),
    callback_url: str = Depends(get_callback_url),
) -> None:
    """Drive one bookmark list view for the lifetime of the socket."""
    await websocket.accept()
    try:
        platform = await platform_factory(storage)
    except PlatformError as e:
        logger.error("Error getting session: %s", e.message)
        await websocket.send_json({"type": "redirect", "location": LOGIN_PATH})
        await websocket.close()
        return

    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    session_store = SessionStore(
        platform, callback_url=callback_url, provider=settings.oauth_provider,
    )
    guard = RedirectGuard(
        session_store,
        lambda location: outbox.put_nowait({"type": "redirect", "location": location}),
    )
    view = BookmarkListView(
        platform,
        session_store,
        alert=lambda message: outbox.put_nowait({"type": "alert", "message": message}),
        on_change=lambda v: outbox.put_nowait(state_message(v)),
    )
    sender = asyncio.create_task(_send_outbox(websocket, outbox))
    expiry: asyncio.Task | None = None

    try:
        await session_store.initialize()
        expiry = asyncio.create_task(_reload_before_expiry(session_store, outbox))
        guard.start()
        await view.mount()
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict):
                await dispatch(view, message)
            else:
                logger.warning("Ignoring non-object live message: %r", message)
    except WebSocketDisconnect:
        logger.debug("Live bookmark socket closed")
    finally:
        guard.stop()
        session_store.dispose()
        sender.cancel()
        if expiry is not None:
            expiry.cancel()
        # The handle is closed even when teardown itself is cancelled
        try:
            await view.unmount()
            await asyncio.gather(sender, *([expiry] if expiry else []), return_exceptions=True)
        finally:
            await platform.close()
