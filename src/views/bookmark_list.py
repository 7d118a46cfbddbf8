"""
State of the bookmark list for one mounted view instance (one browser tab).

The view keeps a local copy of the signed-in user's bookmarks and the add
form, applies optimistic updates after successful mutations, and merges
realtime change events pushed by other sessions of the same user.

Ordering: a local optimistic update and the realtime echo of the same change
can arrive in either order. Nothing here orders them; duplicate suppression
by id is the only safeguard, and a visibility refetch replaces local state
with the server's set.
"""
import asyncio
import logging
from collections.abc import Callable

from pydantic import ValidationError

from core.platform import ChannelSubscription, Platform, PlatformError
from schemas.bookmark import Bookmark, BookmarkCreate
from schemas.realtime import ChangeEvent, ChangeEventType
from services import bookmark_service
from views.session_store import SessionStore

logger = logging.getLogger(__name__)

VISIBLE = "visible"


class BookmarkListView:
    """Bookmark list, add form and realtime reconciliation for the current user."""

    def __init__(
        self,
        platform: Platform,
        session_store: SessionStore,
        *,
        alert: Callable[[str], None],
        on_change: Callable[["BookmarkListView"], None] | None = None,
    ) -> None:
        self._platform = platform
        self._session_store = session_store
        self._alert = alert
        self._on_change = on_change

        self.bookmarks: list[Bookmark] = []
        self.title = ""
        self.url = ""
        self.adding = False

        self._user_id: str | None = None
        self._channel: ChannelSubscription | None = None
        self._unsubscribe_session: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()
        self._sync_lock = asyncio.Lock()
        self._mounted = False

    @property
    def user_id(self) -> str | None:
        """Id of the user whose bookmarks are shown."""
        return self._user_id

    async def mount(self) -> None:
        """Follow the session store and load the current user's bookmarks."""
        if self._mounted:
            return
        self._mounted = True
        self._unsubscribe_session = self._session_store.subscribe(self._on_session_change)
        await self._sync_user()

    async def unmount(self) -> None:
        """Release the realtime channel and the session listener."""
        if not self._mounted:
            return
        self._mounted = False
        if self._unsubscribe_session is not None:
            self._unsubscribe_session()
            self._unsubscribe_session = None
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._close_channel()

    async def drain(self) -> None:
        """Wait for background work started by session changes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def set_form(self, *, title: str | None = None, url: str | None = None) -> None:
        """Update the add form fields."""
        if title is not None:
            self.title = title
        if url is not None:
            self.url = url

    async def fetch(self) -> None:
        """Replace local state with the user's bookmarks. Errors are logged only."""
        if self._user_id is None:
            return
        try:
            bookmarks = await bookmark_service.list_bookmarks(self._platform, self._user_id)
        except PlatformError as e:
            logger.error("Error fetching bookmarks: %s", e.message)
            return
        self.bookmarks = bookmarks
        self._notify()

    async def add(self) -> None:
        """
        Submit the add form.

        Empty title or url (after trimming) is a silent no-op. On success the
        stored record goes first in the list and the form is cleared; on
        failure the provider's message is raised as an alert.
        """
        title = self.title.strip()
        url = self.url.strip()
        if not title or not url or self._user_id is None:
            return

        self.adding = True
        self._notify()
        try:
            bookmark = await bookmark_service.create_bookmark(
                self._platform,
                self._user_id,
                BookmarkCreate(title=title, url=url),
            )
        except PlatformError as e:
            logger.error("Error adding bookmark: %s", e.message)
            self._alert(f"Error adding bookmark: {e.message}")
        else:
            # The realtime echo may already have delivered this row
            self.bookmarks = [bookmark, *(b for b in self.bookmarks if b.id != bookmark.id)]
            self.title = ""
            self.url = ""
        finally:
            self.adding = False
            self._notify()

    async def delete(self, bookmark_id: str) -> None:
        """Delete one bookmark; on failure the provider's message is raised as an alert."""
        try:
            await bookmark_service.delete_bookmark(self._platform, bookmark_id)
        except PlatformError as e:
            logger.error("Error deleting bookmark: %s", e.message)
            self._alert(f"Error deleting bookmark: {e.message}")
            return
        self._remove(bookmark_id)

    def handle_change(self, event: ChangeEvent) -> None:
        """
        Merge a realtime change into local state.

        Inserts owned by the current user are prepended unless the id is
        already present; deletes drop the matching id. Everything else is
        ignored.
        """
        if event.event_type is ChangeEventType.INSERT:
            if self._user_id is None or str(event.new.get("user_id")) != self._user_id:
                return
            try:
                bookmark = Bookmark.model_validate(event.new)
            except ValidationError as e:
                logger.warning("Ignoring malformed bookmark change: %s", e)
                return
            if any(b.id == bookmark.id for b in self.bookmarks):
                return
            self.bookmarks = [bookmark, *self.bookmarks]
            self._notify()
        elif event.event_type is ChangeEventType.DELETE:
            bookmark_id = event.old.get("id")
            if bookmark_id is not None:
                self._remove(str(bookmark_id))

    async def handle_visibility_change(self, visibility_state: str) -> None:
        """Refetch when the view is visible again; backstop for missed pushes."""
        if self._mounted and visibility_state == VISIBLE:
            await self.fetch()

    def _remove(self, bookmark_id: str) -> None:
        remaining = [b for b in self.bookmarks if b.id != bookmark_id]
        if len(remaining) != len(self.bookmarks):
            self.bookmarks = remaining
            self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _on_session_change(self, _store: SessionStore) -> None:
        task = asyncio.get_running_loop().create_task(self._sync_user())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _sync_user(self) -> None:
        """Re-scope the view when the signed-in user changes."""
        async with self._sync_lock:
            user = self._session_store.user
            user_id = user.id if user else None
            if not self._mounted or user_id == self._user_id:
                return

            await self._close_channel()
            self._user_id = user_id
            self.bookmarks = []
            self._notify()
            if user_id is None:
                return

            await self.fetch()
            try:
                channel = await self._platform.subscribe(
                    f"bookmarks-{user_id}",
                    table=bookmark_service.BOOKMARKS_TABLE,
                    event="*",
                    listener=self.handle_change,
                )
            except PlatformError as e:
                logger.error("Error subscribing to bookmark changes: %s", e.message)
                return
            if not self._mounted or self._user_id != user_id:
                await channel.unsubscribe()
                return
            self._channel = channel

    async def _close_channel(self) -> None:
        if self._channel is not None:
            channel, self._channel = self._channel, None
            await channel.unsubscribe()
