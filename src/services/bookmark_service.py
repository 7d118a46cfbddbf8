"""Service layer for bookmark operations against the platform's table storage."""
from core.platform import Platform
from schemas.bookmark import Bookmark, BookmarkCreate

BOOKMARKS_TABLE = "bookmarks"


async def list_bookmarks(platform: Platform, user_id: str) -> list[Bookmark]:
    """
    Return the user's bookmarks, newest first.

    Raises:
        PlatformError: If the query fails.
    """
    rows = await platform.select(
        BOOKMARKS_TABLE,
        match={"user_id": user_id},
        order_by="created_at",
        descending=True,
    )
    return [Bookmark.model_validate(row) for row in rows]


async def create_bookmark(
    platform: Platform,
    user_id: str,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Insert a bookmark owned by ``user_id`` and return the stored record.

    ``data.url`` is already normalized by the schema.

    Raises:
        PlatformError: If the insert is rejected.
    """
    row = await platform.insert(
        BOOKMARKS_TABLE,
        {"title": data.title, "url": data.url, "user_id": user_id},
    )
    return Bookmark.model_validate(row)


async def delete_bookmark(platform: Platform, bookmark_id: str) -> None:
    """
    Delete a bookmark by id.

    Ownership is enforced by the table's row-level-security policy, not here.

    Raises:
        PlatformError: If the delete is rejected.
    """
    await platform.delete(BOOKMARKS_TABLE, match={"id": bookmark_id})
