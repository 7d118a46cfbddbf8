"""Cookie-backed storage for the auth client's session and PKCE verifier."""
from collections.abc import Mapping

from starlette.responses import Response

# One week; the provider refresh token outlives the access token by far.
COOKIE_MAX_AGE = 60 * 60 * 24 * 7


class CookieStorage:
    """
    Key/value storage seeded from request cookies.

    The auth client reads its persisted session and the PKCE code verifier
    through ``get_item`` and writes them back through ``set_item`` /
    ``remove_item``. Writes are only recorded; ``apply`` copies them onto the
    outgoing response. Writes made during a WebSocket connection have no
    response to land on and are dropped with the storage.
    """

    def __init__(self, cookies: Mapping[str, str] | None = None, *, secure: bool = False) -> None:
        self._items: dict[str, str] = dict(cookies or {})
        self._pending: dict[str, str | None] = {}
        self.secure = secure

    async def get_item(self, key: str) -> str | None:
        """Return the stored value for ``key``."""
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        """Store ``value`` and schedule it to be written as a cookie."""
        self._items[key] = value
        self._pending[key] = value

    async def remove_item(self, key: str) -> None:
        """Drop ``key`` and schedule the cookie for deletion."""
        self._items.pop(key, None)
        self._pending[key] = None

    @property
    def pending(self) -> dict[str, str | None]:
        """Recorded writes; None marks a deletion."""
        return dict(self._pending)

    def apply(self, response: Response) -> Response:
        """Write recorded changes to ``response`` as cookies and return it."""
        for key, value in self._pending.items():
            if value is None:
                response.delete_cookie(
                    key, path="/", secure=self.secure, httponly=True, samesite="lax",
                )
            else:
                response.set_cookie(
                    key,
                    value,
                    max_age=COOKIE_MAX_AGE,
                    path="/",
                    secure=self.secure,
                    httponly=True,
                    samesite="lax",
                )
        self._pending.clear()
        return response
