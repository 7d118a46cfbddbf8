"""Send anonymous visitors of the main view to the login view."""
from collections.abc import Callable

from views.session_store import SessionStore

LOGIN_PATH = "/login"


class RedirectGuard:
    """Navigates to the login path once loading is done and nobody is signed in."""

    def __init__(
        self,
        session_store: SessionStore,
        navigate: Callable[[str], None],
        *,
        login_path: str = LOGIN_PATH,
    ) -> None:
        self._session_store = session_store
        self._navigate = navigate
        self._login_path = login_path
        self._unsubscribe: Callable[[], None] | None = None

    def check(self) -> bool:
        """
        Redirect if needed.

        Does nothing while the session is still loading, so no redirect fires
        before the initial session lookup resolves.

        Returns:
            True if a redirect was issued.
        """
        if self._session_store.loading or self._session_store.user is not None:
            return False
        self._navigate(self._login_path)
        return True

    def start(self) -> None:
        """Check now and after every session change."""
        if self._unsubscribe is None:
            self._unsubscribe = self._session_store.subscribe(lambda _store: self.check())
        self.check()

    def stop(self) -> None:
        """Stop following the session store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
