"""Worker sessions cloned from the primary session's cookies."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from harvester.browser.base import BrowserSession, is_present
from harvester.config import Settings
from harvester.errors import LostAuthentication
from harvester.models import CredentialSnapshot
from harvester.selectors import DEFAULT_SELECTORS, SiteSelectors

logger = logging.getLogger(__name__)

SessionOpener = Callable[[], BrowserSession]


class _TrackedSession:
    """Proxy that reports its ``close`` back to the factory exactly once."""

    def __init__(self, inner: BrowserSession, on_close: Callable[[], None]) -> None:
        self._inner = inner
        self._on_close = on_close
        self._closed = False

    def __getattr__(self, name: str):
        return getattr(self._inner, name)

    @property
    def current_url(self) -> str:
        return self._inner.current_url

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._inner.close()
        finally:
            self._on_close()


class SessionFactory:
    """Opens fresh sessions and signs them in by replaying a cookie snapshot.

    ``open_sessions`` and ``peak_sessions`` count sessions handed out by this
    factory that have not been closed yet.
    """

    def __init__(
        self,
        opener: SessionOpener,
        config: Settings,
        selectors: SiteSelectors = DEFAULT_SELECTORS,
    ) -> None:
        self._opener = opener
        self.settings = config
        self.selectors = selectors
        self._lock = threading.Lock()
        self.open_sessions = 0
        self.peak_sessions = 0

    def open(self) -> BrowserSession:
        """Open an unauthenticated, tracked session."""
        inner = self._opener()
        with self._lock:
            self.open_sessions += 1
            self.peak_sessions = max(self.peak_sessions, self.open_sessions)
        return _TrackedSession(inner, self._released)  # type: ignore[return-value]

    def clone_authenticated(self, snapshot: CredentialSnapshot) -> BrowserSession:
        """Return a new session carrying *snapshot*'s identity.

        The caller owns the returned session and must close it.

        Raises:
            LostAuthentication: The site still shows its sign-in control.
        """
        session = self.open()
        try:
            session.navigate(self.settings.base_url)
            session.add_cookies(snapshot.scoped_cookies())
            session.refresh()
            if is_present(session, self.selectors.sign_in_control, self.settings.short_timeout):
                raise LostAuthentication("cloned session shows the sign-in control")
        except BaseException:
            session.close()
            raise
        return session

    def _released(self) -> None:
        with self._lock:
            self.open_sessions -= 1
