"""The browser-driving capability the harvester depends on.

The core only talks to these two protocols.  The production implementation
lives in :mod:`harvester.browser.playwright_session`; the test suite drives the
core with scripted fakes.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence


class BrowserError(Exception):
    """Base class for errors raised by a browser session."""


class ElementNotFound(BrowserError):
    """No element matched within the allowed wait."""


class WaitTimeout(BrowserError):
    """A bounded wait (navigation, URL change, content) expired."""


class BrowserElement(Protocol):
    @property
    def text(self) -> str: ...

    def click(self, force: bool = False) -> None: ...

    def fill(self, value: str) -> None: ...

    def find(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> "BrowserElement": ...

    def find_all(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> List["BrowserElement"]: ...


class BrowserSession(Protocol):
    """One independent browser session (its own cookies and page).

    ``find`` raises :class:`ElementNotFound` when nothing matches within
    ``timeout`` seconds.  ``find_all`` returns an empty list instead; with a
    ``timeout`` it first waits for at least one match.
    """

    @property
    def current_url(self) -> str: ...

    def navigate(self, url: str) -> None: ...

    def find(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> BrowserElement: ...

    def find_all(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> List[BrowserElement]: ...

    def execute_script(self, script: str, arg: Any = None) -> Any: ...

    def cookies(self) -> List[Dict[str, Any]]: ...

    def add_cookies(self, cookies: Sequence[Dict[str, Any]]) -> None: ...

    def refresh(self) -> None: ...

    def close(self) -> None: ...


def is_present(
    session: BrowserSession,
    selector: str,
    timeout: float,
    *,
    text: Optional[str] = None,
    visible: bool = False,
) -> bool:
    """Return ``True`` if *selector* matches within *timeout* seconds."""
    try:
        session.find(selector, text=text, visible=visible, timeout=timeout)
    except ElementNotFound:
        return False
    return True
