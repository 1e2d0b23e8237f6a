"""Playwright-backed :class:`~harvester.browser.base.BrowserSession`.

Every session starts its own Playwright driver, browser and context.  The sync
API is bound to the thread that started it, so a session must be created,
used and closed on one worker thread.

Playwright is imported lazily so the rest of the package (and the test
suite) can be imported without a browser install.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from harvester.browser.base import BrowserError, ElementNotFound, WaitTimeout
from harvester.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def _ms(seconds: float) -> int:
    return max(0, int(seconds * 1000))


def _scoped(selector: str, visible: bool) -> str:
    return f"{selector} >> visible=true" if visible else selector


class PlaywrightElement:
    """Wraps a Playwright ``Locator`` resolved to a single element."""

    def __init__(self, locator: Any, default_timeout: float) -> None:
        self._locator = locator
        self._default_timeout = default_timeout

    @property
    def text(self) -> str:
        return self._locator.inner_text(timeout=_ms(self._default_timeout))

    def click(self, force: bool = False) -> None:
        self._locator.click(force=force, timeout=_ms(self._default_timeout))

    def fill(self, value: str) -> None:
        self._locator.fill(value, timeout=_ms(self._default_timeout))

    def find(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> "PlaywrightElement":
        locator = self._locator.locator(_scoped(selector, visible), has_text=text)
        return _first_match(locator, selector, visible, self._wait(timeout), self._default_timeout)

    def find_all(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> List["PlaywrightElement"]:
        locator = self._locator.locator(_scoped(selector, visible), has_text=text)
        return _all_matches(locator, visible, timeout, self._default_timeout)

    def _wait(self, timeout: Optional[float]) -> float:
        return self._default_timeout if timeout is None else timeout


def _first_match(
    locator: Any, selector: str, visible: bool, timeout: float, default_timeout: float
) -> PlaywrightElement:
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError  # noqa: PLC0415

    first = locator.first
    if timeout <= 0:
        if locator.count() == 0:
            raise ElementNotFound(selector)
        return PlaywrightElement(first, default_timeout)
    try:
        first.wait_for(state="visible" if visible else "attached", timeout=_ms(timeout))
    except PlaywrightTimeoutError as exc:
        raise ElementNotFound(f"{selector} (after {timeout:.1f}s)") from exc
    return PlaywrightElement(first, default_timeout)


def _all_matches(
    locator: Any, visible: bool, timeout: Optional[float], default_timeout: float
) -> List[PlaywrightElement]:
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError  # noqa: PLC0415

    if timeout:
        try:
            locator.first.wait_for(
                state="visible" if visible else "attached", timeout=_ms(timeout)
            )
        except PlaywrightTimeoutError:
            return []
    return [PlaywrightElement(loc, default_timeout) for loc in locator.all()]


class PlaywrightSession:
    """A single browser session with downloads saved into ``download_dir``."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        from playwright.sync_api import sync_playwright  # noqa: PLC0415

        self._settings = config or default_settings
        self._download_dir = Path(self._settings.download_dir)
        self._closed = False
        self._pending_downloads: List[Any] = []

        self._playwright = sync_playwright().start()
        try:
            launcher = getattr(self._playwright, self._settings.browser)
            self._browser = launcher.launch(headless=self._settings.headless)
            self._context = self._browser.new_context(
                accept_downloads=True,
                base_url=self._settings.base_url,
            )
            self._context.set_default_timeout(_ms(self._settings.element_timeout))
            self._page = self._context.new_page()
            self._page.on("download", self._on_download)
        except Exception as exc:
            self._playwright.stop()
            raise BrowserError(f"Could not launch {self._settings.browser}: {exc}") from exc

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def current_url(self) -> str:
        return self._page.url

    def navigate(self, url: str) -> None:
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError  # noqa: PLC0415

        try:
            self._page.goto(
                url,
                timeout=_ms(self._settings.page_load_timeout),
                wait_until="domcontentloaded",
            )
        except PlaywrightTimeoutError as exc:
            raise WaitTimeout(f"navigation to {url} timed out") from exc

    def refresh(self) -> None:
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError  # noqa: PLC0415

        try:
            self._page.reload(
                timeout=_ms(self._settings.page_load_timeout),
                wait_until="domcontentloaded",
            )
        except PlaywrightTimeoutError as exc:
            raise WaitTimeout("page reload timed out") from exc

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def find(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> PlaywrightElement:
        wait = self._settings.element_timeout if timeout is None else timeout
        locator = self._page.locator(_scoped(selector, visible), has_text=text)
        return _first_match(locator, selector, visible, wait, self._settings.element_timeout)

    def find_all(
        self,
        selector: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> List[PlaywrightElement]:
        locator = self._page.locator(_scoped(selector, visible), has_text=text)
        return _all_matches(locator, visible, timeout, self._settings.element_timeout)

    def execute_script(self, script: str, arg: Any = None) -> Any:
        return self._page.evaluate(script, arg)

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    def cookies(self) -> List[Dict[str, Any]]:
        return [dict(c) for c in self._context.cookies()]

    def add_cookies(self, cookies: Sequence[Dict[str, Any]]) -> None:
        self._context.add_cookies(list(cookies))

    # ------------------------------------------------------------------
    # Downloads / teardown
    # ------------------------------------------------------------------

    def _on_download(self, download: Any) -> None:
        logger.debug("[DOWNLOAD] Started %s", download.suggested_filename)
        self._pending_downloads.append(download)

    def _save_pending_downloads(self) -> None:
        """Save every started download; ``save_as`` blocks until the transfer ends."""
        while self._pending_downloads:
            download = self._pending_downloads.pop(0)
            target = self._download_dir / download.suggested_filename
            try:
                self._download_dir.mkdir(parents=True, exist_ok=True)
                download.save_as(str(target))
            except Exception as exc:
                logger.error("[DOWNLOAD] Could not save %s: %s", target.name, exc)
                continue
            logger.info("[DOWNLOAD] Saved %s", target.name)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Closing the context cancels downloads still in flight.
        self._save_pending_downloads()
        for closer in (self._context.close, self._browser.close, self._playwright.stop):
            try:
                closer()
            except Exception as exc:
                logger.warning("[BROWSER] Error while closing session: %s", exc)


def open_session(config: Optional[Settings] = None) -> PlaywrightSession:
    """Default opener handed to :class:`~harvester.sessions.SessionFactory`."""
    return PlaywrightSession(config)
