"""Shared fixtures: a scripted fake of the content console.

Mocking strategy:
- ``FakeSite`` holds the state every session shares (listing pages, accepted
  cookies, per-title failure scripts, a log of clicks).  Its ``open_session``
  is handed to ``SessionFactory`` as the opener, so each worker gets its own
  ``FakeSession`` just as it would get its own Playwright browser.
- ``FakeSession`` answers the selectors in ``DEFAULT_SELECTORS`` from the
  site state and the session's own UI state (menu open, device chosen,
  overlay shown).  Timeouts are ignored; the test settings keep every bounded
  wait in the tens of milliseconds.
- No real browser is ever launched.
"""

from __future__ import annotations

import re
import threading
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from harvester.browser.base import BrowserError, ElementNotFound
from harvester.config import Settings
from harvester.models import CredentialSnapshot
from harvester.selectors import DEFAULT_SELECTORS

BASE_URL = "https://www.amazon.com"
LISTING_PATH = "/hz/mycd/digital-console/contentlist/booksPurchases/titleAsc/"
LISTING_URL = BASE_URL + LISTING_PATH
UNAVAILABLE_TEXT = "This title is unavailable for download and transfer"

_PAGE_LINK = re.compile(r"#page-(\d+)")


def page_url(number: int) -> str:
    return LISTING_URL if number == 1 else f"{LISTING_URL}?pageNumber={number}"


# ---------------------------------------------------------------------------
# Fake DOM
# ---------------------------------------------------------------------------

class FakeElement:
    def __init__(
        self,
        text: str = "",
        on_click: Optional[Callable[[], None]] = None,
        on_fill: Optional[Callable[[str], None]] = None,
        children: Optional[Callable[[str], List["FakeElement"]]] = None,
    ) -> None:
        self._text = text
        self._on_click = on_click
        self._on_fill = on_fill
        self._children = children or (lambda selector: [])
        self.value: Optional[str] = None
        self.forced = False

    @property
    def text(self) -> str:
        return self._text

    def click(self, force: bool = False) -> None:
        self.forced = force
        if self._on_click:
            self._on_click()

    def fill(self, value: str) -> None:
        self.value = value
        if self._on_fill:
            self._on_fill(value)

    def find_all(self, selector, *, text=None, visible=True, timeout=None):
        found = self._children(selector)
        if text is not None:
            found = [el for el in found if text in el.text]
        return found

    def find(self, selector, *, text=None, visible=True, timeout=None):
        found = self.find_all(selector, text=text, visible=visible, timeout=timeout)
        if not found:
            raise ElementNotFound(selector)
        return found[0]


@dataclass
class FakeRow:
    title: str
    unavailable: bool = False
    has_menu: bool = True

    @property
    def text(self) -> str:
        extra = f"\n{UNAVAILABLE_TEXT}" if self.unavailable else ""
        return f"{self.title}\nKindle Edition{extra}"


@dataclass
class FakePage:
    url: str
    rows: List[FakeRow]
    empty: bool = False
    load_failures: int = 0


# ---------------------------------------------------------------------------
# Site state shared by all sessions
# ---------------------------------------------------------------------------

class FakeSite:
    def __init__(self) -> None:
        self.sel = DEFAULT_SELECTORS
        self.lock = threading.Lock()
        self.pages: Dict[str, FakePage] = {}
        self.page_order: List[str] = []
        self.link_overrides: Dict[int, str] = {}
        self.devices = ["Kindle Oasis", "Kindle Paperwhite"]
        self.cookies = [
            {"name": "session-id", "value": "s-1", "domain": ".amazon.com", "path": "/"},
            {"name": "tracker", "value": "t-1", "domain": ".example.org", "path": "/"},
        ]
        self.accept_cookies = True

        # sign-in behaviour
        self.password = "hunter2"
        self.two_step = False
        self.mfa_required = False
        self.mfa_accept_on = 1
        self.mfa_submissions = 0
        self.landmark_missing = False

        # download behaviour
        self.flaky: Dict[str, int] = {}
        self.overlay_mode = "direct"
        self.latency = 0.0

        # observations
        self.events: List[tuple] = []
        self.sessions: List["FakeSession"] = []
        self.open_count = 0
        self.peak_open = 0

    # -- setup helpers -----------------------------------------------------

    def add_pages(self, *pages: List[FakeRow], empty: Optional[set] = None) -> List[str]:
        for number, rows in enumerate(pages, start=1):
            url = page_url(number)
            self.pages[url] = FakePage(url, list(rows), empty=number in (empty or set()))
            self.page_order.append(url)
        return list(self.page_order)

    def link_target(self, number: int) -> Optional[str]:
        if number in self.link_overrides:
            return self.link_overrides[number]
        if number <= len(self.page_order):
            return self.page_order[number - 1]
        return None

    # -- observation helpers ----------------------------------------------

    def record(self, *event) -> None:
        with self.lock:
            self.events.append(event)

    def count(self, kind: str, title: Optional[str] = None) -> int:
        with self.lock:
            return sum(
                1 for e in self.events
                if e[0] == kind and (title is None or e[1] == title)
            )

    def downloads(self) -> Counter:
        with self.lock:
            return Counter(e[1] for e in self.events if e[0] == "download")

    # -- session lifecycle -------------------------------------------------

    def open_session(self) -> "FakeSession":
        session = FakeSession(self)
        with self.lock:
            self.sessions.append(session)
            self.open_count += 1
            self.peak_open = max(self.peak_open, self.open_count)
        return session

    def signed_in_session(self, url: str = LISTING_URL) -> "FakeSession":
        session = self.open_session()
        session.authed = True
        session.navigate(url)
        return session

    def _closed(self) -> None:
        with self.lock:
            self.open_count -= 1

    def snapshot(self) -> CredentialSnapshot:
        return CredentialSnapshot("amazon.com", tuple(dict(c) for c in self.cookies))


# ---------------------------------------------------------------------------
# One browser session
# ---------------------------------------------------------------------------

class FakeSession:
    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.url = "about:blank"
        self.page: Optional[FakePage] = None
        self.page_loaded = False
        self.authed = False
        self.closed = False
        self.cookie_jar: List[dict] = []
        self.refreshes = 0

        self.entered_password: Optional[str] = None
        self.entered_codes: List[str] = []
        self.continued = False
        self.login_error = False
        self.mfa_pending = False
        self.mfa_error = False

        self._reset_ui()

    def _reset_ui(self) -> None:
        self.menu_title: Optional[str] = None
        self.transfer_chosen = False
        self.device_selected = False
        self.overlay_open = False
        self.backdrop_hidden = False

    # -- BrowserSession ----------------------------------------------------

    @property
    def current_url(self) -> str:
        return self.url

    def navigate(self, url: str) -> None:
        if self.site.latency:
            time.sleep(self.site.latency)
        self.site.record("navigate", url)
        self.url = url
        self._reset_ui()
        self.page = self.site.pages.get(url)
        self.page_loaded = True
        if self.page is not None:
            with self.site.lock:
                if self.page.load_failures > 0:
                    self.page.load_failures -= 1
                    self.page_loaded = False

    def refresh(self) -> None:
        self.refreshes += 1
        self._reset_ui()
        if self.site.accept_cookies and any(
            c.get("name") == "session-id" for c in self.cookie_jar
        ):
            self.authed = True

    def add_cookies(self, cookies) -> None:
        self.cookie_jar.extend(dict(c) for c in cookies)

    def cookies(self) -> List[dict]:
        return [dict(c) for c in self.site.cookies] if self.authed else []

    def execute_script(self, script: str, arg=None):
        if "location.reload" in script:
            self.site.record("reload", self.url)
            self._reset_ui()
            return None
        if "querySelectorAll" in script:
            if not self.overlay_open:
                return 0
            self.backdrop_hidden = True
            return 1
        if "el.click()" in script:
            was_open = self.overlay_open
            if was_open and self.site.overlay_mode == "scripted":
                self.overlay_open = False
            return was_open
        raise BrowserError(f"unexpected script: {script!r}")

    def close(self) -> None:
        self.closed = True
        self.site._closed()

    def find_all(self, selector, *, text=None, visible=True, timeout=None):
        found = self._resolve(selector)
        if text is not None:
            found = [el for el in found if text in el.text]
        return found

    def find(self, selector, *, text=None, visible=True, timeout=None):
        found = self.find_all(selector, text=text, visible=visible, timeout=timeout)
        if not found:
            raise ElementNotFound(selector)
        return found[0]

    # -- selector dispatch -------------------------------------------------

    def _resolve(self, selector: str) -> List[FakeElement]:
        sel = self.site.sel
        if selector == sel.sign_in_control:
            return [] if self.authed else [FakeElement("Sign in")]
        if selector == sel.email_input:
            return [] if self.authed else [FakeElement()]
        if selector == sel.email_continue:
            return [FakeElement("Continue", self._continue)] if self.site.two_step else []
        if selector == sel.password_input:
            if self.authed or (self.site.two_step and not self.continued):
                return []
            return [FakeElement(on_fill=self._enter_password)]
        if selector == sel.sign_in_submit:
            return [] if self.authed else [FakeElement("Sign in", self._submit_login)]
        if selector in (sel.sign_in_error, sel.mfa_error):
            return [FakeElement("There was a problem")] if self.login_error or self.mfa_error else []
        if selector == sel.mfa_code_input:
            return [FakeElement(on_fill=self.entered_codes.append)] if self.mfa_pending else []
        if selector == sel.mfa_submit:
            return [FakeElement("Sign in", self._submit_mfa)] if self.mfa_pending else []
        if selector == sel.login_landmark:
            return [FakeElement()] if self.authed and not self.site.landmark_missing else []

        if selector == sel.item_row:
            if not (self.authed and self.page_loaded and self.page and not self.page.empty):
                return []
            return [self._row_element(row) for row in self.page.rows]
        if selector == sel.empty_indicator:
            if self.authed and self.page_loaded and self.page and self.page.empty:
                return [FakeElement("No content")]
            return []

        if selector == sel.device_option:
            if not self.transfer_chosen:
                return []
            return [self._device_element(name) for name in self.site.devices]
        if selector == sel.download_button:
            if not self.device_selected:
                return []
            return [FakeElement("Cancel"), FakeElement(sel.download_button_text, self._download)]
        if selector == sel.overlay_dismiss:
            return [FakeElement("Close", self._close_overlay)] if self.overlay_open else []
        if selector == sel.overlay_backdrop:
            return [FakeElement()] if self.overlay_open and not self.backdrop_hidden else []

        match = _PAGE_LINK.fullmatch(selector)
        if match and self.authed:
            number = int(match.group(1))
            target = self.site.link_target(number)
            if target is not None:
                return [FakeElement(str(number), lambda: self.navigate(target))]
            return []
        return []

    def _row_element(self, row: FakeRow) -> FakeElement:
        sel = self.site.sel

        def children(selector: str) -> List[FakeElement]:
            if selector == sel.item_title:
                return [FakeElement(row.title)] if row.title else []
            if selector == sel.item_menu:
                return [FakeElement("Actions", lambda: self._open_menu(row))] if row.has_menu else []
            if selector == sel.transfer_option and self.menu_title == row.title:
                return [
                    FakeElement("Deliver or Remove from Device"),
                    FakeElement(sel.transfer_option_text, self._choose_transfer),
                ]
            return []

        return FakeElement(row.text, children=children)

    def _device_element(self, name: str) -> FakeElement:
        def children(selector: str) -> List[FakeElement]:
            if selector == self.site.sel.device_radio:
                return [FakeElement("", self._select_device)]
            return []

        return FakeElement(name, children=children)

    # -- click handlers ----------------------------------------------------

    def _enter_password(self, value: str) -> None:
        self.entered_password = value

    def _continue(self) -> None:
        self.continued = True

    def _submit_login(self) -> None:
        self.site.record("submit_login", None)
        self.login_error = False
        if self.entered_password != self.site.password:
            self.login_error = True
            return
        if self.site.mfa_required:
            self.mfa_pending = True
        else:
            self.authed = True

    def _submit_mfa(self) -> None:
        with self.site.lock:
            self.site.mfa_submissions += 1
            accepted = self.site.mfa_submissions >= self.site.mfa_accept_on
        self.mfa_error = not accepted
        if accepted:
            self.mfa_pending = False
            self.authed = True

    def _open_menu(self, row: FakeRow) -> None:
        self.site.record("menu", row.title)
        self.menu_title = row.title

    def _choose_transfer(self) -> None:
        self.transfer_chosen = True

    def _select_device(self) -> None:
        self.device_selected = True

    def _download(self) -> None:
        title = self.menu_title
        self.site.record("download", title)
        with self.site.lock:
            remaining = self.site.flaky.get(title, 0)
            if remaining:
                self.site.flaky[title] = remaining - 1
        if remaining:
            raise BrowserError(f"download of {title!r} did not start")
        self.overlay_open = True
        self.backdrop_hidden = False

    def _close_overlay(self) -> None:
        mode = self.site.overlay_mode
        if mode == "direct" or (mode == "backdrop" and self.backdrop_hidden):
            self.overlay_open = False


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def make_settings(download_dir: Path, **overrides) -> Settings:
    values = dict(
        username="reader@example.com",
        password="hunter2",
        device="Kindle Oasis",
        totp_secret=None,
        download_dir=download_dir,
        concurrency=3,
        idempotency_enabled=True,
        max_pages=200,
        max_attempts=3,
        retry_base=2.0,
        min_artifact_bytes=10240,
        headless=True,
        browser="firefox",
        base_url=BASE_URL,
        listing_path=LISTING_PATH,
        next_page_selector="#page-{page}",
        element_timeout=0.05,
        short_timeout=0.02,
        page_load_timeout=0.1,
        poll_interval=0.005,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def config(tmp_path):
    return make_settings(tmp_path / "ebooks")


@pytest.fixture
def site():
    return FakeSite()
