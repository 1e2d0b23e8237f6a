"""Per-item download state machine.

One item moves through::

    NOT_STARTED -> MENU_OPENED -> TRANSFER_METHOD_CHOSEN -> DEVICE_SELECTED
                -> DOWNLOAD_TRIGGERED -> NOTIFICATION_DISMISSED

Each arrow is one control located and clicked.  A control that cannot be
found makes the item UNAVAILABLE (no retry).  Any other error reloads the page
and restarts the sequence, at most ``max_attempts`` times in total, after
which the item is FAILED and truncated downloads are removed.  Only a
completed sequence writes an index record.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple

from harvester.browser.base import BrowserElement, BrowserSession, ElementNotFound
from harvester.config import Settings
from harvester.errors import OverlayDismissError, PermanentItemError
from harvester.index import DownloadIndex
from harvester.models import Availability, Item, ItemOutcome, canonicalize
from harvester.retry import Attempt, AttemptOutcome
from harvester.selectors import DEFAULT_SELECTORS, SiteSelectors

logger = logging.getLogger(__name__)

_FORCE_CLICK_JS = """
(selector) => {
  const el = document.querySelector(selector);
  if (!el) { return false; }
  el.click();
  return true;
}
"""

_HIDE_BACKDROP_JS = """
(selector) => {
  const nodes = document.querySelectorAll(selector);
  nodes.forEach((el) => { el.style.display = 'none'; el.style.pointerEvents = 'none'; });
  return nodes.length;
}
"""

_RELOAD_JS = "() => window.location.reload()"


class ItemState(str, Enum):
    NOT_STARTED = "not_started"
    MENU_OPENED = "menu_opened"
    TRANSFER_METHOD_CHOSEN = "transfer_method_chosen"
    DEVICE_SELECTED = "device_selected"
    DOWNLOAD_TRIGGERED = "download_triggered"
    NOTIFICATION_DISMISSED = "notification_dismissed"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


DismissStrategy = Tuple[str, Callable[[BrowserSession], None]]


class ItemDownloadPipeline:
    """Drives the download action sequence for one item at a time.

    Stateless between items, so one instance is shared by all workers; the
    session passed to :meth:`run` belongs to the calling worker.
    """

    def __init__(
        self,
        index: DownloadIndex,
        config: Settings,
        selectors: SiteSelectors = DEFAULT_SELECTORS,
    ) -> None:
        self.index = index
        self.settings = config
        self.selectors = selectors

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, session: BrowserSession, item: Item) -> ItemOutcome:
        """Download *item* through *session* and return what happened.

        Raises:
            IndexWriteError: The download finished but could not be recorded.
        """
        title = item.canonical_title
        max_attempts = self.settings.max_attempts
        logger.info("[ITEM] Downloading %s", title)

        for attempt_no in range(1, max_attempts + 1):
            attempt = self._attempt(session, item)
            if attempt.outcome is AttemptOutcome.SUCCESS:
                break
            if attempt.outcome is AttemptOutcome.FATAL:
                logger.warning("[ITEM] Skipping unavailable: %s (%s)", title, attempt.error)
                item.availability = Availability.UNAVAILABLE
                return ItemOutcome.UNAVAILABLE

            logger.error(
                "[ITEM] Attempt %d/%d for %s failed: %s",
                attempt_no, max_attempts, title, attempt.error,
            )
            if isinstance(attempt.error, OverlayDismissError):
                self._refresh(session)
            elif attempt_no < max_attempts:
                self._reload(session)
        else:
            logger.error("[ITEM] Failed to download %s after %d attempt(s)", title, max_attempts)
            self.index.remove_partial_artifacts(title, self.settings.min_artifact_bytes)
            return ItemOutcome.FAILED

        self.index.record(title)
        logger.info("[ITEM] ✓ %s", title)
        return ItemOutcome.DOWNLOADED

    # ------------------------------------------------------------------
    # One pass through the state machine
    # ------------------------------------------------------------------

    def _attempt(self, session: BrowserSession, item: Item) -> Attempt[ItemState]:
        state = ItemState.NOT_STARTED
        steps: List[Tuple[ItemState, Callable[[BrowserSession, BrowserElement], None]]] = [
            (ItemState.MENU_OPENED, self._open_menu),
            (ItemState.TRANSFER_METHOD_CHOSEN, self._choose_transfer_method),
            (ItemState.DEVICE_SELECTED, self._select_device),
            (ItemState.DOWNLOAD_TRIGGERED, self._trigger_download),
            (ItemState.NOTIFICATION_DISMISSED, self._dismiss_notification),
        ]
        try:
            row = self._locate_row(session, item)
            for next_state, action in steps:
                action(session, row)
                state = next_state
                logger.debug("[ITEM] %s -> %s", item.canonical_title, state.value)
        except PermanentItemError as exc:
            return Attempt.fatal(exc)
        except Exception as exc:
            logger.debug("[ITEM] %s stopped at %s", item.canonical_title, state.value)
            return Attempt.retry(exc)
        return Attempt.success(state)

    def _locate_row(self, session: BrowserSession, item: Item) -> BrowserElement:
        sel = self.selectors
        rows = session.find_all(sel.item_row, visible=False, timeout=self.settings.element_timeout)
        for row in rows:
            try:
                raw = row.find(sel.item_title, visible=False, timeout=0).text
            except ElementNotFound:
                continue
            if canonicalize(raw) == item.canonical_title:
                return row
        raise PermanentItemError(f"row for {item.canonical_title!r} not found")

    def _open_menu(self, session: BrowserSession, row: BrowserElement) -> None:
        self._locate(row, self.selectors.item_menu, "item menu").click()

    def _choose_transfer_method(self, session: BrowserSession, row: BrowserElement) -> None:
        sel = self.selectors
        self._locate(
            row, sel.transfer_option, "transfer option", text=sel.transfer_option_text
        ).click()

    def _select_device(self, session: BrowserSession, row: BrowserElement) -> None:
        sel = self.selectors
        option = self._locate(session, sel.device_option, "device", text=self.settings.device)
        self._locate(option, sel.device_radio, "device radio", visible=False).click(force=True)

    def _trigger_download(self, session: BrowserSession, row: BrowserElement) -> None:
        sel = self.selectors
        buttons = session.find_all(
            sel.download_button,
            text=sel.download_button_text,
            timeout=self.settings.element_timeout,
        )
        if not buttons:
            raise PermanentItemError("download button not found")
        buttons[-1].click()

    def _locate(
        self,
        scope,
        selector: str,
        what: str,
        *,
        text: Optional[str] = None,
        visible: bool = True,
    ) -> BrowserElement:
        try:
            return scope.find(
                selector, text=text, visible=visible, timeout=self.settings.element_timeout
            )
        except ElementNotFound as exc:
            raise PermanentItemError(f"{what} not found") from exc

    # ------------------------------------------------------------------
    # Confirmation overlay
    # ------------------------------------------------------------------

    def dismiss_strategies(self) -> List[DismissStrategy]:
        """Dismissal strategies, tried in order until the overlay is gone."""
        return [
            ("direct", self._dismiss_direct),
            ("scripted", self._dismiss_scripted),
            ("backdrop", self._dismiss_behind_backdrop),
        ]

    def _dismiss_notification(self, session: BrowserSession, row: BrowserElement) -> None:
        for name, strategy in self.dismiss_strategies():
            try:
                strategy(session)
            except Exception as exc:
                logger.debug("[ITEM] Overlay strategy %r failed: %s", name, exc)
                continue
            if self._overlay_gone(session):
                return
        if self._overlay_gone(session):
            return
        raise OverlayDismissError("confirmation overlay could not be dismissed")

    def _dismiss_direct(self, session: BrowserSession) -> None:
        session.find(self.selectors.overlay_dismiss, timeout=self.settings.element_timeout).click()

    def _dismiss_scripted(self, session: BrowserSession) -> None:
        if not session.execute_script(_FORCE_CLICK_JS, self.selectors.overlay_dismiss):
            raise ElementNotFound(self.selectors.overlay_dismiss)

    def _dismiss_behind_backdrop(self, session: BrowserSession) -> None:
        sel = self.selectors
        if not session.find_all(sel.overlay_backdrop, visible=False):
            raise ElementNotFound(sel.overlay_backdrop)
        session.execute_script(_HIDE_BACKDROP_JS, sel.overlay_backdrop)
        session.find(
            sel.overlay_dismiss, visible=False, timeout=self.settings.short_timeout
        ).click(force=True)

    def _overlay_gone(self, session: BrowserSession) -> bool:
        deadline = time.monotonic() + self.settings.short_timeout
        while True:
            if not session.find_all(self.selectors.overlay_dismiss):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.settings.poll_interval)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _refresh(self, session: BrowserSession) -> None:
        """Reload the whole session so no overlay outlives a stuck dismissal."""
        logger.warning("[ITEM] Overlay stuck; refreshing session")
        try:
            session.refresh()
        except Exception as exc:
            logger.warning("[ITEM] Session refresh failed: %s", exc)

    def _reload(self, session: BrowserSession) -> None:
        try:
            session.execute_script(_RELOAD_JS)
        except Exception as exc:
            logger.warning("[ITEM] Page reload failed: %s", exc)
