"""Walk the listing's pagination on the primary session.

Pagination state lives in one session, so discovery is strictly sequential.
It never fails the run: any problem stops the walk and the URLs found so far
are returned.
"""

from __future__ import annotations

import logging
import time
from typing import List

from harvester.browser.base import BrowserSession, ElementNotFound
from harvester.config import Settings
from harvester.errors import TransientUIError
from harvester.selectors import DEFAULT_SELECTORS, SiteSelectors

logger = logging.getLogger(__name__)


class PageDiscovery:
    """Enumerate every listing-page URL by following the next-page control.

    ``next_page_selector`` may contain ``{page}``, replaced by the number of
    the page being requested (``#page-{page}`` for numbered links), or be a
    fixed selector for a directional "next" control.
    """

    def __init__(
        self,
        config: Settings,
        selectors: SiteSelectors = DEFAULT_SELECTORS,
        min_rows: int = 1,
    ) -> None:
        self.settings = config
        self.selectors = selectors
        self.min_rows = min_rows

    def discover(self, session: BrowserSession) -> List[str]:
        urls: List[str] = [session.current_url]
        cap = self.settings.max_pages

        while True:
            if len(urls) >= cap:
                logger.info("[DISCOVERY] Page cap of %d reached", cap)
                break

            next_selector = self.settings.next_page_selector.format(page=len(urls) + 1)
            try:
                control = session.find(next_selector, timeout=self.settings.short_timeout)
            except ElementNotFound:
                logger.info("[DISCOVERY] No next-page control; end of listing")
                break

            previous_url = session.current_url
            try:
                control.click()
                self._wait_for_page_change(session, previous_url)
            except Exception as exc:
                logger.warning(
                    "[DISCOVERY] Stopping after page %d: %s", len(urls), exc
                )
                break

            url = session.current_url
            if url in urls:
                logger.warning("[DISCOVERY] Pagination returned to %s; stopping", url)
                break
            urls.append(url)
            logger.debug("[DISCOVERY] Page %d: %s", len(urls), urls[-1])

        logger.info("[DISCOVERY] %d page(s) discovered", len(urls))
        return urls

    def _wait_for_page_change(self, session: BrowserSession, previous_url: str) -> None:
        """Block until the URL changed and listing rows are shown.

        Raises:
            TransientUIError: Neither happened within ``page_load_timeout``.
        """
        deadline = time.monotonic() + self.settings.page_load_timeout
        while True:
            if session.current_url != previous_url:
                rows = session.find_all(self.selectors.item_row, visible=False)
                if len(rows) >= self.min_rows:
                    return
            if time.monotonic() >= deadline:
                raise TransientUIError(
                    f"listing did not advance past {previous_url} "
                    f"within {self.settings.page_load_timeout:.0f}s"
                )
            time.sleep(self.settings.poll_interval)
