"""Bounded-concurrency retrieval over the discovered listing pages.

Each page is one task on a ``ThreadPoolExecutor`` of at most
``MAX_CONCURRENCY`` workers.  A task clones its own authenticated session,
loads the page, classifies it, and runs the item pipeline for every row.  The
session is closed when the task ends, whatever the outcome.  A page that keeps
failing is abandoned without touching its siblings.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Callable, List, Optional, Sequence

from harvester.browser.base import BrowserSession, ElementNotFound
from harvester.config import Settings, clamp_concurrency
from harvester.errors import AuthError, IndexWriteError, TransientUIError
from harvester.index import DownloadIndex
from harvester.models import (
    Availability,
    CredentialSnapshot,
    Item,
    ItemOutcome,
    PageDescriptor,
    RunResult,
    RunStats,
)
from harvester.pipeline import ItemDownloadPipeline
from harvester.retry import Attempt, AttemptOutcome, backoff_delay
from harvester.selectors import DEFAULT_SELECTORS, SiteSelectors
from harvester.sessions import SessionFactory

logger = logging.getLogger(__name__)


class PageState(str, Enum):
    LOADED = "loaded"
    EMPTY = "empty"


class ConcurrencyOrchestrator:
    """Fan discovered pages out to a fixed pool of workers."""

    def __init__(
        self,
        factory: SessionFactory,
        index: DownloadIndex,
        pipeline: ItemDownloadPipeline,
        snapshot: CredentialSnapshot,
        config: Settings,
        selectors: SiteSelectors = DEFAULT_SELECTORS,
        stats: Optional[RunStats] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.factory = factory
        self.index = index
        self.pipeline = pipeline
        self.snapshot = snapshot
        self.settings = config
        self.selectors = selectors
        self.stats = stats or RunStats()
        self.concurrency = clamp_concurrency(config.concurrency)
        self._sleep = sleep
        self._rng = rng

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, urls: Sequence[str]) -> RunResult:
        """Process every URL and return the contributing pages by number."""
        pages = [PageDescriptor(page_number=i, url=u) for i, u in enumerate(urls, start=1)]
        self.stats.bump("pages_discovered", len(pages))
        logger.info(
            "[ORCHESTRATOR] Processing %d page(s) with %d worker(s)",
            len(pages), self.concurrency,
        )

        result: RunResult = {}
        if not pages:
            return result

        with ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="harvest"
        ) as pool:
            future_to_page = {pool.submit(self.process_page, page): page for page in pages}
            for future in as_completed(future_to_page):
                page = future_to_page[future]
                try:
                    done = future.result()
                except Exception as exc:
                    logger.exception("[PAGE %d] Unhandled error: %s", page.page_number, exc)
                    self.stats.bump("pages_abandoned")
                    continue
                if done is not None and done.contributes:
                    result[done.page_number] = done

        logger.info(
            "[ORCHESTRATOR] %d/%d page(s) contributed", len(result), len(pages)
        )
        return result

    # ------------------------------------------------------------------
    # One page, with retries
    # ------------------------------------------------------------------

    def process_page(self, page: PageDescriptor) -> Optional[PageDescriptor]:
        """Run one page task; ``None`` means the page was abandoned."""
        tag = f"[PAGE {page.page_number}]"
        max_attempts = self.settings.max_attempts

        for attempt_no in range(1, max_attempts + 1):
            attempt = self._attempt_page(page)
            if attempt.outcome is AttemptOutcome.SUCCESS:
                return attempt.value
            if attempt.outcome is AttemptOutcome.FATAL:
                logger.error("%s Abandoned: %s", tag, attempt.error)
                self.stats.bump("pages_abandoned")
                return None

            logger.warning(
                "%s Attempt %d/%d failed: %s", tag, attempt_no, max_attempts, attempt.error
            )
            if attempt_no < max_attempts:
                delay = backoff_delay(attempt_no, self.settings.retry_base, rng=self._rng)
                logger.info("%s Retrying in %.1fs", tag, delay)
                self._sleep(delay)

        logger.error("%s Abandoned after %d attempt(s)", tag, max_attempts)
        self.stats.bump("pages_abandoned")
        return None

    def _attempt_page(self, page: PageDescriptor) -> Attempt[PageDescriptor]:
        try:
            session = self.factory.clone_authenticated(self.snapshot)
        except AuthError as exc:
            return Attempt.fatal(exc)
        except Exception as exc:
            return Attempt.retry(exc)

        try:
            page.items = []
            page.confirmed_empty = False
            session.navigate(page.url)
            state = self._classify(session)
            if state is PageState.EMPTY:
                logger.info("[PAGE %d] Confirmed empty", page.page_number)
                page.confirmed_empty = True
                return Attempt.success(page)

            page.items = self._extract_items(session, page)
            self._process_items(session, page)
            return Attempt.success(page)
        except AuthError as exc:
            return Attempt.fatal(exc)
        except IndexWriteError as exc:
            # Retrying would download again without a record; stop this page.
            logger.exception("[PAGE %d] Index write failed", page.page_number)
            self.stats.bump("index_errors")
            return Attempt.fatal(exc)
        except Exception as exc:
            return Attempt.retry(exc)
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Page contents
    # ------------------------------------------------------------------

    def _classify(self, session: BrowserSession) -> PageState:
        """Wait for item rows or an explicit empty indicator.

        Raises:
            TransientUIError: Neither showed up within ``page_load_timeout``.
        """
        sel = self.selectors
        deadline = time.monotonic() + self.settings.page_load_timeout
        while True:
            if session.find_all(sel.item_row, visible=False):
                return PageState.LOADED
            if session.find_all(sel.empty_indicator, visible=False):
                return PageState.EMPTY
            if time.monotonic() >= deadline:
                raise TransientUIError(
                    f"page content indeterminate after {self.settings.page_load_timeout:.0f}s"
                )
            time.sleep(self.settings.poll_interval)

    def _extract_items(self, session: BrowserSession, page: PageDescriptor) -> List[Item]:
        sel = self.selectors
        markers = [m.lower() for m in sel.unavailable_markers]
        items: List[Item] = []
        for row in session.find_all(sel.item_row, visible=False):
            row_text = row.text
            try:
                raw_title = row.find(sel.item_title, visible=False, timeout=0).text.strip()
            except ElementNotFound:
                raw_title = ""

            if any(marker in row_text.lower() for marker in markers):
                item = Item.from_title(raw_title, page.url, Availability.UNAVAILABLE)
                item.outcome = ItemOutcome.UNAVAILABLE
                logger.info("[PAGE %d] Unavailable: %s", page.page_number, raw_title or "(untitled)")
            elif not raw_title:
                logger.warning("[PAGE %d] Row without a title; ignoring", page.page_number)
                continue
            else:
                item = Item.from_title(raw_title, page.url)
            items.append(item)
        logger.info("[PAGE %d] %d item row(s)", page.page_number, len(items))
        return items

    def _process_items(self, session: BrowserSession, page: PageDescriptor) -> None:
        for item in page.items:
            if item.outcome is ItemOutcome.UNAVAILABLE:
                self.stats.count_outcome(ItemOutcome.UNAVAILABLE)
                continue
            if self.settings.idempotency_enabled and self.index.contains(item.canonical_title):
                logger.info("[PAGE %d] Already downloaded, skipping: %s",
                            page.page_number, item.canonical_title)
                item.outcome = ItemOutcome.SKIPPED
            else:
                item.outcome = self.pipeline.run(session, item)
            self.stats.count_outcome(item.outcome)
