"""High-level runner for one harvest.

``run_harvest`` is the single public function in this module.  It signs the
primary session in, discovers the listing pages, closes the primary session,
then hands the pages to the orchestrator.  Run-fatal errors
(:class:`~harvester.errors.FatalConfigError`, :class:`~harvester.errors.AuthError`
on the primary session) propagate to the caller before any retrieval starts.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from harvester.auth import AuthController, CredentialStore
from harvester.config import Settings
from harvester.discovery import PageDiscovery
from harvester.index import DownloadIndex
from harvester.models import RunResult, RunStats
from harvester.orchestrator import ConcurrencyOrchestrator
from harvester.pipeline import ItemDownloadPipeline
from harvester.selectors import DEFAULT_SELECTORS, SiteSelectors
from harvester.sessions import SessionFactory, SessionOpener

logger = logging.getLogger(__name__)


@dataclass
class HarvestReport:
    urls: List[str] = field(default_factory=list)
    pages: RunResult = field(default_factory=dict)
    stats: RunStats = field(default_factory=RunStats)

    @property
    def ok(self) -> bool:
        """``False`` if any completed download could not be recorded."""
        return self.stats.index_errors == 0


def _default_opener(config: Settings) -> SessionOpener:
    from harvester.browser.playwright_session import open_session  # noqa: PLC0415

    return functools.partial(open_session, config)


def run_harvest(
    config: Settings,
    opener: Optional[SessionOpener] = None,
    selectors: SiteSelectors = DEFAULT_SELECTORS,
) -> HarvestReport:
    """Run one complete sign-in → discovery → retrieval cycle.

    Args:
        config: Resolved settings for this run.
        opener: Zero-argument callable returning a fresh browser session.
            Defaults to a Playwright session built from *config*.
        selectors: Site selectors (overridable for tests).

    Returns:
        A :class:`HarvestReport` with the discovered URLs, contributing pages
        and run counters.
    """
    config.ensure_download_dir()
    factory = SessionFactory(opener or _default_opener(config), config, selectors)
    index = DownloadIndex(config.index_path, config.download_dir)
    report = HarvestReport()

    if not config.idempotency_enabled:
        logger.info("[RUN] Idempotency disabled; clearing the download index")
        index.reset()

    # ------------------------------------------------------------------
    # Primary session: sign in, capture identity, discover pages
    # ------------------------------------------------------------------
    auth = AuthController(CredentialStore.from_settings(config), config, selectors)
    primary = factory.open()
    try:
        primary.navigate(config.listing_url)
        auth.sign_in(primary)
        snapshot = auth.export_credential_snapshot(primary)
        if primary.current_url.rstrip("/") != config.listing_url.rstrip("/"):
            primary.navigate(config.listing_url)
        report.urls = PageDiscovery(config, selectors).discover(primary)
    finally:
        primary.close()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------
    pipeline = ItemDownloadPipeline(index, config, selectors)
    orchestrator = ConcurrencyOrchestrator(
        factory, index, pipeline, snapshot, config, selectors, stats=report.stats
    )
    report.pages = orchestrator.run(report.urls)

    logger.info("[RUN] Finished: %s", report.stats.as_dict())
    return report
