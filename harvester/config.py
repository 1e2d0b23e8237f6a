"""Centralised settings for the kindle-harvest downloader.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).  CLI flags are layered
on top with :meth:`Settings.with_overrides`.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

# Load .env from the project root (one level up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

MAX_CONCURRENCY = 10


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value or None


def clamp_concurrency(value: int) -> int:
    """Clamp a requested worker count into ``[1, MAX_CONCURRENCY]``."""
    return max(1, min(int(value), MAX_CONCURRENCY))


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------
    username: Optional[str] = field(default_factory=lambda: _env_optional("AMAZON_USERNAME"))
    password: Optional[str] = field(default_factory=lambda: _env_optional("AMAZON_PASSWORD"))
    device: Optional[str] = field(default_factory=lambda: _env_optional("AMAZON_DEVICE"))
    totp_secret: Optional[str] = field(
        default_factory=lambda: _env_optional("AMAZON_TOTP_SECRET")
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    download_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("HARVEST_DOWNLOAD_DIR", Path.cwd() / "ebooks")
        ).resolve()
    )

    @property
    def index_path(self) -> Path:
        """Absolute path to the append-only download index."""
        return self.download_dir / "download_index.log"

    @property
    def log_path(self) -> Path:
        """Absolute path to the run log."""
        return self.download_dir / "harvest.log"

    # ------------------------------------------------------------------
    # Run behaviour
    # ------------------------------------------------------------------
    concurrency: int = field(
        default_factory=lambda: int(os.environ.get("HARVEST_CONCURRENCY", "3"))
    )
    idempotency_enabled: bool = field(
        default_factory=lambda: _env_bool("HARVEST_IDEMPOTENCY", "true")
    )
    max_pages: int = field(
        default_factory=lambda: int(os.environ.get("HARVEST_MAX_PAGES", "200"))
    )
    max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("HARVEST_MAX_ATTEMPTS", "3"))
    )
    retry_base: float = field(
        default_factory=lambda: float(os.environ.get("HARVEST_RETRY_BASE", "2.0"))
    )
    min_artifact_bytes: int = field(
        default_factory=lambda: int(os.environ.get("HARVEST_MIN_ARTIFACT_BYTES", "10240"))
    )

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("HARVEST_HEADLESS", "false"))
    browser: str = field(default_factory=lambda: os.environ.get("HARVEST_BROWSER", "firefox"))
    base_url: str = field(
        default_factory=lambda: os.environ.get("HARVEST_BASE_URL", "https://www.amazon.com")
    )
    listing_path: str = field(
        default_factory=lambda: os.environ.get(
            "HARVEST_LISTING_PATH",
            "/hz/mycd/digital-console/contentlist/booksPurchases/titleAsc/",
        )
    )
    next_page_selector: str = field(
        default_factory=lambda: os.environ.get("HARVEST_NEXT_PAGE_SELECTOR", "#page-{page}")
    )

    # ------------------------------------------------------------------
    # Bounded waits (seconds)
    # ------------------------------------------------------------------
    element_timeout: float = field(
        default_factory=lambda: float(os.environ.get("HARVEST_ELEMENT_TIMEOUT", "10"))
    )
    short_timeout: float = field(
        default_factory=lambda: float(os.environ.get("HARVEST_SHORT_TIMEOUT", "2"))
    )
    page_load_timeout: float = field(
        default_factory=lambda: float(os.environ.get("HARVEST_PAGE_LOAD_TIMEOUT", "30"))
    )
    poll_interval: float = 0.25

    def __post_init__(self) -> None:
        # max_pages < 1 would leave discovery unbounded.
        self.max_pages = max(1, int(self.max_pages))

    @property
    def listing_url(self) -> str:
        return self.base_url.rstrip("/") + self.listing_path

    @property
    def site_domain(self) -> str:
        """Registrable host the session cookies are scoped to, e.g. ``amazon.com``."""
        host = urlparse(self.base_url).hostname or ""
        return host[4:] if host.startswith("www.") else host

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "download_dir" in changes:
            changes["download_dir"] = Path(changes["download_dir"]).expanduser().resolve()
        return dataclasses.replace(self, **changes)

    def ensure_download_dir(self) -> None:
        """Create the download directory if it does not exist."""
        self.download_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton; import this everywhere:
#   from harvester.config import settings
settings = Settings()
