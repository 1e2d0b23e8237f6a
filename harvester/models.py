"""Data models shared by the harvest pipeline."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

_NON_TITLE_CHARS = re.compile(r"[^a-z0-9\s]", re.ASCII)
_WHITESPACE_RUN = re.compile(r"\s+", re.ASCII)
_UNDERSCORE_RUN = re.compile(r"_+")


def canonicalize(title: Optional[str]) -> str:
    """Normalise a display title into the idempotency key.

    ``"My Book: Part Two!"`` and ``"my   book part two"`` both become
    ``"my_book_part_two"``.
    """
    if not title:
        return ""
    key = _NON_TITLE_CHARS.sub("", title.lower())
    key = _WHITESPACE_RUN.sub("_", key)
    key = _UNDERSCORE_RUN.sub("_", key)
    if key.endswith("_"):
        key = key[:-1]
    return key


class Availability(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class ItemOutcome(str, Enum):
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass
class Item:
    """One row of the owned-items listing."""

    raw_title: str
    canonical_title: str
    page_url: str
    availability: Availability = Availability.AVAILABLE
    outcome: Optional[ItemOutcome] = None

    @classmethod
    def from_title(
        cls,
        raw_title: str,
        page_url: str,
        availability: Availability = Availability.AVAILABLE,
    ) -> "Item":
        return cls(
            raw_title=raw_title,
            canonical_title=canonicalize(raw_title),
            page_url=page_url,
            availability=availability,
        )


_CONTRIBUTING = {ItemOutcome.DOWNLOADED, ItemOutcome.SKIPPED, ItemOutcome.UNAVAILABLE}


@dataclass
class PageDescriptor:
    """A listing page: its discovery number, URL and the items found on it."""

    page_number: int
    url: str
    items: List[Item] = field(default_factory=list)
    confirmed_empty: bool = False

    @property
    def contributes(self) -> bool:
        """``True`` if the page belongs in the run result."""
        if self.confirmed_empty:
            return True
        return any(item.outcome in _CONTRIBUTING for item in self.items)


@dataclass(frozen=True)
class IndexRecord:
    canonical_title: str
    completed_at: datetime

    def to_line(self) -> str:
        return f"{self.canonical_title}::{self.completed_at.isoformat()}"

    @classmethod
    def from_line(cls, line: str) -> "IndexRecord":
        """Parse ``title::timestamp``.

        Raises:
            ValueError: If the line is not a well-formed record.
        """
        title, sep, stamp = line.strip().partition("::")
        if not sep or not title:
            raise ValueError(f"malformed index line: {line!r}")
        return cls(canonical_title=title, completed_at=datetime.fromisoformat(stamp))


@dataclass(frozen=True)
class CredentialSnapshot:
    """Cookies captured from an authenticated session, replayable elsewhere."""

    domain: str
    cookies: Tuple[Mapping[str, Any], ...] = ()

    def scoped_cookies(self) -> List[Dict[str, Any]]:
        """Return copies of the cookies that belong to :attr:`domain`."""
        scoped: List[Dict[str, Any]] = []
        for cookie in self.cookies:
            cookie_domain = str(cookie.get("domain", "")).lstrip(".")
            if cookie_domain == self.domain or cookie_domain.endswith("." + self.domain):
                scoped.append(dict(cookie))
        return scoped


RunResult = Dict[int, PageDescriptor]


@dataclass
class RunStats:
    """Counters shared by all workers of one run."""

    pages_discovered: int = 0
    pages_abandoned: int = 0
    downloaded: int = 0
    skipped: int = 0
    unavailable: int = 0
    failed: int = 0
    index_errors: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def bump(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def count_outcome(self, outcome: ItemOutcome) -> None:
        self.bump(outcome.value)

    def as_dict(self) -> Dict[str, int]:
        with self._lock:
            return {
                "pages_discovered": self.pages_discovered,
                "pages_abandoned": self.pages_abandoned,
                "downloaded": self.downloaded,
                "skipped": self.skipped,
                "unavailable": self.unavailable,
                "failed": self.failed,
                "index_errors": self.index_errors,
            }
