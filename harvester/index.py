"""Durable, thread-safe record of completed downloads.

The index is a plain text log next to the downloaded books, one record per
line::

    the_great_gatsby::2026-10-17T09:12:44.120391+00:00

An item counts as done when the log holds at least one record for its
canonical title *or* when a downloaded file whose canonicalised name equals
the title already sits in the download directory.  Every public method runs
under one lock shared by all workers.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from harvester.errors import IndexWriteError
from harvester.models import IndexRecord, canonicalize

logger = logging.getLogger(__name__)

# Browser scratch files for downloads still in flight.
_PARTIAL_SUFFIXES = {".part", ".crdownload", ".tmp"}


class DownloadIndex:
    """Append-only download log plus artifact lookup in ``download_dir``."""

    def __init__(self, index_path: Path, download_dir: Optional[Path] = None) -> None:
        self.index_path = Path(index_path)
        self.download_dir = Path(download_dir) if download_dir else self.index_path.parent
        self._lock = threading.Lock()
        self._titles: Optional[set[str]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def contains(self, canonical_title: str) -> bool:
        """Return ``True`` if *canonical_title* was recorded or its file exists."""
        with self._lock:
            if canonical_title in self._recorded_titles():
                return True
            return bool(self._find_artifacts(canonical_title))

    def record(self, canonical_title: str) -> IndexRecord:
        """Append a completion record for *canonical_title*.

        Raises:
            IndexWriteError: If the record could not be written durably.
        """
        entry = IndexRecord(canonical_title, datetime.now(timezone.utc))
        with self._lock:
            try:
                self.index_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.index_path, "a", encoding="utf-8") as fh:
                    fh.write(entry.to_line() + "\n")
                    fh.flush()
                    os.fsync(fh.fileno())
            except OSError as exc:
                raise IndexWriteError(
                    f"could not record {canonical_title!r} in {self.index_path}: {exc}"
                ) from exc
            self._recorded_titles().add(canonical_title)
        logger.debug("[INDEX] Recorded %s", canonical_title)
        return entry

    def reset(self) -> None:
        """Clear the log.  Downloaded files are left alone."""
        with self._lock:
            try:
                self.index_path.parent.mkdir(parents=True, exist_ok=True)
                self.index_path.write_text("", encoding="utf-8")
            except OSError as exc:
                raise IndexWriteError(f"could not reset {self.index_path}: {exc}") from exc
            self._titles = set()
        logger.info("[INDEX] Reset %s", self.index_path)

    def records(self) -> List[IndexRecord]:
        """Return every well-formed record in file order."""
        with self._lock:
            return self._read_records()

    def artifacts_for(self, canonical_title: str) -> List[Path]:
        """Return downloaded files (partial ones included) belonging to *canonical_title*."""
        with self._lock:
            return self._find_artifacts(canonical_title, include_partial=True)

    def remove_partial_artifacts(self, canonical_title: str, min_bytes: int) -> List[Path]:
        """Delete files for *canonical_title* smaller than *min_bytes*; return what was removed."""
        removed: List[Path] = []
        with self._lock:
            for path in self._find_artifacts(canonical_title, include_partial=True):
                try:
                    if path.stat().st_size < min_bytes:
                        path.unlink()
                        removed.append(path)
                except FileNotFoundError:
                    continue
        for path in removed:
            logger.warning("[INDEX] Removed truncated download %s", path.name)
        return removed

    # ------------------------------------------------------------------
    # Internals (lock held by caller)
    # ------------------------------------------------------------------

    def _recorded_titles(self) -> set[str]:
        if self._titles is None:
            self._titles = {r.canonical_title for r in self._read_records()}
        return self._titles

    def _read_records(self) -> List[IndexRecord]:
        if not self.index_path.exists():
            return []
        out: List[IndexRecord] = []
        with open(self.index_path, "r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    out.append(IndexRecord.from_line(line))
                except ValueError:
                    logger.warning("[INDEX] Skipping malformed line %d in %s", lineno, self.index_path.name)
        return out

    def _find_artifacts(self, canonical_title: str, include_partial: bool = False) -> List[Path]:
        if not canonical_title or not self.download_dir.is_dir():
            return []
        matches: List[Path] = []
        for path in self.download_dir.iterdir():
            if not path.is_file() or path == self.index_path or path.suffix == ".log":
                continue
            stem = path.name
            partial = path.suffix.lower() in _PARTIAL_SUFFIXES
            if partial:
                if not include_partial:
                    continue
                stem = path.stem
            if canonicalize(Path(stem).stem) == canonical_title:
                matches.append(path)
        return matches
