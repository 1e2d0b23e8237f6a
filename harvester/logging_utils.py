"""Logging setup for a harvest run.

One timestamped stream goes to stderr and to ``harvest.log`` in the download
directory.  The standard handlers serialise writes, so worker threads can log
freely.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] %(levelname)s [%(threadName)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("asyncio", "urllib3")


def configure_logging(
    log_path: Optional[Path] = None,
    *,
    level: int = logging.INFO,
    fresh: bool = False,
) -> None:
    """Install the stderr and file handlers on the root logger.

    Args:
        log_path: File to append to; ``None`` logs to stderr only.
        level: Root log level.
        fresh: Delete an existing log file first (``--debug`` runs).
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if fresh:
            log_path.unlink(missing_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
