"""Concurrent downloader for purchased e-books in the content console.

Public API::

    from harvester import run_harvest, settings
    report = run_harvest(settings)
"""

from harvester.config import settings
from harvester.runner import HarvestReport, run_harvest

__all__ = ["HarvestReport", "run_harvest", "settings"]
