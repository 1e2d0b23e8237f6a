"""Browser package: the session protocol and its Playwright implementation."""

from harvester.browser.base import (
    BrowserElement,
    BrowserError,
    BrowserSession,
    ElementNotFound,
    WaitTimeout,
    is_present,
)

__all__ = [
    "BrowserElement",
    "BrowserError",
    "BrowserSession",
    "ElementNotFound",
    "WaitTimeout",
    "is_present",
]
