"""Exception hierarchy for the harvest run.

Where an error is handled decides how far it reaches: item errors stay with
the item, page errors with the page, and only :class:`FatalConfigError` and an
:class:`AuthError` on the primary session end the run.
"""

from __future__ import annotations


class HarvestError(Exception):
    """Base class for every error raised by the harvester."""


class FatalConfigError(HarvestError):
    """The run cannot proceed with the current configuration (e.g. MFA without a TOTP secret)."""


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class AuthError(HarvestError):
    """Sign-in failed or an authenticated session lost its identity."""


class LoginRejected(AuthError):
    """The sign-in form reported an error for the submitted credentials."""


class MFAFailed(AuthError):
    """Every one-time-password attempt was rejected."""


class LoginNotConfirmed(AuthError):
    """The post-login landmark never appeared."""


class LostAuthentication(AuthError):
    """A cloned session shows the sign-in control after cookie replay."""


# ---------------------------------------------------------------------------
# UI / item
# ---------------------------------------------------------------------------

class TransientUIError(HarvestError):
    """Content or a control was not ready in time; safe to retry."""


class OverlayDismissError(TransientUIError):
    """The download confirmation overlay survived every dismissal strategy."""


class PermanentItemError(HarvestError):
    """An item cannot be downloaded (unavailable, or retries exhausted)."""


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

class IndexWriteError(HarvestError):
    """Appending to the download index failed."""
