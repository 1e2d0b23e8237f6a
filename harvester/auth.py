"""Sign-in for the primary browser session.

``AuthController.sign_in`` submits the account credentials, answers the
one-time-password challenge when one is shown, and confirms that the account
landmark appears.  The authenticated identity then leaves the primary session
as an explicit :class:`~harvester.models.CredentialSnapshot` that worker
sessions replay.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from harvester.browser.base import BrowserSession, ElementNotFound, is_present
from harvester.config import Settings
from harvester.errors import FatalConfigError, LoginNotConfirmed, LoginRejected, MFAFailed
from harvester.models import CredentialSnapshot
from harvester.otp import OtpProvider, provider_from_secret
from harvester.selectors import DEFAULT_SELECTORS, SiteSelectors

logger = logging.getLogger(__name__)

MFA_ATTEMPTS = 3


@dataclass(frozen=True)
class CredentialStore:
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    otp_provider: Optional[OtpProvider] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, config: Settings) -> "CredentialStore":
        return cls(
            username=config.username,
            password=config.password,
            otp_provider=provider_from_secret(config.totp_secret),
        )

    @property
    def has_login(self) -> bool:
        return bool(self.username and self.password)


class AuthController:
    """Authenticates one session against the console."""

    def __init__(
        self,
        credentials: CredentialStore,
        config: Settings,
        selectors: SiteSelectors = DEFAULT_SELECTORS,
    ) -> None:
        self.credentials = credentials
        self.settings = config
        self.selectors = selectors

    def sign_in(self, session: BrowserSession) -> None:
        """Sign *session* in.

        Raises:
            FatalConfigError: A TOTP challenge appeared but no secret is configured.
            LoginRejected: The form reported an error for the credentials.
            MFAFailed: Every TOTP attempt was rejected.
            LoginNotConfirmed: The account landmark never appeared.
        """
        sel = self.selectors
        if self.credentials.has_login:
            logger.info("[AUTH] Signing in as %s", self.credentials.username)
            session.find(sel.email_input, timeout=self.settings.element_timeout).fill(
                self.credentials.username or ""
            )
            # Two-step form: the password field appears after "Continue".
            if not is_present(
                session, sel.password_input, self.settings.short_timeout, visible=True
            ):
                session.find(sel.email_continue).click()
            session.find(sel.password_input, timeout=self.settings.element_timeout).fill(
                self.credentials.password or ""
            )
            session.find(sel.sign_in_submit).click()

            if is_present(session, sel.sign_in_error, self.settings.short_timeout):
                raise LoginRejected("sign-in form reported an error")

            if is_present(session, sel.mfa_code_input, self.settings.element_timeout):
                self._answer_mfa(session)
        else:
            logger.info("[AUTH] No credentials configured; expecting an existing session")

        try:
            session.find(sel.login_landmark, visible=False, timeout=self.settings.element_timeout)
        except ElementNotFound as exc:
            raise LoginNotConfirmed(
                f"landmark {sel.login_landmark!r} not found after sign-in"
            ) from exc
        logger.info("[AUTH] Signed in")

    def _answer_mfa(self, session: BrowserSession) -> None:
        provider = self.credentials.otp_provider
        if provider is None:
            logger.error("[AUTH] TOTP required but not configured")
            raise FatalConfigError("MFA challenge presented but no TOTP secret is configured")

        sel = self.selectors
        for attempt in range(1, MFA_ATTEMPTS + 1):
            code_input = session.find(sel.mfa_code_input, timeout=self.settings.element_timeout)
            code_input.fill(provider.current_code())
            session.find(sel.mfa_submit).click()

            if not is_present(session, sel.mfa_error, self.settings.short_timeout):
                logger.info("[AUTH] TOTP accepted (attempt %d/%d)", attempt, MFA_ATTEMPTS)
                return
            logger.warning("[AUTH] TOTP verification failed (attempt %d/%d)", attempt, MFA_ATTEMPTS)

        raise MFAFailed(f"TOTP rejected {MFA_ATTEMPTS} times")

    def export_credential_snapshot(self, session: BrowserSession) -> CredentialSnapshot:
        """Capture *session*'s cookies for replay into worker sessions."""
        snapshot = CredentialSnapshot(
            domain=self.settings.site_domain,
            cookies=tuple(session.cookies()),
        )
        logger.debug("[AUTH] Captured %d cookie(s)", len(snapshot.cookies))
        return snapshot
