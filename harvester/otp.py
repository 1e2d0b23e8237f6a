"""One-time-password providers for the MFA step of sign-in."""

from __future__ import annotations

from typing import Optional, Protocol

import pyotp


class OtpProvider(Protocol):
    def current_code(self) -> str: ...


class TotpProvider:
    """RFC 6238 codes derived from the account's base32 TOTP secret."""

    def __init__(self, secret: str) -> None:
        self._totp = pyotp.TOTP(secret.replace(" ", "").upper())

    def current_code(self) -> str:
        return self._totp.now()


def provider_from_secret(secret: Optional[str]) -> Optional[TotpProvider]:
    """Return a :class:`TotpProvider`, or ``None`` when no secret is configured."""
    return TotpProvider(secret) if secret else None
