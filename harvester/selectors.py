"""Selectors and text markers for the content console pages.

Kept in one value object so a markup change on the site is a one-place edit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class SiteSelectors:
    # Sign-in
    email_input: str = "#ap_email"
    email_continue: str = "#continue"
    password_input: str = "#ap_password"
    sign_in_submit: str = "#signInSubmit"
    sign_in_error: str = "#auth-error-message-box"
    sign_in_control: str = "#ap_email, a[data-nav-role='signin']"
    mfa_code_input: str = "#auth-mfa-otpcode"
    mfa_submit: str = "#auth-signin-button"
    mfa_error: str = "#auth-error-message-box"
    login_landmark: str = "#nav-tools"

    # Listing
    item_row: str = ".ListItem-module_row__3orql"
    item_title: str = ".digital_entity_title"
    empty_indicator: str = "#no-content-message, .content-empty, .server-busy"
    unavailable_markers: Tuple[str, ...] = (
        "This title is unavailable for download and transfer",
        "not available for download",
    )

    # Download action sequence
    item_menu: str = ".dropdown_title"
    transfer_option: str = "span"
    transfer_option_text: str = "Download & transfer via USB"
    device_option: str = "li"
    device_radio: str = "input"
    download_button: str = "span"
    download_button_text: str = "Download"

    # Confirmation overlay
    overlay_dismiss: str = "#notification-close"
    overlay_backdrop: str = ".a-modal-scroller, [class*='Modal-module_backdrop']"


DEFAULT_SELECTORS = SiteSelectors()
