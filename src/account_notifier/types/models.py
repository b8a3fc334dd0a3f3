"""Data models for the account notifier.

This module defines immutable dataclasses passed between the dispatcher,
the message catalog and the transports.
"""

from dataclasses import dataclass
from enum import StrEnum


class NotificationKind(StrEnum):
    """Kinds of account notifications the dispatcher can send."""

    TEMP_PASSWORD_ISSUED = "temp-password-issued"
    PASSWORD_RESET_CONFIRMATION = "password-reset-confirmation"
    PASSWORD_RESET_LINK_REQUEST = "password-reset-link-request"

    @property
    def template_key(self) -> str:
        """Catalog key holding the subject and body templates for this kind."""
        return _TEMPLATE_KEYS[self]


_TEMPLATE_KEYS: dict[NotificationKind, str] = {
    NotificationKind.TEMP_PASSWORD_ISSUED: "temp_password",
    NotificationKind.PASSWORD_RESET_CONFIRMATION: "password_reset",
    NotificationKind.PASSWORD_RESET_LINK_REQUEST: "password_reset_link",
}


@dataclass(slots=True, frozen=True)
class NotificationRequest:
    """Immutable request for a single notification.

    Created per dispatcher call and consumed by exactly one worker. The
    params tuple is ordered: the message catalog substitutes ``{0}``,
    ``{1}``, ... positionally into both subject and body.
    """

    kind: NotificationKind
    recipient: str
    locale: str
    params: tuple[str, ...]
    correlation_id: str


@dataclass(slots=True, frozen=True)
class RenderedMessage:
    """Composed message ready to be handed to a transport."""

    subject: str
    body: str
    sender: str
    recipient: str
    is_html: bool = True
