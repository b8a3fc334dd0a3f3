"""Transports delivering composed notifications."""

from __future__ import annotations

from account_notifier.core.config import TransportConfig, TransportKind
from account_notifier.types import Transport

from .dry_run import DryRunTransport
from .smtp import SmtpTransport
from .webhook import WebhookTransport

__all__ = [
    "DryRunTransport",
    "SmtpTransport",
    "WebhookTransport",
    "create_transport",
]


def create_transport(config: TransportConfig, *, dry_run: bool = False) -> Transport:
    """Instantiate the configured transport.

    Dry-run mode always wins over the configured kind.
    """
    if dry_run or config.kind is TransportKind.DRY_RUN:
        return DryRunTransport()
    if config.kind is TransportKind.SMTP and config.smtp is not None:
        return SmtpTransport(config.smtp)
    if config.kind is TransportKind.WEBHOOK and config.webhook is not None:
        return WebhookTransport(config.webhook)
    raise ValueError(f"Transport '{config.kind}' is not configured")
