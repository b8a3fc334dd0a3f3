"""Transport that records messages in the log instead of sending them."""

from __future__ import annotations

import logging

from account_notifier.types import RenderedMessage
from account_notifier.utils.logging import get_logger, log_with_context

__all__ = ["DryRunTransport"]


class DryRunTransport:
    """Log composed messages; nothing leaves the process."""

    def __init__(self, *, logger_obj: logging.Logger | None = None) -> None:
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def name(self) -> str:
        return "dry_run"

    def send(self, message: RenderedMessage) -> None:
        # Bodies carry passwords and reset links, so only metadata is logged
        log_with_context(
            self._logger,
            logging.INFO,
            "Dry-run notification recorded",
            extra={
                "sender": message.sender,
                "recipient": message.recipient,
                "subject": message.subject,
                "body_length": len(message.body),
                "is_html": message.is_html,
            },
        )

    def close(self) -> None:
        pass
