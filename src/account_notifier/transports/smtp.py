"""SMTP transport for composed account notifications."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import make_msgid

from account_notifier.core.config import SmtpConfig
from account_notifier.exceptions import TransportError
from account_notifier.types import RenderedMessage
from account_notifier.utils.logging import get_logger
from account_notifier.utils.sanitization import sanitize_exception

__all__ = ["SmtpTransport", "build_email"]


def build_email(message: RenderedMessage) -> EmailMessage:
    """Convert a rendered message into a UTF-8 MIME message."""
    email = EmailMessage()
    email["Subject"] = message.subject
    email["From"] = message.sender
    email["To"] = message.recipient
    email["Message-ID"] = make_msgid(domain=message.sender.rpartition("@")[2] or None)
    if message.is_html:
        email.set_content(message.body, subtype="html", charset="utf-8")
    else:
        email.set_content(message.body, charset="utf-8")
    return email


class SmtpTransport:
    """Send messages over SMTP, one connection per message.

    Opening a connection per send keeps the transport safe to share between
    worker threads without any locking.
    """

    def __init__(
        self,
        config: SmtpConfig,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._config: SmtpConfig = config
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def name(self) -> str:
        return "smtp"

    def send(self, message: RenderedMessage) -> None:
        email = build_email(message)
        try:
            with smtplib.SMTP(
                self._config.host, self._config.port, timeout=self._config.timeout
            ) as server:
                if self._config.use_tls:
                    _ = server.starttls(context=ssl.create_default_context())
                if self._config.username and self._config.password:
                    _ = server.login(self._config.username, self._config.password)
                _ = server.send_message(email)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(
                f"SMTP delivery to {self._config.host}:{self._config.port} failed: "
                f"{sanitize_exception(exc)}",
                transport_name=self.name,
                cause=exc,
            ) from exc
        self._logger.debug("Handed message to %s:%d", self._config.host, self._config.port)

    def close(self) -> None:
        """Nothing to release; connections are per message."""
