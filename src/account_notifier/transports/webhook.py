"""HTTP webhook transport posting composed messages as JSON."""

from __future__ import annotations

import logging
import threading

import httpx

from account_notifier.core.config import WebhookConfig
from account_notifier.exceptions import TransportError
from account_notifier.types import RenderedMessage
from account_notifier.utils.logging import get_logger
from account_notifier.utils.sanitization import sanitize_exception, sanitize_url

__all__ = ["WebhookTransport"]


class WebhookTransport:
    """Deliver messages to an HTTP endpoint.

    A single ``httpx.Client`` is shared by all worker threads; the client's
    connection pool is thread-safe.

    Example payload::

        {"from": "noreply@example.com", "to": "alice@example.com",
         "subject": "...", "body": "...", "html": true}
    """

    def __init__(
        self,
        config: WebhookConfig,
        *,
        client: httpx.Client | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._config: WebhookConfig = config
        self._client: httpx.Client = client or httpx.Client(
            timeout=config.timeout,
            headers=config.headers,
        )
        self._owns_client: bool = client is None
        self._close_lock: threading.Lock = threading.Lock()
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def name(self) -> str:
        return "webhook"

    def send(self, message: RenderedMessage) -> None:
        payload = {
            "from": message.sender,
            "to": message.recipient,
            "subject": message.subject,
            "body": message.body,
            "html": message.is_html,
        }
        try:
            response = self._client.post(self._config.url, json=payload)
            _ = response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"Webhook {sanitize_url(self._config.url)} returned HTTP {exc.response.status_code}",
                transport_name=self.name,
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                f"Webhook request to {sanitize_url(self._config.url)} failed: {sanitize_exception(exc)}",
                transport_name=self.name,
                cause=exc,
            ) from exc
        self._logger.debug("Webhook accepted message with HTTP %d", response.status_code)

    def close(self) -> None:
        with self._close_lock:
            if self._owns_client and not self._client.is_closed:
                self._client.close()
