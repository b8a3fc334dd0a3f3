"""Fire-and-forget dispatcher for account notifications.

Each public operation validates its arguments on the calling thread, wraps
render + transmit into a unit of work and submits it to the worker pool. The
caller returns before rendering starts. Failures that happen later, on the
worker thread, are logged and counted but never reach the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import uuid4

from account_notifier.core.config import MessagingConfig
from account_notifier.core.pool import CancellationToken, WorkerPool, WorkHandle
from account_notifier.core.waiter import await_result
from account_notifier.exceptions import (
    PoolClosedError,
    QueueFullError,
    TransportError,
    ValidationError,
)
from account_notifier.types import (
    MessageRenderer,
    NotificationKind,
    NotificationRequest,
    RenderedMessage,
    Transport,
)
from account_notifier.utils.logging import (
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)
from account_notifier.utils.sanitization import sanitize_exception

__all__ = ["DispatchStats", "NotificationDispatcher"]

type CorrelationIDFactory = Callable[[], str]

RESET_PASSWORD_FRAGMENT = "#resetPassword="


@dataclass(slots=True, frozen=True)
class DispatchStats:
    """Snapshot of dispatcher counters."""

    submitted: int = 0
    rejected: int = 0
    delivered: int = 0
    failed: int = 0
    cancelled: int = 0


class NotificationDispatcher:
    """Submit account notifications to the worker pool without blocking."""

    def __init__(
        self,
        pool: WorkerPool,
        renderer: MessageRenderer,
        transport: Transport,
        settings: MessagingConfig,
        *,
        send_timeout: float = 0.0,
        correlation_id_factory: CorrelationIDFactory | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._pool: WorkerPool = pool
        self._renderer: MessageRenderer = renderer
        self._transport: Transport = transport
        self._settings: MessagingConfig = settings
        self._send_timeout: float = send_timeout
        self._correlation_id_factory: CorrelationIDFactory = (
            correlation_id_factory or (lambda: uuid4().hex)
        )
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._stats_lock: threading.Lock = threading.Lock()
        self._counters: dict[str, int] = dict.fromkeys(
            ("submitted", "rejected", "delivered", "failed", "cancelled"), 0
        )

    @property
    def stats(self) -> DispatchStats:
        with self._stats_lock:
            return DispatchStats(**self._counters)

    def send_temp_password(
        self, username: str, password: str, email: str
    ) -> WorkHandle[None] | None:
        """Send the temporary password issued for a new account."""
        _require("username", username)
        _require("password", password)
        return self.notify(
            NotificationKind.TEMP_PASSWORD_ISSUED,
            email,
            (
                self._settings.app_name,
                self._settings.app_base_url,
                self._settings.app_name,
                username,
                password,
            ),
        )

    def send_password_after_reset(
        self, username: str, password: str, email: str
    ) -> WorkHandle[None] | None:
        """Send the new temporary password after an administrative reset."""
        _require("username", username)
        _require("password", password)
        return self.notify(
            NotificationKind.PASSWORD_RESET_CONFIRMATION,
            email,
            (
                self._settings.app_name,
                username,
                self._settings.app_base_url,
                self._settings.app_name,
                password,
            ),
        )

    def send_password_reset_link(
        self, reminder_hash: str, username: str, email: str
    ) -> WorkHandle[None] | None:
        """Send a password recovery link carrying the reminder hash."""
        _require("reminder_hash", reminder_hash)
        _require("username", username)
        return self.notify(
            NotificationKind.PASSWORD_RESET_LINK_REQUEST,
            email,
            (
                self._settings.app_name,
                username,
                self._settings.app_name,
                f"{self._settings.app_base_url}{RESET_PASSWORD_FRAGMENT}{reminder_hash}",
            ),
        )

    def notify(
        self,
        kind: NotificationKind | str,
        recipient: str,
        params: Sequence[str],
    ) -> WorkHandle[None] | None:
        """Queue a notification for asynchronous rendering and delivery.

        Args:
            kind: Notification kind or its string value
            recipient: Destination address
            params: Ordered template parameters

        Returns:
            Handle of the queued unit of work, or None if the pool refused it

        Raises:
            ValidationError: If the request is malformed; nothing is queued
        """
        request = self._build_request(kind, recipient, params)
        token = CancellationToken()

        try:
            handle = self._pool.submit(
                lambda: self._deliver(request, token),
                token=token,
                name=f"{request.kind.value}-{request.correlation_id}",
            )
        except (PoolClosedError, QueueFullError) as exc:
            self._increment("rejected")
            log_with_context(
                self._logger,
                logging.ERROR,
                "Notification rejected by worker pool",
                extra={
                    "kind": request.kind.value,
                    "recipient": request.recipient,
                    "notification_id": request.correlation_id,
                    "error_message": sanitize_exception(exc),
                },
            )
            return None

        self._increment("submitted")
        log_with_context(
            self._logger,
            logging.DEBUG,
            "Notification queued",
            extra={
                "kind": request.kind.value,
                "recipient": request.recipient,
                "notification_id": request.correlation_id,
            },
        )
        return handle

    def call_with_timeout[T](self, work: Callable[[], T], timeout: float | None = None) -> T:
        """Run ``work`` on the pool and wait for its result.

        Args:
            work: Zero-argument callable
            timeout: Deadline in seconds; defaults to the configured send timeout

        Raises:
            PoolClosedError: If the pool does not accept work
            TimeoutError: If the deadline elapsed
            InterruptedError: If the work was cancelled elsewhere
        """
        handle = self._pool.submit(work)
        return await_result(handle, self._send_timeout if timeout is None else timeout)

    def _build_request(
        self,
        kind: NotificationKind | str,
        recipient: str,
        params: Sequence[str],
    ) -> NotificationRequest:
        try:
            resolved_kind = NotificationKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown notification kind: {kind!r}", field="kind") from None

        _require("recipient", recipient)
        if isinstance(params, str):
            raise ValidationError("Template parameters must be a sequence of strings", field="params")
        for index, value in enumerate(params):
            _require(f"params[{index}]", value)

        return NotificationRequest(
            kind=resolved_kind,
            recipient=recipient.strip(),
            locale=self._settings.locale,
            params=tuple(params),
            correlation_id=self._correlation_id_factory(),
        )

    def _deliver(self, request: NotificationRequest, token: CancellationToken) -> None:
        context_token = set_correlation_id(request.correlation_id)
        start = time.perf_counter()
        extra: dict[str, object] = {
            "kind": request.kind.value,
            "recipient": request.recipient,
            "transport": self._transport.name,
        }
        try:
            if token.cancelled:
                self._record_cancelled(extra, "before rendering")
                return

            try:
                subject, body = self._renderer.render(
                    request.kind.template_key, request.locale, request.params
                )
            except Exception as exc:
                self._record_failure(extra, "Failed to render notification", exc)
                return

            if token.cancelled:
                self._record_cancelled(extra, "before sending")
                return

            message = RenderedMessage(
                subject=subject,
                body=body,
                sender=self._settings.mail_from,
                recipient=request.recipient,
            )
            try:
                self._transport.send(message)
            except TransportError as exc:
                self._record_failure(extra, "Notification delivery failed", exc)
                return
            except Exception as exc:
                self._record_failure(
                    extra, "Unexpected error while sending notification", exc, with_traceback=True
                )
                return

            self._increment("delivered")
            log_with_context(
                self._logger,
                logging.INFO,
                "Notification delivered",
                extra={**extra, "delivery_time_ms": (time.perf_counter() - start) * 1000.0},
            )
        finally:
            reset_correlation_id(context_token)

    def _record_failure(
        self,
        extra: dict[str, object],
        message: str,
        exc: Exception,
        *,
        with_traceback: bool = False,
    ) -> None:
        self._increment("failed")
        log_with_context(
            self._logger,
            logging.ERROR,
            message,
            extra={
                **extra,
                "error_message": sanitize_exception(exc),
                "exception_type": type(exc).__name__,
            },
            exc_info=exc if with_traceback else None,
        )

    def _record_cancelled(self, extra: dict[str, object], stage: str) -> None:
        self._increment("cancelled")
        log_with_context(
            self._logger,
            logging.INFO,
            f"Notification cancelled {stage}",
            extra=extra,
        )

    def _increment(self, counter: str) -> None:
        with self._stats_lock:
            self._counters[counter] += 1


def _require(field: str, value: object) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
