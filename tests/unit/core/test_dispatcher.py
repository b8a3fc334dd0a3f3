"""Unit tests for the notification dispatcher.

The dispatcher is exercised against a real worker pool with in-memory
transport and renderer doubles from conftest.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

import pytest

from account_notifier.core.config import MessagingConfig, OverflowPolicy
from account_notifier.core.dispatcher import NotificationDispatcher
from account_notifier.core.pool import WorkerPool
from account_notifier.exceptions import ValidationError
from account_notifier.types import NotificationKind, RenderedMessage
from account_notifier.utils.template import MessageCatalog

if TYPE_CHECKING:
    from tests.conftest import BlockingRenderer, FailingTransport, RecordingTransport


def _drain(pool: WorkerPool) -> None:
    pool.shutdown(5.0)


@pytest.fixture
def dispatcher(
    pool: WorkerPool,
    catalog: MessageCatalog,
    recording_transport: RecordingTransport,
    messaging_settings: MessagingConfig,
) -> NotificationDispatcher:
    return NotificationDispatcher(
        pool,
        catalog,
        recording_transport,
        messaging_settings,
        send_timeout=2.0,
        correlation_id_factory=lambda: "corr-1",
    )


@pytest.mark.unit
class TestTypedOperations:
    """Test the three account notification operations."""

    def test_send_temp_password(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        recording_transport: RecordingTransport,
    ) -> None:
        """Test the temporary password mail carries link, username and password."""
        handle = dispatcher.send_temp_password("alice", "Tmp-1234", "alice@example.com")

        assert handle is not None
        _drain(pool)

        [message] = recording_transport.messages
        assert isinstance(message, RenderedMessage)
        assert message.recipient == "alice@example.com"
        assert message.sender == "noreply@example.com"
        assert message.subject == "Example Portal: your temporary password"
        assert "Hello alice" in message.body
        assert '<a href="https://portal.example.com/">Example Portal</a>' in message.body
        assert "Tmp-1234" in message.body

    def test_send_password_after_reset(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        recording_transport: RecordingTransport,
    ) -> None:
        """Test the reset confirmation carries the new password."""
        _ = dispatcher.send_password_after_reset("bob", "N3w-pass", "bob@example.com")
        _drain(pool)

        [message] = recording_transport.messages
        assert message.recipient == "bob@example.com"
        assert "Hello bob" in message.body
        assert "has been reset" in message.body
        assert "N3w-pass" in message.body

    def test_send_password_reset_link(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        recording_transport: RecordingTransport,
    ) -> None:
        """Test the recovery link is base URL + fragment + reminder hash."""
        _ = dispatcher.send_password_reset_link("4f2a9c", "carol", "carol@example.com")
        _drain(pool)

        [message] = recording_transport.messages
        assert message.subject == "Example Portal: password recovery"
        assert "https://portal.example.com/#resetPassword=4f2a9c" in message.body
        assert "Hello carol" in message.body

    @pytest.mark.parametrize(
        ("operation", "args", "field"),
        [
            ("send_temp_password", ("", "pw", "a@example.com"), "username"),
            ("send_temp_password", ("alice", "  ", "a@example.com"), "password"),
            ("send_password_after_reset", ("alice", "pw", ""), "recipient"),
            ("send_password_reset_link", ("", "alice", "a@example.com"), "reminder_hash"),
            ("send_password_reset_link", ("hash", "", "a@example.com"), "username"),
        ],
    )
    def test_invalid_arguments_rejected_synchronously(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        operation: str,
        args: tuple[str, str, str],
        field: str,
    ) -> None:
        """Test malformed requests raise before anything is queued."""
        send: Callable[..., object] = getattr(dispatcher, operation)

        with pytest.raises(ValidationError) as exc_info:
            _ = send(*args)

        assert exc_info.value.field == field
        assert pool.pending_count == 0
        assert dispatcher.stats.submitted == 0


@pytest.mark.unit
class TestNotify:
    """Test the generic notify operation."""

    def test_accepts_kind_string(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        recording_transport: RecordingTransport,
    ) -> None:
        """Test the kind may be given as its string value."""
        _ = dispatcher.notify(
            "password-reset-link-request",
            "dave@example.com",
            ["Portal", "dave", "Portal", "https://x.example/#resetPassword=h"],
        )
        _drain(pool)

        assert len(recording_transport.messages) == 1

    def test_unknown_kind_rejected(self, dispatcher: NotificationDispatcher) -> None:
        """Test an unknown kind fails validation."""
        with pytest.raises(ValidationError, match="Unknown notification kind") as exc_info:
            _ = dispatcher.notify("welcome", "a@example.com", ["x"])

        assert exc_info.value.field == "kind"

    def test_string_params_rejected(self, dispatcher: NotificationDispatcher) -> None:
        """Test a bare string is not accepted as the parameter sequence."""
        with pytest.raises(ValidationError, match="sequence of strings"):
            _ = dispatcher.notify(NotificationKind.TEMP_PASSWORD_ISSUED, "a@example.com", "abc")

    def test_empty_param_rejected(self, dispatcher: NotificationDispatcher) -> None:
        """Test every template parameter must be non-empty."""
        with pytest.raises(ValidationError) as exc_info:
            _ = dispatcher.notify(
                NotificationKind.TEMP_PASSWORD_ISSUED, "a@example.com", ["a", "", "c"]
            )

        assert exc_info.value.field == "params[1]"

    def test_returns_before_rendering(
        self,
        pool: WorkerPool,
        blocking_renderer: BlockingRenderer,
        recording_transport: RecordingTransport,
        messaging_settings: MessagingConfig,
    ) -> None:
        """Test notify hands work to the pool and returns immediately."""
        dispatcher = NotificationDispatcher(
            pool, blocking_renderer, recording_transport, messaging_settings
        )

        handle = dispatcher.send_temp_password("alice", "pw", "alice@example.com")

        assert handle is not None
        assert not handle.done()
        assert blocking_renderer.entered.wait(2.0)
        assert recording_transport.messages == []

        blocking_renderer.release.set()
        assert recording_transport.sent.wait(2.0)

    def test_rejected_after_shutdown_returns_none(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a closed pool is logged and counted, not raised."""
        pool.shutdown(1.0)

        with caplog.at_level(logging.ERROR):
            handle = dispatcher.send_temp_password("alice", "pw", "alice@example.com")

        assert handle is None
        assert dispatcher.stats.rejected == 1
        assert any(
            record.getMessage() == "Notification rejected by worker pool"
            for record in caplog.records
        )

    def test_queue_full_returns_none(
        self,
        make_pool: Callable[..., WorkerPool],
        blocking_renderer: BlockingRenderer,
        recording_transport: RecordingTransport,
        messaging_settings: MessagingConfig,
    ) -> None:
        """Test a full bounded queue is reported as a rejection."""
        pool = make_pool(1, queue_max_size=1, overflow_policy=OverflowPolicy.REJECT)
        dispatcher = NotificationDispatcher(
            pool, blocking_renderer, recording_transport, messaging_settings
        )

        assert dispatcher.send_temp_password("a", "pw", "a@example.com") is not None
        assert blocking_renderer.entered.wait(2.0)
        assert dispatcher.send_temp_password("b", "pw", "b@example.com") is not None
        assert dispatcher.send_temp_password("c", "pw", "c@example.com") is None

        blocking_renderer.release.set()
        assert dispatcher.stats.rejected == 1


@pytest.mark.unit
class TestDeliveryFailures:
    """Test that failures on worker threads stay on worker threads."""

    def test_transport_failure_only_logged(
        self,
        pool: WorkerPool,
        catalog: MessageCatalog,
        failing_transport: FailingTransport,
        messaging_settings: MessagingConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a failing transport never reaches the caller."""
        dispatcher = NotificationDispatcher(pool, catalog, failing_transport, messaging_settings)

        with caplog.at_level(logging.INFO):
            handle = dispatcher.send_temp_password("alice", "pw", "alice@example.com")
            assert handle is not None
            assert handle.result(timeout=2.0) is None

        assert failing_transport.attempts == 1
        assert dispatcher.stats.failed == 1
        failures = [r for r in caplog.records if r.getMessage() == "Notification delivery failed"]
        assert len(failures) == 1
        assert failures[0].levelno == logging.ERROR

    def test_unexpected_transport_error_logged_with_traceback(
        self,
        pool: WorkerPool,
        catalog: MessageCatalog,
        failing_transport: FailingTransport,
        messaging_settings: MessagingConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test non-transport errors are logged with exception info."""
        failing_transport.error = RuntimeError("socket exploded")
        dispatcher = NotificationDispatcher(pool, catalog, failing_transport, messaging_settings)

        with caplog.at_level(logging.ERROR):
            handle = dispatcher.send_temp_password("alice", "pw", "alice@example.com")
            assert handle is not None
            _ = handle.result(timeout=2.0)

        [record] = [
            r
            for r in caplog.records
            if r.getMessage() == "Unexpected error while sending notification"
        ]
        assert record.exc_info is not None

    def test_render_failure_logged(
        self,
        pool: WorkerPool,
        recording_transport: RecordingTransport,
        messaging_settings: MessagingConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a missing template fails the unit without sending."""
        empty_catalog = MessageCatalog({})
        dispatcher = NotificationDispatcher(
            pool, empty_catalog, recording_transport, messaging_settings
        )

        with caplog.at_level(logging.ERROR):
            handle = dispatcher.send_temp_password("alice", "pw", "alice@example.com")
            assert handle is not None
            _ = handle.result(timeout=2.0)

        assert recording_transport.messages == []
        assert dispatcher.stats.failed == 1
        assert any(r.getMessage() == "Failed to render notification" for r in caplog.records)

    def test_secrets_not_in_failure_log(
        self,
        pool: WorkerPool,
        catalog: MessageCatalog,
        failing_transport: FailingTransport,
        messaging_settings: MessagingConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test the password never appears in delivery log records."""
        dispatcher = NotificationDispatcher(pool, catalog, failing_transport, messaging_settings)

        with caplog.at_level(logging.DEBUG):
            handle = dispatcher.send_temp_password("alice", "Sup3r-Secret!", "alice@example.com")
            assert handle is not None
            _ = handle.result(timeout=2.0)

        for record in caplog.records:
            assert "Sup3r-Secret!" not in record.getMessage()
            assert "Sup3r-Secret!" not in str(record.__dict__)


@pytest.mark.unit
class TestCancellationAndStats:
    """Test cooperative cancellation checkpoints and counters."""

    def test_cancel_before_send_skips_transport(
        self,
        pool: WorkerPool,
        blocking_renderer: BlockingRenderer,
        recording_transport: RecordingTransport,
        messaging_settings: MessagingConfig,
    ) -> None:
        """Test cancellation during render prevents transmission."""
        dispatcher = NotificationDispatcher(
            pool, blocking_renderer, recording_transport, messaging_settings
        )

        handle = dispatcher.send_temp_password("alice", "pw", "alice@example.com")
        assert handle is not None
        assert blocking_renderer.entered.wait(2.0)

        assert handle.cancel() is False
        blocking_renderer.release.set()
        _ = handle.result(timeout=2.0)

        assert recording_transport.messages == []
        assert dispatcher.stats.cancelled == 1

    def test_stats_count_outcomes(
        self, dispatcher: NotificationDispatcher, pool: WorkerPool
    ) -> None:
        """Test submitted and delivered counters."""
        for index in range(3):
            _ = dispatcher.send_temp_password(f"user{index}", "pw", f"u{index}@example.com")
        _drain(pool)

        stats = dispatcher.stats
        assert stats.submitted == 3
        assert stats.delivered == 3
        assert stats.failed == 0
        assert stats.rejected == 0

    def test_delivery_log_carries_correlation_id(
        self,
        dispatcher: NotificationDispatcher,
        pool: WorkerPool,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test worker-side logs are tagged with the request's correlation ID."""
        with caplog.at_level(logging.INFO):
            _ = dispatcher.send_temp_password("alice", "pw", "alice@example.com")
            _drain(pool)

        [record] = [r for r in caplog.records if r.getMessage() == "Notification delivered"]
        assert getattr(record, "correlation_id") == "corr-1"
        assert getattr(record, "transport") == "recording"


@pytest.mark.unit
class TestCallWithTimeout:
    """Test the synchronous bounded-wait path."""

    def test_returns_value(self, dispatcher: NotificationDispatcher) -> None:
        assert dispatcher.call_with_timeout(lambda: "ok") == "ok"

    def test_timeout_raises(self, dispatcher: NotificationDispatcher) -> None:
        """Test an explicit deadline overrides the configured one."""
        gate = threading.Event()
        try:
            with pytest.raises(TimeoutError):
                _ = dispatcher.call_with_timeout(lambda: gate.wait(5.0), timeout=0.05)
        finally:
            gate.set()
