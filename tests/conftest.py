"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator, Sequence

import pytest

from account_notifier.core.config import MainConfig, MessagingConfig, PoolConfig
from account_notifier.core.pool import WorkerPool
from account_notifier.exceptions import TransportError
from account_notifier.types import RenderedMessage
from account_notifier.utils.template import MessageCatalog


class RecordingTransport:
    """Transport double that keeps every message it was asked to send."""

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay: float = delay
        self.messages: list[RenderedMessage] = []
        self.closed: bool = False
        self.sent: threading.Event = threading.Event()
        self._lock: threading.Lock = threading.Lock()

    @property
    def name(self) -> str:
        return "recording"

    def send(self, message: RenderedMessage) -> None:
        if self.delay:
            _ = threading.Event().wait(self.delay)
        with self._lock:
            self.messages.append(message)
        self.sent.set()

    def close(self) -> None:
        self.closed = True


class FailingTransport:
    """Transport double whose every send fails."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error: Exception = error or TransportError(
            "connection refused", transport_name="failing"
        )
        self.attempts: int = 0
        self.closed: bool = False

    @property
    def name(self) -> str:
        return "failing"

    def send(self, message: RenderedMessage) -> None:
        self.attempts += 1
        raise self.error

    def close(self) -> None:
        self.closed = True


class BlockingRenderer:
    """Renderer that holds every render until ``release`` is set."""

    def __init__(self, catalog: MessageCatalog | None = None) -> None:
        self.catalog: MessageCatalog = catalog or MessageCatalog()
        self.entered: threading.Event = threading.Event()
        self.release: threading.Event = threading.Event()
        self.calls: int = 0

    def render(self, template_key: str, locale: str, params: Sequence[str]) -> tuple[str, str]:
        self.calls += 1
        self.entered.set()
        _ = self.release.wait(5.0)
        return self.catalog.render(template_key, locale, params)


@pytest.fixture
def messaging_settings() -> MessagingConfig:
    """Provide messaging settings for a sample portal."""
    return MessagingConfig(
        app_base_url="https://portal.example.com/",
        app_name="Example Portal",
        mail_from="noreply@example.com",
    )


@pytest.fixture
def main_config(messaging_settings: MessagingConfig) -> MainConfig:
    """Provide a small, fast-draining main configuration."""
    return MainConfig(
        pool=PoolConfig(size=2, drain_timeout=2.0, send_timeout=2.0),
        messaging=messaging_settings,
    )


@pytest.fixture
def catalog() -> MessageCatalog:
    return MessageCatalog()


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> FailingTransport:
    return FailingTransport()


@pytest.fixture
def make_pool() -> Generator[Callable[..., WorkerPool], None, None]:
    """Factory for started pools; every pool is shut down after the test."""
    pools: list[WorkerPool] = []

    def factory(size: int = 2, **kwargs: object) -> WorkerPool:
        pool = WorkerPool(size, **kwargs)  # pyright: ignore[reportArgumentType]
        pool.start()
        pools.append(pool)
        return pool

    yield factory

    for pool in pools:
        pool.shutdown(5.0, cancel_pending=True)


@pytest.fixture
def pool(make_pool: Callable[..., WorkerPool]) -> WorkerPool:
    """A started pool of two workers."""
    return make_pool(2)


@pytest.fixture
def blocking_renderer() -> Generator[BlockingRenderer, None, None]:
    """Renderer held until the test sets ``release``; released on teardown."""
    renderer = BlockingRenderer()
    yield renderer
    renderer.release.set()
