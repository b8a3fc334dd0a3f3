"""Assembly of the notifier components for an enclosing service.

``NotifierService`` wires configuration, message catalog, transport, worker
pool and dispatcher together. It is constructed once by the host process and
its dispatcher is passed by reference to whoever triggers notifications.
"""

from __future__ import annotations

import logging
from types import TracebackType

from account_notifier.core.config import MainConfig
from account_notifier.core.dispatcher import NotificationDispatcher
from account_notifier.core.lifecycle import LifecycleManager
from account_notifier.exceptions import PoolClosedError
from account_notifier.transports import create_transport
from account_notifier.types import MessageRenderer, Transport
from account_notifier.utils.logging import get_logger
from account_notifier.utils.template import MessageCatalog

__all__ = ["NotifierService", "build_renderer"]


def build_renderer(config: MainConfig) -> MessageRenderer:
    """Create the message catalog, overlaid with the configured template file."""
    messaging = config.messaging
    if messaging.templates_file is not None:
        return MessageCatalog.from_yaml(messaging.templates_file)
    return MessageCatalog()


class NotifierService:
    """Owns the notifier lifecycle from start to drained shutdown."""

    def __init__(
        self,
        config: MainConfig,
        *,
        renderer: MessageRenderer | None = None,
        transport: Transport | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._config: MainConfig = config
        self._renderer: MessageRenderer = renderer or build_renderer(config)
        self._transport: Transport = transport or create_transport(
            config.transport, dry_run=config.application.dry_run
        )
        self._lifecycle: LifecycleManager = LifecycleManager(config.pool)
        self._dispatcher: NotificationDispatcher | None = None
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def lifecycle(self) -> LifecycleManager:
        return self._lifecycle

    @property
    def dispatcher(self) -> NotificationDispatcher:
        """The dispatcher bound to the running pool.

        Raises:
            PoolClosedError: If the service has not been started
        """
        if self._dispatcher is None:
            raise PoolClosedError("Notifier service has not been started")
        return self._dispatcher

    def start(self) -> NotificationDispatcher:
        pool = self._lifecycle.start()
        self._dispatcher = NotificationDispatcher(
            pool,
            self._renderer,
            self._transport,
            self._config.messaging,
            send_timeout=self._config.pool.send_timeout,
        )
        self._logger.info(
            "Notifier service started with %d workers using the %s transport",
            pool.size,
            self._transport.name,
        )
        return self._dispatcher

    def stop(self, drain_timeout: float | None = None) -> None:
        """Drain the pool, then release the transport."""
        try:
            self._lifecycle.shutdown(drain_timeout)
        finally:
            self._transport.close()
        self._logger.info("Notifier service stopped")

    def __enter__(self) -> NotificationDispatcher:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()
