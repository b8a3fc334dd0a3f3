"""Process-scoped lifecycle of the send worker pool.

The enclosing service constructs one ``LifecycleManager`` at startup, starts
it and hands ``manager.pool`` to the dispatcher. On the way out it calls
``shutdown``, which drains the pool with the configured deadline.
"""

from __future__ import annotations

import logging
import threading
from types import TracebackType

from account_notifier.core.config import PoolConfig
from account_notifier.core.pool import ShutdownState, WorkerPool
from account_notifier.exceptions import PoolClosedError
from account_notifier.utils.logging import get_logger, log_with_context

__all__ = ["LifecycleManager"]


class LifecycleManager:
    """Start and stop the worker pool used for sending notifications.

    Example:
        >>> with LifecycleManager(PoolConfig(size=2, drain_timeout=5)) as manager:
        ...     handle = manager.pool.submit(lambda: "sent")
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._config: PoolConfig = config or PoolConfig()
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._lock: threading.Lock = threading.Lock()
        self._pool: WorkerPool | None = None

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def pool(self) -> WorkerPool:
        """The running pool.

        Raises:
            PoolClosedError: If ``start`` has not been called
        """
        pool = self._pool
        if pool is None:
            raise PoolClosedError("Lifecycle manager has not been started")
        return pool

    @property
    def state(self) -> ShutdownState | None:
        """State of the managed pool, or None before the first start."""
        pool = self._pool
        return pool.state if pool is not None else None

    def start(self, pool_size: int | None = None) -> WorkerPool:
        """Create and start the worker pool.

        Args:
            pool_size: Number of workers; defaults to the configured size

        Returns:
            The started pool

        Raises:
            ConfigurationError: If the pool size is not positive
            RuntimeError: If a pool is already running
        """
        with self._lock:
            if self._pool is not None and self._pool.state is not ShutdownState.TERMINATED:
                raise RuntimeError("Worker pool already started; call shutdown first")

            size = self._config.size if pool_size is None else pool_size
            pool = WorkerPool(
                size,
                queue_max_size=self._config.queue_max_size,
                overflow_policy=self._config.overflow_policy,
            )
            pool.start()
            self._pool = pool
            return pool

    def shutdown(self, drain_timeout: float | None = None) -> None:
        """Drain and stop the worker pool.

        Blocks until every worker has exited. Safe to call more than once and
        before ``start``.

        Args:
            drain_timeout: Seconds per wait period; defaults to the configured value
        """
        pool = self._pool
        if pool is None:
            self._logger.debug("Shutdown requested before the worker pool was started")
            return

        timeout = self._config.drain_timeout if drain_timeout is None else drain_timeout
        log_with_context(
            self._logger,
            logging.INFO,
            "Shutting down notification worker pool",
            extra={"drain_timeout": timeout, "state": pool.state.value},
        )
        pool.shutdown(timeout, cancel_pending=self._config.cancel_pending_on_timeout)

    def __enter__(self) -> LifecycleManager:
        _ = self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()
