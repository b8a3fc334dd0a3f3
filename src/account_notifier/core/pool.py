"""Fixed-size worker pool executing units of work on background threads.

The pool owns one FIFO task queue shared by ``size`` worker threads. At most
``size`` units of work run at the same time; callers never block on
``submit`` unless a bounded queue with the ``block`` overflow policy is full.

Lifecycle is a one-way state machine::

    RUNNING -> DRAINING -> TERMINATED

``shutdown`` stops accepting work, lets queued and in-flight work finish and
returns once every worker thread has exited. Work that is already running is
never interrupted; cancellation is cooperative through ``CancellationToken``.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from enum import Enum
from typing import Final, override

from account_notifier.core.config import OverflowPolicy
from account_notifier.exceptions import ConfigurationError, PoolClosedError, QueueFullError
from account_notifier.utils.logging import get_logger, log_with_context
from account_notifier.utils.sanitization import sanitize_exception

__all__ = [
    "CancellationToken",
    "ShutdownState",
    "WorkHandle",
    "WorkerPool",
]

DEFAULT_THREAD_NAME_PREFIX: Final[str] = "send-message-call-runner"


class ShutdownState(Enum):
    """Lifecycle state of a worker pool."""

    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class CancellationToken:
    """Thread-safe cancellation flag checked by long-running work.

    Setting the flag never interrupts a thread. Work has to poll
    ``cancelled`` (or call ``raise_if_cancelled``) at its checkpoints.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event: threading.Event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise InterruptedError if cancellation was requested."""
        if self._event.is_set():
            raise InterruptedError("Unit of work cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if cancellation was requested
        """
        return self._event.wait(timeout)


class WorkHandle[T]:
    """Handle to a submitted unit of work.

    Wraps the future that receives the outcome and the token used to request
    cancellation of the work.
    """

    __slots__ = ("_future", "_token", "name")

    def __init__(self, future: Future[T], token: CancellationToken, name: str) -> None:
        self._future: Future[T] = future
        self._token: CancellationToken = token
        self.name: str = name

    @property
    def future(self) -> Future[T]:
        return self._future

    @property
    def token(self) -> CancellationToken:
        return self._token

    def cancel(self) -> bool:
        """Request cancellation.

        Completed work is left untouched. Otherwise the token is set, and the
        future is cancelled too if the work has not started yet.

        Returns:
            True if the work is guaranteed not to run
        """
        if self._future.done():
            return self._future.cancelled()
        self._token.cancel()
        return self._future.cancel()

    def cancelled(self) -> bool:
        """Return True if cancellation was requested before the work completed."""
        return self._future.cancelled() or self._token.cancelled

    def running(self) -> bool:
        return self._future.running()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> T:
        return self._future.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout)

    def add_done_callback(self, fn: Callable[[WorkHandle[T]], object]) -> None:
        """Call ``fn(handle)`` once the work completes, fails or is cancelled."""
        self._future.add_done_callback(lambda _: fn(self))

    @override
    def __repr__(self) -> str:
        return f"WorkHandle(name={self.name!r}, future={self._future!r})"


type _WorkItem = tuple[WorkHandle[object], Callable[[], object]]

# Stop sentinel, one per worker, queued behind all accepted work
_STOP: Final[object] = object()


class WorkerPool:
    """Fixed pool of worker threads sharing one FIFO task queue."""

    def __init__(
        self,
        size: int,
        *,
        queue_max_size: int = 0,
        overflow_policy: OverflowPolicy = OverflowPolicy.REJECT,
        thread_name_prefix: str = DEFAULT_THREAD_NAME_PREFIX,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if size <= 0:
            msg = f"Pool size must be a positive integer, got {size}"
            raise ConfigurationError(msg)
        if queue_max_size < 0:
            msg = f"Queue size must be zero (unbounded) or positive, got {queue_max_size}"
            raise ConfigurationError(msg)

        self._size: int = size
        self._queue_max_size: int = queue_max_size
        self._overflow_policy: OverflowPolicy = overflow_policy
        self._thread_name_prefix: str = thread_name_prefix
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

        self._queue: queue.Queue[_WorkItem | object] = queue.Queue(maxsize=queue_max_size)
        self._lock: threading.Lock = threading.Lock()
        self._space_available: threading.Condition = threading.Condition(self._lock)
        self._terminated: threading.Event = threading.Event()
        self._state: ShutdownState = ShutdownState.RUNNING
        self._started: bool = False
        self._workers: list[threading.Thread] = []
        self._live_workers: int = 0
        self._active: int = 0
        self._pending: set[WorkHandle[object]] = set()
        self._sequence: itertools.count[int] = itertools.count(1)

    @property
    def size(self) -> int:
        return self._size

    @property
    def state(self) -> ShutdownState:
        with self._lock:
            return self._state

    @property
    def active_count(self) -> int:
        """Number of units of work currently executing."""
        with self._lock:
            return self._active

    @property
    def pending_count(self) -> int:
        """Number of units of work queued but not started."""
        with self._lock:
            return len(self._pending)

    def start(self) -> None:
        """Spawn the worker threads.

        Raises:
            RuntimeError: If the pool was already started
            PoolClosedError: If the pool has been shut down
        """
        with self._lock:
            if self._state is not ShutdownState.RUNNING:
                raise PoolClosedError("Cannot start a worker pool that has been shut down")
            if self._started:
                raise RuntimeError("Worker pool already started")
            self._started = True
            for index in range(self._size):
                worker = threading.Thread(
                    target=self._worker_loop,
                    name=f"{self._thread_name_prefix}-{index}",
                    daemon=True,
                )
                self._workers.append(worker)
                self._live_workers += 1

        for worker in self._workers:
            worker.start()

        log_with_context(
            self._logger,
            logging.INFO,
            "Started worker pool",
            extra={
                "pool_size": self._size,
                "queue_max_size": self._queue_max_size,
                "overflow_policy": str(self._overflow_policy),
            },
        )

    def submit[T](
        self,
        work: Callable[[], T],
        *,
        token: CancellationToken | None = None,
        name: str | None = None,
    ) -> WorkHandle[T]:
        """Queue a zero-argument unit of work.

        Args:
            work: Callable executed on a worker thread
            token: Cancellation token the work checks; a fresh one if omitted
            name: Identifier used in logs

        Returns:
            Handle representing the eventual outcome

        Raises:
            PoolClosedError: If the pool is not started or is shutting down
            QueueFullError: If the bounded queue is full and the policy is reject
        """
        future: Future[T] = Future()
        handle: WorkHandle[T] = WorkHandle(
            future,
            token or CancellationToken(),
            name or f"work-{next(self._sequence)}",
        )
        item: _WorkItem = (handle, work)  # pyright: ignore[reportAssignmentType]

        with self._lock:
            while True:
                self._ensure_accepting()
                try:
                    self._queue.put_nowait(item)
                    break
                except queue.Full:
                    if self._overflow_policy is OverflowPolicy.REJECT:
                        raise QueueFullError(self._queue_max_size) from None
                    _ = self._space_available.wait()
            self._pending.add(handle)  # pyright: ignore[reportArgumentType]

        return handle

    def shutdown(self, drain_timeout: float, *, cancel_pending: bool = False) -> None:
        """Stop accepting work and wait until every worker has exited.

        Waits in periods of ``drain_timeout`` seconds and keeps waiting after
        each elapsed period; running work is never interrupted. A
        ``drain_timeout`` of zero or less waits in a single indefinite period.

        Args:
            drain_timeout: Length of one wait period in seconds
            cancel_pending: Cancel queued, not yet started work once the first
                period elapses

        Raises:
            RuntimeError: If called from one of the pool's own worker threads
        """
        if threading.current_thread() in self._workers:
            raise RuntimeError("Worker pool cannot be shut down from its own worker thread")

        with self._lock:
            if not self._started:
                self._state = ShutdownState.TERMINATED
                self._terminated.set()
                return
            initiate = self._state is ShutdownState.RUNNING
            if initiate:
                self._state = ShutdownState.DRAINING
                self._space_available.notify_all()
            pending = len(self._pending)
            active = self._active

        if initiate:
            log_with_context(
                self._logger,
                logging.INFO,
                "Draining worker pool",
                extra={
                    "pending_count": pending,
                    "active_count": active,
                    "drain_timeout": drain_timeout,
                },
            )
            # No more work can be queued, so the sentinels land behind all of it
            for _ in self._workers:
                self._queue.put(_STOP)

        wait_period = drain_timeout if drain_timeout > 0 else None
        escalated = False
        while not self.await_termination(wait_period):
            log_with_context(
                self._logger,
                logging.WARNING,
                "Worker pool still draining after drain timeout",
                extra={
                    "pending_count": self.pending_count,
                    "active_count": self.active_count,
                    "drain_timeout": drain_timeout,
                },
            )
            if cancel_pending and not escalated:
                escalated = True
                cancelled = self.cancel_pending()
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Cancelled queued work after drain timeout",
                    extra={"cancelled_count": cancelled},
                )

        if initiate:
            log_with_context(self._logger, logging.INFO, "Worker pool terminated")

    def await_termination(self, timeout: float | None = None) -> bool:
        """Block until all workers have exited or ``timeout`` elapses.

        Returns:
            True if the pool is terminated
        """
        return self._terminated.wait(timeout)

    def cancel_pending(self) -> int:
        """Cancel every queued unit of work that has not started.

        Returns:
            Number of units of work that will not run
        """
        with self._lock:
            pending = list(self._pending)
        return sum(1 for handle in pending if handle.cancel())

    def _ensure_accepting(self) -> None:
        if not self._started:
            raise PoolClosedError("Worker pool has not been started")
        if self._state is not ShutdownState.RUNNING:
            raise PoolClosedError(f"Worker pool is {self._state.value}; no new work accepted")

    def _worker_loop(self) -> None:
        try:
            while True:
                item = self._queue.get()
                with self._lock:
                    self._space_available.notify()
                if item is _STOP:
                    break
                handle, work = item  # pyright: ignore[reportGeneralTypeIssues]
                self._run(handle, work)
        finally:
            with self._lock:
                self._live_workers -= 1
                if self._live_workers == 0:
                    self._state = ShutdownState.TERMINATED
                    self._terminated.set()

    def _run(self, handle: WorkHandle[object], work: Callable[[], object]) -> None:
        with self._lock:
            self._pending.discard(handle)

        if not handle.future.set_running_or_notify_cancel():
            self._logger.debug("Skipping cancelled unit of work %s", handle.name)
            return

        with self._lock:
            self._active += 1
        try:
            result = work()
        except BaseException as exc:
            handle.future.set_exception(exc)
            log_with_context(
                self._logger,
                logging.WARNING,
                "Unit of work failed",
                extra={
                    "work_name": handle.name,
                    "error_message": sanitize_exception(exc),
                },
            )
        else:
            handle.future.set_result(result)
        finally:
            with self._lock:
                self._active -= 1
