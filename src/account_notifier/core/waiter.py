"""Bounded-wait retrieval of a unit of work's outcome.

Fire-and-forget dispatch never waits on its handles. ``await_result`` is the
synchronous path for callers that need the outcome within a deadline.
"""

from __future__ import annotations

import logging
from concurrent.futures import CancelledError, wait

from account_notifier.core.pool import WorkHandle
from account_notifier.exceptions import WorkExecutionError
from account_notifier.utils.logging import get_logger, log_with_context

__all__ = ["await_result"]

logger = get_logger(__name__)


def await_result[T](handle: WorkHandle[T], timeout: float = 0.0) -> T:
    """Block until a unit of work finishes and return its result.

    Args:
        handle: Handle returned by ``WorkerPool.submit``
        timeout: Deadline in seconds; zero or less waits indefinitely

    Returns:
        The value returned by the unit of work

    Raises:
        TimeoutError: If the deadline elapsed; cancellation of the work has
            been requested, but work that already started may still finish
        InterruptedError: If the handle was cancelled by someone else, even
            if the work had already started and went on to finish
        WorkExecutionError: If the work raised something that is not an
            ``Exception`` subclass
        Exception: Whatever the unit of work raised, unchanged
    """
    done, _ = wait([handle.future], timeout=timeout if timeout > 0 else None)
    if not done:
        _ = handle.cancel()
        log_with_context(
            logger,
            logging.WARNING,
            "Unit of work timed out",
            extra={"work_name": handle.name, "timeout_seconds": timeout},
        )
        raise TimeoutError(f"Unit of work {handle.name} timed out after {timeout} sec")

    try:
        error = handle.exception(timeout=0)
    except CancelledError as exc:
        raise InterruptedError(f"Unit of work {handle.name} was cancelled") from exc

    # Running work that was cancelled still completes its future
    if handle.token.cancelled:
        raise InterruptedError(f"Unit of work {handle.name} was cancelled")

    if error is None:
        return handle.result(timeout=0)
    if isinstance(error, Exception):
        raise error
    raise WorkExecutionError(
        f"Unit of work {handle.name} failed with {type(error).__name__}"
    ) from error
