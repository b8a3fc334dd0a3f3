"""Dispatch and lifecycle engine of the account notifier."""

from __future__ import annotations

from .dispatcher import DispatchStats, NotificationDispatcher
from .lifecycle import LifecycleManager
from .pool import CancellationToken, ShutdownState, WorkerPool, WorkHandle
from .waiter import await_result

__all__ = [
    "CancellationToken",
    "DispatchStats",
    "LifecycleManager",
    "NotificationDispatcher",
    "ShutdownState",
    "WorkHandle",
    "WorkerPool",
    "await_result",
]
