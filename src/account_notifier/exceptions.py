"""Exception hierarchy for the account notifier.

Only ConfigurationError is fatal: it is raised while the service starts up.
Every other error is either reported synchronously to the caller of a
dispatcher operation (ValidationError) or raised inside a worker thread,
where it is logged and swallowed unless the caller retrieves the outcome
explicitly through ``await_result``.
"""

from __future__ import annotations


class AccountNotifierError(Exception):
    """Base exception for all account notifier failures."""


class ConfigurationError(AccountNotifierError):
    """Raised when configuration loading or validation fails.

    Covers invalid pool sizing as well as unreadable or malformed
    configuration files. Prevents the worker pool from starting.
    """


class ValidationError(AccountNotifierError):
    """Raised when a notification request is malformed.

    The request is rejected before anything is queued.
    """

    field: str

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class PoolClosedError(AccountNotifierError):
    """Raised when work is submitted to a pool that is not accepting work."""


class QueueFullError(AccountNotifierError):
    """Raised when a bounded queue is full and the overflow policy is reject."""

    capacity: int

    def __init__(self, capacity: int) -> None:
        super().__init__(f"Task queue is full (capacity {capacity})")
        self.capacity = capacity


class TemplateNotFoundError(AccountNotifierError):
    """Raised by the message catalog for an unknown template key."""

    template_key: str
    locale: str

    def __init__(self, template_key: str, locale: str) -> None:
        super().__init__(f"No template '{template_key}' for locale '{locale}'")
        self.template_key = template_key
        self.locale = locale


class TransportError(AccountNotifierError):
    """Raised by a transport when a composed message cannot be delivered."""

    transport_name: str
    __cause__: BaseException | None

    def __init__(
        self,
        message: str,
        *,
        transport_name: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.transport_name = transport_name
        if cause is not None:
            self.__cause__ = cause


class WorkExecutionError(AccountNotifierError):
    """Wraps a failure kind raised by a unit of work that is not an Exception."""


__all__ = [
    "AccountNotifierError",
    "ConfigurationError",
    "PoolClosedError",
    "QueueFullError",
    "TemplateNotFoundError",
    "TransportError",
    "ValidationError",
    "WorkExecutionError",
]
