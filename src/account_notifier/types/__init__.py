"""Type definitions and protocols for account-notifier.

This package provides:
- Data models (immutable dataclasses)
- Protocol definitions (structural subtyping interfaces)
"""

from account_notifier.types.models import (
    NotificationKind,
    NotificationRequest,
    RenderedMessage,
)
from account_notifier.types.protocols import (
    MessageRenderer,
    Transport,
)

__all__ = [
    # Data models
    "NotificationKind",
    "NotificationRequest",
    "RenderedMessage",
    # Protocols
    "MessageRenderer",
    "Transport",
]
