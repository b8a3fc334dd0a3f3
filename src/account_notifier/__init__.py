"""Account Notifier - bounded-concurrency dispatch of account notifications.

Temporary passwords, reset confirmations and password recovery links are
rendered and transmitted on a fixed pool of worker threads, so the code that
triggers a notification never waits for delivery.
"""

from account_notifier.__main__ import main

__all__ = ["main"]
