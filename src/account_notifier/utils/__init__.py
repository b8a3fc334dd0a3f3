"""Utility modules for account-notifier."""

from __future__ import annotations
