"""Command-line entry point for account-notifier.

Loads the configuration, starts the worker pool, queues one notification and
drains the pool before exiting. Mostly useful for checking a deployment's
configuration and transport end to end.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import NoReturn

from account_notifier.core.config import MainConfig, load_main_config
from account_notifier.core.dispatcher import NotificationDispatcher
from account_notifier.core.service import NotifierService
from account_notifier.exceptions import ConfigurationError, ValidationError
from account_notifier.utils.logging import configure_logging

__all__ = ["main", "parse_arguments", "run"]

DEFAULT_CONFIG_PATH: Path = Path("config/account-notifier.yaml")

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 1


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    CLI Arguments:
        --config, -c: Path to main configuration file
        --dry-run: Log notifications instead of sending them
        --log-level: Override log level from config
        --no-syslog: Disable syslog integration
    """
    parser = argparse.ArgumentParser(
        prog="account-notifier",
        description="Send account recovery notifications through a bounded worker pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  account-notifier check-config
  account-notifier --dry-run temp-password alice s3cret alice@example.com
  account-notifier reset-link 4f2a9c alice alice@example.com
        """,
    )

    _ = parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to main configuration file (default: {DEFAULT_CONFIG_PATH})",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry-run mode: log notifications without sending (overrides config)",
    )
    _ = parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration",
        metavar="LEVEL",
    )
    _ = parser.add_argument(
        "--no-syslog",
        action="store_true",
        help="Disable syslog integration",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    _ = commands.add_parser("check-config", help="Validate the configuration and exit")

    temp_password = commands.add_parser(
        "temp-password", help="Send a temporary password to a new account"
    )
    _ = temp_password.add_argument("username")
    _ = temp_password.add_argument("password")
    _ = temp_password.add_argument("email")

    password_reset = commands.add_parser(
        "password-reset", help="Send the new password after a reset"
    )
    _ = password_reset.add_argument("username")
    _ = password_reset.add_argument("password")
    _ = password_reset.add_argument("email")

    reset_link = commands.add_parser("reset-link", help="Send a password recovery link")
    _ = reset_link.add_argument("reminder_hash")
    _ = reset_link.add_argument("username")
    _ = reset_link.add_argument("email")

    return parser.parse_args(argv)


def apply_overrides(config: MainConfig, *, dry_run: bool, log_level: str | None) -> MainConfig:
    """Return a copy of the configuration with CLI overrides applied."""
    application = config.application
    if dry_run:
        application = application.model_copy(update={"dry_run": True})
    if log_level is not None:
        application = application.model_copy(update={"log_level": log_level})
    return config.model_copy(update={"application": application})


def _dispatch(dispatcher: NotificationDispatcher, args: argparse.Namespace) -> None:
    command: str = args.command  # pyright: ignore[reportAny]  # argparse boundary
    if command == "temp-password":
        _ = dispatcher.send_temp_password(args.username, args.password, args.email)  # pyright: ignore[reportAny]
    elif command == "password-reset":
        _ = dispatcher.send_password_after_reset(args.username, args.password, args.email)  # pyright: ignore[reportAny]
    elif command == "reset-link":
        _ = dispatcher.send_password_reset_link(args.reminder_hash, args.username, args.email)  # pyright: ignore[reportAny]


def run(args: argparse.Namespace) -> int:
    """Execute a parsed command.

    Returns:
        Process exit code

    Raises:
        ConfigurationError: If configuration is invalid
    """
    config_path: Path = args.config  # pyright: ignore[reportAny]  # argparse boundary
    config = apply_overrides(
        load_main_config(config_path),
        dry_run=args.dry_run,  # pyright: ignore[reportAny]
        log_level=args.log_level,  # pyright: ignore[reportAny]
    )

    no_syslog: bool = args.no_syslog  # pyright: ignore[reportAny]
    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=config.application.syslog_enabled and not no_syslog,
        enable_console=True,
    )
    logger = logging.getLogger(__name__)

    if args.command == "check-config":  # pyright: ignore[reportAny]
        logger.info("Configuration is valid", extra={"config_path": str(config_path)})
        return EXIT_SUCCESS

    service = NotifierService(config)
    dispatcher = service.start()
    try:
        _dispatch(dispatcher, args)
    finally:
        service.stop()

    stats = dispatcher.stats
    logger.info(
        "Finished: %d delivered, %d failed, %d rejected",
        stats.delivered,
        stats.failed,
        stats.rejected,
    )
    return EXIT_SUCCESS if stats.failed == 0 and stats.rejected == 0 else EXIT_RUNTIME_ERROR


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point for the account-notifier command.

    Exit Codes:
        0: Notification delivered (or configuration valid)
        1: Configuration error, invalid request or failed delivery
    """
    args = parse_arguments(argv)

    try:
        exit_code = run(args)
    except ConfigurationError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)
    except ValidationError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
