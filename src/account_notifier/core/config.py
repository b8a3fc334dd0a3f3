"""Configuration system for the account notifier.

This module implements the configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages. Configuration is read once at
startup and treated as immutable afterwards.
"""

import os
import re
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Final, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from account_notifier.exceptions import ConfigurationError

# Matches ${VARIABLE_NAME} references
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class OverflowPolicy(StrEnum):
    """What ``submit`` does when a bounded task queue is full."""

    REJECT = "reject"
    BLOCK = "block"


class TransportKind(StrEnum):
    """Available transport implementations."""

    SMTP = "smtp"
    WEBHOOK = "webhook"
    DRY_RUN = "dry_run"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )


class PoolConfig(_FrozenModel):
    """Configuration for the send worker pool.

    Defines the concurrency ceiling, the drain deadline used at shutdown and
    the optional queue bound with its overflow policy.
    """

    size: Annotated[
        int,
        Field(
            gt=0,
            description="Number of worker threads sending notifications",
        ),
    ] = 4
    drain_timeout: Annotated[
        float,
        Field(
            ge=0,
            description="Seconds to wait per shutdown poll; 0 waits indefinitely",
        ),
    ] = 30.0
    send_timeout: Annotated[
        float,
        Field(
            ge=0,
            description="Deadline in seconds for call_with_timeout; 0 waits indefinitely",
        ),
    ] = 10.0
    queue_max_size: Annotated[
        int,
        Field(
            ge=0,
            description="Maximum queued units of work; 0 means unbounded",
        ),
    ] = 0
    overflow_policy: Annotated[
        OverflowPolicy,
        Field(
            description="Behaviour of submit when a bounded queue is full",
        ),
    ] = OverflowPolicy.REJECT
    cancel_pending_on_timeout: Annotated[
        bool,
        Field(
            description="Cancel queued, not yet started work once the drain timeout elapses",
        ),
    ] = False


class MessagingConfig(_FrozenModel):
    """Values substituted into every account notification."""

    app_base_url: Annotated[
        str,
        Field(
            min_length=1,
            description="Base URL of the application, used to build links",
        ),
    ]
    app_name: Annotated[
        str,
        Field(
            min_length=1,
            description="Application display name",
        ),
    ]
    mail_from: Annotated[
        str,
        Field(
            min_length=1,
            description="Sender address of outgoing notifications",
        ),
    ]
    locale: Annotated[
        str,
        Field(
            pattern=r"^[a-z]{2,3}([_-][A-Za-z]{2,4})?$",
            description="Locale used to render templates",
        ),
    ] = "en"
    templates_file: Annotated[
        Path | None,
        Field(
            description="Optional YAML file overriding the built-in templates",
        ),
    ] = None

    @field_validator("templates_file", mode="after")
    @classmethod
    def validate_templates_file_exists(cls, v: Path | None) -> Path | None:
        """Validate that the template override file exists.

        Raises:
            ValueError: If the path is set but missing
        """
        if v is not None and not v.is_file():
            msg = f"Template file does not exist: {v}"
            raise ValueError(msg)
        return v


class SmtpConfig(_FrozenModel):
    """SMTP connection settings."""

    host: Annotated[str, Field(min_length=1, description="SMTP server host")]
    port: Annotated[int, Field(gt=0, lt=65536, description="SMTP server port")] = 587
    username: Annotated[str | None, Field(description="SMTP login user")] = None
    password: Annotated[str | None, Field(description="SMTP login password")] = None
    use_tls: Annotated[bool, Field(description="Issue STARTTLS after connecting")] = True
    timeout: Annotated[float, Field(gt=0, description="Socket timeout in seconds")] = 10.0


class WebhookConfig(_FrozenModel):
    """HTTP webhook delivery settings."""

    url: Annotated[
        str,
        Field(
            pattern=r"^https?://",
            description="Endpoint receiving composed messages as JSON",
        ),
    ]
    timeout: Annotated[float, Field(gt=0, description="Request timeout in seconds")] = 10.0
    headers: Annotated[
        dict[str, str],
        Field(description="Extra request headers, e.g. authorization"),
    ] = {}


class TransportConfig(_FrozenModel):
    """Selects and configures the transport used by the workers."""

    kind: Annotated[
        TransportKind,
        Field(description="Transport implementation"),
    ] = TransportKind.DRY_RUN
    smtp: SmtpConfig | None = None
    webhook: WebhookConfig | None = None

    @model_validator(mode="after")
    def validate_selected_transport_configured(self) -> Self:
        """Ensure the selected transport has its settings section."""
        if self.kind is TransportKind.SMTP and self.smtp is None:
            raise ValueError("transport.smtp must be configured when kind is 'smtp'")
        if self.kind is TransportKind.WEBHOOK and self.webhook is None:
            raise ValueError("transport.webhook must be configured when kind is 'webhook'")
        return self


class ApplicationConfig(_FrozenModel):
    """Application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    dry_run: Annotated[
        bool,
        Field(
            description="Log composed messages instead of sending them",
        ),
    ] = False
    syslog_enabled: Annotated[
        bool,
        Field(
            description="Enable syslog integration",
        ),
    ] = False


class MainConfig(_FrozenModel):
    """Top-level configuration container."""

    pool: PoolConfig = PoolConfig()
    messaging: MessagingConfig
    transport: TransportConfig = TransportConfig()
    application: ApplicationConfig = ApplicationConfig()


class EnvironmentVariableError(ConfigurationError):
    """Raised when a referenced environment variable is not set."""


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set

    Examples:
        >>> os.environ["SMTP_PASSWORD"] = "hunter2"
        >>> resolve_env_var("${SMTP_PASSWORD}")
        'hunter2'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def resolve_env_vars(data: object) -> object:
    """Recursively resolve environment variables in YAML data.

    Strings are resolved, mappings and lists are walked, everything else is
    returned unchanged.
    """
    if isinstance(data, str):
        return resolve_env_var(data)
    if isinstance(data, Mapping):
        return {key: resolve_env_vars(value) for key, value in data.items()}  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    return data


def format_validation_error(error: ValidationError, config_path: Path | None) -> str:
    """Format pydantic errors with field-level diagnostics."""
    error_lines = ["Configuration validation failed:", ""]
    for detail in error.errors():
        field_path = " → ".join(str(loc) for loc in detail["loc"])
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {detail['msg']}")
        error_lines.append(f"  Type: {detail['type']}")
        error_lines.append("")

    if config_path is not None:
        error_lines.append(f"Configuration file: {config_path}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def parse_config(data: Mapping[str, object], *, config_path: Path | None = None) -> MainConfig:
    """Resolve environment references and validate raw configuration data.

    Raises:
        ConfigurationError: If resolution or validation fails
    """
    try:
        resolved = resolve_env_vars(data)
    except EnvironmentVariableError as e:
        location = f" in: {config_path}" if config_path is not None else ""
        msg = (
            f"Environment variable resolution failed{location}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved)
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e, config_path)) from e


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate the main configuration from a YAML file.

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid

    Examples:
        >>> config = load_main_config(Path("config/account-notifier.yaml"))
        >>> config.pool.size
        4
    """
    if not config_path.exists():
        msg = (
            f"Configuration file not found: {config_path}\n"
            f"Please create a configuration file at this location."
        )
        raise ConfigurationError(msg)

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML configuration file: {config_path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}"
        )
        raise ConfigurationError(msg)

    return parse_config(raw_data, config_path=config_path)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
