"""Message catalog used to render account notification templates.

Templates use positional placeholders (``{0}``, ``{1}``, ...) that are
substituted from the ordered parameter tuple of a notification request.
Templates are validated when they are loaded: only numeric placeholders are
allowed, so arbitrary attribute or index lookups through ``str.format`` are
never evaluated.

The catalog is organised by locale, then by template key::

    en:
      temp_password:
        subject: "{0}: your temporary password"
        body: "<p>Hello {3}, ...</p>"

Lookups fall back from a regional locale (``en_US``) to its language
(``en``) and finally to the catalog's default locale.
"""

from __future__ import annotations

import html
import re
import threading
from collections.abc import Mapping, Sequence, Set
from pathlib import Path
from typing import Final

import yaml

from account_notifier.exceptions import ConfigurationError, TemplateNotFoundError

DEFAULT_LOCALE: Final[str] = "en"

# Matches any {...} replacement field
_FIELD_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?<!\{)\{([^{}]*)\}(?!\})")

# Parameter order follows NotificationDispatcher: the application name is
# always {0}, the remaining indices are kind specific.
DEFAULT_TEMPLATES: Final[Mapping[str, Mapping[str, Mapping[str, str]]]] = {
    DEFAULT_LOCALE: {
        "temp_password": {
            "subject": "{0}: your temporary password",
            "body": (
                "<p>Hello {3},</p>"
                "<p>An account has been created for you on <a href=\"{1}\">{2}</a>.</p>"
                "<p>Your temporary password is <b>{4}</b>. "
                "You will be asked to change it after your first login.</p>"
            ),
        },
        "password_reset": {
            "subject": "{0}: your temporary password",
            "body": (
                "<p>Hello {1},</p>"
                "<p>Your password for <a href=\"{2}\">{3}</a> has been reset.</p>"
                "<p>Your new temporary password is <b>{4}</b>. "
                "You will be asked to change it after your next login.</p>"
            ),
        },
        "password_reset_link": {
            "subject": "{0}: password recovery",
            "body": (
                "<p>Hello {1},</p>"
                "<p>A password reset was requested for your {2} account.</p>"
                "<p>Follow <a href=\"{3}\">this link</a> to reset your password. "
                "If you did not request a reset, ignore this message.</p>"
            ),
        },
    },
}


class TemplateError(ValueError):
    """Raised when template validation or rendering fails."""


def identify_placeholders(template: str) -> Set[str]:
    """Identify all replacement fields in a template string.

    Args:
        template: Template string potentially containing ``{n}`` markers

    Returns:
        Set of field names found in the template (without braces)

    Example:
        >>> sorted(identify_placeholders("{0}: hello {3}"))
        ['0', '3']
    """
    return frozenset(_FIELD_PATTERN.findall(template))


def validate_template(template: str) -> int:
    """Validate that a template only uses positional placeholders.

    Args:
        template: Template string to validate

    Returns:
        Number of parameters the template requires (highest index + 1)

    Raises:
        TemplateError: If the template contains non-positional placeholders
    """
    fields = identify_placeholders(template)
    invalid = sorted(name for name in fields if not name.isdigit())
    if invalid:
        msg = f"Template contains non-positional placeholders: {invalid}"
        raise TemplateError(msg)
    if not fields:
        return 0
    return max(int(name) for name in fields) + 1


def replace_placeholders(template: str, params: Sequence[str]) -> str:
    """Substitute ordered parameters into a template.

    Args:
        template: Template string with ``{n}`` markers
        params: Ordered parameter values

    Returns:
        Rendered string

    Raises:
        TemplateError: If the template references more parameters than given

    Example:
        >>> replace_placeholders("{0}: hello {1}", ["Portal", "alice"])
        'Portal: hello alice'
    """
    required = validate_template(template)
    if required > len(params):
        raise TemplateError(
            f"Template requires {required} parameters, got {len(params)}"
        )
    return template.format(*params)


def _locale_chain(locale: str, default_locale: str) -> list[str]:
    """Return lookup order for a locale, e.g. en_US -> [en_US, en, default]."""
    normalized = locale.replace("-", "_")
    chain = [normalized]
    language = normalized.split("_", 1)[0]
    if language != normalized:
        chain.append(language)
    if default_locale not in chain:
        chain.append(default_locale)
    return chain


class MessageCatalog:
    """Thread-safe catalog of subject/body templates keyed by locale."""

    def __init__(
        self,
        templates: Mapping[str, Mapping[str, Mapping[str, str]]] | None = None,
        *,
        default_locale: str = DEFAULT_LOCALE,
    ) -> None:
        self.default_locale: str = default_locale
        self._lock: threading.Lock = threading.Lock()
        self._templates: dict[str, dict[str, tuple[str, str]]] = {}
        self.update(DEFAULT_TEMPLATES if templates is None else templates)

    @classmethod
    def from_yaml(
        cls,
        path: Path,
        *,
        default_locale: str = DEFAULT_LOCALE,
    ) -> MessageCatalog:
        """Build a catalog from the defaults overlaid with a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or is malformed
        """
        try:
            with path.open("r", encoding="utf-8") as f:
                raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
        except yaml.YAMLError as e:
            msg = f"Failed to parse template file: {path}\nYAML parsing error: {e}"
            raise ConfigurationError(msg) from e
        except OSError as e:
            msg = f"Failed to read template file: {path}\nError: {e}"
            raise ConfigurationError(msg) from e

        if not isinstance(raw_data, dict):
            msg = (
                f"Invalid template file format: {path}\n"
                f"Expected a mapping of locale -> template key -> subject/body"
            )
            raise ConfigurationError(msg)

        catalog = cls(default_locale=default_locale)
        try:
            catalog.update(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
        except TemplateError as e:
            raise ConfigurationError(f"Invalid template in {path}: {e}") from e
        return catalog

    def update(self, templates: Mapping[str, Mapping[str, Mapping[str, str]]]) -> None:
        """Add or replace templates.

        Raises:
            TemplateError: If an entry lacks subject/body or uses invalid placeholders
        """
        staged: dict[str, dict[str, tuple[str, str]]] = {}
        for locale, entries in templates.items():
            if not isinstance(entries, Mapping):
                raise TemplateError(f"Locale '{locale}' must map template keys to entries")
            for template_key, entry in entries.items():
                if not isinstance(entry, Mapping) or "subject" not in entry or "body" not in entry:
                    raise TemplateError(
                        f"Template '{locale}/{template_key}' must define subject and body"
                    )
                subject = str(entry["subject"])
                body = str(entry["body"])
                _ = validate_template(subject)
                _ = validate_template(body)
                staged.setdefault(str(locale).replace("-", "_"), {})[str(template_key)] = (
                    subject,
                    body,
                )

        with self._lock:
            for locale, entries in staged.items():
                self._templates.setdefault(locale, {}).update(entries)

    def template_keys(self, locale: str | None = None) -> Set[str]:
        """Return the template keys available for a locale (with fallback)."""
        with self._lock:
            keys: set[str] = set()
            for candidate in _locale_chain(locale or self.default_locale, self.default_locale):
                keys.update(self._templates.get(candidate, {}))
            return frozenset(keys)

    def render(
        self, template_key: str, locale: str, params: Sequence[str]
    ) -> tuple[str, str]:
        """Render subject and body for a template key.

        Parameters are HTML-escaped in the body and inserted as is in the subject.

        Raises:
            TemplateNotFoundError: If no locale in the fallback chain has the key
            TemplateError: If too few parameters are supplied
        """
        with self._lock:
            entry: tuple[str, str] | None = None
            for candidate in _locale_chain(locale, self.default_locale):
                entry = self._templates.get(candidate, {}).get(template_key)
                if entry is not None:
                    break

        if entry is None:
            raise TemplateNotFoundError(template_key, locale)

        subject, body = entry
        # Bodies are HTML; parameters are user supplied text
        escaped = [html.escape(param) for param in params]
        return replace_placeholders(subject, params), replace_placeholders(body, escaped)
