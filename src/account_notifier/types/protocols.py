"""Protocol definitions for the dispatcher's collaborators.

The dispatcher only depends on these structural interfaces, so any renderer
or transport can be plugged in without inheritance.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from account_notifier.types.models import RenderedMessage


@runtime_checkable
class MessageRenderer(Protocol):
    """Protocol for rendering a template key into subject and body strings."""

    def render(
        self, template_key: str, locale: str, params: Sequence[str]
    ) -> tuple[str, str]:
        """Render the subject and body for a template.

        Args:
            template_key: Catalog key of the template
            locale: Locale identifier such as ``en`` or ``en_US``
            params: Ordered template parameters

        Returns:
            Tuple of rendered subject and body

        Raises:
            TemplateNotFoundError: If the template key is unknown
        """
        ...


@runtime_checkable
class Transport(Protocol):
    """Protocol for delivering a composed message."""

    @property
    def name(self) -> str:
        """Short identifier used in logs."""
        ...

    def send(self, message: RenderedMessage) -> None:
        """Deliver a message.

        Args:
            message: Fully composed message

        Raises:
            TransportError: If the message could not be delivered
        """
        ...

    def close(self) -> None:
        """Release any resources held by the transport."""
        ...
