"""Provider and subscriber protocols.

A provider is anything that can list the entities and actions it serves for
an API version and execute a request. The kernel never asks a provider
"can you run this?" directly: providers that want to claim requests also
implement ``EventSubscriber`` and listen on ``api.resolve``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from apikernel.core.request import Request

# event name -> "method" | ("method", priority) | [("method", priority), ...]
SubscribedEvents = dict[str, "str | tuple[str, int] | list[tuple[str, int]]"]


@runtime_checkable
class Provider(Protocol):
    """Executes one or more (entity, action) operations for an API version."""

    def get_entity_names(self, version: int) -> list[str]:
        """Entities this provider serves for ``version``."""
        ...

    def get_action_names(self, version: int, entity: str) -> list[str]:
        """Actions this provider serves for ``entity`` at ``version``."""
        ...

    def invoke(self, request: Request) -> Any:
        """Run the request and return the provider-defined result."""
        ...


@runtime_checkable
class EventSubscriber(Protocol):
    """Declares the dispatcher listeners it wants registered."""

    def get_subscribed_events(self) -> SubscribedEvents:
        ...


__all__ = ["EventSubscriber", "Provider", "SubscribedEvents"]
