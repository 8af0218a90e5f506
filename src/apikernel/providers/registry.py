"""Handler registry provider.

Manifesto:
    A central registry lets deployments plug handlers in per
    (version, entity, action) without touching the kernel. The registry
    claims requests on the resolve event, so the resolution policy lives
    here and not in the kernel.

Resolution rules, first match wins, for each candidate version (the
requested one, then its ``fallback_versions``):

1. a handler registered for exactly (version, entity, action)
2. a generic handler registered under entity ``"*"`` for (version, action),
   provided the entity is known to the registry at that version

Names match case-insensitively and ignore ``_``/``-``, so ``contact``,
``Contact`` and ``con_tact`` all resolve to a handler registered as
``Contact``. The request handed on is rewritten to the canonical names and
the version that actually matched.

Tags:
    apikernel, providers, registry, resolution, version-fallback
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from apikernel.core.errors import NotImplementedApiError
from apikernel.core.request import ApiVersion, Request
from apikernel.events import KernelEvents, ResolveEvent
from apikernel.logging import get_logger

logger = get_logger(__name__)

GENERIC_ENTITY = "*"
DEFAULT_VERSIONS = (ApiVersion.LEGACY_3, ApiVersion.CURRENT)
DEFAULT_FALLBACK = {ApiVersion.LEGACY_2: (ApiVersion.LEGACY_3,)}

Handler = Callable[[Request], Any]


def normalize_name(name: str) -> str:
    """Lookup key for an entity or action name."""
    return name.replace("_", "").replace("-", "").strip().lower()


@dataclass(frozen=True)
class HandlerEntry:
    """A registered handler with its canonical names."""

    version: int
    entity: str
    action: str
    handler: Handler

    @property
    def is_generic(self) -> bool:
        return self.entity == GENERIC_ENTITY


class RegistryProvider:
    """
    Provider backed by an explicit handler registry.

    Example::

        contacts = RegistryProvider()

        @contacts.handler("Contact", "get")
        def get_contacts(request):
            return {"is_error": 0, "count": 0, "values": []}

        kernel.register_provider(contacts)
    """

    def __init__(
        self,
        name: str = "registry",
        *,
        fallback_versions: Mapping[int, Iterable[int]] | None = None,
        priority: int = 0,
    ) -> None:
        self.name = name
        self.priority = priority
        source = DEFAULT_FALLBACK if fallback_versions is None else fallback_versions
        self.fallback_versions: dict[int, tuple[int, ...]] = {
            int(v): tuple(int(f) for f in fallbacks) for v, fallbacks in source.items()
        }
        self._handlers: dict[tuple[int, str, str], HandlerEntry] = {}
        self._entities: dict[tuple[int, str], str] = {}
        self._lock = threading.Lock()

    # ── Registration ─────────────────────────────────────────────

    def register(
        self,
        entity: str,
        action: str,
        handler: Handler,
        versions: Iterable[int] = DEFAULT_VERSIONS,
    ) -> None:
        """Register ``handler`` for (entity, action) at each of ``versions``."""
        versions = tuple(int(v) for v in versions)
        with self._lock:
            for version in versions:
                key = (version, normalize_name(entity), normalize_name(action))
                if key in self._handlers:
                    raise ValueError(f"Handler for {entity}.{action} (v{version}) is already registered")
                self._handlers[key] = HandlerEntry(version, entity, action, handler)
                if entity != GENERIC_ENTITY:
                    self._entities[(version, normalize_name(entity))] = entity
        logger.debug(
            "handler_registered",
            provider=self.name,
            entity=entity,
            action=action,
            versions=list(versions),
        )

    def handler(
        self,
        entity: str,
        action: str,
        versions: Iterable[int] = DEFAULT_VERSIONS,
    ) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Handler) -> Handler:
            self.register(entity, action, func, versions)
            return func

        return decorator

    def declare_entity(self, entity: str, versions: Iterable[int] = DEFAULT_VERSIONS) -> None:
        """Make ``entity`` known so generic actions apply to it."""
        with self._lock:
            for version in versions:
                self._entities[(int(version), normalize_name(entity))] = entity

    # ── Provider protocol ────────────────────────────────────────

    def get_entity_names(self, version: int) -> list[str]:
        with self._lock:
            return sorted(name for (v, _), name in self._entities.items() if v == version)

    def get_action_names(self, version: int, entity: str) -> list[str]:
        wanted = normalize_name(entity)
        with self._lock:
            if (version, wanted) not in self._entities:
                return []
            actions = {
                e.action
                for (v, ent, _), e in self._handlers.items()
                if v == version and ent in (wanted, GENERIC_ENTITY)
            }
        return sorted(actions)

    def invoke(self, request: Request) -> Any:
        entry = self.find(request.version, request.entity, request.action)
        if entry is None:
            raise NotImplementedApiError(
                f"API ({request.entity}, {request.action}) does not exist (join the API team and implement it!)"
            )
        return entry.handler(request)

    # ── Resolution ───────────────────────────────────────────────

    def find(self, version: int, entity: str, action: str) -> HandlerEntry | None:
        """Look up the handler for a request, following version fallback."""
        match = self._match(version, entity, action)
        return match[0] if match else None

    def _match(self, version: int, entity: str, action: str) -> tuple[HandlerEntry, str] | None:
        ent, act = normalize_name(entity), normalize_name(action)
        candidates = (version, *self.fallback_versions.get(version, ()))
        with self._lock:
            for candidate in candidates:
                canonical_entity = self._entities.get((candidate, ent))
                entry = self._handlers.get((candidate, ent, act))
                if entry is not None:
                    return entry, entry.entity
                generic = self._handlers.get((candidate, GENERIC_ENTITY, act))
                if generic is not None and canonical_entity is not None:
                    return generic, canonical_entity
        return None

    def on_resolve(self, event: ResolveEvent) -> None:
        request = event.request
        if not isinstance(request.version, int):
            return
        match = self._match(request.version, request.entity, request.action)
        if match is None:
            return
        entry, canonical_entity = match
        resolved = request.replace(entity=canonical_entity, action=entry.action, version=entry.version)
        if resolved != request:
            logger.debug(
                "request_rewritten",
                provider=self.name,
                entity=canonical_entity,
                action=entry.action,
                version=entry.version,
                requested_version=request.version,
            )
        event.set_request(resolved)
        event.set_provider(self)
        event.stop_propagation()

    def get_subscribed_events(self) -> dict[str, tuple[str, int]]:
        return {KernelEvents.RESOLVE: ("on_resolve", self.priority)}

    def __repr__(self) -> str:
        return f"RegistryProvider(name={self.name!r}, handlers={len(self._handlers)})"


__all__ = [
    "GENERIC_ENTITY",
    "HandlerEntry",
    "RegistryProvider",
    "normalize_name",
]
