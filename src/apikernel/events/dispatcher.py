"""
Synchronous event dispatcher.

Manifesto:
    The pipeline must stay a single synchronous call chain, so listeners run
    inline, in a deterministic order, inside the stage that dispatches them.

Ordering is priority first (higher runs earlier), then registration order.
Registration is serialized by a lock and every dispatch iterates over a
snapshot, so registering a listener while requests are in flight never
invalidates an iteration; in-flight requests may or may not see it.

Tags:
    apikernel, events, dispatcher, listeners, single-node
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from apikernel.events import KernelEvent
from apikernel.logging import get_logger

__all__ = ["EventDispatcher", "Listener"]

log = get_logger(__name__)

Listener = Callable[[Any], None]
E = TypeVar("E", bound=KernelEvent)


@dataclass(order=True)
class _Registration:
    """Internal listener record; sorts by (-priority, sequence)."""

    sort_key: tuple[int, int]
    listener: Listener = field(compare=False)
    priority: int = field(compare=False, default=0)


class EventDispatcher:
    """In-process, synchronous event dispatcher.

    Example::

        dispatcher = EventDispatcher()

        def audit(event):
            print(event.request.entity)

        dispatcher.add_listener(KernelEvents.PREPARE, audit, priority=10)
        dispatcher.dispatch(KernelEvents.PREPARE, PrepareEvent(kernel, request))
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[_Registration]] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count()

    def add_listener(self, event_name: str, listener: Listener, priority: int = 0) -> None:
        """Register ``listener`` for ``event_name``."""
        with self._lock:
            registration = _Registration(
                sort_key=(-priority, next(self._sequence)),
                listener=listener,
                priority=priority,
            )
            # Copy-on-write so snapshots handed to dispatch() stay valid.
            updated = sorted([*self._listeners.get(event_name, []), registration])
            self._listeners[event_name] = updated

    def remove_listener(self, event_name: str, listener: Listener) -> None:
        """Unregister every registration of ``listener`` for ``event_name``."""
        with self._lock:
            current = self._listeners.get(event_name, [])
            self._listeners[event_name] = [r for r in current if r.listener != listener]

    def add_subscriber(self, subscriber: Any) -> None:
        """Register all listeners a subscriber declares.

        ``get_subscribed_events()`` maps event names to a method name, a
        ``(method, priority)`` pair, or a list of such pairs.
        """
        for event_name, spec in subscriber.get_subscribed_events().items():
            for method_name, priority in _normalize_spec(spec):
                self.add_listener(event_name, getattr(subscriber, method_name), priority)
        log.debug("dispatcher.subscriber_added", subscriber=type(subscriber).__name__)

    def remove_subscriber(self, subscriber: Any) -> None:
        for event_name, spec in subscriber.get_subscribed_events().items():
            for method_name, _ in _normalize_spec(spec):
                self.remove_listener(event_name, getattr(subscriber, method_name))

    def get_listeners(self, event_name: str) -> list[Listener]:
        """Listeners for ``event_name`` in call order."""
        return [r.listener for r in self._snapshot(event_name)]

    def has_listeners(self, event_name: str | None = None) -> bool:
        if event_name is not None:
            return bool(self._snapshot(event_name))
        with self._lock:
            return any(self._listeners.values())

    def dispatch(self, event_name: str, event: E) -> E:
        """Call every listener of ``event_name`` with ``event`` and return it."""
        for registration in self._snapshot(event_name):
            if event.is_propagation_stopped:
                break
            registration.listener(event)
        return event

    def _snapshot(self, event_name: str) -> list[_Registration]:
        with self._lock:
            return self._listeners.get(event_name, [])

    @property
    def listener_count(self) -> int:
        with self._lock:
            return sum(len(regs) for regs in self._listeners.values())


def _normalize_spec(spec: Any) -> list[tuple[str, int]]:
    if isinstance(spec, str):
        return [(spec, 0)]
    if isinstance(spec, tuple):
        method_name, priority = spec
        return [(method_name, priority)]
    return [(method_name, priority) for method_name, priority in spec]
