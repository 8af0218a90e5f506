"""Pipeline events -- the extension points of the kernel.

Why This Package Exists
-----------------------
The kernel drives every request through the same stages, but *what* resolves
a request, *who* may run it and *how* its input and output are massaged
differ per deployment. Each stage therefore dispatches a typed event; the
kernel only reads back the stage-specific output fields after listeners ran,
so it never needs to know who the listeners are.

Usage::

    from apikernel.events import KernelEvents, AuthorizeEvent

    def allow_reads(event: AuthorizeEvent) -> None:
        if event.request.action == "get":
            event.authorize()

    kernel.dispatcher.add_listener(KernelEvents.AUTHORIZE, allow_reads)

Modules
-------
dispatcher    EventDispatcher -- synchronous, priority-ordered
subscribers   Stock listeners (default policy, permissions, wrappers, chaining)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apikernel.core.request import Request
    from apikernel.kernel import Kernel
    from apikernel.providers.base import Provider

__all__ = [
    "AuthorizeEvent",
    "ExceptionEvent",
    "KernelEvent",
    "KernelEvents",
    "PrepareEvent",
    "ResolveEvent",
    "RespondEvent",
]


class KernelEvents:
    """Names of the five extension points, in pipeline order."""

    RESOLVE = "api.resolve"
    AUTHORIZE = "api.authorize"
    PREPARE = "api.prepare"
    RESPOND = "api.respond"
    EXCEPTION = "api.exception"

    ALL = (RESOLVE, AUTHORIZE, PREPARE, RESPOND, EXCEPTION)


# ── Event Model ──────────────────────────────────────────────────────────


class KernelEvent:
    """Base payload for one stage invocation.

    Owned by the kernel for the duration of the stage. Listeners read it and
    set the stage's output fields; they must not keep a reference to it.

    Attributes:
        kernel: The kernel dispatching the event
        request: The request in flight at this stage
        provider: Resolved provider (``None`` before resolution)
    """

    def __init__(self, kernel: Kernel | None, request: Request, provider: Provider | None = None):
        self.kernel = kernel
        self.request = request
        self.provider = provider
        self._propagation_stopped = False

    def stop_propagation(self) -> None:
        """Skip the remaining (lower-priority) listeners for this stage."""
        self._propagation_stopped = True

    @property
    def is_propagation_stopped(self) -> bool:
        return self._propagation_stopped

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.request.entity}.{self.request.action})"


class ResolveEvent(KernelEvent):
    """Find the provider for a request.

    Listeners call ``set_provider()``; they may also ``set_request()`` to
    rewrite the request (normalized names, fallback version). The last
    provider set wins unless a listener stops propagation.
    """

    def set_provider(self, provider: Provider) -> None:
        self.provider = provider

    def set_request(self, request: Request) -> None:
        self.request = request


class AuthorizeEvent(KernelEvent):
    """Decide whether the resolved request may run.

    ``authorized`` starts as ``None`` (no opinion). Only an explicit
    ``True`` lets the request through.
    """

    def __init__(self, kernel: Kernel | None, request: Request, provider: Provider | None = None):
        super().__init__(kernel, request, provider)
        self.authorized: bool | None = None

    def authorize(self) -> None:
        self.authorized = True

    def deny(self) -> None:
        self.authorized = False

    def set_authorized(self, authorized: bool) -> None:
        self.authorized = bool(authorized)

    @property
    def has_verdict(self) -> bool:
        return self.authorized is not None

    def is_authorized(self) -> bool:
        return self.authorized is True


class PrepareEvent(KernelEvent):
    """Last chance to rewrite the request before invocation."""

    def set_request(self, request: Request) -> None:
        self.request = request


class RespondEvent(KernelEvent):
    """Inspect or replace the provider's result."""

    def __init__(
        self,
        kernel: Kernel | None,
        request: Request,
        provider: Provider | None,
        response: Any,
    ):
        super().__init__(kernel, request, provider)
        self.response = response

    def set_response(self, response: Any) -> None:
        self.response = response


class ExceptionEvent(KernelEvent):
    """Notification that a request failed. Listeners cannot alter the outcome."""

    def __init__(
        self,
        kernel: Kernel | None,
        request: Request,
        exception: BaseException,
        provider: Provider | None = None,
    ):
        super().__init__(kernel, request, provider)
        self.exception = exception
