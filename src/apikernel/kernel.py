"""API request kernel.

Manifesto:
    Every API call, whatever transport it came in on, goes through one
    pipeline: boot, resolve, authorize, prepare, invoke, respond. Listeners
    on the dispatcher decide *who* serves a request and *whether* it may
    run; the kernel only enforces the order and guarantees a consistent
    envelope whichever stage failed.

Architecture:
    ::

        run_safe(entity, action, params)
          │
          ▼
        Request.create ──► run_request ─────────────────────────────────┐
                             boot        params is a mapping, version    │
                             resolve     api.resolve   -> provider       │
                             authorize   api.authorize -> verdict        │
                             prepare     api.prepare   -> request        │
                             invoke      provider.invoke(request)        │
                             respond     api.respond   -> response       │
                                                                         │
          ┌──── fault ◄──────────────────────────────────────────────────┘
          ▼
        api.exception ──► ErrorNormalizer ──► envelope
          │
          ▼
        format_result (format.is_success / format.only_id)

Entry points:
    run_safe       never raises (except the deliberate nested-call re-raise)
    run_request    raw pipeline, propagates faults
    run_authorize  True/False, swallows only UnauthorizedError

Tags:
    apikernel, kernel, pipeline, orchestration
"""

from __future__ import annotations

import threading
import warnings
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from apikernel.core.errors import (
    ApiError,
    InvalidInputError,
    NotImplementedApiError,
    UnauthorizedError,
)
from apikernel.core.request import PARAM_IS_SUCCESS, PARAM_ONLY_ID, ApiVersion, Request
from apikernel.events import (
    AuthorizeEvent,
    ExceptionEvent,
    KernelEvents,
    PrepareEvent,
    ResolveEvent,
    RespondEvent,
)
from apikernel.events.dispatcher import EventDispatcher
from apikernel.events.subscribers import DefaultAuthorizationPolicy
from apikernel.logging import get_context, get_logger, log_step, push_context
from apikernel.normalizer import ErrorNormalizer, FieldValidator, create_error_envelope
from apikernel.providers.base import EventSubscriber, Provider
from apikernel.settings import KernelSettings, get_settings

log = get_logger(__name__)

LegacyInitializer = Callable[[], None]


class Kernel:
    """
    Orchestrates the request pipeline.

    Build one at startup, register providers and listeners, then treat it
    as read-only configuration shared by every request-handling path.

    Args:
        dispatcher: Event dispatcher receiving the kernel events
        providers: Initial providers; registered as with register_provider()
        settings: Kernel settings (defaults to the process-wide settings)
        normalizer: Error normalizer (defaults to one built from settings)
        legacy_initializer: Zero-argument bootstrap run for versions 2 and 3
    """

    def __init__(
        self,
        dispatcher: EventDispatcher | None = None,
        providers: Iterable[Provider] = (),
        *,
        settings: KernelSettings | None = None,
        normalizer: ErrorNormalizer | None = None,
        legacy_initializer: LegacyInitializer | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._dispatcher = dispatcher if dispatcher is not None else EventDispatcher()
        self.normalizer = normalizer or ErrorNormalizer(self.settings)
        self.legacy_initializer = legacy_initializer
        self._providers: list[Provider] = []
        self._lock = threading.Lock()
        for provider in providers:
            self.register_provider(provider)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def run(self, entity: str, action: str, params: Any, extra: Any = None) -> Any:
        """Deprecated alias of :meth:`run_safe`."""
        warnings.warn("Kernel.run() is deprecated, use run_safe()", DeprecationWarning, stacklevel=2)
        return self.run_safe(entity, action, params, extra)

    def run_safe(self, entity: str, action: str, params: Any, extra: Any = None) -> Any:
        """
        Parse and execute an API request; faults come back as an envelope.

        Args:
            entity: Type of entities to deal with
            action: Create, get, delete or some special action name
            params: Mapping passed to the provider
            extra: Unused/deprecated

        Returns:
            The (formatted) provider result, or an error envelope.

        Raises:
            ApiError: only for nested calls (``api.has_parent``), so that
                the parent call fails with context.
        """
        try:
            request = self.create_request(entity, action, params, extra)
        except Exception as e:
            # Unreadable input: report against a bare request carrying no params.
            bare = Request(str(entity), str(action), self.settings.default_version)
            with self._request_scope(bare):
                return self.handle_exception(e, bare)

        with self._request_scope(request):
            try:
                response = self.run_request(request)
                return self.format_result(request, response)
            except Exception as e:
                error = self.handle_exception(e, request)
                return self.format_result(request, error)

    def run_request(self, request: Request) -> Any:
        """
        Execute a request through the full pipeline.

        Raises:
            InvalidInputError: params not a mapping, or unknown version
            NotImplementedApiError: no provider claimed the request
            UnauthorizedError: the authorize stage denied the request
            Exception: whatever the provider or a listener raised
        """
        with self._request_scope(request):
            log.debug("kernel.request.start")
            self.boot(request)
            provider, request = self.resolve(request)
            self.authorize(provider, request)
            request = self.prepare(provider, request)

            with log_step("kernel.invoke", provider=type(provider).__name__):
                result = provider.invoke(request)

            return self.respond(provider, request, result)

    def run_authorize(self, entity: str, action: str, params: Any, extra: Any = None) -> bool:
        """
        Determine if a hypothetical API call would be authorized.

        Only an authorization failure is turned into ``False``; any other
        fault (bad params, unknown API) propagates.
        """
        request = self.create_request(entity, action, params, extra)
        with self._request_scope(request):
            try:
                self.boot(request)
                provider, request = self.resolve(request)
                self.authorize(provider, request)
                return True
            except UnauthorizedError:
                return False

    def create_request(self, entity: str, action: str, params: Any, extra: Any = None) -> Request:
        return Request.create(entity, action, params, extra, default_version=self.settings.default_version)

    # =========================================================================
    # STAGES
    # =========================================================================

    def boot(self, request: Request) -> None:
        """Sanity-check inputs and run version-specific initialization."""
        if not request.has_mapping_params:
            raise InvalidInputError("Input variable `params` is not an array")

        match request.version:
            case ApiVersion.LEGACY_2 | ApiVersion.LEGACY_3:
                if self.legacy_initializer is not None:
                    self.legacy_initializer()
            case ApiVersion.CURRENT:
                pass
            case _:
                raise InvalidInputError("Unknown api version")

    def resolve(self, request: Request) -> tuple[Provider, Request]:
        """Determine which, if any, provider will execute the request."""
        event = self._dispatcher.dispatch(KernelEvents.RESOLVE, ResolveEvent(self, request))
        request = event.request
        if event.provider is None:
            raise NotImplementedApiError(
                f"API ({request.entity}, {request.action}) does not exist (join the API team and implement it!)"
            )
        log.debug("kernel.resolved", provider=type(event.provider).__name__, **request.log_fields())
        return event.provider, request

    def authorize(self, provider: Provider, request: Request) -> None:
        """Raise unless a listener explicitly authorized the request."""
        event = self._dispatcher.dispatch(KernelEvents.AUTHORIZE, AuthorizeEvent(self, request, provider))
        if not event.is_authorized():
            log.info("kernel.unauthorized", verdict=event.authorized, **request.log_fields())
            raise UnauthorizedError("Authorization failed")

    def prepare(self, provider: Provider, request: Request) -> Request:
        """Allow listeners to rewrite the request before execution."""
        event = self._dispatcher.dispatch(KernelEvents.PREPARE, PrepareEvent(self, request, provider))
        return event.request

    def respond(self, provider: Provider, request: Request, result: Any) -> Any:
        """Allow listeners to rewrite the result after execution."""
        event = self._dispatcher.dispatch(KernelEvents.RESPOND, RespondEvent(self, request, provider, result))
        return event.response

    # =========================================================================
    # FAULTS & FORMATTING
    # =========================================================================

    def handle_exception(self, error: Exception, request: Request) -> dict[str, Any]:
        """Notify exception listeners, then normalize ``error`` to an envelope."""
        log.warning(
            "kernel.request.failed",
            kind=self.normalizer.kind_of(error).value,
            error_type=type(error).__name__,
            error_message=str(error),
        )
        try:
            self._dispatcher.dispatch(KernelEvents.EXCEPTION, ExceptionEvent(self, request, error))
        except Exception as listener_error:
            log.error(
                "kernel.exception_listener_failed",
                error_type=type(listener_error).__name__,
                error_message=str(listener_error),
            )

        try:
            return self.normalizer.normalize(error, request)
        except Exception as normalizer_error:
            if request.has_parent and isinstance(normalizer_error, ApiError):
                raise
            log.error(
                "kernel.normalizer_failed",
                error_type=type(normalizer_error).__name__,
                error_message=str(normalizer_error),
            )
            return create_error_envelope(str(error) or type(error).__name__)

    def format_result(self, request: Request, result: Any) -> Any:
        """Apply the caller's output format to the final result.

        ``format.is_success=1`` collapses to ``1``/``0``; otherwise
        ``format.only_id`` returns the bare ``id`` when there is one.
        """
        if _equals_one(request.get(PARAM_IS_SUCCESS)):
            is_error = result.get("is_error") if isinstance(result, Mapping) else None
            return 0 if is_error else 1

        if request.flag(PARAM_ONLY_ID) and isinstance(result, Mapping) and result.get("id") is not None:
            return result["id"]

        return result

    # =========================================================================
    # PROVIDERS
    # =========================================================================

    def get_entity_names(self, version: int) -> list[str]:
        """Entity names across all providers, deduplicated and sorted."""
        names: set[str] = set()
        for provider in self.providers:
            names.update(provider.get_entity_names(version))
        return sorted(names)

    def get_action_names(self, version: int, entity: str) -> list[str]:
        """Action names across all providers, deduplicated and sorted."""
        names: set[str] = set()
        for provider in self.providers:
            names.update(provider.get_action_names(version, entity))
        return sorted(names)

    @property
    def providers(self) -> tuple[Provider, ...]:
        with self._lock:
            return tuple(self._providers)

    def set_providers(self, providers: Iterable[Provider]) -> Kernel:
        """Replace the provider list (no dispatcher subscription)."""
        with self._lock:
            self._providers = list(providers)
        return self

    def register_provider(self, provider: Provider) -> Kernel:
        """Add a provider; subscribe it too if it declares listeners."""
        with self._lock:
            self._providers = [*self._providers, provider]
        if isinstance(provider, EventSubscriber):
            self._dispatcher.add_subscriber(provider)
        log.debug("kernel.provider_registered", provider=type(provider).__name__)
        return self

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    # =========================================================================
    # INTERNAL
    # =========================================================================

    @contextmanager
    def _request_scope(self, request: Request) -> Iterator[None]:
        current = get_context()
        if current.request_id == request.request_id:
            yield
            return
        token = push_context(parent_request_id=current.request_id, **request.log_fields())
        try:
            yield
        finally:
            token.restore()


def _equals_one(value: Any) -> bool:
    if value is None:
        return False
    try:
        return int(value) == 1
    except (TypeError, ValueError):
        return False


def create_kernel(
    settings: KernelSettings | None = None,
    providers: Iterable[Provider] = (),
    *,
    field_validator: FieldValidator | None = None,
    legacy_initializer: LegacyInitializer | None = None,
) -> Kernel:
    """Build a kernel whose dispatcher carries the default authorization policy."""
    settings = settings or get_settings()
    dispatcher = EventDispatcher()
    dispatcher.add_subscriber(DefaultAuthorizationPolicy(allow=settings.allows_by_default))
    return Kernel(
        dispatcher,
        providers,
        settings=settings,
        normalizer=ErrorNormalizer(settings, field_validator=field_validator),
        legacy_initializer=legacy_initializer,
    )


__all__ = ["Kernel", "LegacyInitializer", "create_kernel"]
