"""Stock event subscribers.

Each class declares its listeners through ``get_subscribed_events()`` and is
registered with ``EventDispatcher.add_subscriber()``.

- ``DefaultAuthorizationPolicy``: makes the "nobody had an opinion" case an
  explicit policy decision (deny unless configured otherwise)
- ``PermissionCheckSubscriber``: per (entity, action) permission checks,
  opt-in per request with ``check_permissions``
- ``WrapperSubscriber``: input/output wrappers around invocation
- ``ChainedCallSubscriber``: nested ``api.<entity>.<action>`` calls run
  against every returned value
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from apikernel.core.request import PARAM_CHECK_PERMISSIONS, PARAM_DEBUG, PARAM_HAS_PARENT, PARAM_VERSION, Request
from apikernel.events import AuthorizeEvent, KernelEvents, PrepareEvent, RespondEvent
from apikernel.logging import get_logger
from apikernel.providers.registry import normalize_name

if TYPE_CHECKING:
    from apikernel.kernel import Kernel

logger = get_logger(__name__)

__all__ = [
    "ApiWrapper",
    "ChainedCallSubscriber",
    "DefaultAuthorizationPolicy",
    "PermissionCheckSubscriber",
    "WrapperSubscriber",
]


class DefaultAuthorizationPolicy:
    """Last authorize listener: decides only when no one else did."""

    PRIORITY = -1000

    def __init__(self, allow: bool = False) -> None:
        self.allow = allow

    def on_authorize(self, event: AuthorizeEvent) -> None:
        if event.has_verdict:
            return
        event.set_authorized(self.allow)
        logger.debug("authorization.default_policy", allowed=self.allow, **event.request.log_fields())

    def get_subscribed_events(self) -> dict[str, tuple[str, int]]:
        return {KernelEvents.AUTHORIZE: ("on_authorize", self.PRIORITY)}


class PermissionCheckSubscriber:
    """
    Checks the caller's permissions when a request sets ``check_permissions``.

    Requests without the flag are trusted internal calls and are authorized.
    Flagged requests need every permission mapped to their (entity, action),
    or ``default_permissions`` when unmapped.

    Args:
        has_permission: Answers "does the current user hold this permission?"
        permissions: ``{(entity, action): [permission, ...]}``; entity or
            action may be ``"*"``
        default_permissions: Required when no mapping matches
        priority: Listener priority on ``api.authorize``
    """

    def __init__(
        self,
        has_permission: Callable[[str], bool],
        permissions: Mapping[tuple[str, str], Sequence[str]] | None = None,
        *,
        default_permissions: Sequence[str] = ("administer",),
        priority: int = 0,
    ) -> None:
        self.has_permission = has_permission
        self.permissions = {
            (_key(entity), _key(action)): tuple(perms) for (entity, action), perms in (permissions or {}).items()
        }
        self.default_permissions = tuple(default_permissions)
        self.priority = priority

    def required_permissions(self, entity: str, action: str) -> tuple[str, ...]:
        ent, act = _key(entity), _key(action)
        for candidate in ((ent, act), (ent, "*"), ("*", act), ("*", "*")):
            if candidate in self.permissions:
                return self.permissions[candidate]
        return self.default_permissions

    def on_authorize(self, event: AuthorizeEvent) -> None:
        request = event.request
        if not request.flag(PARAM_CHECK_PERMISSIONS):
            event.authorize()
            return

        required = self.required_permissions(request.entity, request.action)
        missing = [perm for perm in required if not self.has_permission(perm)]
        if missing:
            logger.info("authorization.permission_denied", missing=missing, **request.log_fields())
            event.deny()
        else:
            event.authorize()
        event.stop_propagation()

    def get_subscribed_events(self) -> dict[str, tuple[str, int]]:
        return {KernelEvents.AUTHORIZE: ("on_authorize", self.priority)}


def _key(name: str) -> str:
    return name if name == "*" else normalize_name(name)


class ApiWrapper(Protocol):
    """Rewrites requests before invocation and results after it."""

    def from_api_input(self, request: Request) -> Request:
        ...

    def to_api_output(self, request: Request, result: Any) -> Any:
        ...


class WrapperSubscriber:
    """Applies ``ApiWrapper``s on prepare and respond, in registration order."""

    def __init__(self, wrappers: Iterable[ApiWrapper] = ()) -> None:
        self.wrappers: list[ApiWrapper] = list(wrappers)

    def add_wrapper(self, wrapper: ApiWrapper) -> None:
        self.wrappers = [*self.wrappers, wrapper]

    def on_prepare(self, event: PrepareEvent) -> None:
        for wrapper in self.wrappers:
            event.set_request(wrapper.from_api_input(event.request))

    def on_respond(self, event: RespondEvent) -> None:
        for wrapper in self.wrappers:
            event.set_response(wrapper.to_api_output(event.request, event.response))

    def get_subscribed_events(self) -> dict[str, str]:
        return {
            KernelEvents.PREPARE: "on_prepare",
            KernelEvents.RESPOND: "on_respond",
        }


_CHAIN_KEY = re.compile(r"^api\.([A-Za-z_]+)\.([A-Za-z_]+)$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class ChainedCallSubscriber:
    """
    Runs nested calls declared as ``api.<entity>.<action>`` params.

    For a parent result shaped ``{"values": [...]}`` (or a mapping of id to
    value), each value gets one child call per chain key. Child params carry
    ``api.has_parent=1`` and ``<parent_entity>_id`` set to the value's
    ``id``; the child result is stored on the value under the chain key.

    A failing child re-raises (see ``ErrorNormalizer.create_error``), so the
    parent call fails with ``Error in call to <entity>_<action>: ...``.
    """

    PRIORITY = -100

    def __init__(self, kernel: Kernel | None = None) -> None:
        self.kernel = kernel

    def on_respond(self, event: RespondEvent) -> None:
        result = event.response
        if not isinstance(result, Mapping) or result.get("is_error"):
            return
        chains = [
            (key, match.group(1), match.group(2), spec)
            for key, spec in event.request.params_dict().items()
            if (match := _CHAIN_KEY.match(key))
        ]
        if not chains:
            return

        kernel = self.kernel or event.kernel
        if kernel is None:
            raise RuntimeError("ChainedCallSubscriber needs a kernel to run nested calls")

        def expand(row: Any) -> Any:
            if not isinstance(row, Mapping):
                return row
            expanded = dict(row)
            for key, entity, action, spec in chains:
                expanded[key] = self._run_chain(kernel, event.request, row, entity, action, spec)
            return expanded

        values = result.get("values")
        response = dict(result)
        if isinstance(values, Mapping):
            response["values"] = {row_id: expand(row) for row_id, row in values.items()}
        elif isinstance(values, list):
            response["values"] = [expand(row) for row in values]
        else:
            return

        logger.debug("chained_calls.completed", chains=[c[0] for c in chains], **event.request.log_fields())
        event.set_response(response)

    def _run_chain(
        self,
        kernel: Kernel,
        parent: Request,
        row: Mapping[str, Any],
        entity: str,
        action: str,
        spec: Any,
    ) -> Any:
        if isinstance(spec, list):
            return [kernel.run_safe(entity, action, self.child_params(parent, row, s)) for s in spec]
        return kernel.run_safe(entity, action, self.child_params(parent, row, spec))

    @staticmethod
    def child_params(parent: Request, row: Mapping[str, Any], spec: Any) -> dict[str, Any]:
        params: dict[str, Any] = {PARAM_VERSION: parent.version, PARAM_HAS_PARENT: 1}
        if parent.is_debug:
            params[PARAM_DEBUG] = 1
        if row.get("id") is not None:
            params[f"{entity_key(parent.entity)}_id"] = row["id"]
        if isinstance(spec, Mapping):
            params.update(spec)
        elif spec is not True and spec not in (1, "1"):
            params["id"] = spec
        return params

    def get_subscribed_events(self) -> dict[str, tuple[str, int]]:
        return {KernelEvents.RESPOND: ("on_respond", self.PRIORITY)}


def entity_key(entity: str) -> str:
    """``GroupContact`` -> ``group_contact``."""
    return _CAMEL_BOUNDARY.sub("_", entity).lower()
