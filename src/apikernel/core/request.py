"""API request value object.

A ``Request`` describes one API call: which entity, which action, which API
version, and the caller's parameters. It is built once at the pipeline's
entry and never mutated afterwards; stages that want a different request
build a new one with ``replace()`` or ``with_params()`` and hand it on.

Tags:
    apikernel, request, value-object, copy-on-write
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Any

# Param names the pipeline itself reads.
PARAM_VERSION = "version"
PARAM_DEBUG = "debug"
PARAM_HAS_PARENT = "api.has_parent"
PARAM_IS_SUCCESS = "format.is_success"
PARAM_ONLY_ID = "format.only_id"
PARAM_CHECK_PERMISSIONS = "check_permissions"


class ApiVersion(IntEnum):
    """API versions the kernel knows how to boot."""

    LEGACY_2 = 2
    LEGACY_3 = 3
    CURRENT = 4

    @property
    def is_legacy(self) -> bool:
        return self in (ApiVersion.LEGACY_2, ApiVersion.LEGACY_3)


def _new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def _freeze(params: Any) -> Any:
    if isinstance(params, Mapping):
        return MappingProxyType(dict(params))
    return params


@dataclass(frozen=True)
class Request:
    """
    Immutable description of a single API call.

    Attributes:
        entity: Entity name (e.g. ``Contact``)
        action: Action name (e.g. ``get``)
        version: API version number; validated at boot, not here
        params: Read-only view of the caller's parameters. A non-mapping
            value is kept as-is so that boot can reject it.
        extra: Deprecated, opaque, ignored by the pipeline
        request_id: Short identifier used for log correlation
    """

    entity: str
    action: str
    version: int
    params: Any = field(default_factory=lambda: MappingProxyType({}))
    extra: Any = None
    request_id: str = field(default_factory=_new_request_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", _freeze(self.params))

    @classmethod
    def create(
        cls,
        entity: str,
        action: str,
        params: Any,
        extra: Any = None,
        *,
        default_version: int = ApiVersion.LEGACY_3,
    ) -> Request:
        """Build a request from raw caller input."""
        version = default_version
        if isinstance(params, Mapping) and params.get(PARAM_VERSION) is not None:
            version = params[PARAM_VERSION]
        try:
            version = int(version)
        except (TypeError, ValueError, OverflowError):
            # Left for boot to reject as an unknown version.
            pass
        return cls(entity=entity, action=action, version=version, params=params, extra=extra)

    # ── Copy-on-write ────────────────────────────────────────────

    def replace(self, **changes: Any) -> Request:
        """Return a new request with ``changes`` applied; same request_id."""
        return dataclasses.replace(self, **changes)

    def with_params(self, **updates: Any) -> Request:
        """Return a new request whose params are merged with ``updates``."""
        merged = dict(self.params) if self.has_mapping_params else {}
        merged.update(updates)
        return self.replace(params=merged)

    def without_params(self, *names: str) -> Request:
        """Return a new request with ``names`` dropped from params."""
        remaining = {k: v for k, v in self.params_dict().items() if k not in names}
        return self.replace(params=remaining)

    # ── Accessors ────────────────────────────────────────────────

    @property
    def has_mapping_params(self) -> bool:
        return isinstance(self.params, Mapping)

    def params_dict(self) -> dict[str, Any]:
        """Mutable copy of params (empty if params are malformed)."""
        return dict(self.params) if self.has_mapping_params else {}

    def get(self, name: str, default: Any = None) -> Any:
        if not self.has_mapping_params:
            return default
        return self.params.get(name, default)

    def flag(self, name: str) -> bool:
        """Truthiness of a param, ``False`` when params are malformed."""
        return bool(self.get(name))

    @property
    def is_debug(self) -> bool:
        return self.flag(PARAM_DEBUG)

    @property
    def has_parent(self) -> bool:
        return self.flag(PARAM_HAS_PARENT)

    @property
    def label(self) -> str:
        return f"{self.entity}_{self.action}"

    def log_fields(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "entity": self.entity,
            "action": self.action,
            "version": self.version,
        }


__all__ = [
    "ApiVersion",
    "PARAM_CHECK_PERMISSIONS",
    "PARAM_DEBUG",
    "PARAM_HAS_PARENT",
    "PARAM_IS_SUCCESS",
    "PARAM_ONLY_ID",
    "PARAM_VERSION",
    "Request",
]
