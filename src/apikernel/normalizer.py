"""
Error normalization -- any fault in, one error envelope out.

Manifesto:
    Callers of the kernel must never have to know which stage failed or what
    kind of exception it raised. Every failure is reduced to the same wire
    shape, and internals (stack traces, SQL, driver messages) only show up
    when the caller explicitly asked for ``debug``.

Architecture:
    ::

        exception ──► classify_fault() ──► FaultKind
                                              │
            ┌──────────────────┬──────────────┴───────────────┐
            ▼                  ▼                              ▼
        INFRASTRUCTURE     DOMAIN / INVALID_INPUT /        GENERIC
        format_infra...    NOT_IMPLEMENTED / UNAUTHORIZED  format_exception
                           format_api_exception
            └──────────────────┴──────────────┬───────────────┘
                                              ▼
                                        create_error()
                          (constraint re-derivation, nested re-raise)
                                              ▼
                     {"is_error": 1, "error_message": ..., ...}

Envelope fields:
    is_error       always ``1``
    error_message  the (possibly re-derived) message
    error_code     fault code / storage error description, when known
    entity/action  echoed back for kernel faults
    trace          only with ``debug``
    debug_info     only with ``debug`` (infrastructure faults)
    tip            how to get more detail (infrastructure faults, no debug)

Tags:
    apikernel, error-handling, envelope, normalization
"""

from __future__ import annotations

import traceback
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from apikernel.core.errors import ApiError, FaultKind, KernelError, classify_fault
from apikernel.core.request import Request
from apikernel.logging import get_logger
from apikernel.settings import KernelSettings, get_settings
from apikernel.storage import STORAGE_MESSAGE_PREFIX, SQLAlchemyErrorIntrospector, StorageErrorIntrospector

logger = get_logger(__name__)

CHAINED_FAILURE_CODE = "chained_api_failed"
_RESERVED_KEYS = ("is_error", "error_message")


@runtime_checkable
class FieldValidator(Protocol):
    """Field metadata and foreign-key checks, owned by the API layer."""

    def get_fields(self, request: Request) -> Mapping[str, Any]:
        ...

    def validate_foreign_keys(
        self,
        entity: str,
        action: str,
        params: Mapping[str, Any],
        fields: Mapping[str, Any],
    ) -> None:
        """Raise with a specific message if a referenced record is missing."""
        ...


def create_error_envelope(message: str, data: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Build the canonical error envelope."""
    envelope: dict[str, Any] = {"is_error": 1, "error_message": message}
    for key, value in (data or {}).items():
        if key not in _RESERVED_KEYS:
            envelope[key] = value
    return envelope


def format_trace(error: BaseException) -> str:
    return "".join(traceback.format_exception(error))


class ErrorNormalizer:
    """
    Converts any exception raised while serving a request into an envelope.

    Args:
        settings: Kernel settings (constraint markers, debug tip)
        field_validator: Optional collaborator used to re-derive storage
            constraint messages into something a caller can act on
        introspector: Storage error introspection, SQLAlchemy by default
    """

    def __init__(
        self,
        settings: KernelSettings | None = None,
        *,
        field_validator: FieldValidator | None = None,
        introspector: StorageErrorIntrospector | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.field_validator = field_validator
        self.introspector = introspector or SQLAlchemyErrorIntrospector()

    def kind_of(self, error: BaseException) -> FaultKind:
        kind = classify_fault(error)
        if kind is FaultKind.GENERIC and self.introspector.is_storage_error(error):
            return FaultKind.INFRASTRUCTURE
        return kind

    def normalize(self, error: BaseException, request: Request) -> dict[str, Any]:
        """Produce exactly one error envelope for ``error``.

        Raises:
            ApiError: only when ``request`` is a nested call, wrapping the
                message with the child call's name.
        """
        match self.kind_of(error):
            case FaultKind.INFRASTRUCTURE:
                return self.format_infrastructure_exception(error, request)
            case FaultKind.GENERIC:
                return self.format_exception(error, request)
            case _:
                return self.format_api_exception(error, request)

    # ── Per-kind formatting ──────────────────────────────────────

    def format_exception(self, error: BaseException, request: Request) -> dict[str, Any]:
        """Uncategorized fault: message only, trace with debug."""
        data: dict[str, Any] = {}
        if request.is_debug:
            data["trace"] = format_trace(error)
        return self.create_error(str(error) or type(error).__name__, data, request)

    def format_api_exception(self, error: KernelError, request: Request) -> dict[str, Any]:
        """Kernel fault: the raiser's payload plus the entity and action."""
        data = error.extra_params()
        data["entity"] = request.entity
        data["action"] = request.action
        # A wrapped child failure already carries its own trace.
        if request.is_debug and not data.get("trace"):
            data["trace"] = format_trace(error)
        return self.create_error(error.message, data, request, error.code)

    def format_infrastructure_exception(self, error: BaseException, request: Request) -> dict[str, Any]:
        """Storage / transport fault: storage diagnostics, details gated by debug."""
        cause = error.cause if isinstance(error, KernelError) else error
        is_storage = self.introspector.is_storage_error(cause)

        data: dict[str, Any] = {}
        if is_storage:
            data["error_code"] = self.introspector.error_message(cause)

        if request.is_debug:
            debug_info = dict(data)
            if is_storage:
                statement = self.introspector.debug_info(cause)
                if statement:
                    debug_info["sql"] = statement
                debug_info.update(self.introspector.user_info(cause))
            data["debug_info"] = debug_info
            data["trace"] = format_trace(error)
        else:
            data["tip"] = self.settings.debug_tip

        if isinstance(error, KernelError):
            message = error.message
        elif is_storage:
            message = f"{STORAGE_MESSAGE_PREFIX} {data['error_code']}"
        else:
            message = str(error)
        return self.create_error(message, data, request)

    # ── Envelope ─────────────────────────────────────────────────

    def create_error(
        self,
        message: str,
        data: Mapping[str, Any],
        request: Request,
        code: str | int | None = None,
    ) -> dict[str, Any]:
        """Build the envelope; nested calls re-raise instead of returning."""
        message = self.rederive_message(message, request)
        envelope = create_error_envelope(message, data)
        if code is not None and "error_code" not in envelope:
            envelope["error_code"] = code

        if request.has_parent:
            error_code = envelope.get("error_code") or CHAINED_FAILURE_CODE
            raise ApiError(
                f"Error in call to {request.entity}_{request.action}: {message}",
                code=error_code,
                data=envelope,
            )
        return envelope

    def rederive_message(self, message: str, request: Request) -> str:
        """Swap a bare storage constraint message for a specific one, if possible."""
        if self.field_validator is None:
            return message
        if not any(message.startswith(marker) for marker in self.settings.constraint_markers):
            return message
        try:
            fields = self.field_validator.get_fields(request)
            self.field_validator.validate_foreign_keys(
                request.entity, request.action, request.params_dict(), fields
            )
        except Exception as e:
            logger.debug("normalizer.message_rederived", original=message, rederived=str(e))
            return str(e)
        return message


__all__ = [
    "CHAINED_FAILURE_CODE",
    "ErrorNormalizer",
    "FieldValidator",
    "create_error_envelope",
    "format_trace",
]
