"""
Structured fault types for the API kernel.

Every failure that crosses the kernel ends up as one error envelope, but the
way the envelope is built depends on what kind of failure it was. Instead of
matching on concrete exception classes all over the normalizer, each kernel
fault carries a ``kind`` tag and ``classify_fault()`` maps *any* exception to
exactly one ``FaultKind``.

Manifesto:
    - **Tagged hierarchy:** One ``FaultKind`` per fault family
    - **Structured data:** Faults carry a machine code and a data payload
    - **Error chaining:** Lower-level causes are kept, never swallowed
    - **Exhaustive matching:** Unknown exceptions classify as ``GENERIC``

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────┐
        │                        KernelError                          │
        │             (message, code, data, category, cause)          │
        ├────────────────────────────────────────────────────────────┤
        │  InvalidInputError      NotImplementedApiError              │
        │  (INVALID_INPUT, 2000)  (NOT_IMPLEMENTED, "not-found")      │
        │                                                             │
        │  UnauthorizedError      ApiError                            │
        │  (UNAUTHORIZED)         (DOMAIN)                            │
        │                                                             │
        │  InfrastructureError                                        │
        │  (INFRASTRUCTURE, wraps a storage-layer cause)              │
        └────────────────────────────────────────────────────────────┘

        anything else ──► FaultKind.GENERIC

Examples:
    >>> err = ApiError("Mandatory key(s) missing", code="mandatory_missing",
    ...                data={"fields": ["contact_type"]})
    >>> err.extra_params()
    {'fields': ['contact_type'], 'error_code': 'mandatory_missing'}
    >>> classify_fault(err)
    <FaultKind.DOMAIN: 'domain'>
    >>> classify_fault(KeyError("x"))
    <FaultKind.GENERIC: 'generic'>

Guardrails:
    ❌ DON'T: Raise bare Exception for business-rule failures
    ✅ DO: Raise ApiError with a code and the data the caller needs

    ❌ DON'T: Drop the driver exception when wrapping storage failures
    ✅ DO: Pass it as cause= to InfrastructureError

Tags:
    error-handling, exception-hierarchy, fault-kind, apikernel
"""

from __future__ import annotations

from enum import Enum
from typing import Any

INVALID_INPUT_CODE = 2000


class ErrorCategory(str, Enum):
    """Coarse routing category, used for logging and alerting."""

    INPUT = "INPUT"                # Malformed request, unknown version
    RESOLUTION = "RESOLUTION"      # No provider claimed the request
    AUTH = "AUTH"                  # Authorization denied
    DOMAIN = "DOMAIN"              # Business-rule failure raised by a handler
    STORAGE = "STORAGE"            # Database / storage layer
    INTERNAL = "INTERNAL"          # Bugs, unexpected state


class FaultKind(str, Enum):
    """The tag the error normalizer matches on."""

    INVALID_INPUT = "invalid_input"
    NOT_IMPLEMENTED = "not_implemented"
    UNAUTHORIZED = "unauthorized"
    DOMAIN = "domain"
    INFRASTRUCTURE = "infrastructure"
    GENERIC = "generic"


class KernelError(Exception):
    """
    Base exception for all faults raised by, or through, the kernel.

    Carries:
    - **code:** machine-readable error code (``int`` or ``str``), optional
    - **data:** structured payload contributed by the raiser
    - **category:** ErrorCategory for log routing
    - **cause:** chained lower-level exception

    Subclasses set ``kind``, ``default_category`` and ``default_code``.
    """

    kind: FaultKind = FaultKind.DOMAIN
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_code: str | int | None = None

    def __init__(
        self,
        message: str,
        code: str | int | None = None,
        data: dict[str, Any] | None = None,
        *,
        category: ErrorCategory | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.data: dict[str, Any] = dict(data or {})
        self.category = category or self.default_category
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_data(self, **kwargs: Any) -> KernelError:
        """
        Add payload fields to this fault (fluent API).

        Usage:
            raise ApiError("Duplicate").with_data(duplicate_id=12)
        """
        self.data.update(kwargs)
        return self

    def extra_params(self) -> dict[str, Any]:
        """Payload merged into the error envelope, ``error_code`` included."""
        params = dict(self.data)
        if self.code is not None:
            params["error_code"] = self.code
        return params

    def to_dict(self) -> dict[str, Any]:
        """Convert fault to a dictionary for logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "category": self.category.value,
        }
        if self.code is not None:
            result["code"] = self.code
        if self.data:
            result["data_keys"] = sorted(self.data)
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.code!r})"


# =============================================================================
# PIPELINE GATES
# =============================================================================


class InvalidInputError(KernelError):
    """Structural precondition violated before resolution."""

    kind = FaultKind.INVALID_INPUT
    default_category = ErrorCategory.INPUT
    default_code = INVALID_INPUT_CODE


class NotImplementedApiError(KernelError):
    """No provider claimed the (version, entity, action) triple."""

    kind = FaultKind.NOT_IMPLEMENTED
    default_category = ErrorCategory.RESOLUTION
    default_code = "not-found"


class UnauthorizedError(KernelError):
    """An authorize listener denied the request, or nobody allowed it."""

    kind = FaultKind.UNAUTHORIZED
    default_category = ErrorCategory.AUTH
    default_code = "unauthorized"


# =============================================================================
# DOMAIN / INFRASTRUCTURE
# =============================================================================


class ApiError(KernelError):
    """Deliberate business-rule failure raised by a provider or listener."""

    kind = FaultKind.DOMAIN
    default_category = ErrorCategory.DOMAIN


class InfrastructureError(KernelError):
    """Lower-level failure wrapping a storage or transport cause."""

    kind = FaultKind.INFRASTRUCTURE
    default_category = ErrorCategory.STORAGE


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def classify_fault(error: BaseException) -> FaultKind:
    """Map any exception onto exactly one ``FaultKind``."""
    if isinstance(error, KernelError):
        return error.kind
    return FaultKind.GENERIC


def error_code_of(error: BaseException) -> str | int | None:
    """Return the machine code of a kernel fault, ``None`` otherwise."""
    if isinstance(error, KernelError):
        return error.code
    return None


__all__ = [
    "ApiError",
    "ErrorCategory",
    "FaultKind",
    "INVALID_INPUT_CODE",
    "InfrastructureError",
    "InvalidInputError",
    "KernelError",
    "NotImplementedApiError",
    "UnauthorizedError",
    "classify_fault",
    "error_code_of",
]
