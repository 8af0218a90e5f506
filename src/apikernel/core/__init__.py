"""Kernel core -- the request value object and the fault hierarchy.

Architecture::

    errors.py     KernelError hierarchy, FaultKind tag, classify_fault()
    request.py    Request (immutable, copy-on-write), ApiVersion
"""

from apikernel.core.errors import (
    ApiError,
    ErrorCategory,
    FaultKind,
    InfrastructureError,
    InvalidInputError,
    KernelError,
    NotImplementedApiError,
    UnauthorizedError,
    classify_fault,
)
from apikernel.core.request import ApiVersion, Request

__all__ = [
    "ApiError",
    "ApiVersion",
    "ErrorCategory",
    "FaultKind",
    "InfrastructureError",
    "InvalidInputError",
    "KernelError",
    "NotImplementedApiError",
    "Request",
    "UnauthorizedError",
    "classify_fault",
]
