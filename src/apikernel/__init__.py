"""
apikernel - a single choke point for versioned API requests.

A request (entity, action, params) is driven through a fixed pipeline --
boot, resolve, authorize, prepare, invoke, respond -- with every stage
exposed as a dispatcher event, and every failure normalized into one error
envelope.

Usage:
    from apikernel import RegistryProvider, create_kernel

    contacts = RegistryProvider()

    @contacts.handler("Contact", "get")
    def get_contacts(request):
        return {"is_error": 0, "count": 1, "values": [{"id": 1}]}

    kernel = create_kernel(providers=[contacts])
    kernel.run_safe("Contact", "get", {"version": 3})
"""

__version__ = "0.1.0"

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
from apikernel.events import (
    AuthorizeEvent,
    ExceptionEvent,
    KernelEvent,
    KernelEvents,
    PrepareEvent,
    ResolveEvent,
    RespondEvent,
)
from apikernel.events.dispatcher import EventDispatcher
from apikernel.kernel import Kernel, create_kernel
from apikernel.normalizer import ErrorNormalizer, FieldValidator
from apikernel.providers import EventSubscriber, Provider, RegistryProvider
from apikernel.settings import KernelSettings, get_settings

__all__ = [
    # Kernel
    "Kernel",
    "create_kernel",
    "Request",
    "ApiVersion",
    # Events
    "EventDispatcher",
    "KernelEvents",
    "KernelEvent",
    "ResolveEvent",
    "AuthorizeEvent",
    "PrepareEvent",
    "RespondEvent",
    "ExceptionEvent",
    # Providers
    "Provider",
    "EventSubscriber",
    "RegistryProvider",
    # Errors
    "ErrorNormalizer",
    "FieldValidator",
    "KernelError",
    "ApiError",
    "InvalidInputError",
    "NotImplementedApiError",
    "UnauthorizedError",
    "InfrastructureError",
    "ErrorCategory",
    "FaultKind",
    "classify_fault",
    # Settings
    "KernelSettings",
    "get_settings",
]
