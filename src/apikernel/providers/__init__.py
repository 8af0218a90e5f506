"""Providers -- the components that actually execute API requests.

Modules
-------
base        Provider / EventSubscriber protocols
registry    RegistryProvider -- explicit handler registry with fallback
"""

from apikernel.providers.base import EventSubscriber, Provider
from apikernel.providers.registry import GENERIC_ENTITY, RegistryProvider, normalize_name

__all__ = [
    "EventSubscriber",
    "GENERIC_ENTITY",
    "Provider",
    "RegistryProvider",
    "normalize_name",
]
