"""
Shared pytest fixtures and configuration for apikernel tests.

This module provides:
- Settings and log-context isolation
- Small fake providers and listeners with call counters
- A ready-made kernel with a contacts registry

Usage:
    Fixtures are auto-discovered by pytest:

    def test_something(kernel, contacts):
        ...
"""

import sys
from pathlib import Path
from typing import Any, Generator

import pytest

# Ensure apikernel package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from apikernel import (
    ApiError,
    KernelEvents,
    KernelSettings,
    RegistryProvider,
    Request,
    create_kernel,
)
from apikernel.logging import clear_context
from apikernel.settings import reset_settings
from tests._support.fakes import CountingProvider, allow_all


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolate_settings_and_context(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and log context so tests never leak into each other."""
    for name in ("APIKERNEL_DEFAULT_VERSION", "APIKERNEL_DEFAULT_AUTHORIZATION", "APIKERNEL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    clear_context()
    yield
    reset_settings()
    clear_context()


@pytest.fixture
def settings() -> KernelSettings:
    return KernelSettings(_env_file=None)


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def counting_provider() -> CountingProvider:
    return CountingProvider()


@pytest.fixture
def contacts() -> RegistryProvider:
    """Registry with a small Contact/Email API."""
    registry = RegistryProvider("contacts")

    @registry.handler("Contact", "get")
    def get_contacts(request: Request) -> dict[str, Any]:
        rows = [{"id": 1, "display_name": "Ada"}, {"id": 2, "display_name": "Grace"}]
        wanted = request.get("id")
        if wanted is not None:
            rows = [row for row in rows if row["id"] == int(wanted)]
        result: dict[str, Any] = {"is_error": 0, "count": len(rows), "values": rows}
        if len(rows) == 1:
            result["id"] = rows[0]["id"]
        return result

    @registry.handler("Contact", "create")
    def create_contact(request: Request) -> dict[str, Any]:
        if not request.get("contact_type"):
            raise ApiError("Mandatory key(s) missing from params array: contact_type",
                           code="mandatory_missing", data={"fields": ["contact_type"]})
        return {"is_error": 0, "id": 3, "values": [{"id": 3, **request.params_dict()}]}

    @registry.handler("Email", "get")
    def get_emails(request: Request) -> dict[str, Any]:
        contact_id = request.get("contact_id")
        return {"is_error": 0, "values": [{"contact_id": contact_id, "email": f"c{contact_id}@example.org"}]}

    @registry.handler("Email", "create")
    def create_email(request: Request) -> dict[str, Any]:
        raise ApiError("email is not valid", code="invalid_email")

    return registry


@pytest.fixture
def kernel(settings: KernelSettings, contacts: RegistryProvider):
    """Kernel with the contacts registry and an allow-all authorize listener."""
    k = create_kernel(settings, providers=[contacts])
    k.dispatcher.add_listener(KernelEvents.AUTHORIZE, allow_all)
    return k
