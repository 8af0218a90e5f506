"""Tests for apikernel.providers.registry."""

import pytest
from structlog.testing import capture_logs

from apikernel import KernelEvents, NotImplementedApiError, Request
from apikernel.events import ResolveEvent
from apikernel.providers import EventSubscriber, Provider
from apikernel.providers.registry import GENERIC_ENTITY, RegistryProvider, normalize_name


def _noop(request):
    return {"is_error": 0, "values": []}


def _resolve(registry, entity, action, version=3) -> ResolveEvent:
    event = ResolveEvent(None, Request.create(entity, action, {"version": version}))
    registry.on_resolve(event)
    return event


@pytest.fixture
def registry() -> RegistryProvider:
    registry = RegistryProvider("test")
    registry.register("Contact", "get", _noop)
    registry.register("Contact", "create", _noop, versions=[4])
    registry.register(GENERIC_ENTITY, "getfields", lambda request: {"entity": request.entity})
    registry.declare_entity("Tag")
    return registry


class TestRegistration:
    def test_duplicate_registration_fails(self, registry):
        with pytest.raises(ValueError, match="already registered"):
            registry.register("contact", "GET", _noop)

    def test_versions_may_be_a_generator(self):
        registry = RegistryProvider()
        with capture_logs() as logs:
            registry.register("Contact", "get", _noop, versions=(v for v in (3, 4)))
        assert registry.get_entity_names(4) == ["Contact"]
        assert logs[-1]["event"] == "handler_registered"
        assert logs[-1]["versions"] == [3, 4]

    def test_decorator_returns_function(self, registry):
        @registry.handler("Email", "get")
        def get_email(request):
            return {}

        assert registry.find(3, "Email", "get").handler is get_email

    def test_satisfies_protocols(self, registry):
        assert isinstance(registry, Provider)
        assert isinstance(registry, EventSubscriber)
        assert registry.get_subscribed_events() == {KernelEvents.RESOLVE: ("on_resolve", 0)}

    def test_normalize_name(self):
        assert normalize_name("Group_Contact") == normalize_name("group-contact") == "groupcontact"


class TestNames:
    def test_entity_names_per_version(self, registry):
        assert registry.get_entity_names(3) == ["Contact", "Tag"]
        assert registry.get_entity_names(2) == []

    def test_action_names_include_generic(self, registry):
        assert registry.get_action_names(3, "Contact") == ["get", "getfields"]
        assert registry.get_action_names(4, "contact") == ["create", "get", "getfields"]
        assert registry.get_action_names(3, "Tag") == ["getfields"]
        assert registry.get_action_names(3, "Unknown") == []


class TestResolution:
    def test_claims_and_stops(self, registry):
        event = _resolve(registry, "contact", "GET")
        assert event.provider is registry
        assert event.is_propagation_stopped
        assert (event.request.entity, event.request.action) == ("Contact", "get")

    def test_unknown_is_left_alone(self, registry):
        event = _resolve(registry, "Widget", "get")
        assert event.provider is None
        assert not event.is_propagation_stopped

    def test_version_fallback_rewrites_version(self, registry):
        event = _resolve(registry, "Contact", "get", version=2)
        assert event.provider is registry
        assert event.request.version == 3

    def test_no_fallback_beyond_configured(self, registry):
        assert _resolve(registry, "Contact", "create", version=3).provider is None
        assert _resolve(registry, "Contact", "create", version=4).provider is registry

    def test_custom_fallback(self):
        registry = RegistryProvider(fallback_versions={3: [4]})
        registry.register("Contact", "create", _noop, versions=[4])
        assert _resolve(registry, "Contact", "create", version=3).request.version == 4

    def test_generic_handler_needs_known_entity(self, registry):
        assert _resolve(registry, "tag", "getfields").request.entity == "Tag"
        assert _resolve(registry, "Widget", "getfields").provider is None

    def test_non_integer_version_is_ignored(self, registry):
        assert _resolve(registry, "Contact", "get", version="four").provider is None


class TestInvoke:
    def test_invokes_handler(self, registry):
        request = _resolve(registry, "tag", "getfields").request
        assert registry.invoke(request) == {"entity": "Tag"}

    def test_unresolvable_request(self, registry):
        with pytest.raises(NotImplementedApiError, match=r"API \(Widget, get\) does not exist"):
            registry.invoke(Request.create("Widget", "get", {"version": 3}))
