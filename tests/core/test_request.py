"""Tests for apikernel.core.request module."""

from types import MappingProxyType

import pytest

from apikernel.core.request import ApiVersion, Request


class TestCreate:
    """Request.create() builds a request from raw caller input."""

    def test_version_from_params(self):
        request = Request.create("Contact", "get", {"version": 4})
        assert request.version == 4

    def test_numeric_string_version(self):
        assert Request.create("Contact", "get", {"version": "3"}).version == 3

    def test_default_version_when_missing(self):
        assert Request.create("Contact", "get", {}).version == ApiVersion.LEGACY_3
        assert Request.create("Contact", "get", {}, default_version=4).version == 4

    def test_unparseable_version_is_kept_for_boot(self):
        assert Request.create("Contact", "get", {"version": "four"}).version == "four"

    def test_non_mapping_params_are_not_coerced(self):
        request = Request.create("Contact", "get", ["not", "a", "mapping"])
        assert request.params == ["not", "a", "mapping"]
        assert request.has_mapping_params is False
        assert request.version == ApiVersion.LEGACY_3

    def test_extra_is_carried(self):
        assert Request.create("Contact", "get", {}, extra="legacy").extra == "legacy"

    def test_request_ids_are_unique(self):
        assert Request.create("A", "b", {}).request_id != Request.create("A", "b", {}).request_id


class TestImmutability:
    """Requests are copy-on-write."""

    def test_params_are_read_only(self):
        request = Request.create("Contact", "get", {"a": 1})
        assert isinstance(request.params, MappingProxyType)
        with pytest.raises(TypeError):
            request.params["a"] = 2

    def test_caller_dict_changes_do_not_leak(self):
        params = {"a": 1}
        request = Request.create("Contact", "get", params)
        params["a"] = 99
        assert request.params["a"] == 1

    def test_fields_are_frozen(self):
        request = Request.create("Contact", "get", {})
        with pytest.raises(AttributeError):
            request.entity = "Email"

    def test_replace_returns_new_request(self):
        original = Request.create("Contact", "get", {"version": 3})
        changed = original.replace(action="create")
        assert changed.action == "create"
        assert original.action == "get"
        assert changed.request_id == original.request_id

    def test_with_params_merges(self):
        original = Request.create("Contact", "get", {"a": 1})
        changed = original.with_params(b=2)
        assert dict(changed.params) == {"a": 1, "b": 2}
        assert dict(original.params) == {"a": 1}

    def test_without_params(self):
        original = Request.create("Contact", "get", {"a": 1, "b": 2})
        assert dict(original.without_params("a").params) == {"b": 2}


class TestAccessors:
    def test_flags(self):
        request = Request.create("Contact", "get", {"debug": 1, "api.has_parent": 0})
        assert request.is_debug is True
        assert request.has_parent is False

    def test_get_on_malformed_params(self):
        request = Request.create("Contact", "get", "nope")
        assert request.get("debug", "default") == "default"
        assert request.flag("debug") is False
        assert request.params_dict() == {}

    def test_label_and_log_fields(self):
        request = Request.create("Contact", "get", {"version": 4})
        assert request.label == "Contact_get"
        fields = request.log_fields()
        assert fields["entity"] == "Contact"
        assert fields["version"] == 4
        assert fields["request_id"] == request.request_id


class TestApiVersion:
    def test_values(self):
        assert [int(v) for v in ApiVersion] == [2, 3, 4]

    def test_is_legacy(self):
        assert ApiVersion.LEGACY_2.is_legacy
        assert ApiVersion.LEGACY_3.is_legacy
        assert not ApiVersion.CURRENT.is_legacy
