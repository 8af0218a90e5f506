"""Tests for storage error introspection."""

import sqlite3

import pytest
from sqlalchemy.exc import (
    DataError,
    IntegrityError,
    MultipleResultsFound,
    NoResultFound,
    OperationalError,
    ProgrammingError,
)

from apikernel.core.errors import FaultKind, InfrastructureError
from apikernel.storage import SQLAlchemyErrorIntrospector, StorageErrorIntrospector, wrap_storage_error


@pytest.fixture
def introspector() -> SQLAlchemyErrorIntrospector:
    return SQLAlchemyErrorIntrospector()


class TestErrorMessage:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (IntegrityError("INSERT", (), sqlite3.IntegrityError("UNIQUE constraint failed: t.c")), "already exists"),
            (IntegrityError("INSERT", (), sqlite3.IntegrityError("Duplicate entry '1'")), "already exists"),
            (IntegrityError("INSERT", (), sqlite3.IntegrityError("NOT NULL constraint failed")), "constraint violation"),
            (DataError("INSERT", (), sqlite3.DataError("too long")), "invalid data"),
            (ProgrammingError("SELEC", (), sqlite3.ProgrammingError("syntax")), "syntax error"),
            (OperationalError("SELECT", (), sqlite3.OperationalError("unable to open")), "connect failed"),
            (NoResultFound(), "no such entry"),
            (MultipleResultsFound(), "more than one result"),
        ],
    )
    def test_messages(self, introspector, error, expected):
        assert introspector.error_message(error) == expected


class TestDetails:
    def test_is_storage_error(self, introspector):
        assert introspector.is_storage_error(NoResultFound())
        assert not introspector.is_storage_error(ValueError())
        assert not introspector.is_storage_error(None)

    def test_debug_info_is_statement(self, introspector):
        error = ProgrammingError("SELECT * FROM nope", {"a": 1}, sqlite3.ProgrammingError("no such table"))
        assert introspector.debug_info(error) == "SELECT * FROM nope"
        assert introspector.debug_info(NoResultFound()) is None

    def test_user_info(self, introspector):
        error = ProgrammingError("SELECT * FROM nope", {"a": 1}, sqlite3.ProgrammingError("no such table"))
        info = introspector.user_info(error)
        assert info["error_class"] == "ProgrammingError"
        assert info["params"] == {"a": 1}
        assert info["driver_error"] == "no such table"
        assert info["driver_class"] == "ProgrammingError"

    def test_satisfies_protocol(self, introspector):
        assert isinstance(introspector, StorageErrorIntrospector)


class TestWrapStorageError:
    def test_wraps_with_prefix_and_cause(self):
        original = OperationalError("SELECT 1", (), sqlite3.OperationalError("locked"))
        wrapped = wrap_storage_error(original)
        assert isinstance(wrapped, InfrastructureError)
        assert wrapped.kind is FaultKind.INFRASTRUCTURE
        assert wrapped.message == "DB Error: connect failed"
        assert wrapped.cause is original
