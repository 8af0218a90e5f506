"""Storage error introspection.

Infrastructure faults usually wrap a database driver error. The error
normalizer never inspects driver errors itself: it asks a
``StorageErrorIntrospector`` for a short human message, the offending
statement and the driver details. ``SQLAlchemyErrorIntrospector`` covers
anything raised through SQLAlchemy, which in turn wraps the DBAPI driver.

Examples:
    >>> import sqlite3
    >>> from sqlalchemy.exc import IntegrityError
    >>> err = IntegrityError("INSERT INTO contact ...", {"id": 1},
    ...                      sqlite3.IntegrityError("UNIQUE constraint failed: contact.id"))
    >>> SQLAlchemyErrorIntrospector().error_message(err)
    'already exists'
    >>> wrap_storage_error(err).message
    'DB Error: already exists'
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from sqlalchemy import exc as sa_exc

from apikernel.core.errors import InfrastructureError

STORAGE_MESSAGE_PREFIX = "DB Error:"

# Ordered: most specific classes first.
_MESSAGES: tuple[tuple[type[sa_exc.SQLAlchemyError], str], ...] = (
    (sa_exc.IntegrityError, "constraint violation"),
    (sa_exc.DataError, "invalid data"),
    (sa_exc.ProgrammingError, "syntax error"),
    (sa_exc.OperationalError, "connect failed"),
    (sa_exc.NoResultFound, "no such entry"),
    (sa_exc.MultipleResultsFound, "more than one result"),
    (sa_exc.DBAPIError, "unknown error"),
)

_DUPLICATE_MARKERS = ("unique", "duplicate")


@runtime_checkable
class StorageErrorIntrospector(Protocol):
    """Turns storage-layer errors into envelope fields."""

    def is_storage_error(self, error: BaseException | None) -> bool:
        ...

    def error_message(self, error: BaseException) -> str:
        """Short human-readable description of the error code."""
        ...

    def debug_info(self, error: BaseException) -> str | None:
        """The statement that failed, if known."""
        ...

    def user_info(self, error: BaseException) -> dict[str, Any]:
        """Driver-level details, only exposed with debug on."""
        ...


class SQLAlchemyErrorIntrospector:
    """Introspection for ``sqlalchemy.exc.SQLAlchemyError`` and subclasses."""

    def is_storage_error(self, error: BaseException | None) -> bool:
        return isinstance(error, sa_exc.SQLAlchemyError)

    def error_message(self, error: BaseException) -> str:
        if isinstance(error, sa_exc.IntegrityError):
            driver_message = str(error.orig).lower()
            if any(marker in driver_message for marker in _DUPLICATE_MARKERS):
                return "already exists"
        for error_type, message in _MESSAGES:
            if isinstance(error, error_type):
                return message
        return "unknown error"

    def debug_info(self, error: BaseException) -> str | None:
        if isinstance(error, sa_exc.StatementError):
            return error.statement
        return None

    def user_info(self, error: BaseException) -> dict[str, Any]:
        info: dict[str, Any] = {"error_class": type(error).__name__}
        if isinstance(error, sa_exc.StatementError):
            info["statement"] = error.statement
            info["params"] = error.params
        if isinstance(error, sa_exc.DBAPIError):
            info["driver_error"] = str(error.orig)
            info["driver_class"] = type(error.orig).__name__
        if getattr(error, "code", None):
            info["sqlalchemy_code"] = error.code
        return info


def wrap_storage_error(
    error: BaseException,
    introspector: StorageErrorIntrospector | None = None,
) -> InfrastructureError:
    """Wrap a storage error as an infrastructure fault (``DB Error: ...``)."""
    introspector = introspector or SQLAlchemyErrorIntrospector()
    message = f"{STORAGE_MESSAGE_PREFIX} {introspector.error_message(error)}"
    return InfrastructureError(message, cause=error)


__all__ = [
    "STORAGE_MESSAGE_PREFIX",
    "SQLAlchemyErrorIntrospector",
    "StorageErrorIntrospector",
    "wrap_storage_error",
]
