"""
Logging context management using contextvars.

Request-aware context is attached to every log entry without passing it
through each stage. The kernel sets the context when a request enters the
pipeline; nested (chained) calls push their own context and restore the
parent's when they return.

Design choice: contextvars
- Thread-safe and asyncio-compatible
- Concurrent requests on different threads never see each other's context
- Clean integration with structlog processors
"""

from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Any

import structlog


@dataclass
class LogContext:
    """
    Request context attached to all log entries.

    Core identifiers:
        request_id: Short id of the request in flight
        entity / action / version: What is being called

    Nesting:
        parent_request_id: Request that spawned this one (chained calls)

    Tracing (for nested timing blocks):
        span_id: Current span identifier
        parent_span_id: Parent span for nested operations

    Stage context:
        stage: Pipeline stage currently running
        step: Current timed step name
    """

    # Core identifiers
    request_id: str | None = None
    entity: str | None = None
    action: str | None = None
    version: int | None = None

    # Nesting
    parent_request_id: str | None = None

    # Tracing
    span_id: str | None = None
    parent_span_id: str | None = None

    # Stage context
    stage: str | None = None
    step: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None and k in current})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("apikernel_log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def set_context(
    request_id: str | None = None,
    entity: str | None = None,
    action: str | None = None,
    version: int | None = None,
    parent_request_id: str | None = None,
    stage: str | None = None,
) -> LogContext:
    """
    Set the current log context.

    This replaces the current context. Use bind_context() to add to existing.
    """
    ctx = LogContext(
        request_id=request_id,
        entity=entity,
        action=action,
        version=version,
        parent_request_id=parent_request_id,
        stage=stage,
    )
    _log_context.set(ctx)
    return ctx


def bind_context(**kwargs) -> LogContext:
    """Merge values into the current context."""
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token):
        self._token = token

    def restore(self):
        """Restore the previous context."""
        _log_context.reset(self._token)


def push_context(**kwargs) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(stage="invoke")
        try:
            do_work()
        finally:
            token.restore()
    """
    updated = get_context().merge(**kwargs)
    token = _log_context.set(updated)
    return _ContextToken(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds request context to every log entry.

    Registered in configure_logging(); explicit keys on the log call win.
    """
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
