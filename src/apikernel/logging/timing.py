"""
Timed pipeline steps.

``log_step`` wraps one stage of a request (today only ``kernel.invoke``) in
a span: the span id goes into the log context so that anything logged by
the provider is tied to it, and the step is logged as
``<event>.start`` (debug), ``<event>.end`` (``level``, with ``duration_ms``)
or ``<event>.error`` (warning, then re-raised).
"""

import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from apikernel.logging.context import get_context, get_logger, push_context

log = get_logger("apikernel.timing")


@dataclass
class StepSpan:
    """One timed step; ``fields`` are echoed on every log line of the step."""

    event: str
    parent_span_id: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: float = field(default_factory=time.perf_counter)
    ended_at: float | None = None

    @property
    def duration_ms(self) -> float:
        end = self.ended_at if self.ended_at is not None else time.perf_counter()
        return (end - self.started_at) * 1000

    def finish(self) -> None:
        if self.ended_at is None:
            self.ended_at = time.perf_counter()

    def log_fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {"span_id": self.span_id, **self.fields}
        if self.parent_span_id:
            out["parent_span_id"] = self.parent_span_id
        if self.ended_at is not None:
            out["duration_ms"] = round(self.duration_ms, 2)
        return out


@contextmanager
def log_step(event: str, log_start: bool = True, level: str = "info", **fields: Any) -> Iterator[StepSpan]:
    """
    Log a step with its duration; nested steps record the outer span as parent.

    Usage:
        with log_step("kernel.invoke", provider="RegistryProvider"):
            result = provider.invoke(request)
    """
    span = StepSpan(event, parent_span_id=get_context().span_id, fields=fields)
    token = push_context(span_id=span.span_id, parent_span_id=span.parent_span_id, step=event)
    try:
        if log_start:
            log.debug(f"{event}.start", **span.log_fields())
        yield span
    except Exception as e:
        span.finish()
        log.warning(
            f"{event}.error",
            status="error",
            error_type=type(e).__name__,
            error_message=str(e),
            **span.log_fields(),
        )
        raise
    finally:
        span.finish()
        token.restore()

    getattr(log, level)(f"{event}.end", **span.log_fields())
