"""
Kernel Logging - Structured, request-aware logging.

This module provides:
- Structured logging with structlog
- Request context propagation via contextvars
- Timed pipeline steps
- Settings-based configuration

Usage:
    from apikernel.logging import get_logger, configure_logging, log_step, set_context

    # Configure once at startup
    configure_logging()

    log = get_logger(__name__)

    # Set request context (automatically attached to all logs)
    set_context(request_id="a1b2c3", entity="Contact", action="get")

    with log_step("kernel.invoke"):
        provider.invoke(request)
"""

from apikernel.logging.config import configure_logging, is_configured
from apikernel.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    push_context,
    set_context,
)
from apikernel.logging.timing import StepSpan, log_step

__all__ = [
    # Configuration
    "configure_logging",
    "is_configured",
    # Context
    "get_logger",
    "set_context",
    "clear_context",
    "get_context",
    "bind_context",
    "push_context",
    "LogContext",
    # Timing
    "StepSpan",
    "log_step",
]
