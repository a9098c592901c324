"""Structured logging utilities using structlog for provenance and verification tracing."""

import os
import sys
import uuid
from typing import Any, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.processors import JSONRenderer

# Development mode is a TTY plus CIVIC_LOG_FORMAT=console
IS_TTY = sys.stderr.isatty()
LOG_FORMAT = os.getenv("CIVIC_LOG_FORMAT", "console").lower()
LOG_LEVEL = os.getenv("CIVIC_LOG_LEVEL", "INFO").upper()


def configure_structured_logging() -> None:
    """
    Configure structured logging with appropriate processors and renderers.

    Uses:
    - Console renderer for development (colorized, human-readable)
    - JSON renderer for production (structured, machine-readable)
    - Context binding for run_id and correlation_id
    """
    processors = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if IS_TTY and LOG_FORMAT == "console":
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_structured_logger(
    name: str,
    run_id: Optional[str] = None,
    **additional_context: Any,
) -> structlog.BoundLogger:
    """
    Get a structured logger with bound context.

    Args:
        name: Logger name (typically the component)
        run_id: Optional pipeline run ID to bind
        **additional_context: Additional context to bind

    Returns:
        Configured BoundLogger instance with context

    Example:
        >>> log = get_structured_logger("citation_service")
        >>> log.info("source_verified", url="https://example.gov.uk", status=200)
    """
    bound = structlog.get_logger(name).bind(component=name)

    if run_id:
        bound = bound.bind(run_id=run_id)

    if additional_context:
        bound = bound.bind(**additional_context)

    return bound


def get_correlation_id() -> str:
    """Generate a correlation ID for tracing a verification batch."""
    return str(uuid.uuid4())


# Configure on module import
configure_structured_logging()


__all__ = [
    "get_structured_logger",
    "get_correlation_id",
    "configure_structured_logging",
]
