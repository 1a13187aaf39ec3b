"""Structured logging utilities using structlog for run context and tracing."""

import sys
import uuid
from typing import Any, Optional
import structlog
from structlog.processors import JSONRenderer
from structlog.contextvars import merge_contextvars

from market_agent.config.settings import Settings, settings


def configure_structured_logging(config: Optional[Settings] = None) -> None:
    """
    Configure structlog for the memory layer from ``config``.

    Events are rendered for the console on a terminal with
    ``log_format=console`` and as JSON lines otherwise. Either way they
    go to stderr, next to the loguru records.

    Args:
        config: Settings providing level and format, defaults to the singleton
    """
    config = config or settings

    processors = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if sys.stderr.isatty() and config.log_format.lower() == "console":
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
        wrapper_class=structlog.make_filtering_bound_logger(config.log_level.lower()),
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
        name: Logger name (typically component name)
        run_id: Optional analysis run ID to bind
        **additional_context: Additional context to bind

    Returns:
        Configured BoundLogger instance with context

    Example:
        >>> logger = get_structured_logger("memory", run_id="abc-123")
        >>> logger.info("fact_stored", key="technical_analysis", confidence=0.8)
    """
    logger = structlog.get_logger(name).bind(component=name)

    if run_id:
        logger = logger.bind(run_id=run_id)

    if additional_context:
        logger = logger.bind(**additional_context)

    return logger


def get_correlation_id() -> str:
    """
    Generate a correlation ID for tracing a single analysis run.

    Returns:
        UUID string for correlation
    """
    return str(uuid.uuid4())


configure_structured_logging()


__all__ = [
    "get_structured_logger",
    "get_correlation_id",
    "configure_structured_logging",
]
