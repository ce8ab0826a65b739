"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production (searchable/aggregatable)
and human-readable colored output for development.

The application factory calls ``configure_logging`` once at startup and keeps
the returned logger on ``app.state.logger``; request-path components receive
it from there instead of reaching for a module global.

Usage:
    from inkwell.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("post created", post_id=12, slug="hello")

Output in production (JSON):
    {"event": "post created", "post_id": 12, "slug": "hello",
     "timestamp": "2024-01-01T12:00:00Z", "level": "info", "request_id": "req_..."}

Output in development (colored):
    2024-01-01T12:00:00Z [info     ] post created    post_id=12 slug=hello
"""

import logging
import sys
from typing import Any, Optional

import structlog

from inkwell.core.config import Settings

IS_TEST = "pytest" in sys.modules


def configure_logging(settings: Settings) -> None:
    """Configure structlog with appropriate processors for the environment."""

    # Shared processors for all environments
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.is_production or settings.LOG_JSON:
        # Production: JSON output for log aggregation
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Development: colored, human-readable output
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=not IS_TEST),
        ]

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=not IS_TEST,
    )

    # Also configure standard logging so third-party libraries share the sink
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Reduce noise from chatty libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger with JSON/console output based on environment
    """
    return structlog.get_logger(name)
