"""structlog setup.

Learn: Every module does `logger = structlog.get_logger()` and logs
event-style keys ("sse.connection_opened") with key/value context.
This module only decides how those entries are rendered: readable
console lines in development, one JSON object per line elsewhere.
The request id bound by RequestIdMiddleware is merged in from
structlog's contextvars.
"""

import logging

import structlog

from atelier.config import settings


def configure_logging() -> None:
    """Configure structlog processors for the current environment."""
    level = logging.DEBUG if settings.debug else logging.INFO

    if settings.environment == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
    )
