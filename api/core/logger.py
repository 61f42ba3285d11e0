"""Centralized logging configuration using structlog.

This module provides consistent, structured logging across the application with:
- JSON output for production (LOG_FORMAT=json)
- Colored console output for local development (default)
- Automatic configuration of third-party library logs (uvicorn, sqlalchemy, httpx)

Usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("generation.completed", extra={"event_id": 3, "generated": 12})
"""

import logging
import os
import sys

import structlog
from structlog.types import EventDict, Processor

# Attributes present on every stdlib LogRecord; anything else came from extra={}
_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def _add_record_extras(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Lift ``extra={...}`` fields from stdlib records into the event dict."""
    record = event_dict.get("_record")
    if record is None:
        return event_dict

    for key, value in record.__dict__.items():
        if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_"):
            event_dict.setdefault(key, value)
    return event_dict


def _get_log_level() -> int:
    """Get log level from environment, defaulting to INFO."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _is_json_format() -> bool:
    """Determine if JSON output is enabled (production mode)."""
    return os.environ.get("LOG_FORMAT", "").lower() == "json"


def configure_logging() -> None:
    """Configure structlog and stdlib logging. Call once at application startup.

    This sets up:
    1. structlog processors for structured logging
    2. stdlib logging to use structlog's ProcessorFormatter
    3. Third-party library log formatting (uvicorn, sqlalchemy, etc.)
    """
    log_level = _get_log_level()
    use_json = _is_json_format()

    # Shared processors for both structlog and stdlib logs
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )

    structlog.configure(
        processors=shared_processors
        + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Third-party and stdlib logs (logging.getLogger) get the same formatting
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[_add_record_extras, *shared_processors],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Quiet noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("fontTools").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A structlog BoundLogger that supports structured key-value logging.

    Example:
        logger = get_logger(__name__)
        logger.info("request.completed", http_status_code=200)
    """
    return structlog.stdlib.get_logger(name)
