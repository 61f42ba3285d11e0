"""Repository utility functions for common database operations."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from core.logger import get_logger
from core.wide_event import set_wide_event_fields

logger = get_logger(__name__)

# Threshold for logging slow queries (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 500

P = ParamSpec("P")
R = TypeVar("R")


def normalize_email(email: str) -> str:
    """Certificate identity uses the lower-cased, trimmed address."""
    return email.strip().lower()


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to log slow repository operations and errors.

    Logs at DEBUG level for queries exceeding SLOW_QUERY_THRESHOLD_MS.
    Records the error on the wide event for exceptions (re-raises).

    Usage:
        @log_slow_query("certificates.find_by_email_and_event")
        async def find_by_email_and_event(self, email, event_id): ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                duration_ms = (time.perf_counter() - start_time) * 1000
                if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                    logger.debug(
                        "db.slow_query",
                        operation=operation_name,
                        duration_ms=round(duration_ms, 2),
                    )
                    set_wide_event_fields(
                        db_slow_query=True,
                        db_operation=operation_name,
                        db_duration_ms=round(duration_ms, 2),
                    )
                return result
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                set_wide_event_fields(
                    db_query_error=True,
                    db_operation=operation_name,
                    db_duration_ms=round(duration_ms, 2),
                    db_error=str(e),
                    db_error_type=type(e).__name__,
                )
                raise

        return wrapper

    return decorator
