"""Wide Event context for canonical log lines.

One dict per request accumulates context (route, status, generation counts,
slow queries). RequestTimingMiddleware initializes it at request start and
emits it once at request end.

Usage:
    from core.wide_event import set_wide_event_fields

    # In route handlers or services:
    set_wide_event_fields(generation_event_id=event_id, generation_failed=2)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any] | None] = ContextVar(
    "wide_event", default=None
)


def init_wide_event() -> dict[str, Any]:
    """Start a new wide event for the current async context."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """The current wide event, or an empty detached dict outside a request."""
    event = _wide_event.get()
    return event if event is not None else {}


def set_wide_event_fields(**kwargs: Any) -> None:
    """Record fields on the current wide event.

    No-op outside request context (CLI runs, tests without init).
    """
    event = _wide_event.get()
    if event is not None:
        event.update(kwargs)


def clear_wide_event() -> None:
    _wide_event.set(None)
