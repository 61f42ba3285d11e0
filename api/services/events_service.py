"""Event business logic.

Events are the owners of templates and certificates; deleting one removes
both. Routes and the CLI delegate event handling to this module.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from repositories.event_repository import EventRepository
from schemas import EventCreate, EventData, EventId, EventSummary

logger = logging.getLogger(__name__)


class EventNotFoundError(Exception):
    """Raised when an event does not exist."""

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


async def create_event(db: AsyncSession, data: EventCreate) -> EventData:
    """Create an event from validated input."""
    event = await EventRepository(db).create(
        data.name, date=data.date, location=data.location
    )
    logger.info("event.created", extra={"event_id": event.id})
    return EventData.model_validate(event)


async def get_event(db: AsyncSession, event_id: EventId) -> EventData:
    """Get one event.

    Raises:
        EventNotFoundError: If the event does not exist
    """
    event = await EventRepository(db).get_by_id(event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    return EventData.model_validate(event)


async def list_events(db: AsyncSession) -> list[EventSummary]:
    rows = await EventRepository(db).list_with_counts()
    return [
        EventSummary(
            **EventData.model_validate(event).model_dump(),
            template_count=template_count,
            certificate_count=certificate_count,
        )
        for event, template_count, certificate_count in rows
    ]


async def delete_event(db: AsyncSession, event_id: EventId) -> None:
    """Delete an event together with its templates and certificates.

    Stored template and certificate files are left in the object store.

    Raises:
        EventNotFoundError: If the event does not exist
    """
    deleted = await EventRepository(db).delete(event_id)
    if not deleted:
        raise EventNotFoundError(event_id)
    logger.info("event.deleted", extra={"event_id": event_id})
