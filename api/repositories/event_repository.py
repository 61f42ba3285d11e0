"""Repository for event operations."""

from collections.abc import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Certificate, CertificateTemplate, Event
from repositories.utils import log_slow_query


class EventRepository:
    """Repository for Event CRUD operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_id(self, event_id: int) -> Event | None:
        """Get an event by ID."""
        result = await self.db.execute(select(Event).where(Event.id == event_id))
        return result.scalar_one_or_none()

    @log_slow_query("events.list_with_counts")
    async def list_with_counts(self) -> Sequence[tuple[Event, int, int]]:
        """List events newest first, each with its template and certificate counts."""
        template_count = (
            select(func.count(CertificateTemplate.id))
            .where(CertificateTemplate.event_id == Event.id)
            .correlate(Event)
            .scalar_subquery()
        )
        certificate_count = (
            select(func.count(Certificate.id))
            .where(Certificate.event_id == Event.id)
            .correlate(Event)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(Event, template_count, certificate_count).order_by(
                Event.created_at.desc(), Event.id.desc()
            )
        )
        return [(event, templates, certs) for event, templates, certs in result.all()]

    async def create(
        self,
        name: str,
        *,
        date: str | None = None,
        location: str | None = None,
    ) -> Event:
        """Create an event. Calls flush() but does NOT commit."""
        event = Event(name=name, date=date, location=location)
        self.db.add(event)
        await self.db.flush()
        return event

    async def delete(self, event_id: int) -> bool:
        """Delete an event; templates and certificates go with it.

        Returns:
            True if a row was deleted
        """
        result = await self.db.execute(delete(Event).where(Event.id == event_id))
        return result.rowcount > 0
