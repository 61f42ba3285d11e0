"""Repository for certificate operations."""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Certificate
from repositories.utils import log_slow_query, normalize_email

# Columns that may be changed through update()
UPDATABLE_FIELDS = frozenset(
    {
        "email",
        "name",
        "event_name",
        "date_of_event",
        "category",
        "tags",
        "certificate_url",
    }
)


class CertificateRepository:
    """Repository for certificate CRUD operations.

    Emails are expected to be pre-normalized (trimmed, lower-cased) by the
    service layer; lookups compare against the lower-cased column as well so
    rows added by hand before normalization still match.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_id(self, certificate_id: int) -> Certificate | None:
        result = await self.db.execute(
            select(Certificate).where(Certificate.id == certificate_id)
        )
        return result.scalar_one_or_none()

    @log_slow_query("certificates.find_by_email_and_event")
    async def find_by_email_and_event(
        self,
        email: str,
        event_id: int,
    ) -> Certificate | None:
        """Get the certificate for one (email, event) identity."""
        result = await self.db.execute(
            select(Certificate).where(
                func.lower(Certificate.email) == normalize_email(email),
                Certificate.event_id == event_id,
            )
        )
        return result.scalars().first()

    @log_slow_query("certificates.search_by_email")
    async def search_by_email(self, email: str) -> Sequence[Certificate]:
        """Certificates for an email (case-insensitive exact match), newest first."""
        result = await self.db.execute(
            select(Certificate)
            .where(func.lower(Certificate.email) == normalize_email(email))
            .order_by(Certificate.date_of_event.desc(), Certificate.id.desc())
        )
        return result.scalars().all()

    @log_slow_query("certificates.list")
    async def list_all(
        self,
        *,
        event_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[Certificate]:
        """List certificates, most recently created first."""
        stmt = select(Certificate)
        if event_id is not None:
            stmt = stmt.where(Certificate.event_id == event_id)
        result = await self.db.execute(
            stmt.order_by(Certificate.created_at.desc(), Certificate.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def insert(
        self,
        *,
        email: str,
        name: str,
        event_id: int | None,
        event_name: str,
        certificate_url: str,
        date_of_event: str | None = None,
        category: str | None = None,
        tags: str | None = None,
    ) -> Certificate:
        """Insert a certificate. Calls flush() but does NOT commit."""
        certificate = Certificate(
            email=email,
            name=name,
            event_id=event_id,
            event_name=event_name,
            date_of_event=date_of_event,
            category=category,
            tags=tags,
            certificate_url=certificate_url,
        )
        self.db.add(certificate)
        await self.db.flush()
        return certificate

    async def update(self, certificate: Certificate, **fields: Any) -> Certificate:
        """Apply field changes in place. Calls flush() but does NOT commit.

        Raises:
            ValueError: If a field is not updatable
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update certificate fields: {sorted(unknown)}")

        for field, value in fields.items():
            setattr(certificate, field, value)
        await self.db.flush()
        return certificate

    async def delete(self, certificate_id: int) -> bool:
        result = await self.db.execute(
            delete(Certificate).where(Certificate.id == certificate_id)
        )
        return result.rowcount > 0
