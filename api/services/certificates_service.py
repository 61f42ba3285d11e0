"""Certificate records business logic.

This module handles certificate rows outside of batch generation:
- Public search by email
- Admin listing, manual add, partial update and delete
- Bulk import of rows that already carry a certificate link

Routes should delegate all certificate record handling to this module.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Certificate
from repositories.certificate_repository import CertificateRepository
from repositories.event_repository import EventRepository
from repositories.utils import normalize_email
from schemas import (
    BulkUploadResult,
    CertificateCreate,
    CertificateData,
    CertificateRow,
    CertificateSearchResult,
    CertificateUpdate,
)
from services.events_service import EventNotFoundError

logger = logging.getLogger(__name__)

# Columns that cannot be cleared by an update
_REQUIRED_FIELDS = ("email", "name", "event_name", "certificate_url")


class CertificateNotFoundError(Exception):
    """Raised when a certificate (or any certificate for an email) is missing."""


class CertificateAlreadyExistsError(Exception):
    """Raised when a change would duplicate an (email, event) certificate."""


def _to_search_result(certificate: Certificate) -> CertificateSearchResult:
    return CertificateSearchResult(
        name=certificate.name,
        email=certificate.email,
        event_name=certificate.event_name,
        date=certificate.date_of_event,
        category=certificate.category,
        tags=certificate.tags,
        certificate_url=certificate.certificate_url,
    )


async def search_certificates(
    db: AsyncSession, email: str
) -> list[CertificateSearchResult]:
    """Find a participant's certificates (case-insensitive exact email match)."""
    certificates = await CertificateRepository(db).search_by_email(email)
    return [_to_search_result(c) for c in certificates]


async def list_certificates(
    db: AsyncSession,
    *,
    event_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[CertificateData]:
    certificates = await CertificateRepository(db).list_all(
        event_id=event_id, limit=limit, offset=offset
    )
    return [CertificateData.model_validate(c) for c in certificates]


async def add_certificate(db: AsyncSession, data: CertificateCreate) -> CertificateData:
    """Add a certificate by hand.

    With an event_id the row is upserted on (email, event) like generation
    does; without one it is inserted as a standalone record.

    Raises:
        EventNotFoundError: If event_id does not exist
    """
    repo = CertificateRepository(db)
    email = normalize_email(data.email)
    fields = data.model_dump(exclude={"email", "event_id"})

    if data.event_id is not None:
        if await EventRepository(db).get_by_id(data.event_id) is None:
            raise EventNotFoundError(data.event_id)
        existing = await repo.find_by_email_and_event(email, data.event_id)
        if existing is not None:
            certificate = await repo.update(existing, email=email, **fields)
            logger.info(
                "certificate.updated",
                extra={"certificate_id": certificate.id, "source": "manual"},
            )
            return CertificateData.model_validate(certificate)

    certificate = await repo.insert(email=email, event_id=data.event_id, **fields)
    logger.info(
        "certificate.created",
        extra={"certificate_id": certificate.id, "event_id": data.event_id},
    )
    return CertificateData.model_validate(certificate)


async def update_certificate(
    db: AsyncSession, certificate_id: int, data: CertificateUpdate
) -> CertificateData:
    """Apply a partial update; the email is normalized when present.

    Raises:
        CertificateNotFoundError: If the certificate does not exist
        CertificateAlreadyExistsError: If the new email collides for the event
    """
    repo = CertificateRepository(db)
    certificate = await repo.get_by_id(certificate_id)
    if certificate is None:
        raise CertificateNotFoundError(f"Certificate not found: {certificate_id}")

    changes = data.model_dump(exclude_unset=True)
    for field in _REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            del changes[field]
    if "email" in changes:
        changes["email"] = normalize_email(changes["email"])
    if not changes:
        return CertificateData.model_validate(certificate)

    try:
        async with db.begin_nested():
            certificate = await repo.update(certificate, **changes)
    except IntegrityError as e:
        raise CertificateAlreadyExistsError(
            "A certificate for this email already exists for the event"
        ) from e

    logger.info(
        "certificate.updated",
        extra={"certificate_id": certificate_id, "fields": sorted(changes)},
    )
    return CertificateData.model_validate(certificate)


async def delete_certificate(db: AsyncSession, certificate_id: int) -> None:
    """Delete a certificate row; the stored file is left in place.

    Raises:
        CertificateNotFoundError: If the certificate does not exist
    """
    deleted = await CertificateRepository(db).delete(certificate_id)
    if not deleted:
        raise CertificateNotFoundError(f"Certificate not found: {certificate_id}")
    logger.info("certificate.deleted", extra={"certificate_id": certificate_id})


def _is_complete(row: CertificateRow) -> bool:
    return all(
        (getattr(row, field) or "").strip()
        for field in ("email", "name", "event_name", "certificate_url")
    )


async def bulk_add_certificates(
    db: AsyncSession, rows: list[CertificateRow]
) -> BulkUploadResult:
    """Insert rows that carry email, name, event name and certificate link.

    Incomplete rows are skipped and counted.
    """
    repo = CertificateRepository(db)
    valid = [row for row in rows if _is_complete(row)]
    skipped = len(rows) - len(valid)

    for row in valid:
        await repo.insert(
            email=normalize_email(row.email),
            name=row.name.strip(),
            event_id=None,
            event_name=row.event_name.strip(),
            date_of_event=row.date_of_event,
            category=row.category,
            tags=row.tags,
            certificate_url=row.certificate_url.strip(),
        )

    logger.info(
        "certificates.bulk_uploaded",
        extra={"uploaded": len(valid), "skipped": skipped},
    )
    message = f"Successfully uploaded {len(valid)} certificates"
    if skipped:
        message += f" ({skipped} rows skipped due to missing required fields)"
    return BulkUploadResult(uploaded=len(valid), skipped=skipped, message=message)
