"""Batch certificate generation.

Drives one generation run for an event:
- Pre-flight checks (event exists, event has templates), fatal to the batch
- Per participant: validate, resolve template, render, upload, upsert
- Aggregation of per-item outcomes into a GenerationReport

Participants are processed sequentially in input order. Every per-item
failure is caught and reported; one participant never affects another.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.storage import ObjectStore, safe_segment, unique_token
from core.wide_event import set_wide_event_fields
from rendering.certificates import RenderedCertificate, render_certificate
from repositories.certificate_repository import CertificateRepository
from repositories.event_repository import EventRepository
from repositories.utils import normalize_email
from schemas import (
    CertificateData,
    EventId,
    GenerationFailure,
    GenerationReport,
    GenerationSuccess,
    OutputFormat,
    Participant,
    TemplateData,
)
from services.certificates_service import CertificateNotFoundError
from services.events_service import EventNotFoundError
from services.templates_service import (
    TemplateMap,
    TemplateNotFoundError,
    build_template_map,
    get_template,
    get_templates_for_event,
    normalize_category,
    placement_for,
)

logger = logging.getLogger(__name__)


class NoTemplatesError(Exception):
    """Raised when an event has no templates, so nothing could be generated."""

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(
            f"No certificate templates found for event {event_id}. "
            "Upload at least one template first."
        )


class ItemFailure(Exception):
    """A participant failed a validation gate before rendering."""


@dataclass(frozen=True)
class _EventInfo:
    """Event fields denormalized onto every certificate of the batch."""

    id: int
    name: str
    date: str | None


class _TemplateBytes:
    """Template images fetched from the object store, cached for one batch."""

    def __init__(self, store: ObjectStore):
        self._store = store
        self._cache: dict[int, bytes] = {}

    async def get(self, template: TemplateData) -> bytes:
        cached = self._cache.get(template.id)
        if cached is None:
            cached = await self._store.download(template.template_path)
            self._cache[template.id] = cached
        return cached


def certificate_path(
    event_id: int, category: str, name: str, extension: str
) -> str:
    """Unique object key for a generated certificate."""
    return (
        f"certificates/{event_id}/"
        f"{safe_segment(normalize_category(category))}_{safe_segment(name)}_"
        f"{unique_token()}.{extension}"
    )


async def _render(
    template_bytes: bytes,
    template: TemplateData,
    name: str,
    output_format: str,
) -> RenderedCertificate:
    # Decode/draw/encode are CPU bound; keep the event loop free
    return await asyncio.to_thread(
        render_certificate,
        template_bytes,
        placement_for(template),
        name,
        output_format,
    )


async def _render_and_upload(
    store: ObjectStore,
    templates: _TemplateBytes,
    template: TemplateData,
    *,
    event_id: int,
    category: str,
    name: str,
    output_format: str,
) -> str:
    """Render one certificate and store it. Returns the public URL."""
    template_bytes = await templates.get(template)
    rendered = await _render(template_bytes, template, name, output_format)
    path = certificate_path(event_id, category, name, rendered.extension)
    stored_path = await store.upload(
        path, rendered.content, rendered.content_type, overwrite=False
    )
    return store.get_public_url(stored_path)


async def _record_certificate(
    db: AsyncSession,
    event: _EventInfo,
    *,
    email: str,
    name: str,
    category: str,
    certificate_url: str,
) -> int:
    """Upsert the certificate for (email, event) inside a savepoint.

    A database failure rolls back only this participant's write.
    """
    repo = CertificateRepository(db)
    async with db.begin_nested():
        existing = await repo.find_by_email_and_event(email, event.id)
        if existing is not None:
            certificate = await repo.update(
                existing,
                email=email,
                name=name,
                event_name=event.name,
                date_of_event=event.date,
                category=category,
                certificate_url=certificate_url,
            )
        else:
            certificate = await repo.insert(
                email=email,
                name=name,
                event_id=event.id,
                event_name=event.name,
                date_of_event=event.date,
                category=category,
                certificate_url=certificate_url,
            )
    return certificate.id


def _validate(participant: Participant) -> tuple[str, str, str]:
    email = (participant.email or "").strip()
    name = (participant.name or "").strip()
    category = (participant.category or "").strip()
    if not (email and name and category):
        raise ItemFailure(f"Missing required fields for {email or name or 'unknown'}")
    return normalize_email(email), name, category


async def _process_participant(
    db: AsyncSession,
    store: ObjectStore,
    event: _EventInfo,
    template_map: TemplateMap,
    templates: _TemplateBytes,
    index: int,
    participant: Participant,
    *,
    output_format: str,
    item_timeout: float | None,
) -> GenerationSuccess:
    """Run one participant through every gate.

    Raises:
        ItemFailure: With the report message for this participant
    """
    email, name, category = _validate(participant)

    try:
        template = template_map.resolve(category)
    except TemplateNotFoundError as e:
        raise ItemFailure(str(e)) from e

    try:
        async with asyncio.timeout(item_timeout):
            url = await _render_and_upload(
                store,
                templates,
                template,
                event_id=event.id,
                category=category,
                name=name,
                output_format=output_format,
            )
        certificate_id = await _record_certificate(
            db, event, email=email, name=name, category=category, certificate_url=url
        )
    except TimeoutError as e:
        reason = str(e) or f"timed out after {item_timeout or 0:g}s"
        raise ItemFailure(f"Error processing {email}: {reason}") from e
    except Exception as e:
        raise ItemFailure(f"Error processing {email}: {e}") from e

    return GenerationSuccess(
        index=index,
        email=email,
        name=name,
        category=category,
        certificate_id=certificate_id,
        certificate_url=url,
    )


def _summary(generated: int, failed: int, skipped: int = 0) -> str:
    message = f"Generated {generated} certificate{'' if generated == 1 else 's'}"
    if failed:
        message += f", {failed} failed"
    if skipped:
        message += f", {skipped} skipped (missing email, name or category)"
    return message


async def generate_certificates(
    db: AsyncSession,
    store: ObjectStore,
    event_id: EventId,
    participants: Sequence[Participant],
    *,
    output_format: OutputFormat | None = None,
    skipped: int = 0,
    settings: Settings | None = None,
) -> GenerationReport:
    """Generate certificates for a list of participants of one event.

    Re-running with the same participants is safe: the certificate row for
    (email, event) is updated in place and each run stores new, uniquely
    named files, so earlier files stay reachable.

    Args:
        db: Database session (the caller commits)
        store: Object store holding templates and receiving certificates
        event_id: Event to generate for
        participants: Input records, processed in order
        output_format: "pdf" or "png"; defaults to CERTIFICATE_OUTPUT_FORMAT
        skipped: Rows the caller dropped before the batch, reported as-is

    Returns:
        GenerationReport with counts, capped error list and per-item details

    Raises:
        EventNotFoundError: If the event does not exist
        NoTemplatesError: If the event has no templates
    """
    settings = settings or get_settings()
    output_format = output_format or settings.certificate_output_format
    max_errors = settings.generation_max_errors
    item_timeout = settings.generation_item_timeout_seconds or None

    event_row = await EventRepository(db).get_by_id(event_id)
    if event_row is None:
        raise EventNotFoundError(event_id)
    event = _EventInfo(id=event_row.id, name=event_row.name, date=event_row.date)

    template_list = await get_templates_for_event(db, event_id)
    if not template_list:
        raise NoTemplatesError(event_id)
    template_map = build_template_map(template_list)
    templates = _TemplateBytes(store)

    logger.info(
        "generation.started",
        extra={
            "event_id": event_id,
            "participants": len(participants),
            "categories": template_map.categories,
            "output_format": output_format,
        },
    )
    start_time = time.perf_counter()

    successes: list[GenerationSuccess] = []
    failures: list[GenerationFailure] = []
    failed_count = 0

    for index, participant in enumerate(participants):
        try:
            success = await _process_participant(
                db,
                store,
                event,
                template_map,
                templates,
                index,
                participant,
                output_format=output_format,
                item_timeout=item_timeout,
            )
        except ItemFailure as e:
            failed_count += 1
            logger.warning(
                "generation.item.failed",
                extra={
                    "event_id": event_id,
                    "index": index,
                    "category": participant.category,
                    "error": str(e),
                    "cause": type(e.__cause__).__name__ if e.__cause__ else None,
                },
            )
            if len(failures) < max_errors:
                failures.append(
                    GenerationFailure(
                        index=index,
                        email=participant.email,
                        category=participant.category,
                        error=str(e),
                    )
                )
            continue

        successes.append(success)

    generated_count = len(successes)
    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

    logger.info(
        "generation.completed",
        extra={
            "event_id": event_id,
            "total": len(participants),
            "generated": generated_count,
            "failed": failed_count,
            "duration_ms": duration_ms,
        },
    )
    set_wide_event_fields(
        generation_event_id=event_id,
        generation_total=len(participants),
        generation_generated=generated_count,
        generation_failed=failed_count,
    )

    return GenerationReport(
        event_id=event_id,
        total=len(participants),
        generated_count=generated_count,
        failed_count=failed_count,
        skipped=skipped,
        errors=[failure.error for failure in failures],
        failures=failures,
        successes=successes,
        message=_summary(generated_count, failed_count, skipped),
    )


async def regenerate_certificate(
    db: AsyncSession,
    store: ObjectStore,
    certificate_id: int,
    *,
    output_format: OutputFormat | None = None,
    settings: Settings | None = None,
) -> CertificateData:
    """Re-render one existing certificate from its event's current template.

    The new file gets a fresh key; the row is pointed at it and the old file
    is left in place.

    Raises:
        CertificateNotFoundError: If the certificate does not exist
        TemplateNotFoundError: If there is no template for its event/category
        DecodeError, EncodeError, StorageError: If rendering or upload fails
    """
    settings = settings or get_settings()
    output_format = output_format or settings.certificate_output_format

    repo = CertificateRepository(db)
    certificate = await repo.get_by_id(certificate_id)
    if certificate is None:
        raise CertificateNotFoundError(f"Certificate not found: {certificate_id}")
    if certificate.event_id is None or not certificate.category:
        raise TemplateNotFoundError(
            "Certificate is not linked to an event category with a template",
            category=certificate.category,
        )

    template = await get_template(db, certificate.event_id, certificate.category)
    url = await _render_and_upload(
        store,
        _TemplateBytes(store),
        template,
        event_id=certificate.event_id,
        category=certificate.category,
        name=certificate.name,
        output_format=output_format,
    )
    certificate = await repo.update(certificate, certificate_url=url)

    logger.info(
        "certificate.regenerated",
        extra={"certificate_id": certificate_id, "event_id": certificate.event_id},
    )
    return CertificateData.model_validate(certificate)
