"""Admin endpoints for certificate generation.

A batch always answers 200 with an itemized report, even when some
participants fail. Only an unknown event (404) or an event without
templates (400) fail the request as a whole.
"""

from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, File, Form, HTTPException, Path, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from starlette import status

from core.auth import AdminRequired
from core.database import DbSession
from core.storage import ObjectStore, ObjectStoreDep, StorageError
from rendering.certificates import DecodeError, EncodeError
from schemas import (
    EventId,
    GenerateRequest,
    GenerationReport,
    OutputFormat,
    Participant,
    RegenerateResponse,
)
from services.certificates_service import CertificateNotFoundError
from services.csv_import import CsvImportError, parse_participants_csv
from services.events_service import EventNotFoundError
from services.generation_service import (
    NoTemplatesError,
    generate_certificates,
    regenerate_certificate,
)
from services.templates_service import TemplateNotFoundError

router = APIRouter(prefix="/api/admin", tags=["generation"], dependencies=[AdminRequired])

EventIdPath = Annotated[int, Path(ge=1, description="Event ID")]

_BATCH_RESPONSES = {
    400: {"description": "Event has no templates"},
    404: {"description": "Event not found"},
}


async def _run_batch(
    db: AsyncSession,
    store: ObjectStore,
    event_id: EventId,
    participants: Sequence[Participant],
    output_format: OutputFormat | None,
    *,
    skipped: int = 0,
) -> GenerationReport:
    try:
        return await generate_certificates(
            db,
            store,
            event_id,
            participants,
            output_format=output_format,
            skipped=skipped,
        )
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except NoTemplatesError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post(
    "/events/{event_id}/generate",
    response_model=GenerationReport,
    responses=_BATCH_RESPONSES,
)
async def generate_endpoint(
    event_id: EventIdPath,
    body: GenerateRequest,
    db: DbSession,
    store: ObjectStoreDep,
) -> GenerationReport:
    """Render, store and record certificates for a list of participants."""
    return await _run_batch(
        db, store, EventId(event_id), body.participants, body.output_format
    )


@router.post(
    "/events/{event_id}/generate/csv",
    response_model=GenerationReport,
    responses={
        **_BATCH_RESPONSES,
        400: {"description": "Unreadable CSV or event has no templates"},
    },
)
async def generate_from_csv_endpoint(
    event_id: EventIdPath,
    db: DbSession,
    store: ObjectStoreDep,
    file: Annotated[UploadFile, File(description="Participants CSV")],
    output_format: Annotated[OutputFormat | None, Form()] = None,
) -> GenerationReport:
    """Generate from a CSV with email, name and category columns.

    Rows missing any of the three are dropped before the batch runs and
    counted in the report's ``skipped``.
    """
    try:
        parsed = parse_participants_csv(await file.read())
    except CsvImportError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return await _run_batch(
        db,
        store,
        EventId(event_id),
        parsed.rows,
        output_format,
        skipped=parsed.skipped,
    )


@router.post(
    "/certificates/{certificate_id}/regenerate",
    response_model=RegenerateResponse,
    responses={
        404: {"description": "Certificate or template not found"},
        502: {"description": "Rendering or storage failure"},
    },
)
async def regenerate_endpoint(
    certificate_id: Annotated[int, Path(ge=1)],
    db: DbSession,
    store: ObjectStoreDep,
) -> RegenerateResponse:
    """Re-render one certificate from its event's current template."""
    try:
        certificate = await regenerate_certificate(db, store, certificate_id)
    except (CertificateNotFoundError, TemplateNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (DecodeError, EncodeError, StorageError) as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to regenerate certificate: {e}",
        )
    return RegenerateResponse(certificate=certificate)
