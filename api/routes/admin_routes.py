"""Admin endpoints for events, templates and certificate records.

All endpoints require the X-Admin-Key header.
"""

from typing import Annotated

from fastapi import APIRouter, File, Form, HTTPException, Path, Query, UploadFile
from starlette import status

from core.auth import AdminRequired
from core.database import DbSession
from core.storage import ObjectStoreDep, StorageError
from rendering.certificates import DecodeError
from schemas import (
    BulkCertificatesRequest,
    BulkUploadResult,
    CertificateCreate,
    CertificateData,
    CertificateListResponse,
    CertificateUpdate,
    EventCreate,
    EventData,
    EventId,
    EventSummary,
    TemplateData,
    TemplateListResponse,
    TemplatePlacement,
)
from services.certificates_service import (
    CertificateAlreadyExistsError,
    CertificateNotFoundError,
    add_certificate,
    bulk_add_certificates,
    delete_certificate,
    list_certificates,
    update_certificate,
)
from services.csv_import import CsvImportError, parse_certificates_csv
from services.events_service import (
    EventNotFoundError,
    create_event,
    delete_event,
    get_event,
    list_events,
)
from services.templates_service import (
    TemplateAlreadyExistsError,
    TemplateNotFoundError,
    delete_template,
    list_templates,
    upload_template,
)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[AdminRequired])

EventIdPath = Annotated[int, Path(ge=1, description="Event ID")]


def _event_not_found(e: EventNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# --- Events ---


@router.post("/events", response_model=EventData, status_code=201)
async def create_event_endpoint(body: EventCreate, db: DbSession) -> EventData:
    """Create an event."""
    return await create_event(db, body)


@router.get("/events", response_model=list[EventSummary])
async def list_events_endpoint(db: DbSession) -> list[EventSummary]:
    """List events with template and certificate counts."""
    return await list_events(db)


@router.get(
    "/events/{event_id}",
    response_model=EventData,
    responses={404: {"description": "Event not found"}},
)
async def get_event_endpoint(event_id: EventIdPath, db: DbSession) -> EventData:
    try:
        return await get_event(db, EventId(event_id))
    except EventNotFoundError as e:
        raise _event_not_found(e)


@router.delete(
    "/events/{event_id}",
    status_code=204,
    responses={404: {"description": "Event not found"}},
)
async def delete_event_endpoint(event_id: EventIdPath, db: DbSession) -> None:
    """Delete an event with its templates and certificates."""
    try:
        await delete_event(db, EventId(event_id))
    except EventNotFoundError as e:
        raise _event_not_found(e)


# --- Templates ---


@router.get("/events/{event_id}/templates", response_model=TemplateListResponse)
async def list_templates_endpoint(
    event_id: EventIdPath, db: DbSession
) -> TemplateListResponse:
    return TemplateListResponse(templates=await list_templates(db, EventId(event_id)))


@router.post(
    "/events/{event_id}/templates",
    response_model=TemplateData,
    status_code=201,
    responses={
        400: {"description": "Invalid image or category"},
        404: {"description": "Event not found"},
        409: {"description": "Category already has a template"},
        502: {"description": "Object storage failure"},
    },
)
async def upload_template_endpoint(
    event_id: EventIdPath,
    db: DbSession,
    store: ObjectStoreDep,
    file: Annotated[UploadFile, File(description="Template image")],
    category: Annotated[str, Form(min_length=1, max_length=100)],
    name_position_x: Annotated[float, Form(ge=0, le=100)] = 50.0,
    name_position_y: Annotated[float, Form(ge=0, le=100)] = 50.0,
    name_font_size: Annotated[int, Form(gt=0, le=1000)] = 48,
    name_font_color: Annotated[str, Form(min_length=1, max_length=32)] = "#000000",
    name_font_family: Annotated[str, Form(min_length=1, max_length=100)] = "serif",
) -> TemplateData:
    """Upload a template image and its name placement for one category."""
    placement = TemplatePlacement(
        name_position_x=name_position_x,
        name_position_y=name_position_y,
        name_font_size=name_font_size,
        name_font_color=name_font_color,
        name_font_family=name_font_family,
    )
    content = await file.read()

    try:
        return await upload_template(
            db,
            store,
            EventId(event_id),
            category,
            file.filename,
            content,
            placement,
        )
    except EventNotFoundError as e:
        raise _event_not_found(e)
    except TemplateAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (DecodeError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to store template: {e}",
        )


@router.delete(
    "/templates/{template_id}",
    status_code=204,
    responses={404: {"description": "Template not found"}},
)
async def delete_template_endpoint(
    template_id: Annotated[int, Path(ge=1)], db: DbSession
) -> None:
    try:
        await delete_template(db, template_id)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# --- Certificates ---


@router.get("/certificates", response_model=CertificateListResponse)
async def list_certificates_endpoint(
    db: DbSession,
    event_id: Annotated[int | None, Query(ge=1)] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> CertificateListResponse:
    certificates = await list_certificates(
        db, event_id=event_id, limit=limit, offset=offset
    )
    return CertificateListResponse(certificates=certificates)


@router.post(
    "/certificates",
    response_model=CertificateData,
    status_code=201,
    responses={404: {"description": "Event not found"}},
)
async def add_certificate_endpoint(
    body: CertificateCreate, db: DbSession
) -> CertificateData:
    """Add (or, for a managed event, upsert) one certificate by hand."""
    try:
        return await add_certificate(db, body)
    except EventNotFoundError as e:
        raise _event_not_found(e)


@router.post("/certificates/bulk", response_model=BulkUploadResult)
async def bulk_certificates_endpoint(
    body: BulkCertificatesRequest, db: DbSession
) -> BulkUploadResult:
    """Insert many certificate rows; incomplete rows are skipped."""
    return await bulk_add_certificates(db, body.certificates)


@router.post(
    "/certificates/bulk/csv",
    response_model=BulkUploadResult,
    responses={400: {"description": "Unreadable CSV"}},
)
async def bulk_certificates_csv_endpoint(
    db: DbSession,
    file: Annotated[UploadFile, File(description="Certificates CSV")],
) -> BulkUploadResult:
    """Bulk insert from a CSV export (email, name, event, date, url columns)."""
    try:
        parsed = parse_certificates_csv(await file.read())
    except CsvImportError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = await bulk_add_certificates(db, parsed.rows)
    if not parsed.skipped:
        return result
    skipped = result.skipped + parsed.skipped
    return BulkUploadResult(
        uploaded=result.uploaded,
        skipped=skipped,
        message=(
            f"Successfully uploaded {result.uploaded} certificates "
            f"({skipped} rows skipped due to missing required fields)"
        ),
    )


@router.patch(
    "/certificates/{certificate_id}",
    response_model=CertificateData,
    responses={
        404: {"description": "Certificate not found"},
        409: {"description": "Email already has a certificate for the event"},
    },
)
async def update_certificate_endpoint(
    certificate_id: Annotated[int, Path(ge=1)],
    body: CertificateUpdate,
    db: DbSession,
) -> CertificateData:
    try:
        return await update_certificate(db, certificate_id, body)
    except CertificateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CertificateAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete(
    "/certificates/{certificate_id}",
    status_code=204,
    responses={404: {"description": "Certificate not found"}},
)
async def delete_certificate_endpoint(
    certificate_id: Annotated[int, Path(ge=1)], db: DbSession
) -> None:
    try:
        await delete_certificate(db, certificate_id)
    except CertificateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
