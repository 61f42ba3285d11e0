"""Pydantic schemas for API request/response validation."""

from datetime import UTC, datetime
from typing import Annotated, Literal, NewType

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

# Opaque event identifier; coerced once at the HTTP/CLI boundary
EventId = NewType("EventId", int)

OutputFormat = Literal["pdf", "png"]


def _assume_utc(value: datetime) -> datetime:
    """Stored timestamps are UTC; drivers without tz support return them naive."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class DetailedHealthResponse(HealthResponse):
    """Health check with component status."""

    database: bool
    pool: PoolStatusResponse | None = None


# =============================================================================
# Events
# =============================================================================


class EventCreate(BaseModel):
    """Request to create an event."""

    name: str = Field(min_length=1, max_length=255)
    date: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Event name is required")
        return v

    @field_validator("date", "location")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class EventData(BaseModel):
    """An event as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    date: str | None = None
    location: str | None = None
    created_at: UtcDatetime | None = None


class EventSummary(EventData):
    """Event with template and certificate counts for the admin dashboard."""

    template_count: int = 0
    certificate_count: int = 0


# =============================================================================
# Templates
# =============================================================================


class TemplatePlacement(BaseModel):
    """Where and how the participant name is drawn on a template."""

    name_position_x: float = Field(default=50.0, ge=0, le=100)
    name_position_y: float = Field(default=50.0, ge=0, le=100)
    name_font_size: int = Field(default=48, gt=0, le=1000)
    name_font_color: str = Field(default="#000000", min_length=1, max_length=32)
    name_font_family: str = Field(default="serif", min_length=1, max_length=100)


class TemplateData(TemplatePlacement):
    """A certificate template row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    category: str
    template_path: str
    template_url: str
    created_at: UtcDatetime | None = None


class TemplateListResponse(BaseModel):
    templates: list[TemplateData]


# =============================================================================
# Certificates
# =============================================================================


class CertificateData(BaseModel):
    """A certificate row (admin view)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    event_id: int | None = None
    event_name: str
    date_of_event: str | None = None
    category: str | None = None
    tags: str | None = None
    certificate_url: str
    created_at: UtcDatetime | None = None


class CertificateListResponse(BaseModel):
    certificates: list[CertificateData]


class CertificateCreate(BaseModel):
    """Manually add a certificate."""

    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    event_name: str = Field(min_length=1, max_length=255)
    certificate_url: str = Field(min_length=1)
    event_id: int | None = None
    date_of_event: str | None = None
    category: str | None = None
    tags: str | None = None


class CertificateUpdate(BaseModel):
    """Partial certificate update; omitted fields are left unchanged."""

    email: str | None = Field(default=None, min_length=3, max_length=255)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    event_name: str | None = Field(default=None, min_length=1, max_length=255)
    date_of_event: str | None = None
    category: str | None = None
    tags: str | None = None
    certificate_url: str | None = Field(default=None, min_length=1)


class CertificateRow(BaseModel):
    """One row of a bulk certificate upload; incomplete rows are skipped."""

    email: str | None = None
    name: str | None = None
    event_name: str | None = None
    date_of_event: str | None = None
    category: str | None = None
    tags: str | None = None
    certificate_url: str | None = None


class BulkCertificatesRequest(BaseModel):
    certificates: list[CertificateRow] = Field(min_length=1)


class BulkUploadResult(BaseModel):
    uploaded: int
    skipped: int
    message: str


class CertificateSearchRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)


class CertificateSearchResult(BaseModel):
    """Public search result, camelCase to match the portal frontend."""

    name: str
    email: str
    event_name: str = Field(serialization_alias="eventName")
    date: str | None = None
    category: str | None = None
    tags: str | None = None
    certificate_url: str = Field(serialization_alias="certificateUrl")


class CertificateSearchResponse(BaseModel):
    certificates: list[CertificateSearchResult]


class EmailSentResponse(BaseModel):
    success: bool = True
    message: str
    certificate_count: int


# =============================================================================
# Generation
# =============================================================================


class Participant(BaseModel):
    """One generation input record.

    Fields are optional here so that an incomplete record fails on its own
    inside the batch instead of rejecting the whole request.
    """

    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    name: str | None = None
    category: str | None = None


class GenerateRequest(BaseModel):
    participants: list[Participant]
    output_format: OutputFormat | None = None


class GenerationSuccess(BaseModel):
    index: int
    email: str
    name: str
    category: str
    certificate_id: int
    certificate_url: str


class GenerationFailure(BaseModel):
    index: int
    email: str | None = None
    category: str | None = None
    error: str


class GenerationReport(BaseModel):
    """Outcome of one generation batch.

    ``generated_count + failed_count == total`` always holds. ``errors`` and
    ``failures`` are capped; the counts are not. ``skipped`` counts input rows
    dropped before the batch ran (CSV rows lacking email, name or category);
    they are not part of ``total``.
    """

    event_id: int
    total: int
    generated_count: int
    failed_count: int
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    failures: list[GenerationFailure] = Field(default_factory=list)
    successes: list[GenerationSuccess] = Field(default_factory=list)
    message: str


class RegenerateResponse(BaseModel):
    certificate: CertificateData
