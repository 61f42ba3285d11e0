"""Public certificate lookup endpoints.

Participants search by email and can have their certificate links emailed
to them. Both endpoints are rate limited per client address.
"""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.database import DbSession
from core.mailer import EmailDeliveryError, MailerDep
from core.ratelimit import EMAIL_LIMIT, SEARCH_LIMIT, limiter
from schemas import (
    CertificateSearchRequest,
    CertificateSearchResponse,
    EmailSentResponse,
)
from services.certificates_service import (
    CertificateNotFoundError,
    search_certificates,
)
from services.email_service import send_certificates_email

router = APIRouter(prefix="/api/certificates", tags=["certificates"])


@router.post("/search", response_model=CertificateSearchResponse)
@limiter.limit(SEARCH_LIMIT)
async def search_certificates_endpoint(
    request: Request,
    body: CertificateSearchRequest,
    db: DbSession,
) -> CertificateSearchResponse:
    """Find certificates issued to an email address (case-insensitive)."""
    certificates = await search_certificates(db, body.email)
    return CertificateSearchResponse(certificates=certificates)


@router.post(
    "/email",
    response_model=EmailSentResponse,
    responses={
        404: {"description": "No certificates for this email"},
        502: {"description": "Email could not be delivered"},
    },
)
@limiter.limit(EMAIL_LIMIT)
async def email_certificates_endpoint(
    request: Request,
    body: CertificateSearchRequest,
    db: DbSession,
    mailer: MailerDep,
) -> EmailSentResponse:
    """Email the participant links to all their certificates."""
    try:
        return await send_certificates_email(db, mailer, body.email)
    except CertificateNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No certificates found for this email",
        )
    except EmailDeliveryError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send email. Please try again later.",
        )
