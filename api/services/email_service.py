"""Certificate delivery by email.

Looks up every certificate for an address and sends one message listing
the download links.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.mailer import EmailMessage, Mailer
from core.templates import templates
from repositories.utils import normalize_email
from schemas import CertificateSearchResult, EmailSentResponse
from services.certificates_service import CertificateNotFoundError, search_certificates

logger = logging.getLogger(__name__)

SUBJECT = "Your event certificates"


def render_certificates_email(
    to: str, certificates: list[CertificateSearchResult]
) -> EmailMessage:
    """Build the message body from the HTML and plain-text templates."""
    context = {
        "name": certificates[0].name,
        "certificates": certificates,
        "sender_name": get_settings().smtp_from_name,
    }
    return EmailMessage(
        to=to,
        subject=SUBJECT,
        html=templates.get_template("emails/certificates.html").render(context),
        text=templates.get_template("emails/certificates.txt").render(context),
    )


async def send_certificates_email(
    db: AsyncSession, mailer: Mailer, email: str
) -> EmailSentResponse:
    """Email a participant links to all their certificates.

    Raises:
        CertificateNotFoundError: If the address has no certificates
        EmailDeliveryError: If the mailer fails
    """
    email = normalize_email(email)
    certificates = await search_certificates(db, email)
    if not certificates:
        raise CertificateNotFoundError(f"No certificates found for {email}")

    await mailer.send(render_certificates_email(email, certificates))

    logger.info(
        "certificates.emailed",
        extra={"certificate_count": len(certificates)},
    )
    return EmailSentResponse(
        message=f"Certificates sent to {email}",
        certificate_count=len(certificates),
    )
