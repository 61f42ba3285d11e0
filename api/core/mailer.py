"""Outbound email over SMTP.

smtplib is blocking, so sends run in a worker thread to keep the event loop
free.
"""

from __future__ import annotations

import asyncio
import logging
import re
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Annotated, Protocol

from fastapi import Depends, Request

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when a message cannot be handed to the SMTP server."""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str | None = None


class Mailer(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SmtpMailer:
    """Sends HTML email through a configured SMTP relay."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _build(self, message: EmailMessage) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = formataddr(
            (self.settings.smtp_from_name, self.settings.smtp_from_email)
        )
        mime["To"] = message.to

        text = message.text or re.sub(r"<[^>]+>", "", message.html)
        mime.attach(MIMEText(text, "plain", "utf-8"))
        mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self.settings
        mime = self._build(message)
        with smtplib.SMTP(
            settings.smtp_host, settings.smtp_port, timeout=settings.http_timeout
        ) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(mime)

    async def send(self, message: EmailMessage) -> None:
        if not self.settings.email_enabled:
            raise EmailDeliveryError("Email is not configured (SMTP_HOST unset)")

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "email.send.failed",
                extra={"to": message.to, "error": str(e)},
            )
            raise EmailDeliveryError(f"Failed to send email: {e}") from e

        logger.info("email.sent", extra={"to": message.to})


def get_mailer(request: Request) -> Mailer:
    """FastAPI dependency: the mailer created at startup."""
    return request.app.state.mailer


MailerDep = Annotated[Mailer, Depends(get_mailer)]
