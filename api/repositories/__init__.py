"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping routes thin and focused
on HTTP handling. This separation provides:
- Single source of truth for database operations
- Easier testing (repositories can be mocked)
- Cleaner route code focused on request/response handling
- Reusable queries across multiple endpoints

Repositories flush but never commit; the request (or CLI) session owns the
transaction.
"""

from repositories.certificate_repository import CertificateRepository
from repositories.event_repository import EventRepository
from repositories.template_repository import TemplateRepository
from repositories.utils import log_slow_query

__all__ = [
    "CertificateRepository",
    "EventRepository",
    "TemplateRepository",
    "log_slow_query",
]
