"""Repository for certificate template operations."""

from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import CertificateTemplate
from repositories.utils import log_slow_query


class TemplateRepository:
    """Repository for CertificateTemplate CRUD operations.

    Category lookups expect ``category_key`` to be pre-normalized
    (trimmed, lower-cased) by the service layer.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("templates.get_by_event")
    async def get_by_event(self, event_id: int) -> Sequence[CertificateTemplate]:
        """All templates of an event, ordered by category."""
        result = await self.db.execute(
            select(CertificateTemplate)
            .where(CertificateTemplate.event_id == event_id)
            .order_by(CertificateTemplate.category_key)
        )
        return result.scalars().all()

    async def get_by_id(self, template_id: int) -> CertificateTemplate | None:
        result = await self.db.execute(
            select(CertificateTemplate).where(CertificateTemplate.id == template_id)
        )
        return result.scalar_one_or_none()

    async def get_by_event_and_category(
        self,
        event_id: int,
        category_key: str,
    ) -> CertificateTemplate | None:
        """Get the template for one (event, category) pair."""
        result = await self.db.execute(
            select(CertificateTemplate).where(
                CertificateTemplate.event_id == event_id,
                CertificateTemplate.category_key == category_key,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        event_id: int,
        category: str,
        category_key: str,
        template_path: str,
        template_url: str,
        name_position_x: float,
        name_position_y: float,
        name_font_size: int,
        name_font_color: str,
        name_font_family: str,
    ) -> CertificateTemplate:
        """Create a template. Calls flush() but does NOT commit."""
        template = CertificateTemplate(
            event_id=event_id,
            category=category,
            category_key=category_key,
            template_path=template_path,
            template_url=template_url,
            name_position_x=name_position_x,
            name_position_y=name_position_y,
            name_font_size=name_font_size,
            name_font_color=name_font_color,
            name_font_family=name_font_family,
        )
        self.db.add(template)
        await self.db.flush()
        return template

    async def delete(self, template_id: int) -> bool:
        result = await self.db.execute(
            delete(CertificateTemplate).where(CertificateTemplate.id == template_id)
        )
        return result.rowcount > 0
