"""Certificate template registry.

This module owns templates: one background image plus name placement per
(event, category). It provides:
- Case-insensitive category lookup
- An immutable per-batch template map for the generator
- Template upload (image validation + object store) and deletion

Routes and the generation service delegate all template handling here.
"""

import asyncio
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import PurePosixPath
from types import MappingProxyType

from sqlalchemy.ext.asyncio import AsyncSession

from core.storage import ObjectStore, safe_segment, unique_token
from rendering.certificates import NamePlacement, decode_template
from repositories.event_repository import EventRepository
from repositories.template_repository import TemplateRepository
from schemas import EventId, TemplateData, TemplatePlacement
from services.events_service import EventNotFoundError

logger = logging.getLogger(__name__)

_FORMAT_TYPES = {
    "PNG": ("png", "image/png"),
    "JPEG": ("jpg", "image/jpeg"),
    "WEBP": ("webp", "image/webp"),
    "GIF": ("gif", "image/gif"),
    "BMP": ("bmp", "image/bmp"),
}


class TemplateNotFoundError(Exception):
    """Raised when no template matches an event/category or id."""

    def __init__(self, message: str, category: str | None = None):
        self.category = category
        super().__init__(message)


class TemplateAlreadyExistsError(Exception):
    """Raised when a category already has a template for the event."""

    def __init__(self, event_id: int, category: str):
        self.event_id = event_id
        self.category = category
        super().__init__(
            f"A template for category '{category}' already exists for this event"
        )


def normalize_category(value: str) -> str:
    """Category match key: trimmed and lower-cased."""
    return value.strip().lower()


class TemplateMap(Mapping[str, TemplateData]):
    """Read-only templates of one event keyed by normalized category.

    Built once per generation batch and shared read-only by every item.
    """

    __slots__ = ("_templates",)

    def __init__(self, templates: Iterable[TemplateData]):
        self._templates = MappingProxyType(
            {normalize_category(t.category): t for t in templates}
        )

    def __getitem__(self, key: str) -> TemplateData:
        return self._templates[normalize_category(key)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def resolve(self, category: str) -> TemplateData:
        """Template for a category, matched case-insensitively.

        Raises:
            TemplateNotFoundError: Naming the category and the available ones
        """
        try:
            return self[category]
        except KeyError:
            raise TemplateNotFoundError(
                f"No template found for category: {category}. "
                f"Available categories: {', '.join(self.categories) or 'none'}",
                category=category,
            ) from None

    @property
    def categories(self) -> list[str]:
        """Categories as registered by the admin, in key order."""
        return [self._templates[key].category for key in sorted(self._templates)]


def build_template_map(templates: Iterable[TemplateData]) -> TemplateMap:
    return TemplateMap(templates)


def placement_for(template: TemplateData) -> NamePlacement:
    """Rendering placement stored on a template row."""
    return NamePlacement(
        position_x=template.name_position_x,
        position_y=template.name_position_y,
        font_size=template.name_font_size,
        font_color=template.name_font_color,
        font_family=template.name_font_family,
    )


async def get_templates_for_event(
    db: AsyncSession, event_id: EventId
) -> list[TemplateData]:
    templates = await TemplateRepository(db).get_by_event(event_id)
    return [TemplateData.model_validate(t) for t in templates]


list_templates = get_templates_for_event


async def get_template(
    db: AsyncSession, event_id: EventId, category: str
) -> TemplateData:
    """Get the template for an event category (case-insensitive).

    Raises:
        TemplateNotFoundError: If the category has no template
    """
    template = await TemplateRepository(db).get_by_event_and_category(
        event_id, normalize_category(category)
    )
    if template is None:
        raise TemplateNotFoundError(
            f"No template found for category: {category}", category=category
        )
    return TemplateData.model_validate(template)


async def _ensure_can_create(
    db: AsyncSession, event_id: EventId, category_key: str, category: str
) -> None:
    if await EventRepository(db).get_by_id(event_id) is None:
        raise EventNotFoundError(event_id)
    existing = await TemplateRepository(db).get_by_event_and_category(
        event_id, category_key
    )
    if existing is not None:
        raise TemplateAlreadyExistsError(event_id, category)


async def create_template(
    db: AsyncSession,
    event_id: EventId,
    category: str,
    template_path: str,
    template_url: str,
    placement: TemplatePlacement | None = None,
) -> TemplateData:
    """Register a template that is already in the object store.

    Raises:
        ValueError: If the category is blank
        EventNotFoundError: If the event does not exist
        TemplateAlreadyExistsError: If the category already has a template
    """
    category = category.strip()
    if not category:
        raise ValueError("Category is required")
    placement = placement or TemplatePlacement()
    category_key = normalize_category(category)

    await _ensure_can_create(db, event_id, category_key, category)

    template = await TemplateRepository(db).create(
        event_id=event_id,
        category=category,
        category_key=category_key,
        template_path=template_path,
        template_url=template_url,
        **placement.model_dump(),
    )
    logger.info(
        "template.created",
        extra={"event_id": event_id, "category": category, "template_id": template.id},
    )
    return TemplateData.model_validate(template)


async def upload_template(
    db: AsyncSession,
    store: ObjectStore,
    event_id: EventId,
    category: str,
    filename: str | None,
    content: bytes,
    placement: TemplatePlacement | None = None,
) -> TemplateData:
    """Validate, store and register a template image.

    The image is decoded first so a broken upload never reaches storage.

    Raises:
        DecodeError: If the bytes are not a readable image
        StorageError: If the upload fails
        EventNotFoundError, TemplateAlreadyExistsError: As in create_template
    """
    category = category.strip()
    if not category:
        raise ValueError("Category is required")

    raster = await asyncio.to_thread(decode_template, content)
    await _ensure_can_create(db, event_id, normalize_category(category), category)

    extension, content_type = _FORMAT_TYPES.get(
        raster.source_format, (None, "application/octet-stream")
    )
    if extension is None:
        extension = PurePosixPath(filename or "").suffix.lstrip(".").lower() or "img"

    path = f"templates/{event_id}/{safe_segment(category)}_{unique_token()}.{extension}"
    stored_path = await store.upload(path, content, content_type, overwrite=False)
    url = store.get_public_url(stored_path)

    logger.info(
        "template.uploaded",
        extra={
            "event_id": event_id,
            "category": category,
            "path": stored_path,
            "width": raster.width,
            "height": raster.height,
        },
    )
    return await create_template(db, event_id, category, stored_path, url, placement)


async def delete_template(db: AsyncSession, template_id: int) -> None:
    """Delete a template row; the image stays in the object store.

    Raises:
        TemplateNotFoundError: If the template does not exist
    """
    deleted = await TemplateRepository(db).delete(template_id)
    if not deleted:
        raise TemplateNotFoundError(f"Template not found: {template_id}")
    logger.info("template.deleted", extra={"template_id": template_id})
