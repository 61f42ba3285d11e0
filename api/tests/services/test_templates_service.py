"""Tests for the certificate template registry.

Tests cover:
- TemplateMap case-insensitive resolution and its error message
- get_template lookup by normalized category
- upload_template validation, storage key and registration
- Duplicate category and missing event handling
- delete_template
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from sqlalchemy.ext.asyncio import AsyncSession

from rendering.certificates import DecodeError
from schemas import EventId, TemplateData, TemplatePlacement
from services.events_service import EventNotFoundError
from services.templates_service import (
    TemplateAlreadyExistsError,
    TemplateMap,
    TemplateNotFoundError,
    build_template_map,
    delete_template,
    get_template,
    list_templates,
    normalize_category,
    placement_for,
    upload_template,
)
from tests.factories import EventFactory, TemplateFactory, create_async, make_image_bytes


def _template(template_id: int, category: str) -> TemplateData:
    return TemplateData(
        id=template_id,
        event_id=1,
        category=category,
        template_path=f"templates/1/{category}.png",
        template_url=f"https://files.test/templates/1/{category}.png",
    )


@pytest.mark.unit
class TestNormalizeCategory:
    def test_trims_and_lowercases(self):
        assert normalize_category("  Speaker ") == "speaker"

    @given(st.text(max_size=30))
    def test_idempotent(self, value):
        once = normalize_category(value)

        assert normalize_category(once) == once


@pytest.mark.unit
class TestTemplateMap:
    def test_resolves_case_insensitively(self):
        template_map = build_template_map(
            [_template(1, "Participant"), _template(2, "Speaker")]
        )

        assert template_map.resolve("speaker").id == 2
        assert template_map.resolve("  PARTICIPANT ").id == 1

    def test_unknown_category_lists_available(self):
        template_map = build_template_map(
            [_template(1, "Participant"), _template(2, "Speaker")]
        )

        with pytest.raises(TemplateNotFoundError) as exc_info:
            template_map.resolve("Mentor")

        assert str(exc_info.value) == (
            "No template found for category: Mentor. "
            "Available categories: Participant, Speaker"
        )
        assert exc_info.value.category == "Mentor"

    def test_is_read_only_mapping(self):
        template_map = TemplateMap([_template(1, "Participant")])

        assert len(template_map) == 1
        assert list(template_map) == ["participant"]
        with pytest.raises(TypeError):
            template_map["x"] = _template(2, "x")  # type: ignore[index]

    def test_placement_for(self):
        template = _template(1, "Participant").model_copy(
            update={"name_position_y": 70.0, "name_font_size": 24}
        )

        placement = placement_for(template)

        assert placement.position_x == 50.0
        assert placement.position_y == 70.0
        assert placement.font_size == 24


@pytest.mark.integration
class TestGetTemplate:
    async def test_matches_normalized_category(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)
        await create_async(
            TemplateFactory, db_session, event_id=event.id, category="Speaker"
        )

        template = await get_template(db_session, EventId(event.id), " SPEAKER")

        assert template.category == "Speaker"

    async def test_missing_category(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)

        with pytest.raises(TemplateNotFoundError, match="Mentor"):
            await get_template(db_session, EventId(event.id), "Mentor")

    async def test_list_ordered_by_category(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)
        for category in ("Speaker", "Mentor", "Participant"):
            await create_async(
                TemplateFactory, db_session, event_id=event.id, category=category
            )

        templates = await list_templates(db_session, EventId(event.id))

        assert [t.category for t in templates] == ["Mentor", "Participant", "Speaker"]


@pytest.mark.integration
class TestUploadTemplate:
    async def test_stores_image_and_registers_template(
        self, db_session: AsyncSession, object_store, template_png
    ):
        event = await create_async(EventFactory, db_session)

        template = await upload_template(
            db_session,
            object_store,
            EventId(event.id),
            "Keynote Speaker",
            "background.png",
            template_png,
            TemplatePlacement(name_position_y=62.5, name_font_color="#333333"),
        )

        assert template.category == "Keynote Speaker"
        assert template.template_path.startswith(
            f"templates/{event.id}/Keynote_Speaker_"
        )
        assert template.template_path.endswith(".png")
        assert object_store.objects[template.template_path] == template_png
        assert object_store.content_types[template.template_path] == "image/png"
        assert template.template_url == object_store.get_public_url(
            template.template_path
        )
        assert template.name_position_y == 62.5
        assert template.name_font_color == "#333333"

    async def test_jpeg_keeps_original_bytes_and_extension(
        self, db_session: AsyncSession, object_store
    ):
        event = await create_async(EventFactory, db_session)
        jpeg = make_image_bytes(50, 40, image_format="JPEG")

        template = await upload_template(
            db_session, object_store, EventId(event.id), "Mentor", "bg.jpeg", jpeg
        )

        assert template.template_path.endswith(".jpg")
        assert object_store.objects[template.template_path] == jpeg

    async def test_invalid_image_never_reaches_storage(
        self, db_session: AsyncSession, object_store
    ):
        event = await create_async(EventFactory, db_session)

        with pytest.raises(DecodeError):
            await upload_template(
                db_session,
                object_store,
                EventId(event.id),
                "Speaker",
                "bg.png",
                b"not an image",
            )

        assert object_store.uploads == 0

    async def test_duplicate_category_rejected(
        self, db_session: AsyncSession, object_store, template_png
    ):
        event = await create_async(EventFactory, db_session)
        await create_async(
            TemplateFactory, db_session, event_id=event.id, category="Speaker"
        )

        with pytest.raises(TemplateAlreadyExistsError):
            await upload_template(
                db_session,
                object_store,
                EventId(event.id),
                "speaker ",
                "bg.png",
                template_png,
            )

        assert object_store.uploads == 0

    async def test_unknown_event(self, db_session: AsyncSession, object_store, template_png):
        with pytest.raises(EventNotFoundError):
            await upload_template(
                db_session, object_store, EventId(404), "Speaker", "bg.png", template_png
            )

    async def test_blank_category(self, db_session: AsyncSession, object_store, template_png):
        event = await create_async(EventFactory, db_session)

        with pytest.raises(ValueError, match="Category is required"):
            await upload_template(
                db_session, object_store, EventId(event.id), "  ", "bg.png", template_png
            )


@pytest.mark.integration
class TestDeleteTemplate:
    async def test_deletes(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)
        template = await create_async(TemplateFactory, db_session, event_id=event.id)

        await delete_template(db_session, template.id)

        assert await list_templates(db_session, EventId(event.id)) == []

    async def test_missing(self, db_session: AsyncSession):
        with pytest.raises(TemplateNotFoundError):
            await delete_template(db_session, 12345)
