"""Tests for certificate records service.

Tests cover:
- search_certificates case-insensitive email match and ordering
- add_certificate insert vs upsert on (email, event)
- update_certificate partial updates, email normalization, conflicts
- delete_certificate
- bulk_add_certificates skipping incomplete rows
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from schemas import CertificateCreate, CertificateRow, CertificateUpdate
from services.certificates_service import (
    CertificateAlreadyExistsError,
    CertificateNotFoundError,
    add_certificate,
    bulk_add_certificates,
    delete_certificate,
    list_certificates,
    search_certificates,
    update_certificate,
)
from services.events_service import EventNotFoundError
from tests.factories import CertificateFactory, EventFactory, create_async

pytestmark = pytest.mark.integration


class TestSearchCertificates:
    async def test_matches_email_case_insensitively(self, db_session: AsyncSession):
        await create_async(
            CertificateFactory,
            db_session,
            email="ada@example.com",
            event_name="PyCon",
            certificate_url="https://files.test/a.pdf",
        )
        await create_async(CertificateFactory, db_session, email="someone@example.com")

        results = await search_certificates(db_session, "  ADA@Example.com ")

        assert len(results) == 1
        assert results[0].event_name == "PyCon"
        assert results[0].certificate_url == "https://files.test/a.pdf"

    async def test_legacy_mixed_case_rows_still_match(self, db_session: AsyncSession):
        await create_async(CertificateFactory, db_session, email="Ada@Example.com")

        assert len(await search_certificates(db_session, "ada@example.com")) == 1

    async def test_newest_event_first(self, db_session: AsyncSession):
        for day in ("2024-01-10", "2025-06-01", "2023-12-31"):
            await create_async(
                CertificateFactory,
                db_session,
                email="ada@example.com",
                date_of_event=day,
            )

        results = await search_certificates(db_session, "ada@example.com")

        assert [r.date for r in results] == ["2025-06-01", "2024-01-10", "2023-12-31"]

    async def test_camel_case_serialization(self, db_session: AsyncSession):
        await create_async(CertificateFactory, db_session, email="ada@example.com")

        (result,) = await search_certificates(db_session, "ada@example.com")
        payload = result.model_dump(by_alias=True)

        assert "eventName" in payload
        assert "certificateUrl" in payload

    async def test_no_match(self, db_session: AsyncSession):
        assert await search_certificates(db_session, "nobody@example.com") == []


class TestListCertificates:
    async def test_filters_by_event_and_paginates(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)
        for i in range(3):
            await create_async(
                CertificateFactory, db_session, event_id=event.id, email=f"p{i}@x.io"
            )
        await create_async(CertificateFactory, db_session)

        everything = await list_certificates(db_session)
        for_event = await list_certificates(db_session, event_id=event.id)
        page = await list_certificates(db_session, event_id=event.id, limit=2, offset=2)

        assert len(everything) == 4
        assert len(for_event) == 3
        assert len(page) == 1


class TestAddCertificate:
    async def test_standalone_insert(self, db_session: AsyncSession):
        created = await add_certificate(
            db_session,
            CertificateCreate(
                email=" Ada@Example.com",
                name="Ada",
                event_name="Legacy Meetup",
                certificate_url="https://drive.example.com/ada.pdf",
            ),
        )

        assert created.email == "ada@example.com"
        assert created.event_id is None

    async def test_upserts_for_managed_event(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)
        data = CertificateCreate(
            email="ada@example.com",
            name="Ada",
            event_id=event.id,
            event_name=event.name,
            certificate_url="https://files.test/1.pdf",
        )

        first = await add_certificate(db_session, data)
        second = await add_certificate(
            db_session,
            data.model_copy(
                update={"email": "ADA@example.com", "certificate_url": "https://files.test/2.pdf"}
            ),
        )

        assert second.id == first.id
        assert second.certificate_url == "https://files.test/2.pdf"

    async def test_unknown_event(self, db_session: AsyncSession):
        with pytest.raises(EventNotFoundError):
            await add_certificate(
                db_session,
                CertificateCreate(
                    email="ada@example.com",
                    name="Ada",
                    event_id=999,
                    event_name="Ghost",
                    certificate_url="https://files.test/1.pdf",
                ),
            )


class TestUpdateCertificate:
    async def test_partial_update(self, db_session: AsyncSession):
        certificate = await create_async(
            CertificateFactory, db_session, name="Ada", tags="speaker"
        )

        updated = await update_certificate(
            db_session,
            certificate.id,
            CertificateUpdate(email="NEW@Example.com ", tags=None),
        )

        assert updated.email == "new@example.com"
        assert updated.name == "Ada"
        assert updated.tags is None

    async def test_null_required_field_is_ignored(self, db_session: AsyncSession):
        certificate = await create_async(CertificateFactory, db_session, name="Ada")

        updated = await update_certificate(
            db_session, certificate.id, CertificateUpdate(name=None)
        )

        assert updated.name == "Ada"

    async def test_email_collision_within_event(self, db_session: AsyncSession):
        event = await create_async(EventFactory, db_session)
        await create_async(
            CertificateFactory, db_session, event_id=event.id, email="ada@example.com"
        )
        other = await create_async(
            CertificateFactory, db_session, event_id=event.id, email="bob@example.com"
        )

        with pytest.raises(CertificateAlreadyExistsError):
            await update_certificate(
                db_session, other.id, CertificateUpdate(email="Ada@example.com")
            )

    async def test_missing(self, db_session: AsyncSession):
        with pytest.raises(CertificateNotFoundError):
            await update_certificate(db_session, 404, CertificateUpdate(name="X"))


class TestDeleteCertificate:
    async def test_deletes(self, db_session: AsyncSession):
        certificate = await create_async(CertificateFactory, db_session)

        await delete_certificate(db_session, certificate.id)

        assert await list_certificates(db_session) == []

    async def test_missing(self, db_session: AsyncSession):
        with pytest.raises(CertificateNotFoundError):
            await delete_certificate(db_session, 404)


class TestBulkAddCertificates:
    async def test_skips_incomplete_rows(self, db_session: AsyncSession):
        rows = [
            CertificateRow(
                email="Ada@Example.com",
                name="Ada",
                event_name="PyCon",
                certificate_url="https://files.test/ada.pdf",
            ),
            CertificateRow(email="bob@example.com", name="Bob", event_name="PyCon"),
            CertificateRow(
                email="  ",
                name="Nobody",
                event_name="PyCon",
                certificate_url="https://files.test/x.pdf",
            ),
        ]

        result = await bulk_add_certificates(db_session, rows)

        assert result.uploaded == 1
        assert result.skipped == 2
        assert result.message == (
            "Successfully uploaded 1 certificates "
            "(2 rows skipped due to missing required fields)"
        )
        (stored,) = await list_certificates(db_session)
        assert stored.email == "ada@example.com"

    async def test_all_complete(self, db_session: AsyncSession):
        result = await bulk_add_certificates(
            db_session,
            [
                CertificateRow(
                    email="ada@example.com",
                    name="Ada",
                    event_name="PyCon",
                    certificate_url="https://files.test/ada.pdf",
                )
            ],
        )

        assert result.message == "Successfully uploaded 1 certificates"
