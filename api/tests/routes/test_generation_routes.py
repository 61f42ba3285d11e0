"""Tests for certificate generation routes."""

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy import select

from models import Certificate, Event
from tests.factories import EventFactory

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("fake_cairosvg")]


class TestGenerate:
    async def test_batch_report(
        self, admin_client: AsyncClient, app: FastAPI, seeded_event: Event
    ):
        response = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate",
            json={
                "participants": [
                    {"email": "alice@example.com", "name": "Alice", "category": "participant"},
                    {"email": "bob@example.com", "name": "Bob", "category": "Speaker"},
                    {"email": "carol@example.com", "category": "Participant"},
                ]
            },
        )

        assert response.status_code == 200
        report = response.json()
        assert report["total"] == 3
        assert report["generated_count"] == 1
        assert report["failed_count"] == 2
        assert report["errors"] == [
            "No template found for category: Speaker. "
            "Available categories: Participant",
            "Missing required fields for carol@example.com",
        ]

        # Committed by the request session
        async with app.state.session_maker() as session:
            rows = (await session.scalars(select(Certificate))).all()
        assert [r.email for r in rows] == ["alice@example.com"]
        assert rows[0].certificate_url == report["successes"][0]["certificate_url"]

    async def test_unknown_event(self, admin_client: AsyncClient):
        response = await admin_client.post(
            "/api/admin/events/999/generate",
            json={"participants": [{"email": "a@x.io", "name": "A", "category": "x"}]},
        )

        assert response.status_code == 404

    async def test_event_without_templates(
        self, admin_client: AsyncClient, app: FastAPI
    ):
        async with app.state.session_maker() as session:
            event = EventFactory.build()
            session.add(event)
            await session.commit()

        response = await admin_client.post(
            f"/api/admin/events/{event.id}/generate",
            json={"participants": [{"email": "a@x.io", "name": "A", "category": "x"}]},
        )

        assert response.status_code == 400
        assert "No certificate templates" in response.json()["detail"]

    async def test_png_output(
        self, admin_client: AsyncClient, seeded_event: Event, object_store
    ):
        response = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate",
            json={
                "participants": [
                    {"email": "a@x.io", "name": "Ada", "category": "Participant"}
                ],
                "output_format": "png",
            },
        )

        assert response.status_code == 200
        assert response.json()["successes"][0]["certificate_url"].endswith(".png")

    async def test_invalid_output_format(
        self, admin_client: AsyncClient, seeded_event: Event
    ):
        response = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate",
            json={"participants": [], "output_format": "gif"},
        )

        assert response.status_code == 422


class TestGenerateFromCsv:
    async def test_generates_complete_rows(
        self, admin_client: AsyncClient, seeded_event: Event
    ):
        content = (
            "Name,Email,Category\n"
            "Ada,ada@example.com,Participant\n"
            "Bob,bob@example.com,\n"
        )

        response = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate/csv",
            files={"file": ("roster.csv", content.encode(), "text/csv")},
        )

        assert response.status_code == 200
        report = response.json()
        assert report["total"] == 1
        assert report["generated_count"] == 1
        assert report["skipped"] == 1
        assert "1 skipped" in report["message"]

    async def test_empty_csv(self, admin_client: AsyncClient, seeded_event: Event):
        response = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate/csv",
            files={"file": ("roster.csv", b"", "text/csv")},
        )

        assert response.status_code == 400


class TestRegenerate:
    async def test_regenerates(self, admin_client: AsyncClient, seeded_event: Event):
        generated = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate",
            json={
                "participants": [
                    {"email": "a@x.io", "name": "Ada", "category": "Participant"}
                ]
            },
        )
        success = generated.json()["successes"][0]

        response = await admin_client.post(
            f"/api/admin/certificates/{success['certificate_id']}/regenerate"
        )

        assert response.status_code == 200
        certificate = response.json()["certificate"]
        assert certificate["id"] == success["certificate_id"]
        assert certificate["certificate_url"] != success["certificate_url"]

    async def test_missing(self, admin_client: AsyncClient):
        response = await admin_client.post("/api/admin/certificates/999/regenerate")

        assert response.status_code == 404

    async def test_storage_failure(
        self, admin_client: AsyncClient, seeded_event: Event, object_store
    ):
        generated = await admin_client.post(
            f"/api/admin/events/{seeded_event.id}/generate",
            json={
                "participants": [
                    {"email": "a@x.io", "name": "Ada", "category": "Participant"}
                ]
            },
        )
        certificate_id = generated.json()["successes"][0]["certificate_id"]
        object_store.fail_when = "certificates/"

        response = await admin_client.post(
            f"/api/admin/certificates/{certificate_id}/regenerate"
        )

        assert response.status_code == 502
