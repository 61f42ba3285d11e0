"""Route test configuration.

Disables the rate limiter and provides committed seed data. Route handlers
run in their own sessions, so fixtures here commit instead of flushing.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi import FastAPI

from models import Event
from tests.factories import EventFactory, TemplateFactory, make_image_bytes


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so route handlers can be called directly."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield


@pytest_asyncio.fixture
async def seeded_event(app: FastAPI, object_store) -> Event:
    """A committed event with a stored "Participant" template."""
    async with app.state.session_maker() as session:
        event = EventFactory.build(name="DevFest Lagos", date="12 March 2025")
        session.add(event)
        await session.flush()
        template = TemplateFactory.build(event_id=event.id, category="Participant")
        session.add(template)
        await session.commit()

    object_store.objects[template.template_path] = make_image_bytes(400, 300)
    return event
