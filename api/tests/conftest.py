"""Pytest configuration and shared fixtures.

This module provides:
- An in-memory SQLite database (aiosqlite) per test, with savepoint support
- Async session fixtures for repository/service tests
- FastAPI test client for route integration tests
- In-memory fakes for the object store and mailer
- Template image fixtures
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("STORAGE_LOCAL_DIR", tempfile.mkdtemp(prefix="certs-test-"))
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("SMTP_HOST", "")

import hashlib
import sys
from collections.abc import AsyncGenerator, Generator
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.config import clear_settings_cache
from core.database import Base
from core.mailer import EmailMessage
from core.storage import ObjectExistsError, StorageError
from core.wide_event import init_wide_event
from tests.factories import make_image_bytes

ADMIN_KEY = "test-admin-key"


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Initialize wide_event context for all tests.

    Services use set_wide_event_fields() which requires context initialization.
    In production this is done by middleware; in tests we do it here.
    """
    init_wide_event()
    yield


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Database Fixtures
# =============================================================================


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy manage BEGIN/SAVEPOINT itself and enforce foreign keys.

    The sqlite driver's implicit transaction handling otherwise breaks
    SAVEPOINT, which generation relies on for per-participant rollback.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database with all tables, one per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    _enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """A session whose uncommitted work is discarded after the test."""
    session = session_maker()
    try:
        yield session
    finally:
        await session.rollback()
        await session.close()


# =============================================================================
# Collaborator Fakes
# =============================================================================


class InMemoryObjectStore:
    """ObjectStore fake with the same no-overwrite semantics as the real ones.

    ``fail_when`` makes uploads whose path contains the given substring fail.
    """

    def __init__(self, base_url: str = "https://files.test"):
        self.base_url = base_url
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_when: str | None = None
        self.uploads = 0
        self.downloads = 0

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        overwrite: bool = False,
    ) -> str:
        self.uploads += 1
        if self.fail_when is not None and self.fail_when in path:
            raise StorageError("Storage backend returned 503")
        if path in self.objects and not overwrite:
            raise ObjectExistsError(path)
        self.objects[path] = content
        self.content_types[path] = content_type
        return path

    async def download(self, path: str) -> bytes:
        self.downloads += 1
        try:
            return self.objects[path]
        except KeyError:
            raise StorageError(f"Object not found at {path}") from None

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def close(self) -> None:
        return None

    def paths(self, prefix: str) -> list[str]:
        return sorted(p for p in self.objects if p.startswith(prefix))


class RecordingMailer:
    """Mailer fake that keeps sent messages."""

    def __init__(self):
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


# =============================================================================
# Image Fixtures
# =============================================================================


@pytest.fixture
def template_png() -> bytes:
    return make_image_bytes(400, 300)


@pytest.fixture
def fake_cairosvg() -> Generator[MagicMock]:
    """Stand in for CairoSVG so encoding needs no system Cairo library.

    Output bytes are derived from the SVG so different names give
    different documents.
    """

    def _digest(kind: bytes):
        def convert(bytestring: bytes, **_kwargs) -> bytes:
            return kind + hashlib.sha256(bytestring).hexdigest().encode()

        return convert

    fake = MagicMock()
    fake.svg2pdf.side_effect = _digest(b"%PDF-1.4 ")
    fake.svg2png.side_effect = _digest(b"\x89PNG\r\n\x1a\n")
    with patch.dict(sys.modules, {"cairosvg": fake}):
        yield fake


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(
    test_engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
    object_store: InMemoryObjectStore,
    mailer: RecordingMailer,
) -> AsyncGenerator[FastAPI]:
    """FastAPI app wired to the test database and in-memory collaborators."""
    # Import here so test environment variables are set first
    from main import app as fastapi_app

    fastapi_app.state.engine = test_engine
    fastapi_app.state.session_maker = session_maker
    fastapi_app.state.object_store = object_store
    fastapi_app.state.mailer = mailer
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None

    yield fastapi_app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client without admin credentials."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client sending the admin key."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Admin-Key": ADMIN_KEY},
    ) as ac:
        yield ac


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio (required by httpx)."""
    return "asyncio"
