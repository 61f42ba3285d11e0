"""FastAPI application for the event certificates API."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded

from core.config import get_settings
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging
from core.mailer import SmtpMailer
from core.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.storage import create_object_store
from routes import (
    admin_router,
    certificates_router,
    generation_router,
    health_router,
)

configure_logging()
logger = logging.getLogger(__name__)


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw input (it may hold uploaded bytes)."""
    return [
        {key: value for key, value in error.items() if key not in ("input", "ctx")}
        for error in exc.errors()
    ]


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        extra={
            "exc_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handler for request validation errors."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(exc.errors()),
        },
    )
    return JSONResponse(
        status_code=422,
        content={"detail": _jsonable_errors(exc)},
    )


async def _run_alembic_migrations() -> None:
    """Run Alembic migrations in a subprocess.

    asyncpg's event loop cannot be reused from Alembic's own asyncio.run(),
    so migrations run as a separate process.
    """
    import subprocess
    import sys

    cmd = [
        sys.executable,
        "-c",
        (
            "from alembic import command; "
            "from alembic.config import Config; "
            "command.upgrade(Config('alembic.ini'), 'head')"
        ),
    ]
    cwd = Path(__file__).parent

    result = await asyncio.to_thread(
        lambda: subprocess.run(
            cmd, cwd=cwd, capture_output=True, text=True, timeout=120
        )
    )

    if result.returncode != 0:
        stderr = result.stderr.strip()
        logger.error("migrations.failed", extra={"stderr": stderr})
        raise RuntimeError(f"Alembic migration failed:\n{stderr}")

    logger.info("migrations.complete")


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Create DB engine, object store and mailer at startup; close on shutdown."""
    settings = get_settings()
    app.state.engine = create_engine()
    app.state.session_maker = create_session_maker(app.state.engine)
    app.state.object_store = create_object_store(settings)
    app.state.mailer = SmtpMailer(settings)

    app.state.init_done = False
    app.state.init_error = None

    try:
        async with asyncio.timeout(60):
            await init_db(app.state.engine)

        if settings.run_migrations_on_startup:
            async with asyncio.timeout(120):
                await _run_alembic_migrations()

        app.state.init_done = True
        logger.info(
            "init.complete",
            extra={
                "storage_backend": settings.storage_backend,
                "email_enabled": settings.email_enabled,
            },
        )
    except TimeoutError:
        logger.error(
            "init.timeout",
            extra={"hint": "Startup hung, check DB connectivity and migration state"},
        )
        raise RuntimeError("Application startup timed out")
    except Exception as e:
        app.state.init_error = str(e)
        logger.error(
            "init.failed",
            extra={"error": str(e)},
            exc_info=True,
        )
        raise

    try:
        yield
    finally:
        await app.state.object_store.close()
        await dispose_engine(app.state.engine)


_settings = get_settings()

app = fastapi.FastAPI(
    title="Event Certificates API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if _settings.enable_docs or _settings.debug else None,
    redoc_url="/redoc" if _settings.enable_docs or _settings.debug else None,
    openapi_url=("/openapi.json" if _settings.enable_docs or _settings.debug else None),
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Admin-Key"],
    expose_headers=["X-Request-Duration-Ms", "X-Request-Id"],
    max_age=600,
)
# Outermost, so the request line covers everything below it
app.add_middleware(RequestTimingMiddleware)

# Local storage backend: serve stored templates and certificates directly
if _settings.storage_backend == "local":
    _settings.storage_local_path.mkdir(parents=True, exist_ok=True)
    app.mount(
        "/files",
        StaticFiles(directory=str(_settings.storage_local_path)),
        name="files",
    )

app.include_router(health_router)
app.include_router(certificates_router)
app.include_router(admin_router)
app.include_router(generation_router)
