"""Rate limiting configuration using slowapi.

SCALABILITY NOTES:
- Production should use Redis: set RATELIMIT_STORAGE_URI="redis://host:port/db"
- memory:// storage does NOT work with multiple workers/replicas
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    # Fall back to memory when Redis is temporarily unavailable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="certs:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "ratelimit.exceeded",
        extra={"client": get_remote_address(request), "limit": exc.detail},
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


SEARCH_LIMIT = "30/minute"

EMAIL_LIMIT = "5/minute"
