"""Admin API gate.

The admin surface is protected by a single shared key sent in the
``X-Admin-Key`` header. In debug mode with no key configured the gate is open
so local development needs no setup.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException
from starlette import status

from core.config import get_settings


async def require_admin(
    x_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests whose X-Admin-Key does not match ADMIN_API_KEY."""
    settings = get_settings()

    if not settings.admin_api_key:
        if settings.debug:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured",
        )

    if not x_admin_key or not hmac.compare_digest(
        x_admin_key.encode(), settings.admin_api_key.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )


AdminRequired = Depends(require_admin)
