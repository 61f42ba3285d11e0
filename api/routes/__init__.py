"""API route modules."""

from routes.admin_routes import router as admin_router
from routes.certificates_routes import router as certificates_router
from routes.generation_routes import router as generation_router
from routes.health_routes import router as health_router

__all__ = [
    "admin_router",
    "certificates_router",
    "generation_router",
    "health_router",
]
