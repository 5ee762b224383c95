"""API routes package."""

from storage.routes.file_routes import router as file_router
from storage.routes.status_routes import router as status_router

__all__ = ["file_router", "status_router"]
