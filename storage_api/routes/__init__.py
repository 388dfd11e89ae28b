"""API routes package."""

from storage_api.routes.archive_routes import router as archive_router

__all__ = ["archive_router"]
