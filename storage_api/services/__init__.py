"""Service layer for business logic."""

from storage_api.services.archive_service import ArchiveService

__all__ = [
    "ArchiveService",
]
