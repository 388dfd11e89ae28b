"""Repository layer for data access."""

from storage_api.repositories.archive_repository import ArchiveRepository
from storage_api.repositories.api_key_repository import ApiKeyRepository

__all__ = [
    "ArchiveRepository",
    "ApiKeyRepository",
]
