"""Filesystem blob storage for archive bytes."""

from blobstore.archive_storage import ArchiveStorage

__all__ = ["ArchiveStorage"]
