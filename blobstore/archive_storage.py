"""Manages archive files on disk: create, sequential append, streaming read, delete."""

import os
import shutil
from pathlib import Path
from typing import Iterator, Optional, Union

from common.constants import DEFAULT_SEGMENT_SIZE_BYTES
from common.types import ArchiveKey


class InvalidArchivePathError(ValueError):
    """
    Raised when an owner or archive name would escape the storage directory.
    """
    pass


def _check_component(value: str, field: str) -> None:
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise InvalidArchivePathError(f"Invalid {field}: {value!r}")


class ArchiveStorage:
    """
    Archive bytes addressed as ``<base_path>/<owner>/<archive_name>``.
    Writers append sequentially; one writer per archive at a time.
    """

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path)

    def get_archive_path(self, key: ArchiveKey) -> Path:
        """
        Get file path for an archive.

        Args:
            key: Owner and name of the archive

        Returns:
            Path object for archive file

        Raises:
            InvalidArchivePathError: If owner or name is not a single path component
        """
        _check_component(key.owner, "owner")
        _check_component(key.name, "archive name")
        return self.base_path / key.owner / key.name

    def create(self, key: ArchiveKey) -> Path:
        """
        Create an empty archive file, truncating leftovers of an earlier attempt.

        Returns:
            Path to the created file
        """
        filepath = self.get_archive_path(key)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(b"")
        return filepath

    def append(self, key: ArchiveKey, data: bytes) -> int:
        """
        Append data at the end of the archive and flush it to stable storage.

        Args:
            key: Owner and name of the archive
            data: Decoded chunk bytes

        Returns:
            Archive size in bytes after the append

        Raises:
            FileNotFoundError: If the archive directory does not exist
            OSError: If write operation fails
        """
        filepath = self.get_archive_path(key)
        with open(filepath, 'ab') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
            return f.tell()

    def read_streaming(self, key: ArchiveKey, segment_size: int = DEFAULT_SEGMENT_SIZE_BYTES) -> Iterator[bytes]:
        """
        Stream archive data in sequential segments.

        Args:
            key: Owner and name of the archive
            segment_size: Size of each segment in bytes (default 64KB)

        Yields:
            Archive data segments

        Raises:
            FileNotFoundError: If archive does not exist
            OSError: If read operation fails
        """
        filepath = self.get_archive_path(key)
        with open(filepath, 'rb') as f:
            while True:
                segment = f.read(segment_size)
                if not segment:
                    break
                yield segment

    def read(self, key: ArchiveKey) -> bytes:
        """Read the entire archive."""
        return self.get_archive_path(key).read_bytes()

    def delete(self, key: ArchiveKey) -> bool:
        """
        Delete archive from disk, recursively and tolerating a missing path.

        Returns:
            True if something was deleted, False if it didn't exist
        """
        filepath = self.get_archive_path(key)
        if filepath.is_dir():
            shutil.rmtree(filepath)
            return True
        try:
            filepath.unlink()
            return True
        except FileNotFoundError:
            return False

    def exists(self, key: ArchiveKey) -> bool:
        return self.get_archive_path(key).exists()

    def get_size(self, key: ArchiveKey) -> Optional[int]:
        """
        Get size of archive file in bytes.

        Returns:
            Size in bytes, or None if archive doesn't exist
        """
        filepath = self.get_archive_path(key)
        if filepath.exists():
            return filepath.stat().st_size
        return None
