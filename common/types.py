"""Shared data type definitions (ArchiveKey, ArchiveRecord)."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ArchiveKey:
    """
    Identity of an archive: unique name within an owner's namespace.
    """
    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class ArchiveRecord:
    """
    Persisted metadata of an archive. A record without checksum belongs
    to an upload that has not finished (in flight or orphaned).
    """
    owner: str
    name: str
    size_in_bytes: int
    created_at: datetime
    checksum: Optional[str] = None
    iv: Optional[str] = None

    @property
    def key(self) -> ArchiveKey:
        return ArchiveKey(self.owner, self.name)

    @property
    def is_finished(self) -> bool:
        return self.checksum is not None
