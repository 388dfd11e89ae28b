"""Pydantic schemas for archive endpoints."""

from typing import Optional

from pydantic import BaseModel


class ArchiveResponse(BaseModel):
    """Archive metadata. checksum is null while the upload has not finished."""
    owner: str
    name: str
    size_in_bytes: int
    checksum: Optional[str] = None
    iv: Optional[str] = None
    created_at: str


class DownloadInitiatedResponse(BaseModel):
    """Response model for download initiation."""
    download_id: str
    status: str


class DownloadStatusResponse(BaseModel):
    """Response model for download progress."""
    download_id: str
    archive_name: str
    status: str
    segments_sent: int
    error: Optional[str] = None
    created_at: str
    finished_at: Optional[str] = None
