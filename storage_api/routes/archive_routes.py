"""Archive API routes."""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from storage_api.auth import get_current_user
from storage_api.schemas.archives import (
    ArchiveResponse,
    DownloadInitiatedResponse,
    DownloadStatusResponse,
)
from storage_api.schemas.common import ErrorResponse
from storage_api.service_locator import get_archive_service
from storage_api.services.archive_service import ArchiveService

router = APIRouter(
    prefix="/archives",
    tags=["Archives"],
    responses={401: {"model": ErrorResponse}}
)


@router.get("", response_model=List[ArchiveResponse])
async def list_archives(
    current_user: str = Depends(get_current_user),
    archive_service: ArchiveService = Depends(get_archive_service)
):
    """
    List all archives of the caller, including uploads still in flight.

    Raises:
        - 401: Invalid or missing API Key
    """
    archives = archive_service.get_user_archives(current_user)

    return [
        ArchiveResponse(
            owner=archive.owner,
            name=archive.name,
            size_in_bytes=archive.size_in_bytes,
            checksum=archive.checksum,
            iv=archive.iv,
            created_at=archive.created_at.isoformat(),
        )
        for archive in archives
    ]


@router.post(
    "/{name}/download",
    response_model=DownloadInitiatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"model": ErrorResponse}}
)
async def initiate_download(
    name: str,
    current_user: str = Depends(get_current_user),
    archive_service: ArchiveService = Depends(get_archive_service)
):
    """
    Start streaming an archive to the download topic.
    Returns once the emission is scheduled, not when it completes.

    Raises:
        - 401: Invalid or missing API Key
        - 404: No finished archive with this name
    """
    ticket = archive_service.initiate_download(current_user, name)

    return DownloadInitiatedResponse(download_id=ticket.download_id, status=ticket.status.value)


@router.get(
    "/downloads/{download_id}",
    response_model=DownloadStatusResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_download_status(
    download_id: str,
    current_user: str = Depends(get_current_user),
    archive_service: ArchiveService = Depends(get_archive_service)
):
    """
    Report progress or failure of an initiated download.

    Raises:
        - 401: Invalid or missing API Key
        - 404: Unknown download
    """
    ticket = archive_service.get_download(current_user, download_id)

    return DownloadStatusResponse(
        download_id=ticket.download_id,
        archive_name=ticket.archive_name,
        status=ticket.status.value,
        segments_sent=ticket.segments_sent,
        error=ticket.error,
        created_at=ticket.created_at.isoformat(),
        finished_at=ticket.finished_at.isoformat() if ticket.finished_at else None,
    )


@router.delete(
    "/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse}
    }
)
async def delete_archive(
    name: str,
    current_user: str = Depends(get_current_user),
    archive_service: ArchiveService = Depends(get_archive_service)
):
    """
    Delete an archive record and its stored bytes.

    Raises:
        - 401: Invalid or missing API Key
        - 404: No archive with this name
        - 409: Archive is being downloaded
    """
    archive_service.delete_archive(current_user, name)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
