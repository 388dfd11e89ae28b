"""Archive service: listing, deletion and download initiation for the HTTP layer."""

from typing import List

from blobstore.archive_storage import ArchiveStorage, InvalidArchivePathError
from common.logging_config import get_logger
from common.types import ArchiveKey, ArchiveRecord
from storage_api.exceptions import (
    ArchiveBusyError,
    ArchiveNotFoundError,
    DownloadNotFoundError,
    InvalidArchiveNameError,
)
from storage_api.repositories.archive_repository import ArchiveRepository
from storage_api.transfer.download_emission import DownloadEmitter, DownloadTicket

logger = get_logger(__name__)


class ArchiveService:
    def __init__(self, storage: ArchiveStorage, emitter: DownloadEmitter):
        self.storage = storage
        self.emitter = emitter
        self.archive_repo = ArchiveRepository()

    def get_user_archives(self, owner: str) -> List[ArchiveRecord]:
        return self.archive_repo.list_by_owner(owner)

    def delete_archive(self, owner: str, archive_name: str) -> None:
        key = ArchiveKey(owner, archive_name)
        try:
            self.storage.get_archive_path(key)
        except InvalidArchivePathError as e:
            raise InvalidArchiveNameError(str(e))

        if self.emitter.is_emitting(key):
            logger.warning(f"Refusing to delete archive \"{archive_name}\" while it is being downloaded")
            raise ArchiveBusyError(f"Archive \"{archive_name}\" is being downloaded")

        archive = self.archive_repo.delete_archive(owner, archive_name)
        if archive is None:
            raise ArchiveNotFoundError(f"No archive with name \"{archive_name}\" found")

        self.storage.delete(archive.key)
        logger.info(f"Deleted archive \"{archive_name}\" [owner={owner}]")

    def initiate_download(self, owner: str, archive_name: str) -> DownloadTicket:
        return self.emitter.initiate(owner, archive_name)

    def get_download(self, owner: str, download_id: str) -> DownloadTicket:
        ticket = self.emitter.get_ticket(download_id)
        if ticket is None or ticket.owner != owner:
            raise DownloadNotFoundError(f"No download with id \"{download_id}\" found")
        return ticket
