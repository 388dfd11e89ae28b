"""Download emission: replays a stored archive as an ordered message stream.

Each initiated download runs as its own asyncio task and is tracked by a
DownloadTicket. Emission failures are not retried; they are logged and
recorded on the ticket. An archive being emitted holds a lease that the
delete path checks.
"""

import asyncio
import uuid
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from blobstore.archive_storage import ArchiveStorage
from common.constants import DEFAULT_SEGMENT_SIZE_BYTES
from common.logging_config import get_logger
from common.protocol import DownloadData, DownloadFinish, DownloadStart
from common.types import ArchiveKey, ArchiveRecord
from storage_api.exceptions import ArchiveNotFoundError
from storage_api.repositories.archive_repository import ArchiveRepository

logger = get_logger(__name__)

MAX_TRACKED_TICKETS = 1000


class DownloadStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DownloadTicket:
    """
    Observable result of one download emission.
    """
    download_id: str
    owner: str
    archive_name: str
    status: DownloadStatus = DownloadStatus.PENDING
    segments_sent: int = 0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    @property
    def key(self) -> ArchiveKey:
        return ArchiveKey(self.owner, self.archive_name)

    @property
    def done(self) -> bool:
        return self.status in (DownloadStatus.COMPLETED, DownloadStatus.FAILED)


class DownloadEmitter:
    def __init__(
        self,
        storage: ArchiveStorage,
        producer,
        download_topic: str,
        segment_size: int = DEFAULT_SEGMENT_SIZE_BYTES,
    ):
        self.storage = storage
        self.producer = producer
        self.download_topic = download_topic
        self.segment_size = segment_size
        self.archive_repo = ArchiveRepository()
        self._tickets: "OrderedDict[str, DownloadTicket]" = OrderedDict()
        self._leases: Counter = Counter()

    def initiate(self, owner: str, archive_name: str) -> DownloadTicket:
        """
        Start emitting a finished archive to the download topic.
        Returns as soon as the emission task is scheduled.

        Raises:
            ArchiveNotFoundError: If the owner has no finished archive with this name
        """
        archive = self.archive_repo.find_by_owner_and_name(owner, archive_name)
        if archive is None or not archive.is_finished:
            raise ArchiveNotFoundError(f"No archive with name \"{archive_name}\" found")

        ticket = DownloadTicket(download_id=str(uuid.uuid4()), owner=owner, archive_name=archive_name)
        self._leases[archive.key] += 1
        self._track(ticket)
        ticket.task = asyncio.create_task(self._emit(ticket, archive))
        logger.info(f"Initiated download of archive \"{archive_name}\" [download_id={ticket.download_id}]")
        return ticket

    def get_ticket(self, download_id: str) -> Optional[DownloadTicket]:
        return self._tickets.get(download_id)

    def is_emitting(self, key: ArchiveKey) -> bool:
        return self._leases[key] > 0

    def active_tickets(self) -> List[DownloadTicket]:
        return [ticket for ticket in self._tickets.values() if not ticket.done]

    async def stop(self) -> None:
        """Cancel running emissions and release their leases."""
        pending = [t for t in self.active_tickets() if t.task is not None]
        for ticket in pending:
            ticket.task.cancel()
        await asyncio.gather(*(t.task for t in pending), return_exceptions=True)

        # A task cancelled before its first step never reaches the release in _emit
        for ticket in pending:
            if not ticket.done:
                ticket.status = DownloadStatus.FAILED
                ticket.error = "cancelled"
                ticket.finished_at = datetime.now(timezone.utc)
                self._release(ticket.key)

    async def _emit(self, ticket: DownloadTicket, archive: ArchiveRecord) -> DownloadTicket:
        key = archive.key
        ticket.status = DownloadStatus.RUNNING
        try:
            await self._send(DownloadStart(key.owner, key.name, archive.checksum, archive.iv))
            for segment in self.storage.read_streaming(key, self.segment_size):
                await self._send(DownloadData(key.owner, key.name, segment))
                ticket.segments_sent += 1
            await self._send(DownloadFinish(key.owner, key.name))
            ticket.status = DownloadStatus.COMPLETED
            logger.debug(
                f"Sent archive \"{key.name}\" in {ticket.segments_sent} segments "
                f"[download_id={ticket.download_id}]"
            )
        except asyncio.CancelledError:
            ticket.status = DownloadStatus.FAILED
            ticket.error = "cancelled"
            raise
        except Exception as e:
            ticket.status = DownloadStatus.FAILED
            ticket.error = str(e) or type(e).__name__
            logger.error(
                f"Error on sending archive \"{key.name}\" [download_id={ticket.download_id}]: {e}",
                exc_info=True
            )
        finally:
            ticket.finished_at = datetime.now(timezone.utc)
            self._release(key)
        return ticket

    def _release(self, key: ArchiveKey) -> None:
        self._leases[key] -= 1
        if self._leases[key] <= 0:
            del self._leases[key]

    async def _send(self, message) -> None:
        await self.producer.send(self.download_topic, message.KEY, message.to_value())

    def _track(self, ticket: DownloadTicket) -> None:
        self._tickets[ticket.download_id] = ticket
        while len(self._tickets) > MAX_TRACKED_TICKETS:
            oldest_id = next(
                (tid for tid, t in self._tickets.items() if t.done),
                None
            )
            if oldest_id is None:
                break
            del self._tickets[oldest_id]
