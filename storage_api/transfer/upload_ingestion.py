"""Upload ingestion: rebuilds archives from the ordered upload stream.

Counter semantics: the Redis counter is the only source of truth for which
chunk comes next. A data message is accepted iff its orderNumber equals the
value produced by the atomic increment (shifted by the configured base).
Out-of-order chunks are never buffered.
"""

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from blobstore.archive_storage import ArchiveStorage, InvalidArchivePathError
from common.constants import (
    ACK_STATUS_ERROR,
    ACK_STATUS_OK,
    ACK_STATUS_SUCCESS,
    UNEXPECTED_UPLOAD_ERROR,
)
from common.logging_config import get_logger
from common.protocol import (
    Acknowledgement,
    MalformedMessageError,
    UploadAbort,
    UploadData,
    UploadFinish,
    UploadMessage,
    UploadStart,
    decode_upload_message,
)
from common.types import ArchiveKey
from storage_api.exceptions import ArchiveAlreadyExistsError, ArchiveNotFoundError
from storage_api.repositories.archive_repository import ArchiveRepository
from storage_api.sequence_tracker import SequenceTracker
from storage_api.transfer.sessions import UploadSession, UploadSessionRegistry, UploadState

logger = get_logger(__name__)


class UploadIngestion:
    def __init__(
        self,
        storage: ArchiveStorage,
        tracker: SequenceTracker,
        producer,
        acknowledge_topic: str,
        order_number_base: int = 0,
        sessions: Optional[UploadSessionRegistry] = None,
    ):
        self.storage = storage
        self.tracker = tracker
        self.producer = producer
        self.acknowledge_topic = acknowledge_topic
        self.order_number_base = order_number_base
        self.sessions = sessions or UploadSessionRegistry()
        self.archive_repo = ArchiveRepository()
        self._handlers = {
            UploadStart: self.handle_start,
            UploadData: self.handle_data,
            UploadFinish: self.handle_finish,
            UploadAbort: self.handle_abort,
        }

    async def handle_record(self, key: Optional[bytes], value: Optional[bytes]) -> None:
        """
        Decode one upload stream record and run it through the state machine.
        Malformed records are reported and skipped.
        """
        try:
            message = decode_upload_message(key, value)
        except MalformedMessageError as e:
            logger.warning(f"Skipping malformed upload record [key={key!r}]: {e}")
            if e.key is not None:
                await self._reject_malformed(e.key)
            return

        await self.handle(message)

    async def handle(self, message: UploadMessage) -> None:
        await self._handlers[type(message)](message)

    async def handle_start(self, message: UploadStart) -> None:
        key = message.archive_key

        try:
            self.storage.get_archive_path(key)
        except InvalidArchivePathError as e:
            logger.error(f"Rejected upload start of archive \"{key.name}\": {e}")
            await self._send_error(key)
            return

        try:
            self._register_archive(key, message.iv)
        except ArchiveAlreadyExistsError as e:
            logger.error(f"Rejected upload start of archive \"{key.name}\": {e} [owner={key.owner}]")
            await self._send_error(key)
            return

        # Counter and blob belong to this upload once its record exists
        try:
            await self.tracker.reset(key)
            self.storage.create(key)
        except Exception as e:
            logger.error(f"Failed to handle upload start of archive \"{key.name}\": {e}", exc_info=True)
            try:
                await self._send_error(key)
            finally:
                await self._clean(key)
            return

        self.sessions.open(key)
        await self._send_ack(Acknowledgement("start", key.owner, key.name, ACK_STATUS_SUCCESS))
        logger.debug(f"Ready for handling upload of archive \"{key.name}\" [owner={key.owner}]")

    async def handle_data(self, message: UploadData) -> None:
        key = message.archive_key
        session = await self._resolve_session(key)

        if session.state is UploadState.FAILED:
            logger.warning(f"Ignoring chunk {message.order_number} of failed upload of archive \"{key.name}\"")
            return

        if session.state is UploadState.IDLE:
            logger.error(f"Received chunk of archive \"{key.name}\" without upload start [owner={key.owner}]")
            await self._send_error(key)
            return

        expected_order_number = await self.tracker.increment(key) - 1 + self.order_number_base
        if message.order_number != expected_order_number:
            await self._fail(session)
            await self._send_error(key)
            logger.error(
                f"Failed to handle chunk of archive \"{key.name}\": chunk order number "
                f"({message.order_number}) doesn't match expected ({expected_order_number})"
            )
            return

        try:
            size = self.storage.append(key, message.data)
        except OSError:
            await self._fail(session)
            await self._send_error(key)
            raise

        self.sessions.transition(session, UploadState.RECEIVING)
        logger.debug(f"Successfully handled chunk of archive \"{key.name}\" [size={size}]")

    async def handle_finish(self, message: UploadFinish) -> None:
        key = message.archive_key
        session = await self._resolve_session(key)

        if session.state is UploadState.FAILED:
            logger.warning(f"Ignoring upload finish of failed archive \"{key.name}\"")
            return

        try:
            processed_chunks = await self.tracker.consume(key) or 0
            if processed_chunks != message.chunk_amount:
                await self._send_error(key)
                logger.error(
                    f"Failed to handle upload finish of archive \"{key.name}\": processed chunk amount "
                    f"({processed_chunks}) doesn't match total archive chunks ({message.chunk_amount})"
                )
                await self._clean(key)
                return

            size = self.storage.get_size(key)
            if size is None:
                raise FileNotFoundError(f"No stored bytes for archive \"{key.name}\"")

            if not self.archive_repo.mark_finished(key.owner, key.name, message.checksum, message.iv, size):
                raise ArchiveNotFoundError(f"No archive record for \"{key.name}\"")

            self.sessions.transition(session, UploadState.FINISHED)
            await self._send_ack(Acknowledgement("finish", key.owner, key.name, ACK_STATUS_OK))
            logger.debug(f"Successfully handled upload finish of archive \"{key.name}\"")
        except Exception as e:
            logger.error(f"Failed to handle upload finish of archive \"{key.name}\": {e}", exc_info=True)
            try:
                await self._send_error(key)
            finally:
                await self._clean(key)

    async def handle_abort(self, message: UploadAbort) -> None:
        key = message.archive_key
        await self._clean(key)
        logger.debug(f"Successfully handled upload abort of archive \"{key.name}\"")

    async def reap_idle_uploads(self, max_idle_seconds: float) -> List[ArchiveKey]:
        """
        Clean uploads that received neither data nor finish for max_idle_seconds.

        Returns:
            Keys of the reaped uploads
        """
        reaped = []
        for session in self.sessions.idle_sessions(max_idle_seconds):
            await self._clean(session.key)
            reaped.append(session.key)
            logger.info(f"Reaped idle upload of archive \"{session.key.name}\" [owner={session.key.owner}]")
        return reaped

    async def recover_sessions(self) -> int:
        """
        Rebuild sessions of unfinished uploads from the metadata store and the tracker.
        Called once before consuming so that uploads left idle across a restart
        are visible to the reaper. Records without a counter are left alone.

        Returns:
            Number of recovered sessions
        """
        recovered = 0
        for archive in self.archive_repo.list_unfinished():
            if archive.key in self.sessions:
                continue
            session = await self._resolve_session(archive.key)
            if session.state is not UploadState.IDLE:
                recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} unfinished uploads")
        return recovered

    def _register_archive(self, key: ArchiveKey, iv: Optional[str]) -> None:
        """
        Raises:
            ArchiveAlreadyExistsError: If the owner already has an archive with this name
        """
        if self.archive_repo.find_by_owner_and_name(key.owner, key.name) is not None:
            raise ArchiveAlreadyExistsError("archive already exists")

        try:
            self.archive_repo.create_archive(
                owner=key.owner,
                name=key.name,
                created_at=datetime.now(timezone.utc),
                iv=iv,
            )
        except sqlite3.IntegrityError as e:
            raise ArchiveAlreadyExistsError("archive record created concurrently") from e

    async def _reject_malformed(self, key: ArchiveKey) -> None:
        """Report an undecodable record; an upload in progress for that archive fails."""
        session = await self._resolve_session(key)
        if session.state is UploadState.FAILED:
            return
        if session.is_active:
            await self._fail(session)
        await self._send_error(key)

    async def _resolve_session(self, key: ArchiveKey) -> UploadSession:
        """
        Find the session of an archive, rebuilding it from the tracker after a restart.
        An unknown upload yields an unregistered IDLE session.
        """
        session = self.sessions.get(key)
        if session is not None:
            return session

        if await self.tracker.is_failed(key):
            return self.sessions.open(key, UploadState.FAILED)
        if await self.tracker.exists(key):
            return self.sessions.open(key, UploadState.RECEIVING)
        return UploadSession(key=key)

    async def _fail(self, session: UploadSession) -> None:
        self.sessions.transition(session, UploadState.FAILED)
        await self.tracker.mark_failed(session.key)

    async def _clean(self, key: ArchiveKey) -> None:
        """
        Remove counter, metadata record and stored bytes. Each removal is attempted
        even when another one fails; absent resources are ignored.
        """
        try:
            await self.tracker.clear(key)
        except Exception as e:
            logger.error(f"Failed to clear upload counter of archive \"{key.name}\": {e}", exc_info=True)

        try:
            self.archive_repo.delete_archive(key.owner, key.name)
        except Exception as e:
            logger.error(f"Failed to delete record of archive \"{key.name}\": {e}", exc_info=True)

        try:
            self.storage.delete(key)
        except InvalidArchivePathError:
            pass
        except Exception as e:
            logger.error(f"Failed to delete stored bytes of archive \"{key.name}\": {e}", exc_info=True)

        session = self.sessions.get(key)
        if session is not None:
            self.sessions.transition(session, UploadState.ABORTED)

    async def _send_ack(self, ack: Acknowledgement) -> None:
        await self.producer.send(self.acknowledge_topic, ack.key, ack.to_value())

    async def _send_error(self, key: ArchiveKey) -> None:
        await self._send_ack(
            Acknowledgement("error", key.owner, key.name, ACK_STATUS_ERROR, UNEXPECTED_UPLOAD_ERROR)
        )
