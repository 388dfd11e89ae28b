"""Background task that aborts uploads which stopped receiving messages."""

import asyncio
import logging
from typing import Optional

from storage_api.transfer.upload_ingestion import UploadIngestion

logger = logging.getLogger(__name__)


class IdleUploadReaper:
    """
    Periodically cleans uploads idle for longer than max_idle_seconds.
    Not started when max_idle_seconds is 0.
    """

    def __init__(self, ingestion: UploadIngestion, max_idle_seconds: int, interval_seconds: int = 300):
        """
        Initialize reaper task.

        Args:
            ingestion: Upload state machine owning the sessions
            max_idle_seconds: Inactivity after which an upload is aborted
            interval_seconds: Time between reaping cycles
        """
        self.ingestion = ingestion
        self.max_idle_seconds = max_idle_seconds
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.max_idle_seconds > 0

    async def start(self) -> None:
        """Start the background reaper task."""
        if not self.enabled:
            logger.info("Idle upload reaper disabled")
            return

        if self._running:
            logger.warning("Idle upload reaper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Started idle upload reaper (timeout: {self.max_idle_seconds}s, interval: {self.interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the background reaper task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Stopped idle upload reaper")

    async def _run(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await self.reap_cycle()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in idle upload reaper: {e}", exc_info=True)

    async def reap_cycle(self) -> int:
        """Execute one reaping cycle."""
        reaped = await self.ingestion.reap_idle_uploads(self.max_idle_seconds)
        if reaped:
            logger.info(f"Reaper cycle complete: {len(reaped)} idle uploads cleaned")
        else:
            logger.debug("No idle uploads to reap")
        return len(reaped)
