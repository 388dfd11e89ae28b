"""Redis-backed per-archive chunk counter used as the upload ordering oracle.

The counter for (owner, archive) is set to 0 when an upload starts, advanced
with a single atomic ``INCR`` per data message and consumed with ``GETDEL``
when the upload finishes. A separate flag key remembers uploads that failed
an ordering check so that a restarted consumer keeps rejecting them.
"""

from typing import Optional

import redis.asyncio as redis

from common.logging_config import get_logger
from common.types import ArchiveKey

logger = get_logger(__name__)


class SequenceTracker:
    """
    Chunk counters keyed by ``<owner>:<archive>:processed-chunks``.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> 'SequenceTracker':
        return cls(redis.from_url(url))

    @staticmethod
    def counter_key(key: ArchiveKey) -> str:
        return f"{key.owner}:{key.name}:processed-chunks"

    @staticmethod
    def failed_key(key: ArchiveKey) -> str:
        return f"{key.owner}:{key.name}:upload-failed"

    async def reset(self, key: ArchiveKey) -> None:
        """Start counting from zero and forget an earlier failure."""
        await self._client.delete(self.failed_key(key))
        await self._client.set(self.counter_key(key), 0)

    async def increment(self, key: ArchiveKey) -> int:
        """
        Atomically advance the counter and return the new value.
        A missing counter is created by Redis and yields 1.
        """
        return int(await self._client.incr(self.counter_key(key)))

    async def consume(self, key: ArchiveKey) -> Optional[int]:
        """
        Read and delete the counter in one round trip.

        Returns:
            Number of accepted chunks, or None if no counter exists
        """
        value = await self._client.getdel(self.counter_key(key))
        if value is None:
            return None
        return int(value)

    async def exists(self, key: ArchiveKey) -> bool:
        return bool(await self._client.exists(self.counter_key(key)))

    async def mark_failed(self, key: ArchiveKey) -> None:
        await self._client.set(self.failed_key(key), 1)

    async def is_failed(self, key: ArchiveKey) -> bool:
        return bool(await self._client.exists(self.failed_key(key)))

    async def clear(self, key: ArchiveKey) -> None:
        """Remove counter and failure flag; missing keys are ignored."""
        await self._client.delete(self.counter_key(key), self.failed_key(key))

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
