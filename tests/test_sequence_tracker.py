"""Tests for the Redis chunk counter."""

import pytest

from common.types import ArchiveKey
from storage_api.sequence_tracker import SequenceTracker

KEY = ArchiveKey("u1", "a")


class TestSequenceTracker:

    def test_key_layout(self):
        assert SequenceTracker.counter_key(KEY) == "u1:a:processed-chunks"
        assert SequenceTracker.failed_key(KEY) == "u1:a:upload-failed"

    @pytest.mark.asyncio
    async def test_increment_from_reset(self, tracker):
        await tracker.reset(KEY)

        assert await tracker.increment(KEY) == 1
        assert await tracker.increment(KEY) == 2

    @pytest.mark.asyncio
    async def test_consume_reads_and_deletes(self, tracker):
        await tracker.reset(KEY)
        await tracker.increment(KEY)

        assert await tracker.consume(KEY) == 1
        assert await tracker.consume(KEY) is None
        assert not await tracker.exists(KEY)

    @pytest.mark.asyncio
    async def test_counters_are_independent(self, tracker):
        other = ArchiveKey("u1", "b")
        await tracker.reset(KEY)
        await tracker.reset(other)

        await tracker.increment(KEY)
        await tracker.increment(KEY)
        await tracker.increment(other)

        assert await tracker.consume(KEY) == 2
        assert await tracker.consume(other) == 1

    @pytest.mark.asyncio
    async def test_reset_forgets_failure(self, tracker):
        await tracker.mark_failed(KEY)
        assert await tracker.is_failed(KEY)

        await tracker.reset(KEY)

        assert not await tracker.is_failed(KEY)
        assert await tracker.exists(KEY)

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self, tracker, redis_stub):
        await tracker.clear(KEY)

        await tracker.reset(KEY)
        await tracker.mark_failed(KEY)
        await tracker.clear(KEY)

        assert redis_stub.data == {}
