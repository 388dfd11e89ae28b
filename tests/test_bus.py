"""Tests for the Kafka producer wrapper and the upload stream consumer loop."""

import asyncio
import json
from collections import namedtuple

import pytest

from common.protocol import UploadStart, encode_upload_message, encode_value
from common.types import ArchiveKey
from storage_api.bus import MessageProducer, UploadStreamConsumer
from storage_api.repositories.archive_repository import ArchiveRepository

Record = namedtuple("Record", ["key", "value"])


class FakeKafkaConsumer:
    """
    Yields a fixed list of records, then waits like an idle broker.
    The first ``failures`` iterations raise before yielding anything.
    """

    def __init__(self, records, failures=0):
        self.records = records
        self.failures = failures
        self.started = False
        self.stopped = False
        self.exhausted = asyncio.Event()

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("broker connection lost")
        for record in self.records:
            yield record
        self.exhausted.set()
        await asyncio.Event().wait()


class FakeKafkaProducer:

    def __init__(self):
        self.sent = []

    async def start(self):
        pass

    async def stop(self):
        pass

    async def send_and_wait(self, topic, key=None, value=None):
        self.sent.append((topic, key, value))


@pytest.mark.asyncio
async def test_producer_encodes_key_and_json_value():
    kafka_producer = FakeKafkaProducer()
    producer = MessageProducer("unused:9092", "test", producer=kafka_producer)

    await producer.send("upload-acknowledge", "start", {"owner": "u1", "archiveName": "a", "status": "success"})

    topic, key, value = kafka_producer.sent[0]
    assert topic == "upload-acknowledge"
    assert key == b"start"
    assert json.loads(value) == {"owner": "u1", "archiveName": "a", "status": "success"}


@pytest.mark.asyncio
async def test_failing_record_does_not_stop_consumer():
    handled = []

    async def handler(key, value):
        if key == b"poison":
            raise RuntimeError("cannot handle")
        handled.append(key)

    consumer = UploadStreamConsumer("upload-stream", handler, consumer=FakeKafkaConsumer([]))

    await consumer.process_record(b"poison", b"{}")
    await consumer.process_record(b"start", b"{}")

    assert handled == [b"start"]
    assert consumer.failed_count == 1
    assert consumer.processed_count == 1


@pytest.mark.asyncio
async def test_consumer_loop_feeds_ingestion(ingestion, producer, storage):
    start_value = encode_value(encode_upload_message(UploadStart(owner="u1", archive_name="a")))
    kafka_consumer = FakeKafkaConsumer([
        Record(b"data", b"not json"),
        Record(b"start", start_value),
    ])
    consumer = UploadStreamConsumer("upload-stream", ingestion.handle_record, consumer=kafka_consumer)

    await consumer.start()
    await asyncio.wait_for(kafka_consumer.exhausted.wait(), timeout=5)
    await consumer.stop()

    assert kafka_consumer.started and kafka_consumer.stopped
    assert [key for key, _ in producer.acks()] == ["start"]
    assert ArchiveRepository.find_by_owner_and_name("u1", "a") is not None
    assert storage.exists(ArchiveKey("u1", "a"))


@pytest.mark.asyncio
async def test_write_failure_is_isolated_by_consumer(ingestion, storage, producer, monkeypatch):
    await ingestion.handle(UploadStart(owner="u1", archive_name="a"))

    def broken_append(key, payload):
        raise OSError("disk failure")

    monkeypatch.setattr(storage, "append", broken_append)
    consumer = UploadStreamConsumer("upload-stream", ingestion.handle_record, consumer=FakeKafkaConsumer([]))

    await consumer.process_record(
        b"data",
        b'{"owner": "u1", "archiveName": "a", "orderNumber": 0, "data": "QUE="}'
    )

    assert consumer.failed_count == 1
    assert [key for key, _ in producer.acks()] == ["start", "error"]


@pytest.mark.asyncio
async def test_fetch_error_does_not_stop_consumer():
    handled = []

    async def handler(key, value):
        handled.append(key)

    kafka_consumer = FakeKafkaConsumer([Record(b"start", b"{}")], failures=1)
    consumer = UploadStreamConsumer(
        "upload-stream", handler, consumer=kafka_consumer, retry_backoff_seconds=0
    )

    await consumer.start()
    await asyncio.wait_for(kafka_consumer.exhausted.wait(), timeout=5)

    assert handled == [b"start"]
    assert consumer.fetch_error_count == 1
    assert consumer.is_alive

    await consumer.stop()

    assert not consumer.is_alive
    assert kafka_consumer.stopped
