"""Shared pytest fixtures for all tests."""

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from blobstore.archive_storage import ArchiveStorage
from common.protocol import UploadMessage, encode_upload_message, encode_value
from storage_api.database import init_database
from storage_api.sequence_tracker import SequenceTracker
from storage_api.transfer.download_emission import DownloadEmitter
from storage_api.transfer.upload_ingestion import UploadIngestion

ACK_TOPIC = "test-upload-acknowledge"
DOWNLOAD_TOPIC = "test-download-stream"


class StubRedis:
    """
    In-memory stand-in for the redis.asyncio client commands the tracker uses.
    """

    def __init__(self):
        self.data: Dict[str, bytes] = {}

    async def set(self, name: str, value: Any) -> bool:
        self.data[name] = str(value).encode()
        return True

    async def incr(self, name: str) -> int:
        value = int(self.data.get(name, b"0")) + 1
        self.data[name] = str(value).encode()
        return value

    async def getdel(self, name: str) -> Optional[bytes]:
        return self.data.pop(name, None)

    async def get(self, name: str) -> Optional[bytes]:
        return self.data.get(name)

    async def delete(self, *names: str) -> int:
        return sum(1 for name in names if self.data.pop(name, None) is not None)

    async def exists(self, *names: str) -> int:
        return sum(1 for name in names if name in self.data)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass


class RecordingProducer:
    """
    Collects published records instead of sending them to Kafka.
    ``fail_when`` makes send raise for matching (topic, key, value) triples.
    """

    def __init__(self):
        self.records: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail_when: Optional[Callable[[str, str, Dict[str, Any]], bool]] = None

    async def send(self, topic: str, key: str, value: Dict[str, Any]) -> None:
        if self.fail_when is not None and self.fail_when(topic, key, value):
            raise ConnectionError("broker unavailable")
        self.records.append((topic, key, value))

    def on_topic(self, topic: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [(key, value) for t, key, value in self.records if t == topic]

    def acks(self) -> List[Tuple[str, Dict[str, Any]]]:
        return self.on_topic(ACK_TOPIC)

    def downloads(self) -> List[Tuple[str, Dict[str, Any]]]:
        return self.on_topic(DOWNLOAD_TOPIC)


@pytest.fixture
def test_db(tmp_path, monkeypatch):
    """
    Create a temporary test database for each test.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setattr("storage_api.database.DATABASE_PATH", str(db_path))
    monkeypatch.setattr("storage_api.config.DATABASE_PATH", str(db_path))
    init_database()
    return db_path


@pytest.fixture
def storage(tmp_path):
    return ArchiveStorage(tmp_path / "archives")


@pytest.fixture
def redis_stub():
    return StubRedis()


@pytest.fixture
def tracker(redis_stub):
    return SequenceTracker(redis_stub)


@pytest.fixture
def producer():
    return RecordingProducer()


@pytest.fixture
def ingestion(test_db, storage, tracker, producer):
    return UploadIngestion(
        storage=storage,
        tracker=tracker,
        producer=producer,
        acknowledge_topic=ACK_TOPIC,
        order_number_base=0,
    )


@pytest.fixture
def emitter(test_db, storage, producer):
    return DownloadEmitter(storage, producer, DOWNLOAD_TOPIC, segment_size=4)


@pytest.fixture
def feed(ingestion):
    """
    Push upload messages through the record-level entry point, as the Kafka consumer does.
    """
    async def _feed(*messages: UploadMessage) -> None:
        for message in messages:
            await ingestion.handle_record(
                message.KEY.encode(),
                encode_value(encode_upload_message(message)),
            )
    return _feed


@pytest.fixture
def make_ingestion(test_db, storage, tracker, producer):
    """
    Build another state machine over the same stores, e.g. to simulate a consumer restart.
    """
    def _make(order_number_base: int = 0) -> UploadIngestion:
        return UploadIngestion(storage, tracker, producer, ACK_TOPIC, order_number_base=order_number_base)
    return _make
