"""Tests for the archive HTTP endpoints."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from common.types import ArchiveKey
from storage_api.main import app
from storage_api.repositories.api_key_repository import ApiKeyRepository
from storage_api.repositories.archive_repository import ArchiveRepository
from storage_api.services.archive_service import ArchiveService
from storage_api.transfer.download_emission import DownloadStatus, DownloadTicket

AUTH = {"Authorization": "Bearer key-u1"}


@pytest.fixture
def archive_service(storage, emitter, monkeypatch):
    service = ArchiveService(storage, emitter)
    monkeypatch.setattr("storage_api.service_locator._archive_service", service)
    return service


@pytest.fixture
def client(test_db, archive_service):
    """Create FastAPI test client with one registered API key."""
    ApiKeyRepository.add_api_key("key-u1", "u1", datetime.now(timezone.utc))
    return TestClient(app)


def finished_archive(storage, owner="u1", name="a", content=b"bytes"):
    key = ArchiveKey(owner, name)
    ArchiveRepository.create_archive(owner, name, datetime.now(timezone.utc))
    storage.create(key)
    storage.append(key, content)
    ArchiveRepository.mark_finished(owner, name, "c1", "i1", len(content))
    return key


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_authorization_header(client):
    assert client.get("/archives").status_code == 422


def test_unknown_api_key(client):
    response = client.get("/archives", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_API_KEY"


def test_malformed_authorization_header(client):
    response = client.get("/archives", headers={"Authorization": "Basic abc"})

    assert response.status_code == 401


def test_list_archives(client, storage):
    finished_archive(storage, name="a")
    finished_archive(storage, owner="u2", name="other")
    ArchiveRepository.create_archive("u1", "in-flight", datetime.now(timezone.utc))

    response = client.get("/archives", headers=AUTH)

    assert response.status_code == 200
    body = {item["name"]: item for item in response.json()}
    assert set(body) == {"a", "in-flight"}
    assert body["a"]["checksum"] == "c1"
    assert body["a"]["size_in_bytes"] == 5
    assert body["in-flight"]["checksum"] is None
    assert "X-Request-ID" in response.headers


def test_initiate_download_accepted(client, storage):
    finished_archive(storage)

    response = client.post("/archives/a/download", headers=AUTH)

    assert response.status_code == 202
    assert response.json()["download_id"]


def test_initiate_download_missing_archive(client, producer):
    response = client.post("/archives/missing/download", headers=AUTH)

    assert response.status_code == 404
    assert response.json()["code"] == "ARCHIVE_NOT_FOUND"
    assert producer.downloads() == []


def test_download_status(client, archive_service):
    ticket = DownloadTicket(
        download_id="d-1",
        owner="u1",
        archive_name="a",
        status=DownloadStatus.FAILED,
        error="broker unavailable",
    )
    archive_service.emitter._track(ticket)

    response = client.get("/archives/downloads/d-1", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["error"] == "broker unavailable"


def test_download_status_unknown(client):
    response = client.get("/archives/downloads/nope", headers=AUTH)

    assert response.status_code == 404
    assert response.json()["code"] == "DOWNLOAD_NOT_FOUND"


def test_delete_archive(client, storage):
    key = finished_archive(storage)

    response = client.delete("/archives/a", headers=AUTH)

    assert response.status_code == 204
    assert not storage.exists(key)
    assert ArchiveRepository.find_by_owner_and_name("u1", "a") is None


def test_delete_missing_archive(client):
    response = client.delete("/archives/missing", headers=AUTH)

    assert response.status_code == 404


def test_delete_other_users_archive(client, storage):
    key = finished_archive(storage, owner="u2", name="a")

    response = client.delete("/archives/a", headers=AUTH)

    assert response.status_code == 404
    assert storage.exists(key)


def test_delete_archive_being_downloaded(client, storage, archive_service):
    key = finished_archive(storage)
    archive_service.emitter._leases[key] += 1

    response = client.delete("/archives/a", headers=AUTH)

    assert response.status_code == 409
    assert response.json()["code"] == "ARCHIVE_BUSY"
    assert storage.exists(key)


class TestReadiness:

    def test_ready_when_consuming(self, client, tracker, monkeypatch):
        monkeypatch.setattr("storage_api.service_locator._sequence_tracker", tracker)
        monkeypatch.setattr("storage_api.main.consumer", SimpleNamespace(is_alive=True))

        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["consumer"] == "ok"

    def test_not_ready_when_consumer_stopped(self, client, tracker, monkeypatch):
        monkeypatch.setattr("storage_api.service_locator._sequence_tracker", tracker)
        monkeypatch.setattr("storage_api.main.consumer", SimpleNamespace(is_alive=False))

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False
        assert response.json()["database"] == "ok"
        assert response.json()["redis"] == "ok"
