import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from catalog_sync.errors import AppError, app_error_handler
from catalog_sync.routers import admin_updates
from catalog_sync.services.extraction_client import ExtractionClient
from catalog_sync.services.profile_sync_service import ProfileSyncService
from catalog_sync.workers.update_worker import UpdateWorker
from tests.fakes import FakeBackend, RecordingSleeper, page

pytestmark = pytest.mark.unit


def _build_app(worker=None) -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(admin_updates.router)
    app.state.update_worker = worker
    return app


@pytest.fixture
def worker(settings, store, fetcher):
    settings.WORKER_DELAY_SECONDS = 0
    backend = FakeBackend()
    client = ExtractionClient(backend, sleep=RecordingSleeper())
    service = ProfileSyncService(settings, fetcher, client, store.repo_factory)
    return UpdateWorker(service, store.repo_factory, settings, backend=backend, sleep=RecordingSleeper())


@pytest.fixture
def client(worker):
    with TestClient(_build_app(worker)) as test_client:
        yield test_client


def test_status(client):
    response = client.get("/api/admin/update-now")

    assert response.status_code == 200
    body = response.json()
    assert body["running"] is False
    assert body["busy"] is False
    assert body["backend_healthy"] is True
    assert body["backend_models"] == ["test-model"]
    assert body["config"]["reparse_threshold"] == 30


def test_update_all(client, store, fetcher, source):
    fetcher.set_page(source.url, page(body="Welcome"))

    response = client.post("/api/admin/update-now", params={"all": "true"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["stats"]["total"] == 1
    assert body["stats"]["updated"] == 1
    assert store.versions(source.university_id) == [1]


def test_update_all_flag_without_value(client, fetcher, source):
    fetcher.set_page(source.url, page(body="Welcome"))

    response = client.post("/api/admin/update-now?all")

    assert response.status_code == 200
    assert response.json()["stats"]["total"] == 1


def test_update_all_while_busy(client, worker):
    worker.is_updating = True

    response = client.post("/api/admin/update-now", params={"all": "1"})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "UPDATE_IN_PROGRESS"


def test_update_requires_a_target(client):
    for params in ({}, {"all": "false"}):
        response = client.post("/api/admin/update-now", params=params)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_PARAMETER"


def test_update_one_entity(client, fetcher, source):
    fetcher.set_page(source.url, page(body="Welcome"))

    response = client.post("/api/admin/update-now", params={"entity_id": str(source.university_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"]["status"] == "success"
    assert body["result"]["version"] == 1
    assert body["profile"]["name"] == "Test University"


def test_update_one_entity_force(client, fetcher, source):
    fetcher.set_page(source.url, page(body="Welcome"))
    entity_id = str(source.university_id)
    client.post("/api/admin/update-now", params={"entity_id": entity_id})

    unchanged = client.post("/api/admin/update-now", params={"entity_id": entity_id}).json()
    forced = client.post("/api/admin/update-now", params={"entity_id": entity_id, "force": "true"}).json()

    assert unchanged["result"]["status"] == "skipped"
    assert forced["result"]["version"] == 2
    assert forced["result"]["reason"] == "force"


def test_update_one_entity_failure_is_reported(client, source):
    response = client.post("/api/admin/update-now", params={"entity_id": str(source.university_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["result"]["status"] == "failed"
    assert body["profile"] is None


def test_update_unknown_entity(client):
    response = client.post("/api/admin/update-now", params={"entity_id": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SOURCE_NOT_FOUND"


def test_update_invalid_entity_id(client):
    response = client.post("/api/admin/update-now", params={"entity_id": "not-a-uuid"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_ENTITY_ID"


def test_reset_entity(client, store, fetcher, source):
    for _ in range(3):
        store.add_snapshot(source.university_id, {"name": "old"})
    fetcher.set_page(source.url, page(body="Welcome"))

    response = client.post(f"/api/admin/entities/{source.university_id}/reset")

    assert response.status_code == 200
    body = response.json()
    assert body["result"]["version"] == 1
    assert body["result"]["reason"] == "reset"
    assert store.versions(source.university_id) == [1]


def test_store_outage_maps_to_503(client, store, source):
    store.fail_on.add("get_active_source_for_university")

    response = client.post("/api/admin/update-now", params={"entity_id": str(source.university_id)})

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "STORE_ERROR"


def test_parser_preview(client, store, fetcher):
    fetcher.set_page("https://preview.example.edu", page(body="Preview content"))

    response = client.post(
        "/api/admin/test-parser",
        json={"url": "https://preview.example.edu", "include_text": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["stats"]["completeness_score"] == 100
    assert "Preview content" in body["raw_text"]
    assert store.snapshots == []


def test_parser_preview_rejects_non_http_url(client):
    response = client.post("/api/admin/test-parser", json={"url": "ftp://example.edu"})

    assert response.status_code == 422


def test_worker_not_configured():
    with TestClient(_build_app(None)) as test_client:
        response = test_client.get("/api/admin/update-now")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "WORKER_UNAVAILABLE"
