"""
Pytest configuration and shared fixtures.
"""

import os
import uuid

import pytest

from catalog_sync.core.config import Settings
from catalog_sync.schemas.sync import SourceForUpdate
from tests.fakes import FakeBackend, FakeFetcher, InMemoryCatalogStore, no_sleep


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests, no external deps")
    config.addinivalue_line("markers", "db: requires database")


def pytest_collection_modifyitems(config, items):
    run_db = os.environ.get("RUN_DB_TESTS") == "1"
    skip_db = pytest.mark.skip(reason="db tests skipped by default; set RUN_DB_TESTS=1 to enable")

    for item in items:
        if "db" in item.keywords and not run_db:
            item.add_marker(skip_db)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        CHUNK_SIZE=8000,
        CHUNK_OVERLAP=400,
        WORKER_CONCURRENCY=3,
        WORKER_DELAY_SECONDS=2.0,
        REPARSE_COMPLETENESS_THRESHOLD=30,
        PROFILE_LANGUAGE="ru",
    )


@pytest.fixture
def store():
    return InMemoryCatalogStore()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def sleeper():
    return no_sleep()


@pytest.fixture
def source(store):
    university_id = uuid.uuid4()
    return store.add_source(university_id, "https://kaznu.example.edu", "Test University")


def make_source(**overrides) -> SourceForUpdate:
    data = {
        "id": uuid.uuid4(),
        "university_id": uuid.uuid4(),
        "url": "https://university.example.edu",
        "university_name": "Test University",
    }
    data.update(overrides)
    return SourceForUpdate(**data)
