import uuid
from datetime import timedelta

import pytest

from catalog_sync.db.session import AsyncSessionLocal
from catalog_sync.models.catalog import TrackedSource, University
from catalog_sync.repositories.catalog_repo import CatalogRepository
from catalog_sync.utils.time import utc_now


async def _seed(db, checked_offsets):
    university = University(name="Repo Test University", country="Kazakhstan", city="Almaty")
    db.add(university)
    await db.flush()
    sources = []
    for offset in checked_offsets:
        source = TrackedSource(
            university_id=university.id,
            url=f"https://{uuid.uuid4().hex}.example.edu",
            last_checked_at=None if offset is None else utc_now() - timedelta(days=offset),
        )
        db.add(source)
        sources.append(source)
    await db.flush()
    return university, sources


@pytest.mark.db
@pytest.mark.asyncio
async def test_sources_ordered_never_checked_first():
    async with AsyncSessionLocal() as db:
        try:
            _, sources = await _seed(db, [1, None, 5])
            repo = CatalogRepository(db)

            listed = await repo.list_sources_for_update()
            ours = [s.id for s in listed if s.id in {source.id for source in sources}]

            assert ours == [sources[1].id, sources[2].id, sources[0].id]
        finally:
            await db.rollback()


@pytest.mark.db
@pytest.mark.asyncio
async def test_snapshot_versions_and_reset():
    async with AsyncSessionLocal() as db:
        try:
            university, [source] = await _seed(db, [None])
            repo = CatalogRepository(db)

            versions = [await repo.write_snapshot(university.id, {"name": f"v{i}"}, "ru") for i in range(3)]
            assert versions == [1, 2, 3]
            assert await repo.list_versions(university.id, "ru") == [1, 2, 3]
            assert (await repo.read_latest(university.id, "ru"))["name"] == "v2"
            assert await repo.read_latest(university.id, "en") is None

            assert await repo.delete_snapshots(university.id) == 3
            assert await repo.write_snapshot(university.id, {"name": "fresh"}, "ru") == 1
        finally:
            await db.rollback()


@pytest.mark.db
@pytest.mark.asyncio
async def test_source_state_updates():
    async with AsyncSessionLocal() as db:
        try:
            university, [source] = await _seed(db, [None])
            repo = CatalogRepository(db)

            await repo.record_error(source.id, "HTTP 500: Internal Server Error")
            await db.refresh(source)
            assert source.last_error == "HTTP 500: Internal Server Error"
            assert source.last_checked_at is not None
            assert source.current_hash is None

            await repo.mark_parsed(source.id, "a" * 64)
            await db.refresh(source)
            assert source.current_hash == "a" * 64
            assert source.last_error is None

            await repo.clear_hash(source.id)
            await db.refresh(source)
            assert source.current_hash is None

            found = await repo.get_active_source_for_university(university.id)
            assert found.id == source.id
            assert found.university_name == "Repo Test University"

            log = await repo.create_update_log(source.id, status="skipped", completeness_score=80)
            assert log.id is not None
        finally:
            await db.rollback()
