"""
Admin trigger surface for the update worker.

Authentication for these endpoints is handled outside this service.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from catalog_sync.errors import SourceNotFoundError, StoreError, raise_app_error
from catalog_sync.schemas.sync import PreviewRequest, PreviewResult, WorkerStatus
from catalog_sync.workers.update_worker import UpdateWorker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin Updates"])

FALSE_VALUES = {"0", "false", "no", "off"}


def get_update_worker(request: Request) -> UpdateWorker:
    worker = getattr(request.app.state, "update_worker", None)
    if worker is None:
        raise_app_error(503, "WORKER_UNAVAILABLE", "Update worker is not configured")
    return worker


def _parse_entity_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise_app_error(400, "INVALID_ENTITY_ID", "entity_id must be a UUID", {"entity_id": value})


@router.get("/update-now", response_model=WorkerStatus)
async def get_worker_status(worker: UpdateWorker = Depends(get_update_worker)):
    """Current worker state and configuration."""
    return await worker.get_status()


@router.post("/update-now")
async def trigger_update(
    run_all: Optional[str] = Query(None, alias="all"),
    entity_id: Optional[str] = Query(None),
    force: bool = Query(False),
    worker: UpdateWorker = Depends(get_update_worker),
):
    """Run a full cycle (?all) or update a single entity (?entity_id=...&force=...)."""
    if run_all is not None and run_all.strip().lower() not in FALSE_VALUES:
        try:
            stats = await worker.run_full_cycle()
        except StoreError as exc:
            raise_app_error(503, exc.code, exc.message)
        if stats is None:
            raise_app_error(409, "UPDATE_IN_PROGRESS", "An update cycle is already running")
        return {"success": True, "stats": stats}

    if not entity_id:
        raise_app_error(400, "MISSING_PARAMETER", "Pass either ?all or ?entity_id=<uuid>")

    university_id = _parse_entity_id(entity_id)
    try:
        result = await worker.update_one(university_id, force=force)
        profile = await worker.get_latest_profile(university_id)
    except SourceNotFoundError as exc:
        raise_app_error(404, exc.code, exc.message, exc.details)
    except StoreError as exc:
        raise_app_error(503, exc.code, exc.message)

    return {"success": result.success, "result": result, "profile": profile}


@router.post("/entities/{entity_id}/reset")
async def reset_entity(entity_id: UUID, worker: UpdateWorker = Depends(get_update_worker)):
    """Delete all snapshots of the entity and parse its source from scratch."""
    try:
        result = await worker.reset_one(entity_id)
        profile = await worker.get_latest_profile(entity_id)
    except SourceNotFoundError as exc:
        raise_app_error(404, exc.code, exc.message, exc.details)
    except StoreError as exc:
        raise_app_error(503, exc.code, exc.message)

    return {"success": result.success, "result": result, "profile": profile}


@router.post("/test-parser", response_model=PreviewResult)
async def test_parser(body: PreviewRequest, worker: UpdateWorker = Depends(get_update_worker)):
    """Parse a URL without saving anything."""
    logger.info("Test parse requested for %s", body.url)
    return await worker.sync_service.preview(body.url, include_text=body.include_text)
