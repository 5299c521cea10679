"""Health check router."""

import logging
from pathlib import Path
from typing import Optional

from alembic.config import Config
from alembic.script import ScriptDirectory
from alembic.util.exc import CommandError
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _load_alembic_head() -> Optional[str]:
    cfg_path = PROJECT_ROOT / "alembic.ini"
    script_location = PROJECT_ROOT / "alembic"
    if not cfg_path.exists() or not script_location.exists():
        return None

    config = Config(str(cfg_path))
    config.set_main_option("script_location", str(script_location))
    return ScriptDirectory.from_config(config).get_current_head()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """API, database, migration head and update worker state."""
    db_ok = False
    alembic_current: Optional[str] = None

    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
        version_result = await db.execute(text("SELECT version_num FROM alembic_version"))
        alembic_current = version_result.scalar_one_or_none()
    except SQLAlchemyError as exc:
        logger.warning("Health check query failed: %s", exc)

    try:
        alembic_head = _load_alembic_head()
    except CommandError as exc:
        logger.warning("Could not resolve alembic head: %s", exc)
        alembic_head = None

    worker = getattr(request.app.state, "update_worker", None)

    return {
        "api_ok": True,
        "db_ok": db_ok,
        "alembic_head_ok": bool(alembic_current and alembic_current == alembic_head),
        "alembic_current": alembic_current,
        "alembic_head": alembic_head,
        "worker_running": bool(worker and worker.running),
        "worker_busy": bool(worker and worker.is_updating),
    }
