"""
Repository for the synchronization pipeline tables.

Covers exactly what the pipeline needs: claiming sources in check order,
source hash/timestamp updates, versioned snapshot writes/reads and the
update log. SQLAlchemy failures surface as StoreError.
"""

import functools
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.session import get_async_session_context
from catalog_sync.errors import StoreError
from catalog_sync.models.catalog import ProfileSnapshot, TrackedSource, University, UpdateLog
from catalog_sync.schemas.sync import SourceForUpdate
from catalog_sync.utils.time import utc_now

logger = logging.getLogger(__name__)


def _store_errors(method):
    """Re-raise SQLAlchemy failures as StoreError."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", method.__name__, exc)
            raise StoreError(f"{method.__name__} failed: {exc}") from exc

    return wrapper


class CatalogRepository:
    """Repository for tracked sources, profile snapshots and update logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _source_query(self):
        return (
            select(
                TrackedSource.id,
                TrackedSource.university_id,
                TrackedSource.url,
                TrackedSource.current_hash,
                TrackedSource.last_checked_at,
                University.name.label("university_name"),
            )
            .join(University, University.id == TrackedSource.university_id)
            .where(TrackedSource.is_active.is_(True), University.is_active.is_(True))
        )

    # ========================================================================
    # Tracked sources
    # ========================================================================

    @_store_errors
    async def list_sources_for_update(self, limit: Optional[int] = None) -> List[SourceForUpdate]:
        """Active sources of active universities, never-checked first, then oldest check."""
        query = self._source_query().order_by(
            TrackedSource.last_checked_at.asc().nullsfirst(),
            TrackedSource.created_at.asc(),
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return [SourceForUpdate.model_validate(dict(row)) for row in result.mappings().all()]

    @_store_errors
    async def get_active_source_for_university(self, university_id: UUID) -> Optional[SourceForUpdate]:
        query = (
            self._source_query()
            .where(TrackedSource.university_id == university_id)
            .order_by(TrackedSource.created_at.asc())
            .limit(1)
        )
        result = await self.db.execute(query)
        row = result.mappings().first()
        return SourceForUpdate.model_validate(dict(row)) if row else None

    @_store_errors
    async def mark_checked(self, source_id: UUID, checked_at: Optional[datetime] = None) -> None:
        """Record a successful check of unchanged content; clears any earlier error."""
        await self.db.execute(
            update(TrackedSource)
            .where(TrackedSource.id == source_id)
            .values(last_checked_at=checked_at or utc_now(), last_error=None, last_error_at=None)
        )

    @_store_errors
    async def mark_parsed(self, source_id: UUID, content_hash: str, parsed_at: Optional[datetime] = None) -> None:
        """Record a successful parse: new hash, timestamps, and clear the last error."""
        now = parsed_at or utc_now()
        await self.db.execute(
            update(TrackedSource)
            .where(TrackedSource.id == source_id)
            .values(
                current_hash=content_hash,
                last_parsed_at=now,
                last_checked_at=now,
                last_error=None,
                last_error_at=None,
            )
        )

    @_store_errors
    async def record_error(self, source_id: UUID, message: str, failed_at: Optional[datetime] = None) -> None:
        """Store diagnostics for a failed attempt; the hash is left untouched."""
        now = failed_at or utc_now()
        await self.db.execute(
            update(TrackedSource)
            .where(TrackedSource.id == source_id)
            .values(last_error=message, last_error_at=now, last_checked_at=now)
        )

    @_store_errors
    async def clear_hash(self, source_id: UUID) -> None:
        await self.db.execute(
            update(TrackedSource)
            .where(TrackedSource.id == source_id)
            .values(current_hash=None, last_parsed_at=None)
        )

    # ========================================================================
    # Profile snapshots
    # ========================================================================

    @_store_errors
    async def write_snapshot(self, university_id: UUID, payload: Dict[str, Any], language: str) -> int:
        """Insert a new snapshot with version = current max + 1 and return the version."""
        # Serialize concurrent writers for the same university
        await self.db.execute(
            select(University.id).where(University.id == university_id).with_for_update()
        )
        result = await self.db.execute(
            select(func.coalesce(func.max(ProfileSnapshot.version), 0)).where(
                ProfileSnapshot.university_id == university_id,
                ProfileSnapshot.language == language,
            )
        )
        version = int(result.scalar_one()) + 1

        self.db.add(
            ProfileSnapshot(
                university_id=university_id,
                payload=payload,
                language=language,
                version=version,
            )
        )
        await self.db.flush()
        return version

    @_store_errors
    async def read_latest(self, university_id: UUID, language: str) -> Optional[Dict[str, Any]]:
        result = await self.db.execute(
            select(ProfileSnapshot.payload)
            .where(
                ProfileSnapshot.university_id == university_id,
                ProfileSnapshot.language == language,
            )
            .order_by(ProfileSnapshot.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @_store_errors
    async def list_versions(self, university_id: UUID, language: str) -> List[int]:
        result = await self.db.execute(
            select(ProfileSnapshot.version)
            .where(
                ProfileSnapshot.university_id == university_id,
                ProfileSnapshot.language == language,
            )
            .order_by(ProfileSnapshot.version.asc())
        )
        return list(result.scalars().all())

    @_store_errors
    async def delete_snapshots(self, university_id: UUID) -> int:
        """Remove every snapshot of a university (all languages). Reset path only."""
        result = await self.db.execute(
            delete(ProfileSnapshot).where(ProfileSnapshot.university_id == university_id)
        )
        return result.rowcount or 0

    # ========================================================================
    # Update log
    # ========================================================================

    @_store_errors
    async def create_update_log(
        self,
        source_id: UUID,
        status: str,
        changes_detected: bool = False,
        error_message: Optional[str] = None,
        processing_time_ms: Optional[int] = None,
        completeness_score: Optional[int] = None,
    ) -> UpdateLog:
        entry = UpdateLog(
            source_id=source_id,
            status=status,
            changes_detected=changes_detected,
            error_message=error_message,
            processing_time_ms=processing_time_ms,
            completeness_score=completeness_score,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    # ========================================================================
    # Transactions
    # ========================================================================

    @_store_errors
    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()


@asynccontextmanager
async def catalog_repo_session() -> AsyncGenerator[CatalogRepository, None]:
    """Repository bound to a fresh session; commits on clean exit."""
    async with get_async_session_context() as session:
        yield CatalogRepository(session)
