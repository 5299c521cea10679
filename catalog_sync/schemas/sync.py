"""
Sync pipeline schemas.

Result shapes returned by the per-source pipeline, the batch scheduler and
the admin trigger surface.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

UpdateStatus = Literal["success", "failed", "skipped"]


class SourceForUpdate(BaseModel):
    """A tracked source claimed by one worker for a full pipeline run."""

    id: UUID
    university_id: UUID
    url: str
    university_name: str
    current_hash: Optional[str] = None
    last_checked_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UpdateResult(BaseModel):
    """Outcome of one per-source attempt."""

    source_id: UUID
    university_id: UUID
    university_name: Optional[str] = None
    status: UpdateStatus
    updated: bool = False
    changes_detected: bool = False
    message: str
    reason: Optional[str] = None  # force, reset, low_completeness, hash_changed
    error: Optional[str] = None
    new_hash: Optional[str] = None
    version: Optional[int] = None
    completeness_score: Optional[int] = None
    processing_time_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status != "failed"


class FailedUpdate(BaseModel):
    university_name: str
    error: Optional[str] = None


class BatchStats(BaseModel):
    """Aggregate counts for a batch of sources."""

    total: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    failures: List[FailedUpdate] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[UpdateResult], duration_ms: int) -> "BatchStats":
        stats = cls(total=len(results), duration_ms=duration_ms)
        for result in results:
            if result.status == "failed":
                stats.failed += 1
                stats.failures.append(
                    FailedUpdate(university_name=result.university_name or str(result.university_id), error=result.error)
                )
            elif result.updated:
                stats.updated += 1
            else:
                stats.skipped += 1
        return stats


class WorkerStatus(BaseModel):
    running: bool
    busy: bool
    last_cycle_started_at: Optional[datetime] = None
    last_cycle_stats: Optional[BatchStats] = None
    backend_healthy: Optional[bool] = None
    backend_models: Optional[List[str]] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class PreviewStats(BaseModel):
    completeness_score: int
    programs_count: int
    missing_fields: List[str] = Field(default_factory=list)
    chunk_count: int = 1
    failed_chunks: int = 0
    fetch_time_ms: int = 0
    parse_time_ms: int = 0
    total_time_ms: int = 0
    html_size: int = 0
    text_size: int = 0


class PreviewResult(BaseModel):
    """Result of a parse that is not persisted (admin test parser)."""

    success: bool
    profile: Optional[Dict[str, Any]] = None
    stats: Optional[PreviewStats] = None
    content_hash: Optional[str] = None
    raw_text: Optional[str] = None
    error: Optional[str] = None


class PreviewRequest(BaseModel):
    url: str = Field(..., max_length=2000, pattern=r"^https?://")
    include_text: bool = False
