"""
Catalog models.

Models for the website synchronization pipeline: the catalog entity
(a university), its tracked source websites, versioned profile snapshots
and the append-only update log.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalog_sync.models.base_model import CatalogModel


class University(CatalogModel):
    """
    University table - the catalog entity whose profile is synchronized.

    Only the columns the pipeline reads are modelled here; the full profile
    lives in ProfileSnapshot.payload.
    """

    __tablename__ = "universities"

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    city: Mapped[str] = mapped_column(String(200), nullable=False)
    website_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    sources: Mapped[List["TrackedSource"]] = relationship(back_populates="university")


class TrackedSource(CatalogModel):
    """
    Tracked source website for a university.

    current_hash always reflects the last successfully parsed fetch,
    not the last attempted one.
    """

    __tablename__ = "university_sources"

    university_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("universities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    url: Mapped[str] = mapped_column(String(2000), nullable=False, unique=True)

    source_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="website",
        server_default="website",
    )  # website, api, manual

    current_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    last_parsed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_error_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true", index=True)

    university: Mapped["University"] = relationship(back_populates="sources")

    __table_args__ = (
        CheckConstraint("source_type IN ('website', 'api', 'manual')", name="ck_university_sources_type"),
    )


class ProfileSnapshot(CatalogModel):
    """
    Immutable, versioned profile snapshot.

    Append-only: the current profile is the row with the max version
    for a (university_id, language) pair.
    """

    __tablename__ = "university_profiles"

    university_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("universities.id", ondelete="CASCADE"),
        nullable=False,
    )

    payload: Mapped[dict] = mapped_column("profile_json", JSONB, nullable=False)

    language: Mapped[str] = mapped_column(String(10), nullable=False, default="ru", server_default="ru")

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("university_id", "language", "version", name="uq_university_profiles_version"),
        CheckConstraint("version > 0", name="ck_university_profiles_version_positive"),
        Index("ix_university_profiles_latest", "university_id", "language", "version"),
    )


class UpdateLog(CatalogModel):
    """Append-only audit row, one per orchestrator attempt."""

    __tablename__ = "update_logs"

    source_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("university_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # success, failed, skipped

    changes_detected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    completeness_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'success', 'failed', 'skipped')", name="ck_update_logs_status"),
    )
