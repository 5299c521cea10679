"""
Per-source synchronization pipeline.

One attempt for one tracked source:

    fetch -> hash compare (skip?) -> normalize -> chunk -> extract per chunk
          -> merge -> score -> persist snapshot -> update log

Every attempt ends in exactly one update log row. Failures are recorded on
the source row (last_error/last_error_at) and returned as a failed
UpdateResult; they are never raised to the scheduler.
"""

import logging
import time
from dataclasses import dataclass
from typing import AsyncContextManager, Callable, List, Optional

from catalog_sync.core.config import Settings
from catalog_sync.errors import ExtractionError, StoreError, SyncError
from catalog_sync.repositories.catalog_repo import CatalogRepository
from catalog_sync.schemas.profile import ParseMetadata, UniversityProfile
from catalog_sync.schemas.sync import PreviewResult, PreviewStats, SourceForUpdate, UpdateResult
from catalog_sync.services.completeness import missing_fields, score_profile
from catalog_sync.services.extraction_client import ExtractionClient, normalize_profile
from catalog_sync.services.fetcher import ContentFetcher, FetchResult
from catalog_sync.services.record_merger import merge_records
from catalog_sync.services.text_normalizer import html_to_text
from catalog_sync.utils.content_hash import short_hash
from catalog_sync.utils.text_chunker import split_text
from catalog_sync.utils.time import elapsed_ms, utc_now_iso

logger = logging.getLogger(__name__)

RepoFactory = Callable[[], AsyncContextManager[CatalogRepository]]


@dataclass
class ParseOutcome:
    profile: UniversityProfile
    text: str
    chunk_count: int
    failed_chunks: int
    parse_time_ms: int


class ProfileSyncService:
    """Runs the fetch/parse/persist state machine for tracked sources."""

    def __init__(
        self,
        settings: Settings,
        fetcher: ContentFetcher,
        extraction_client: ExtractionClient,
        repo_factory: RepoFactory,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.extraction_client = extraction_client
        self.repo_factory = repo_factory

    @property
    def language(self) -> str:
        return self.settings.PROFILE_LANGUAGE

    # ========================================================================
    # Parsing (no persistence)
    # ========================================================================

    async def parse_html(
        self,
        html: str,
        source_url: str,
        prior: Optional[UniversityProfile] = None,
    ) -> ParseOutcome:
        """
        Normalize, chunk, extract and merge a fetched page into one profile.

        Chunk-level extraction failures are tolerated; ExtractionError is
        raised only when no chunk could be extracted.
        """
        started = time.monotonic()
        text = html_to_text(html, self.settings.MAX_TEXT_LENGTH)
        chunks = split_text(text, self.settings.CHUNK_SIZE, self.settings.CHUNK_OVERLAP)
        if len(chunks) > 1:
            logger.info("Content of %s split into %d chunks (%d chars)", source_url, len(chunks), len(text))

        records: List[UniversityProfile] = []
        last_error: Optional[ExtractionError] = None
        for index, chunk in enumerate(chunks):
            try:
                # Only the first chunk sees the previously known record
                record = await self.extraction_client.extract(
                    chunk, source_url, prior=prior if index == 0 else None
                )
            except ExtractionError as exc:
                last_error = exc
                logger.warning(
                    "Chunk %d/%d of %s failed: %s", index + 1, len(chunks), source_url, exc
                )
                continue
            records.append(record)

        if not records:
            if len(chunks) == 1 and last_error is not None:
                raise last_error
            raise ExtractionError(
                f"All {len(chunks)} chunks failed to extract",
                source_url=source_url,
                last_error=last_error,
            )

        profile = normalize_profile(merge_records(records), prior)
        score = score_profile(profile)
        failed_chunks = len(chunks) - len(records)
        notes = f"Extracted from {len(records)}/{len(chunks)} chunks" if len(chunks) > 1 else None
        profile.metadata = ParseMetadata(
            parsed_at=utc_now_iso(),
            source_url=source_url,
            completeness_score=score,
            missing_fields=missing_fields(profile),
            notes=notes,
        )
        return ParseOutcome(
            profile=profile,
            text=text,
            chunk_count=len(chunks),
            failed_chunks=failed_chunks,
            parse_time_ms=elapsed_ms(started),
        )

    async def preview(self, url: str, include_text: bool = False) -> PreviewResult:
        """Fetch and parse a URL without writing anything."""
        started = time.monotonic()
        try:
            fetched = await self.fetcher.fetch(url)
            outcome = await self.parse_html(fetched.html, url)
        except SyncError as exc:
            logger.warning("Preview of %s failed: %s", url, exc)
            return PreviewResult(success=False, error=str(exc))

        profile = outcome.profile
        stats = PreviewStats(
            completeness_score=profile.metadata.completeness_score,
            programs_count=len(profile.programs),
            missing_fields=profile.metadata.missing_fields,
            chunk_count=outcome.chunk_count,
            failed_chunks=outcome.failed_chunks,
            fetch_time_ms=fetched.fetch_time_ms,
            parse_time_ms=outcome.parse_time_ms,
            total_time_ms=elapsed_ms(started),
            html_size=fetched.content_length,
            text_size=len(outcome.text),
        )
        return PreviewResult(
            success=True,
            profile=profile.to_payload(),
            stats=stats,
            content_hash=fetched.content_hash,
            raw_text=outcome.text if include_text else None,
        )

    # ========================================================================
    # State machine
    # ========================================================================

    async def check_and_update(self, source: SourceForUpdate, force: bool = False) -> UpdateResult:
        """Run one attempt for a source; force bypasses the unchanged-content skip."""
        return await self._process(source, force=force, reason_override="force" if force else None)

    async def reset_and_reparse(self, source: SourceForUpdate) -> UpdateResult:
        """
        Drop every snapshot of the university and parse from a blank slate.

        The next snapshot written is version 1.
        """
        started = time.monotonic()
        logger.info("Resetting profiles of %s (%s)", source.university_name, source.university_id)
        try:
            async with self.repo_factory() as repo:
                deleted = await repo.delete_snapshots(source.university_id)
                await repo.clear_hash(source.id)
                await repo.commit()
        except StoreError as exc:
            return await self._fail(source, exc, started)

        logger.info("Deleted %d snapshots of %s", deleted, source.university_name)
        blank = source.model_copy(update={"current_hash": None})
        return await self._process(blank, force=True, reason_override="reset")

    async def _process(
        self,
        source: SourceForUpdate,
        force: bool,
        reason_override: Optional[str],
    ) -> UpdateResult:
        started = time.monotonic()
        logger.info("Checking %s (%s)", source.university_name, source.url)

        # Fetching
        try:
            fetched = await self.fetcher.fetch(source.url)
        except SyncError as exc:
            return await self._fail(source, exc, started)

        try:
            async with self.repo_factory() as repo:
                prior_payload = await repo.read_latest(source.university_id, self.language)
        except StoreError as exc:
            return await self._fail(source, exc, started)

        prior = UniversityProfile.model_validate(prior_payload) if prior_payload else None
        current_score = score_profile(prior) if prior else 0

        reason = self._reparse_reason(source, fetched, current_score, force, reason_override)
        if reason is None:
            return await self._skip(source, current_score, started)

        logger.info(
            "Parsing %s: reason=%s hash=%s completeness=%d",
            source.university_name, reason, short_hash(fetched.content_hash), current_score,
        )

        # Parsing
        try:
            outcome = await self.parse_html(fetched.html, source.url, prior)
        except SyncError as exc:
            return await self._fail(source, exc, started)

        # Persisting
        profile = outcome.profile
        score = profile.metadata.completeness_score
        try:
            async with self.repo_factory() as repo:
                version = await repo.write_snapshot(source.university_id, profile.to_payload(), self.language)
                await repo.mark_parsed(source.id, fetched.content_hash)
                # Snapshot, source state and log row commit together or not at all
                await repo.create_update_log(
                    source.id,
                    status="success",
                    changes_detected=True,
                    processing_time_ms=elapsed_ms(started),
                    completeness_score=score,
                )
                await repo.commit()
        except StoreError as exc:
            return await self._fail(source, exc, started)

        logger.info(
            "Saved profile v%d for %s (completeness=%d%%, programs=%d)",
            version, source.university_name, score, len(profile.programs),
        )
        return UpdateResult(
            source_id=source.id,
            university_id=source.university_id,
            university_name=source.university_name,
            status="success",
            updated=True,
            changes_detected=True,
            message=f"Profile updated to version {version}",
            reason=reason,
            new_hash=fetched.content_hash,
            version=version,
            completeness_score=score,
            processing_time_ms=elapsed_ms(started),
        )

    def _reparse_reason(
        self,
        source: SourceForUpdate,
        fetched: FetchResult,
        current_score: int,
        force: bool,
        reason_override: Optional[str],
    ) -> Optional[str]:
        """Why the source must be parsed, or None when it is unchanged."""
        if force:
            return reason_override or "force"
        if source.current_hash != fetched.content_hash:
            return "hash_changed"
        if current_score < self.settings.REPARSE_COMPLETENESS_THRESHOLD:
            return "low_completeness"
        return None

    async def _skip(self, source: SourceForUpdate, current_score: int, started: float) -> UpdateResult:
        logger.info("No changes for %s (completeness=%d)", source.university_name, current_score)
        try:
            async with self.repo_factory() as repo:
                await repo.mark_checked(source.id)
                await repo.create_update_log(
                    source.id,
                    status="skipped",
                    changes_detected=False,
                    processing_time_ms=elapsed_ms(started),
                    completeness_score=current_score,
                )
                await repo.commit()
        except StoreError as exc:
            return await self._fail(source, exc, started)

        return UpdateResult(
            source_id=source.id,
            university_id=source.university_id,
            university_name=source.university_name,
            status="skipped",
            message="No changes detected",
            completeness_score=current_score,
            new_hash=source.current_hash,
            processing_time_ms=elapsed_ms(started),
        )

    async def _fail(self, source: SourceForUpdate, exc: SyncError, started: float) -> UpdateResult:
        """Record a failed attempt on the source row and in the update log."""
        message = str(exc)
        logger.error("Update of %s failed: %s", source.university_name, message)
        processing_time_ms = elapsed_ms(started)
        try:
            async with self.repo_factory() as repo:
                await repo.record_error(source.id, message)
                await repo.create_update_log(
                    source.id,
                    status="failed",
                    changes_detected=False,
                    error_message=message,
                    processing_time_ms=processing_time_ms,
                )
                await repo.commit()
        except StoreError as store_exc:
            logger.error("Could not record failure for source %s: %s", source.id, store_exc)

        return UpdateResult(
            source_id=source.id,
            university_id=source.university_id,
            university_name=source.university_name,
            status="failed",
            message="Update failed",
            error=message,
            processing_time_ms=processing_time_ms,
        )
