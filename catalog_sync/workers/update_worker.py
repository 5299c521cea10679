"""Background update worker: periodic full-catalog synchronization cycles.

Sources are processed oldest-checked-first by a small pool of concurrent
workers. Each worker pauses for a courtesy delay before pulling the next
source. Only one cycle runs at a time per process.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from catalog_sync.core.config import Settings, settings as default_settings
from catalog_sync.core.logging_config import configure_logging
from catalog_sync.errors import ExtractionBackendError, SourceNotFoundError
from catalog_sync.repositories.catalog_repo import catalog_repo_session
from catalog_sync.schemas.sync import BatchStats, SourceForUpdate, UpdateResult, WorkerStatus
from catalog_sync.services.extraction_backend import OllamaBackend
from catalog_sync.services.extraction_client import ExtractionClient
from catalog_sync.services.fetcher import ContentFetcher
from catalog_sync.services.profile_sync_service import ProfileSyncService, RepoFactory
from catalog_sync.utils.retry import Sleeper
from catalog_sync.utils.time import elapsed_ms, utc_now

logger = logging.getLogger(__name__)


class UpdateWorker:
    """Schedules synchronization cycles and exposes on-demand triggers."""

    def __init__(
        self,
        sync_service: ProfileSyncService,
        repo_factory: RepoFactory,
        settings: Settings,
        backend: Optional[OllamaBackend] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self.sync_service = sync_service
        self.repo_factory = repo_factory
        self.settings = settings
        self.backend = backend
        self._sleep = sleep or asyncio.sleep
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.is_updating = False
        self.last_cycle_started_at: Optional[datetime] = None
        self.last_cycle_stats: Optional[BatchStats] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ========================================================================
    # Batch processing
    # ========================================================================

    async def run_full_cycle(self) -> Optional[BatchStats]:
        """
        Process every active source once.

        Returns None without doing anything when a cycle is already running.
        """
        if self.is_updating:
            logger.warning("Update cycle already in progress, skipping")
            return None

        self.is_updating = True
        self.last_cycle_started_at = utc_now()
        started = time.monotonic()
        try:
            async with self.repo_factory() as repo:
                sources = await repo.list_sources_for_update()
            logger.info("Starting update cycle for %d sources", len(sources))

            results = await self.process_batch(sources)
            stats = BatchStats.from_results(results, elapsed_ms(started))
            self.last_cycle_stats = stats

            logger.info(
                "Update cycle finished: total=%d updated=%d skipped=%d failed=%d in %dms",
                stats.total, stats.updated, stats.skipped, stats.failed, stats.duration_ms,
            )
            for failure in stats.failures:
                logger.warning("Failed: %s: %s", failure.university_name, failure.error)
            return stats
        finally:
            self.is_updating = False

    async def process_batch(self, sources: List[SourceForUpdate], force: bool = False) -> List[UpdateResult]:
        """Run the pipeline for each source with bounded concurrency."""
        queue: asyncio.Queue = asyncio.Queue()
        for source in sources:
            queue.put_nowait(source)

        results: List[UpdateResult] = []
        delay = self.settings.WORKER_DELAY_SECONDS

        async def worker(worker_id: int) -> None:
            while not self._stop_event.is_set():
                try:
                    source = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                logger.debug("Worker %d processing %s", worker_id, source.university_name)
                results.append(await self._run_source(source, force))
                if delay > 0 and not queue.empty():
                    await self._sleep(delay)

        concurrency = max(1, min(self.settings.WORKER_CONCURRENCY, len(sources)))
        await asyncio.gather(*(worker(index) for index in range(concurrency)))
        return results

    async def _run_source(self, source: SourceForUpdate, force: bool) -> UpdateResult:
        try:
            return await self.sync_service.check_and_update(source, force=force)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while updating %s", source.university_name)
            return UpdateResult(
                source_id=source.id,
                university_id=source.university_id,
                university_name=source.university_name,
                status="failed",
                message="Update failed",
                error=str(exc),
            )

    # ========================================================================
    # On-demand triggers
    # ========================================================================

    async def _get_source(self, university_id: UUID) -> SourceForUpdate:
        async with self.repo_factory() as repo:
            source = await repo.get_active_source_for_university(university_id)
        if source is None:
            raise SourceNotFoundError(
                "No active source found for university",
                {"university_id": str(university_id)},
            )
        return source

    async def update_one(self, university_id: UUID, force: bool = False) -> UpdateResult:
        """Run the pipeline for one university now, outside the timer."""
        source = await self._get_source(university_id)
        logger.info("Manual update for %s (force=%s)", source.university_name, force)
        return await self.sync_service.check_and_update(source, force=force)

    async def reset_one(self, university_id: UUID) -> UpdateResult:
        source = await self._get_source(university_id)
        logger.info("Manual reset for %s", source.university_name)
        return await self.sync_service.reset_and_reparse(source)

    async def get_latest_profile(self, university_id: UUID) -> Optional[Dict[str, Any]]:
        async with self.repo_factory() as repo:
            return await repo.read_latest(university_id, self.settings.PROFILE_LANGUAGE)

    async def _backend_state(self) -> Tuple[Optional[bool], Optional[List[str]]]:
        if self.backend is None:
            return None, None
        if not await self.backend.check_health():
            return False, None
        try:
            models = await self.backend.list_models()
        except ExtractionBackendError as exc:
            logger.warning("Could not list backend models: %s", exc)
            models = None
        return True, models

    async def get_status(self) -> WorkerStatus:
        backend_healthy, backend_models = await self._backend_state()
        return WorkerStatus(
            running=self.running,
            busy=self.is_updating,
            last_cycle_started_at=self.last_cycle_started_at,
            last_cycle_stats=self.last_cycle_stats,
            backend_healthy=backend_healthy,
            backend_models=backend_models,
            config={
                "interval_seconds": self.settings.worker_interval_seconds,
                "concurrency": self.settings.WORKER_CONCURRENCY,
                "delay_seconds": self.settings.WORKER_DELAY_SECONDS,
                "reparse_threshold": self.settings.REPARSE_COMPLETENESS_THRESHOLD,
                "environment": self.settings.ENVIRONMENT,
            },
        )

    # ========================================================================
    # Timer
    # ========================================================================

    async def _wait_or_stop(self, seconds: float) -> bool:
        """Wait up to `seconds`; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run_forever(self, initial_delay: Optional[float] = None) -> None:
        """Run cycles on the configured interval until stopped."""
        delay = self.settings.WORKER_INITIAL_DELAY_SECONDS if initial_delay is None else initial_delay
        interval = self.settings.worker_interval_seconds
        logger.info("Update worker started: first cycle in %ss, then every %ss", delay, interval)

        if delay > 0 and await self._wait_or_stop(delay):
            return
        while not self._stop_event.is_set():
            try:
                await self.run_full_cycle()
            except Exception:  # noqa: BLE001
                logger.exception("Update cycle failed")
            if await self._wait_or_stop(interval):
                break
        logger.info("Update worker stopped")

    def start(self) -> None:
        if self.running:
            logger.warning("Update worker already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever())

    def request_stop(self) -> None:
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop the timer; an in-flight cycle finishes the sources it already claimed."""
        self.request_stop()
        if self._task is not None:
            await self._task
            self._task = None

    async def aclose(self) -> None:
        await self.sync_service.fetcher.aclose()
        if self.backend is not None:
            await self.backend.aclose()


def build_default_worker(settings: Optional[Settings] = None) -> UpdateWorker:
    """Wire fetcher, backend, extraction client and store for a real deployment."""
    settings = settings or default_settings
    fetcher = ContentFetcher(settings)
    backend = OllamaBackend(settings)
    extraction_client = ExtractionClient.from_settings(backend, settings)
    sync_service = ProfileSyncService(settings, fetcher, extraction_client, catalog_repo_session)
    return UpdateWorker(sync_service, catalog_repo_session, settings, backend=backend)


async def run_worker(loop: bool = False) -> int:
    worker = build_default_worker()
    try:
        if loop:
            await worker.run_forever(initial_delay=0)
            return 0
        stats = await worker.run_full_cycle()
        if stats is not None:
            print(stats.model_dump_json(indent=2))
        return 0 if stats is not None and stats.failed == 0 else 1
    finally:
        await worker.aclose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Catalog update worker")
    parser.add_argument("--once", action="store_true", help="Run a single update cycle and exit")
    parser.add_argument("--loop", action="store_true", help="Run cycles continuously on the configured interval")
    args = parser.parse_args()

    configure_logging()
    loop_mode = args.loop and not args.once
    return asyncio.run(run_worker(loop=loop_mode))


if __name__ == "__main__":
    raise SystemExit(main())
