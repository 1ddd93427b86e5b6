from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wardrobe.models.import_job import (
    ImportDefaults,
    ImportItemStatus,
    ImportJob,
    ImportJobItem,
    ImportJobStatus,
)
from wardrobe.services import catalog_service
from wardrobe.services.duplicate_detector import (
    DEFAULT_THRESHOLD,
    DuplicateDetector,
    DuplicateImageError,
    compute_fingerprint,
)
from wardrobe.services.image_pipeline import ImagePipeline, ImageProcessingError
from wardrobe.services.tag_resolver import TagResolver

logger = logging.getLogger(__name__)

MISSING_FILE = "Missing file for import."
EXPECTED_ERRORS = (DuplicateImageError, ImageProcessingError)


class ImportJobManager:
    """Owns every import job in this process and the single worker draining them.

    Jobs are run strictly one after another in submission order, and the items
    of a job strictly in manifest order. Only the worker mutates a job after
    :meth:`create_job` returns it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pipeline: ImagePipeline,
        *,
        duplicate_threshold: int = DEFAULT_THRESHOLD,
        job_ttl_seconds: int = 0,
    ) -> None:
        self._session_factory = session_factory
        self._pipeline = pipeline
        self._duplicate_threshold = duplicate_threshold
        self._job_ttl = timedelta(seconds=job_ttl_seconds) if job_ttl_seconds > 0 else None
        self._jobs: dict[str, ImportJob] = {}
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="import-worker")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def wait_idle(self) -> None:
        """Block until every queued job has been processed."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_job(
        self,
        items: list[ImportJobItem],
        defaults: ImportDefaults,
        job_id: str | None = None,
    ) -> ImportJob:
        self._evict_expired()
        job = ImportJob(items=items, defaults=defaults)
        if job_id is not None:
            job.id = job_id
        self._jobs[job.id] = job
        self._queue.put_nowait(job.id)
        logger.info(
            "Queued import job %s: %d item(s), %d pre-failed", job.id, job.total, job.failed
        )
        self.start()
        return job

    def get_job(self, job_id: str) -> ImportJob | None:
        self._evict_expired()
        return self._jobs.get(job_id)

    def __len__(self) -> int:
        return len(self._jobs)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                job = self._jobs.get(job_id)
                if job is not None:
                    await self.process_job(job)
            except Exception:
                logger.exception("Import worker crashed while processing job %s", job_id)
            finally:
                self._queue.task_done()

    async def process_job(self, job: ImportJob) -> None:
        job.status = ImportJobStatus.PROCESSING
        logger.info("Processing import job %s", job.id)

        detector = DuplicateDetector(self._duplicate_threshold)
        tags = TagResolver()

        for item in job.items:
            if item.status is ImportItemStatus.FAILED:
                continue
            if item.file_path is None:
                item.mark_failed(MISSING_FILE)
                job.failed += 1
                continue

            item.mark_processing()
            try:
                await self._process_item(item, item.file_path, detector, tags)
            except EXPECTED_ERRORS as exc:
                logger.warning("Import item %s (%s) failed: %s", item.id, item.filename, exc)
                item.mark_failed(str(exc))
                job.failed += 1
            except Exception as exc:
                logger.exception("Import item %s (%s) failed", item.id, item.filename)
                item.mark_failed(str(exc) or type(exc).__name__)
                job.failed += 1
            else:
                job.completed += 1

        job.status = ImportJobStatus.COMPLETED
        job.finished_at = datetime.now(UTC)
        logger.info(
            "Finished import job %s: %d completed, %d failed of %d",
            job.id,
            job.completed,
            job.failed,
            job.total,
        )

    async def _process_item(
        self,
        item: ImportJobItem,
        source: Path,
        detector: DuplicateDetector,
        tags: TagResolver,
    ) -> None:
        try:
            fingerprint = await asyncio.to_thread(compute_fingerprint, source)
        except OSError as exc:
            raise ImageProcessingError(f"Could not read image {item.filename}: {exc}") from exc
        detector.check(fingerprint)

        image_url = await self._pipeline.process(source)

        async with self._session_factory() as db:
            try:
                tag_ids = await tags.resolve(db, item.payload.tags)
                created = await catalog_service.create_item(db, item.payload, image_url, tag_ids)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        detector.accept(fingerprint)
        item.mark_completed(str(created.id), image_url)

    def _evict_expired(self) -> None:
        if self._job_ttl is None:
            return
        cutoff = datetime.now(UTC) - self._job_ttl
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.finished_at is not None and job.finished_at < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info("Evicted %d expired import job(s)", len(expired))
