from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.import_job import ImportJob, JOB_TERMINAL_STATUSES


log = logging.getLogger(__name__)

# started -> processing -> completed|failed|cancelled (started may fail/cancel directly)
_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "started": ("processing", "failed", "cancelled"),
    "processing": ("completed", "failed", "cancelled"),
    **{s: () for s in JOB_TERMINAL_STATUSES},
}


class InvalidJobTransition(Exception):
    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"import job {job_id}: cannot go from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class ImportJobNotFound(Exception):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImportJobTracker:
    """
    State-transition log for import jobs.

    Every call runs in its own short session and commits, so pollers see
    progress while the import itself is still running.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _load(self, db: AsyncSession, job_id: str) -> ImportJob:
        job = (await db.execute(select(ImportJob).where(ImportJob.id == job_id))).scalar_one_or_none()
        if job is None:
            raise ImportJobNotFound(job_id)
        return job

    @staticmethod
    def _move(job: ImportJob, target: str) -> None:
        if target not in _TRANSITIONS[job.status]:
            raise InvalidJobTransition(job.id, job.status, target)
        job.status = target

    async def create(
        self,
        city_id: str,
        source: str,
        config: dict[str, Any],
        *,
        imported_by: str | None = None,
    ) -> str:
        async with self.session_factory() as db:
            job = ImportJob(
                city_id=city_id,
                status="started",
                source=source,
                config=config,
                imported_by=imported_by,
                errors=[],
            )
            db.add(job)
            await db.commit()
            log.info("import job %s created for city %s", job.id, city_id)
            return job.id

    async def start_processing(self, job_id: str, total: int) -> None:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            self._move(job, "processing")
            job.total_pincodes = total
            await db.commit()

    async def update_progress(
        self,
        job_id: str,
        processed: int,
        successful: int,
        percentage: int,
        *,
        failed: int = 0,
        failures: Iterable[int] = (),
        error: str = "no postal data after retries",
    ) -> None:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            if job.status != "processing":
                # best-effort telemetry: a cancel may have landed first
                log.debug("ignoring progress for job %s in status %s", job_id, job.status)
                return

            job.processed_pincodes = max(job.processed_pincodes, processed)
            job.successful_pincodes = max(job.successful_pincodes, successful)
            job.failed_pincodes = max(job.failed_pincodes, failed)
            job.percentage = max(job.percentage, min(100, int(percentage)))

            stamp = _now().isoformat()
            new_errors = [{"pincode": p, "error": error, "timestamp": stamp} for p in failures]
            if new_errors:
                # reassign so the JSON column is flagged dirty
                job.errors = [*(job.errors or []), *new_errors]
            await db.commit()

    async def complete(self, job_id: str, results: dict[str, int], duration: float) -> None:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            self._move(job, "completed")
            job.areas_created = results.get("areas_created", 0)
            job.sub_areas_created = results.get("sub_areas_created", 0)
            job.pincodes_created = results.get("pincodes_created", 0)
            job.percentage = 100
            job.completed_at = _now()
            job.duration_seconds = round(duration, 1)
            await db.commit()

    async def fail(self, job_id: str, error: str) -> None:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            self._move(job, "failed")
            job.completed_at = _now()
            job.errors = [*(job.errors or []), {"pincode": None, "error": error, "timestamp": _now().isoformat()}]
            await db.commit()

    async def cancel(self, job_id: str) -> ImportJob:
        async with self.session_factory() as db:
            job = await self._load(db, job_id)
            self._move(job, "cancelled")
            job.completed_at = _now()
            await db.commit()
            return job

    async def is_cancelled(self, job_id: str) -> bool:
        async with self.session_factory() as db:
            status = (await db.execute(select(ImportJob.status).where(ImportJob.id == job_id))).scalar_one_or_none()
            return status == "cancelled"

    async def get(self, job_id: str) -> ImportJob | None:
        async with self.session_factory() as db:
            return (await db.execute(select(ImportJob).where(ImportJob.id == job_id))).scalar_one_or_none()

    async def list_for_city(self, city_id: str, limit: int = 10) -> list[ImportJob]:
        async with self.session_factory() as db:
            rows = (await db.execute(
                select(ImportJob)
                .where(ImportJob.city_id == city_id)
                .order_by(ImportJob.created_at.desc(), ImportJob.started_at.desc())
                .limit(limit)
            )).scalars().all()
            return list(rows)

