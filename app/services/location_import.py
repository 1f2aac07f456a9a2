from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.geo import to_point
from app.core.ids import slugify
from app.models.city import City
from app.models.import_job import ImportJob, JOB_ACTIVE_STATUSES
from app.services.batch_fetch import BatchConfig, BatchOrchestrator, BatchProgress, PostalDataSource, expand_pincode_ranges
from app.services.hierarchy_builder import HierarchyBuilder
from app.services.import_jobs import ImportJobNotFound, ImportJobTracker, InvalidJobTransition


log = logging.getLogger(__name__)

IMPORT_SOURCE = "india_post_nominatim"
MAX_PINCODES_PER_IMPORT = 5000


class LocationImportError(Exception):
    pass


class InvalidPincodeRange(LocationImportError):
    pass


class ImportAlreadyRunning(LocationImportError):
    def __init__(self, city_id: str, job_id: str):
        super().__init__(f"import {job_id} is already running for city {city_id}")
        self.city_id = city_id
        self.job_id = job_id


class ImportCancelled(LocationImportError):
    def __init__(self, job_id: str):
        super().__init__(f"import {job_id} was cancelled")
        self.job_id = job_id


@dataclass
class ImportResult:
    success: bool
    city_id: str
    import_job_id: str
    summary: dict[str, Any] = field(default_factory=dict)


def validate_pincode_ranges(ranges: Sequence[dict[str, int]]) -> list[dict[str, int]]:
    if not ranges:
        raise InvalidPincodeRange("pincode_ranges must be a non-empty list")
    norm: list[dict[str, int]] = []
    total = 0
    for r in ranges:
        start, end = int(r["start"]), int(r["end"])
        if not (100000 <= start <= 999999 and 100000 <= end <= 999999):
            raise InvalidPincodeRange(f"pincodes must be 6 digits: {start}-{end}")
        if start > end:
            raise InvalidPincodeRange(f"range start {start} is after end {end}")
        total += end - start + 1
        norm.append({"start": start, "end": end})
    if total > MAX_PINCODES_PER_IMPORT:
        raise InvalidPincodeRange(f"{total} pincodes requested, limit is {MAX_PINCODES_PER_IMPORT}")
    return norm


class LocationImportService:
    """
    importCity: upsert the city, batch-fetch every pincode in its ranges,
    then replace the city's Area/SubArea/Pincode rows in one transaction.

    Imports of the same city are serialized by refusing to start while
    another job for it is started/processing. Different cities may run
    concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: PostalDataSource,
        *,
        config: BatchConfig | None = None,
        tracker: ImportJobTracker | None = None,
        orchestrator: BatchOrchestrator | None = None,
    ):
        self.session_factory = session_factory
        self.config = config or BatchConfig.from_settings()
        self.tracker = tracker or ImportJobTracker(session_factory)
        self.orchestrator = orchestrator or BatchOrchestrator(source, self.config)

    async def import_city(
        self,
        city_name: str,
        pincode_ranges: Sequence[dict[str, int]],
        center: Sequence[float],
        operator_id: str | None = None,
    ) -> ImportResult:
        city_id, job_id = await self.prepare_import(city_name, pincode_ranges, center, operator_id)
        return await self.run_import(city_id, job_id, city_name, pincode_ranges)

    async def prepare_import(
        self,
        city_name: str,
        pincode_ranges: Sequence[dict[str, int]],
        center: Sequence[float],
        operator_id: str | None = None,
    ) -> tuple[str, str]:
        name = city_name.strip()
        if not name:
            raise LocationImportError("city_name is required")
        ranges = validate_pincode_ranges(pincode_ranges)
        slug = slugify(name)

        async with self.session_factory() as db:
            city = (await db.execute(select(City).where(City.slug == slug))).scalar_one_or_none()

            if city is not None:
                active_id = (await db.execute(
                    select(ImportJob.id)
                    .where(ImportJob.city_id == city.id, ImportJob.status.in_(JOB_ACTIVE_STATUSES))
                    .limit(1)
                )).scalar_one_or_none()
                if active_id is not None:
                    raise ImportAlreadyRunning(city.id, active_id)
            else:
                city = City(slug=slug, state="Unknown")
                db.add(city)

            city.name = name
            city.center = to_point(center)  # provided as [lat, lng]
            city.pincode_ranges = ranges
            city.is_active = True
            city.imported_by = operator_id
            city.import_status = "processing"
            await db.commit()
            city_id = city.id

        job_id = await self.tracker.create(
            city_id,
            IMPORT_SOURCE,
            {"pincode_ranges": ranges, "batch": self.config.as_dict()},
            imported_by=operator_id,
        )
        return city_id, job_id

    async def run_import(
        self,
        city_id: str,
        job_id: str,
        city_name: str,
        pincode_ranges: Sequence[dict[str, int]],
    ) -> ImportResult:
        started = time.monotonic()
        try:
            pincodes = expand_pincode_ranges(pincode_ranges)
            try:
                await self.tracker.start_processing(job_id, len(pincodes))
            except InvalidJobTransition:
                if await self.tracker.is_cancelled(job_id):
                    # cancelled while still queued
                    raise ImportCancelled(job_id)
                raise
            log.info("import %s: %s, %d pincodes", job_id, city_name, len(pincodes))

            async def _on_progress(p: BatchProgress) -> None:
                await self.tracker.update_progress(
                    job_id,
                    p.processed,
                    p.successful,
                    p.percentage,
                    failed=p.failed,
                    failures=p.failed_pincodes,
                )

            async def _should_stop() -> bool:
                return await self.tracker.is_cancelled(job_id)

            outcome = await self.orchestrator.fetch_pincodes_in_batches(
                pincodes, city_name, on_progress=_on_progress, should_stop=_should_stop,
            )
            if outcome.stopped_early:
                raise ImportCancelled(job_id)

            log.info(
                "import %s: fetched in %.1fs, %d/%d valid",
                job_id, time.monotonic() - started, len(outcome.results), len(pincodes),
            )

            async with self.session_factory() as db:
                city = (await db.execute(select(City).where(City.id == city_id))).scalar_one()
                state = next((r.state for r in outcome.results if r.state), None)
                city.state = state or "Unknown"

                builder = HierarchyBuilder(db)
                counts = await builder.replace_city_hierarchy(
                    city_id=city_id, city_name=city_name, results=outcome.results,
                )
                await builder.refresh_city_metadata(city_id)
                await db.commit()

            duration = time.monotonic() - started
            try:
                await self.tracker.complete(job_id, counts.as_dict(), duration)
            except InvalidJobTransition:
                log.warning("import %s was cancelled while writing, new hierarchy kept", job_id)
                raise ImportCancelled(job_id)
            log.info(
                "import %s complete: %d areas, %d sub-areas, %d pincodes",
                job_id, counts.areas_created, counts.sub_areas_created, counts.pincodes_created,
            )
            return ImportResult(
                success=True,
                city_id=city_id,
                import_job_id=job_id,
                summary={
                    "total_pincodes": len(pincodes),
                    "valid_pincodes": len(outcome.results),
                    **counts.as_dict(),
                },
            )

        except ImportCancelled:
            log.info("import %s cancelled, hierarchy left untouched", job_id)
            await self._restore_city_status(city_id)
            raise
        except Exception as e:
            log.exception("import %s failed", job_id)
            try:
                await self.tracker.fail(job_id, f"{type(e).__name__}: {e}")
            except InvalidJobTransition:
                # cancelled while the hierarchy was being written
                log.warning("import %s already terminal, failure not recorded on the job", job_id)
            await self._set_city_status(city_id, "failed")
            raise

    async def _set_city_status(self, city_id: str, status: str) -> None:
        async with self.session_factory() as db:
            city = (await db.execute(select(City).where(City.id == city_id))).scalar_one_or_none()
            if city is not None:
                city.import_status = status
                await db.commit()

    async def _restore_city_status(self, city_id: str) -> None:
        async with self.session_factory() as db:
            city = (await db.execute(select(City).where(City.id == city_id))).scalar_one_or_none()
            if city is not None:
                city.import_status = "completed" if city.last_imported_at else "pending"
                await db.commit()

    async def cancel_import(self, job_id: str) -> ImportJob:
        """
        Graceful: a running import stops before its next batch. A job that no
        worker has picked up yet is cancelled outright and its city status is
        put back.
        """
        job = await self.tracker.get(job_id)
        if job is None:
            raise ImportJobNotFound(job_id)
        was_queued = job.status == "started"
        job = await self.tracker.cancel(job_id)
        if was_queued:
            await self._restore_city_status(job.city_id)
        return job

    async def abandon_import(self, city_id: str, job_id: str, reason: str) -> None:
        """Fail a prepared job that never reached a worker."""
        await self.tracker.fail(job_id, reason)
        await self._restore_city_status(city_id)

    async def get_import_status(self, job_id: str) -> ImportJob | None:
        return await self.tracker.get(job_id)

    async def get_city_imports(self, city_id: str, limit: int = 10) -> list[ImportJob]:
        return await self.tracker.list_for_city(city_id, limit)
