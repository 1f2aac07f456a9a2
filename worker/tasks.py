import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from app.core.config import settings
import app.models  # noqa: F401  # ensures Models are registered
from app.services.batch_fetch import BatchConfig
from app.services.external_data import ExternalDataFetcher
from app.services.location_import import ImportCancelled, LocationImportService


log = logging.getLogger(__name__)


async def _import_city(city_id: str, job_id: str, city_name: str, pincode_ranges: list[dict]) -> dict:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    fetcher = ExternalDataFetcher.from_settings(settings)

    try:
        svc = LocationImportService(Session, fetcher, config=BatchConfig.from_settings(settings))
        try:
            result = await svc.run_import(city_id, job_id, city_name, pincode_ranges)
        except ImportCancelled:
            return {"city_id": city_id, "import_job_id": job_id, "cancelled": True}
        return {"city_id": result.city_id, "import_job_id": result.import_job_id, "summary": result.summary}
    finally:
        await fetcher.aclose()
        await engine.dispose()


@celery.task(name="worker.tasks.import_city", bind=True)
def import_city(self, city_id: str, job_id: str, city_name: str, pincode_ranges: list[dict]) -> dict:
    # No celery retries: the job is terminal once run_import returns or raises.
    log.info("import_city task %s: job %s (%s)", self.request.id, job_id, city_name)
    return asyncio.run(_import_city(city_id, job_id, city_name, pincode_ranges))
