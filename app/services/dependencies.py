from __future__ import annotations

from typing import AsyncIterator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.db import get_session_factory
from app.services.batch_fetch import BatchConfig
from app.services.external_data import ExternalDataFetcher
from app.services.geo_cache import GeoCache
from app.services.location_import import LocationImportService


_geo_cache: GeoCache | None = None


async def get_fetcher() -> AsyncIterator[ExternalDataFetcher]:
    fetcher = ExternalDataFetcher.from_settings(settings)
    try:
        yield fetcher
    finally:
        await fetcher.aclose()


def get_geo_cache() -> GeoCache | None:
    global _geo_cache
    if not settings.geocode_cache_enabled:
        return None
    if _geo_cache is None:
        _geo_cache = GeoCache(settings.redis_url)
    return _geo_cache


def get_batch_config() -> BatchConfig:
    return BatchConfig.from_settings(settings)


def get_import_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    fetcher: ExternalDataFetcher = Depends(get_fetcher),
    config: BatchConfig = Depends(get_batch_config),
) -> LocationImportService:
    return LocationImportService(session_factory, fetcher, config=config)
