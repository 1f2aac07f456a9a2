import os

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

# Base + all models so metadata is complete
from app.models import Base

from app.main import app
from app.core.config import settings
from app.core.db import get_db, get_session_factory
from app.api.v1.endpoints.location_import_admin import get_import_enqueuer
from app.services.batch_fetch import BatchConfig
from app.services.dependencies import get_batch_config, get_fetcher, get_geo_cache
from app.services.rate_limit import limit_location_lookups

from fixtures_locations import FakePostalSource, pune_offices


def _test_db_url() -> str:
    # in-memory sqlite unless a real database is provided
    return os.getenv("DATABASE_URL_TEST", "sqlite+aiosqlite://")


@pytest_asyncio.fixture
async def async_engine():
    url = _test_db_url()
    if url.startswith("sqlite"):
        # one shared connection, otherwise every session sees its own empty database
        engine = create_async_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """
    Used for seeding (commit explicitly) and for reads. Services under test
    open their own sessions from session_factory.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def fast_config() -> BatchConfig:
    return BatchConfig(batch_size=2, batch_delay=0, max_retries=1, retry_delay=0, geocode_delay=0)


@pytest.fixture
def postal_source() -> FakePostalSource:
    return FakePostalSource(pune_offices(), geocodes={"Budhwar Peth": (18.515, 73.857)})


@pytest.fixture
def enqueued() -> list[dict]:
    return []


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Internal-Admin-Key": settings.internal_admin_key}


@pytest_asyncio.fixture
async def client(session_factory, postal_source, fast_config, enqueued):
    """
    HTTP client wired to the test database, a fake provider and a recording
    enqueuer. Redis-backed pieces (cache, rate limiter) are switched off.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    async def _override_get_fetcher():
        yield postal_source

    async def _no_limit():
        return None

    def _record(**kwargs):
        enqueued.append(kwargs)

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_fetcher] = _override_get_fetcher
    app.dependency_overrides[get_batch_config] = lambda: fast_config
    app.dependency_overrides[get_geo_cache] = lambda: None
    app.dependency_overrides[limit_location_lookups] = _no_limit
    app.dependency_overrides[get_import_enqueuer] = lambda: _record

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
