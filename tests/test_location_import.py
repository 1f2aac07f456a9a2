import pytest
from sqlalchemy import func, select

from app.models.area import Area
from app.models.city import City
from app.models.import_job import ImportJob
from app.models.pincode import Pincode
from app.models.sub_area import SubArea
from app.services.location_import import (
    MAX_PINCODES_PER_IMPORT,
    ImportAlreadyRunning,
    ImportCancelled,
    InvalidPincodeRange,
    LocationImportService,
    validate_pincode_ranges,
)

PUNE_RANGES = [{"start": 411001, "end": 411003}]
PUNE_CENTER = [18.5204, 73.8567]


@pytest.fixture
def service(session_factory, postal_source, fast_config):
    return LocationImportService(session_factory, postal_source, config=fast_config)


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _hierarchy_snapshot(session_factory) -> dict[str, list]:
    """Row content with generated ids left out."""
    async with session_factory() as db:
        areas = (await db.execute(select(Area).order_by(Area.slug))).scalars().all()
        subs = (await db.execute(select(SubArea).order_by(SubArea.slug))).scalars().all()
        pins = (await db.execute(select(Pincode).order_by(Pincode.pincode))).scalars().all()

    area_names = {a.id: a.name for a in areas}
    return {
        "areas": [
            (a.name, a.slug, a.centroid, a.pincode, a.total_sub_areas, a.district, a.state)
            for a in areas
        ],
        "sub_areas": [
            (area_names[s.area_id], s.name, s.slug, s.pincode, s.location, s.details)
            for s in subs
        ],
        "pincodes": [
            (p.pincode, len(p.area_ids), sorted(area_names[i] for i in p.area_ids), p.location,
             p.district, p.state, p.total_sub_areas, p.primary_area)
            for p in pins
        ],
    }


def test_validate_pincode_ranges():
    assert validate_pincode_ranges([{"start": "411001", "end": 411002}]) == [{"start": 411001, "end": 411002}]
    with pytest.raises(InvalidPincodeRange):
        validate_pincode_ranges([])
    with pytest.raises(InvalidPincodeRange):
        validate_pincode_ranges([{"start": 411010, "end": 411001}])
    with pytest.raises(InvalidPincodeRange):
        validate_pincode_ranges([{"start": 41100, "end": 41101}])
    with pytest.raises(InvalidPincodeRange):
        validate_pincode_ranges([{"start": 400000, "end": 400000 + MAX_PINCODES_PER_IMPORT}])


@pytest.mark.asyncio
async def test_import_city_builds_hierarchy_and_completes_job(service, session_factory, postal_source):
    result = await service.import_city("Pune", PUNE_RANGES, PUNE_CENTER, "ops")

    assert result.success is True
    assert result.summary == {
        "total_pincodes": 3,
        "valid_pincodes": 2,
        "areas_created": 2,
        "sub_areas_created": 3,
        "pincodes_created": 2,
    }
    # 411003 is unknown: first attempt plus one retry
    assert postal_source.postal_calls[411003] == 2
    assert postal_source.geocode_calls == ["Budhwar Peth"]

    async with session_factory() as db:
        city = (await db.execute(select(City).where(City.id == result.city_id))).scalar_one()
        job = (await db.execute(select(ImportJob).where(ImportJob.id == result.import_job_id))).scalar_one()

    assert city.slug == "pune"
    assert city.state == "Maharashtra"
    assert city.center == {"type": "Point", "coordinates": [73.8567, 18.5204]}
    assert city.import_status == "completed"
    assert city.imported_by == "ops"
    assert (city.total_areas, city.total_sub_areas, city.total_pincodes) == (2, 3, 2)

    assert job.status == "completed"
    assert job.percentage == 100
    assert (job.processed_pincodes, job.successful_pincodes, job.failed_pincodes) == (3, 2, 1)
    assert [e["pincode"] for e in job.errors] == [411003]
    assert job.config["pincode_ranges"] == PUNE_RANGES
    assert job.config["batch"]["batch_size"] == 2


@pytest.mark.asyncio
async def test_reimport_replaces_instead_of_duplicating(service, session_factory):
    first = await service.import_city("Pune", PUNE_RANGES, PUNE_CENTER)
    before = await _hierarchy_snapshot(session_factory)
    second = await service.import_city("Pune", PUNE_RANGES, PUNE_CENTER)
    after = await _hierarchy_snapshot(session_factory)

    assert first.city_id == second.city_id
    assert first.import_job_id != second.import_job_id
    assert await _count(session_factory, City) == 1
    assert await _count(session_factory, Area) == 2
    assert await _count(session_factory, SubArea) == 3
    assert await _count(session_factory, Pincode) == 2
    assert await _count(session_factory, ImportJob) == 2

    assert after == before
    assert len(after["pincodes"]) == 2


@pytest.mark.asyncio
async def test_second_import_for_same_city_is_rejected_while_running(service):
    city_id, job_id = await service.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)

    with pytest.raises(ImportAlreadyRunning) as exc:
        await service.prepare_import(" Pune ", PUNE_RANGES, PUNE_CENTER)
    assert exc.value.job_id == job_id
    assert exc.value.city_id == city_id


@pytest.mark.asyncio
async def test_other_cities_are_not_blocked(service):
    await service.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)
    city_id, _ = await service.prepare_import("Navi Mumbai", [{"start": 400701, "end": 400701}], [19.03, 73.02])

    assert city_id


@pytest.mark.asyncio
async def test_orchestration_fault_marks_job_and_city_failed(session_factory, postal_source, fast_config):
    svc = LocationImportService(session_factory, postal_source, config=fast_config)

    async def explode(*args, **kwargs):
        raise RuntimeError("orchestrator exploded")

    svc.orchestrator.fetch_pincodes_in_batches = explode

    city_id, job_id = await svc.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)
    with pytest.raises(RuntimeError):
        await svc.run_import(city_id, job_id, "Pune", PUNE_RANGES)

    job = await svc.get_import_status(job_id)
    assert job.status == "failed"
    assert job.errors[-1]["error"] == "RuntimeError: orchestrator exploded"
    assert job.completed_at is not None

    async with session_factory() as db:
        city = (await db.execute(select(City).where(City.id == city_id))).scalar_one()
    assert city.import_status == "failed"

    # a failed job no longer blocks the city
    await svc.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)


@pytest.mark.asyncio
async def test_failed_write_leaves_previous_hierarchy_intact(service, session_factory, monkeypatch):
    await service.import_city("Pune", PUNE_RANGES, PUNE_CENTER)

    from app.services import hierarchy_builder

    async def broken_refresh(self, city_id):
        raise RuntimeError("disk full")

    monkeypatch.setattr(hierarchy_builder.HierarchyBuilder, "refresh_city_metadata", broken_refresh)

    with pytest.raises(RuntimeError):
        await service.import_city("Pune", PUNE_RANGES, PUNE_CENTER)

    # the delete and inserts were rolled back together
    assert await _count(session_factory, Area) == 2
    assert await _count(session_factory, SubArea) == 3
    assert await _count(session_factory, Pincode) == 2


@pytest.mark.asyncio
async def test_cancel_stops_before_next_batch_and_keeps_hierarchy(session_factory, postal_source, fast_config):
    svc = LocationImportService(session_factory, postal_source, config=fast_config)
    city_id, job_id = await svc.prepare_import("Pune", [{"start": 411001, "end": 411006}], PUNE_CENTER)

    real_update = svc.tracker.update_progress

    async def cancel_after_first_batch(job, *args, **kwargs):
        await real_update(job, *args, **kwargs)
        await svc.tracker.cancel(job)

    svc.tracker.update_progress = cancel_after_first_batch

    with pytest.raises(ImportCancelled):
        await svc.run_import(city_id, job_id, "Pune", [{"start": 411001, "end": 411006}])

    job = await svc.get_import_status(job_id)
    assert job.status == "cancelled"
    assert job.processed_pincodes == 2
    # batch_size=2: only the first batch was fetched
    assert set(postal_source.postal_calls) == {411001, 411002}

    assert await _count(session_factory, Area) == 0
    async with session_factory() as db:
        city = (await db.execute(select(City).where(City.id == city_id))).scalar_one()
    assert city.import_status == "pending"


@pytest.mark.asyncio
async def test_job_cancelled_before_the_worker_starts_keeps_previous_import(service, session_factory, postal_source):
    first = await service.import_city("Pune", PUNE_RANGES, PUNE_CENTER)
    before = await _hierarchy_snapshot(session_factory)
    calls_before = sum(postal_source.postal_calls.values())

    city_id, job_id = await service.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)
    await service.tracker.cancel(job_id)

    with pytest.raises(ImportCancelled):
        await service.run_import(city_id, job_id, "Pune", PUNE_RANGES)

    assert city_id == first.city_id
    assert sum(postal_source.postal_calls.values()) == calls_before
    assert await _hierarchy_snapshot(session_factory) == before

    job = await service.get_import_status(job_id)
    assert job.status == "cancelled"
    async with session_factory() as db:
        city = (await db.execute(select(City).where(City.id == city_id))).scalar_one()
    assert city.import_status == "completed"


@pytest.mark.asyncio
async def test_cancel_import_of_a_queued_job_restores_city_status(service, session_factory):
    city_id, job_id = await service.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)

    job = await service.cancel_import(job_id)

    assert job.status == "cancelled"
    async with session_factory() as db:
        city = (await db.execute(select(City).where(City.id == city_id))).scalar_one()
    assert city.import_status == "pending"


@pytest.mark.asyncio
async def test_abandon_import_fails_job_and_unblocks_city(service, session_factory):
    city_id, job_id = await service.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)

    await service.abandon_import(city_id, job_id, "enqueue failed: ConnectionError: broker unreachable")

    job = await service.get_import_status(job_id)
    assert job.status == "failed"
    assert job.errors[-1]["error"] == "enqueue failed: ConnectionError: broker unreachable"
    async with session_factory() as db:
        city = (await db.execute(select(City).where(City.id == city_id))).scalar_one()
    assert city.import_status == "pending"

    await service.prepare_import("Pune", PUNE_RANGES, PUNE_CENTER)
