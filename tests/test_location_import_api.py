import pytest

from app.api.v1.endpoints.location_import_admin import get_import_enqueuer
from app.main import app


PUNE = {
    "city_name": "Pune",
    "pincode_ranges": [{"start": 411001, "end": 411003}],
    "center_coords": [18.5204, 73.8567],
}


@pytest.mark.asyncio
async def test_import_requires_internal_admin_key(client):
    r = await client.post("/v1/admin/locations/import", json=PUNE)
    assert r.status_code == 403

    r = await client.post("/v1/admin/locations/import", json=PUNE, headers={"X-Internal-Admin-Key": "nope"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_synchronous_import_returns_summary(client, admin_headers):
    r = await client.post(
        "/v1/admin/locations/import", json=PUNE, headers={**admin_headers, "X-Operator-Id": "ops-1"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["summary"] == {
        "total_pincodes": 3,
        "valid_pincodes": 2,
        "areas_created": 2,
        "sub_areas_created": 3,
        "pincodes_created": 2,
    }

    r = await client.get(f"/v1/admin/locations/imports/{body['import_job_id']}", headers=admin_headers)
    assert r.status_code == 200
    job = r.json()
    assert job["status"] == "completed"
    assert job["imported_by"] == "ops-1"
    assert job["percentage"] == 100

    r = await client.get(f"/v1/admin/locations/cities/{body['city_id']}/imports", headers=admin_headers)
    assert [j["id"] for j in r.json()] == [body["import_job_id"]]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {**PUNE, "pincode_ranges": []},
        {**PUNE, "pincode_ranges": [{"start": 411010, "end": 411001}]},
        {**PUNE, "pincode_ranges": [{"start": 4110, "end": 4111}]},
        {**PUNE, "center_coords": [18.5]},
        {**PUNE, "center_coords": [95.0, 73.8]},
        {**PUNE, "city_name": ""},
    ],
)
async def test_invalid_import_requests_are_rejected(client, admin_headers, payload):
    r = await client.post("/v1/admin/locations/import", json=payload, headers=admin_headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_too_many_pincodes_is_rejected(client, admin_headers):
    payload = {**PUNE, "pincode_ranges": [{"start": 400000, "end": 409999}]}
    r = await client.post("/v1/admin/locations/import", json=payload, headers=admin_headers)
    assert r.status_code == 422
    assert "limit" in r.json()["detail"]


@pytest.mark.asyncio
async def test_enqueue_hands_off_to_worker_and_blocks_second_import(client, admin_headers, enqueued):
    r = await client.post("/v1/admin/locations/import:enqueue", json=PUNE, headers=admin_headers)
    assert r.status_code == 202, r.text
    body = r.json()
    assert body["status"] == "started"
    assert enqueued == [{
        "city_id": body["city_id"],
        "job_id": body["import_job_id"],
        "city_name": "Pune",
        "pincode_ranges": [{"start": 411001, "end": 411003}],
    }]

    r = await client.post("/v1/admin/locations/import", json=PUNE, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["import_job_id"] == body["import_job_id"]


@pytest.mark.asyncio
async def test_cancel_is_terminal(client, admin_headers):
    r = await client.post("/v1/admin/locations/import:enqueue", json=PUNE, headers=admin_headers)
    job_id, city_id = r.json()["import_job_id"], r.json()["city_id"]

    r = await client.post(f"/v1/admin/locations/imports/{job_id}:cancel", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert r.json()["completed_at"] is not None

    # nothing had picked the job up, so the city is no longer processing
    r = await client.get(f"/v1/admin/locations/cities/{city_id}", headers=admin_headers)
    assert r.json()["city"]["import_status"] == "pending"

    r = await client.post(f"/v1/admin/locations/imports/{job_id}:cancel", headers=admin_headers)
    assert r.status_code == 409

    # cancelled jobs do not block a new import
    r = await client.post("/v1/admin/locations/import:enqueue", json=PUNE, headers=admin_headers)
    assert r.status_code == 202


@pytest.mark.asyncio
async def test_unknown_job(client, admin_headers):
    r = await client.get("/v1/admin/locations/imports/imp_missing", headers=admin_headers)
    assert r.status_code == 404
    r = await client.post("/v1/admin/locations/imports/imp_missing:cancel", headers=admin_headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_orchestration_fault_answers_500_with_job_id(client, admin_headers, postal_source):
    # provider exceptions are misses; a malformed office breaks the pipeline itself
    postal_source.offices = {411001: [object()]}

    r = await client.post("/v1/admin/locations/import", json=PUNE, headers=admin_headers)
    assert r.status_code == 500
    job_id = r.json()["detail"]["import_job_id"]

    r = await client.get(f"/v1/admin/locations/imports/{job_id}", headers=admin_headers)
    assert r.json()["status"] == "failed"


@pytest.mark.asyncio
async def test_broker_outage_fails_the_job_and_frees_the_city(client, admin_headers, enqueued):
    def broker_down(**kwargs):
        raise ConnectionError("broker unreachable")

    app.dependency_overrides[get_import_enqueuer] = lambda: broker_down

    r = await client.post("/v1/admin/locations/import:enqueue", json=PUNE, headers=admin_headers)
    assert r.status_code == 503
    job_id = r.json()["detail"]["import_job_id"]

    r = await client.get(f"/v1/admin/locations/imports/{job_id}", headers=admin_headers)
    job = r.json()
    assert job["status"] == "failed"
    assert job["errors"][-1]["error"].startswith("enqueue failed: ConnectionError")

    r = await client.get(f"/v1/admin/locations/cities/{job['city_id']}", headers=admin_headers)
    assert r.json()["city"]["import_status"] == "pending"

    # the failed job does not block the next attempt
    app.dependency_overrides[get_import_enqueuer] = lambda: lambda **kwargs: enqueued.append(kwargs)
    r = await client.post("/v1/admin/locations/import:enqueue", json=PUNE, headers=admin_headers)
    assert r.status_code == 202
    assert len(enqueued) == 1
