import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from app.schemas.location_import import (
    ImportCityRequest,
    ImportCityResponse,
    ImportEnqueuedResponse,
    ImportJobOut,
    ImportSummary,
)
from app.services.dependencies import get_import_service
from app.services.import_jobs import ImportJobNotFound, InvalidJobTransition
from app.services.internal_admin import operator_id, require_internal_admin
from app.services.location_import import (
    ImportAlreadyRunning,
    ImportCancelled,
    InvalidPincodeRange,
    LocationImportError,
    LocationImportService,
)
from worker.celery_app import enqueue_city_import


log = logging.getLogger(__name__)
router = APIRouter()


def get_import_enqueuer() -> Callable[..., None]:
    return enqueue_city_import


async def _prepare(svc: LocationImportService, body: ImportCityRequest, actor: str) -> tuple[str, str]:
    try:
        return await svc.prepare_import(body.city_name, body.ranges(), body.center_coords, actor)
    except ImportAlreadyRunning as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "import_job_id": e.job_id})
    except InvalidPincodeRange as e:
        raise HTTPException(status_code=422, detail=str(e))
    except LocationImportError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/admin/locations/import",
    response_model=ImportCityResponse,
    dependencies=[Depends(require_internal_admin)],
)
async def import_city(
    body: ImportCityRequest,
    actor: str = Depends(operator_id),
    svc: LocationImportService = Depends(get_import_service),
) -> ImportCityResponse:
    """
    Runs the whole import before answering. Poll
    /admin/locations/imports/{job_id} from another client for progress.
    """
    city_id, job_id = await _prepare(svc, body, actor)
    try:
        result = await svc.run_import(city_id, job_id, body.city_name, body.ranges())
    except ImportCancelled as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "import_job_id": job_id})
    except Exception as e:
        # job already marked failed by the service
        raise HTTPException(
            status_code=500,
            detail={"message": f"import failed: {type(e).__name__}", "import_job_id": job_id},
        )

    return ImportCityResponse(
        success=result.success,
        city_id=result.city_id,
        import_job_id=result.import_job_id,
        summary=ImportSummary(**result.summary),
    )


@router.post(
    "/admin/locations/import:enqueue",
    response_model=ImportEnqueuedResponse,
    status_code=202,
    dependencies=[Depends(require_internal_admin)],
)
async def enqueue_import(
    body: ImportCityRequest,
    actor: str = Depends(operator_id),
    svc: LocationImportService = Depends(get_import_service),
    enqueue: Callable[..., None] = Depends(get_import_enqueuer),
) -> ImportEnqueuedResponse:
    city_id, job_id = await _prepare(svc, body, actor)
    try:
        enqueue(city_id=city_id, job_id=job_id, city_name=body.city_name, pincode_ranges=body.ranges())
    except Exception as e:
        log.exception("import %s could not be enqueued", job_id)
        await svc.abandon_import(city_id, job_id, f"enqueue failed: {type(e).__name__}: {e}")
        raise HTTPException(
            status_code=503,
            detail={"message": "import queue unavailable", "import_job_id": job_id},
        )
    log.info("import %s for %s enqueued", job_id, body.city_name)
    return ImportEnqueuedResponse(city_id=city_id, import_job_id=job_id, status="started")


@router.get(
    "/admin/locations/imports/{job_id}",
    response_model=ImportJobOut,
    dependencies=[Depends(require_internal_admin)],
)
async def get_import_status(job_id: str, svc: LocationImportService = Depends(get_import_service)):
    job = await svc.get_import_status(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return ImportJobOut.model_validate(job)


@router.post(
    "/admin/locations/imports/{job_id}:cancel",
    response_model=ImportJobOut,
    dependencies=[Depends(require_internal_admin)],
)
async def cancel_import(job_id: str, svc: LocationImportService = Depends(get_import_service)):
    """
    Graceful: the running import stops before its next batch. Calls already
    in flight are not aborted.
    """
    try:
        job = await svc.cancel_import(job_id)
    except ImportJobNotFound:
        raise HTTPException(status_code=404, detail="Import job not found")
    except InvalidJobTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ImportJobOut.model_validate(job)


@router.get(
    "/admin/locations/cities/{city_id}/imports",
    response_model=list[ImportJobOut],
    dependencies=[Depends(require_internal_admin)],
)
async def list_city_imports(city_id: str, limit: int = 10, svc: LocationImportService = Depends(get_import_service)):
    jobs = await svc.get_city_imports(city_id, min(max(limit, 1), 100))
    return [ImportJobOut.model_validate(j) for j in jobs]
