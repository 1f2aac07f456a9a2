from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.location_import_admin import router as location_import_admin_router
from app.api.v1.endpoints.locations import router as locations_router
from app.api.v1.endpoints.locations_admin import router as locations_admin_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(locations_router, tags=["locations"])
router.include_router(location_import_admin_router, tags=["admin-location-imports"])
router.include_router(locations_admin_router, tags=["admin-locations"])
