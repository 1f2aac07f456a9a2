from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db, get_session_factory
from app.schemas.location import (
    AreaList,
    AreaOut,
    BulkServiceabilityUpdate,
    CityActiveUpdate,
    CityHierarchy,
    CityList,
    CityOut,
    HierarchyArea,
    PincodeDetails,
    SearchResults,
    ServiceabilityUpdate,
    SubAreaList,
    SubAreaOut,
    page_meta,
)
from app.schemas.location_import import ImportJobOut
from app.services import location_catalog as catalog
from app.services.import_jobs import ImportJobTracker
from app.services.internal_admin import require_internal_admin

router = APIRouter(prefix="/admin/locations", dependencies=[Depends(require_internal_admin)])


@router.get("/cities", response_model=CityList)
async def list_cities(
    is_active: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    cities, total = await catalog.list_cities(db, is_active=is_active, page=page, limit=limit)
    return CityList(cities=[CityOut.model_validate(c) for c in cities], pagination=page_meta(total, page, limit))


@router.get("/cities/{city_id}")
async def get_city(city_id: str, db: AsyncSession = Depends(get_db), session_factory=Depends(get_session_factory)):
    city = await catalog.get_city(db, city_id)
    if not city:
        raise HTTPException(status_code=404, detail="City not found")
    recent = await ImportJobTracker(session_factory).list_for_city(city_id, 5)
    return {
        "city": CityOut.model_validate(city),
        "recent_imports": [ImportJobOut.model_validate(j) for j in recent],
    }


@router.patch("/cities/{city_id}/active", response_model=CityOut)
async def set_city_active(city_id: str, body: CityActiveUpdate, db: AsyncSession = Depends(get_db)):
    city = await catalog.set_city_active(db, city_id, body.is_active)
    if not city:
        raise HTTPException(status_code=404, detail="City not found")
    await db.commit()
    return CityOut.model_validate(city)


@router.get("/cities/{city_id}/areas", response_model=AreaList)
async def list_areas(
    city_id: str,
    is_serviceable: bool | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    areas, total = await catalog.list_areas(
        db, city_id=city_id, is_serviceable=is_serviceable, search=search, page=page, limit=limit,
    )
    return AreaList(areas=[AreaOut.model_validate(a) for a in areas], pagination=page_meta(total, page, limit))


@router.get("/cities/{city_id}/hierarchy", response_model=CityHierarchy)
async def city_hierarchy(city_id: str, db: AsyncSession = Depends(get_db)):
    city = await catalog.get_city(db, city_id)
    if not city:
        raise HTTPException(status_code=404, detail="City not found")
    tree = await catalog.get_city_hierarchy(db, city)
    return CityHierarchy(
        city=CityOut.model_validate(city),
        hierarchy=[
            HierarchyArea(
                area=AreaOut.model_validate(node["area"]),
                sub_areas=[SubAreaOut.model_validate(s) for s in node["sub_areas"]],
            )
            for node in tree
        ],
    )


@router.get("/areas/{area_id}/sub-areas", response_model=SubAreaList)
async def list_sub_areas(
    area_id: str,
    is_serviceable: bool | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    subs, total = await catalog.list_sub_areas(
        db, area_id=area_id, is_serviceable=is_serviceable, search=search, page=page, limit=limit,
    )
    return SubAreaList(sub_areas=[SubAreaOut.model_validate(s) for s in subs], pagination=page_meta(total, page, limit))


@router.patch("/areas/bulk-serviceability")
async def bulk_area_serviceability(body: BulkServiceabilityUpdate, db: AsyncSession = Depends(get_db)):
    res = await catalog.bulk_update_area_serviceability(
        db, body.area_ids, is_serviceable=body.is_serviceable, priority=body.priority,
    )
    await db.commit()
    return res


@router.patch("/areas/{area_id}/serviceability", response_model=AreaOut)
async def area_serviceability(area_id: str, body: ServiceabilityUpdate, db: AsyncSession = Depends(get_db)):
    area = await catalog.update_area_serviceability(
        db, area_id, is_serviceable=body.is_serviceable, priority=body.priority,
    )
    if not area:
        raise HTTPException(status_code=404, detail="Area not found")
    await db.commit()
    return AreaOut.model_validate(area)


@router.patch("/sub-areas/{sub_area_id}/serviceability", response_model=SubAreaOut)
async def sub_area_serviceability(sub_area_id: str, body: ServiceabilityUpdate, db: AsyncSession = Depends(get_db)):
    sub = await catalog.update_sub_area_serviceability(
        db, sub_area_id, is_serviceable=body.is_serviceable, priority=body.priority,
    )
    if not sub:
        raise HTTPException(status_code=404, detail="Sub-area not found")
    await db.commit()
    return SubAreaOut.model_validate(sub)


@router.get("/pincodes/{pincode}", response_model=PincodeDetails)
async def pincode_details(pincode: int, db: AsyncSession = Depends(get_db)):
    details = await catalog.get_pincode_details(db, pincode)
    if not details:
        raise HTTPException(status_code=404, detail="Pincode not found")
    return PincodeDetails.model_validate(details, from_attributes=True)


@router.get("/search", response_model=SearchResults)
async def search(
    query: str = Query(..., min_length=2),
    city_id: str | None = None,
    type: Literal["all", "areas", "sub_areas", "pincodes"] = "all",
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    res = await catalog.search_locations(db, query=query, city_id=city_id, kind=type, limit=limit)
    return SearchResults.model_validate(res, from_attributes=True)
