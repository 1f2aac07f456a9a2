import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.location import CoordinatesIn, LocationLookupOut, ServiceabilityOut
from app.services.dependencies import get_fetcher, get_geo_cache
from app.services.external_data import ExternalDataFetcher, GeocoderNotConfigured
from app.services.geo_cache import GeoCache
from app.services.location_lookup import AddressNotFound, InvalidCoordinates, LocationLookupService
from app.services.rate_limit import limit_location_lookups
from app.services.serviceability import ServiceabilityLookupError, ServiceabilityResolver


log = logging.getLogger(__name__)
router = APIRouter(prefix="/locations")


@router.get("/serviceability", response_model=ServiceabilityOut)
async def check_serviceability(
    pincode: str | None = None,
    area: str | None = Query(default=None, max_length=200),
    db: AsyncSession = Depends(get_db),
):
    try:
        res = await ServiceabilityResolver(db).check_serviceability(pincode, area)
    except ServiceabilityLookupError:
        raise HTTPException(status_code=503, detail="Serviceability could not be determined")
    return ServiceabilityOut(**res.as_dict())


async def _lookup(svc: LocationLookupService, lat, lng, *, with_serviceability: bool) -> dict:
    try:
        return await svc.lookup(lat, lng, check_serviceability=with_serviceability)
    except InvalidCoordinates as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AddressNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ServiceabilityLookupError:
        raise HTTPException(status_code=503, detail="Serviceability could not be determined")
    except GeocoderNotConfigured as e:
        log.error("reverse geocoding misconfigured: %s", e)
        raise HTTPException(status_code=503, detail="Geocoding service unavailable")


@router.post("/pincode", response_model=LocationLookupOut, dependencies=[Depends(limit_location_lookups)])
async def pincode_from_coordinates(
    body: CoordinatesIn,
    db: AsyncSession = Depends(get_db),
    fetcher: ExternalDataFetcher = Depends(get_fetcher),
    cache: GeoCache | None = Depends(get_geo_cache),
):
    svc = LocationLookupService(db, fetcher, cache=cache)
    data = await _lookup(svc, body.latitude, body.longitude, with_serviceability=True)
    message = (
        "Great! We serve this location"
        if data.get("is_serviceable")
        else "Sorry, we do not serve this location yet."
    )
    return LocationLookupOut(message=message, data=data)


@router.get("/address", response_model=LocationLookupOut, dependencies=[Depends(limit_location_lookups)])
async def address_from_coordinates(
    latitude: str | None = None,
    longitude: str | None = None,
    db: AsyncSession = Depends(get_db),
    fetcher: ExternalDataFetcher = Depends(get_fetcher),
    cache: GeoCache | None = Depends(get_geo_cache),
):
    svc = LocationLookupService(db, fetcher, cache=cache)
    data = await _lookup(svc, latitude, longitude, with_serviceability=False)
    return LocationLookupOut(message="Address retrieved successfully", data=data)
