from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as default_settings
from app.services.external_data import AddressComponents, ExternalDataFetcher
from app.services.geo_cache import KeyValueCache, geocode_cache_key
from app.services.serviceability import ServiceabilityResolver


log = logging.getLogger(__name__)


class InvalidCoordinates(ValueError):
    pass


class AddressNotFound(Exception):
    pass


def validate_coordinates(latitude: Any, longitude: Any) -> tuple[float, float]:
    if latitude is None or longitude is None or latitude == "" or longitude == "":
        raise InvalidCoordinates("Latitude and longitude are required")
    try:
        lat, lng = float(latitude), float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinates("Invalid coordinate format") from None
    if not -90 <= lat <= 90:
        raise InvalidCoordinates("Latitude must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise InvalidCoordinates("Longitude must be between -180 and 180")
    return lat, lng


class LocationLookupService:
    """
    coordinate -> postal address -> serviceability.

    Results are cached per provider and rounded coordinate. The cache is
    optional and best effort.
    """

    def __init__(
        self,
        db: AsyncSession,
        fetcher: ExternalDataFetcher,
        *,
        cache: KeyValueCache | None = None,
        cfg: Settings | None = None,
    ):
        self.db = db
        self.fetcher = fetcher
        self.cache = cache
        self.cfg = cfg or default_settings

    @property
    def provider(self) -> str:
        return self.cfg.geocode_provider.lower().strip()

    def _cache_key(self, lat: float, lng: float, with_serviceability: bool) -> str:
        key = geocode_cache_key(self.provider, lat, lng)
        return f"{key}:svc" if with_serviceability else key

    async def resolve_address(self, lat: float, lng: float) -> AddressComponents:
        address = await self.fetcher.reverse_geocode(lat, lng, provider=self.provider)
        if address is None:
            raise AddressNotFound("No address found")

        # Secondary provider, asked for the pincode only
        if not address.pincode and self.provider != "google" and self.cfg.google_geocoding_api_key is not None:
            log.info("no pincode from %s, trying google fallback", self.provider)
            fallback = await self.fetcher.reverse_geocode(lat, lng, provider="google")
            if fallback is not None and fallback.pincode:
                address.pincode = fallback.pincode
        return address

    async def lookup(self, latitude: Any, longitude: Any, *, check_serviceability: bool = True) -> dict[str, Any]:
        lat, lng = validate_coordinates(latitude, longitude)
        key = self._cache_key(lat, lng, check_serviceability)

        if self.cache is not None and self.cfg.geocode_cache_enabled:
            cached = await self.cache.get_json(key)
            if cached is not None:
                log.debug("lookup %s served from cache", key)
                return {**cached, "from_cache": True}

        address = await self.resolve_address(lat, lng)
        data: dict[str, Any] = {
            **address.as_dict(),
            "coordinates": {"latitude": lat, "longitude": lng},
        }

        if check_serviceability:
            if not address.pincode:
                raise AddressNotFound("No pincode found for provided coordinates")
            svc = await ServiceabilityResolver(self.db).check_serviceability(address.pincode, address.area)
            data.update(svc.as_dict())

        if self.cache is not None and self.cfg.geocode_cache_enabled:
            await self.cache.set_json(key, data, self.cfg.geocode_cache_ttl_seconds)

        return {**data, "from_cache": False}
