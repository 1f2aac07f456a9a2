from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.core.config import Settings, settings as default_settings
from app.core.geo import LatLng
from app.services.http_client import ProviderHttpClient


log = logging.getLogger(__name__)

REVERSE_PROVIDERS = ("nominatim", "google", "opencage", "bigdatacloud")

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
OPENCAGE_GEOCODE_URL = "https://api.opencagedata.com/geocode/v1/json"
BIGDATACLOUD_REVERSE_URL = "https://api.bigdatacloud.net/data/reverse-geocode-client"


class GeocoderNotConfigured(ValueError):
    """Unknown reverse-geocode provider, or its API key is missing."""


@dataclass(frozen=True)
class PostOffice:
    name: str
    branch_type: str | None = None
    delivery_status: str | None = None
    district: str | None = None
    state: str | None = None
    division: str | None = None
    region: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def coordinates(self) -> LatLng | None:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


@dataclass(frozen=True)
class PostalIndexResult:
    post_offices: list[PostOffice] = field(default_factory=list)


@dataclass
class AddressComponents:
    pincode: str | None = None
    area: str | None = None
    city: str | None = None
    district: str | None = None
    state: str | None = None
    country: str | None = None
    full_address: str | None = None
    provider: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "pincode": self.pincode,
            "area": self.area,
            "city": self.city,
            "district": self.district,
            "state": self.state,
            "country": self.country,
            "full_address": self.full_address,
            "provider": self.provider,
        }


def _to_float(v: Any) -> float | None:
    if v is None or v == "" or v == "NA":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _first_component(components: list[dict], types: list[str], key: str = "long_name") -> str | None:
    for c in components:
        if any(t in (c.get("types") or []) for t in types):
            return c.get(key) or None
    return None


def extract_google(payload: dict[str, Any]) -> AddressComponents | None:
    if payload.get("status") != "OK" or not payload.get("results"):
        return None
    result = payload["results"][0]
    comps = result.get("address_components") or []
    return AddressComponents(
        pincode=_first_component(comps, ["postal_code"]),
        area=_first_component(comps, ["sublocality", "sublocality_level_1", "sublocality_level_2"]),
        city=_first_component(comps, ["locality", "administrative_area_level_2"]),
        district=_first_component(comps, ["administrative_area_level_2"]),
        state=_first_component(comps, ["administrative_area_level_1"]),
        country=_first_component(comps, ["country"]),
        full_address=result.get("formatted_address"),
        provider="google",
    )


def extract_nominatim(payload: dict[str, Any]) -> AddressComponents | None:
    addr = payload.get("address")
    if not addr:
        return None
    return AddressComponents(
        pincode=addr.get("postcode"),
        area=addr.get("suburb") or addr.get("neighbourhood"),
        city=addr.get("city") or addr.get("town"),
        district=addr.get("county"),
        state=addr.get("state"),
        country=addr.get("country"),
        full_address=payload.get("display_name"),
        provider="nominatim",
    )


def extract_opencage(payload: dict[str, Any]) -> AddressComponents | None:
    results = payload.get("results") or []
    if not results:
        return None
    comp = results[0].get("components") or {}
    return AddressComponents(
        pincode=comp.get("postcode"),
        area=comp.get("area") or comp.get("_normalized_city"),
        city=comp.get("county") or comp.get("town"),
        district=comp.get("state_district") or comp.get("county"),
        state=comp.get("state"),
        country=comp.get("country"),
        full_address=results[0].get("formatted"),
        provider="opencage",
    )


def extract_bigdatacloud(payload: dict[str, Any]) -> AddressComponents | None:
    if not payload.get("countryName") and not payload.get("postcode"):
        return None
    informative = ((payload.get("localityInfo") or {}).get("informative")) or []
    return AddressComponents(
        pincode=payload.get("postcode") or None,
        area=payload.get("locality"),
        city=payload.get("city") or payload.get("locality"),
        district=payload.get("principalSubdivision"),
        state=payload.get("principalSubdivision"),
        country=payload.get("countryName"),
        full_address=", ".join(x.get("name", "") for x in informative) or None,
        provider="bigdatacloud",
    )


class ExternalDataFetcher:
    """
    Thin request/response wrappers around the postal-index and geocoding providers.

    Every method answers None for a miss: timeouts, connection failures,
    non-2xx statuses and "no result" payloads all look the same to callers.
    Retry and pacing are the caller's concern.
    """

    def __init__(self, http: ProviderHttpClient, *, cfg: Settings | None = None):
        self.http = http
        self.cfg = cfg or default_settings

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "ExternalDataFetcher":
        cfg = cfg or default_settings
        http = ProviderHttpClient(
            timeout_seconds=cfg.provider_timeout_seconds,
            default_headers={"Accept-Language": "en"},
        )
        return cls(http, cfg=cfg)

    async def aclose(self) -> None:
        await self.http.aclose()

    @property
    def _identity_headers(self) -> dict[str, str]:
        # Nominatim blocks anonymous traffic
        return {"User-Agent": self.cfg.geocoder_user_agent}

    async def fetch_postal_index(self, pincode: int) -> PostalIndexResult | None:
        res = await self.http.get_json(url=f"{self.cfg.postal_index_url.rstrip('/')}/{pincode}")
        if not res.ok:
            log.debug("postal index miss for %s: %s", pincode, res.error_code)
            return None

        data = res.detail.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        head = data[0]
        if head.get("Status") != "Success" or not head.get("PostOffice"):
            return None

        offices = [
            PostOffice(
                name=po.get("Name") or "",
                branch_type=po.get("BranchType"),
                delivery_status=po.get("DeliveryStatus"),
                district=po.get("District"),
                state=po.get("State"),
                division=po.get("Division"),
                region=po.get("Region"),
                latitude=_to_float(po.get("Latitude")),
                longitude=_to_float(po.get("Longitude")),
            )
            for po in head["PostOffice"]
            if isinstance(po, dict)
        ]
        return PostalIndexResult(post_offices=offices)

    async def geocode(self, place_name: str, city_name: str) -> LatLng | None:
        res = await self.http.get_json(
            url=self.cfg.geocoder_search_url,
            headers=self._identity_headers,
            params={
                "q": f"{place_name}, {city_name}, {self.cfg.geocode_country}",
                "format": "json",
                "limit": 1,
            },
        )
        if not res.ok:
            log.debug("geocode miss for %r in %s: %s", place_name, city_name, res.error_code)
            return None

        hits = res.detail.get("data")
        if not isinstance(hits, list) or not hits:
            return None
        lat, lng = _to_float(hits[0].get("lat")), _to_float(hits[0].get("lon"))
        if lat is None or lng is None:
            return None
        return lat, lng

    async def reverse_geocode(self, lat: float, lng: float, *, provider: str | None = None) -> AddressComponents | None:
        provider = (provider or self.cfg.geocode_provider).lower().strip()
        if provider not in REVERSE_PROVIDERS:
            raise GeocoderNotConfigured(f"Unsupported geocode provider: {provider}")

        if provider == "google":
            key = self.cfg.google_geocoding_api_key
            if key is None:
                raise GeocoderNotConfigured("Google API key not configured")
            res = await self.http.get_json(
                url=GOOGLE_GEOCODE_URL,
                params={"latlng": f"{lat},{lng}", "key": key.get_secret_value(), "language": "en"},
            )
            return extract_google(res.detail) if res.ok else None

        if provider == "opencage":
            key = self.cfg.opencage_api_key
            if key is None:
                raise GeocoderNotConfigured("OpenCage API key not configured")
            res = await self.http.get_json(
                url=OPENCAGE_GEOCODE_URL,
                params={"q": f"{lat},{lng}", "key": key.get_secret_value(), "language": "en"},
            )
            return extract_opencage(res.detail) if res.ok else None

        if provider == "bigdatacloud":
            res = await self.http.get_json(
                url=BIGDATACLOUD_REVERSE_URL,
                params={"latitude": lat, "longitude": lng, "localityLanguage": "en"},
            )
            return extract_bigdatacloud(res.detail) if res.ok else None

        res = await self.http.get_json(
            url=self.cfg.geocoder_reverse_url,
            headers=self._identity_headers,
            params={"lat": lat, "lon": lng, "format": "json", "addressdetails": 1},
        )
        return extract_nominatim(res.detail) if res.ok else None
