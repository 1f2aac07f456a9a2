from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


def page_meta(total: int, page: int, limit: int) -> PageMeta:
    return PageMeta(total=total, page=page, limit=limit, pages=(total + limit - 1) // limit if limit else 0)


class CityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    state: str
    country: str
    center: dict
    pincode_ranges: list[dict]
    total_areas: int
    total_sub_areas: int
    total_pincodes: int
    last_imported_at: datetime | None = None
    import_status: str
    is_active: bool


class AreaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    city_id: str
    name: str
    slug: str
    type: str
    centroid: dict
    pincode: int
    total_sub_areas: int
    district: str | None = None
    state: str | None = None
    is_serviceable: bool
    priority: int


class SubAreaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    area_id: str
    city_id: str
    name: str
    slug: str
    pincode: int
    type: str
    location: dict
    details: dict
    is_serviceable: bool
    priority: int


class PincodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pincode: int
    city_id: str | None = None
    area_ids: list[str]
    location: dict
    is_serviceable: bool
    district: str | None = None
    state: str | None = None
    total_sub_areas: int
    primary_area: str | None = None


class CityList(BaseModel):
    cities: list[CityOut]
    pagination: PageMeta


class AreaList(BaseModel):
    areas: list[AreaOut]
    pagination: PageMeta


class SubAreaList(BaseModel):
    sub_areas: list[SubAreaOut]
    pagination: PageMeta


class CityActiveUpdate(BaseModel):
    is_active: bool


class ServiceabilityUpdate(BaseModel):
    is_serviceable: bool | None = None
    priority: int | None = Field(default=None, ge=0)


class BulkServiceabilityUpdate(ServiceabilityUpdate):
    area_ids: list[str] = Field(..., min_length=1)


class PincodeDetails(BaseModel):
    pincode: PincodeOut
    city: CityOut | None = None
    areas: list[AreaOut]
    sub_areas: list[SubAreaOut]


class SearchResults(BaseModel):
    areas: list[AreaOut] = Field(default_factory=list)
    sub_areas: list[SubAreaOut] = Field(default_factory=list)
    pincodes: list[PincodeOut] = Field(default_factory=list)


class HierarchyArea(BaseModel):
    area: AreaOut
    sub_areas: list[SubAreaOut]


class CityHierarchy(BaseModel):
    city: CityOut
    hierarchy: list[HierarchyArea]


class ServiceabilityOut(BaseModel):
    is_serviceable: bool
    city: str | None = None
    city_id: str | None = None
    area: str | None = None
    area_id: str | None = None
    matched_pincode: int | None = None
    check_method: str | None = None


class CoordinatesIn(BaseModel):
    # range checks happen in the lookup service so they answer 400, not 422
    latitude: float | str | None = None
    longitude: float | str | None = None


class LocationLookupOut(BaseModel):
    message: str
    data: dict
