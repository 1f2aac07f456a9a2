from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.geo import LatLng, centroid, is_valid_coords, to_point
from app.core.ids import slugify
from app.models.area import Area
from app.models.city import City
from app.models.pincode import Pincode
from app.models.sub_area import SubArea
from app.services.batch_fetch import PincodeFetchResult


log = logging.getLogger(__name__)

BRANCH_TYPES = {
    "Head Post Office": "head_post_office",
    "Sub Post Office": "sub_post_office",
    "Post Office": "post_office",
    "Branch Post Office": "post_office",
}


def map_branch_type(branch_type: str | None) -> str:
    return BRANCH_TYPES.get(branch_type or "", "post_office")


@dataclass(frozen=True)
class HierarchyCounts:
    areas_created: int = 0
    sub_areas_created: int = 0
    pincodes_created: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "areas_created": self.areas_created,
            "sub_areas_created": self.sub_areas_created,
            "pincodes_created": self.pincodes_created,
        }


@dataclass
class SubAreaDraft:
    name: str
    pincode: int
    branch_type: str | None
    delivery_status: str | None
    district: str | None
    state: str | None
    division: str | None
    region: str | None
    coordinates: LatLng | None


@dataclass
class PincodeGroup:
    pincode: int
    district: str
    state: str | None
    sub_areas: list[SubAreaDraft] = field(default_factory=list)
    coordinates: list[LatLng] = field(default_factory=list)  # valid only, in post-office order

    @property
    def area_name(self) -> str:
        names = [sa.name for sa in self.sub_areas if sa.name]
        return ", ".join(names) if names else f"{self.district} - {self.pincode}"

    @property
    def centroid(self) -> LatLng:
        return centroid(self.coordinates)

    @property
    def first_coordinates(self) -> LatLng | None:
        return self.coordinates[0] if self.coordinates else None


def group_by_pincode(results: Iterable[PincodeFetchResult], city_name: str) -> dict[int, PincodeGroup]:
    """
    Pincode is the unit of aggregation; district names are not.
    Insertion order of the returned dict follows the input order.
    """
    groups: dict[int, PincodeGroup] = {}
    for r in results:
        if not r.found:
            continue
        g = groups.get(r.pincode)
        if g is None:
            g = PincodeGroup(pincode=r.pincode, district=r.district or city_name, state=r.state)
            groups[r.pincode] = g

        for po in r.post_offices:
            coords = po.coordinates if is_valid_coords(po.coordinates) else None
            g.sub_areas.append(SubAreaDraft(
                name=po.name,
                pincode=r.pincode,
                branch_type=po.branch_type,
                delivery_status=po.delivery_status,
                district=r.district,
                state=r.state,
                division=po.division,
                region=po.region,
                coordinates=coords,
            ))
            if coords is not None:
                g.coordinates.append(coords)
    return groups


class HierarchyBuilder:
    """
    Writes a city's Area/SubArea/Pincode snapshot.

    The city's existing rows are deleted and re-inserted. Nothing is committed
    here: the caller owns the transaction, so the delete and the three insert
    phases become visible together or not at all.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def replace_city_hierarchy(
        self,
        *,
        city_id: str,
        city_name: str,
        results: list[PincodeFetchResult],
    ) -> HierarchyCounts:
        groups = group_by_pincode(results, city_name)
        if not groups:
            log.warning("%s: no valid pincode data, keeping existing hierarchy", city_name)
            return HierarchyCounts()

        log.info("%s: rebuilding hierarchy from %d pincodes", city_name, len(groups))

        # sub-areas reference areas
        await self.db.execute(delete(SubArea).where(SubArea.city_id == city_id))
        await self.db.execute(delete(Pincode).where(Pincode.city_id == city_id))
        await self.db.execute(delete(Area).where(Area.city_id == city_id))

        # Phase 1: one Area per pincode with at least one sub-area
        areas: list[Area] = []
        for pincode, g in groups.items():
            if not g.sub_areas:
                continue
            lat, lng = g.centroid
            areas.append(Area(
                city_id=city_id,
                name=g.area_name,
                slug=f"{slugify(g.district)}-{pincode}-{city_id}",
                type="locality",
                centroid=to_point((lat, lng)),
                pincode=pincode,
                total_sub_areas=len(g.sub_areas),
                district=g.district,
                state=g.state,
                average_latitude=lat,
                average_longitude=lng,
                is_serviceable=False,
            ))
        self.db.add_all(areas)
        await self.db.flush()

        area_by_pincode = {a.pincode: a.id for a in areas}

        # Phase 2: sub-areas tagged with their owning area
        sub_areas: list[SubArea] = []
        for pincode, g in groups.items():
            area_id = area_by_pincode.get(pincode)
            if not area_id:
                continue
            for idx, sa in enumerate(g.sub_areas):
                sub_areas.append(SubArea(
                    area_id=area_id,
                    city_id=city_id,
                    name=sa.name,
                    slug=f"{slugify(sa.name)}-{sa.pincode}-{idx}",
                    pincode=sa.pincode,
                    type=map_branch_type(sa.branch_type),
                    location=to_point(sa.coordinates),
                    details={
                        "branch_type": sa.branch_type,
                        "delivery_status": sa.delivery_status,
                        "district": sa.district,
                        "state": sa.state,
                        "division": sa.division,
                        "region": sa.region,
                    },
                    is_serviceable=False,
                ))
        self.db.add_all(sub_areas)
        await self.db.flush()

        # Phase 3: pincode records
        pincodes: list[Pincode] = []
        for pincode, g in groups.items():
            area_id = area_by_pincode.get(pincode)
            if not area_id:
                continue
            pincodes.append(Pincode(
                pincode=pincode,
                city_id=city_id,
                area_ids=[area_id],
                location=to_point(g.first_coordinates),
                is_serviceable=False,
                district=g.district,
                state=g.state,
                total_sub_areas=len(g.sub_areas),
                primary_area=g.area_name,
            ))
        self.db.add_all(pincodes)
        await self.db.flush()

        counts = HierarchyCounts(
            areas_created=len(areas),
            sub_areas_created=len(sub_areas),
            pincodes_created=len(pincodes),
        )
        log.info(
            "%s: %d areas, %d sub-areas, %d pincodes staged",
            city_name, counts.areas_created, counts.sub_areas_created, counts.pincodes_created,
        )
        return counts

    async def refresh_city_metadata(self, city_id: str) -> City:
        async def _count(model) -> int:
            return (await self.db.execute(
                select(func.count()).select_from(model).where(model.city_id == city_id)
            )).scalar_one()

        city = (await self.db.execute(select(City).where(City.id == city_id))).scalar_one()
        city.total_areas = await _count(Area)
        city.total_sub_areas = await _count(SubArea)
        city.total_pincodes = await _count(Pincode)
        city.last_imported_at = datetime.now(timezone.utc)
        city.import_status = "completed"
        await self.db.flush()
        return city
