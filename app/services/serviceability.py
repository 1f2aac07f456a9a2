from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.area import Area
from app.models.city import City
from app.models.pincode import Pincode


log = logging.getLogger(__name__)

CHECK_METHOD_PINCODE_EXISTS = "pincode_exists"


class ServiceabilityLookupError(Exception):
    """
    The hierarchy could not be read. Distinct from "not serviceable".
    """


@dataclass(frozen=True)
class ServiceabilityResult:
    is_serviceable: bool
    city: str | None = None
    city_id: str | None = None
    area: str | None = None
    area_id: str | None = None
    matched_pincode: int | None = None
    check_method: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


NOT_SERVICEABLE = ServiceabilityResult(is_serviceable=False)


def _parse_pincode(pincode: int | str | None) -> int | None:
    if pincode is None:
        return None
    if isinstance(pincode, int):
        return pincode
    s = str(pincode).strip().replace(" ", "")
    return int(s) if s.isdigit() else None


def match_area(areas: Sequence[Area], hint: str) -> Area | None:
    """
    Tie-break for areas sharing a pincode, in stored order:
      1. case-insensitive exact name
      2. case-insensitive containment, either direction
      3. the first stored area
    """
    if not areas:
        return None
    needle = hint.strip().lower()

    for a in areas:
        if a.name and a.name.lower() == needle:
            return a
    for a in areas:
        if a.name and (needle in a.name.lower() or a.name.lower() in needle):
            return a
    return areas[0]


class ServiceabilityResolver:
    """
    A pincode present in the imported hierarchy is serviceable.

    City/Area is_active and is_serviceable flags are deliberately not
    consulted here; they are informational for this check.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def check_serviceability(
        self,
        pincode: int | str | None,
        area_name_hint: str | None = None,
    ) -> ServiceabilityResult:
        if pincode is None or pincode == "":
            return NOT_SERVICEABLE
        # a blank hint is no hint
        area_name_hint = (area_name_hint or "").strip() or None

        code = _parse_pincode(pincode)
        if code is None:
            log.info("serviceability: unparsable pincode %r", pincode)
            return NOT_SERVICEABLE

        try:
            row = (await self.db.execute(select(Pincode).where(Pincode.pincode == code))).scalar_one_or_none()
            if row is None:
                log.info("serviceability: pincode %s not imported", code)
                return NOT_SERVICEABLE

            city = None
            if row.city_id:
                city = (await self.db.execute(select(City).where(City.id == row.city_id))).scalar_one_or_none()

            areas: list[Area] = []
            if area_name_hint and row.area_ids:
                found = (await self.db.execute(select(Area).where(Area.id.in_(row.area_ids)))).scalars().all()
                by_id = {a.id: a for a in found}
                areas = [by_id[i] for i in row.area_ids if i in by_id]
        except SQLAlchemyError as e:
            log.exception("serviceability lookup failed for %s", code)
            raise ServiceabilityLookupError(str(e)) from e

        matched = match_area(areas, area_name_hint) if area_name_hint else None

        result = ServiceabilityResult(
            is_serviceable=True,
            city=city.name if city else None,
            city_id=city.id if city else None,
            area=matched.name if matched else None,
            area_id=matched.id if matched else None,
            matched_pincode=row.pincode,
            check_method=CHECK_METHOD_PINCODE_EXISTS,
        )
        log.info("serviceability: %s serviceable (city=%s, area=%s)", code, result.city, result.area)
        return result
