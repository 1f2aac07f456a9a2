from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.area import Area
from app.models.city import City
from app.models.pincode import Pincode
from app.models.sub_area import SubArea


async def _page(db: AsyncSession, stmt, *, page: int, limit: int) -> tuple[list, int]:
    total = (await db.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))).scalar_one()
    rows = (await db.execute(stmt.limit(limit).offset((page - 1) * limit))).scalars().all()
    return list(rows), total


async def list_cities(db: AsyncSession, *, is_active: bool | None, page: int, limit: int) -> tuple[list[City], int]:
    stmt = select(City).order_by(City.name)
    if is_active is not None:
        stmt = stmt.where(City.is_active == is_active)
    return await _page(db, stmt, page=page, limit=limit)


async def get_city(db: AsyncSession, city_id: str) -> City | None:
    return (await db.execute(select(City).where(City.id == city_id))).scalar_one_or_none()


async def set_city_active(db: AsyncSession, city_id: str, is_active: bool) -> City | None:
    city = await get_city(db, city_id)
    if city is None:
        return None
    city.is_active = is_active
    await db.flush()
    return city


async def list_areas(
    db: AsyncSession,
    *,
    city_id: str,
    is_serviceable: bool | None,
    search: str | None,
    page: int,
    limit: int,
) -> tuple[list[Area], int]:
    stmt = select(Area).where(Area.city_id == city_id).order_by(Area.name)
    if is_serviceable is not None:
        stmt = stmt.where(Area.is_serviceable == is_serviceable)
    if search:
        stmt = stmt.where(Area.name.ilike(f"%{search}%"))
    return await _page(db, stmt, page=page, limit=limit)


async def list_sub_areas(
    db: AsyncSession,
    *,
    area_id: str,
    is_serviceable: bool | None,
    search: str | None,
    page: int,
    limit: int,
) -> tuple[list[SubArea], int]:
    stmt = select(SubArea).where(SubArea.area_id == area_id).order_by(SubArea.name)
    if is_serviceable is not None:
        stmt = stmt.where(SubArea.is_serviceable == is_serviceable)
    if search:
        conds = [SubArea.name.ilike(f"%{search}%")]
        if search.isdigit():
            conds.append(SubArea.pincode == int(search))
        stmt = stmt.where(or_(*conds))
    return await _page(db, stmt, page=page, limit=limit)


async def update_area_serviceability(
    db: AsyncSession,
    area_id: str,
    *,
    is_serviceable: bool | None,
    priority: int | None,
) -> Area | None:
    area = (await db.execute(select(Area).where(Area.id == area_id))).scalar_one_or_none()
    if area is None:
        return None
    if is_serviceable is not None:
        area.is_serviceable = is_serviceable
        # the flag cascades to every sub-area of the area
        await db.execute(update(SubArea).where(SubArea.area_id == area_id).values(is_serviceable=is_serviceable))
    if priority is not None:
        area.priority = priority
    await db.flush()
    return area


async def bulk_update_area_serviceability(
    db: AsyncSession,
    area_ids: Sequence[str],
    *,
    is_serviceable: bool | None,
    priority: int | None,
) -> dict[str, int]:
    values: dict[str, Any] = {}
    if is_serviceable is not None:
        values["is_serviceable"] = is_serviceable
    if priority is not None:
        values["priority"] = priority

    matched = (await db.execute(select(func.count()).select_from(Area).where(Area.id.in_(area_ids)))).scalar_one()
    if not values:
        return {"matched": matched, "modified": 0}

    res = await db.execute(update(Area).where(Area.id.in_(area_ids)).values(**values))
    if is_serviceable is not None:
        await db.execute(update(SubArea).where(SubArea.area_id.in_(area_ids)).values(is_serviceable=is_serviceable))
    await db.flush()
    return {"matched": matched, "modified": res.rowcount or 0}


async def update_sub_area_serviceability(
    db: AsyncSession,
    sub_area_id: str,
    *,
    is_serviceable: bool | None,
    priority: int | None,
) -> SubArea | None:
    sub = (await db.execute(select(SubArea).where(SubArea.id == sub_area_id))).scalar_one_or_none()
    if sub is None:
        return None
    if is_serviceable is not None:
        sub.is_serviceable = is_serviceable
    if priority is not None:
        sub.priority = priority
    await db.flush()
    return sub


async def get_pincode_details(db: AsyncSession, pincode: int) -> dict[str, Any] | None:
    row = (await db.execute(select(Pincode).where(Pincode.pincode == pincode))).scalar_one_or_none()
    if row is None:
        return None
    city = await get_city(db, row.city_id) if row.city_id else None
    areas = []
    if row.area_ids:
        found = (await db.execute(select(Area).where(Area.id.in_(row.area_ids)))).scalars().all()
        by_id = {a.id: a for a in found}
        areas = [by_id[i] for i in row.area_ids if i in by_id]
    subs = (await db.execute(
        select(SubArea).where(SubArea.pincode == pincode).order_by(SubArea.name)
    )).scalars().all()
    return {"pincode": row, "city": city, "areas": areas, "sub_areas": list(subs)}


async def search_locations(
    db: AsyncSession,
    *,
    query: str,
    city_id: str | None,
    kind: str,
    limit: int,
) -> dict[str, list]:
    results: dict[str, list] = {"areas": [], "sub_areas": [], "pincodes": []}
    pattern = f"%{query}%"

    if kind in ("all", "areas"):
        stmt = select(Area).where(Area.name.ilike(pattern))
        if city_id:
            stmt = stmt.where(Area.city_id == city_id)
        results["areas"] = list((await db.execute(stmt.order_by(Area.name).limit(limit))).scalars().all())

    if kind in ("all", "sub_areas"):
        stmt = select(SubArea).where(SubArea.name.ilike(pattern))
        if city_id:
            stmt = stmt.where(SubArea.city_id == city_id)
        results["sub_areas"] = list((await db.execute(stmt.order_by(SubArea.name).limit(limit))).scalars().all())

    if kind in ("all", "pincodes") and query.isdigit():
        n = int(query)
        stmt = select(Pincode).where(Pincode.pincode >= n, Pincode.pincode < n + 100)
        if city_id:
            stmt = stmt.where(Pincode.city_id == city_id)
        results["pincodes"] = list((await db.execute(stmt.order_by(Pincode.pincode).limit(limit))).scalars().all())

    return results


async def get_city_hierarchy(db: AsyncSession, city: City) -> list[dict[str, Any]]:
    areas = (await db.execute(select(Area).where(Area.city_id == city.id).order_by(Area.name))).scalars().all()
    subs = (await db.execute(
        select(SubArea).where(SubArea.city_id == city.id).order_by(SubArea.name)
    )).scalars().all()

    by_area: dict[str, list[SubArea]] = {}
    for s in subs:
        by_area.setdefault(s.area_id, []).append(s)

    return [{"area": a, "sub_areas": by_area.get(a.id, [])} for a in areas]
