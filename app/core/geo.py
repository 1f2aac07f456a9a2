from __future__ import annotations

from typing import Any, Iterable, Sequence

# Providers and aggregation work in (lat, lng); stored points are GeoJSON (lng, lat).
LatLng = tuple[float, float]

UNGEOCODED: LatLng = (0.0, 0.0)


def to_point(coords: Sequence[float] | None) -> dict[str, Any]:
    lat, lng = coords if coords is not None else UNGEOCODED
    return {"type": "Point", "coordinates": [float(lng), float(lat)]}


def is_valid_coords(coords: Sequence[float] | None) -> bool:
    return coords is not None and len(coords) == 2 and all(c is not None for c in coords)


def centroid(coords: Iterable[Sequence[float] | None]) -> LatLng:
    """
    Arithmetic mean of the valid (lat, lng) pairs. No valid pairs yields the
    UNGEOCODED sentinel rather than an error.
    """
    valid = [c for c in coords if is_valid_coords(c)]
    if not valid:
        return UNGEOCODED
    n = len(valid)
    return sum(c[0] for c in valid) / n, sum(c[1] for c in valid) / n
