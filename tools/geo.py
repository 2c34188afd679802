# tools/geo.py
"""Small geometry helpers shared by dedup, clustering and lodging selection."""
from __future__ import annotations

import math
from typing import Iterable, Optional

from workflows.state import Coordinate

EARTH_RADIUS_KM = 6371.0


def has_coord(coord: Optional[Coordinate]) -> bool:
    """(0, 0) is what several providers return for 'unknown'."""
    return coord is not None and not (coord.lat == 0 and coord.lng == 0)


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def distance_km(a: Optional[Coordinate], b: Optional[Coordinate]) -> Optional[float]:
    """Great-circle distance, or None when either side has no usable coordinate."""
    if not has_coord(a) or not has_coord(b):
        return None
    return haversine_km(a, b)  # type: ignore[arg-type]


def barycenter(coords: Iterable[Optional[Coordinate]]) -> Optional[Coordinate]:
    points = [c for c in coords if has_coord(c)]
    if not points:
        return None
    return Coordinate(
        lat=sum(p.lat for p in points) / len(points),
        lng=sum(p.lng for p in points) / len(points),
    )
