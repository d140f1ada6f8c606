"""
Geographic utility functions.

Great-circle distances used by matching, surge and trip pricing. Points are
passed around as plain mappings (``{"latitude": .., "longitude": ..}``) or as
objects exposing ``latitude``/``longitude`` attributes.
"""

import math
from typing import Any, Iterable, Optional, Tuple

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Distance in kilometres between two coordinate pairs (haversine formula).

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(min(1.0, math.sqrt(a)))
    return EARTH_RADIUS_KM * c


def _read(point: Any, *names: str) -> Any:
    for name in names:
        if isinstance(point, dict):
            if name in point:
                return point[name]
        elif hasattr(point, name):
            return getattr(point, name)
    return None


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coordinates(point: Any) -> Optional[Tuple[float, float]]:
    """
    Extract a ``(latitude, longitude)`` pair from a point-like value.

    Returns None when the point is missing or either coordinate is not a
    finite number inside the valid range.
    """
    if point is None:
        return None
    lat = _as_number(_read(point, "latitude", "lat"))
    lon = _as_number(_read(point, "longitude", "lng", "lon"))
    if lat is None or lon is None:
        return None
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        return None
    return lat, lon


def is_valid_point(point: Any) -> bool:
    return coordinates(point) is not None


def distance_km(a: Any, b: Any) -> float:
    """
    Haversine distance in kilometres between two points.

    Returns ``math.inf`` if either point has no valid coordinates, so callers
    filtering by radius drop it naturally.
    """
    first = coordinates(a)
    second = coordinates(b)
    if first is None or second is None:
        return math.inf
    return haversine_km(first[0], first[1], second[0], second[1])


def path_distance_km(points: Iterable[Any]) -> float:
    """Sum of haversine segments between consecutive points, in order."""
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            segment = distance_km(previous, point)
            if math.isfinite(segment):
                total += segment
        previous = point
    return total
