"""Common utility functions."""

from .geo import distance_km, haversine_km, path_distance_km, coordinates, is_valid_point
from .money import to_money, round2

__all__ = [
    "distance_km",
    "haversine_km",
    "path_distance_km",
    "coordinates",
    "is_valid_point",
    "to_money",
    "round2",
]
