"""Great-circle helpers shared by the ETA tracker and the vehicle locators."""
from __future__ import annotations

import math
from typing import Tuple

# (lat, lon) in decimal degrees
Point = Tuple[float, float]

R_EARTH = 6371000.0


def to_rad(d: float) -> float: return d * math.pi / 180.0


def haversine(a: Point, b: Point) -> float:
    """Distance in meters between two (lat, lon) points."""
    lat1, lon1 = a; lat2, lon2 = b
    dlat = to_rad(lat2-lat1); dlon = to_rad(lon2-lon1)
    s = math.sin(dlat/2)**2 + math.cos(to_rad(lat1))*math.cos(to_rad(lat2))*math.sin(dlon/2)**2
    return 2 * R_EARTH * math.asin(math.sqrt(s))


def within(a: Point, b: Point, tolerance_m: float) -> bool:
    return haversine(a, b) < tolerance_m


__all__ = ["Point", "R_EARTH", "haversine", "within"]
