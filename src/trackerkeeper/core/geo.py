from __future__ import annotations

from math import asin, cos, radians, sin, sqrt
from typing import Protocol

"""
Geospatial helpers.

The tracker only needs great-circle distance between two fixes, so we keep a tiny
haversine implementation here instead of pulling in a GIS dependency.
"""

EARTH_RADIUS_M = 6_371_000


class LatLon(Protocol):
    latitude: float
    longitude: float


def distance_m(a: LatLon, b: LatLon) -> float:
    """Compute great-circle distance in meters between two points (degrees in)."""
    lat1 = radians(a.latitude)
    lon1 = radians(a.longitude)
    lat2 = radians(b.latitude)
    lon2 = radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push `h` a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_M * asin(sqrt(min(1.0, h)))
