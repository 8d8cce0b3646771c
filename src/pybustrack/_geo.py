"""Great-circle helpers on a spherical Earth."""

from __future__ import annotations

import math

from pybustrack._constants import EARTH_RADIUS_M


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters.

    Uses the haversine formula on a sphere of mean radius
    :data:`~pybustrack._constants.EARTH_RADIUS_M`.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    # Clamp rounding drift so antipodal points don't produce a domain error.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
