"""Great-circle helpers for the proximity query."""

from __future__ import annotations

import math

EARTH_RADIUS_M = 6_371_008.8
# Metres per degree of latitude (and of longitude at the equator)
_M_PER_DEG = math.pi * EARTH_RADIUS_M / 180.0


def haversine_meters(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lon: float, lat: float, radius_m: float) -> tuple[float, float, float, float]:
    """Return (min_lon, min_lat, max_lon, max_lat) enclosing a circle of *radius_m*.

    The box is a coarse prefilter for an indexed range query; callers refine
    with :func:`haversine_meters`. Near the poles, or when the box would wrap
    the antimeridian, the longitude span is opened to the full range.
    """
    dlat = radius_m / _M_PER_DEG
    min_lat = max(-90.0, lat - dlat)
    max_lat = min(90.0, lat + dlat)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        return (-180.0, min_lat, 180.0, max_lat)
    dlon = radius_m / (_M_PER_DEG * cos_lat)
    if lon - dlon < -180.0 or lon + dlon > 180.0:
        return (-180.0, min_lat, 180.0, max_lat)
    return (lon - dlon, min_lat, lon + dlon, max_lat)
