"""
Geographic helpers
Great-circle distance and simple centroids over WGS84 coordinates
"""

import math
from typing import Iterable, Optional, Tuple

EARTH_RADIUS_M = 6371000.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def centroid(points: Iterable[Tuple[float, float]]) -> Optional[Tuple[float, float]]:
    """Arithmetic mean of (lat, lon) pairs, None for an empty input

    Good enough for the sub-kilometre clusters a single hour produces.
    """
    lat_sum = 0.0
    lon_sum = 0.0
    count = 0
    for lat, lon in points:
        lat_sum += lat
        lon_sum += lon
        count += 1
    if count == 0:
        return None
    return lat_sum / count, lon_sum / count


def coordinate_key(latitude: float, longitude: float, precision: int = 4) -> str:
    """Rounded "lat,lon" key (4 decimals is roughly 11 m)"""
    return f"{latitude:.{precision}f},{longitude:.{precision}f}"
