import math
from typing import NamedTuple, Optional

EARTH_RADIUS_KM = 6371.0


class BoundingBox(NamedTuple):
    min_lat: float
    max_lat: float
    min_lon: Optional[float]
    max_lon: Optional[float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two WGS84 points."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(lat: float, lon: float, radius_km: float) -> BoundingBox:
    """
    Coarse lat/lon box containing every point within ``radius_km`` of (lat, lon).

    Used only as an index-friendly pre-filter; the exact test is the haversine.
    The longitude bounds are None when the box would touch a pole or cross the
    antimeridian, in which case callers must not filter on longitude.
    """
    dlat = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat = lat - dlat
    max_lat = lat + dlat

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)

    # Widest longitude span reached at the box edge closest to a pole
    edge_lat = max(abs(min_lat), abs(max_lat))
    dlon = math.degrees(radius_km / (EARTH_RADIUS_KM * math.cos(math.radians(edge_lat))))
    min_lon = lon - dlon
    max_lon = lon + dlon

    if min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)

    return BoundingBox(min_lat, max_lat, min_lon, max_lon)
