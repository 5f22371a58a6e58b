# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects, no imports from other project modules except models.

import math
from typing import Sequence

import numpy as np
from shapely.geometry import LineString, Point

from .models import Coord


EARTH_RADIUS_M = 6_371_000.0


def haversine_distance(a: Coord, b: Coord) -> float:
    """
    Great-circle distance between two points in metres.

    Args:
        a: Origin.
        b: Destination.

    Returns:
        Distance in metres.
    """
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_to_modifier(bearing_diff: float) -> str:
    """
    Turn modifier derived from the change in bearing, in the same vocabulary
    OSRM uses for maneuver.modifier.
    """
    diff = (bearing_diff + 180) % 360 - 180
    angle = abs(diff)
    side = "right" if diff > 0 else "left"
    if angle > 170:
        return "uturn"
    if angle > 135:
        return f"sharp {side}"
    if angle > 45:
        return side
    if angle > 10:
        return f"slight {side}"
    return "straight"


def _to_local_xy(origin: Coord, coords: Sequence[Coord]) -> np.ndarray:
    """Equirectangular projection (metres) centred on origin."""
    lats = np.radians([c.lat for c in coords])
    lons = np.radians([c.lon for c in coords])
    lat0, lon0 = math.radians(origin.lat), math.radians(origin.lon)
    x = EARTH_RADIUS_M * (lons - lon0) * math.cos(lat0)
    y = EARTH_RADIUS_M * (lats - lat0)
    return np.column_stack((x, y))


def distance_to_polyline(point: Coord, polyline: Sequence[Coord]) -> float:
    """
    Shortest distance in metres from point to a polyline.

    Accurate for the few-hundred-metre scale used by deviation checks.
    Returns inf for an empty polyline.
    """
    if not polyline:
        return math.inf
    if len(polyline) == 1:
        return haversine_distance(point, polyline[0])
    xy = _to_local_xy(point, polyline)
    return float(LineString(xy).distance(Point(0.0, 0.0)))
