# position_feed.py
# Validation and rate filtering for incoming position fixes.
# The feed itself (GPS driver, phone, simulator) lives outside this package.

import math
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from .errors import InvalidFix
from .geo_utils import haversine_distance
from .models import Coord


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidFix(f"{name} is not a number: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidFix(f"{name} is not a number: {value!r}") from None
    if not math.isfinite(number):
        raise InvalidFix(f"{name} is not finite: {value!r}")
    return number


def parse_fix(raw: Any) -> Coord:
    """
    Normalise a raw fix into a Coord.

    Accepted shapes:
        Coord(lat, lon)
        {"lat": .., "lon": ..} or {"latitude": .., "longitude": ..}
        {"coords": {"latitude": .., "longitude": ..}}   (expo-location style)
        (lat, lon)

    Raises:
        InvalidFix: empty, malformed or out-of-range fix.
    """
    if raw is None:
        raise InvalidFix("Empty fix.")

    if isinstance(raw, Coord):
        lat, lon = raw.lat, raw.lon
    elif isinstance(raw, Mapping):
        if isinstance(raw.get("coords"), Mapping):
            raw = raw["coords"]
        lat = raw.get("lat", raw.get("latitude"))
        lon = raw.get("lon", raw.get("longitude"))
        if lat is None or lon is None:
            raise InvalidFix(f"Fix without coordinates: {dict(raw)!r}")
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        if len(raw) != 2:
            raise InvalidFix(f"Expected (lat, lon), got {len(raw)} values.")
        lat, lon = raw
    else:
        raise InvalidFix(f"Unsupported fix type: {type(raw).__name__}")

    lat = _number(lat, "latitude")
    lon = _number(lon, "longitude")
    if not -90.0 <= lat <= 90.0:
        raise InvalidFix(f"Latitude out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise InvalidFix(f"Longitude out of range: {lon}")
    return Coord(lat, lon)


class FixFilter:
    """
    Drops fixes that arrive too soon or moved too little since the last
    accepted one. Mirrors the time/distance interval of mobile location APIs.
    """

    def __init__(self, min_interval_s: float = 1.0, min_distance_m: float = 1.0) -> None:
        self.min_interval_s = min_interval_s
        self.min_distance_m = min_distance_m
        self._last: Optional[Coord] = None
        self._last_ts: Optional[float] = None

    def accept(self, position: Coord, timestamp: float) -> bool:
        if self._last is not None:
            if timestamp - self._last_ts < self.min_interval_s:
                return False
            if haversine_distance(self._last, position) < self.min_distance_m:
                return False
        self._last = position
        self._last_ts = timestamp
        return True

    def reset(self) -> None:
        self._last = None
        self._last_ts = None
