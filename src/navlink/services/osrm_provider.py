# osrm_provider.py
# Route provider backed by an OSRM server (/route service).
# Talks HTTP, converts (lat, lon) <-> OSRM (lon,lat) and normalises the
# response into a Route. Knows nothing about step tracking.

import logging
from typing import List, Optional

import requests

from navlink.guidance.errors import NetworkError, NoRoute
from navlink.guidance.geo_utils import bearing_to_modifier
from navlink.guidance.models import Coord, Maneuver, Route, RouteStep, TravelMode
from navlink.guidance.nav_config import NavConfig

logger = logging.getLogger(__name__)

# OSRM profile names per travel mode
PROFILES = {
    TravelMode.DRIVING: "driving",
    TravelMode.WALKING: "foot",
}


def compose_instruction(maneuver_type: str, modifier: str, road_name: str) -> str:
    """
    Human-readable instruction from OSRM maneuver fields.

    OSRM itself does not ship text; this covers the maneuver types
    its /route service emits.
    """
    modifier = (modifier or "").strip()
    onto = f" onto {road_name}" if road_name else ""
    on = f" on {road_name}" if road_name else ""

    if maneuver_type == "depart":
        heading = f" {modifier}" if modifier and modifier != "straight" else ""
        return f"Head{heading}{on}".strip()
    if maneuver_type == "arrive":
        return "You have reached your destination"
    if maneuver_type in ("roundabout", "rotary", "roundabout turn"):
        return f"Enter the roundabout and exit{onto}".strip()
    if maneuver_type in ("exit roundabout", "exit rotary"):
        return f"Exit the roundabout{onto}"
    if maneuver_type == "merge":
        return f"Merge{onto}"
    if maneuver_type in ("on ramp", "off ramp"):
        side = f" {modifier}" if modifier else ""
        verb = "Take the ramp" if maneuver_type == "on ramp" else "Take the exit"
        return f"{verb}{side}{onto}"
    if maneuver_type == "fork":
        side = f" {modifier}" if modifier else ""
        return f"Keep{side} at the fork{onto}"
    if modifier == "uturn":
        return f"Make a U-turn{onto}"
    if not modifier or modifier == "straight":
        return f"Continue straight{on}"
    return f"Turn {modifier}{onto}"


def _parse_step(step_id: int, raw: dict) -> RouteStep:
    maneuver = raw.get("maneuver") or {}
    lon, lat = maneuver["location"]
    m_type = maneuver.get("type", "")
    modifier = maneuver.get("modifier", "")
    if not modifier and "bearing_before" in maneuver and "bearing_after" in maneuver and m_type not in ("depart", "arrive"):
        modifier = bearing_to_modifier(maneuver["bearing_after"] - maneuver["bearing_before"])
    road_name = raw.get("name") or None
    instruction = maneuver.get("instruction") or compose_instruction(m_type, modifier, road_name)
    return RouteStep(
        step_id=step_id,
        maneuver=Maneuver(
            location=Coord(float(lat), float(lon)),
            instruction=instruction,
            type=m_type,
            modifier=modifier,
        ),
        distance_meters=float(raw.get("distance", 0.0)),
        road_name=road_name,
    )


def parse_route(data: dict) -> Route:
    """
    Convert an OSRM /route response body into a Route.

    Raises:
        NoRoute: OSRM reported an error or returned nothing usable.
    """
    if data.get("code") != "Ok":
        raise NoRoute(f"OSRM error {data.get('code')}: {data.get('message', 'Unknown error')}")
    routes = data.get("routes") or []
    if not routes:
        raise NoRoute("OSRM returned no routes.")

    route = routes[0]  # OSRM may return alternatives; the first is the best
    geometry = [
        Coord(float(lat), float(lon))
        for lon, lat in (route.get("geometry") or {}).get("coordinates", [])
    ]
    steps: List[RouteStep] = []
    try:
        for leg in route.get("legs", []):
            for raw in leg.get("steps", []):
                steps.append(_parse_step(len(steps), raw))
    except (KeyError, TypeError, ValueError) as e:
        raise NoRoute(f"Malformed OSRM step: {e}") from e

    if not steps:
        raise NoRoute("OSRM route has no steps.")
    return Route(
        geometry=geometry,
        steps=steps,
        total_distance_m=float(route.get("distance", 0.0)),
    )


class OSRMRouteProvider:
    """
    OSRM adapter.

    Args:
        config:  NavConfig (base URL, timeout, user agent).
        session: Optional requests.Session to reuse connections.
    """

    def __init__(self, config: Optional[NavConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or NavConfig()
        self.base_url = self.config.osrm_base_url.rstrip("/")
        self.timeout = self.config.http_timeout_s
        self._http = session or requests.Session()
        self._http.headers.update({"User-Agent": self.config.user_agent})

    @staticmethod
    def format_coordinates(coords: List[Coord]) -> str:
        """Convert coords to OSRM format 'lon,lat;lon,lat;...'"""
        return ";".join(f"{c.lon},{c.lat}" for c in coords)

    def route(self, start: Coord, end: Coord, mode: TravelMode = TravelMode.DRIVING) -> Route:
        """
        Fetch the best route from start to end.

        Raises:
            NoRoute, NetworkError
        """
        url = f"{self.base_url}/route/v1/{PROFILES[mode]}/{self.format_coordinates([start, end])}"
        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "true",
        }
        try:
            response = self._http.get(url, params=params, timeout=self.timeout)
            data = response.json()
        except requests.RequestException as e:
            raise NetworkError(f"OSRM request failed: {e}") from e
        except ValueError as e:
            raise NetworkError(f"OSRM returned invalid JSON (HTTP {response.status_code}).") from e

        route = parse_route(data)
        logger.debug(f"OSRM: {len(route.steps)} steps, {route.total_distance_m:.0f} m")
        return route
