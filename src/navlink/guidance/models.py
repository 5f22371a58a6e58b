# models.py
# Shared data structures and enums used across all modules.

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable geographic coordinate."""
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}

    @staticmethod
    def from_dict(d: dict) -> "Coord":
        return Coord(float(d["lat"]), float(d["lon"]))


class TravelMode(Enum):
    DRIVING = "driving"
    WALKING = "walking"


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Maneuver:
    """Where and how the user has to act at a step."""
    location: Coord
    instruction: str
    type: str = ""               # "depart" | "turn" | "arrive" | ...
    modifier: str = ""           # "left" | "slight right" | "straight" | ...


@dataclass
class RouteStep:
    """A single navigation instruction in a route."""
    step_id: int
    maneuver: Maneuver
    distance_meters: float = 0.0
    road_name: Optional[str] = None

    @property
    def location(self) -> Coord:
        return self.maneuver.location

    @property
    def text(self) -> str:
        return self.maneuver.instruction

    def to_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "text": self.maneuver.instruction,
            "location": self.maneuver.location.to_dict(),
            "type": self.maneuver.type,
            "modifier": self.maneuver.modifier,
            "distance_meters": self.distance_meters,
            "road_name": self.road_name,
        }

    @staticmethod
    def from_dict(d: dict) -> "RouteStep":
        return RouteStep(
            step_id=d["step_id"],
            maneuver=Maneuver(
                location=Coord.from_dict(d["location"]),
                instruction=d["text"],
                type=d.get("type", ""),
                modifier=d.get("modifier", ""),
            ),
            distance_meters=d.get("distance_meters", 0.0),
            road_name=d.get("road_name"),
        )


@dataclass
class Route:
    """
    Geometry and steps returned by a route provider.

    generation is stamped by RouteSession; providers leave it at 0.
    """
    geometry: List[Coord]
    steps: List[RouteStep]
    total_distance_m: float
    generation: int = 0
    destination: Optional[Coord] = None
    mode: TravelMode = TravelMode.DRIVING

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "mode": self.mode.value,
            "total_distance_m": self.total_distance_m,
            "destination": self.destination.to_dict() if self.destination else None,
            "geometry": [[c.lat, c.lon] for c in self.geometry],
            "steps": [s.to_dict() for s in self.steps],
        }

    @staticmethod
    def from_dict(d: dict) -> "Route":
        dest = d.get("destination")
        return Route(
            geometry=[Coord(lat, lon) for lat, lon in d.get("geometry", [])],
            steps=[RouteStep.from_dict(s) for s in d["steps"]],
            total_distance_m=d["total_distance_m"],
            generation=d.get("generation", 0),
            destination=Coord.from_dict(dest) if dest else None,
            mode=TravelMode(d.get("mode", TravelMode.DRIVING.value)),
        )


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

@dataclass
class TrackerState:
    """Owned by StepTracker. announced: current index has been emitted."""
    current_step_index: int = 0
    route_generation: int = 0
    announced: bool = False


@dataclass(frozen=True)
class StepMatch:
    """Result of step_tracker.locate()."""
    index: int
    distance_m: float


@dataclass(frozen=True)
class GuidanceMessage:
    """What gets shown to the user and sent to the peripheral."""
    distance_remaining_km: float
    instruction: str
    step_index: int = 0
    generation: int = 0

    def to_wire(self) -> str:
        # One line per message; embedded line breaks would split the frame
        instruction = " ".join(self.instruction.splitlines())
        return f"D:{self.distance_remaining_km:.2f}km | Dir:{instruction}\n"

    def to_dict(self) -> dict:
        return {
            "distance_remaining_km": self.distance_remaining_km,
            "instruction": self.instruction,
            "step_index": self.step_index,
            "generation": self.generation,
        }


# ---------------------------------------------------------------------------
# Session status (UI state)
# ---------------------------------------------------------------------------

class GuidanceStatus(Enum):
    IDLE        = "idle"           # no route yet
    ROUTING     = "routing"        # first route request outstanding
    GUIDING     = "guiding"
    REROUTING   = "rerouting"      # deviation recompute outstanding
    FINISHED    = "finished"       # last step announced
    CLOSED      = "closed"


@dataclass
class GuidanceState:
    """Snapshot handed to UI code; never mutated by readers."""
    status: GuidanceStatus = GuidanceStatus.IDLE
    route_generation: int = 0
    step_index: Optional[int] = None
    step_count: int = 0
    last_message: Optional[GuidanceMessage] = None
    position: Optional[Coord] = None
    peripheral_connected: bool = False
    errors: List[str] = field(default_factory=list)
