# step_tracker.py
# Forward-only step matching against an active route.
# Call sync() whenever the active route may have changed, then update() on every fix.

from typing import List, Optional, Sequence

from .models import Coord, Route, RouteStep, StepMatch, TrackerState
from .geo_utils import haversine_distance
from .nav_config import NavConfig, STEP_THRESHOLD_M


def locate(
    position: Coord,
    steps: Sequence[RouteStep],
    from_index: int,
    threshold_m: float = STEP_THRESHOLD_M,
) -> Optional[StepMatch]:
    """
    Find the step the user is currently at, never looking behind from_index.

    Every step in steps[from_index:] within threshold_m is a candidate; the
    closest one wins, the lowest index on an exact tie.

    Args:
        position:    Current position fix.
        steps:       Ordered steps of the active route.
        from_index:  Last confirmed step index.
        threshold_m: Arrival radius around a maneuver location.

    Returns:
        StepMatch, or None when no step is in range or from_index is
        already the last step.
    """
    if not steps or from_index >= len(steps) - 1:
        return None

    best: Optional[StepMatch] = None
    for index in range(max(from_index, 0), len(steps)):
        dist = haversine_distance(position, steps[index].maneuver.location)
        if dist >= threshold_m:
            continue
        if best is None or dist < best.distance_m:
            best = StepMatch(index=index, distance_m=dist)
    return best


class StepTracker:
    """
    Owns the TrackerState of a single guidance session.

    Usage:
        tracker = StepTracker(config)
        tracker.sync(route)

        # Inside GPS loop:
        match = tracker.update(position, route.steps)
        if match:
            emitter.emit(route, match.index)
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self._state = TrackerState()
        self._step_count: int = 0
        self._has_route: bool = False

    # ------------------------------------------------------------------
    # Route changes
    # ------------------------------------------------------------------

    def sync(self, route: Route) -> bool:
        """
        Reset progress if route belongs to a newer generation.

        Returns:
            True if the state was reset.
        """
        if self._has_route and route.generation <= self._state.route_generation:
            return False
        self._state = TrackerState(current_step_index=0, route_generation=route.generation)
        self._step_count = len(route.steps)
        self._has_route = True
        return True

    def reset(self) -> None:
        self._state = TrackerState()
        self._step_count = 0
        self._has_route = False

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackerState:
        s = self._state
        return TrackerState(s.current_step_index, s.route_generation, s.announced)

    @property
    def current_step_index(self) -> Optional[int]:
        if not self._step_count:
            return None
        return self._state.current_step_index

    @property
    def remaining_steps(self) -> int:
        if not self._step_count:
            return 0
        return self._step_count - self._state.current_step_index

    @property
    def is_last_step(self) -> bool:
        return bool(self._step_count) and self._state.current_step_index == self._step_count - 1

    # ------------------------------------------------------------------
    # Core method, called on every position fix
    # ------------------------------------------------------------------

    def update(self, position: Coord, steps: List[RouteStep]) -> Optional[StepMatch]:
        """
        Advance the step pointer if position resolves to a new step.

        Args:
            position: Validated position fix.
            steps:    Steps of the route last passed to sync().

        Returns:
            StepMatch on a transition (including the first announcement of
            step 0), otherwise None with the state untouched.
        """
        if not steps:
            return None

        state = self._state
        match = locate(position, steps, state.current_step_index, self.config.step_threshold_m)

        # First instruction of a route is always step 0
        if match is None and not state.announced and state.current_step_index == 0:
            dist = haversine_distance(position, steps[0].maneuver.location)
            if dist < self.config.step_threshold_m:
                match = StepMatch(index=0, distance_m=dist)

        if match is None:
            return None
        if match.index == state.current_step_index and state.announced:
            return None

        state.current_step_index = match.index
        state.announced = True
        return match
