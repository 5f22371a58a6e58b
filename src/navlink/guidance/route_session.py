# route_session.py
# Owns the active route and its generation counter.
# Route requests run on a thread pool; only the newest generation is ever installed.

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .errors import RouteError
from .geo_utils import distance_to_polyline
from .models import Coord, Route, TravelMode
from .nav_config import NavConfig

logger = logging.getLogger(__name__)


class RouteSession:
    """
    Active route holder for one guidance session.

    The provider is any object with
        route(start: Coord, end: Coord, mode: TravelMode) -> Route
    raising NoRoute / NetworkError on failure.

    Args:
        provider: Route provider (see navlink.services.osrm_provider).
        config:   NavConfig instance.
        executor: Optional executor; one is created (and owned) if omitted.
        clock:    Monotonic time source, used for the reroute cooldown.
    """

    def __init__(
        self,
        provider,
        config: Optional[NavConfig] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or NavConfig()
        self._provider = provider
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.route_workers,
            thread_name_prefix="route-request",
        )
        self._clock = clock

        self._lock = threading.Lock()
        self._route: Optional[Route] = None
        self._generation: int = 0                 # highest issued
        self._destination: Optional[Coord] = None   # of the installed route
        self._mode = TravelMode(self.config.travel_mode)
        self._pending: Dict[int, Future] = {}
        self._last_request_at: Optional[float] = None
        self._closed = False
        self._on_installed: List[Callable[[Route], None]] = []
        self._on_failed: List[Callable[[int, str], None]] = []

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def active_route(self) -> Optional[Route]:
        with self._lock:
            return self._route

    @property
    def latest_generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def destination(self) -> Optional[Coord]:
        """Destination of the installed route; a failed request leaves it unchanged."""
        with self._lock:
            return self._destination

    @property
    def is_requesting(self) -> bool:
        """True while the newest issued request has not completed."""
        with self._lock:
            return self._generation in self._pending

    @property
    def is_closed(self) -> bool:
        return self._closed

    def add_install_listener(self, callback: Callable[[Route], None]) -> None:
        """callback(route) runs on the worker thread right after installation."""
        self._on_installed.append(callback)

    def add_failure_listener(self, callback: Callable[[int, str], None]) -> None:
        """callback(generation, reason) when the newest request fails or returns no steps."""
        self._on_failed.append(callback)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_route(
        self,
        origin: Coord,
        destination: Coord,
        mode: Optional[TravelMode] = None,
    ) -> Future:
        """
        Ask the provider for a new route without blocking.

        The generation is assigned before the call is issued. The returned
        future resolves to the installed Route, or None if the result was
        stale, empty or failed.
        """
        with self._lock:
            if self._closed:
                future: Future = Future()
                future.set_result(None)
                return future
            self._generation += 1
            generation = self._generation
            mode = mode or self._mode
            self._last_request_at = self._clock()
            future = self._executor.submit(self._fetch, generation, origin, destination, mode)
            self._pending[generation] = future

        future.add_done_callback(lambda _f, g=generation: self._forget(g))
        logger.info(f"Route request #{generation}: {origin} → {destination} ({mode.value})")
        return future

    def _forget(self, generation: int) -> None:
        with self._lock:
            self._pending.pop(generation, None)

    def _fetch(self, generation: int, origin: Coord, destination: Coord, mode: TravelMode) -> Optional[Route]:
        try:
            return self._fetch_and_install(generation, origin, destination, mode)
        finally:
            self._forget(generation)

    def _fetch_and_install(self, generation: int, origin: Coord, destination: Coord, mode: TravelMode) -> Optional[Route]:
        try:
            route = self._provider.route(origin, destination, mode)
        except RouteError as e:
            logger.warning(f"Route request #{generation} failed: {e}")
            self._report_failure(generation, str(e))
            return None

        if route is None or not route.steps:
            logger.warning(f"Route request #{generation} returned no steps; keeping current route.")
            self._report_failure(generation, f"Route to {destination} has no steps.")
            return None

        route = replace(route, generation=generation, destination=destination, mode=mode)
        return self._install(route)

    def _report_failure(self, generation: int, reason: str) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            listeners = list(self._on_failed)
        for callback in listeners:
            try:
                callback(generation, reason)
            except Exception:
                logger.exception("Route failure listener failed")

    def _install(self, route: Route) -> Optional[Route]:
        with self._lock:
            if self._closed:
                logger.debug(f"Session closed; dropping route #{route.generation}.")
                return None
            if route.generation != self._generation:
                logger.info(
                    f"Discarding stale route #{route.generation} (latest is #{self._generation})."
                )
                return None
            self._route = route
            self._destination = route.destination
            self._mode = route.mode
            listeners = list(self._on_installed)

        logger.info(
            f"Route #{route.generation} installed: {len(route.steps)} steps, "
            f"{route.total_distance_m / 1000:.2f} km."
        )
        for callback in listeners:
            try:
                callback(route)
            except Exception:
                logger.exception("Route install listener failed")
        return route

    # ------------------------------------------------------------------
    # Deviation handling
    # ------------------------------------------------------------------

    def check_deviation(self, position: Coord) -> Optional[float]:
        """
        Distance from position to the active route, if beyond the threshold.

        Returns:
            Distance in metres when off route, otherwise None.
        """
        route = self.active_route
        if route is None:
            return None
        line = route.geometry or [s.maneuver.location for s in route.steps]
        dist = distance_to_polyline(position, line)
        if dist > self.config.deviation_threshold_m:
            return dist
        return None

    def maybe_reroute(self, position: Coord) -> Optional[Future]:
        """
        Request a fresh route from position when the user left the route.

        Skipped while the newest request is still outstanding or within
        reroute_cooldown_s of the previous request.
        """
        dist = self.check_deviation(position)
        if dist is None:
            return None

        with self._lock:
            destination = self._destination
            outstanding = self._generation in self._pending
            cooling = (
                self._last_request_at is not None
                and self._clock() - self._last_request_at < self.config.reroute_cooldown_s
            )
        if destination is None or outstanding or cooling:
            return None

        logger.info(f"Off route by {dist:.0f} m, rerouting.")
        return self.request_route(position, destination)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel outstanding requests; late completions become no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())

        for future in pending:
            future.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug(f"Route session closed ({len(pending)} request(s) outstanding).")
