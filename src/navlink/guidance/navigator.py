# navigator.py
# Public entry point for the guidance engine.
# Owns no business logic; delegates to the modules below.

import logging
import threading
from concurrent.futures import Future
from dataclasses import replace
from typing import Any, Callable, Optional

from .errors import GeocodeFailed, InvalidFix
from .guidance_emitter import GuidanceEmitter, Observer
from .models import (
    Coord,
    GuidanceMessage,
    GuidanceState,
    GuidanceStatus,
    Route,
    TrackerState,
    TravelMode,
)
from .nav_config import NavConfig
from .nav_logger import NavLogger
from .position_feed import parse_fix
from .route_session import RouteSession
from .step_tracker import StepTracker

logger = logging.getLogger(__name__)


class GuidanceSession:
    """
    High-level guidance facade for one trip.

    Typical lifecycle:
        with GuidanceSession(OSRMRouteProvider(config), link=link) as nav:
            nav.start_navigation(Coord(39.924, 32.845), Coord(39.921, 32.852))

            # GPS loop:
            message = nav.handle_fix(fix)

    All state (route, tracker, emitter) belongs to this instance. Fixes
    must be fed from one thread; route requests complete on worker threads
    and are picked up on the next fix.

    Args:
        provider:   Route provider, route(start, end, mode) -> Route.
        config:     Optional NavConfig; defaults to NavConfig().
        geocoder:   Optional geocoder, geocode(query) -> Coord.
        link:       Optional PeripheralLink, must already be connected
                    for messages to be forwarded.
        nav_logger: Optional NavLogger for route / event persistence.
    """

    def __init__(
        self,
        provider,
        config: Optional[NavConfig] = None,
        geocoder=None,
        link=None,
        nav_logger: Optional[NavLogger] = None,
        route_session: Optional[RouteSession] = None,
    ) -> None:
        self.config = config or NavConfig()
        self._geocoder = geocoder
        self._link = link
        self._nav_logger = nav_logger

        # Specialist modules
        self._routes = route_session or RouteSession(provider, self.config)
        self._tracker = StepTracker(self.config)
        self._emitter = GuidanceEmitter()

        self._state_lock = threading.Lock()
        self._state = GuidanceState()
        self._closed = False

        self._routes.add_failure_listener(self._on_route_failed)

        # UI state first, so a failing peripheral cannot hide it
        self._emitter.subscribe(self._record_message)
        if link is not None:
            self._emitter.subscribe(link.on_guidance)
        if nav_logger is not None:
            self._routes.add_install_listener(nav_logger.save_route)
            self._emitter.subscribe(self._log_message)

    # ------------------------------------------------------------------
    # Observers / UI state
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """observer(GuidanceMessage) on every step transition."""
        return self._emitter.subscribe(observer)

    @property
    def state(self) -> GuidanceState:
        """Copy of the current UI state."""
        with self._state_lock:
            state = replace(self._state, errors=list(self._state.errors))
        state.peripheral_connected = bool(self._link is not None and self._link.is_connected)
        return state

    @property
    def active_route(self) -> Optional[Route]:
        return self._routes.active_route

    @property
    def is_active(self) -> bool:
        return not self._closed and self._routes.active_route is not None

    @property
    def tracker_state(self) -> TrackerState:
        return self._tracker.state

    @property
    def remaining_steps(self) -> int:
        return self._tracker.remaining_steps

    def _update_state(self, **changes: Any) -> None:
        with self._state_lock:
            for key, value in changes.items():
                setattr(self._state, key, value)

    def _note_error(self, text: str) -> None:
        with self._state_lock:
            self._state.errors = (self._state.errors + [text])[-10:]

    def _record_message(self, message: GuidanceMessage) -> None:
        self._update_state(last_message=message, step_index=message.step_index)

    def _log_message(self, message: GuidanceMessage) -> None:
        self._nav_logger.log_guidance(message, self._state.position)

    def _on_route_failed(self, generation: int, reason: str) -> None:
        self._note_error(reason)
        if self._routes.active_route is None:
            self._update_state(status=GuidanceStatus.IDLE)
            logger.info(f"Route request #{generation} failed with no route active; idle.")

    # ------------------------------------------------------------------
    # Navigation control
    # ------------------------------------------------------------------

    def start_navigation(
        self,
        origin: Coord,
        destination: Coord,
        mode: Optional[TravelMode] = None,
    ) -> Future:
        """
        Request a route to a new destination.

        Returns:
            Future resolving to the installed Route (None if it failed
            or was superseded).
        """
        logger.info(f"Calculating route: {origin} → {destination}")
        if self._routes.active_route is None:
            self._update_state(status=GuidanceStatus.ROUTING)
        return self._routes.request_route(origin, destination, mode)

    def search(self, query: str, origin: Coord, mode: Optional[TravelMode] = None) -> Optional[Future]:
        """
        Geocode query and navigate there from origin.

        Returns:
            Route future, or None when the search failed (destination unchanged).
        """
        if self._geocoder is None:
            logger.warning("No geocoder configured; search unavailable.")
            return None
        try:
            destination = self._geocoder.geocode(query)
        except GeocodeFailed as e:
            logger.warning(f"Search failed: {e}")
            self._note_error(str(e))
            return None
        return self.start_navigation(origin, destination, mode)

    def close(self) -> None:
        """
        End the session: cancel route requests, ignore further fixes and
        disconnect the peripheral.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._routes.close()
        finally:
            if self._link is not None:
                self._link.disconnect()
            self._update_state(status=GuidanceStatus.CLOSED)
            logger.info("Guidance session closed.")

    def __enter__(self) -> "GuidanceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Position update: call this on every fix
    # ------------------------------------------------------------------

    def handle_fix(self, raw_fix) -> Optional[GuidanceMessage]:
        """
        Process one position fix to completion.

        Args:
            raw_fix: Coord, mapping or (lat, lon); malformed fixes are skipped.

        Returns:
            The GuidanceMessage emitted for this fix, if the step changed.
        """
        if self._closed:
            return None
        try:
            position = parse_fix(raw_fix)
        except InvalidFix as e:
            logger.debug(f"Skipping fix: {e}")
            return None

        self._update_state(position=position)

        route = self._routes.active_route
        if route is None:
            return None

        if self._tracker.sync(route):
            logger.info(f"Tracking route #{route.generation} from step 1.")
            self._update_state(
                status=GuidanceStatus.GUIDING,
                route_generation=route.generation,
                step_index=None,
                step_count=len(route.steps),
            )

        status = self._state.status
        if status != GuidanceStatus.FINISHED:
            if self._routes.maybe_reroute(position) is not None:
                self._update_state(status=GuidanceStatus.REROUTING)
            elif status == GuidanceStatus.REROUTING and not self._routes.is_requesting:
                self._update_state(status=GuidanceStatus.GUIDING)

        match = self._tracker.update(position, route.steps)
        if match is None:
            return None

        message = self._emitter.emit(route, match.index)
        if self._tracker.is_last_step:
            self._update_state(status=GuidanceStatus.FINISHED)
            logger.info("Final step reached.")
        return message
