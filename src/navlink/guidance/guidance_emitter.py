# guidance_emitter.py
# Turns step transitions into GuidanceMessages and fans them out to observers.

import logging
import threading
from typing import Callable, List, Optional, Tuple

from .models import GuidanceMessage, Route

logger = logging.getLogger(__name__)

Observer = Callable[[GuidanceMessage], None]


def compose_message(route: Route, step_index: int) -> GuidanceMessage:
    """Build the message announced when the user reaches step_index."""
    step = route.steps[step_index]
    return GuidanceMessage(
        distance_remaining_km=round(route.total_distance_m / 1000.0, 2),
        instruction=step.maneuver.instruction,
        step_index=step_index,
        generation=route.generation,
    )


def format_wire_line(message: GuidanceMessage) -> str:
    """One line of the peripheral protocol, newline terminated."""
    return message.to_wire()


class GuidanceEmitter:
    """
    Dispatches at most one GuidanceMessage per (route generation, step index).

    Observers are plain callables. A failing observer is logged and skipped;
    the remaining observers still receive the message.
    """

    def __init__(self) -> None:
        self._observers: List[Observer] = []
        self._lock = threading.Lock()
        self._last_emitted: Optional[Tuple[int, int]] = None

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register observer; returns a function that removes it again."""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    @property
    def last_emitted(self) -> Optional[Tuple[int, int]]:
        return self._last_emitted

    def emit(self, route: Route, step_index: int) -> Optional[GuidanceMessage]:
        """
        Announce step_index of route.

        Returns:
            The message sent, or None if this transition was already emitted.
        """
        key = (route.generation, step_index)
        if key == self._last_emitted:
            return None
        self._last_emitted = key

        message = compose_message(route, step_index)
        logger.info(
            f"Step {step_index + 1}/{len(route.steps)} (gen {route.generation}): "
            f"{message.instruction} [{message.distance_remaining_km:.2f} km]"
        )

        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(message)
            except Exception:
                logger.exception(f"Guidance observer {observer!r} failed")
        return message
