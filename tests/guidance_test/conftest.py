"""Shared fixtures for navlink tests.

Coordinates sit on the equator, where one degree of longitude is exactly
EARTH_RADIUS_M * pi / 180 metres under the haversine formula.
"""

import math
import threading
from types import SimpleNamespace

import pytest

from navlink.guidance.geo_utils import EARTH_RADIUS_M
from navlink.guidance.models import Coord, Maneuver, Route, RouteStep

METRES_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0

# End-to-end route: B is ~33 m east of A, C ~33 m east of B
A = Coord(0.0, 0.0)
B = Coord(0.0, 0.0003)
C = Coord(0.0, 0.0006)


def east_of_origin(metres: float) -> Coord:
    return Coord(0.0, metres / METRES_PER_DEGREE)


def make_route(points, total_distance_m=1234.0, geometry=None, instructions=None) -> Route:
    instructions = instructions or [f"Instruction {i}" for i in range(len(points))]
    steps = [
        RouteStep(step_id=i, maneuver=Maneuver(location=p, instruction=text, type="turn", modifier="left"))
        for i, (p, text) in enumerate(zip(points, instructions))
    ]
    return Route(
        geometry=list(points) if geometry is None else geometry,
        steps=steps,
        total_distance_m=total_distance_m,
    )


class FakeProvider:
    """Route provider keyed by destination; gates let tests hold a request open."""

    def __init__(self, routes=None, error=None) -> None:
        self.routes = dict(routes or {})
        self.error = error
        self.gates = {}
        self.calls = []
        self._lock = threading.Lock()

    def route(self, start, end, mode):
        with self._lock:
            self.calls.append((start, end, mode))
        gate = self.gates.get(end)
        if gate is not None:
            assert gate.wait(5), "gate never released"
        if self.error is not None:
            raise self.error
        return self.routes[end]


class FakeSerial:
    """Stands in for serial.Serial."""

    def __init__(self, device, baudrate=9600, timeout=None, write_timeout=None, fail_with=None) -> None:
        self.device = device
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self.fail_with = fail_with
        self.written = []
        self.closed = False
        self.write_attempted = threading.Event()

    def write(self, data: bytes) -> int:
        self.write_attempted.set()
        if self.fail_with is not None:
            raise self.fail_with
        self.written.append(data)
        return len(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


def fake_port(device="/dev/rfcomm0", description="HC-05 Bluetooth serial"):
    return SimpleNamespace(device=device, name=device.rsplit("/", 1)[-1], description=description,
                           product=None, manufacturer=None)


@pytest.fixture
def abc_route() -> Route:
    return make_route([A, B, C], total_distance_m=2345.678,
                      instructions=["Head east", "Turn left", "Arrive"])


@pytest.fixture
def serial_factory():
    """Returns (factory, opened) where opened collects every FakeSerial created."""
    opened = []

    def factory(device, **kwargs):
        port = FakeSerial(device, **kwargs)
        opened.append(port)
        return port

    return factory, opened
