"""End-to-end tests of GuidanceSession with fake provider and serial port."""

import json
import threading
import time

import pytest
import serial

from conftest import A, B, C, FakeProvider, FakeSerial, fake_port, make_route
from navlink.guidance.errors import GeocodeFailed, NoRoute
from navlink.guidance.models import Coord, GuidanceStatus
from navlink.guidance.nav_config import NavConfig
from navlink.guidance.nav_logger import NavLogger
from navlink.guidance.navigator import GuidanceSession
from navlink.peripheral.peripheral_link import PeripheralLink


def wait_for(predicate, timeout=5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def nav(abc_route):
    session = GuidanceSession(FakeProvider({C: abc_route}), config=NavConfig())
    session.start_navigation(A, C).result(timeout=5)
    yield session
    session.close()


def test_three_step_route_end_to_end(nav) -> None:
    received = []
    nav.subscribe(received.append)

    for fix in (A, B, C, A):
        nav.handle_fix(fix)

    assert [m.step_index for m in received] == [0, 1, 2]
    assert [m.instruction for m in received] == ["Head east", "Turn left", "Arrive"]
    assert all(m.distance_remaining_km == 2.35 for m in received)
    assert nav.tracker_state.current_step_index == 2
    assert nav.state.status == GuidanceStatus.FINISHED


def test_repeated_fixes_emit_once(nav) -> None:
    received = []
    nav.subscribe(received.append)
    nav.handle_fix(A)
    nav.handle_fix(B)
    assert len(received) == 2

    for _ in range(5):
        assert nav.handle_fix(B) is None
    assert len(received) == 2
    assert nav.state.step_index == 1


def test_fix_out_of_range_changes_nothing(nav) -> None:
    nav.handle_fix(A)
    before = nav.tracker_state
    assert nav.handle_fix(Coord(40 / 111_195.0, 0.0)) is None     # ~40 m north of A
    assert nav.tracker_state == before


def test_no_fix_no_emission_before_route(abc_route) -> None:
    with GuidanceSession(FakeProvider({C: abc_route})) as nav:
        assert nav.handle_fix(A) is None
        assert nav.state.status == GuidanceStatus.IDLE
        assert nav.state.position == A


@pytest.mark.parametrize("raw", [None, {}, {"lat": "x", "lon": 1}, (200, 0)])
def test_invalid_fix_is_skipped(nav, raw) -> None:
    nav.handle_fix(A)
    state_before = nav.state
    tracker_before = nav.tracker_state

    assert nav.handle_fix(raw) is None
    assert nav.tracker_state == tracker_before
    assert nav.state.position == state_before.position


def test_stale_recompute_does_not_touch_tracker_or_route(abc_route) -> None:
    old_route = make_route([A, B], total_distance_m=9999)
    provider = FakeProvider({C: abc_route, B: old_route})
    gate = threading.Event()
    provider.gates[B] = gate

    with GuidanceSession(provider, config=NavConfig(route_workers=2)) as nav:
        stale = nav.start_navigation(A, B)                      # generation 1, held open
        nav.start_navigation(A, C).result(timeout=5)            # generation 2
        nav.handle_fix(A)
        nav.handle_fix(B)
        tracker_before = nav.tracker_state
        assert tracker_before.route_generation == 2

        gate.set()
        assert stale.result(timeout=5) is None
        nav.handle_fix(B)

        assert nav.active_route.generation == 2
        assert nav.active_route.total_distance_m == abc_route.total_distance_m
        assert nav.tracker_state == tracker_before


def test_new_destination_resets_progress(abc_route) -> None:
    second = make_route([B, C], instructions=["Start again", "Arrive again"])
    D = Coord(0.0, 0.0009)
    provider = FakeProvider({C: abc_route, D: second})

    with GuidanceSession(provider) as nav:
        nav.start_navigation(A, C).result(timeout=5)
        nav.handle_fix(A)
        nav.handle_fix(B)

        nav.start_navigation(B, D).result(timeout=5)
        message = nav.handle_fix(B)
        assert message.instruction == "Start again"
        assert message.generation == 2
        assert nav.tracker_state.current_step_index == 0


def test_deviation_triggers_reroute(abc_route) -> None:
    provider = FakeProvider({C: abc_route})
    config = NavConfig(deviation_threshold_m=50, reroute_cooldown_s=0)

    with GuidanceSession(provider, config=config) as nav:
        nav.start_navigation(A, C).result(timeout=5)
        nav.handle_fix(A)
        off = Coord(0.002, 0.0003)                              # ~220 m north
        nav.handle_fix(off)

        assert nav.state.status == GuidanceStatus.REROUTING
        assert wait_for(lambda: len(provider.calls) == 2)
        assert provider.calls[1][:2] == (off, C)


def test_peripheral_write_failure_does_not_break_guidance(abc_route) -> None:
    port = FakeSerial("/dev/rfcomm0", fail_with=serial.SerialTimeoutException("Write timeout"))
    link = PeripheralLink(serial_factory=lambda device, **kw: port, port_lister=lambda: [fake_port()])
    link.connect("HC-05")

    with GuidanceSession(FakeProvider({C: abc_route}), link=link) as nav:
        nav.start_navigation(A, C).result(timeout=5)
        first = nav.handle_fix(A)
        assert port.write_attempted.wait(5)
        second = nav.handle_fix(B)

        assert first.step_index == 0
        assert second.step_index == 1
        assert nav.state.last_message == second

    assert port.closed


def test_disconnected_peripheral_is_tolerated(abc_route) -> None:
    link = PeripheralLink(port_lister=lambda: [])
    with GuidanceSession(FakeProvider({C: abc_route}), link=link) as session:
        session.start_navigation(A, C).result(timeout=5)
        assert session.handle_fix(A).step_index == 0
        assert not session.state.peripheral_connected


def test_messages_reach_the_peripheral(abc_route) -> None:
    port = FakeSerial("/dev/rfcomm0")
    link = PeripheralLink(serial_factory=lambda device, **kw: port, port_lister=lambda: [fake_port()])
    link.connect("HC-05")

    with GuidanceSession(FakeProvider({C: abc_route}), link=link) as nav:
        nav.start_navigation(A, C).result(timeout=5)
        nav.handle_fix(A)
        assert port.write_attempted.wait(5)

    assert port.written == [b"D:2.35km | Dir:Head east\n"]


def test_close_stops_processing_and_disconnects(abc_route) -> None:
    port = FakeSerial("/dev/rfcomm0")
    link = PeripheralLink(serial_factory=lambda device, **kw: port, port_lister=lambda: [fake_port()])
    link.connect("HC-05")
    provider = FakeProvider({C: abc_route})
    gate = threading.Event()
    provider.gates[C] = gate

    nav = GuidanceSession(provider, link=link)
    pending = nav.start_navigation(A, C)
    nav.close()
    gate.set()

    if not pending.cancelled():
        assert pending.result(timeout=5) is None
    assert nav.handle_fix(A) is None
    assert nav.active_route is None
    assert nav.state.status == GuidanceStatus.CLOSED
    assert port.closed
    assert not link.is_connected


class FakeGeocoder:
    def __init__(self, result=None) -> None:
        self.result = result

    def geocode(self, query):
        if self.result is None:
            raise GeocodeFailed(f"No match for {query!r}.")
        return self.result


def test_search_starts_navigation(abc_route) -> None:
    with GuidanceSession(FakeProvider({C: abc_route}), geocoder=FakeGeocoder(C)) as nav:
        route = nav.search("the shop", A).result(timeout=5)
        assert route.destination == C


def test_failed_search_keeps_destination(abc_route) -> None:
    provider = FakeProvider({C: abc_route})
    with GuidanceSession(provider, geocoder=FakeGeocoder()) as nav:
        assert nav.search("nowhere", A) is None
        assert not provider.calls
        assert nav.state.errors


def test_route_and_events_are_persisted(abc_route, tmp_path) -> None:
    config = NavConfig(log_dir=str(tmp_path))
    with GuidanceSession(FakeProvider({C: abc_route}), config=config, nav_logger=NavLogger(config)) as nav:
        nav.start_navigation(A, C).result(timeout=5)
        nav.handle_fix(A)
        nav.handle_fix(B)

    saved = json.loads((tmp_path / "active_route.json").read_text(encoding="utf-8"))
    assert saved["step_count"] == 3
    events = (tmp_path / "nav_session.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(e)["instruction"] for e in events] == ["Head east", "Turn left"]


def test_failed_first_route_returns_to_idle() -> None:
    provider = FakeProvider(error=NoRoute("Impossible route"))
    with GuidanceSession(provider) as nav:
        assert nav.start_navigation(A, C).result(timeout=5) is None
        nav.handle_fix(A)

        state = nav.state
        assert state.status == GuidanceStatus.IDLE
        assert state.errors == ["Impossible route"]
        assert nav.active_route is None


def test_failed_new_destination_keeps_guiding(abc_route) -> None:
    provider = FakeProvider({C: abc_route})
    with GuidanceSession(provider) as nav:
        nav.start_navigation(A, C).result(timeout=5)
        nav.handle_fix(A)

        provider.error = NoRoute("Impossible route")
        assert nav.start_navigation(A, Coord(0.01, 0.01)).result(timeout=5) is None
        assert nav.handle_fix(B).step_index == 1

        state = nav.state
        assert state.status == GuidanceStatus.GUIDING
        assert state.errors == ["Impossible route"]
        assert nav.active_route.destination == C
