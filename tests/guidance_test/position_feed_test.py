import pytest

from navlink.guidance.errors import InvalidFix
from navlink.guidance.models import Coord
from navlink.guidance.position_feed import FixFilter, parse_fix


@pytest.mark.parametrize("raw", [
    Coord(39.924, 32.845),
    {"lat": 39.924, "lon": 32.845},
    {"latitude": "39.924", "longitude": "32.845"},
    {"coords": {"latitude": 39.924, "longitude": 32.845, "accuracy": 5.0}},
    (39.924, 32.845),
    [39.924, 32.845],
])
def test_accepted_shapes(raw) -> None:
    assert parse_fix(raw) == Coord(39.924, 32.845)


@pytest.mark.parametrize("raw", [
    None,
    {},
    {"lat": 39.9},
    {"lat": "north", "lon": 32.8},
    {"lat": float("nan"), "lon": 32.8},
    {"lat": True, "lon": 32.8},
    (91.0, 0.0),
    (0.0, -180.5),
    (1.0, 2.0, 3.0),
    "39.9,32.8",
    42,
])
def test_malformed_fixes_are_rejected(raw) -> None:
    with pytest.raises(InvalidFix):
        parse_fix(raw)


class TestFixFilter:

    def test_first_fix_is_always_accepted(self) -> None:
        assert FixFilter().accept(Coord(0, 0), timestamp=100.0)

    def test_too_soon_is_dropped(self) -> None:
        f = FixFilter(min_interval_s=1.0, min_distance_m=1.0)
        f.accept(Coord(0, 0), 0.0)
        assert not f.accept(Coord(0, 0.001), 0.5)

    def test_too_close_is_dropped(self) -> None:
        f = FixFilter(min_interval_s=1.0, min_distance_m=5.0)
        f.accept(Coord(0, 0), 0.0)
        assert not f.accept(Coord(0, 0.00001), 10.0)    # ~1 m

    def test_accepted_after_interval_and_distance(self) -> None:
        f = FixFilter(min_interval_s=1.0, min_distance_m=5.0)
        f.accept(Coord(0, 0), 0.0)
        assert f.accept(Coord(0, 0.001), 2.0)
        assert not f.accept(Coord(0, 0.001), 4.0)

    def test_reset(self) -> None:
        f = FixFilter(min_interval_s=10.0)
        f.accept(Coord(0, 0), 0.0)
        f.reset()
        assert f.accept(Coord(0, 0), 1.0)
