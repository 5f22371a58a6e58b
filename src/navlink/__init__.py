"""
navlink

Turn-by-turn guidance engine that relays step updates to a serial peripheral.
"""

__version__ = "1.0.0"

from .guidance.models import Coord, GuidanceMessage, Route, RouteStep, Maneuver, TravelMode
from .guidance.nav_config import NavConfig
from .guidance.navigator import GuidanceSession

__all__ = [
    'Coord',
    'GuidanceMessage',
    'GuidanceSession',
    'Maneuver',
    'NavConfig',
    'Route',
    'RouteStep',
    'TravelMode',
]
