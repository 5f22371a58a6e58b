# nav_config.py
# All tuneable constants in one place.
# Pass a NavConfig instance to every module that needs settings.

import logging
import os
from dataclasses import dataclass, fields

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

STEP_THRESHOLD_M: float = 30.0          # "arrived" radius around a maneuver
OSRM_BASE_URL: str = "http://router.project-osrm.org"
NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search"
ENV_PREFIX: str = "NAVLINK_"
TRAVEL_MODES = ("driving", "walking")      # TravelMode values


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class NavConfig:
    # Step tracking
    step_threshold_m: float = STEP_THRESHOLD_M
    deviation_threshold_m: float = 50.0    # distance from route geometry → reroute
    reroute_cooldown_s: float = 10.0       # min seconds between reroute requests

    # Routing backend
    travel_mode: str = "driving"           # "driving" | "walking"
    route_workers: int = 4                 # concurrent outstanding route requests
    osrm_base_url: str = OSRM_BASE_URL
    nominatim_url: str = NOMINATIM_URL
    user_agent: str = "navlink/1.0"
    http_timeout_s: float = 5.0

    # Position feed filtering
    min_fix_interval_s: float = 1.0
    min_fix_distance_m: float = 1.0

    # Peripheral
    peripheral_name: str = "HC-05"
    baud_rate: int = 9600
    write_timeout_s: float = 1.0
    send_queue_size: int = 16

    # Logging
    log_dir: str = "logs"                  # directory for saved JSON files
    route_filename: str = "active_route.json"
    event_filename: str = "nav_session.jsonl"

    @property
    def route_filepath(self) -> str:
        return os.path.join(self.log_dir, self.route_filename)

    @property
    def event_filepath(self) -> str:
        return os.path.join(self.log_dir, self.event_filename)

    @classmethod
    def from_env(cls, dotenv_path: str = None) -> "NavConfig":
        """
        Build a config from NAVLINK_* environment variables.

        A .env file is read first (existing variables win), so
        NAVLINK_STEP_THRESHOLD_M=25 overrides step_threshold_m.
        Unparseable values are logged and the default is kept.
        """
        load_dotenv(dotenv_path)
        overrides = {}
        for f in fields(cls):
            name = ENV_PREFIX + f.name.upper()
            raw = os.getenv(name)
            if raw is None:
                continue
            try:
                if f.type in (float, "float"):
                    value = float(raw)
                elif f.type in (int, "int"):
                    value = int(raw)
                else:
                    value = raw
            except ValueError:
                logger.warning(f"Ignoring {name}={raw!r}: expected {getattr(f.type, '__name__', f.type)}.")
                continue
            if f.name == "travel_mode" and value not in TRAVEL_MODES:
                logger.warning(f"Ignoring {name}={raw!r}: expected one of {', '.join(TRAVEL_MODES)}.")
                continue
            overrides[f.name] = value
        return cls(**overrides)
