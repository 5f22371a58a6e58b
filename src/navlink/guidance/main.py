# main.py
# Entry point: interactive loop feeding positions into a GuidanceSession.
# In production, replace the "gps" command with your real position feed.
#
# Commands: search <query>, start <lat> <lon> <dest_lat> <dest_lon>,
#           gps <lat> <lon>, status, quit

import argparse
import logging
import time
import traceback

from navlink.guidance.errors import PeripheralError, PermissionDenied
from navlink.guidance.models import Coord, GuidanceMessage, TravelMode
from navlink.guidance.nav_config import NavConfig
from navlink.guidance.nav_logger import NavLogger
from navlink.guidance.navigator import GuidanceSession
from navlink.guidance.position_feed import FixFilter
from navlink.peripheral.peripheral_link import PeripheralLink
from navlink.services.geocoder import NominatimGeocoder
from navlink.services.osrm_provider import OSRMRouteProvider

logger = logging.getLogger(__name__)


def parse_floats(parts, count: int):
    if len(parts) != count:
        raise ValueError(f"Expected {count} numbers, got {len(parts)}")
    return [float(x) for x in parts]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="navlink: turn-by-turn guidance relayed to a serial display"
    )
    parser.add_argument("--port-name", default=None,
                        help="Serial port / device name to match (default: from config)")
    parser.add_argument("--no-peripheral", action="store_true",
                        help="Do not try to open a serial peripheral")
    parser.add_argument("--mode", choices=[m.value for m in TravelMode], default=None,
                        help="Travel mode (default: from config)")
    parser.add_argument("--log-dir", default=None,
                        help="Directory for route / session logs")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Step arrival radius in metres (default: 30)")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def open_peripheral(config: NavConfig, name) -> PeripheralLink:
    link = PeripheralLink(config)
    try:
        link.connect(name)
    except PermissionDenied as e:
        logger.warning(f"Peripheral disabled: {e}")
    except PeripheralError as e:
        logger.warning(f"Continuing without peripheral: {e}")
    return link


def feed_gps(session: GuidanceSession, fix_filter: FixFilter, position: Coord, timestamp: float = None):
    """Pass position to the session unless the filter drops it as too soon or too close."""
    if timestamp is None:
        timestamp = time.monotonic()
    if not fix_filter.accept(position, timestamp):
        logger.debug(f"Fix {position} filtered out.")
        return None
    return session.handle_fix(position)


def print_message(message: GuidanceMessage) -> None:
    print(f"[NAV] {message.to_wire().rstrip()}")


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    # ------------------------------------------------------------------
    # Logging is configured once here; module loggers inherit it
    # ------------------------------------------------------------------
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # ------------------------------------------------------------------
    # Config: environment first, then command line
    # ------------------------------------------------------------------
    config = NavConfig.from_env()
    if args.mode:
        config.travel_mode = args.mode
    if args.log_dir:
        config.log_dir = args.log_dir
    if args.threshold is not None:
        config.step_threshold_m = args.threshold

    link = None if args.no_peripheral else open_peripheral(config, args.port_name)
    session = GuidanceSession(
        OSRMRouteProvider(config),
        config=config,
        geocoder=NominatimGeocoder(config),
        link=link,
        nav_logger=NavLogger(config),
    )
    session.subscribe(print_message)
    fix_filter = FixFilter(config.min_fix_interval_s, config.min_fix_distance_m)

    print("Commands:")
    print("  search <query...>                (from last gps position)")
    print("  start <lat> <lon> <dest_lat> <dest_lon>")
    print("  gps <lat> <lon>")
    print("  status")
    print("  quit")

    with session:
        while True:
            try:
                line = input("> ").strip()
            except EOFError:
                break
            if not line:
                continue
            if line.lower() in ("q", "quit", "exit"):
                break

            parts = line.split()
            cmd = parts[0].lower()
            cmd_args = parts[1:]

            try:
                if cmd == "search":
                    origin = session.state.position
                    if origin is None:
                        print("[NAV] Send a gps fix first.")
                        continue
                    if session.search(" ".join(cmd_args), origin) is None:
                        print("[NAV] Destination not found.")

                elif cmd == "start":
                    s_lat, s_lon, e_lat, e_lon = parse_floats(cmd_args, 4)
                    session.start_navigation(Coord(s_lat, s_lon), Coord(e_lat, e_lon))

                elif cmd == "gps":
                    lat, lon = parse_floats(cmd_args, 2)
                    feed_gps(session, fix_filter, Coord(lat, lon))

                elif cmd == "status":
                    state = session.state
                    print(
                        f"[NAV] {state.status.value} | route #{state.route_generation} | "
                        f"step {state.step_index} of {state.step_count} | "
                        f"peripheral {'on' if state.peripheral_connected else 'off'}"
                    )

                else:
                    print("[NAV] Unknown command.")

            except ValueError as e:
                print(f"[ERR] {e}")
            except Exception:
                print(traceback.format_exc())

    print("\n--- Session complete ---")
    print(f"    Log files written to: {config.log_dir}/")


if __name__ == "__main__":
    main()
