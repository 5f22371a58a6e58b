# nav_logger.py
# Persistence for a guidance session: the active route as a JSON snapshot,
# emitted guidance lines as an append-only JSONL trail.

import json
import os
import logging
from datetime import datetime
from typing import Optional

from .models import Coord, GuidanceMessage, Route
from .nav_config import NavConfig

logger = logging.getLogger(__name__)


class NavLogger:
    """
    File sink for routes and guidance events.

    save_route() matches RouteSession's install-listener signature and
    log_guidance() matches a GuidanceEmitter observer, so both can be
    wired in directly. I/O errors are logged, never raised.

    Args:
        config: NavConfig supplying log_dir and file names.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        os.makedirs(self.config.log_dir, exist_ok=True)

    # ------------------------------------------------------------------
    # Active route snapshot
    # ------------------------------------------------------------------

    def save_route(self, route: Route) -> bool:
        """Overwrite the route snapshot. Returns False if the write failed."""
        target = self.config.route_filepath
        snapshot = {
            "saved_at": datetime.now().isoformat(),
            "step_count": len(route.steps),
            "route": route.to_dict(),
        }
        try:
            with open(target, "w", encoding="utf-8") as fh:
                json.dump(snapshot, fh, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.error(f"Could not write route snapshot {target}: {e}")
            return False
        logger.info(f"Route #{route.generation} written to {target} ({len(route.steps)} steps).")
        return True

    def load_route(self, filepath: Optional[str] = None) -> Optional[Route]:
        """
        Read a route snapshot back.

        Args:
            filepath: Snapshot to read; defaults to config.route_filepath.

        Returns:
            The Route, or None when the file is missing or unreadable.
        """
        source = filepath or self.config.route_filepath
        if not os.path.exists(source):
            logger.warning(f"No route snapshot at {source}.")
            return None
        try:
            with open(source, encoding="utf-8") as fh:
                route = Route.from_dict(json.load(fh)["route"])
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Route snapshot {source} is unreadable: {e}")
            return None
        logger.info(f"Route #{route.generation} restored from {source}.")
        return route

    # ------------------------------------------------------------------
    # Guidance trail
    # ------------------------------------------------------------------

    def log_guidance(self, message: GuidanceMessage, position: Optional[Coord] = None) -> None:
        record = message.to_dict()
        record["logged_at"] = datetime.now().isoformat()
        if position is not None:
            record.update(position.to_dict())
        self._append(self.config.event_filepath, record)

    @staticmethod
    def _append(path: str, record: dict) -> None:
        try:
            with open(path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Could not append to {path}: {e}")
