# geocoder.py
# Free-text destination search against Nominatim. Only the best match's
# coordinate is used by the guidance session.

import logging
from typing import Optional

import requests

from navlink.guidance.errors import GeocodeFailed
from navlink.guidance.models import Coord
from navlink.guidance.nav_config import NavConfig

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """
    Args:
        config:  NavConfig (search URL, timeout, user agent).
        session: Optional requests.Session.
    """

    def __init__(self, config: Optional[NavConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or NavConfig()
        self._http = session or requests.Session()

    def geocode(self, query: str) -> Coord:
        """
        Resolve query to a single coordinate (the first match).

        Raises:
            GeocodeFailed: empty query, no match, or the request failed.
        """
        query = (query or "").strip()
        if not query:
            raise GeocodeFailed("Empty search query.")

        try:
            response = self._http.get(
                self.config.nominatim_url,
                params={
                    "q": query,
                    "format": "json",
                    "addressdetails": 1,
                    "limit": 5,
                },
                headers={
                    "User-Agent": self.config.user_agent,
                    "Accept-Language": "en",
                },
                timeout=self.config.http_timeout_s,
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as e:
            raise GeocodeFailed(f"Search for {query!r} failed: {e}") from e

        if not results:
            raise GeocodeFailed(f"No match for {query!r}.")

        best = results[0]
        try:
            coord = Coord(float(best["lat"]), float(best["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeFailed(f"Malformed search result for {query!r}: {e}") from e
        logger.info(f"Geocoded {query!r} → {coord} ({best.get('display_name', '?')})")
        return coord
