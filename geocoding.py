import logging
from typing import Optional

import requests
from pydantic import ValidationError

from config import HTTP_TIMEOUT_SECONDS
from exceptions import GeocodingError
from schemas import Coordinates

logger = logging.getLogger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

class Geocoder:
    def search(self, address: str) -> Optional[Coordinates]:
        """Resolve a free-text address to the coordinates of the best match, or None."""
        raise NotImplementedError

class GoogleGeocoder(Geocoder):
    def __init__(self, api_key: str, session: Optional[requests.Session] = None,
                 timeout: float = HTTP_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def search(self, address: str) -> Optional[Coordinates]:
        params = {"address": address}
        if self.api_key:
            params["key"] = self.api_key
        try:
            r = self.session.get(GOOGLE_GEOCODE_URL, params=params, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise GeocodingError(f"Geocoding {address!r} failed: {e}") from e

        results = data.get("results") or []
        if not results:
            logger.info("No geocoding match for %r (status %s)", address, data.get("status"))
            return None
        try:
            location = results[0]["geometry"]["location"]
            return Coordinates(lat=location["lat"], lng=location["lng"])
        except (KeyError, TypeError, ValidationError) as e:
            raise GeocodingError(f"Malformed geocoding result for {address!r}") from e
