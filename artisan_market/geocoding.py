import logging
from typing import Tuple

import requests

from .config import get_settings
from .errors import GeocodingError, LocationNotFound

logger = logging.getLogger(__name__)


def forward_geocode(address: str) -> Tuple[float, float]:
    """Return (latitude, longitude) of the first match for a free-text address.

    Talks to a Nominatim-compatible search endpoint.
    """
    query = (address or "").strip()
    if not query:
        raise LocationNotFound("address is empty")

    settings = get_settings()
    try:
        resp = requests.get(
            settings.geocoder_url,
            params={"format": "json", "q": query, "limit": 1},
            headers={"User-Agent": settings.geocoder_user_agent},
            timeout=settings.geocoder_timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("geocoding %r failed: %s", query, e)
        raise GeocodingError("Failed to search location. Please try again.") from e

    if not data:
        raise LocationNotFound("Location not found. Please try a different address.")
    try:
        first = data[0]
        return float(first["lat"]), float(first["lon"])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise GeocodingError("unexpected geocoder response") from e
