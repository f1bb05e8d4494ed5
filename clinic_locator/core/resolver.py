"""Turn a postal code into the coordinate a search cycle starts from."""

import logging

import requests

from clinic_locator.models import Coordinate
from clinic_locator.vendors import google_places
from clinic_locator.vendors.google_places import GeocodeError

logger = logging.getLogger(__name__)


def resolve_postal_code(postal_code: str, api_key: str) -> Coordinate:
    postal_code = (postal_code or "").strip()
    if not postal_code:
        raise GeocodeError("postal code is empty")

    try:
        location = google_places.geocode(postal_code, api_key)
    except requests.RequestException as exc:
        logger.error("Geocoding request for %s failed: %s", postal_code, exc)
        raise GeocodeError(f"geocoding request failed: {exc}") from exc

    logger.info("Resolved %s to (%.5f, %.5f)", postal_code, location["lat"], location["lng"])
    return Coordinate(latitude=location["lat"], longitude=location["lng"])
