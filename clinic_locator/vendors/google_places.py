"""Client utilities for the Google Geocoding and Places APIs."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api"
REQUEST_TIMEOUT = 10
DETAIL_FIELDS = "formatted_phone_number,website,url"
_SUCCESS_STATUSES = {"OK", "ZERO_RESULTS"}


class GooglePlacesError(RuntimeError):
    """Raised when a Google Maps web service returns a non-successful response."""


class GeocodeError(GooglePlacesError):
    """Raised when an address or postal code cannot be resolved to a coordinate."""


class SearchProviderError(GooglePlacesError):
    """Raised when a nearby search request fails."""


class DetailFetchError(GooglePlacesError):
    """Raised when a place details request fails."""


def _get(path: str, params: Dict[str, Any]) -> Dict[str, Any]:
    response = _SESSION.get(f"{_BASE_URL}/{path}", params=params, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


def geocode(address: str, api_key: str) -> Dict[str, float]:
    """Return the ``{"lat", "lng"}`` of the best match for ``address``."""
    payload = _get("geocode/json", {"address": address, "key": api_key})
    status = payload.get("status")
    results = payload.get("results") or []
    if status != "OK" or not results:
        logger.error("geocode failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GeocodeError(payload.get("error_message") or status or "no geocode result")
    location = results[0].get("geometry", {}).get("location") or {}
    if "lat" not in location or "lng" not in location:
        raise GeocodeError(f"geocode result for {address!r} has no location")
    return {"lat": float(location["lat"]), "lng": float(location["lng"])}


def nearby_search(
    lat: float,
    lng: float,
    radius_meters: float,
    keyword: str,
    api_key: str,
    pagetoken: Optional[str] = None,
) -> Dict[str, Any]:
    if pagetoken:
        # Google ignores every other parameter once a page token is supplied.
        params: Dict[str, Any] = {"pagetoken": pagetoken, "key": api_key}
    else:
        params = {
            "location": f"{lat},{lng}",
            "radius": radius_meters,
            "keyword": keyword,
            "key": api_key,
        }
    payload = _get("place/nearbysearch/json", params)
    status = payload.get("status")
    if status not in _SUCCESS_STATUSES:
        logger.error(
            "nearby_search failed: keyword=%s, status=%s, error_message=%s",
            keyword,
            status,
            payload.get("error_message"),
        )
        raise SearchProviderError(payload.get("error_message") or status)
    return payload


def place_details(place_id: str, api_key: str, fields: str = DETAIL_FIELDS) -> Dict[str, Any]:
    params = {"place_id": place_id, "key": api_key, "fields": fields}
    payload = _get("place/details/json", params)
    status = payload.get("status")
    if status != "OK":
        logger.error("place_details failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise DetailFetchError(payload.get("error_message") or status)
    return payload.get("result", {})
