"""Utilities for transforming Google Places responses into pipeline records and back into JSON."""

import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from clinic_locator.models import Coordinate, PlaceDetails, RankedResult, RawCandidate

logger = logging.getLogger(__name__)


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def parse_location(result: Dict[str, Any]) -> Optional[Coordinate]:
    location = (result.get("geometry") or {}).get("location") or {}
    try:
        return Coordinate(latitude=float(location["lat"]), longitude=float(location["lng"]))
    except (KeyError, TypeError, ValueError):
        return None


def to_raw_candidate(result: Dict[str, Any], keyword: Optional[str] = None) -> Optional[RawCandidate]:
    """Build a RawCandidate from a nearby search result, or None when it is unusable."""
    place_id = _strip_or_none(result.get("place_id"))
    if not place_id:
        logger.debug("Skipping result without place_id: %s", result)
        return None

    location = parse_location(result)
    if location is None:
        logger.debug("Skipping %s without a usable location", place_id)
        return None

    return RawCandidate(
        place_id=place_id,
        name=_strip_or_none(result.get("name")) or place_id,
        location=location,
        address=_strip_or_none(result.get("vicinity")) or _strip_or_none(result.get("formatted_address")),
        keyword=keyword,
        raw_snapshot=result,
    )


def to_place_details(result: Dict[str, Any]) -> PlaceDetails:
    return PlaceDetails(
        phone=_strip_or_none(result.get("formatted_phone_number")),
        website=_strip_or_none(result.get("website")),
        url=_strip_or_none(result.get("url")),
    )


def coordinate_payload(coordinate: Optional[Coordinate]) -> Optional[Dict[str, float]]:
    if coordinate is None:
        return None
    return {"lat": coordinate.latitude, "lng": coordinate.longitude}


def to_result_payload(result: RankedResult) -> Dict[str, Any]:
    """Convert a RankedResult into the JSON shape served to clients."""
    entry = asdict(result)
    entry["location"] = coordinate_payload(result.location)
    entry["distance_miles"] = round(result.distance_miles, 3)
    entry["website_host"] = result.website_host
    return entry
