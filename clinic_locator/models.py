"""Core data models shared by the clinic search pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

METERS_PER_MILE = 1609.34
RADIUS_OPTIONS_MILES: Tuple[int, ...] = (5, 10, 25, 50)
DEFAULT_RADIUS_MILES = 10
DEFAULT_KEYWORDS: Tuple[str, ...] = (
    "med spa",
    "aesthetic clinic",
    "dermatology",
    "botox",
    "lip filler",
    "facial spa",
    "cosmetic dermatology",
)


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class SearchQuery:
    """One search request: where to look, how far, and which keywords to fan out over."""

    origin: Coordinate
    radius_miles: int = DEFAULT_RADIUS_MILES
    keywords: Tuple[str, ...] = DEFAULT_KEYWORDS

    def __post_init__(self) -> None:
        if self.radius_miles not in RADIUS_OPTIONS_MILES:
            raise ValueError(f"radius must be one of {RADIUS_OPTIONS_MILES} miles, got {self.radius_miles}")
        if not self.keywords:
            raise ValueError("at least one keyword is required")

    @property
    def radius_meters(self) -> float:
        return self.radius_miles * METERS_PER_MILE


@dataclass(slots=True)
class RawCandidate:
    """A place summary as returned by a nearby search."""

    place_id: str
    name: str
    location: Coordinate
    address: Optional[str] = None
    keyword: Optional[str] = None
    raw_snapshot: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class PlaceDetails:
    """Advisory enrichment for a place; every field may be absent."""

    phone: Optional[str] = None
    website: Optional[str] = None
    url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.phone is None and self.website is None and self.url is None


@dataclass(slots=True)
class EnrichedCandidate:
    place_id: str
    name: str
    location: Coordinate
    address: Optional[str] = None
    keyword: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def merge(cls, candidate: RawCandidate, details: PlaceDetails) -> "EnrichedCandidate":
        return cls(
            place_id=candidate.place_id,
            name=candidate.name,
            location=candidate.location,
            address=candidate.address,
            keyword=candidate.keyword,
            phone=details.phone,
            website=details.website,
            url=details.url,
        )


@dataclass(slots=True)
class RankedResult:
    """An enriched candidate with its distance from the search origin."""

    place_id: str
    name: str
    location: Coordinate
    distance_miles: float
    address: Optional[str] = None
    keyword: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    url: Optional[str] = None

    @property
    def website_host(self) -> Optional[str]:
        if not self.website:
            return None
        host = urlparse(self.website).hostname
        if not host:
            return None
        return host[4:] if host.startswith("www.") else host


@dataclass(frozen=True, slots=True)
class MapMarker:
    position: Coordinate
    title: str
    info_html: str
