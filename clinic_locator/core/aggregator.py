"""Clinic search aggregation: keyword fan-out, detail enrichment and ranking.

A search cycle runs strictly in order. Each keyword's nearby search is fully
collected before its candidates are enriched one by one, and only then does the
next keyword's search start. No two provider calls are ever in flight at the
same time, which keeps the Places quota usage predictable.
"""

import logging
import time
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import requests

from clinic_locator.core.geo import haversine_miles
from clinic_locator.etl.transform import to_place_details, to_raw_candidate
from clinic_locator.models import Coordinate, EnrichedCandidate, PlaceDetails, RankedResult, RawCandidate, SearchQuery
from clinic_locator.vendors import google_places

logger = logging.getLogger(__name__)

PAGE_TOKEN_DELAY_SECONDS = 2.5


class SearchCancelled(RuntimeError):
    """Raised inside a cycle that a newer cycle has superseded."""


def _keep_going() -> bool:
    return True


def search_keyword(query: SearchQuery, keyword: str, api_key: str, *, max_pages: int = 1) -> List[RawCandidate]:
    """Run one keyword's nearby search, following page tokens up to ``max_pages``.

    A failure on the first page propagates. A failure on a later page keeps
    the candidates already collected.
    """
    origin = query.origin
    candidates: List[RawCandidate] = []
    page_token = None
    processed_pages = 0

    while processed_pages < max_pages:
        try:
            response = google_places.nearby_search(
                lat=origin.latitude,
                lng=origin.longitude,
                radius_meters=query.radius_meters,
                keyword=keyword,
                api_key=api_key,
                pagetoken=page_token,
            )
        except (google_places.SearchProviderError, requests.RequestException) as exc:
            if not page_token:
                raise
            logger.warning(
                "Nearby search page %d failed for keyword=%s, keeping %d candidates: %s",
                processed_pages + 1,
                keyword,
                len(candidates),
                exc,
            )
            break

        for result in response.get("results", []):
            if not isinstance(result, dict):
                logger.debug("Skipping non-object result for keyword=%s: %r", keyword, result)
                continue
            candidate = to_raw_candidate(result, keyword=keyword)
            if candidate is not None:
                candidates.append(candidate)

        processed_pages += 1
        page_token = response.get("next_page_token")
        if not page_token:
            break
        time.sleep(PAGE_TOKEN_DELAY_SECONDS)

    return candidates


def fan_out(
    query: SearchQuery,
    api_key: str,
    *,
    max_pages: int = 1,
    should_continue: Callable[[], bool] = _keep_going,
) -> Iterator[Tuple[str, List[RawCandidate]]]:
    """Yield ``(keyword, candidates)`` per keyword, in keyword order.

    The generator is lazy: the next keyword's search is only issued once the
    consumer asks for it. A failing keyword yields an empty batch.
    """
    for keyword in query.keywords:
        if not should_continue():
            raise SearchCancelled(f"search superseded before keyword {keyword!r}")
        try:
            batch = search_keyword(query, keyword, api_key, max_pages=max_pages)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Nearby search failed for keyword=%s: %s", keyword, exc)
            batch = []
        logger.info("Keyword %r returned %d candidates", keyword, len(batch))
        yield keyword, batch


def fetch_details(place_id: str, api_key: str) -> PlaceDetails:
    """Fetch phone, website and map URL for a place; empty details on any failure."""
    try:
        result = google_places.place_details(place_id=place_id, api_key=api_key)
        return to_place_details(result)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to fetch details for %s: %s", place_id, exc)
        return PlaceDetails()


def collect_candidates(
    query: SearchQuery,
    api_key: str,
    *,
    max_pages: int = 1,
    detail_delay: float = 0.0,
    should_continue: Callable[[], bool] = _keep_going,
) -> List[EnrichedCandidate]:
    found: List[EnrichedCandidate] = []

    for _keyword, batch in fan_out(query, api_key, max_pages=max_pages, should_continue=should_continue):
        for candidate in batch:
            if not should_continue():
                raise SearchCancelled(f"search superseded before enriching {candidate.place_id}")
            details = fetch_details(candidate.place_id, api_key)
            found.append(EnrichedCandidate.merge(candidate, details))
            if detail_delay > 0:
                time.sleep(detail_delay)

    return found


def consolidate(candidates: Iterable[EnrichedCandidate], origin: Coordinate) -> List[RankedResult]:
    """Dedupe by place_id (first occurrence wins) and sort by distance from ``origin``."""
    unique: Dict[str, EnrichedCandidate] = {}
    for candidate in candidates:
        unique.setdefault(candidate.place_id, candidate)

    ranked = [
        RankedResult(
            place_id=candidate.place_id,
            name=candidate.name,
            location=candidate.location,
            distance_miles=haversine_miles(origin, candidate.location),
            address=candidate.address,
            keyword=candidate.keyword,
            phone=candidate.phone,
            website=candidate.website,
            url=candidate.url,
        )
        for candidate in unique.values()
    ]
    # list.sort is stable, so equal distances keep keyword-scan order.
    ranked.sort(key=lambda result: result.distance_miles)
    return ranked


def run_search(
    query: SearchQuery,
    api_key: str,
    *,
    max_pages: int = 1,
    detail_delay: float = 0.0,
    should_continue: Optional[Callable[[], bool]] = None,
) -> List[RankedResult]:
    should_continue = should_continue or _keep_going
    logger.info(
        "Searching %d keywords around (%.5f, %.5f) within %d miles",
        len(query.keywords),
        query.origin.latitude,
        query.origin.longitude,
        query.radius_miles,
    )
    candidates = collect_candidates(
        query,
        api_key,
        max_pages=max_pages,
        detail_delay=detail_delay,
        should_continue=should_continue,
    )
    results = consolidate(candidates, query.origin)
    logger.info("Consolidated %d candidates into %d results", len(candidates), len(results))
    return results
