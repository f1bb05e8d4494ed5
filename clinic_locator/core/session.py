"""Search session: the state one user's locator widget owns.

A session holds the map view, the origin and results of the last completed
search, and at most one device position watch. Every search (postal code or
position update) is a *cycle*; starting a cycle supersedes any cycle still in
flight, and a superseded cycle never writes its results.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from clinic_locator.core.aggregator import SearchCancelled, run_search
from clinic_locator.core.geolocation import ErrorCallback, GeolocationError, PositionCallback, PositionReading, WatchOptions
from clinic_locator.core.map_view import MapView
from clinic_locator.core.resolver import resolve_postal_code
from clinic_locator.etl.transform import coordinate_payload, to_result_payload
from clinic_locator.models import (
    DEFAULT_KEYWORDS,
    DEFAULT_RADIUS_MILES,
    RADIUS_OPTIONS_MILES,
    Coordinate,
    RankedResult,
    SearchQuery,
)
from clinic_locator.vendors.google_places import GeocodeError

logger = logging.getLogger(__name__)


class PositionSource(Protocol):
    def watch(self, on_position: PositionCallback, on_error: ErrorCallback, options: Optional[WatchOptions] = None) -> int:
        ...

    def clear_watch(self, watch_id: int) -> None:
        ...


ResultsCallback = Callable[[List[RankedResult]], None]


def validate_radius(radius_miles: Any) -> int:
    try:
        radius = int(str(radius_miles).strip())
    except ValueError:
        radius = None
    if radius not in RADIUS_OPTIONS_MILES:
        raise ValueError(f"radius must be one of {RADIUS_OPTIONS_MILES} miles")
    return radius


class SearchSession:
    def __init__(
        self,
        api_key: str,
        *,
        keywords: Sequence[str] = DEFAULT_KEYWORDS,
        radius_miles: int = DEFAULT_RADIUS_MILES,
        position_source: Optional[PositionSource] = None,
        map_view: Optional[MapView] = None,
        executor: Optional[Executor] = None,
        max_pages: int = 1,
        detail_delay: float = 0.0,
        watch_options: Optional[WatchOptions] = None,
        on_results: Optional[ResultsCallback] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.api_key = api_key
        self.keywords = tuple(keywords)
        self.map_view = map_view or MapView()
        self.max_pages = max_pages
        self.detail_delay = detail_delay
        self.watch_options = watch_options or WatchOptions()
        self._radius_miles = validate_radius(radius_miles)
        self._position_source = position_source
        self._executor = executor
        self._on_results = on_results
        self._on_error = on_error

        self._lock = threading.Lock()
        self._watch_lock = threading.RLock()
        self._generation = 0
        self._watch_id: Optional[int] = None
        self._watch_active = False
        self._location: Optional[Coordinate] = None
        self._results: List[RankedResult] = []
        self._last_error: Optional[str] = None

    # ---------- State ----------

    @property
    def radius_miles(self) -> int:
        return self._radius_miles

    @radius_miles.setter
    def radius_miles(self, value: int) -> None:
        self._radius_miles = validate_radius(value)

    @property
    def location(self) -> Optional[Coordinate]:
        return self._location

    @property
    def results(self) -> List[RankedResult]:
        with self._lock:
            return list(self._results)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_watching(self) -> bool:
        return self._watch_id is not None

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            results = list(self._results)
            origin = self._location
            map_state = self.map_view.to_dict()
        return {
            "origin": coordinate_payload(origin),
            "radius_miles": self._radius_miles,
            "results": [to_result_payload(result) for result in results],
            "map": map_state,
            "watching": self.is_watching,
            "last_error": self._last_error,
        }

    # ---------- Search cycles ----------

    def search_postal_code(self, postal_code: str) -> Optional[List[RankedResult]]:
        """Geocode ``postal_code`` and run a cycle from it.

        Raises GeocodeError before any search is issued when the code cannot be
        resolved.
        """
        try:
            origin = resolve_postal_code(postal_code, self.api_key)
        except GeocodeError as exc:
            self._report_error(exc)
            raise
        return self.run_cycle(origin)

    def run_cycle(self, origin: Coordinate) -> Optional[List[RankedResult]]:
        """Search around ``origin`` and publish the results unless superseded.

        Returns the ranked results, or None when a newer cycle took over.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
        query = SearchQuery(origin=origin, radius_miles=self._radius_miles, keywords=self.keywords)

        def is_current() -> bool:
            return self._generation == generation

        try:
            results = run_search(
                query,
                self.api_key,
                max_pages=self.max_pages,
                detail_delay=self.detail_delay,
                should_continue=is_current,
            )
        except SearchCancelled as exc:
            logger.info("Search cycle %d cancelled: %s", generation, exc)
            return None

        with self._lock:
            if generation != self._generation:
                logger.info("Search cycle %d finished after being superseded; discarding results", generation)
                return None
            self._location = origin
            self._results = results
            self._last_error = None
            self.map_view.show_results(origin, results)

        if self._on_results is not None:
            self._on_results(results)
        return results

    def _run_cycle_safe(self, origin: Coordinate) -> None:
        try:
            self.run_cycle(origin)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Search cycle failed: %s", exc)
            self._report_error(exc)

    # ---------- Device position ----------

    def use_my_location(self) -> int:
        """Replace any current position watch with a new one; each reading triggers a cycle."""
        if self._position_source is None:
            error = GeolocationError("Geolocation is not supported")
            self._report_error(error)
            raise error

        with self._watch_lock:
            self.stop_watching()
            self._watch_active = True
            self._watch_id = self._position_source.watch(
                self._handle_position,
                self._handle_position_error,
                self.watch_options,
            )
            return self._watch_id

    def stop_watching(self) -> None:
        with self._watch_lock:
            if self._watch_id is None:
                return
            self._watch_active = False
            watch_id, self._watch_id = self._watch_id, None
            if self._position_source is not None:
                self._position_source.clear_watch(watch_id)

    def _handle_position(self, reading: PositionReading) -> None:
        if not self._watch_active:
            logger.info("Ignoring position update delivered after the watch was cleared")
            return
        logger.info(
            "Position update (%.5f, %.5f) accuracy=%s",
            reading.coordinate.latitude,
            reading.coordinate.longitude,
            reading.accuracy,
        )
        if self._executor is not None:
            self._executor.submit(self._run_cycle_safe, reading.coordinate)
        else:
            self._run_cycle_safe(reading.coordinate)

    def _handle_position_error(self, error: GeolocationError) -> None:
        logger.warning("Error watching location: %s", error)
        self._report_error(error)

    def _report_error(self, error: Exception) -> None:
        self._last_error = str(error)
        if self._on_error is not None:
            self._on_error(error)

    # ---------- Teardown ----------

    def close(self) -> None:
        """Release the position watch and abandon any in-flight cycle."""
        self.stop_watching()
        with self._lock:
            self._generation += 1

    def __enter__(self) -> "SearchSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
