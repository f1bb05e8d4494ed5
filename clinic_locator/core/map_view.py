"""In-memory map state: centre, zoom and clinic markers."""

import html
from typing import Any, Dict, Iterable, List

from clinic_locator.etl.transform import coordinate_payload
from clinic_locator.models import Coordinate, MapMarker, RankedResult

DEFAULT_CENTER = Coordinate(latitude=33.1581, longitude=-117.3506)
DEFAULT_ZOOM = 10
RESULTS_ZOOM = 12


def info_window_html(result: RankedResult) -> str:
    name = html.escape(result.name)
    address = html.escape(result.address or "")
    return f'<div style="font-size:14px;"><strong>{name}</strong><br>{address}</div>'


class MapView:
    def __init__(self, center: Coordinate = DEFAULT_CENTER, zoom: int = DEFAULT_ZOOM) -> None:
        self.center = center
        self.zoom = zoom
        self.markers: List[MapMarker] = []

    def set_center(self, center: Coordinate) -> None:
        self.center = center

    def set_zoom(self, zoom: int) -> None:
        self.zoom = zoom

    def clear_markers(self) -> None:
        self.markers = []

    def add_marker(self, position: Coordinate, title: str, info_html: str) -> MapMarker:
        marker = MapMarker(position=position, title=title, info_html=info_html)
        self.markers.append(marker)
        return marker

    def show_results(self, origin: Coordinate, results: Iterable[RankedResult]) -> None:
        """Recentre on ``origin`` and replace all markers with one per result."""
        self.set_center(origin)
        self.set_zoom(RESULTS_ZOOM)
        self.clear_markers()
        for result in results:
            self.add_marker(result.location, result.name, info_window_html(result))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "center": coordinate_payload(self.center),
            "zoom": self.zoom,
            "markers": [
                {
                    "position": coordinate_payload(marker.position),
                    "title": marker.title,
                    "info_html": marker.info_html,
                }
                for marker in self.markers
            ],
        }
