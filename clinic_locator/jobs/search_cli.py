"""CLI job to find clinics near a postal code or a stream of device positions."""

import argparse
import logging
import sys
from typing import Iterable, List, Optional, TextIO

from clinic_locator.core.config import ConfigError, get_settings, require_api_key
from clinic_locator.core.geolocation import GeolocationError, PositionFeed, PositionReading, WatchOptions
from clinic_locator.core.session import SearchSession
from clinic_locator.models import RADIUS_OPTIONS_MILES, Coordinate, RankedResult
from clinic_locator.vendors.google_places import GeocodeError

logger = logging.getLogger(__name__)


def format_result(index: int, result: RankedResult) -> str:
    parts = [f"{index}. {result.name}"]
    if result.address:
        parts.append(result.address)
    parts.append(f"{result.distance_miles:.1f} miles away")
    if result.phone:
        parts.append(result.phone)
    if result.website_host:
        parts.append(result.website_host)
    if result.url:
        parts.append(result.url)
    return " | ".join(parts)


def print_results(results: List[RankedResult], out: TextIO) -> None:
    if not results:
        print("No clinics found.", file=out)
        return
    for index, result in enumerate(results, start=1):
        print(format_result(index, result), file=out)


def parse_position(line: str) -> Optional[PositionReading]:
    """Parse ``lat,lng[,accuracy]``; blank lines and ``#`` comments yield None."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    fields = [field.strip() for field in line.split(",")]
    if len(fields) not in (2, 3):
        raise ValueError(f"expected 'lat,lng[,accuracy]', got {line!r}")
    accuracy = float(fields[2]) if len(fields) == 3 and fields[2] else None
    return PositionReading(coordinate=Coordinate(float(fields[0]), float(fields[1])), accuracy=accuracy)


def follow_positions(session: SearchSession, feed: PositionFeed, lines: Iterable[str]) -> None:
    """Watch the feed and publish each parsed line into it until input ends."""
    with session:
        session.use_my_location()
        for line in lines:
            try:
                reading = parse_position(line)
            except ValueError as exc:
                logger.warning("Skipping position line: %s", exc)
                continue
            if reading is not None:
                feed.publish(reading)
    if session.last_error:
        raise GeolocationError(session.last_error)


def run_search_job(
    *,
    postal_code: Optional[str],
    radius: int,
    max_pages: int,
    follow: bool = False,
    out: TextIO = sys.stdout,
    positions: Optional[Iterable[str]] = None,
) -> None:
    settings = get_settings()
    api_key = require_api_key(settings)

    if not postal_code and not follow:
        raise ValueError("Either a postal code or --follow is required")

    feed = PositionFeed()
    session = SearchSession(
        api_key,
        keywords=settings.keywords,
        radius_miles=radius,
        position_source=feed,
        max_pages=max_pages,
        detail_delay=settings.detail_delay,
        watch_options=WatchOptions(timeout=settings.watch_timeout),
        on_results=lambda results: print_results(results, out),
    )

    if follow:
        follow_positions(session, feed, positions if positions is not None else sys.stdin)
        feed.close()
        return

    with session:
        session.search_postal_code(postal_code)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Find aesthetic clinics near a ZIP code or a live position")
    parser.add_argument("--zip", dest="postal_code", help="Postal code to search around")
    parser.add_argument(
        "--radius",
        dest="radius",
        type=int,
        choices=RADIUS_OPTIONS_MILES,
        default=settings.default_radius_miles,
        help="Search radius in miles",
    )
    parser.add_argument(
        "--max-pages",
        dest="max_pages",
        type=int,
        default=settings.max_pages,
        help="Maximum number of nearby-search pages per keyword",
    )
    parser.add_argument(
        "--follow",
        action="store_true",
        help="Read 'lat,lng[,accuracy]' lines from stdin and search on every position",
    )
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    if not args.postal_code and not args.follow:
        parser.error("one of --zip or --follow is required")

    try:
        run_search_job(
            postal_code=args.postal_code,
            radius=args.radius,
            max_pages=args.max_pages,
            follow=args.follow,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except (GeocodeError, GeolocationError) as exc:
        logger.error("Location lookup failed: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
