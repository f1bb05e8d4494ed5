import argparse
import io

import pytest

from clinic_locator.core import session as session_mod
from clinic_locator.core.config import ConfigError, Settings
from clinic_locator.core.geolocation import GeolocationError
from clinic_locator.jobs import search_cli
from clinic_locator.models import Coordinate, RankedResult
from clinic_locator.vendors.google_places import GeocodeError


def _settings(api_key="test-key", **kwargs):
    kwargs.setdefault("watch_timeout", 0)
    return Settings(google_api_key=api_key, **kwargs)


class FakeSession:
    """Stand-in for SearchSession recording what the job asked of it."""

    instances = []

    def __init__(self, api_key, **kwargs):
        self.api_key = api_key
        self.kwargs = kwargs
        self.postal_codes = []
        self.closed = False
        self.last_error = None
        FakeSession.instances.append(self)

    def search_postal_code(self, postal_code):
        self.postal_codes.append(postal_code)
        if postal_code == "00000":
            raise GeocodeError("ZERO_RESULTS")
        results = [
            RankedResult(place_id="p1", name="Glow", location=Coordinate(1, 1), distance_miles=1.234, address="Main St")
        ]
        self.kwargs["on_results"](results)
        return results

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False


@pytest.fixture(autouse=True)
def reset_instances():
    FakeSession.instances = []
    yield


def test_run_search_job_requires_api_key(monkeypatch):
    monkeypatch.setattr(search_cli, "get_settings", lambda: _settings(api_key=""))

    with pytest.raises(ConfigError):
        search_cli.run_search_job(postal_code="92054", radius=10, max_pages=1)


def test_run_search_job_requires_location_source(monkeypatch):
    monkeypatch.setattr(search_cli, "get_settings", lambda: _settings())

    with pytest.raises(ValueError):
        search_cli.run_search_job(postal_code=None, radius=10, max_pages=1)


def test_run_search_job_prints_results(monkeypatch):
    monkeypatch.setattr(search_cli, "get_settings", lambda: _settings(keywords=("botox",), detail_delay=0.5))
    monkeypatch.setattr(search_cli, "SearchSession", FakeSession)
    out = io.StringIO()

    search_cli.run_search_job(postal_code="92054", radius=25, max_pages=2, out=out)

    session = FakeSession.instances[0]
    assert session.postal_codes == ["92054"]
    assert session.kwargs["radius_miles"] == 25
    assert session.kwargs["keywords"] == ("botox",)
    assert session.kwargs["max_pages"] == 2
    assert session.kwargs["detail_delay"] == 0.5
    assert session.closed
    assert out.getvalue().strip() == "1. Glow | Main St | 1.2 miles away"


def test_run_search_job_propagates_geocode_error(monkeypatch):
    monkeypatch.setattr(search_cli, "get_settings", lambda: _settings())
    monkeypatch.setattr(search_cli, "SearchSession", FakeSession)

    with pytest.raises(GeocodeError):
        search_cli.run_search_job(postal_code="00000", radius=10, max_pages=1)
    assert FakeSession.instances[0].closed


def test_follow_mode_searches_on_each_position(monkeypatch):
    monkeypatch.setattr(search_cli, "get_settings", lambda: _settings(keywords=("a",)))
    origins = []

    def fake_run_search(query, api_key, **kwargs):
        origins.append(query.origin)
        return []

    monkeypatch.setattr(session_mod, "run_search", fake_run_search)
    out = io.StringIO()
    lines = ["# track", "33.1581,-117.3506", "", "not,a,number,x", "33.2,-117.35,12.5"]

    search_cli.run_search_job(postal_code=None, radius=10, max_pages=1, follow=True, out=out, positions=lines)

    assert origins == [Coordinate(33.1581, -117.3506), Coordinate(33.2, -117.35)]
    assert out.getvalue().count("No clinics found.") == 2


def test_follow_positions_raises_on_last_error():
    class ErrorFeed:
        def publish(self, reading):
            pass

    class ErroringSession(FakeSession):
        def use_my_location(self):
            self.last_error = "User denied Geolocation"

        def __exit__(self, exc_type, exc, tb):
            return False

    with pytest.raises(GeolocationError):
        search_cli.follow_positions(ErroringSession("key"), ErrorFeed(), [])


def test_parse_position():
    reading = search_cli.parse_position(" 33.1, -117.3 , 8 ")
    assert reading.coordinate == Coordinate(33.1, -117.3)
    assert reading.accuracy == 8.0
    assert search_cli.parse_position("33.1,-117.3").accuracy is None
    assert search_cli.parse_position("   ") is None
    assert search_cli.parse_position("# comment") is None
    with pytest.raises(ValueError):
        search_cli.parse_position("33.1")


def test_format_result_includes_optional_fields():
    result = RankedResult(
        place_id="p1",
        name="Glow",
        location=Coordinate(1, 1),
        distance_miles=3.0,
        phone="(760) 555-0100",
        website="https://www.glow.example/",
        url="https://maps.google.com/?cid=1",
    )
    assert search_cli.format_result(2, result) == (
        "2. Glow | 3.0 miles away | (760) 555-0100 | glow.example | https://maps.google.com/?cid=1"
    )


def test_build_parser_defaults(monkeypatch):
    monkeypatch.setattr(search_cli, "get_settings", lambda: _settings(default_radius_miles=25, max_pages=3))
    parser = search_cli.build_parser()
    args = parser.parse_args(["--zip", "92054"])
    assert isinstance(parser, argparse.ArgumentParser)
    assert args.postal_code == "92054"
    assert args.radius == 25
    assert args.max_pages == 3
    assert args.follow is False
    with pytest.raises(SystemExit):
        parser.parse_args(["--zip", "92054", "--radius", "15"])
