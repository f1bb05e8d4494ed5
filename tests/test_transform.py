from clinic_locator.etl import transform
from clinic_locator.models import Coordinate, RankedResult


def test_to_raw_candidate_uses_vicinity():
    result = {
        "place_id": "p1",
        "name": " Glow Med Spa ",
        "vicinity": "123 Coast Hwy, Oceanside",
        "geometry": {"location": {"lat": 33.2, "lng": -117.35}},
    }

    candidate = transform.to_raw_candidate(result, keyword="med spa")

    assert candidate.place_id == "p1"
    assert candidate.name == "Glow Med Spa"
    assert candidate.address == "123 Coast Hwy, Oceanside"
    assert candidate.location == Coordinate(33.2, -117.35)
    assert candidate.keyword == "med spa"
    assert candidate.raw_snapshot is result


def test_to_raw_candidate_falls_back_to_formatted_address():
    result = {
        "place_id": "p1",
        "name": "Acme",
        "formatted_address": "1 Main St",
        "geometry": {"location": {"lat": 1, "lng": 2}},
    }
    assert transform.to_raw_candidate(result).address == "1 Main St"


def test_to_raw_candidate_skips_unusable_results():
    assert transform.to_raw_candidate({"name": "No id", "geometry": {"location": {"lat": 1, "lng": 2}}}) is None
    assert transform.to_raw_candidate({"place_id": "p1", "name": "No geometry"}) is None
    assert transform.to_raw_candidate({"place_id": "p1", "geometry": {"location": {"lat": "x", "lng": 2}}}) is None


def test_to_place_details_marks_absent_fields():
    details = transform.to_place_details({"website": "https://glow.example", "formatted_phone_number": "  "})

    assert details.website == "https://glow.example"
    assert details.phone is None
    assert details.url is None
    assert not details.is_empty
    assert transform.to_place_details({}).is_empty


def test_to_result_payload():
    result = RankedResult(
        place_id="p1",
        name="Glow",
        location=Coordinate(33.2, -117.35),
        distance_miles=2.98765,
        website="https://www.glow.example/book",
    )

    payload = transform.to_result_payload(result)

    assert payload["location"] == {"lat": 33.2, "lng": -117.35}
    assert payload["distance_miles"] == 2.988
    assert payload["website_host"] == "glow.example"
    assert payload["phone"] is None
