"""Great-circle distance helpers."""

import math

from clinic_locator.models import Coordinate

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371


def haversine_miles(origin: Coordinate, target: Coordinate) -> float:
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    d_lat = lat2 - lat1
    d_lng = math.radians(target.longitude - origin.longitude)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    # Rounding can push a past 1 for near-antipodal points.
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c * KM_TO_MILES
