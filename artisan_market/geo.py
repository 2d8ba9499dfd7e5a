import math
from typing import Iterable, List, Tuple, TypeVar

EARTH_RADIUS_MILES = 3959

T = TypeVar("T")


def haversine_miles(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance between two points given in degrees.

    Non-numeric input gives ``nan``; filter out records without coordinates
    before calling.
    """
    try:
        lat1, lon1, lat2, lon2 = float(lat1), float(lon1), float(lat2), float(lon2)
    except (TypeError, ValueError):
        return math.nan
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def rank_by_distance(origin: Tuple[float, float], records: Iterable[T]) -> List[Tuple[T, float]]:
    """Pair each record that has ``latitude``/``longitude`` with its distance, nearest first."""
    lat, lon = origin
    ranked = [
        (r, haversine_miles(lat, lon, r.latitude, r.longitude))
        for r in records
        if r.latitude is not None and r.longitude is not None
    ]
    ranked.sort(key=lambda pair: pair[1])
    return ranked
