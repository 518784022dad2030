"""Distance orthodromique (formule de haversine)."""
import math
from typing import Tuple

EARTH_RADIUS_MILES = 3958.8

Point = Tuple[float, float]


def haversine_miles(point_a: Point, point_b: Point) -> float:
    """
    Distance en miles entre deux points (lat, lng) en degrés.

    Args:
        point_a: Premier point
        point_b: Deuxième point

    Returns:
        Distance orthodromique en miles
    """
    lat1, lng1 = point_a
    lat2, lng2 = point_b
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(d_lng / 2) ** 2
    )
    # Erreurs d'arrondi pour des points antipodaux
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c

