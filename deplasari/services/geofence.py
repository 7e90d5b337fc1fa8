"""
Distance helpers around the depot.
Uses Haversine formula to calculate distance between points.
"""
import math
from typing import Dict
from ..config import settings


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    # Earth radius in kilometers
    R = 6371.0

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def round_half_up(value: float, digits: int = 0):
    """Round halves up (2.5 -> 3, 0.25 -> 0.3)."""
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def distance_from_depot(lat: float, lng: float) -> float:
    return haversine_distance(lat, lng, settings.depot_lat, settings.depot_lng)


def road_estimate(lat1: float, lng1: float, lat2: float, lng2: float) -> Dict[str, float]:
    """
    Rough driving estimate used when no routing provider answers.

    Straight-line distance is stretched by the road factor and driven at the
    configured average speed.

    Returns:
        {"distance": km rounded to 0.1, "duration": minutes rounded}
    """
    straight = haversine_distance(lat1, lng1, lat2, lng2)
    distance = round_half_up(straight * settings.road_factor, 1)
    duration = round_half_up(distance / settings.average_speed_kmh * 60)
    return {"distance": distance, "duration": duration}
