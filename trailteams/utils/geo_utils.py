"""Geographic helpers for proximity discovery."""

from math import radians, cos, sin, asin, sqrt
from typing import Optional

from trailteams.utils.constants import EARTH_RADIUS_MILES


def calculate_distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points using the haversine formula.

    Args:
        lat1, lng1: First point in decimal degrees
        lat2, lng2: Second point in decimal degrees

    Returns:
        Distance in miles
    """
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    # Clamp against float drift for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_MILES * c


def validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> None:
    """
    Validate a coordinate pair.

    Both values must be present or both absent; present values must be in range.

    Raises:
        ValueError: If only one value is set or a value is out of range
    """
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise ValueError("Latitude and longitude must be set together")
    if not -90 <= latitude <= 90:
        raise ValueError(f"Latitude {latitude} is out of range (-90 to 90)")
    if not -180 <= longitude <= 180:
        raise ValueError(f"Longitude {longitude} is out of range (-180 to 180)")
