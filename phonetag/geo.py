"""Great-circle distance math."""

import math

from .models import Coordinate

EARTH_RADIUS_METERS = 6371008.8


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates, in meters.

    NaN inputs produce NaN; ranges are validated by callers.
    """
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def offset(origin: Coordinate, meters: float, bearing_degrees: float) -> Coordinate:
    """Point `meters` away from `origin` along the given initial bearing."""
    angular = meters / EARTH_RADIUS_METERS
    bearing = math.radians(bearing_degrees)
    lat1 = math.radians(origin.latitude)
    lon1 = math.radians(origin.longitude)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular) + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lon2 = lon1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    # normalize to [-180, 180)
    longitude = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return Coordinate(latitude=math.degrees(lat2), longitude=longitude)
