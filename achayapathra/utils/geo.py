from math import atan2, cos, radians, sin, sqrt

from achayapathra.errors import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0


def validate_coordinate(lat: float, lon: float):
    if lat is None or lon is None:
        raise InvalidCoordinate("Latitude and longitude are both required")

    if not -90 <= lat <= 90:
        raise InvalidCoordinate(f"Latitude {lat} is outside [-90, 90]")

    if not -180 <= lon <= 180:
        raise InvalidCoordinate(f"Longitude {lon} is outside [-180, 180]")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in kilometers between two WGS84 lat/long pairs.
    """
    validate_coordinate(lat1, lon1)
    validate_coordinate(lat2, lon2)

    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2

    return 2 * EARTH_RADIUS_KM * atan2(sqrt(a), sqrt(1 - a))
