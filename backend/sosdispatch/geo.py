import math
import re
from typing import Tuple

from .errors import InvalidInput

# Sphere radius used by MongoDB's 2dsphere queries, so rankings match a geo-indexed store
EARTH_RADIUS_M = 6378100.0
METERS_PER_DEGREE_LAT = math.pi * EARTH_RADIUS_M / 180.0

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def is_e164(phone) -> bool:
    return isinstance(phone, str) and bool(E164_RE.fullmatch(phone))


def require_phone(phone, field: str = "phone") -> str:
    if not is_e164(phone):
        raise InvalidInput(f"{field} must be an E.164 phone number")
    return phone


def validate_point(lng, lat) -> Tuple[float, float]:
    try:
        lng_f = float(lng)
        lat_f = float(lat)
    except (TypeError, ValueError):
        raise InvalidInput("valid lng, lat required")
    if not (math.isfinite(lng_f) and math.isfinite(lat_f)):
        raise InvalidInput("valid lng, lat required")
    if not (-180.0 <= lng_f <= 180.0 and -90.0 <= lat_f <= 90.0):
        raise InvalidInput("lng must be within [-180, 180] and lat within [-90, 90]")
    return lng_f, lat_f


def haversine_m(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Great-circle distance in meters between two (lng, lat) points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lng: float, lat: float, radius_m: float) -> Tuple[float, float, float, float]:
    """
    Coarse (min_lng, min_lat, max_lng, max_lat) box enclosing a radius around a point.

    Only used to narrow the SQL candidate set; the exact haversine check runs afterwards.
    Near the poles the longitude span covers the whole circle.
    """
    dlat = radius_m / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        dlng = 180.0
    else:
        dlng = min(180.0, dlat / cos_lat)
    return lng - dlng, max(-90.0, lat - dlat), lng + dlng, min(90.0, lat + dlat)


def maps_url(lng: float, lat: float) -> str:
    return f"https://www.google.com/maps/search/?api=1&query={lat},{lng}"
