"""
Geodesy helpers — great-circle distance and straight-line interpolation.

Every distance in MindRoute is computed here.  Kilometres are the
internal unit; miles are derived only for display, distance filters,
and travel-time estimates.
"""

import math
from typing import Tuple

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371

LatLon = Tuple[float, float]


class OutOfRangeCoordinate(ValueError):
    """A user-supplied coordinate is not a valid latitude/longitude."""


def great_circle_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two points, returned in kilometres."""
    lat1_r, lon1_r = math.radians(lat1), math.radians(lon1)
    lat2_r, lon2_r = math.radians(lat2), math.radians(lon2)

    dlat = lat2_r - lat1_r
    dlon = lon2_r - lon1_r

    a = (math.sin(dlat / 2) ** 2
         + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2)
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return EARTH_RADIUS_KM * c


def km_to_miles(km: float) -> float:
    return km * KM_TO_MILES


def miles_to_km(miles: float) -> float:
    return miles / KM_TO_MILES


def interpolate(p: LatLon, q: LatLon, t: float) -> LatLon:
    """Linear interpolation from *p* to *q*; t=0 is p and t=1 is q exactly."""
    if t < 0.0 or t > 1.0:
        raise ValueError(f"t must be within [0, 1], got {t}")
    if t == 0.0:
        return (p[0], p[1])
    if t == 1.0:
        return (q[0], q[1])
    return (p[0] + (q[0] - p[0]) * t, p[1] + (q[1] - p[1]) * t)


def midpoint(p: LatLon, q: LatLon) -> LatLon:
    return ((p[0] + q[0]) / 2, (p[1] + q[1]) / 2)


def validate_coordinate(lat, lon) -> LatLon:
    """Coerce a user-supplied (lat, lon) to floats and range-check it.

    Raises OutOfRangeCoordinate for non-numeric, non-finite, or
    out-of-range values.
    """
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        raise OutOfRangeCoordinate(f"Coordinate is not numeric: ({lat!r}, {lon!r})")
    if isinstance(lat, bool) or isinstance(lon, bool):
        raise OutOfRangeCoordinate(f"Coordinate is not numeric: ({lat!r}, {lon!r})")
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        raise OutOfRangeCoordinate(f"Coordinate is not finite: ({lat!r}, {lon!r})")
    if not -90.0 <= lat_f <= 90.0:
        raise OutOfRangeCoordinate(f"Latitude {lat_f} outside [-90, 90]")
    if not -180.0 <= lon_f <= 180.0:
        raise OutOfRangeCoordinate(f"Longitude {lon_f} outside [-180, 180]")
    return (lat_f, lon_f)
