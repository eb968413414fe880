from __future__ import annotations
from dataclasses import dataclass
from math import asin, cos, degrees, isfinite, radians, sin, sqrt

from motofinder.core.errors import InvalidCoordinatesError

"""
Geospatial helpers.

Distances are great-circle (Haversine) on a spherical Earth, which is accurate to
well under 1% at the radii a shop search uses. No GIS dependency is needed.
"""

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    """Coarse lat/lon rectangle enclosing a search circle.

    `min_lon`/`max_lon` are None when the circle wraps the antimeridian or reaches a
    pole; callers must then skip the longitude predicate.
    """

    min_lat: float
    max_lat: float
    min_lon: float | None
    max_lon: float | None


def validate_coordinates(lat: float, lon: float) -> bool:
    """Return True when (lat, lon) is a finite point inside the valid ranges."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return False
    if not (isfinite(lat_f) and isfinite(lon_f)):
        return False
    return -90 <= lat_f <= 90 and -180 <= lon_f <= 180


def require_coordinates(lat: float, lon: float) -> GeoPoint:
    if not validate_coordinates(lat, lon):
        raise InvalidCoordinatesError(f"Invalid coordinates: lat={lat!r} lon={lon!r}")
    return GeoPoint(lat=float(lat), lon=float(lon))


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in kilometres between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1.0 for antipodal points.
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(1.0, h)))


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Validated Haversine distance in kilometres.

    Raises:
        InvalidCoordinatesError: If either point is out of range or not finite.
    """
    return haversine_km(require_coordinates(lat1, lon1), require_coordinates(lat2, lon2))


def bounding_box(origin: GeoPoint, radius_km: float) -> BoundingBox:
    """Return a rectangle that contains every point within `radius_km` of `origin`."""
    dlat = degrees(radius_km / EARTH_RADIUS_KM)
    min_lat = max(-90.0, origin.lat - dlat)
    max_lat = min(90.0, origin.lat + dlat)
    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=None, max_lon=None)

    # Widest longitude span is reached at the latitude furthest from the equator.
    widest = max(abs(min_lat), abs(max_lat))
    dlon = degrees(radius_km / (EARTH_RADIUS_KM * cos(radians(widest))))
    min_lon = origin.lon - dlon
    max_lon = origin.lon + dlon
    if min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=None, max_lon=None)
    return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon)


def format_distance(distance: float | None) -> str:
    """Human-friendly distance: metres below 1 km, one decimal below 10 km."""
    if distance is None:
        return "Distance unknown"
    if distance < 1:
        return f"{round(distance * 1000)} m"
    if distance < 10:
        return f"{distance:.1f} km"
    return f"{round(distance)} km"
