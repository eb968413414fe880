"""
Error taxonomy.

Most of these never escape the component that raises them:
- location/geocoding errors are recovered inside the location resolver (fail-open),
- persistence errors during composition are reported on the compose result.

The API layer maps the `ValueError` subclasses to 400 responses, `NotFoundError`
to 404 and `PersistenceError` to 503.
"""

from __future__ import annotations


class MotofinderError(Exception):
    """Base class for all application errors."""


class InvalidCoordinatesError(MotofinderError, ValueError):
    """Latitude/longitude outside [-90, 90] / [-180, 180] (or NaN)."""


class LocationUnavailableError(MotofinderError):
    """The position source denied, timed out, or has nothing fresh to report."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class GeocodingError(MotofinderError):
    """Reverse geocoding failed (transport, status code, or response shape)."""


class PersistenceError(MotofinderError):
    """A write to the backing store failed."""


class InvalidStatusTransitionError(MotofinderError, ValueError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move status from '{current}' to '{target}'.")


class NotFoundError(MotofinderError, LookupError):
    pass
