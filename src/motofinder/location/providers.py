"""
Position sources.

A position provider answers one question, "where is the user right now?", and
raises `LocationUnavailableError` when it cannot say. The resolver wraps every
provider call in a timeout, so providers do not need their own.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from motofinder.config.settings import GeolocationSettings
from motofinder.core.errors import LocationUnavailableError
from motofinder.core.geo import validate_coordinates
from motofinder.core.http import get_json
from motofinder.domain.models import Position

logger = logging.getLogger(__name__)

PERMISSION_DENIED = "permission_denied"
UNAVAILABLE = "unavailable"
TIMEOUT = "timeout"
STALE = "stale"


class PositionProvider(Protocol):
    async def get_position(self) -> Position: ...


class StaticPositionProvider:
    """A position already reported by the caller's device (or its refusal).

    With no position, `get_position` raises with `reason` (e.g. the browser said
    `permission_denied`).
    """

    def __init__(self, position: Position | None = None, *, reason: str = UNAVAILABLE):
        self._position = position
        self._reason = reason

    async def get_position(self) -> Position:
        if self._position is None:
            raise LocationUnavailableError(self._reason)
        return self._position


def _first_number(payload: dict[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


class IpGeolocationProvider:
    """Approximate position from an IP geolocation endpoint (city-level accuracy)."""

    # City-level estimates; good enough to pick a search origin.
    APPROXIMATE_ACCURACY_M = 25_000.0

    def __init__(self, settings: GeolocationSettings):
        self._settings = settings

    async def get_position(self) -> Position:
        try:
            payload = await get_json(self._settings.ip_lookup_url, timeout_seconds=self._settings.timeout_seconds)
        except (httpx.HTTPError, ValueError) as e:
            raise LocationUnavailableError(UNAVAILABLE, f"IP geolocation failed: {e}") from e

        if not isinstance(payload, dict):
            raise LocationUnavailableError(UNAVAILABLE, "IP geolocation returned a non-object payload.")
        lat = _first_number(payload, "latitude", "lat")
        lon = _first_number(payload, "longitude", "lon")
        if lat is None or lon is None or not validate_coordinates(lat, lon):
            raise LocationUnavailableError(UNAVAILABLE, "IP geolocation returned no usable coordinates.")

        return Position(
            latitude=lat,
            longitude=lon,
            accuracy_m=self.APPROXIMATE_ACCURACY_M,
            captured_at=datetime.now(timezone.utc),
        )
