"""
Location resolver.

`resolve_user_location` is fail-open by contract: a denied, missing, slow or stale
position yields `None`, and a reverse-geocoding failure yields coordinates without
country/city. It never raises for those conditions, so callers can always fall
back to a manual city/country selection.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from motofinder.core.errors import LocationUnavailableError, MotofinderError
from motofinder.domain.models import Position, UserLocation
from motofinder.ingestion.geocoding_client import NominatimClient
from motofinder.location.providers import STALE, TIMEOUT, PositionProvider

logger = logging.getLogger(__name__)


class LocationResolver:
    def __init__(
        self,
        position_provider: PositionProvider,
        geocoder: NominatimClient | None = None,
        *,
        timeout_seconds: float = 10.0,
        max_age_seconds: float = 60.0,
    ):
        self._provider = position_provider
        self._geocoder = geocoder
        self._timeout_seconds = timeout_seconds
        self._max_age_seconds = max_age_seconds

    def _check_fresh(self, position: Position) -> None:
        if position.captured_at is None:
            return
        captured = position.captured_at
        if captured.tzinfo is None:
            captured = captured.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - captured).total_seconds()
        if age > self._max_age_seconds:
            raise LocationUnavailableError(STALE, f"Position is {age:.0f}s old.")

    async def _get_position(self) -> Position:
        try:
            position = await asyncio.wait_for(self._provider.get_position(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as e:
            raise LocationUnavailableError(TIMEOUT, "Position request timed out.") from e
        self._check_fresh(position)
        return position

    async def resolve_user_location(self, want_country: bool = True) -> UserLocation | None:
        try:
            position = await self._get_position()
        except LocationUnavailableError as e:
            logger.warning("User location unavailable (%s): %s", e.reason, e)
            return None

        location = UserLocation(
            latitude=position.latitude,
            longitude=position.longitude,
            accuracy_m=position.accuracy_m,
        )
        if not want_country or self._geocoder is None:
            return location

        try:
            place = await asyncio.wait_for(
                self._geocoder.reverse(position.latitude, position.longitude),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Reverse geocoding timed out; returning coordinates only")
            return location
        except (MotofinderError, OSError) as e:
            logger.warning("Reverse geocoding failed; returning coordinates only: %s", e)
            return location

        return location.model_copy(
            update={
                "country": place.country,
                "country_code": place.country_code,
                "city": place.city,
                "state": place.state,
                "address": place.display_name,
            }
        )
