"""
Reverse geocoding client (Nominatim).

Turns a coordinate into a coarse place description (country, country code, city,
state, display name). Results are cached on disk by rounded coordinates, so
repeated lookups in a session do not hit the public service again, and calls are
throttled to stay within the Nominatim usage policy.

Failures raise `GeocodingError`; the location resolver treats them as non-fatal.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from motofinder.config.settings import GeocodingSettings
from motofinder.core.cache import FileCache
from motofinder.core.errors import GeocodingError
from motofinder.core.http import get_json
from motofinder.core.lookup_meta import record_lookup
from motofinder.core.rate_limit import TokenBucketRateLimiter
from motofinder.domain.countries import country_name

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "geocoding"


@dataclass(frozen=True)
class PlaceInfo:
    """Place fields extracted from a reverse-geocode response; any may be None."""

    country: str | None = None
    country_code: str | None = None
    city: str | None = None
    state: str | None = None
    display_name: str | None = None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_reverse_response(payload: Any) -> PlaceInfo:
    """Extract place fields from a Nominatim `/reverse` JSON payload.

    Raises:
        GeocodingError: If the payload has no `address` object.
    """
    if not isinstance(payload, dict):
        raise GeocodingError("Reverse geocoding response is not a JSON object.")
    address = payload.get("address")
    if not isinstance(address, dict):
        raise GeocodingError(_clean(payload.get("error")) or "Reverse geocoding response has no address.")

    code = _clean(address.get("country_code"))
    code = code.upper() if code else None
    country = _clean(address.get("country"))
    if country is None and code is not None:
        country = country_name(code)
    return PlaceInfo(
        country=country,
        country_code=code,
        city=_clean(address.get("city")) or _clean(address.get("town")) or _clean(address.get("village")),
        state=_clean(address.get("state")),
        display_name=_clean(payload.get("display_name")),
    )


class NominatimClient:
    """Reverse geocoder with on-disk caching, stale fallback and throttling."""

    def __init__(self, settings: GeocodingSettings, cache: FileCache, limiter: TokenBucketRateLimiter | None = None):
        self._settings = settings
        self._cache = cache
        self._limiter = limiter or TokenBucketRateLimiter(settings.max_per_minute, burst=settings.burst)

    def _cache_key(self, lat: float, lon: float) -> str:
        p = self._settings.coordinate_precision
        return f"nominatim:{lat:.{p}f}:{lon:.{p}f}"

    async def _fetch(self, lat: float, lon: float) -> Any:
        await self._limiter.acquire()
        params = {
            "format": "json",
            "lat": lat,
            "lon": lon,
            "zoom": self._settings.zoom,
            "addressdetails": 1,
        }
        logger.info("Reverse geocoding lat=%.4f lon=%.4f", lat, lon)
        return await get_json(
            self._settings.base_url,
            params=params,
            timeout_seconds=self._settings.timeout_seconds,
            user_agent=self._settings.user_agent,
        )

    async def reverse(self, lat: float, lon: float) -> PlaceInfo:
        """Return place info for a coordinate (cache first, then live, then stale)."""
        if not self._settings.enabled:
            raise GeocodingError("Reverse geocoding is disabled.")

        key = self._cache_key(lat, lon)
        ttl_seconds = int(self._settings.cache_ttl_seconds)
        source_name = f"geocoding:{key}"

        cached = self._cache.get(CACHE_NAMESPACE, key, ttl_seconds=ttl_seconds)
        if isinstance(cached, dict):
            meta = self._cache.get_entry_meta(CACHE_NAMESPACE, key) or {}
            record_lookup(source_name, "cache", as_of_unix=meta.get("created_at_unix"))
            return PlaceInfo(**cached)

        try:
            payload = await self._fetch(lat, lon)
            place = parse_reverse_response(payload)
        except (httpx.HTTPError, ValueError, GeocodingError) as e:
            stale = self._cache.get_stale(CACHE_NAMESPACE, key)
            if isinstance(stale, dict):
                logger.warning("Reverse geocoding failed (%s); using stale cache entry", e)
                meta = self._cache.get_entry_meta(CACHE_NAMESPACE, key) or {}
                record_lookup(source_name, "stale", as_of_unix=meta.get("created_at_unix"))
                return PlaceInfo(**stale)
            record_lookup(source_name, "none", error=str(e))
            if isinstance(e, GeocodingError):
                raise
            raise GeocodingError(f"Reverse geocoding failed: {e}") from e

        try:
            self._cache.set(CACHE_NAMESPACE, key, asdict(place), ttl_seconds=ttl_seconds)
        except OSError as e:
            logger.warning("Could not cache reverse geocoding result for %s: %s", key, e)
        record_lookup(source_name, "live")
        return place
