import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx

from motofinder.config.settings import GeocodingSettings, GeolocationSettings
from motofinder.core.cache import FileCache
from motofinder.core.errors import GeocodingError, LocationUnavailableError
from motofinder.core.lookup_meta import capture_lookup_meta
from motofinder.domain.models import Position
from motofinder.ingestion.geocoding_client import NominatimClient, parse_reverse_response
from motofinder.location.providers import IpGeolocationProvider, StaticPositionProvider
from motofinder.location.resolver import LocationResolver

REVERSE_URL = "https://nominatim.test/reverse"

LONDON_PAYLOAD = {
    "display_name": "Westminster, London, Greater London, England, United Kingdom",
    "address": {
        "city": "London",
        "state": "England",
        "country": "United Kingdom",
        "country_code": "gb",
    },
}


def _geocoder(tmp_path, **overrides) -> NominatimClient:
    settings = GeocodingSettings(base_url=REVERSE_URL, max_per_minute=6000, burst=10, **overrides)
    return NominatimClient(settings, FileCache(tmp_path, enabled=True))


def _here(**kw) -> Position:
    return Position(latitude=51.5074, longitude=-0.1278, accuracy_m=12.0, **kw)


class _SlowProvider:
    async def get_position(self) -> Position:
        await asyncio.sleep(5)
        return _here()


@pytest.mark.asyncio
async def test_resolves_coordinates_without_country():
    resolver = LocationResolver(StaticPositionProvider(_here()))
    loc = await resolver.resolve_user_location(want_country=False)
    assert (loc.latitude, loc.longitude, loc.accuracy_m) == (51.5074, -0.1278, 12.0)
    assert loc.country is None


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", ["permission_denied", "unavailable"])
async def test_denied_or_unavailable_position_returns_none(reason):
    resolver = LocationResolver(StaticPositionProvider(reason=reason))
    assert await resolver.resolve_user_location() is None


@pytest.mark.asyncio
async def test_slow_position_source_times_out_to_none():
    resolver = LocationResolver(_SlowProvider(), timeout_seconds=0.05)
    assert await resolver.resolve_user_location(want_country=False) is None


@pytest.mark.asyncio
async def test_stale_position_is_rejected_and_fresh_one_accepted():
    old = _here(captured_at=datetime.now(timezone.utc) - timedelta(minutes=10))
    assert await LocationResolver(StaticPositionProvider(old), max_age_seconds=60).resolve_user_location() is None

    fresh = _here(captured_at=datetime.now(timezone.utc))
    loc = await LocationResolver(StaticPositionProvider(fresh), max_age_seconds=60).resolve_user_location(
        want_country=False
    )
    assert loc is not None


@pytest.mark.asyncio
async def test_reverse_geocoding_adds_country_and_city(tmp_path):
    with respx.mock(assert_all_called=True) as mock:
        route = mock.get(url__startswith=REVERSE_URL).mock(return_value=httpx.Response(200, json=LONDON_PAYLOAD))
        resolver = LocationResolver(StaticPositionProvider(_here()), _geocoder(tmp_path))
        loc = await resolver.resolve_user_location(want_country=True)

    assert loc.country == "United Kingdom"
    assert loc.country_code == "GB"
    assert loc.city == "London"
    assert loc.state == "England"
    assert loc.address.startswith("Westminster")

    request = route.calls.last.request
    assert request.url.params["format"] == "json"
    assert request.url.params["zoom"] == "10"
    assert request.url.params["addressdetails"] == "1"
    assert request.headers["User-Agent"] == "MotorcycleServiceDirectory/1.0"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, json={"error": "Unable to geocode"}),
        httpx.Response(200, content=b"not json"),
    ],
)
async def test_geocoding_failure_keeps_coordinates(tmp_path, response):
    with respx.mock() as mock:
        mock.get(url__startswith=REVERSE_URL).mock(return_value=response)
        resolver = LocationResolver(StaticPositionProvider(_here()), _geocoder(tmp_path))
        loc = await resolver.resolve_user_location(want_country=True)

    assert loc is not None
    assert (loc.latitude, loc.longitude) == (51.5074, -0.1278)
    assert loc.country is None and loc.city is None


@pytest.mark.asyncio
async def test_geocoding_network_error_keeps_coordinates(tmp_path):
    with respx.mock() as mock:
        mock.get(url__startswith=REVERSE_URL).mock(side_effect=httpx.ConnectError("down"))
        resolver = LocationResolver(StaticPositionProvider(_here()), _geocoder(tmp_path))
        loc = await resolver.resolve_user_location(want_country=True)
    assert loc.country_code is None


@pytest.mark.asyncio
async def test_repeated_lookups_are_served_from_cache(tmp_path):
    geocoder = _geocoder(tmp_path)
    with respx.mock() as mock:
        route = mock.get(url__startswith=REVERSE_URL).mock(return_value=httpx.Response(200, json=LONDON_PAYLOAD))
        first = await geocoder.reverse(51.5074, -0.1278)
        with capture_lookup_meta() as meta:
            second = await geocoder.reverse(51.50741, -0.12781)

    assert route.call_count == 1
    assert first == second
    assert [v["mode"] for v in meta.lookups.values()] == ["cache"]


@pytest.mark.asyncio
async def test_expired_entry_is_used_when_service_is_down(tmp_path, monkeypatch):
    geocoder = _geocoder(tmp_path, cache_ttl_seconds=1)
    monkeypatch.setattr("motofinder.core.cache.time.time", lambda: 0)
    with respx.mock() as mock:
        mock.get(url__startswith=REVERSE_URL).mock(return_value=httpx.Response(200, json=LONDON_PAYLOAD))
        await geocoder.reverse(51.5074, -0.1278)

    monkeypatch.setattr("motofinder.core.cache.time.time", lambda: 100)
    with respx.mock() as mock:
        mock.get(url__startswith=REVERSE_URL).mock(return_value=httpx.Response(503))
        place = await geocoder.reverse(51.5074, -0.1278)
    assert place.country_code == "GB"


@pytest.mark.asyncio
async def test_disabled_geocoder_raises(tmp_path):
    with pytest.raises(GeocodingError):
        await _geocoder(tmp_path, enabled=False).reverse(0, 0)


def test_parse_reverse_response_prefers_city_then_town_then_village():
    place = parse_reverse_response({"address": {"village": "Little Snoring", "country_code": "gb"}})
    assert place.city == "Little Snoring"
    assert place.country_code == "GB"

    town = parse_reverse_response({"address": {"town": "Kendal", "village": "X"}})
    assert town.city == "Kendal"


def test_parse_reverse_response_names_country_from_code_when_missing():
    place = parse_reverse_response({"address": {"city": "Uppsala", "country_code": "se"}})
    assert place.country == "Sweden"
    assert parse_reverse_response({"address": {"country_code": "zz"}}).country == "ZZ"
    assert parse_reverse_response({"address": {"city": "Oslo"}}).country is None


@pytest.mark.asyncio
async def test_ip_geolocation_provider(tmp_path):
    settings = GeolocationSettings(ip_lookup_url="https://ip.test/json/")
    with respx.mock() as mock:
        mock.get(url__startswith="https://ip.test/json/").mock(
            return_value=httpx.Response(200, json={"latitude": 59.33, "longitude": 18.07, "country_name": "Sweden"})
        )
        position = await IpGeolocationProvider(settings).get_position()
    assert (position.latitude, position.longitude) == (59.33, 18.07)
    assert position.captured_at is not None

    with respx.mock() as mock:
        mock.get(url__startswith="https://ip.test/json/").mock(return_value=httpx.Response(200, json={"error": True}))
        with pytest.raises(LocationUnavailableError) as exc:
            await IpGeolocationProvider(settings).get_position()
    assert exc.value.reason == "unavailable"


@pytest.mark.asyncio
async def test_unwritable_cache_does_not_break_live_lookup(tmp_path):
    blocker = tmp_path / "ro"
    blocker.write_text("not a directory", encoding="utf-8")
    settings = GeocodingSettings(base_url=REVERSE_URL, max_per_minute=6000, burst=10)
    geocoder = NominatimClient(settings, FileCache(blocker / "cache", enabled=True))

    with respx.mock() as mock:
        mock.get(url__startswith=REVERSE_URL).mock(return_value=httpx.Response(200, json=LONDON_PAYLOAD))
        resolver = LocationResolver(StaticPositionProvider(_here()), geocoder)
        with capture_lookup_meta() as meta:
            loc = await resolver.resolve_user_location(want_country=True)

    assert loc.country_code == "GB"
    assert loc.city == "London"
    assert [v["mode"] for v in meta.lookups.values()] == ["live"]


class _BrokenGeocoder:
    async def reverse(self, lat, lon):
        raise OSError("disk full")


@pytest.mark.asyncio
async def test_unexpected_geocoder_io_error_keeps_coordinates():
    resolver = LocationResolver(StaticPositionProvider(_here()), _BrokenGeocoder())
    loc = await resolver.resolve_user_location(want_country=True)
    assert (loc.latitude, loc.longitude) == (51.5074, -0.1278)
    assert loc.country is None
