"""
Service wiring.

Builds the long-lived objects (cache, database, repositories, geocoder, matching
service, composer) from settings. The API caches one bundle per process; the CLI
builds one per command. Tests construct bundles directly around an in-memory
database or a catalog.
"""

from __future__ import annotations

from dataclasses import dataclass

from motofinder.catalog.loader import load_catalog
from motofinder.config.settings import Settings
from motofinder.core.cache import FileCache
from motofinder.core.env import resolve_project_path
from motofinder.ingestion.geocoding_client import NominatimClient
from motofinder.location.providers import PositionProvider
from motofinder.location.resolver import LocationResolver
from motofinder.matching.ranking import ShopMatchingService
from motofinder.outreach.composer import ServiceRequestComposer
from motofinder.repository.requests import SqlAppointmentStore, SqlServiceRequestStore
from motofinder.repository.shops import CatalogShopRepository, ShopRepository, SqlShopRepository
from motofinder.storage.database import Database


@dataclass
class AppServices:
    settings: Settings
    shops: ShopRepository
    matching: ShopMatchingService
    composer: ServiceRequestComposer
    requests: SqlServiceRequestStore | None = None
    appointments: SqlAppointmentStore | None = None
    geocoder: NominatimClient | None = None

    def location_resolver(self, provider: PositionProvider) -> LocationResolver:
        return LocationResolver(
            provider,
            self.geocoder,
            timeout_seconds=self.settings.geolocation.timeout_seconds,
            max_age_seconds=self.settings.geolocation.max_age_seconds,
        )


def build_cache(settings: Settings) -> FileCache:
    return FileCache(
        resolve_project_path(settings.cache.dir),
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )


def build_geocoder(settings: Settings, cache: FileCache | None = None) -> NominatimClient:
    return NominatimClient(settings.geocoding, cache or build_cache(settings))


def build_sql_services(settings: Settings, database: Database, *, geocoder: NominatimClient | None = None) -> AppServices:
    """Full stack over a relational database (schema is created if missing)."""
    database.create_all()
    shops = SqlShopRepository(
        database,
        max_limit=settings.search.max_limit,
        default_limit=settings.search.repository_default_limit,
    )
    requests = SqlServiceRequestStore(database, default_list_limit=settings.search.user_requests_limit)
    appointments = SqlAppointmentStore(database)
    return AppServices(
        settings=settings,
        shops=shops,
        matching=ShopMatchingService(shops, settings.search),
        composer=ServiceRequestComposer(requests, appointments),
        requests=requests,
        appointments=appointments,
        geocoder=geocoder,
    )


def build_catalog_services(settings: Settings, *, geocoder: NominatimClient | None = None) -> AppServices:
    """Read-only stack over the JSON catalog; nothing is persisted."""
    catalog = load_catalog(settings.catalog.path)
    shops = CatalogShopRepository(
        catalog,
        max_limit=settings.search.max_limit,
        default_limit=settings.search.repository_default_limit,
    )
    return AppServices(
        settings=settings,
        shops=shops,
        matching=ShopMatchingService(shops, settings.search),
        composer=ServiceRequestComposer(),
        geocoder=geocoder,
    )
