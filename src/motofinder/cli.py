"""
MotoFinder CLI entrypoint.

Intended for local setup, demos and debugging without the HTTP API:
- `init-db` / `import-catalog` prepare the database from the JSON catalog,
- `search` / `nearby` run shop searches against the database or the catalog,
- `locate` resolves the current (IP-based) location.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from motofinder.catalog.loader import load_catalog
from motofinder.config.settings import Settings, get_settings
from motofinder.core.geo import GeoPoint, format_distance
from motofinder.core.logging import configure_logging
from motofinder.domain.enums import ServiceCategory
from motofinder.domain.models import RankedShop, ShopFilter, UserLocation
from motofinder.location.providers import IpGeolocationProvider
from motofinder.location.resolver import LocationResolver
from motofinder.repository.shops import SqlShopRepository
from motofinder.services import AppServices, build_catalog_services, build_geocoder, build_sql_services
from motofinder.storage.database import Database


def _build_services(settings: Settings, source: str) -> AppServices:
    if source == "catalog":
        return build_catalog_services(settings, geocoder=build_geocoder(settings))
    return build_sql_services(settings, Database.from_settings(settings), geocoder=build_geocoder(settings))


def _locate(settings: Settings, *, want_country: bool) -> UserLocation | None:
    resolver = LocationResolver(
        IpGeolocationProvider(settings.geolocation),
        build_geocoder(settings) if want_country else None,
        timeout_seconds=settings.geolocation.timeout_seconds,
        max_age_seconds=settings.geolocation.max_age_seconds,
    )
    return asyncio.run(resolver.resolve_user_location(want_country=want_country))


def _print_results(results: list[RankedShop], as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.model_dump(mode="json") for r in results], ensure_ascii=False, indent=2))
        return
    if not results:
        print("No shops found. Try a larger radius or a different service.")
        return
    for i, item in enumerate(results, start=1):
        shop = item.shop
        rating = f"{shop.rating:.1f}" if shop.rating is not None else "n/a"
        match = "" if item.offers_service else "  (service not listed)"
        print(f"{i:>2}. {shop.name} ({shop.city})  {format_distance(item.distance_km)}  rating={rating}{match}")
        if shop.email or shop.phone:
            print(f"    {shop.email or ''}  {shop.phone or ''}".rstrip())


def _cmd_init_db(_: argparse.Namespace) -> int:
    Database.from_settings(get_settings()).create_all()
    return 0


def _cmd_import_catalog(args: argparse.Namespace) -> int:
    settings = get_settings()
    catalog = load_catalog(args.path or settings.catalog.path)
    database = Database.from_settings(settings)
    database.create_all()
    repo = SqlShopRepository(database, max_limit=settings.search.max_limit)
    count = repo.import_catalog(catalog, replace=bool(args.replace))
    print(f"Imported {count} shops ({len(catalog.offerings)} services).")
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    settings = get_settings()
    services = _build_services(settings, args.source)
    shop_filter = ShopFilter(
        text=args.q,
        city=args.city,
        country=args.country,
        min_rating=args.min_rating,
        service_category=args.category,
        limit=args.limit,
    )
    origin = GeoPoint(lat=args.lat, lon=args.lon) if args.lat is not None and args.lon is not None else None
    results = services.matching.search_shops(shop_filter, origin=origin, max_distance_km=args.radius_km)
    _print_results(results, args.json)
    return 0


def _cmd_nearby(args: argparse.Namespace) -> int:
    """Handle the `nearby` subcommand (falls back to IP location, then to rating order)."""
    settings = get_settings()
    services = _build_services(settings, args.source)

    lat, lon, country = args.lat, args.lon, args.country
    if lat is None or lon is None:
        location = _locate(settings, want_country=args.country is None)
        if location is None:
            print("Location unavailable; showing top-rated shops instead.")
            results = services.matching.list_shops_without_location(
                city=args.city, country=country, service_category=args.category, limit=args.limit
            )
            _print_results(results, args.json)
            return 0
        lat, lon = location.latitude, location.longitude
        country = country or location.country

    results = services.matching.find_nearby_shops_by_service(
        lat,
        lon,
        service_category=args.category,
        max_distance_km=args.radius_km,
        limit=args.limit,
        user_country=country,
    )
    _print_results(results, args.json)
    return 0


def _cmd_locate(args: argparse.Namespace) -> int:
    location = _locate(get_settings(), want_country=not args.no_country)
    if location is None:
        print(json.dumps({"location": None}))
        return 1
    print(json.dumps({"location": location.model_dump(mode="json")}, ensure_ascii=False, indent=2))
    return 0


def _add_search_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--category", type=ServiceCategory, choices=list(ServiceCategory), default=None)
    p.add_argument("--country", type=str, default=None)
    p.add_argument("--city", type=str, default=None)
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--lat", type=float, default=None)
    p.add_argument("--lon", type=float, default=None)
    p.add_argument("--radius-km", dest="radius_km", type=float, default=None)
    p.add_argument(
        "--source",
        choices=["db", "catalog"],
        default="db",
        help="Search the database (default) or the JSON catalog directly.",
    )
    p.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the MotoFinder CLI."""
    parser = argparse.ArgumentParser(prog="motofinder")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Create the database schema if missing.")
    init.set_defaults(func=_cmd_init_db)

    imp = sub.add_parser("import-catalog", help="Load the JSON shop catalog into the database.")
    imp.add_argument("--path", type=str, default=None, help="Catalog JSON (default: catalog.path setting)")
    imp.add_argument("--replace", action="store_true", help="Delete existing shops first.")
    imp.set_defaults(func=_cmd_import_catalog)

    s = sub.add_parser("search", help="Filter shops by text, city, country, rating or service.")
    s.add_argument("--q", type=str, default=None, help="Substring of name, address or city")
    s.add_argument("--min-rating", dest="min_rating", type=float, default=None)
    _add_search_args(s)
    s.set_defaults(func=_cmd_search)

    n = sub.add_parser("nearby", help="Rank shops near a position for a service.")
    _add_search_args(n)
    n.set_defaults(func=_cmd_nearby)

    loc = sub.add_parser("locate", help="Resolve the current location from IP geolocation.")
    loc.add_argument("--no-country", action="store_true", help="Skip reverse geocoding")
    loc.set_defaults(func=_cmd_locate)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m motofinder.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
