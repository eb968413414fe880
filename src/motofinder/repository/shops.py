"""
Shop repositories.

Two interchangeable implementations sit behind `ShopRepository`:
- `CatalogShopRepository`: in-memory, backed by the JSON catalog (tests, demos,
  offline runs). Every filter is evaluated in Python.
- `SqlShopRepository`: SQLAlchemy over the `shops` / `shop_services` tables. It also
  implements `nearby_candidates`, which pushes the radius pre-filter (bounding box),
  the country filter and the service-match flag down into one SQL statement.

Repositories are constructed by the caller and injected; nothing here reads global
state.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Protocol, runtime_checkable

from sqlalchemy import and_, exists, func, or_, select

from motofinder.catalog.loader import ShopCatalog
from motofinder.core.geo import GeoPoint, bounding_box
from motofinder.domain.enums import ServiceCategory
from motofinder.domain.models import CountryCount, Shop, ShopFilter, ShopServiceOffering
from motofinder.storage.database import Database
from motofinder.storage.tables import ShopRow, ShopServiceRow

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


class ShopRepository(Protocol):
    def find_shops(self, shop_filter: ShopFilter) -> list[Shop]: ...

    def get_shop(self, shop_id: str) -> Shop | None: ...

    def get_shop_services(self, shop_id: str) -> list[ShopServiceOffering]: ...

    def offered_shop_ids(self, shop_ids: Iterable[str], category: ServiceCategory) -> set[str]: ...

    def list_cities(self) -> list[str]: ...

    def list_countries(self) -> list[CountryCount]: ...

    def located_shops(self, country: str | None = None) -> list[Shop]: ...


@runtime_checkable
class SupportsNearbyPushdown(Protocol):
    def nearby_candidates(
        self,
        origin: GeoPoint,
        max_distance_km: float,
        service_category: ServiceCategory | None = None,
        country: str | None = None,
    ) -> list[tuple[Shop, bool]]: ...


def _rating_order_key(shop: Shop) -> tuple:
    # rating desc, nulls last, then name
    return (shop.rating is None, -(shop.rating or 0.0), shop.name.lower(), shop.id)


def _country_matches(shop_country: str | None, wanted: str | None) -> bool:
    if not wanted:
        return True
    return bool(shop_country) and shop_country.strip().lower() == wanted.strip().lower()


class CatalogShopRepository:
    """In-memory repository over a loaded `ShopCatalog`."""

    def __init__(self, catalog: ShopCatalog, *, max_limit: int = DEFAULT_LIMIT, default_limit: int = DEFAULT_LIMIT):
        self._shops: dict[str, Shop] = {s.id: s for s in catalog.shops}
        self._offerings: dict[str, list[ShopServiceOffering]] = {}
        for offering in catalog.offerings:
            self._offerings.setdefault(offering.shop_id, []).append(offering)
        self._max_limit = max_limit
        self._default_limit = min(default_limit, max_limit)

    def _offers(self, shop_id: str, category: ServiceCategory) -> bool:
        return any(
            o.service_category is category and o.is_available for o in self._offerings.get(shop_id, [])
        )

    def find_shops(self, shop_filter: ShopFilter) -> list[Shop]:
        text = shop_filter.text.lower() if shop_filter.text else None
        city = shop_filter.city.lower() if shop_filter.city else None

        out: list[Shop] = []
        for shop in self._shops.values():
            if text and not any(text in (v or "").lower() for v in (shop.name, shop.address, shop.city)):
                continue
            if city and city not in shop.city.lower():
                continue
            if not _country_matches(shop.country, shop_filter.country):
                continue
            if shop_filter.min_rating is not None and (shop.rating is None or shop.rating < shop_filter.min_rating):
                continue
            if shop_filter.service_category is not None and not self._offers(shop.id, shop_filter.service_category):
                continue
            out.append(shop)

        out.sort(key=_rating_order_key)
        limit = min(shop_filter.limit or self._default_limit, self._max_limit)
        return out[:limit]

    def located_shops(self, country: str | None = None) -> list[Shop]:
        """Every shop with coordinates, unbounded (the scan path of a nearby search)."""
        return [s for s in self._shops.values() if s.has_coordinates and _country_matches(s.country, country)]

    def get_shop(self, shop_id: str) -> Shop | None:
        return self._shops.get(shop_id)

    def get_shop_services(self, shop_id: str) -> list[ShopServiceOffering]:
        offerings = [o for o in self._offerings.get(shop_id, []) if o.is_available]
        return sorted(offerings, key=lambda o: (o.service_category.value, o.service_name))

    def offered_shop_ids(self, shop_ids: Iterable[str], category: ServiceCategory) -> set[str]:
        return {sid for sid in shop_ids if self._offers(sid, category)}

    def list_cities(self) -> list[str]:
        return sorted({s.city for s in self._shops.values() if s.city})

    def list_countries(self) -> list[CountryCount]:
        counts = Counter(s.country for s in self._shops.values() if s.country)
        rows = [CountryCount(country=c, shop_count=n) for c, n in counts.items()]
        return sorted(rows, key=lambda r: (-r.shop_count, r.country))


def shop_from_row(row: ShopRow) -> Shop:
    return Shop(
        id=row.id,
        name=row.name,
        address=row.address or "",
        city=row.city or "",
        country=row.country,
        latitude=row.latitude,
        longitude=row.longitude,
        phone=row.phone,
        email=row.email,
        website=row.website,
        rating=row.rating,
        reviews_count=row.reviews_count,
        hours=row.hours,
    )


def offering_from_row(row: ShopServiceRow) -> ShopServiceOffering:
    return ShopServiceOffering(
        shop_id=row.shop_id,
        service_name=row.service_name,
        service_category=ServiceCategory(row.service_category),
        description=row.description,
        estimated_duration_minutes=row.estimated_duration,
        price_from=row.price_from,
        price_to=row.price_to,
        is_available=bool(row.is_available),
    )


def _offers_clause(category: ServiceCategory):
    return exists().where(
        and_(
            ShopServiceRow.shop_id == ShopRow.id,
            ShopServiceRow.service_category == category.value,
            ShopServiceRow.is_available.is_(True),
        )
    )


def _rating_order():
    # NULLS LAST spelled portably; SQLite and PostgreSQL disagree on the default.
    return (ShopRow.rating.is_(None), ShopRow.rating.desc(), func.lower(ShopRow.name), ShopRow.id)


class SqlShopRepository:
    """SQLAlchemy-backed repository with the nearby-search pushdown."""

    def __init__(self, database: Database, *, max_limit: int = DEFAULT_LIMIT, default_limit: int = DEFAULT_LIMIT):
        self._db = database
        self._max_limit = max_limit
        self._default_limit = min(default_limit, max_limit)

    def find_shops(self, shop_filter: ShopFilter) -> list[Shop]:
        stmt = select(ShopRow)
        if shop_filter.text:
            needle = shop_filter.text.lower()
            stmt = stmt.where(
                or_(
                    func.lower(ShopRow.name).contains(needle, autoescape=True),
                    func.lower(ShopRow.address).contains(needle, autoescape=True),
                    func.lower(ShopRow.city).contains(needle, autoescape=True),
                )
            )
        if shop_filter.city:
            stmt = stmt.where(func.lower(ShopRow.city).contains(shop_filter.city.lower(), autoescape=True))
        if shop_filter.country:
            stmt = stmt.where(func.lower(ShopRow.country) == shop_filter.country.strip().lower())
        if shop_filter.min_rating is not None:
            stmt = stmt.where(ShopRow.rating >= shop_filter.min_rating)
        if shop_filter.service_category is not None:
            stmt = stmt.where(_offers_clause(shop_filter.service_category))

        limit = min(shop_filter.limit or self._default_limit, self._max_limit)
        stmt = stmt.order_by(*_rating_order()).limit(limit)
        with self._db.session() as session:
            return [shop_from_row(r) for r in session.scalars(stmt)]

    def get_shop(self, shop_id: str) -> Shop | None:
        with self._db.session() as session:
            row = session.get(ShopRow, shop_id)
            return shop_from_row(row) if row is not None else None

    def get_shop_services(self, shop_id: str) -> list[ShopServiceOffering]:
        stmt = (
            select(ShopServiceRow)
            .where(ShopServiceRow.shop_id == shop_id, ShopServiceRow.is_available.is_(True))
            .order_by(ShopServiceRow.service_category, ShopServiceRow.service_name)
        )
        with self._db.session() as session:
            return [offering_from_row(r) for r in session.scalars(stmt)]

    def offered_shop_ids(self, shop_ids: Iterable[str], category: ServiceCategory) -> set[str]:
        ids = list(shop_ids)
        if not ids:
            return set()
        stmt = (
            select(ShopServiceRow.shop_id)
            .where(
                ShopServiceRow.shop_id.in_(ids),
                ShopServiceRow.service_category == category.value,
                ShopServiceRow.is_available.is_(True),
            )
            .distinct()
        )
        with self._db.session() as session:
            return set(session.scalars(stmt))

    def list_cities(self) -> list[str]:
        stmt = select(ShopRow.city).where(ShopRow.city != "").distinct().order_by(ShopRow.city)
        with self._db.session() as session:
            return [c for c in session.scalars(stmt) if c]

    def list_countries(self) -> list[CountryCount]:
        count = func.count(ShopRow.id).label("shop_count")
        stmt = (
            select(ShopRow.country, count)
            .where(ShopRow.country.is_not(None))
            .group_by(ShopRow.country)
            .order_by(count.desc(), ShopRow.country)
        )
        with self._db.session() as session:
            return [CountryCount(country=c, shop_count=n) for c, n in session.execute(stmt)]

    def located_shops(self, country: str | None = None) -> list[Shop]:
        stmt = select(ShopRow).where(ShopRow.latitude.is_not(None), ShopRow.longitude.is_not(None))
        if country:
            stmt = stmt.where(func.lower(ShopRow.country) == country.strip().lower())
        with self._db.session() as session:
            return [shop_from_row(r) for r in session.scalars(stmt)]

    def nearby_candidates(
        self,
        origin: GeoPoint,
        max_distance_km: float,
        service_category: ServiceCategory | None = None,
        country: str | None = None,
    ) -> list[tuple[Shop, bool]]:
        """Return shops inside the radius's bounding box, each with its service-match flag.

        The box is a superset of the circle; exact distances and ordering are left to
        the ranking layer.
        """
        box = bounding_box(origin, max_distance_km)
        offers = _offers_clause(service_category) if service_category is not None else None
        columns = [ShopRow, offers.label("offers_service")] if offers is not None else [ShopRow]

        stmt = select(*columns).where(
            ShopRow.latitude.is_not(None),
            ShopRow.longitude.is_not(None),
            ShopRow.latitude.between(box.min_lat, box.max_lat),
        )
        if box.min_lon is not None and box.max_lon is not None:
            stmt = stmt.where(ShopRow.longitude.between(box.min_lon, box.max_lon))
        if country:
            stmt = stmt.where(func.lower(ShopRow.country) == country.strip().lower())

        with self._db.session() as session:
            if offers is None:
                rows = [(shop_from_row(r), True) for r in session.scalars(stmt)]
            else:
                rows = [(shop_from_row(r), bool(flag)) for r, flag in session.execute(stmt)]
        logger.debug("nearby_candidates: %d rows inside bounding box", len(rows))
        return rows

    def import_catalog(self, catalog: ShopCatalog, *, replace: bool = False) -> int:
        """Upsert catalog shops and their offerings; returns the number of shops written."""
        with self._db.session() as session:
            if replace:
                session.query(ShopServiceRow).delete()
                session.query(ShopRow).delete()
            for shop in catalog.shops:
                session.merge(ShopRow(**shop.model_dump()))
            session.flush()
            shop_ids = [s.id for s in catalog.shops]
            if shop_ids and not replace:
                session.query(ShopServiceRow).filter(ShopServiceRow.shop_id.in_(shop_ids)).delete(
                    synchronize_session=False
                )
            for offering in catalog.offerings:
                session.add(_offering_row(offering))
        logger.info("Imported %d shops and %d offerings", len(catalog.shops), len(catalog.offerings))
        return len(catalog.shops)


def _offering_row(offering: ShopServiceOffering) -> ShopServiceRow:
    return ShopServiceRow(
        shop_id=offering.shop_id,
        service_name=offering.service_name,
        service_category=offering.service_category.value,
        description=offering.description,
        estimated_duration=offering.estimated_duration_minutes,
        price_from=offering.price_from,
        price_to=offering.price_to,
        is_available=offering.is_available,
    )
