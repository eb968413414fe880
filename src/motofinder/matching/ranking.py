"""
Shop matching & ranking.

Pipeline for a nearby search (sequential, one request at a time):
1) candidates: shops with coordinates, optionally restricted to one country
2) distance: great-circle distance from the user
3) radius: drop shops farther than `max_distance_km`
4) service match: flag shops offering the requested category (others are kept)
5) order: service match first, then nearest, then best rated (unrated last)
6) truncate to `limit`

Candidates come either from the repository's SQL pushdown (`nearby_candidates`) or,
for repositories without one, from a plain `find_shops` scan. Both feed the same
pure `rank_candidates`, so the ordering rules live in exactly one place.
"""

from __future__ import annotations

import logging
from typing import Iterable

from motofinder.config.settings import SearchSettings
from motofinder.core.geo import GeoPoint, haversine_km, require_coordinates
from motofinder.domain.enums import ServiceCategory
from motofinder.domain.models import RankedShop, Shop, ShopFilter
from motofinder.repository.shops import ShopRepository, SupportsNearbyPushdown

logger = logging.getLogger(__name__)


def _ranking_key(item: RankedShop) -> tuple:
    rating = item.shop.rating
    return (
        not item.offers_service,
        item.distance_km if item.distance_km is not None else float("inf"),
        rating is None,
        -(rating or 0.0),
        item.shop.id,
    )


def rank_candidates(
    candidates: Iterable[tuple[Shop, bool]],
    origin: GeoPoint,
    *,
    max_distance_km: float,
    limit: int,
    country: str | None = None,
) -> list[RankedShop]:
    """Filter, annotate and order `(shop, offers_service)` candidates.

    Re-applies the coordinate and country filters, so candidates may be a superset
    (e.g. a bounding box) of the real answer.
    """
    wanted_country = country.strip().lower() if country else None

    ranked: list[RankedShop] = []
    for shop, offers in candidates:
        if not shop.has_coordinates:
            continue
        if wanted_country and (shop.country or "").strip().lower() != wanted_country:
            continue
        distance = haversine_km(origin, GeoPoint(lat=shop.latitude, lon=shop.longitude))
        if distance > max_distance_km:
            continue
        ranked.append(RankedShop(shop=shop, distance_km=distance, offers_service=bool(offers)))

    ranked.sort(key=_ranking_key)
    return ranked[:limit]


class ShopMatchingService:
    def __init__(self, repository: ShopRepository, settings: SearchSettings | None = None):
        self._repo = repository
        self._settings = settings or SearchSettings()

    def _resolve_limit(self, limit: int | None) -> int:
        n = self._settings.default_limit if limit is None else int(limit)
        if n < 1:
            raise ValueError("limit must be >= 1")
        return min(n, self._settings.max_limit)

    def _resolve_radius(self, max_distance_km: float | None) -> float:
        radius = self._settings.default_radius_km if max_distance_km is None else float(max_distance_km)
        if not radius > 0:
            raise ValueError("max_distance_km must be > 0")
        return radius

    def _scan_candidates(
        self, service_category: ServiceCategory | None, country: str | None
    ) -> list[tuple[Shop, bool]]:
        shops = self._repo.located_shops(country)
        if service_category is None:
            return [(s, True) for s in shops]
        offered = self._repo.offered_shop_ids([s.id for s in shops], service_category)
        return [(s, s.id in offered) for s in shops]

    def find_nearby_shops_by_service(
        self,
        user_lat: float,
        user_lon: float,
        service_category: ServiceCategory | None = None,
        max_distance_km: float | None = None,
        limit: int | None = None,
        user_country: str | None = None,
    ) -> list[RankedShop]:
        """Rank shops around the user for an optional service category.

        An empty list is a valid answer; the radius is never widened here.

        Raises:
            ValueError: Invalid coordinates, non-positive radius, or limit < 1.
        """
        origin = require_coordinates(user_lat, user_lon)
        radius = self._resolve_radius(max_distance_km)
        n = self._resolve_limit(limit)
        category = ServiceCategory(service_category) if service_category is not None else None
        country = user_country.strip() if user_country and user_country.strip() else None

        if isinstance(self._repo, SupportsNearbyPushdown):
            candidates = self._repo.nearby_candidates(origin, radius, category, country)
        else:
            candidates = self._scan_candidates(category, country)

        results = rank_candidates(candidates, origin, max_distance_km=radius, limit=n, country=country)
        logger.info(
            "Nearby search lat=%.4f lon=%.4f radius=%.1fkm category=%s country=%s -> %d shops",
            origin.lat,
            origin.lon,
            radius,
            category.value if category else "-",
            country or "-",
            len(results),
        )
        return results

    def list_shops_without_location(
        self,
        city: str | None = None,
        country: str | None = None,
        service_category: ServiceCategory | None = None,
        limit: int | None = None,
    ) -> list[RankedShop]:
        """Rating-ordered fallback when the user's position is unknown."""
        n = self._resolve_limit(limit)
        shops = self._repo.find_shops(
            ShopFilter(city=city, country=country, service_category=service_category, limit=n)
        )
        return [RankedShop(shop=s, distance_km=None, offers_service=True) for s in shops]

    def search_shops(
        self,
        shop_filter: ShopFilter,
        origin: GeoPoint | None = None,
        max_distance_km: float | None = None,
    ) -> list[RankedShop]:
        """Plain repository search, optionally annotated and ordered by distance.

        Without an origin the repository order (rating) is kept. With an origin, shops
        are ordered nearest first and shops without coordinates go last, or are
        dropped when a radius is given.
        """
        shops = self._repo.find_shops(shop_filter)
        if origin is None:
            return [RankedShop(shop=s) for s in shops]

        origin = require_coordinates(origin.lat, origin.lon)
        radius = self._resolve_radius(max_distance_km) if max_distance_km is not None else None

        out: list[RankedShop] = []
        for shop in shops:
            if not shop.has_coordinates:
                if radius is None:
                    out.append(RankedShop(shop=shop, distance_km=None))
                continue
            distance = haversine_km(origin, GeoPoint(lat=shop.latitude, lon=shop.longitude))
            if radius is not None and distance > radius:
                continue
            out.append(RankedShop(shop=shop, distance_km=distance))

        out.sort(key=_ranking_key)
        return out
