"""
API routes.

Endpoints:
- GET   `/health`
- GET   `/api/service-categories`, `/api/countries`, `/api/cities`: lookup lists
- GET   `/api/shops`: filtered search (optionally distance-annotated)
- GET   `/api/shops/nearby`: ranked nearby search (rating fallback without a position)
- GET   `/api/shops/{shop_id}`, `/api/shops/{shop_id}/services`
- POST  `/api/location/resolve`: turn a reported position into a user location
- POST/GET `/api/service-requests`, PATCH `/api/service-requests/{id}/status`
- POST/GET `/api/appointments`, PATCH `/api/appointments/{id}/status`

Domain errors are mapped to `HTTPException`s with a `{"code", "message"}` detail.
"""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from motofinder.config.settings import get_settings
from motofinder.core.cache import record_cache_stats
from motofinder.core.errors import NotFoundError, PersistenceError
from motofinder.core.geo import GeoPoint as CoreGeoPoint, haversine_km
from motofinder.core.lookup_meta import capture_lookup_meta
from motofinder.domain.countries import COUNTRIES
from motofinder.domain.enums import AppointmentStatus, OutreachChannel, ServiceCategory, ServiceRequestStatus
from motofinder.domain.models import (
    Appointment,
    AppointmentCreate,
    BikeInfo,
    ComposeResult,
    GeoPoint,
    Position,
    RankedShop,
    Requester,
    ServiceDetails,
    ServiceRequestRecord,
    Shop,
    ShopFilter,
    ShopServiceOffering,
)
from motofinder.location.providers import UNAVAILABLE, StaticPositionProvider
from motofinder.services import AppServices, build_geocoder, build_sql_services
from motofinder.storage.database import Database

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache
def _services() -> AppServices:
    settings = get_settings()
    return build_sql_services(settings, Database.from_settings(settings), geocoder=build_geocoder(settings))


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": str(e)})
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": str(e)})
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail={"code": "PERSISTENCE_ERROR", "message": str(e)})
    logger.exception("Unhandled API error")
    return HTTPException(status_code=500, detail={"code": "INTERNAL_ERROR", "message": str(e)})


def _require_stores(svc: AppServices) -> AppServices:
    if svc.requests is None or svc.appointments is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "PERSISTENCE_UNAVAILABLE", "message": "No database is configured."},
        )
    return svc


class ShopSearchResponse(BaseModel):
    results: list[RankedShop]
    count: int
    used_location: bool = True


class LocationResolveRequest(BaseModel):
    """What the device reported: a position, or the reason there is none."""

    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    captured_at: datetime | None = None
    error: str | None = None
    want_country: bool = True


class ServiceRequestSubmission(BaseModel):
    requester: Requester
    bike: BikeInfo
    details: ServiceDetails
    shop_ids: list[str] = Field(..., min_length=1)
    channel: OutreachChannel = OutreachChannel.EMAIL
    origin: GeoPoint | None = None


class StatusUpdate(BaseModel):
    status: str
    reason: str | None = None
    actual_cost: float | None = Field(default=None, ge=0)


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "app": get_settings().app.name}


@router.get("/api/service-categories")
def get_service_categories() -> dict:
    return {
        "categories": [{"value": c.value, "label": c.label, "description": c.description} for c in ServiceCategory]
    }


@router.get("/api/countries")
def get_countries() -> dict:
    """Selectable countries plus the countries that actually have shops."""
    try:
        counts = _services().shops.list_countries()
    except Exception as e:
        raise _http_error(e) from e
    return {"countries": COUNTRIES, "shop_counts": [c.model_dump() for c in counts]}


@router.get("/api/cities")
def get_cities() -> dict:
    try:
        return {"cities": _services().shops.list_cities()}
    except Exception as e:
        raise _http_error(e) from e


@router.get("/api/shops", response_model=ShopSearchResponse)
def get_shops(
    q: str | None = None,
    city: str | None = None,
    country: str | None = None,
    min_rating: float | None = Query(default=None, ge=0, le=5),
    service_category: ServiceCategory | None = None,
    limit: int | None = Query(default=None, ge=1),
    lat: float | None = None,
    lon: float | None = None,
    radius_km: float | None = None,
) -> ShopSearchResponse:
    """Filtered shop search; with `lat`/`lon` results are ordered by distance."""
    try:
        shop_filter = ShopFilter(
            text=q, city=city, country=country, min_rating=min_rating, service_category=service_category, limit=limit
        )
        if (lat is None) != (lon is None):
            raise ValueError("lat and lon must be given together")
        origin = CoreGeoPoint(lat=lat, lon=lon) if lat is not None and lon is not None else None
        results = _services().matching.search_shops(shop_filter, origin=origin, max_distance_km=radius_km)
    except Exception as e:
        raise _http_error(e) from e
    return ShopSearchResponse(results=results, count=len(results), used_location=origin is not None)


@router.get("/api/shops/nearby", response_model=ShopSearchResponse)
def get_nearby_shops(
    lat: float | None = None,
    lon: float | None = None,
    service_category: ServiceCategory | None = None,
    radius_km: float | None = None,
    limit: int | None = None,
    country: str | None = None,
    city: str | None = None,
) -> ShopSearchResponse:
    """Ranked nearby search; without a position falls back to rating order."""
    svc = _services()
    try:
        if lat is None or lon is None:
            results = svc.matching.list_shops_without_location(
                city=city, country=country, service_category=service_category, limit=limit
            )
            return ShopSearchResponse(results=results, count=len(results), used_location=False)
        results = svc.matching.find_nearby_shops_by_service(
            lat,
            lon,
            service_category=service_category,
            max_distance_km=radius_km,
            limit=limit,
            user_country=country,
        )
    except Exception as e:
        raise _http_error(e) from e
    return ShopSearchResponse(results=results, count=len(results))


@router.get("/api/shops/{shop_id}", response_model=Shop)
def get_shop(shop_id: str) -> Shop:
    try:
        shop = _services().shops.get_shop(shop_id)
        if shop is None:
            raise NotFoundError(f"Shop not found: {shop_id}")
    except Exception as e:
        raise _http_error(e) from e
    return shop


@router.get("/api/shops/{shop_id}/services", response_model=list[ShopServiceOffering])
def get_shop_services(shop_id: str) -> list[ShopServiceOffering]:
    svc = _services()
    try:
        if svc.shops.get_shop(shop_id) is None:
            raise NotFoundError(f"Shop not found: {shop_id}")
        return svc.shops.get_shop_services(shop_id)
    except Exception as e:
        raise _http_error(e) from e


@router.post("/api/location/resolve")
async def post_resolve_location(body: LocationResolveRequest) -> dict:
    """Resolve a reported position (plus country/city when asked).

    `location` is null when the position is missing, denied or stale; the client
    should then offer manual country/city selection.
    """
    if body.latitude is not None and body.longitude is not None:
        position = Position(
            latitude=body.latitude,
            longitude=body.longitude,
            accuracy_m=body.accuracy_m,
            captured_at=body.captured_at,
        )
        provider = StaticPositionProvider(position)
    else:
        provider = StaticPositionProvider(reason=body.error or UNAVAILABLE)

    resolver = _services().location_resolver(provider)
    with record_cache_stats() as stats, capture_lookup_meta() as lookups:
        location = await resolver.resolve_user_location(want_country=body.want_country)
    return {
        "location": location.model_dump(mode="json") if location is not None else None,
        "countries": COUNTRIES if location is None else None,
        "meta": {"cache": stats.as_dict(), "lookups": lookups.lookups},
    }


@router.post("/api/service-requests", response_model=ComposeResult, status_code=201)
def post_service_request(body: ServiceRequestSubmission) -> ComposeResult:
    """Compose outreach for the selected shops and record the request."""
    svc = _services()
    try:
        selected: list[Shop | RankedShop] = []
        for shop_id in body.shop_ids:
            shop = svc.shops.get_shop(shop_id)
            if shop is None:
                raise NotFoundError(f"Shop not found: {shop_id}")
            selected.append(shop)

        if body.origin is not None:
            origin = CoreGeoPoint(lat=body.origin.lat, lon=body.origin.lon)
            selected = [
                RankedShop(
                    shop=s,
                    distance_km=haversine_km(origin, CoreGeoPoint(lat=s.latitude, lon=s.longitude))
                    if s.has_coordinates
                    else None,
                )
                for s in selected
            ]

        return svc.composer.compose_service_request(
            body.requester, body.bike, body.details, selected, channel=body.channel
        )
    except Exception as e:
        raise _http_error(e) from e


@router.get("/api/service-requests", response_model=list[ServiceRequestRecord])
def get_service_requests(user_id: str, limit: int | None = Query(default=None, ge=1)) -> list[ServiceRequestRecord]:
    """A user's requests, newest first."""
    svc = _require_stores(_services())
    try:
        return svc.requests.list_user_requests(user_id, limit=limit)
    except Exception as e:
        raise _http_error(e) from e


@router.patch("/api/service-requests/{request_id}/status", response_model=ServiceRequestRecord)
def patch_service_request_status(request_id: str, body: StatusUpdate) -> ServiceRequestRecord:
    svc = _require_stores(_services())
    try:
        return svc.requests.update_status(request_id, ServiceRequestStatus(body.status))
    except Exception as e:
        raise _http_error(e) from e


@router.post("/api/appointments", response_model=Appointment, status_code=201)
def post_appointment(body: AppointmentCreate) -> Appointment:
    svc = _require_stores(_services())
    try:
        if svc.shops.get_shop(body.shop_id) is None:
            raise NotFoundError(f"Shop not found: {body.shop_id}")
        return svc.appointments.create(body)
    except Exception as e:
        raise _http_error(e) from e


@router.get("/api/appointments", response_model=list[Appointment])
def get_appointments(user_id: str, limit: int = Query(default=50, ge=1)) -> list[Appointment]:
    svc = _require_stores(_services())
    try:
        return svc.appointments.list_for_user(user_id, limit=limit)
    except Exception as e:
        raise _http_error(e) from e


@router.patch("/api/appointments/{appointment_id}/status", response_model=Appointment)
def patch_appointment_status(appointment_id: str, body: StatusUpdate) -> Appointment:
    svc = _require_stores(_services())
    try:
        return svc.appointments.update_status(
            appointment_id,
            AppointmentStatus(body.status),
            reason=body.reason,
            actual_cost=body.actual_cost,
        )
    except Exception as e:
        raise _http_error(e) from e
