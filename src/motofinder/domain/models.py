"""
Domain models (Pydantic).

These types are the contract between layers:
- catalog / storage entities (`Shop`, `ShopServiceOffering`),
- search inputs and ranked output (`ShopFilter`, `RankedShop`),
- location (`Position`, `UserLocation`),
- outreach inputs and results (`Requester`, `BikeInfo`, `ServiceDetails`,
  `ComposeResult`) and the persisted records (`ServiceRequestRecord`,
  `Appointment`).

Keeping them in one place gives early validation and consistent JSON across
the API and the CLI.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, Field, field_validator

from motofinder.domain.enums import (
    AppointmentStatus,
    OutreachChannel,
    ServiceCategory,
    ServiceRequestStatus,
    UrgencyLevel,
)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class GeoPoint(BaseModel):
    """A geographic point in decimal degrees."""

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class Shop(BaseModel):
    """A repair business. Read-only from the matching engine's point of view."""

    id: str
    name: str
    address: str = ""
    city: str = ""
    country: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    reviews_count: int | None = Field(default=None, ge=0)
    hours: str | None = None

    @field_validator("country", "phone", "email", "website", "hours", mode="before")
    @classmethod
    def _strip_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_usable_email(self) -> bool:
        return bool(self.email and "@" in self.email)


class ShopServiceOffering(BaseModel):
    """A service a shop offers; only available offerings count as a match."""

    shop_id: str
    service_name: str
    service_category: ServiceCategory
    description: str | None = None
    estimated_duration_minutes: int | None = Field(default=None, ge=0)
    price_from: float | None = Field(default=None, ge=0)
    price_to: float | None = Field(default=None, ge=0)
    is_available: bool = True


class CountryCount(BaseModel):
    country: str
    shop_count: int


class ShopFilter(BaseModel):
    """Plain predicate filter for repository searches (no ranking)."""

    text: str | None = None
    city: str | None = None
    country: str | None = None
    min_rating: float | None = Field(default=None, ge=0, le=5)
    service_category: ServiceCategory | None = None
    limit: int | None = Field(default=None, ge=1)

    @field_validator("text", "city", "country", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return _blank_to_none(value)


class RankedShop(BaseModel):
    """One search result: the shop, its distance (if known) and the service match flag."""

    shop: Shop
    distance_km: float | None = None
    offers_service: bool = True


class Position(BaseModel):
    """A raw position fix as reported by a position source."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    captured_at: datetime | None = None


class UserLocation(BaseModel):
    """A resolved user point; country/city are optional refinements."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_m: float | None = None
    country: str | None = None
    country_code: str | None = None
    city: str | None = None
    state: str | None = None
    address: str | None = None


class Requester(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None = None

    @field_validator("phone", mode="before")
    @classmethod
    def _strip_phone(cls, value: Any) -> Any:
        return _blank_to_none(value)


class BikeInfo(BaseModel):
    id: str
    make: str
    model: str
    year: int = Field(..., ge=1885, le=2100)


class ServiceDetails(BaseModel):
    """What the user needs done; shared by every shop in one request."""

    service_type: str = Field(..., min_length=1)
    service_category: ServiceCategory | None = None
    description: str = ""
    urgency: UrgencyLevel = UrgencyLevel.ROUTINE
    preferred_date: date | None = None
    preferred_time: time | None = None
    user_location: str | None = None

    @field_validator("user_location", mode="before")
    @classmethod
    def _strip_location(cls, value: Any) -> Any:
        return _blank_to_none(value)


class EmailArtifact(BaseModel):
    shop_id: str
    shop_name: str
    to: str
    subject: str
    body: str
    mailto_url: str


class SkippedShop(BaseModel):
    shop_id: str
    shop_name: str
    reason: str


class ServiceRequestCreate(BaseModel):
    user_id: str
    bike_id: str
    shop_ids: list[str] = Field(..., min_length=1)
    service_type: str
    service_category: ServiceCategory | None = None
    description: str = ""
    urgency: UrgencyLevel = UrgencyLevel.ROUTINE
    user_location: str | None = None
    preferred_date: date | None = None


class ServiceRequestRecord(ServiceRequestCreate):
    id: str
    status: ServiceRequestStatus = ServiceRequestStatus.SENT
    created_at: datetime
    updated_at: datetime


class AppointmentCreate(BaseModel):
    user_id: str
    bike_id: str
    shop_id: str
    appointment_date: datetime
    service_type: str
    service_category: ServiceCategory | None = None
    description: str | None = None
    urgency: UrgencyLevel = UrgencyLevel.ROUTINE
    estimated_cost: float | None = Field(default=None, ge=0)
    notes: str | None = None


class Appointment(AppointmentCreate):
    id: str
    status: AppointmentStatus = AppointmentStatus.PENDING
    actual_cost: float | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class ComposeResult(BaseModel):
    """Outcome of one "contact these shops" action.

    Artifacts (emails or appointment drafts) stay valid even when a write failed:
    `persistence_error` is then set and the saved records are missing.
    """

    channel: OutreachChannel
    artifacts: list[EmailArtifact] = Field(default_factory=list)
    appointment_drafts: list[AppointmentCreate] = Field(default_factory=list)
    appointments: list[Appointment] = Field(default_factory=list)
    skipped: list[SkippedShop] = Field(default_factory=list)
    request: ServiceRequestRecord | None = None
    persistence_error: str | None = None

    @property
    def contacted_shop_ids(self) -> list[str]:
        if self.channel is OutreachChannel.EMAIL:
            return [a.shop_id for a in self.artifacts]
        return [a.shop_id for a in self.appointment_drafts]
