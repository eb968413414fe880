"""
SQLAlchemy table mappings.

Rows store enums as plain strings; repositories convert to the domain enums when
building Pydantic models. `shop_ids` on service requests is a JSON array so the
same schema works on SQLite (tests, local runs) and PostgreSQL.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ShopRow(Base):
    __tablename__ = "shops"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, default="")
    city: Mapped[str] = mapped_column(Text, default="")
    country: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    reviews_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hours: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_shops_city_rating", "city", "rating"),
        Index("ix_shops_location", "latitude", "longitude"),
        Index("ix_shops_country", "country"),
    )


class ShopServiceRow(Base):
    __tablename__ = "shop_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[str] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    service_name: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_from: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_to: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_shop_services_shop", "shop_id"),
        Index("ix_shop_services_category_available", "service_category", "is_available"),
    )


class ServiceRequestRow(Base):
    __tablename__ = "service_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    bike_id: Mapped[str] = mapped_column(String(64), nullable=False)
    shop_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    service_type: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    urgency: Mapped[str] = mapped_column(String(16), default="routine")
    user_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferred_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="sent")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_service_requests_user_created", "user_id", "created_at"),
        Index("ix_service_requests_status_created", "status", "created_at"),
    )


class AppointmentRow(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    bike_id: Mapped[str] = mapped_column(String(64), nullable=False)
    shop_id: Mapped[str] = mapped_column(String(64), nullable=False)
    appointment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    service_type: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    urgency: Mapped[str] = mapped_column(String(16), default="routine")
    estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_appointments_user_date", "user_id", "appointment_date"),
        Index("ix_appointments_shop", "shop_id"),
    )
