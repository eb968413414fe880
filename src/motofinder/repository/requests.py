"""
Service request and appointment stores.

Writes are wrapped so callers see `PersistenceError` instead of driver exceptions;
the composer turns that into a reported (non-fatal) failure. Status changes go
through the enum transition tables, so an illegal move raises
`InvalidStatusTransitionError` before anything is written.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from motofinder.core.errors import InvalidStatusTransitionError, NotFoundError, PersistenceError
from motofinder.domain.enums import AppointmentStatus, ServiceCategory, ServiceRequestStatus, UrgencyLevel
from motofinder.domain.models import Appointment, AppointmentCreate, ServiceRequestCreate, ServiceRequestRecord
from motofinder.storage.database import Database
from motofinder.storage.tables import AppointmentRow, ServiceRequestRow

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _category(value: str | None) -> ServiceCategory | None:
    return ServiceCategory(value) if value else None


def request_from_row(row: ServiceRequestRow) -> ServiceRequestRecord:
    return ServiceRequestRecord(
        id=row.id,
        user_id=row.user_id,
        bike_id=row.bike_id,
        shop_ids=list(row.shop_ids or []),
        service_type=row.service_type,
        service_category=_category(row.service_category),
        description=row.description or "",
        urgency=UrgencyLevel(row.urgency),
        user_location=row.user_location,
        preferred_date=row.preferred_date,
        status=ServiceRequestStatus(row.status),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def appointment_from_row(row: AppointmentRow) -> Appointment:
    return Appointment(
        id=row.id,
        user_id=row.user_id,
        bike_id=row.bike_id,
        shop_id=row.shop_id,
        appointment_date=_as_utc(row.appointment_date),
        status=AppointmentStatus(row.status),
        service_type=row.service_type,
        service_category=_category(row.service_category),
        description=row.description,
        urgency=UrgencyLevel(row.urgency),
        estimated_cost=row.estimated_cost,
        actual_cost=row.actual_cost,
        notes=row.notes,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        cancelled_at=_as_utc(row.cancelled_at),
        cancellation_reason=row.cancellation_reason,
    )


class SqlServiceRequestStore:
    def __init__(self, database: Database, *, default_list_limit: int = 50):
        self._db = database
        self._default_list_limit = default_list_limit

    def insert(self, request: ServiceRequestCreate) -> ServiceRequestRecord:
        """Persist a new request with status `sent`; returns the stored record."""
        now = _utcnow()
        row = ServiceRequestRow(
            id=str(uuid.uuid4()),
            user_id=request.user_id,
            bike_id=request.bike_id,
            shop_ids=list(request.shop_ids),
            service_type=request.service_type,
            service_category=request.service_category.value if request.service_category else None,
            description=request.description,
            urgency=request.urgency.value,
            user_location=request.user_location,
            preferred_date=request.preferred_date,
            status=ServiceRequestStatus.SENT.value,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._db.session() as session:
                session.add(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save service request: {e}") from e
        logger.info("Saved service request %s for %d shops", row.id, len(row.shop_ids))
        return request_from_row(row)

    def get(self, request_id: str) -> ServiceRequestRecord:
        with self._db.session() as session:
            row = session.get(ServiceRequestRow, request_id)
            if row is None:
                raise NotFoundError(f"Service request not found: {request_id}")
            return request_from_row(row)

    def list_user_requests(self, user_id: str, limit: int | None = None) -> list[ServiceRequestRecord]:
        """Newest first."""
        n = int(limit or self._default_list_limit)
        if n < 1:
            raise ValueError("limit must be >= 1")
        stmt = (
            select(ServiceRequestRow)
            .where(ServiceRequestRow.user_id == user_id)
            .order_by(ServiceRequestRow.created_at.desc(), ServiceRequestRow.id)
            .limit(n)
        )
        with self._db.session() as session:
            return [request_from_row(r) for r in session.scalars(stmt)]

    def update_status(self, request_id: str, status: ServiceRequestStatus) -> ServiceRequestRecord:
        target = ServiceRequestStatus(status)
        try:
            with self._db.session() as session:
                row = session.get(ServiceRequestRow, request_id)
                if row is None:
                    raise NotFoundError(f"Service request not found: {request_id}")
                current = ServiceRequestStatus(row.status)
                if not current.can_transition_to(target):
                    raise InvalidStatusTransitionError(current.value, target.value)
                row.status = target.value
                row.updated_at = _utcnow()
                record = request_from_row(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update service request {request_id}: {e}") from e
        logger.info("Service request %s: %s -> %s", request_id, current.value, target.value)
        return record


class SqlAppointmentStore:
    def __init__(self, database: Database):
        self._db = database

    def create(self, appointment: AppointmentCreate) -> Appointment:
        now = _utcnow()
        row = AppointmentRow(
            id=str(uuid.uuid4()),
            user_id=appointment.user_id,
            bike_id=appointment.bike_id,
            shop_id=appointment.shop_id,
            appointment_date=_as_utc(appointment.appointment_date).astimezone(timezone.utc),
            status=AppointmentStatus.PENDING.value,
            service_type=appointment.service_type,
            service_category=appointment.service_category.value if appointment.service_category else None,
            description=appointment.description,
            urgency=appointment.urgency.value,
            estimated_cost=appointment.estimated_cost,
            notes=appointment.notes,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._db.session() as session:
                session.add(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save appointment: {e}") from e
        logger.info("Booked appointment %s at shop %s", row.id, row.shop_id)
        return appointment_from_row(row)

    def get(self, appointment_id: str) -> Appointment:
        with self._db.session() as session:
            row = session.get(AppointmentRow, appointment_id)
            if row is None:
                raise NotFoundError(f"Appointment not found: {appointment_id}")
            return appointment_from_row(row)

    def list_for_user(self, user_id: str, *, limit: int = 50) -> list[Appointment]:
        stmt = (
            select(AppointmentRow)
            .where(AppointmentRow.user_id == user_id)
            .order_by(AppointmentRow.appointment_date.desc(), AppointmentRow.id)
            .limit(limit)
        )
        with self._db.session() as session:
            return [appointment_from_row(r) for r in session.scalars(stmt)]

    def update_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        *,
        reason: str | None = None,
        actual_cost: float | None = None,
    ) -> Appointment:
        """Move an appointment along its lifecycle.

        Cancelling records `cancelled_at` and the optional reason; completing may
        record the actual cost.
        """
        target = AppointmentStatus(status)
        try:
            with self._db.session() as session:
                row = session.get(AppointmentRow, appointment_id)
                if row is None:
                    raise NotFoundError(f"Appointment not found: {appointment_id}")
                current = AppointmentStatus(row.status)
                if not current.can_transition_to(target):
                    raise InvalidStatusTransitionError(current.value, target.value)
                now = _utcnow()
                row.status = target.value
                row.updated_at = now
                if target is AppointmentStatus.CANCELLED:
                    row.cancelled_at = now
                    row.cancellation_reason = reason
                if target is AppointmentStatus.COMPLETED and actual_cost is not None:
                    row.actual_cost = actual_cost
                result = appointment_from_row(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update appointment {appointment_id}: {e}") from e
        return result
