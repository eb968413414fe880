"""
Service request composer.

Turns "contact these shops about my bike" into concrete artifacts:
- email channel: one templated email (plus a `mailto:` link) per shop with a usable
  address; shops without one are reported as skipped, not errors,
- appointment channel: one pending appointment per shop at the preferred date/time.

After composing, a single service request record (status `sent`) lists the shops
that were actually contacted. A failing write never discards the artifacts: the
error is reported on the result instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Sequence
from urllib.parse import quote

from motofinder.core.errors import PersistenceError
from motofinder.domain.enums import OutreachChannel, UrgencyLevel
from motofinder.domain.models import (
    AppointmentCreate,
    BikeInfo,
    ComposeResult,
    EmailArtifact,
    RankedShop,
    Requester,
    ServiceDetails,
    ServiceRequestCreate,
    Shop,
    SkippedShop,
)
from motofinder.repository.requests import SqlAppointmentStore, SqlServiceRequestStore

logger = logging.getLogger(__name__)

MISSING_EMAIL = "missing_email"
PLATFORM_FOOTER = "This email was sent through the Motorcycle Service Directory platform."


def build_subject(details: ServiceDetails) -> str:
    subject = f"Motorcycle Service Request - {details.service_type}"
    if details.urgency is UrgencyLevel.IMMEDIATE:
        subject += " (URGENT)"
    return subject


def build_body(
    requester: Requester,
    bike: BikeInfo,
    details: ServiceDetails,
    shop: Shop,
    distance_km: float | None = None,
) -> str:
    """Render the plain-text email body; optional fields are left out entirely."""
    customer = [f"Name: {requester.name}", f"Email: {requester.email}"]
    if requester.phone:
        customer.append(f"Phone: {requester.phone}")
    if details.user_location:
        customer.append(f"Location: {details.user_location}")

    service = [f"Type: {details.service_type}"]
    if details.service_category is not None:
        service.append(f"Category: {details.service_category.label}")
    service.append(f"Urgency: {details.urgency.phrase}")
    if details.preferred_date is not None:
        service.append(f"Preferred Date: {details.preferred_date.isoformat()}")
    if details.preferred_time is not None:
        service.append(f"Preferred Time: {details.preferred_time.strftime('%H:%M')}")

    sections = [
        f"Dear {shop.name} Team,",
        "I am reaching out to request service for my motorcycle. Below are the details:",
        "CUSTOMER INFORMATION:\n" + "\n".join(customer),
        f"MOTORCYCLE DETAILS:\nMake: {bike.make}\nModel: {bike.model}\nYear: {bike.year}",
        "SERVICE REQUEST:\n" + "\n".join(service),
    ]
    if details.description.strip():
        sections.append(f"DESCRIPTION:\n{details.description.strip()}")
    sections += [
        "Please let me know:\n"
        "1. Your availability for this service\n"
        "2. Estimated cost and timeframe\n"
        "3. Any additional information you need from me",
        "I look forward to hearing from you soon.",
        f"Best regards,\n{requester.name}",
    ]

    footer = ["---", PLATFORM_FOOTER]
    if distance_km is not None:
        footer.append(f"Shop distance from customer: {distance_km:.1f} km")
    sections.append("\n".join(footer))
    return "\n\n".join(sections) + "\n"


def build_mailto_url(to: str, subject: str, body: str) -> str:
    return f"mailto:{quote(to, safe='@')}?subject={quote(subject, safe='')}&body={quote(body, safe='')}"


def _unpack(selected: Shop | RankedShop) -> tuple[Shop, float | None]:
    if isinstance(selected, RankedShop):
        return selected.shop, selected.distance_km
    return selected, None


class ServiceRequestComposer:
    def __init__(
        self,
        request_store: SqlServiceRequestStore | None = None,
        appointment_store: SqlAppointmentStore | None = None,
        *,
        default_appointment_time: time = time(9, 0),
    ):
        self._requests = request_store
        self._appointments = appointment_store
        self._default_time = default_appointment_time

    def compose_service_request(
        self,
        requester: Requester,
        bike: BikeInfo,
        details: ServiceDetails,
        selected_shops: Sequence[Shop | RankedShop],
        channel: OutreachChannel | str = OutreachChannel.EMAIL,
    ) -> ComposeResult:
        """Build outreach artifacts for each selected shop and record the request.

        Raises:
            ValueError: No shops selected, or the appointment channel without a
                preferred date.
        """
        if not selected_shops:
            raise ValueError("At least one shop must be selected.")
        channel = OutreachChannel(channel)

        if channel is OutreachChannel.EMAIL:
            result = self._compose_emails(requester, bike, details, selected_shops)
        else:
            result = self._compose_appointments(requester, bike, details, selected_shops)

        contacted = result.contacted_shop_ids
        if not contacted:
            logger.warning("No shop could be contacted; %d skipped", len(result.skipped))
            return result
        if self._requests is None:
            return result

        try:
            result.request = self._requests.insert(
                ServiceRequestCreate(
                    user_id=requester.id,
                    bike_id=bike.id,
                    shop_ids=contacted,
                    service_type=details.service_type,
                    service_category=details.service_category,
                    description=details.description,
                    urgency=details.urgency,
                    user_location=details.user_location,
                    preferred_date=details.preferred_date,
                )
            )
        except PersistenceError as e:
            logger.warning("Service request not saved; artifacts kept: %s", e)
            result.persistence_error = "; ".join(m for m in (result.persistence_error, str(e)) if m)
        return result

    def _compose_emails(
        self,
        requester: Requester,
        bike: BikeInfo,
        details: ServiceDetails,
        selected_shops: Sequence[Shop | RankedShop],
    ) -> ComposeResult:
        result = ComposeResult(channel=OutreachChannel.EMAIL)
        subject = build_subject(details)
        for selected in selected_shops:
            shop, distance = _unpack(selected)
            if not shop.has_usable_email:
                result.skipped.append(SkippedShop(shop_id=shop.id, shop_name=shop.name, reason=MISSING_EMAIL))
                continue
            body = build_body(requester, bike, details, shop, distance)
            result.artifacts.append(
                EmailArtifact(
                    shop_id=shop.id,
                    shop_name=shop.name,
                    to=shop.email,
                    subject=subject,
                    body=body,
                    mailto_url=build_mailto_url(shop.email, subject, body),
                )
            )
        logger.info("Composed %d emails (%d shops skipped)", len(result.artifacts), len(result.skipped))
        return result

    def _compose_appointments(
        self,
        requester: Requester,
        bike: BikeInfo,
        details: ServiceDetails,
        selected_shops: Sequence[Shop | RankedShop],
    ) -> ComposeResult:
        if details.preferred_date is None:
            raise ValueError("A preferred date is required to book an appointment.")
        when = datetime.combine(
            details.preferred_date, details.preferred_time or self._default_time, tzinfo=timezone.utc
        )

        result = ComposeResult(channel=OutreachChannel.APPOINTMENT)
        for selected in selected_shops:
            shop, _ = _unpack(selected)
            result.appointment_drafts.append(
                AppointmentCreate(
                    user_id=requester.id,
                    bike_id=bike.id,
                    shop_id=shop.id,
                    appointment_date=when,
                    service_type=details.service_type,
                    service_category=details.service_category,
                    description=details.description or None,
                    urgency=details.urgency,
                )
            )

        if self._appointments is None:
            return result
        errors: list[str] = []
        for draft in result.appointment_drafts:
            try:
                result.appointments.append(self._appointments.create(draft))
            except PersistenceError as e:
                logger.warning("Appointment at shop %s not saved: %s", draft.shop_id, e)
                errors.append(str(e))
        if errors:
            result.persistence_error = "; ".join(errors)
        return result
