from datetime import date, datetime, time, timezone
from urllib.parse import unquote

import pytest

from motofinder.core.errors import PersistenceError
from motofinder.domain.enums import AppointmentStatus, OutreachChannel, ServiceCategory, UrgencyLevel
from motofinder.domain.models import (
    BikeInfo,
    RankedShop,
    Requester,
    ServiceDetails,
    ServiceRequestRecord,
    Shop,
)
from motofinder.outreach.composer import ServiceRequestComposer, build_body, build_subject
from motofinder.repository.requests import SqlAppointmentStore, SqlServiceRequestStore

REQUESTER = Requester(id="u1", name="Alex Rider", email="alex@example.com")
BIKE = BikeInfo(id="b1", make="Honda", model="CB500F", year=2019)


def _shop(shop_id: str, email: str | None) -> Shop:
    return Shop(id=shop_id, name=f"Shop {shop_id}", city="London", email=email)


def _details(**kw) -> ServiceDetails:
    base = {"service_type": "Brake pads", "description": "Squealing front brake."}
    base.update(kw)
    return ServiceDetails(**base)


class _RecordingStore:
    def __init__(self):
        self.inserted = []

    def insert(self, request):
        self.inserted.append(request)
        now = datetime.now(timezone.utc)
        return ServiceRequestRecord(**request.model_dump(), id="r1", created_at=now, updated_at=now)


class _FailingStore:
    def insert(self, request):
        raise PersistenceError("database is down")


def test_shops_without_email_are_skipped_and_the_rest_persisted():
    store = _RecordingStore()
    composer = ServiceRequestComposer(store)
    shops = [_shop("a", "a@shop.example"), _shop("b", None), _shop("c", "c@shop.example")]

    result = composer.compose_service_request(REQUESTER, BIKE, _details(), shops)

    assert [a.shop_id for a in result.artifacts] == ["a", "c"]
    assert [(s.shop_id, s.reason) for s in result.skipped] == [("b", "missing_email")]
    assert store.inserted[0].shop_ids == ["a", "c"]
    assert result.request.status.value == "sent"
    assert result.persistence_error is None


def test_address_without_at_sign_counts_as_missing():
    result = ServiceRequestComposer().compose_service_request(
        REQUESTER, BIKE, _details(), [_shop("x", "not-an-address")]
    )
    assert result.artifacts == []
    assert result.skipped[0].reason == "missing_email"


def test_all_skipped_persists_nothing():
    store = _RecordingStore()
    result = ServiceRequestComposer(store).compose_service_request(REQUESTER, BIKE, _details(), [_shop("b", None)])
    assert result.artifacts == []
    assert store.inserted == []
    assert result.request is None


def test_persistence_failure_keeps_artifacts():
    result = ServiceRequestComposer(_FailingStore()).compose_service_request(
        REQUESTER, BIKE, _details(), [_shop("a", "a@shop.example")]
    )
    assert len(result.artifacts) == 1
    assert result.request is None
    assert "database is down" in result.persistence_error


def test_subject_marks_immediate_requests_as_urgent():
    assert build_subject(_details()) == "Motorcycle Service Request - Brake pads"
    assert build_subject(_details(urgency=UrgencyLevel.IMMEDIATE)) == "Motorcycle Service Request - Brake pads (URGENT)"


def test_body_omits_absent_fields():
    body = build_body(REQUESTER, BIKE, _details(), _shop("a", "a@shop.example"))
    assert body.startswith("Dear Shop a Team,")
    assert "Name: Alex Rider" in body
    assert "Make: Honda" in body and "Model: CB500F" in body and "Year: 2019" in body
    assert "Urgency: Routine service request" in body
    for absent in ("Phone:", "Location:", "Category:", "Preferred Date:", "Shop distance"):
        assert absent not in body
    for literal in ("None", "null", "undefined"):
        assert literal not in body
    assert "This email was sent through the Motorcycle Service Directory platform." in body


def test_body_includes_optional_fields_when_present():
    requester = Requester(id="u1", name="Alex Rider", email="alex@example.com", phone="+44 7700 900123")
    details = _details(
        service_category=ServiceCategory.BRAKE,
        urgency=UrgencyLevel.WITHIN_WEEK,
        preferred_date=date(2026, 11, 2),
        user_location="Camden, London",
    )
    body = build_body(requester, BIKE, details, _shop("a", "a@shop.example"), distance_km=3.456)
    assert "Phone: +44 7700 900123" in body
    assert "Location: Camden, London" in body
    assert "Category: Brake Service" in body
    assert "Urgency: Needed within this week" in body
    assert "Preferred Date: 2026-11-02" in body
    assert "Shop distance from customer: 3.5 km" in body


def test_ranked_shops_carry_distance_into_the_email_and_mailto():
    ranked = RankedShop(shop=_shop("a", "a@shop.example"), distance_km=9.04)
    result = ServiceRequestComposer().compose_service_request(REQUESTER, BIKE, _details(), [ranked])
    artifact = result.artifacts[0]
    assert "Shop distance from customer: 9.0 km" in artifact.body
    assert artifact.to == "a@shop.example"
    assert artifact.mailto_url.startswith("mailto:a@shop.example?subject=")
    assert unquote(artifact.mailto_url.split("body=", 1)[1]) == artifact.body


def test_empty_selection_is_rejected():
    with pytest.raises(ValueError):
        ServiceRequestComposer().compose_service_request(REQUESTER, BIKE, _details(), [])


def test_appointment_channel_requires_a_preferred_date():
    with pytest.raises(ValueError, match="preferred date"):
        ServiceRequestComposer().compose_service_request(
            REQUESTER, BIKE, _details(), [_shop("a", None)], channel=OutreachChannel.APPOINTMENT
        )


def test_appointment_channel_books_pending_appointments(memory_db):
    requests = SqlServiceRequestStore(memory_db)
    appointments = SqlAppointmentStore(memory_db)
    composer = ServiceRequestComposer(requests, appointments)
    details = _details(preferred_date=date(2026, 11, 2), preferred_time=time(14, 30))

    result = composer.compose_service_request(
        REQUESTER, BIKE, details, [_shop("a", None), _shop("b", "b@shop.example")], channel="appointment"
    )

    assert result.artifacts == []
    assert [a.shop_id for a in result.appointments] == ["a", "b"]
    assert all(a.status is AppointmentStatus.PENDING for a in result.appointments)
    assert result.appointments[0].appointment_date == datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)
    assert result.request.shop_ids == ["a", "b"]
    assert len(appointments.list_for_user("u1")) == 2


def test_appointment_time_defaults_to_morning():
    result = ServiceRequestComposer().compose_service_request(
        REQUESTER, BIKE, _details(preferred_date=date(2026, 11, 2)), [_shop("a", None)], channel="appointment"
    )
    assert result.appointment_drafts[0].appointment_date.time() == time(9, 0)
    assert result.appointments == []
