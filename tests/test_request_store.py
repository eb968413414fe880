from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from motofinder.core.errors import InvalidStatusTransitionError, NotFoundError, PersistenceError
from motofinder.domain.enums import AppointmentStatus, ServiceRequestStatus
from motofinder.domain.models import AppointmentCreate, ServiceRequestCreate
from motofinder.repository.requests import SqlAppointmentStore, SqlServiceRequestStore
from motofinder.storage.tables import Base


@pytest.fixture
def ticking_clock(monkeypatch):
    start = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
    ticks = count()
    monkeypatch.setattr(
        "motofinder.repository.requests._utcnow", lambda: start + timedelta(minutes=next(ticks))
    )


def _request(user_id="u1", **kw) -> ServiceRequestCreate:
    base = {"user_id": user_id, "bike_id": "b1", "shop_ids": ["s1", "s2"], "service_type": "Oil change"}
    base.update(kw)
    return ServiceRequestCreate(**base)


def _appointment(**kw) -> AppointmentCreate:
    base = {
        "user_id": "u1",
        "bike_id": "b1",
        "shop_id": "s1",
        "appointment_date": datetime(2026, 11, 2, 9, 0, tzinfo=timezone.utc),
        "service_type": "Oil change",
    }
    base.update(kw)
    return AppointmentCreate(**base)


def test_insert_and_list_newest_first(memory_db, ticking_clock):
    store = SqlServiceRequestStore(memory_db)
    first = store.insert(_request(service_type="first"))
    second = store.insert(_request(service_type="second"))
    store.insert(_request(user_id="someone-else"))

    listed = store.list_user_requests("u1")
    assert [r.id for r in listed] == [second.id, first.id]
    assert listed[0].shop_ids == ["s1", "s2"]
    assert listed[0].status is ServiceRequestStatus.SENT
    assert listed[0].created_at.tzinfo is not None
    assert len(store.list_user_requests("u1", limit=1)) == 1


def test_request_status_follows_the_lifecycle(memory_db):
    store = SqlServiceRequestStore(memory_db)
    rec = store.insert(_request())

    assert store.update_status(rec.id, ServiceRequestStatus.RESPONDED).status is ServiceRequestStatus.RESPONDED
    assert store.update_status(rec.id, ServiceRequestStatus.SCHEDULED).status is ServiceRequestStatus.SCHEDULED

    with pytest.raises(InvalidStatusTransitionError):
        store.update_status(rec.id, ServiceRequestStatus.CANCELLED)
    assert store.get(rec.id).status is ServiceRequestStatus.SCHEDULED


def test_request_cannot_skip_or_go_back(memory_db):
    store = SqlServiceRequestStore(memory_db)
    rec = store.insert(_request())
    with pytest.raises(InvalidStatusTransitionError):
        store.update_status(rec.id, ServiceRequestStatus.SCHEDULED)
    store.update_status(rec.id, ServiceRequestStatus.CANCELLED)
    with pytest.raises(ValueError):
        store.update_status(rec.id, ServiceRequestStatus.SENT)


def test_unknown_request_raises_not_found(memory_db):
    store = SqlServiceRequestStore(memory_db)
    with pytest.raises(NotFoundError):
        store.update_status("missing", ServiceRequestStatus.RESPONDED)
    with pytest.raises(NotFoundError):
        store.get("missing")


def test_write_failures_become_persistence_errors(memory_db):
    Base.metadata.drop_all(memory_db.engine)
    with pytest.raises(PersistenceError):
        SqlServiceRequestStore(memory_db).insert(_request())
    with pytest.raises(PersistenceError):
        SqlAppointmentStore(memory_db).create(_appointment())


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (ServiceRequestStatus.SENT, ServiceRequestStatus.RESPONDED, True),
        (ServiceRequestStatus.SENT, ServiceRequestStatus.CANCELLED, True),
        (ServiceRequestStatus.RESPONDED, ServiceRequestStatus.SCHEDULED, True),
        (ServiceRequestStatus.RESPONDED, ServiceRequestStatus.CANCELLED, True),
        (ServiceRequestStatus.SENT, ServiceRequestStatus.SCHEDULED, False),
        (ServiceRequestStatus.CANCELLED, ServiceRequestStatus.SENT, False),
    ],
)
def test_request_transition_table(current, target, allowed):
    assert current.can_transition_to(target) is allowed


def test_terminal_statuses():
    assert ServiceRequestStatus.SCHEDULED.is_terminal
    assert ServiceRequestStatus.CANCELLED.is_terminal
    assert not ServiceRequestStatus.SENT.is_terminal
    assert AppointmentStatus.COMPLETED.is_terminal
    assert not AppointmentStatus.CONFIRMED.is_terminal


def test_appointment_cancellation_records_reason(memory_db):
    store = SqlAppointmentStore(memory_db)
    appt = store.create(_appointment())
    assert appt.status is AppointmentStatus.PENDING
    assert appt.appointment_date == datetime(2026, 11, 2, 9, 0, tzinfo=timezone.utc)

    cancelled = store.update_status(appt.id, AppointmentStatus.CANCELLED, reason="Bike sold")
    assert cancelled.cancellation_reason == "Bike sold"
    assert cancelled.cancelled_at is not None


def test_appointment_completion_records_cost(memory_db):
    store = SqlAppointmentStore(memory_db)
    appt = store.create(_appointment(estimated_cost=90))
    store.update_status(appt.id, AppointmentStatus.CONFIRMED)
    done = store.update_status(appt.id, AppointmentStatus.COMPLETED, actual_cost=105.5)
    assert done.actual_cost == 105.5
    assert done.estimated_cost == 90

    with pytest.raises(InvalidStatusTransitionError):
        store.update_status(appt.id, AppointmentStatus.CANCELLED)


def test_pending_appointment_cannot_complete(memory_db):
    store = SqlAppointmentStore(memory_db)
    appt = store.create(_appointment())
    with pytest.raises(InvalidStatusTransitionError):
        store.update_status(appt.id, AppointmentStatus.COMPLETED)


def test_list_appointments_for_user(memory_db):
    store = SqlAppointmentStore(memory_db)
    store.create(_appointment(appointment_date=datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)))
    later = store.create(_appointment(appointment_date=datetime(2026, 12, 1, 9, 0, tzinfo=timezone.utc)))
    store.create(_appointment(user_id="u2"))
    listed = store.list_for_user("u1")
    assert [a.id for a in listed][0] == later.id
    assert len(listed) == 2
    with pytest.raises(NotFoundError):
        store.get("missing")
