import math

import pytest
from starlette.testclient import TestClient

from motofinder.api.app import app
from motofinder.catalog.loader import parse_catalog
from motofinder.config.settings import Settings
from motofinder.repository.shops import SqlShopRepository
from motofinder.services import build_sql_services

LONDON = (51.5074, -0.1278)


def north_of(km: float) -> tuple[float, float]:
    return LONDON[0] + math.degrees(km / 6371.0), LONDON[1]


CATALOG = [
    {
        "id": "A",
        "name": "Far Brakes",
        "city": "London",
        "country": "United Kingdom",
        "latitude": north_of(15.2)[0],
        "longitude": LONDON[1],
        "email": "a@shops.example",
        "rating": 4.9,
        "services": [{"service_name": "Brakes", "service_category": "brake"}],
    },
    {
        "id": "B",
        "name": "Brake Masters",
        "city": "London",
        "country": "United Kingdom",
        "latitude": north_of(9.0)[0],
        "longitude": LONDON[1],
        "email": "b@shops.example",
        "rating": 4.0,
        "services": [{"service_name": "Brakes", "service_category": "brake"}],
    },
    {
        "id": "C",
        "name": "Tyre Town",
        "city": "London",
        "country": "United Kingdom",
        "latitude": north_of(3.0)[0],
        "longitude": LONDON[1],
        "rating": 4.5,
        "services": [{"service_name": "Tyres", "service_category": "tire"}],
    },
]


@pytest.fixture
def client(monkeypatch, memory_db):
    # Patch the cached services factory so API tests stay offline and in memory.
    import motofinder.api.routes as routes

    services = build_sql_services(Settings(), memory_db)
    assert isinstance(services.shops, SqlShopRepository)
    services.shops.import_catalog(parse_catalog(CATALOG))
    monkeypatch.setattr(routes, "_services", lambda: services)
    with TestClient(app) as c:
        yield c


def _submission(**kw) -> dict:
    payload = {
        "requester": {"id": "u1", "name": "Alex Rider", "email": "alex@example.com"},
        "bike": {"id": "b1", "make": "Honda", "model": "CB500F", "year": 2019},
        "details": {"service_type": "Brake pads", "service_category": "brake", "urgency": "immediate"},
        "shop_ids": ["A", "B", "C"],
        "origin": {"lat": LONDON[0], "lon": LONDON[1]},
    }
    payload.update(kw)
    return payload


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_lookup_lists(client):
    cats = client.get("/api/service-categories").json()["categories"]
    assert len(cats) == 16
    assert {"value": "brake", "label": "Brake Service"}.items() <= cats[1].items()

    countries = client.get("/api/countries").json()
    assert {"code": "GB", "name": "United Kingdom"} in countries["countries"]
    assert countries["shop_counts"] == [{"country": "United Kingdom", "shop_count": 3}]

    assert client.get("/api/cities").json() == {"cities": ["London"]}


def test_nearby_ranks_service_match_first(client):
    resp = client.get(
        "/api/shops/nearby",
        params={"lat": LONDON[0], "lon": LONDON[1], "service_category": "brake", "radius_km": 10},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert [r["shop"]["id"] for r in data["results"]] == ["B", "C"]
    assert [r["offers_service"] for r in data["results"]] == [True, False]
    assert data["used_location"] is True


def test_nearby_without_position_falls_back_to_rating(client):
    data = client.get("/api/shops/nearby", params={"city": "london"}).json()
    assert data["used_location"] is False
    assert [r["shop"]["id"] for r in data["results"]] == ["A", "C", "B"]


def test_nearby_rejects_invalid_input(client):
    resp = client.get("/api/shops/nearby", params={"lat": 123, "lon": 0})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"

    resp = client.get("/api/shops/nearby", params={"lat": 51.5, "lon": 0, "radius_km": 0})
    assert resp.status_code == 400


def test_search_and_shop_details(client):
    data = client.get("/api/shops", params={"q": "brake"}).json()
    assert [r["shop"]["id"] for r in data["results"]] == ["A", "B"]

    assert client.get("/api/shops/B").json()["name"] == "Brake Masters"
    services = client.get("/api/shops/B/services").json()
    assert services[0]["service_category"] == "brake"

    resp = client.get("/api/shops/nope")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_FOUND"


def test_resolve_location_fails_open(client):
    denied = client.post("/api/location/resolve", json={"error": "permission_denied"}).json()
    assert denied["location"] is None
    assert denied["countries"]

    ok = client.post(
        "/api/location/resolve", json={"latitude": 51.5, "longitude": -0.12, "want_country": True}
    ).json()
    assert ok["location"]["latitude"] == 51.5
    assert ok["location"]["country"] is None


def test_service_request_round_trip(client):
    resp = client.post("/api/service-requests", json=_submission())
    assert resp.status_code == 201
    result = resp.json()
    assert [a["shop_id"] for a in result["artifacts"]] == ["A", "B"]
    assert [s["shop_id"] for s in result["skipped"]] == ["C"]
    assert result["artifacts"][0]["subject"] == "Motorcycle Service Request - Brake pads (URGENT)"
    assert "Shop distance from customer: 9.0 km" in result["artifacts"][1]["body"]
    request_id = result["request"]["id"]

    listed = client.get("/api/service-requests", params={"user_id": "u1"}).json()
    assert [r["id"] for r in listed] == [request_id]
    assert listed[0]["shop_ids"] == ["A", "B"]

    resp = client.patch(f"/api/service-requests/{request_id}/status", json={"status": "responded"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "responded"

    resp = client.patch(f"/api/service-requests/{request_id}/status", json={"status": "sent"})
    assert resp.status_code == 400

    resp = client.patch("/api/service-requests/missing/status", json={"status": "responded"})
    assert resp.status_code == 404


def test_service_request_for_unknown_shop_is_404(client):
    resp = client.post("/api/service-requests", json=_submission(shop_ids=["A", "ghost"]))
    assert resp.status_code == 404


def test_appointment_lifecycle(client):
    payload = {
        "user_id": "u1",
        "bike_id": "b1",
        "shop_id": "C",
        "appointment_date": "2026-11-02T09:00:00+00:00",
        "service_type": "Tyre change",
    }
    resp = client.post("/api/appointments", json=payload)
    assert resp.status_code == 201
    appt = resp.json()
    assert appt["status"] == "pending"

    assert len(client.get("/api/appointments", params={"user_id": "u1"}).json()) == 1

    resp = client.patch(f"/api/appointments/{appt['id']}/status", json={"status": "completed"})
    assert resp.status_code == 400

    resp = client.patch(
        f"/api/appointments/{appt['id']}/status", json={"status": "cancelled", "reason": "Changed plans"}
    )
    assert resp.status_code == 200
    assert resp.json()["cancellation_reason"] == "Changed plans"
