import pytest
from sqlalchemy.exc import OperationalError

from storefront.models.analytics_event import AnalyticsEvent
from storefront.models.product import Product
from storefront.repositories.analytics_repo import Degraded, Ok
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.view_count_schema import ViewCountRequest
from storefront.services.view_count_service import ViewCountService

URL = "/functions/v1/increment-view-count"


def _views(backend, product_id):
    db = backend.session()
    try:
        return db.get(Product, product_id).view_count
    finally:
        db.close()


def _events(backend):
    db = backend.session()
    try:
        return db.query(AnalyticsEvent).all()
    finally:
        db.close()


def test_preflight_from_any_origin(client):
    res = client.options(
        URL,
        headers={"Origin": "https://shop.example", "Access-Control-Request-Method": "POST"},
    )
    assert res.status_code == 200
    assert res.text == "ok"
    assert res.headers["access-control-allow-origin"] == "*"
    assert "POST" in res.headers["access-control-allow-methods"]


@pytest.mark.parametrize(
    "body",
    [{"productId": "p-pos1"}, {"storeSlug": "demo"}, {"productId": "", "storeSlug": "demo"}, {}],
)
def test_missing_fields(client, store, backend, body):
    res = client.post(URL, json=body)
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields: productId and storeSlug"}
    assert res.headers["access-control-allow-origin"] == "*"
    assert _views(backend, "p-pos1") == 0


def test_view_is_counted_and_logged(client, store, backend):
    res = client.post(
        URL,
        json={"productId": "p-pos1", "storeSlug": "demo", "sessionId": "s-1", "userAgent": "pytest"},
        headers={"x-forwarded-for": "203.0.113.5", "referer": "https://shop.example/demo"},
    )
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "View count incremented"}
    assert _views(backend, "p-pos1") == 1

    [event] = _events(backend)
    assert event.event_type == "product_view"
    assert event.store_slug == "demo"
    assert event.product_id == "p-pos1"
    assert event.session_id == "s-1"
    assert event.user_agent == "pytest"
    assert event.ip_address == "203.0.113.5"
    assert event.event_metadata["referrer"] == "https://shop.example/demo"
    assert "timestamp" in event.event_metadata


def test_repeated_views_accumulate(client, store, backend):
    for _ in range(3):
        assert client.post(URL, json={"productId": "p-null", "storeSlug": "demo"}).status_code == 200
    assert _views(backend, "p-null") == 3
    assert len(_events(backend)) == 3


def test_defaults_for_session_and_ip(client, store, backend):
    client.post(URL, json={"productId": "p-pos2", "storeSlug": "demo"}, headers={"x-real-ip": "198.51.100.7"})
    client.post(URL, json={"productId": "p-pos2", "storeSlug": "demo"})
    events = {e.ip_address: e for e in _events(backend)}
    assert set(events) == {"198.51.100.7", "unknown"}
    assert events["198.51.100.7"].session_id.startswith("session_")
    assert events["unknown"].event_metadata["referrer"] is None


def test_unknown_product_is_not_an_error(client, store):
    res = client.post(URL, json={"productId": "nope", "storeSlug": "demo"})
    assert res.status_code == 200


def test_counter_failure_is_reported(client, store, backend, monkeypatch):
    def broken(self, product_id):
        raise OperationalError("UPDATE", {}, Exception("db down"))

    monkeypatch.setattr(ProductRepository, "increment_product_views", broken)
    res = client.post(URL, json={"productId": "p-pos1", "storeSlug": "demo"})
    assert res.status_code == 500
    assert res.json() == {"error": "Failed to update view count"}
    # the analytics row went in first and stays
    assert len(_events(backend)) == 1


def test_analytics_failure_is_ignored(client, store, backend):
    AnalyticsEvent.__table__.drop(backend.engine)
    res = client.post(URL, json={"productId": "p-pos1", "storeSlug": "demo"})
    assert res.status_code == 200
    assert _views(backend, "p-pos1") == 1


def test_malformed_body(client, store):
    res = client.post(URL, content=b"{not json", headers={"content-type": "application/json"})
    assert res.status_code == 500
    assert res.json() == {"error": "Internal server error"}


def test_record_analytics_outcomes(backend, store):
    svc = ViewCountService(backend)
    req = ViewCountRequest(product_id="p-pos1", store_slug="demo")
    assert isinstance(svc.record_analytics(req, "unknown"), Ok)

    AnalyticsEvent.__table__.drop(backend.engine)
    outcome = svc.record_analytics(req, "unknown")
    assert isinstance(outcome, Degraded)
    assert outcome.reason


def test_increment_returns_rows_touched(backend, store):
    svc = ViewCountService(backend)
    assert svc.increment("p-pos1") == 1
    assert svc.increment("missing") == 0


@pytest.mark.parametrize(
    "body",
    [["p-pos1", "demo"], "demo", {"productId": 42, "storeSlug": "demo"}],
)
def test_unusable_body_counts_as_missing_fields(client, store, backend, body):
    res = client.post(URL, json=body)
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields: productId and storeSlug"}
    assert _views(backend, "p-pos1") == 0
