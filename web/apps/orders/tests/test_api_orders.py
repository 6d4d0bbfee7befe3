"""API tests for the order collection and detail endpoints.

These tests exercise the orders HTTP API for the main scenarios: creation,
replay, unavailable item, validation errors, upstream outage, listing and
detail access. They rely on in-process stubs from ``apps.orders.adapters``
for deterministic behavior.
"""
import uuid

import pytest

from apps.orders.domain import InventoryCounters
from apps.orders.models import OrderModel, OrderNotification

from .support import BOOK_ID, BOOK_PRICE

LIST_URL = "/api/orders/"
DETAIL_URL = "/api/orders/{oid}/"

PAYLOAD = {
    "seller_id": "seller-1",
    "item_id": BOOK_ID,
    "payment_reference": "PAY-001",
    "courier": {"provider_slug": "courier-guy", "service_level_code": "ECO", "cost_cents": 9500},
}


def _create(client, payload=None, user="buyer-1"):
    return client.post(LIST_URL, data=payload or PAYLOAD, content_type="application/json", HTTP_X_USER_ID=user)


@pytest.mark.django_db
def test_create_order_returns_201_and_persists(client, seeded):
    r = _create(client)

    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["buyer_id"] == "buyer-1"
    assert body["total_cents"] == BOOK_PRICE + 9500
    assert body["order_number"].startswith("ORD-")
    assert body["delivery"]["type"] == "door"
    assert body["warnings"] == []
    row = OrderModel.objects.get(id=body["id"])
    assert row.payment_reference == "PAY-001"
    assert row.inventory_snapshot == {"available_quantity": 1, "sold_quantity": 0, "sold": False}
    assert row.internal_id == 1
    assert seeded.counters(BOOK_ID) == InventoryCounters(0, 1, True)


@pytest.mark.django_db
def test_create_order_replay_returns_200_same_order(client, seeded):
    first = _create(client).json()
    r = _create(client)

    assert r.status_code == 200
    assert r.json()["id"] == first["id"]
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_create_order_sold_item_returns_409(client, seeded):
    seeded.add(BOOK_ID, price_cents=BOOK_PRICE, available_quantity=0, sold_quantity=1, sold=True)

    r = _create(client)

    assert r.status_code == 409
    assert r.json()["detail"] == "ITEM_UNAVAILABLE"


@pytest.mark.django_db
def test_create_order_unknown_item_returns_404(client, seeded):
    r = _create(client, {**PAYLOAD, "item_id": "BOOK-404"})
    assert r.status_code == 404


@pytest.mark.django_db
def test_create_order_missing_locker_returns_422(client, seeded):
    r = _create(client, {**PAYLOAD, "delivery_type": "locker"})

    assert r.status_code == 422
    assert r.json()["detail"] == "MISSING_DELIVERY_INFO"
    assert seeded.counters(BOOK_ID).sold is False


@pytest.mark.django_db
def test_create_order_locker_provider_mismatch_returns_400(client, seeded):
    payload = {
        **PAYLOAD,
        "delivery_type": "locker",
        "pickup_type": "locker",
        "delivery_locker": {"location_id": "A", "provider_slug": "pudo"},
        "pickup_locker": {"location_id": "B", "provider_slug": "courier-guy"},
    }
    r = _create(client, payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "PROVIDER_MISMATCH"


@pytest.mark.django_db
def test_create_order_validation_error(client, seeded):
    """Returns 400 when the payload fails DTO validation."""
    r = _create(client, {"seller_id": "", "item_id": BOOK_ID, "delivery_type": "drone"})
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_FAILED"


@pytest.mark.django_db
def test_create_order_requires_caller(client, seeded):
    r = client.post(LIST_URL, data=PAYLOAD, content_type="application/json")
    assert r.status_code == 401


@pytest.mark.django_db
def test_create_order_upstream_outage_returns_503(client, seeded, monkeypatch):
    from apps.orders import providers

    def down(item_id):
        raise RuntimeError("CIRCUIT_OPEN")

    monkeypatch.setattr(providers.STUB_INVENTORY, "get_item", down)
    r = _create(client)
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"


@pytest.mark.django_db
def test_get_order_detail_for_parties_and_admin(client, seeded):
    oid = _create(client).json()["id"]

    for user in ("buyer-1", "seller-1", "admin-1"):
        r = client.get(DETAIL_URL.format(oid=oid), HTTP_X_USER_ID=user)
        assert r.status_code == 200
        assert r.json()["id"] == oid

    r = client.get(DETAIL_URL.format(oid=oid), HTTP_X_USER_ID="stranger-1")
    assert r.status_code == 403


@pytest.mark.django_db
def test_get_order_not_found_returns_404(client, seeded):
    r = client.get(DETAIL_URL.format(oid=str(uuid.uuid4())), HTTP_X_USER_ID="buyer-1")
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_list_orders_is_scoped_to_caller(client, seeded):
    _create(client)

    mine = client.get(LIST_URL, HTTP_X_USER_ID="seller-1").json()
    theirs = client.get(LIST_URL, HTTP_X_USER_ID="stranger-1").json()
    everything = client.get(LIST_URL, HTTP_X_USER_ID="admin-1").json()

    assert mine["count"] == 1
    assert {"id", "status", "total_cents", "currency"} <= set(mine["results"][0].keys())
    assert theirs["count"] == 0
    assert everything["count"] == 1


@pytest.mark.django_db
def test_list_orders_filters_by_status(client, seeded):
    _create(client)
    r = client.get(LIST_URL + "?status=cancelled", HTTP_X_USER_ID="buyer-1")
    assert r.json()["count"] == 0


@pytest.mark.django_db
def test_commit_via_api_ships_and_notifies(client, seeded):
    oid = _create(client).json()["id"]

    r = client.post(f"/api/orders/{oid}/commit/", HTTP_X_USER_ID="seller-1")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "shipped"
    assert body["shipment"]["simulated"] is True
    assert body["tracking_number"].startswith("SIM-")
    assert OrderNotification.objects.filter(user_id="buyer-1", kind="order_shipped").exists()


@pytest.mark.django_db
def test_commit_by_buyer_returns_403(client, seeded):
    oid = _create(client).json()["id"]
    r = client.post(f"/api/orders/{oid}/commit/", HTTP_X_USER_ID="buyer-1")
    assert r.status_code == 403


@pytest.mark.django_db
def test_refresh_tracking_via_api(client, seeded, monkeypatch):
    from apps.orders import providers

    oid = _create(client).json()["id"]
    assert client.post(f"/api/orders/{oid}/tracking/", HTTP_X_USER_ID="buyer-1").status_code == 409

    monkeypatch.setattr(providers.STUB_COURIER, "shipment_response", {"id": 5, "tracking_reference": "TCG5"})
    monkeypatch.setattr(providers.STUB_COURIER, "tracking_response", {
        "status": "in_transit",
        "checkpoints": [{"status": "in_transit", "city": "Bloemfontein"}],
    })
    client.post(f"/api/orders/{oid}/commit/", HTTP_X_USER_ID="seller-1")

    r = client.post(f"/api/orders/{oid}/tracking/", HTTP_X_USER_ID="buyer-1")

    assert r.status_code == 200
    body = r.json()
    assert body["delivery_status"] == "in transit"
    assert body["tracking"]["current_location"] == "Bloemfontein"
    assert body["tracking"]["events"][0]["status"] == "in transit"
    assert OrderModel.objects.get(id=oid).delivery_status == "in transit"
