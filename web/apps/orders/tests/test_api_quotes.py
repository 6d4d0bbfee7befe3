import pytest

from apps.orders import providers

QUOTES_URL = "/api/quotes/"

SELLER = {"street_address": "5 Jan Smuts Ave", "city": "Johannesburg", "province": "Gauteng", "postal_code": "2196"}
BUYER = {"street_address": "12 Long Street", "city": "Cape Town", "province": "Western Cape", "postal_code": "8001"}


def _post(client, payload):
    return client.post(QUOTES_URL, data=payload, content_type="application/json")


@pytest.mark.django_db
def test_quotes_simulated_when_courier_unconfigured(client):
    r = _post(client, {"collection_address": SELLER, "delivery_address": BUYER})

    assert r.status_code == 200
    body = r.json()
    assert body["simulated"] is True
    assert len(body["quotes"]) == 1
    assert body["quotes"][0]["service_level_code"] == "STANDARD"
    assert body["quotes"][0]["cost_cents"] == 5000


@pytest.mark.django_db
def test_quotes_live_rates_with_markup(client, monkeypatch):
    monkeypatch.setattr(providers.STUB_COURIER, "rates_response", {
        "provider_rate_requests": [{
            "provider_slug": "pudo",
            "provider_name": "Pudo",
            "responses": [{"service_level_code": "L2D", "rate_amount": "60.00", "service_level": {"name": "Locker to door"}}],
        }],
    })

    r = _post(client, {"collection_locker": {"location_id": "P1", "provider_slug": "pudo"}, "delivery_address": BUYER})

    assert r.status_code == 200
    quote = r.json()["quotes"][0]
    assert quote["cost_cents"] == 7500
    assert quote["simulated"] is False
    kind, sent = providers.STUB_COURIER.sent[-1]
    assert sent["collection_pickup_point_location_id"] == "P1"
    assert "collection_address" not in sent


@pytest.mark.django_db
def test_quotes_side_with_address_and_locker_rejected(client):
    r = _post(client, {
        "collection_address": SELLER,
        "collection_locker": {"location_id": "P1", "provider_slug": "pudo"},
        "delivery_address": BUYER,
    })
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_FAILED"


@pytest.mark.django_db
def test_quotes_missing_side_rejected(client):
    r = _post(client, {"collection_address": SELLER})
    assert r.status_code == 400


@pytest.mark.django_db
def test_quotes_locker_provider_mismatch(client):
    r = _post(client, {
        "collection_locker": {"location_id": "P1", "provider_slug": "pudo"},
        "delivery_locker": {"location_id": "C9", "provider_slug": "courier-guy"},
    })
    assert r.status_code == 400
    assert r.json()["detail"] == "PROVIDER_MISMATCH"


@pytest.mark.django_db
def test_quotes_bad_postal_code(client):
    r = _post(client, {"collection_address": {**SELLER, "postal_code": "!!"}, "delivery_address": BUYER})
    assert r.status_code == 400
