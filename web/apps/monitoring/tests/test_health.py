import pytest

from apps.orders.http_adapters import BREAKERS


@pytest.mark.django_db
def test_health_reports_db_breakers_and_courier(client):
    r = client.get("/api/health/")

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["db"] == {"ok": True}
    assert set(body["components"]["breakers"]) == {"inventory", "payments", "courier"}
    assert body["components"]["courier"] == {"configured": False, "mode": "simulated"}
    assert body["components"]["adapters"] == "stub"


@pytest.mark.django_db
def test_health_shows_open_breaker_without_failing(client, settings):
    settings.COURIER_API_KEY = "key"
    cb = BREAKERS["courier"]
    for _ in range(cb.fail_threshold):
        cb.on_failure()

    body = client.get("/api/health/").json()

    assert body["ok"] is True
    assert body["components"]["breakers"]["courier"]["state"] == "OPEN"
    assert body["components"]["courier"]["configured"] is True
