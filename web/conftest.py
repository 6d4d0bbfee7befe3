import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.COURIER_API_KEY = ""
    settings.COURIER_WEBHOOK_SECRET = ""
    settings.PAYMENTS_WEBHOOK_SECRET = ""


@pytest.fixture(autouse=True)
def reset_shared_state():
    # throttling counters, stub ledger and breakers are process-wide
    from apps.orders import providers
    from apps.orders.http_adapters import BREAKERS

    cache.clear()
    providers.STUB_INVENTORY.clear()
    providers.STUB_PAYMENTS.calls.clear()
    providers.STUB_COURIER.sent.clear()
    for cb in BREAKERS.values():
        cb.reset()
    yield
