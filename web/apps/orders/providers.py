"""Service provider helpers for wiring the saga with its ports.

``get_order_service`` and ``get_rate_aggregator`` return configured
instances. With ``settings.USE_HTTP_ADAPTERS`` enabled, inventory, payments
and courier calls go over HTTP; otherwise the process-wide in-memory stubs
below are used, which keeps tests and local development deterministic.
Orders, profiles, addresses and notifications always live in the Django
database.
"""

from django.conf import settings

from .adapters import CourierStub, InventoryStub, PaymentsStub
from .http_adapters import HttpCourierClient, HttpInventoryClient, HttpPaymentsClient
from .rates import RateAggregator
from .repository import DjangoAddressBook, DjangoDirectory, DjangoNotifier, OrderRepository
from .saga import OrderSagaService
from .shipments import ShipmentOrchestrator

# Shared stubs so seeded items survive across requests in stub mode
STUB_INVENTORY = InventoryStub()
STUB_PAYMENTS = PaymentsStub()
STUB_COURIER = CourierStub()


def _use_http() -> bool:
    return bool(getattr(settings, "USE_HTTP_ADAPTERS", True))


def get_courier():
    return HttpCourierClient() if _use_http() else STUB_COURIER


def get_rate_aggregator() -> RateAggregator:
    return RateAggregator(
        get_courier(),
        markup=getattr(settings, "DELIVERY_MARKUP", "15"),
        currency=getattr(settings, "ORDER_CURRENCY", "ZAR"),
    )


def get_order_service() -> OrderSagaService:
    """Return a configured OrderSagaService instance.

    Returns:
        OrderSagaService: HTTP adapters when ``USE_HTTP_ADAPTERS`` is
        truthy, in-memory stubs otherwise.
    """
    if _use_http():
        inventory, payments = HttpInventoryClient(), HttpPaymentsClient()
    else:
        inventory, payments = STUB_INVENTORY, STUB_PAYMENTS
    courier = get_courier()
    store = OrderRepository()
    address_book = DjangoAddressBook()
    notifier = DjangoNotifier()
    shipments = ShipmentOrchestrator(
        courier, store, address_book, notifier,
        label_base_url=getattr(settings, "SIMULATED_LABEL_BASE_URL", "https://labels.invalid/simulated"),
    )
    return OrderSagaService(
        inventory=inventory,
        payments=payments,
        courier=courier,
        store=store,
        directory=DjangoDirectory(),
        address_book=address_book,
        notifier=notifier,
        shipments=shipments,
        currency=getattr(settings, "ORDER_CURRENCY", "ZAR"),
    )
