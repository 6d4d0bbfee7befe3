"""Test helpers: an order saga wired entirely with in-process stubs."""

from dataclasses import dataclass

from apps.orders.adapters import CourierStub, InventoryStub, PaymentsStub
from apps.orders.domain import Address, CourierSelection, CreateOrderRequest, Profile
from apps.orders.saga import OrderSagaService
from apps.orders.shipments import ShipmentOrchestrator

from .stubs import AddressBookStub, DirectoryStub, InMemoryOrderStore, NotifierStub

BOOK_ID = "BOOK-1"
BOOK_PRICE = 25000
SHIPPING = CourierSelection("courier-guy", "ECO", 9500, "The Courier Guy", "Economy")

BUYER_ADDRESS = Address("12 Long Street", "Cape Town", "Western Cape", "8001", local_area="City Bowl")
SELLER_ADDRESS = Address("5 Jan Smuts Ave", "Johannesburg", "Gauteng", "2196", local_area="Rosebank")


@dataclass
class Harness:
    inventory: InventoryStub
    payments: PaymentsStub
    courier: CourierStub
    store: InMemoryOrderStore
    directory: DirectoryStub
    address_book: AddressBookStub
    notifier: NotifierStub
    service: OrderSagaService

    def place(self, **overrides):
        fields = {
            "buyer_id": "buyer-1",
            "seller_id": "seller-1",
            "item_id": BOOK_ID,
            "payment_reference": "PAY-001",
            "courier": SHIPPING,
        }
        fields.update(overrides)
        return self.service.create_order(CreateOrderRequest(**fields))


def build_harness() -> Harness:
    inventory = InventoryStub()
    inventory.add(BOOK_ID, title="Calculus", price_cents=BOOK_PRICE, author="Stewart")
    directory = DirectoryStub([
        Profile("buyer-1", "Bea Buyer", "bea@example.com", "+27820000001", shipping_address_ref="addr-buyer"),
        Profile("seller-1", "Sam Seller", "sam@example.com", "+27820000002", pickup_address_ref="addr-seller"),
        Profile("admin-1", "Ada Admin", "ada@example.com", role="admin"),
        Profile("stranger-1", "Stan Stranger"),
    ])
    address_book = AddressBookStub({"addr-buyer": BUYER_ADDRESS, "addr-seller": SELLER_ADDRESS})
    payments = PaymentsStub()
    courier = CourierStub()
    store = InMemoryOrderStore()
    notifier = NotifierStub()
    shipments = ShipmentOrchestrator(courier, store, address_book, notifier)
    service = OrderSagaService(inventory, payments, courier, store, directory, address_book, notifier, shipments)
    return Harness(inventory, payments, courier, store, directory, address_book, notifier, service)
