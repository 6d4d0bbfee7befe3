"""In-process stub adapters for the orders domain ports.

These stubs implement the ports without any network calls. They are
intended for unit tests and local development where deterministic behavior
is useful and the inventory, payments and courier services are not running.
``InventoryStub`` keeps a real ledger in memory with the same
reserve/release semantics as the inventory service.
"""

import dataclasses
import threading
import uuid

from .domain import (
    CatalogItem,
    InventoryCounters,
    ItemSnapshot,
    RefundResult,
)
from .errors import CourierNotConfigured, ItemUnavailable, NotFound


class InventoryStub:
    """In-memory ledger implementing ``InventoryPort``."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: dict[str, CatalogItem] = {}

    def add(self, item_id: str, title: str = "Textbook", price_cents: int = 10000, condition: str = "Good",
            author: str = "", available_quantity: int = 1, sold_quantity: int = 0, sold: bool = False) -> None:
        self._items[item_id] = CatalogItem(
            snapshot=ItemSnapshot(item_id, title, price_cents, condition, author),
            counters=InventoryCounters(available_quantity, sold_quantity, sold),
        )

    def clear(self) -> None:
        self._items.clear()

    def counters(self, item_id: str) -> InventoryCounters:
        return self._items[item_id].counters

    def _set(self, item_id: str, counters: InventoryCounters) -> None:
        self._items[item_id] = dataclasses.replace(self._items[item_id], counters=counters)

    def get_item(self, item_id: str) -> CatalogItem | None:
        return self._items.get(item_id)

    def reserve(self, item_id: str) -> InventoryCounters:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise NotFound(f"item {item_id}")
            prev = item.counters
            if not prev.is_available:
                raise ItemUnavailable(item_id)
            self._set(item_id, InventoryCounters(prev.available_quantity - 1, prev.sold_quantity + 1, True))
            return prev

    def release(self, item_id: str, previous: InventoryCounters) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            cur = item.counters
            expected = (previous.available_quantity - 1, previous.sold_quantity + 1, True)
            if (cur.available_quantity, cur.sold_quantity, cur.sold) != expected:
                return False
            self._set(item_id, previous)
            return True

    def ensure_sold(self, item_id: str) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.counters.sold:
                return
            cur = item.counters
            self._set(item_id, InventoryCounters(max(0, cur.available_quantity - 1), cur.sold_quantity + 1, True))


class PaymentsStub:
    """Stub implementation of ``PaymentsPort``.

    Approves refunds with a positive amount and returns a generated refund
    id; records every call in ``calls``.
    """

    def __init__(self):
        self.calls: list[dict] = []

    def refund(self, order_id: str, payment_reference: str, amount_cents: int, reason: str) -> RefundResult:
        self.calls.append({
            "order_id": order_id,
            "payment_reference": payment_reference,
            "amount_cents": amount_cents,
            "reason": reason,
        })
        if amount_cents <= 0:
            return RefundResult(success=False, message="INVALID_AMOUNT")
        return RefundResult(success=True, refund_id=str(uuid.uuid4()), amount_cents=amount_cents)


class CourierStub:
    """Courier double.

    A call whose canned response is missing raises ``CourierNotConfigured``,
    like an unconfigured courier, which drives the simulated fallbacks. Sent
    payloads are recorded for assertions.
    """

    def __init__(
        self,
        rates_response: dict | None = None,
        shipment_response: dict | None = None,
        tracking_response: dict | list | None = None,
    ):
        self.rates_response = rates_response
        self.shipment_response = shipment_response
        self.tracking_response = tracking_response
        self.sent: list[tuple[str, dict]] = []

    def quote(self, payload: dict) -> dict:
        self.sent.append(("rates", payload))
        if self.rates_response is None:
            raise CourierNotConfigured()
        return self.rates_response

    def create_shipment(self, payload: dict) -> dict:
        self.sent.append(("shipments", payload))
        if self.shipment_response is None:
            raise CourierNotConfigured()
        return self.shipment_response

    def cancel_shipment(self, tracking_reference: str, reason: str) -> dict:
        self.sent.append(("cancel", {"tracking_reference": tracking_reference, "cancellation_reason": reason}))
        if self.shipment_response is None:
            raise CourierNotConfigured()
        return {"success": True}

    def track(self, tracking_reference: str) -> dict | list:
        self.sent.append(("track", {"tracking_reference": tracking_reference}))
        if self.tracking_response is None:
            raise CourierNotConfigured()
        return self.tracking_response
