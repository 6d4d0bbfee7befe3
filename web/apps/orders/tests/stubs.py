"""In-memory stand-ins for the order store, directory, address book and notifier."""

import dataclasses
import threading
import uuid
from datetime import datetime, timezone

from apps.orders.domain import ACTIVE_STATUSES, Address, Order, Profile
from apps.orders.errors import NotFound


class InMemoryOrderStore:
    """Dict backed ``OrderStorePort`` with the database's uniqueness rules."""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(str(order_id))

    def all(self) -> list[Order]:
        return list(self._orders.values())

    def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        return next((o for o in self._orders.values() if o.payment_reference == payment_reference), None)

    def find_active(self, buyer_id: str, seller_id: str, item_id: str) -> Order | None:
        return next(
            (
                o for o in self._orders.values()
                if o.buyer_id == buyer_id and o.seller_id == seller_id
                and o.item.item_id == item_id and o.status in ACTIVE_STATUSES
            ),
            None,
        )

    def find_by_tracking_number(self, tracking_number: str) -> Order | None:
        return next((o for o in self._orders.values() if o.tracking_number == tracking_number), None)

    def insert(self, order: Order) -> Order:
        with self._lock:
            if order.payment_reference and self.find_by_payment_reference(order.payment_reference):
                raise ValueError("DUPLICATE_PAYMENT_REFERENCE")
            if self.find_active(order.buyer_id, order.seller_id, order.item.item_id):
                raise ValueError("DUPLICATE_ACTIVE_ORDER")
            now = datetime.now(timezone.utc)
            oid = str(uuid.uuid4())
            stored = dataclasses.replace(
                order,
                id=oid,
                order_number=order.order_number or f"ORD-{now:%Y%m%d}-{oid[:8].upper()}",
                created_at=now,
            )
            self._orders[oid] = stored
            return stored

    def update(self, order_id: str, **changes) -> Order:
        with self._lock:
            current = self._orders.get(str(order_id))
            if current is None:
                raise NotFound(f"order {order_id}")
            updated = dataclasses.replace(current, **changes)
            self._orders[updated.id] = updated
            return updated


class DirectoryStub:
    def __init__(self, profiles: list[Profile] | None = None):
        self._profiles = {p.user_id: p for p in profiles or []}

    def add(self, profile: Profile) -> None:
        self._profiles[profile.user_id] = profile

    def get_profile(self, user_id: str) -> Profile | None:
        return self._profiles.get(user_id)


class AddressBookStub:
    def __init__(self, addresses: dict[str, Address] | None = None):
        self._addresses = dict(addresses or {})

    def add(self, ref: str, address: Address) -> None:
        self._addresses[ref] = address

    def resolve(self, ref: str) -> Address | None:
        return self._addresses.get(ref)


class NotifierStub:
    """Collects notifications; set ``fail`` to simulate an outage."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    def notify(self, user_id: str, kind: str, title: str, message: str, order_id: str | None = None) -> None:
        if self.fail:
            raise RuntimeError("NOTIFIER_DOWN")
        self.sent.append({"user_id": user_id, "kind": kind, "title": title, "message": message, "order_id": order_id})
