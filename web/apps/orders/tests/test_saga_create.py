import pytest

from apps.orders.domain import (
    AddressRef,
    FulfillmentType,
    InventoryCounters,
    Locker,
    OrderStatus,
    Profile,
)
from apps.orders.errors import (
    ItemUnavailable,
    MissingDeliveryInfo,
    NotFound,
    OrderCreationFailed,
    ProviderMismatch,
)

from .support import BOOK_ID, BOOK_PRICE, SHIPPING


def test_create_order_reserves_item_and_persists_pending_order(harness):
    result = harness.place()

    order = result.order
    assert result.created is True
    assert order.status == OrderStatus.PENDING
    assert order.order_number.startswith("ORD-")
    assert order.total_cents == BOOK_PRICE + SHIPPING.cost_cents
    assert order.inventory_snapshot == InventoryCounters(1, 0, False)
    assert order.pickup == AddressRef("addr-seller")
    assert order.delivery == AddressRef("addr-buyer")
    assert order.buyer.full_name == "Bea Buyer"
    assert order.item.title == "Calculus"
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(0, 1, True)


def test_create_order_replay_with_same_payment_reference_returns_existing(harness):
    first = harness.place().order
    again = harness.place()

    assert again.created is False
    assert again.order.id == first.id
    assert len(harness.store.all()) == 1
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(0, 1, True)


def test_create_order_replay_repairs_unsold_item(harness):
    first = harness.place().order
    # ledger drifted after the order was written
    harness.inventory._set(BOOK_ID, InventoryCounters(1, 0, False))

    again = harness.place()

    assert again.order.id == first.id
    assert harness.inventory.counters(BOOK_ID).sold is True


@pytest.mark.parametrize("close", ["cancel", "decline"])
def test_create_order_replay_of_closed_order_keeps_item_on_sale(harness, close):
    order = harness.place().order
    if close == "cancel":
        harness.service.cancel_order_with_refund(order.id, "buyer-1")
    else:
        harness.service.decline_commit(order.id, "seller-1")
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)

    again = harness.place()

    assert again.created is False
    assert again.order.id == order.id
    assert again.order.status in (OrderStatus.CANCELLED, OrderStatus.DECLINED)
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)


def test_create_order_existing_active_triple_returned_without_payment_reference(harness):
    first = harness.place(payment_reference=None).order
    again = harness.place(payment_reference=None)

    assert again.created is False
    assert again.order.id == first.id


@pytest.mark.parametrize("field,value", [
    ("item_id", "BOOK-404"),
    ("buyer_id", "ghost"),
    ("seller_id", "ghost"),
])
def test_create_order_unknown_party_or_item(harness, field, value):
    with pytest.raises(NotFound) as e:
        harness.place(**{field: value})
    assert str(e.value) == "NOT_FOUND"
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)


def test_create_order_sold_item_is_unavailable(harness):
    harness.inventory.add(BOOK_ID, price_cents=BOOK_PRICE, available_quantity=0, sold_quantity=1, sold=True)

    with pytest.raises(ItemUnavailable) as e:
        harness.place()
    assert str(e.value) == "ITEM_UNAVAILABLE"
    assert harness.store.all() == []


def test_create_order_missing_address_releases_reservation(harness):
    harness.directory.add(Profile("buyer-1", "Bea Buyer"))

    with pytest.raises(MissingDeliveryInfo):
        harness.place()
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)
    assert harness.store.all() == []


def test_create_order_locker_without_selection_is_missing_info(harness):
    with pytest.raises(MissingDeliveryInfo):
        harness.place(delivery_type=FulfillmentType.LOCKER)
    assert harness.inventory.counters(BOOK_ID).sold is False


def test_create_order_uses_buyer_preferred_locker(harness, locker):
    harness.directory.add(Profile("buyer-1", "Bea Buyer", preferred_locker=locker))

    order = harness.place(delivery_type=FulfillmentType.LOCKER).order

    assert order.delivery == locker
    assert order.delivery_type == FulfillmentType.LOCKER
    assert order.pickup_type == FulfillmentType.DOOR


def test_create_order_locker_to_locker_across_providers_rejected(harness, locker):
    with pytest.raises(ProviderMismatch) as e:
        harness.place(
            delivery_type=FulfillmentType.LOCKER,
            delivery_locker=locker,
            pickup_type=FulfillmentType.LOCKER,
            pickup_locker=Locker("LOC-JHB-7", "courier-guy"),
        )
    assert str(e.value) == "PROVIDER_MISMATCH"
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)


def test_create_order_insert_failure_releases_and_raises(harness, monkeypatch):
    def boom(order):
        raise RuntimeError("db down")

    monkeypatch.setattr(harness.store, "insert", boom)

    with pytest.raises(OrderCreationFailed) as e:
        harness.place()
    assert str(e.value) == "ORDER_CREATION_FAILED"
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)


def test_create_order_release_failure_does_not_mask_original_error(harness, monkeypatch):
    harness.directory.add(Profile("buyer-1", "Bea Buyer"))
    calls = []

    def refuse(item_id, previous):
        calls.append((item_id, previous))
        raise RuntimeError("inventory down")

    monkeypatch.setattr(harness.inventory, "release", refuse)

    with pytest.raises(MissingDeliveryInfo):
        harness.place()
    assert calls == [(BOOK_ID, InventoryCounters(1, 0, False))]


def test_create_order_second_buyer_cannot_take_reserved_copy(harness):
    harness.directory.add(Profile("buyer-2", "Other Buyer", shipping_address_ref="addr-buyer"))
    harness.place()

    with pytest.raises(ItemUnavailable):
        harness.place(buyer_id="buyer-2", payment_reference="PAY-002")
