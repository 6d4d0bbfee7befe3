import pytest

from apps.orders.domain import InventoryCounters, OrderStatus, RefundResult, RefundStatus, Shipment
from apps.orders.errors import Forbidden, NotFound, OrderNotCancellable, RefundFailed

from .support import BOOK_ID, BOOK_PRICE, SHIPPING


def test_buyer_cancel_refunds_releases_and_notifies(harness):
    order = harness.place().order

    result = harness.service.cancel_order_with_refund(order.id, "buyer-1", "Changed my mind")

    assert result.order.status == OrderStatus.CANCELLED
    assert result.order.cancellation_reason == "Changed my mind"
    assert result.order.refund_status == RefundStatus.COMPLETED
    assert result.order.refund_id == result.refund.refund_id
    assert result.order.cancelled_at is not None
    assert harness.payments.calls == [{
        "order_id": order.id,
        "payment_reference": "PAY-001",
        "amount_cents": BOOK_PRICE + SHIPPING.cost_cents,
        "reason": "Changed my mind",
    }]
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)
    assert [(n["user_id"], n["kind"]) for n in harness.notifier.sent] == [
        ("buyer-1", "order_cancelled"),
        ("seller-1", "order_cancelled"),
    ]
    assert harness.notifier.sent[0]["message"] == "Your order has been cancelled and refunded."
    assert result.warnings == []


def test_cancel_default_reason(harness):
    order = harness.place().order
    result = harness.service.cancel_order_with_refund(order.id, "seller-1")
    assert result.order.cancellation_reason == "Order cancelled by user"


def test_cancel_without_payment_reference_skips_refund(harness):
    order = harness.place(payment_reference=None).order

    result = harness.service.cancel_order_with_refund(order.id, "buyer-1")

    assert result.refund is None
    assert result.order.refund_status == RefundStatus.NOT_REQUIRED
    assert harness.payments.calls == []


def test_cancel_refund_refused_leaves_order_untouched(harness, monkeypatch):
    order = harness.place().order
    monkeypatch.setattr(
        harness.payments, "refund",
        lambda *a, **k: RefundResult(success=False, message="AMOUNT_EXCEEDS_CAPTURE"),
    )

    with pytest.raises(RefundFailed) as e:
        harness.service.cancel_order_with_refund(order.id, "buyer-1")

    assert str(e.value) == "REFUND_FAILED"
    assert e.value.detail == "AMOUNT_EXCEEDS_CAPTURE"
    assert harness.store.get(order.id).status == OrderStatus.PENDING
    assert harness.inventory.counters(BOOK_ID).sold is True
    assert harness.notifier.sent == []


def test_cancel_refund_transport_error_is_refund_failed(harness, monkeypatch):
    order = harness.place().order

    def down(*a, **k):
        raise RuntimeError("CIRCUIT_OPEN")

    monkeypatch.setattr(harness.payments, "refund", down)

    with pytest.raises(RefundFailed):
        harness.service.cancel_order_with_refund(order.id, "buyer-1")
    assert harness.store.get(order.id).status == OrderStatus.PENDING


def test_cancel_by_stranger_forbidden_but_admin_allowed(harness):
    order = harness.place().order

    with pytest.raises(Forbidden):
        harness.service.cancel_order_with_refund(order.id, "stranger-1")
    with pytest.raises(Forbidden):
        harness.service.cancel_order_with_refund(order.id, None)

    result = harness.service.cancel_order_with_refund(order.id, "admin-1")
    assert result.order.status == OrderStatus.CANCELLED


@pytest.mark.parametrize("delivery_status", ["collected", "IN_TRANSIT", "out-for-delivery", "Delivered"])
def test_cancel_after_handoff_rejected_even_for_admin(harness, delivery_status):
    order = harness.place().order
    harness.store.update(order.id, delivery_status=delivery_status)

    with pytest.raises(OrderNotCancellable) as e:
        harness.service.cancel_order_with_refund(order.id, "admin-1")
    assert str(e.value) == "ORDER_NOT_CANCELLABLE"
    assert harness.payments.calls == []


@pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.DECLINED, OrderStatus.DELIVERED])
def test_cancel_terminal_order_rejected(harness, status):
    order = harness.place().order
    harness.store.update(order.id, status=status)

    with pytest.raises(OrderNotCancellable):
        harness.service.cancel_order_with_refund(order.id, "buyer-1")


def test_cancel_unknown_order(harness):
    with pytest.raises(NotFound):
        harness.service.cancel_order_with_refund("nope", "buyer-1")


def test_cancel_courier_failure_is_a_warning(harness):
    order = harness.place().order
    harness.store.update(order.id, status=OrderStatus.SHIPPED, shipment=Shipment("TRK-123"))

    result = harness.service.cancel_order_with_refund(order.id, "seller-1")

    assert result.order.status == OrderStatus.CANCELLED
    assert result.order.shipment_cancel_error == "COURIER_NOT_CONFIGURED"
    assert result.warnings[0].startswith("SHIPMENT_CANCEL_FAILED")
    assert harness.courier.sent == [
        ("cancel", {"tracking_reference": "TRK-123", "cancellation_reason": "Order cancelled by user"}),
    ]
    assert len(harness.payments.calls) == 1


def test_cancel_real_shipment_is_cancelled_with_courier(harness):
    harness.courier.shipment_response = {"id": 1, "tracking_reference": "TRK-123"}
    order = harness.place().order
    harness.store.update(order.id, status=OrderStatus.SHIPPED, shipment=Shipment("TRK-123"))

    result = harness.service.cancel_order_with_refund(order.id, "buyer-1")

    assert result.warnings == []
    assert result.order.shipment_cancel_error is None
    assert harness.courier.sent[0][0] == "cancel"


def test_cancel_simulated_shipment_skips_courier(harness):
    order = harness.place().order
    harness.store.update(order.id, shipment=Shipment("SIM-ABC", simulated=True))

    harness.service.cancel_order_with_refund(order.id, "buyer-1")

    assert harness.courier.sent == []


def test_cancel_notification_failure_is_a_warning(harness):
    order = harness.place().order
    harness.notifier.fail = True

    result = harness.service.cancel_order_with_refund(order.id, "buyer-1")

    assert result.order.status == OrderStatus.CANCELLED
    assert len([w for w in result.warnings if w.startswith("NOTIFICATION_FAILED")]) == 2


def test_cancel_frees_item_for_next_buyer(harness):
    order = harness.place().order
    harness.service.cancel_order_with_refund(order.id, "buyer-1")

    again = harness.place(payment_reference="PAY-002")

    assert again.created is True
    assert again.order.id != order.id
