import pytest

from apps.orders.domain import InventoryCounters, OrderStatus
from apps.orders.errors import Forbidden, InvalidOrderState, NotFound, OrderNotCancellable
from apps.orders.shipments import simulated_tracking_number

from .support import BOOK_ID


# ---- payment confirmation ----
def test_confirm_payment_moves_order_to_pending_commit(harness):
    order = harness.place().order

    result = harness.service.confirm_payment("PAY-001")

    assert result.order.status == OrderStatus.PENDING_COMMIT
    assert result.order.payment_status == "paid"
    assert result.order.paid_at is not None
    assert harness.notifier.sent[0]["user_id"] == "seller-1"
    assert harness.notifier.sent[0]["kind"] == "commit_required"
    assert harness.notifier.sent[0]["order_id"] == order.id


def test_confirm_payment_replay_is_noop(harness):
    harness.place()
    harness.service.confirm_payment("PAY-001")

    again = harness.service.confirm_payment("PAY-001")

    assert again.order.status == OrderStatus.PENDING_COMMIT
    assert len(harness.notifier.sent) == 1


def test_failed_payment_cancels_and_releases(harness):
    harness.place()

    result = harness.service.confirm_payment("PAY-001", "failed")

    assert result.order.status == OrderStatus.CANCELLED
    assert result.order.payment_status == "failed"
    assert harness.inventory.counters(BOOK_ID) == InventoryCounters(1, 0, False)
    assert harness.payments.calls == []


def test_confirm_unknown_payment(harness):
    with pytest.raises(NotFound):
        harness.service.confirm_payment("PAY-404")


# ---- seller commit ----
def test_commit_books_simulated_shipment_when_courier_unconfigured(harness):
    order = harness.place().order
    harness.service.confirm_payment("PAY-001")

    result = harness.service.commit_order(order.id, "seller-1")

    shipped = result.order
    assert shipped.status == OrderStatus.SHIPPED
    assert shipped.committed_at is not None
    assert shipped.delivery_status == "scheduled"
    assert shipped.shipment.simulated is True
    assert shipped.tracking_number == simulated_tracking_number(order.id)
    assert any(w.startswith("SHIPMENT_PROVIDER_ERROR") for w in result.warnings)
    kinds = [n["kind"] for n in harness.notifier.sent]
    assert "order_committed" in kinds and "order_shipped" in kinds


def test_commit_with_live_courier_records_tracking(harness):
    harness.courier.shipment_response = {
        "id": 991,
        "tracking_reference": "TCG123456",
        "submission_status": "pending",
        "waybill_url": "https://labels.example/TCG123456.pdf",
    }
    order = harness.place().order

    result = harness.service.commit_order(order.id, "seller-1")

    assert result.warnings == []
    assert result.order.tracking_number == "TCG123456"
    assert result.order.shipment.shipment_id == "991"
    assert result.order.shipment.label_url.endswith("TCG123456.pdf")
    kind, payload = harness.courier.sent[0]
    assert kind == "shipments"
    assert payload["custom_tracking_reference"] == f"ORDER-{order.order_number}"
    assert payload["collection_address"]["zone"] == "GP"
    assert payload["delivery_address"]["zone"] == "WC"
    assert "delivery_pickup_point_location_id" not in payload


def test_commit_by_buyer_forbidden(harness):
    order = harness.place().order
    with pytest.raises(Forbidden):
        harness.service.commit_order(order.id, "buyer-1")


def test_commit_cancelled_order_rejected(harness):
    order = harness.place().order
    harness.service.cancel_order_with_refund(order.id, "buyer-1")

    with pytest.raises(InvalidOrderState) as e:
        harness.service.commit_order(order.id, "seller-1")
    assert str(e.value) == "INVALID_ORDER_STATE"


def test_commit_retry_books_missing_shipment(harness):
    order = harness.place().order
    harness.store.update(order.id, status=OrderStatus.COMMITTED)

    result = harness.service.commit_order(order.id, "seller-1")

    assert result.order.status == OrderStatus.SHIPPED
    assert [n["kind"] for n in harness.notifier.sent] == ["order_shipped"]


# ---- courier events ----
def _shipped(harness):
    harness.courier.shipment_response = {"id": 1, "tracking_reference": "TCG1"}
    order = harness.place().order
    return harness.service.commit_order(order.id, "seller-1").order


def test_tracking_event_updates_delivery_status_and_blocks_cancel(harness):
    order = _shipped(harness)

    result = harness.service.apply_courier_event({
        "event_type": "tracking.updated",
        "data": {"tracking_reference": "TCG1", "status": "IN_TRANSIT"},
    })

    assert result.order.delivery_status == "in transit"
    with pytest.raises(OrderNotCancellable):
        harness.service.cancel_order_with_refund(order.id, "buyer-1")


def test_delivered_event_marks_order_delivered(harness):
    _shipped(harness)

    result = harness.service.apply_courier_event({
        "type": "shipment.delivered",
        "tracking_number": "TCG1",
    })

    assert result.order.status == OrderStatus.DELIVERED
    assert result.order.delivered_at is not None
    assert harness.notifier.sent[-1]["title"] == "Your Book Has Arrived!"


def test_submission_event_sets_submitted(harness):
    _shipped(harness)

    result = harness.service.apply_courier_event({
        "event": "shipment.submitted",
        "data": {"shipment": {"tracking_number": "TCG1"}},
    })

    assert result.order.delivery_status == "submitted"


@pytest.mark.parametrize("event", [
    {"event_type": "tracking.updated", "data": {"tracking_reference": "UNKNOWN"}},
    {"event_type": "shipment.exploded", "data": {"tracking_reference": "TCG1"}},
    {"event_type": "tracking.updated", "data": {}},
])
def test_unmatched_courier_events_are_ignored(harness, event):
    _shipped(harness)
    assert harness.service.apply_courier_event(event) is None
