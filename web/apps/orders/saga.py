"""Order saga: creation, seller commit, cancellation, decline and tracking.

``OrderSagaService`` coordinates the inventory ledger, the order store, the
payment processor, the courier and the notifier. Each step talks to a
different system that can fail on its own, so every operation follows the
same policy:

- validation and authorization errors are raised before any side effect;
- inventory reservations are compensated with ``release`` when a later
  creation step fails;
- courier and notification failures are downgraded to ``warnings`` on the
  returned ``SagaResult``;
- refunds are never downgraded: ``RefundFailed`` aborts the saga.
"""

import logging
from datetime import datetime, timezone

from .domain import (
    AddressBookPort,
    AddressRef,
    CourierPort,
    CreateOrderRequest,
    DirectoryPort,
    FulfillmentType,
    InventoryCounters,
    InventoryPort,
    Locker,
    NotifierPort,
    Order,
    OrderStatus,
    OrderStorePort,
    PaymentsPort,
    Profile,
    RefundResult,
    RefundStatus,
    SagaResult,
    can_transition,
    is_cancellable,
    normalize_delivery_status,
)
from .errors import (
    Forbidden,
    InvalidOrderState,
    ItemUnavailable,
    MissingDeliveryInfo,
    NotFound,
    OrderCreationFailed,
    OrderNotCancellable,
    ProviderMismatch,
    RefundFailed,
    ValidationFailed,
)
from .shipments import ShipmentOrchestrator

logger = logging.getLogger("orders.saga")

DEFAULT_CANCEL_REASON = "Order cancelled by user"
DEFAULT_DECLINE_REASON = "Seller declined to commit"
COMMITTABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PENDING_COMMIT})
RELEASED_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.DECLINED})
TRACKING_EVENTS = frozenset({"tracking.updated", "shipment.tracking_event.created"})
SUBMISSION_EVENTS = frozenset({"shipment.created", "shipment.submitted"})
DELIVERED_EVENTS = frozenset({"shipment.delivered"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderSagaService:
    """Top-level coordinator behind the checkout and order management API.

    The service holds no per-order state: every operation re-reads the order
    it needs, so operations can be retried independently.
    """

    def __init__(
        self,
        inventory: InventoryPort,
        payments: PaymentsPort,
        courier: CourierPort,
        store: OrderStorePort,
        directory: DirectoryPort,
        address_book: AddressBookPort,
        notifier: NotifierPort,
        shipments: ShipmentOrchestrator | None = None,
        currency: str = "ZAR",
    ):
        """Initialize the service with its collaborators.

        Args:
            inventory: Inventory ledger port.
            payments: Payment processor port (refunds).
            courier: Courier port (shipment cancellation).
            store: Order persistence.
            directory: User profiles and roles.
            address_book: Saved address lookup.
            notifier: Fire-and-forget notifications.
            shipments: Shipment orchestrator; built from the other ports when omitted.
            currency: Currency recorded on new orders.
        """
        self.inventory = inventory
        self.payments = payments
        self.courier = courier
        self.store = store
        self.directory = directory
        self.address_book = address_book
        self.notifier = notifier
        self.shipments = shipments or ShipmentOrchestrator(courier, store, address_book, notifier)
        self.currency = currency

    # ---- helpers ----
    def _get_order(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise NotFound(f"order {order_id}")
        return order

    def _notify(self, warnings: list[str], user_id: str, kind: str, title: str, message: str, order_id: str | None):
        try:
            self.notifier.notify(user_id, kind, title, message, order_id=order_id)
        except Exception as e:
            logger.warning("notification failed", extra={"order_id": order_id, "user_id": user_id, "kind": kind, "error": str(e)})
            warnings.append(f"NOTIFICATION_FAILED: {kind} to {user_id}")

    def _release(self, item_id: str, previous: InventoryCounters | None, warnings: list[str] | None = None) -> bool:
        """Compensate a reservation. Failures are logged for manual reconciliation."""
        if previous is None:
            return False
        try:
            released = self.inventory.release(item_id, previous)
        except Exception as e:
            released = False
            logger.error(
                "inventory release failed",
                extra={"item_id": item_id, "previous": previous.__dict__, "error": str(e)},
            )
        else:
            if not released:
                logger.error(
                    "inventory release skipped, ledger changed concurrently",
                    extra={"item_id": item_id, "previous": previous.__dict__},
                )
        if not released and warnings is not None:
            warnings.append(f"INVENTORY_RELEASE_FAILED: {item_id}")
        return released

    def _refund(self, order: Order, reason: str) -> RefundResult | None:
        """Refund the order's payment. Returns None when nothing was captured.

        Raises:
            RefundFailed: The processor refused or could not be reached.
        """
        if not order.payment_reference or order.total_cents <= 0:
            return None
        try:
            result = self.payments.refund(order.id, order.payment_reference, order.total_cents, reason)
        except Exception as e:
            logger.error("refund call failed", extra={"order_id": order.id, "error": str(e)})
            raise RefundFailed(str(e)) from e
        if not result.success:
            logger.error("refund refused", extra={"order_id": order.id, "detail": result.message})
            raise RefundFailed(result.message)
        logger.info("refund completed", extra={"order_id": order.id, "refund_id": result.refund_id})
        return result

    @staticmethod
    def _refund_fields(refund: RefundResult | None, now: datetime) -> dict:
        if refund is None:
            return {"refund_status": RefundStatus.NOT_REQUIRED}
        return {"refund_status": RefundStatus.COMPLETED, "refund_id": refund.refund_id, "refunded_at": now}

    @staticmethod
    def _endpoint(side: str, kind: FulfillmentType, locker: Locker | None, address_ref: str | None,
                  stored_locker: Locker | None, stored_ref: str | None):
        if kind == FulfillmentType.LOCKER:
            chosen = locker or stored_locker
            if chosen is None:
                raise MissingDeliveryInfo(f"{side} locker not selected")
            return chosen
        ref = address_ref or stored_ref
        if not ref:
            raise MissingDeliveryInfo(f"{side} address not available")
        return AddressRef(ref)

    def _resolve_fulfillment(self, request: CreateOrderRequest, buyer: Profile, seller: Profile):
        pickup = self._endpoint(
            "pickup", request.pickup_type, request.pickup_locker, request.pickup_address_ref,
            seller.preferred_locker, seller.pickup_address_ref,
        )
        delivery = self._endpoint(
            "delivery", request.delivery_type, request.delivery_locker, request.delivery_address_ref,
            buyer.preferred_locker, buyer.shipping_address_ref,
        )
        if isinstance(pickup, Locker) and isinstance(delivery, Locker) and pickup.provider_slug != delivery.provider_slug:
            raise ProviderMismatch(f"{pickup.provider_slug} != {delivery.provider_slug}")
        return pickup, delivery

    # ---- operations ----
    def create_order(self, request: CreateOrderRequest) -> SagaResult:
        """Reserve the item and persist a ``pending`` order, at most once.

        Args:
            request: Buyer, seller, item, fulfillment choices and chosen quote.

        Returns:
            SagaResult: ``created`` is False when an existing order was
            returned for a retried request.

        Raises:
            NotFound: Buyer, seller or item does not exist.
            ItemUnavailable: The item is sold or out of copies.
            MissingDeliveryInfo: No locker or address for a selected side
                (the reservation is released first).
            ProviderMismatch: Locker to locker across providers (released first).
            OrderCreationFailed: The insert failed (released first).
        """
        warnings: list[str] = []

        # 1) Idempotency
        existing = None
        if request.payment_reference:
            existing = self.store.find_by_payment_reference(request.payment_reference)
        if existing is None:
            existing = self.store.find_active(request.buyer_id, request.seller_id, request.item_id)
        if existing is not None:
            logger.info("create_order replay", extra={"order_id": existing.id, "payment_reference": request.payment_reference})
            # cancelled and declined orders already gave the item back
            if existing.status not in RELEASED_STATUSES:
                try:
                    self.inventory.ensure_sold(existing.item.item_id)
                except Exception as e:
                    logger.warning("ensure_sold repair failed", extra={"order_id": existing.id, "error": str(e)})
                    warnings.append(f"ENSURE_SOLD_FAILED: {existing.item.item_id}")
            return SagaResult(order=existing, warnings=warnings, created=False)

        # 2) Snapshots
        buyer = self.directory.get_profile(request.buyer_id)
        if buyer is None:
            raise NotFound(f"buyer {request.buyer_id}")
        seller = self.directory.get_profile(request.seller_id)
        if seller is None:
            raise NotFound(f"seller {request.seller_id}")
        item = self.inventory.get_item(request.item_id)
        if item is None:
            raise NotFound(f"item {request.item_id}")

        # 3) Availability
        if not item.counters.is_available:
            raise ItemUnavailable(request.item_id)

        # 4) Reserve
        previous = self.inventory.reserve(request.item_id)

        # 5) Fulfillment shape
        try:
            pickup, delivery = self._resolve_fulfillment(request, buyer, seller)
        except (MissingDeliveryInfo, ProviderMismatch, ValidationFailed):
            self._release(request.item_id, previous)
            raise

        # 6) Insert
        shipping_cents = request.courier.cost_cents if request.courier else 0
        order = Order(
            id=None,
            buyer=buyer.contact(),
            seller=seller.contact(),
            item=item.snapshot,
            pickup=pickup,
            delivery=delivery,
            payment_reference=request.payment_reference,
            courier=request.courier,
            total_cents=item.snapshot.price_cents + shipping_cents,
            currency=self.currency,
            status=OrderStatus.PENDING,
            inventory_snapshot=previous,
        )
        try:
            stored = self.store.insert(order)
        except Exception as e:
            logger.exception("order insert failed", extra={"item_id": request.item_id})
            self._release(request.item_id, previous)
            raise OrderCreationFailed(str(e)) from e

        logger.info("order created", extra={"order_id": stored.id, "item_id": request.item_id})
        return SagaResult(order=stored, warnings=warnings, created=True)

    def confirm_payment(self, payment_reference: str, status: str = "paid") -> SagaResult:
        """Apply the payment processor's confirmation.

        ``paid`` moves ``pending -> paid -> pending_commit`` and asks the
        seller to commit. ``failed`` or ``cancelled`` cancels the pending
        order and releases the item. Replays are no-ops.

        Raises:
            NotFound: No order carries ``payment_reference``.
        """
        order = self.store.find_by_payment_reference(payment_reference)
        if order is None:
            raise NotFound(f"payment {payment_reference}")
        warnings: list[str] = []
        if order.status != OrderStatus.PENDING:
            return SagaResult(order=order, warnings=warnings)

        now = _now()
        if status in ("failed", "cancelled"):
            order = self.store.update(
                order.id, status=OrderStatus.CANCELLED, payment_status="failed",
                cancelled_at=now, cancellation_reason=f"Payment {status}",
                refund_status=RefundStatus.NOT_REQUIRED,
            )
            self._release(order.item.item_id, order.inventory_snapshot, warnings)
            self._notify(warnings, order.buyer_id, "payment_failed", "Payment Failed",
                         f"Your payment could not be processed. Status: {status}", order.id)
            return SagaResult(order=order, warnings=warnings)

        order = self.store.update(order.id, status=OrderStatus.PAID, payment_status="paid", paid_at=now)
        self._notify(warnings, order.seller_id, "commit_required", "New order to commit",
                     f"{order.item.title} was bought. Please commit to the sale.", order.id)
        order = self.store.update(order.id, status=OrderStatus.PENDING_COMMIT)
        logger.info("payment confirmed", extra={"order_id": order.id})
        return SagaResult(order=order, warnings=warnings)

    def commit_order(self, order_id: str, seller_id: str) -> SagaResult:
        """Seller commits to the sale; the shipment is booked right away.

        Raises:
            NotFound: Unknown order.
            Forbidden: Caller is not the order's seller.
            InvalidOrderState: The order cannot be committed from its status.
        """
        order = self._get_order(order_id)
        if seller_id != order.seller_id:
            raise Forbidden("only the seller can commit")
        retry = order.status == OrderStatus.COMMITTED and order.shipment is None
        if order.status not in COMMITTABLE_STATUSES and not retry:
            raise InvalidOrderState(order.status.value)

        warnings: list[str] = []
        if not retry:
            order = self.store.update(order.id, status=OrderStatus.COMMITTED, committed_at=_now())
            self._notify(warnings, order.buyer_id, "order_committed", "Order Confirmed",
                         f"The seller committed to your order for {order.item.title}.", order.id)

        result = self.shipments.create_shipment(order)
        warnings.extend(result.warnings)
        return SagaResult(order=result.order, warnings=warnings)

    def cancel_order_with_refund(self, order_id: str, actor_id: str | None, reason: str | None = None) -> SagaResult:
        """Cancel an order and refund the buyer.

        Steps: cancellability guard, authorization, best-effort courier
        cancellation, hard refund, status update, inventory release,
        notifications.

        Args:
            order_id: Order to cancel.
            actor_id: Caller; must be an admin, the buyer or the seller.
            reason: Optional reason, defaults to ``"Order cancelled by user"``.

        Returns:
            SagaResult: Cancelled order, refund outcome and warnings such as
            a failed courier cancellation.

        Raises:
            NotFound: Unknown order.
            OrderNotCancellable: The parcel already left the seller, or the
                order is in a terminal status. Checked for every caller.
            Forbidden: Caller is not allowed to cancel.
            RefundFailed: Refund not confirmed; status left unchanged.
        """
        order = self._get_order(order_id)
        if not is_cancellable(order):
            raise OrderNotCancellable(order.delivery_status or order.status.value)

        actor = self.directory.get_profile(actor_id) if actor_id else None
        if actor_id not in (order.buyer_id, order.seller_id) and not (actor and actor.is_admin):
            raise Forbidden("not a party to this order")

        reason = reason or DEFAULT_CANCEL_REASON
        warnings: list[str] = []

        # 1) Courier cancellation (best-effort)
        shipment = order.shipment
        if shipment is not None and not shipment.simulated:
            try:
                self.courier.cancel_shipment(shipment.tracking_number, reason)
            except Exception as e:
                error = getattr(e, "detail", None) or str(e) or e.__class__.__name__
                logger.warning("courier cancel failed", extra={"order_id": order.id, "error": error})
                order = self.store.update(order.id, shipment_cancel_error=error)
                warnings.append(f"SHIPMENT_CANCEL_FAILED: {error}")

        # 2) Refund (hard)
        refund = self._refund(order, reason)

        # 3) Status
        now = _now()
        order = self.store.update(
            order.id,
            status=OrderStatus.CANCELLED,
            cancellation_reason=reason,
            cancelled_at=now,
            **self._refund_fields(refund, now),
        )
        self._release(order.item.item_id, order.inventory_snapshot, warnings)

        # 4) Notifications (best-effort)
        self._notify(warnings, order.buyer_id, "order_cancelled", "Order Cancelled",
                     "Your order has been cancelled and refunded.", order.id)
        self._notify(warnings, order.seller_id, "order_cancelled", "Order Cancelled",
                     "An order has been cancelled and refunded.", order.id)

        logger.info("order cancelled", extra={"order_id": order.id, "warnings": len(warnings)})
        return SagaResult(order=order, warnings=warnings, refund=refund)

    def decline_commit(self, order_id: str, seller_id: str, reason: str | None = None) -> SagaResult:
        """Seller refuses a pending order: refund, mark declined, release the item.

        Raises:
            NotFound: Unknown order.
            Forbidden: Caller is not the order's seller.
            OrderNotCancellable: The order is no longer ``pending``.
            RefundFailed: Refund not confirmed; status left unchanged.
        """
        order = self._get_order(order_id)
        if seller_id != order.seller_id:
            raise Forbidden("only the seller can decline")
        if order.status != OrderStatus.PENDING:
            raise OrderNotCancellable(order.status.value)

        reason = reason or DEFAULT_DECLINE_REASON
        warnings: list[str] = []

        refund = self._refund(order, reason)
        now = _now()
        order = self.store.update(
            order.id,
            status=OrderStatus.DECLINED,
            decline_reason=reason,
            declined_at=now,
            **self._refund_fields(refund, now),
        )
        self._release(order.item.item_id, order.inventory_snapshot, warnings)

        refunded = "You have been refunded." if refund else ""
        self._notify(warnings, order.buyer_id, "order_declined", "Order Declined",
                     f"Your order has been declined by the seller. {refunded}".strip(), order.id)
        self._notify(warnings, order.seller_id, "order_declined", "Order Decline Confirmed",
                     "You have successfully declined the order. The buyer has been notified.", order.id)

        logger.info("order declined", extra={"order_id": order.id})
        return SagaResult(order=order, warnings=warnings, refund=refund)

    def apply_courier_event(self, event: dict) -> SagaResult | None:
        """Apply a courier webhook event to the matching order.

        Args:
            event: Parsed webhook body. The type is read from ``event_type``,
                ``type`` or ``event``; the payload from ``data`` (or the body).

        Returns:
            SagaResult for the updated order, or None when the event is
            ignored (unknown type or no matching order).
        """
        kind = event.get("event_type") or event.get("type") or event.get("event") or "unknown"
        payload = event.get("data") or event
        tracking = (
            payload.get("tracking_reference")
            or payload.get("tracking_number")
            or (payload.get("shipment") or {}).get("tracking_number")
        )
        if not tracking:
            return None
        order = self.store.find_by_tracking_number(tracking)
        if order is None:
            logger.info("courier event for unknown tracking number", extra={"tracking_number": tracking, "event": kind})
            return None

        warnings: list[str] = []
        if kind in TRACKING_EVENTS:
            status = normalize_delivery_status(payload.get("status") or payload.get("event_status")) or "in transit"
            if status == "delivered":
                return self._mark_delivered(order, warnings)
            order = self.store.update(order.id, delivery_status=status)
        elif kind in SUBMISSION_EVENTS:
            order = self.store.update(order.id, delivery_status="submitted")
        elif kind in DELIVERED_EVENTS:
            return self._mark_delivered(order, warnings)
        else:
            return None
        logger.info("courier event applied", extra={"order_id": order.id, "event": kind})
        return SagaResult(order=order, warnings=warnings)

    def _mark_delivered(self, order: Order, warnings: list[str]) -> SagaResult:
        changes = {"delivery_status": "delivered"}
        if can_transition(order.status, OrderStatus.DELIVERED):
            changes.update(status=OrderStatus.DELIVERED, delivered_at=_now())
        order = self.store.update(order.id, **changes)
        self._notify(warnings, order.buyer_id, "delivery_confirmation_needed", "Your Book Has Arrived!",
                     "Your book has been delivered. Please confirm receipt to complete the transaction.", order.id)
        return SagaResult(order=order, warnings=warnings)

    def refresh_tracking(self, order_id: str, actor_id: str | None) -> SagaResult:
        """Poll the courier for the order's shipment and record its status.

        Polling complements the courier webhook and applies the same rules:
        statuses are normalized, ``delivered`` completes the order and asks
        the buyer to confirm receipt. A failed lookup changes nothing and is
        reported as a ``TRACKING_UNAVAILABLE`` warning.

        Args:
            order_id: Order to refresh.
            actor_id: Caller; must be the buyer, the seller or an admin.

        Returns:
            SagaResult: The order and the courier snapshot in ``tracking``.

        Raises:
            NotFound: Unknown order.
            Forbidden: Caller is not a party to the order.
            InvalidOrderState: The order has no shipment yet.
        """
        order = self._get_order(order_id)
        actor = self.directory.get_profile(actor_id) if actor_id else None
        if actor_id not in (order.buyer_id, order.seller_id) and not (actor and actor.is_admin):
            raise Forbidden("not a party to this order")
        if order.shipment is None:
            raise InvalidOrderState("order has no shipment")

        warnings: list[str] = []
        tracking = self.shipments.track(order.shipment)
        if tracking.api_error:
            warnings.append(f"TRACKING_UNAVAILABLE: {tracking.api_error}")

        if tracking.status == "delivered" and order.delivery_status != "delivered":
            order = self._mark_delivered(order, warnings).order
        elif tracking.status and tracking.status != order.delivery_status:
            order = self.store.update(order.id, delivery_status=tracking.status)
            logger.info("tracking refreshed", extra={"order_id": order.id, "delivery_status": tracking.status})
        return SagaResult(order=order, warnings=warnings, tracking=tracking)
