"""Courier shipment creation and tracking for committed orders.

The orchestrator builds the shipment payload side by side: a locker side
sends only its pickup point location id, a door side sends the resolved
address object. The two are never mixed for one side, which the courier
rejects. Both contacts are always sent.

Courier failures never reach the caller: the order gets a simulated
shipment (deterministic ``SIM-`` tracking number, placeholder label, ETA in
three days) flagged so operators can reconcile it later.

Tracking lookups follow the same rule: a failed lookup returns a snapshot
without a status instead of raising.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx

from .domain import (
    AddressBookPort,
    AddressRef,
    CourierPort,
    CourierSelection,
    Locker,
    NotifierPort,
    Order,
    OrderStatus,
    OrderStorePort,
    Parcel,
    Quote,
    Shipment,
    ShipmentResult,
    TrackingEvent,
    TrackingInfo,
    can_transition,
    normalize_delivery_status,
)
from .errors import MissingDeliveryInfo, ShipmentProviderError, ValidationFailed
from .rates import address_payload, parcel_payload

logger = logging.getLogger("orders.shipments")

SHIPMENT_TIMEOUT_MS = 20000
SIMULATED_ETA_DAYS = 3
PLACEHOLDER_MOBILE = "+27000000000"


def simulated_tracking_number(order_id: str) -> str:
    return "SIM-" + hashlib.sha1(str(order_id).encode("utf-8")).hexdigest()[:10].upper()


def _parse_dt(value) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_tracking(data, tracking_number: str) -> TrackingInfo:
    """Map a ``GET /tracking`` response (a list or a single shipment) to ``TrackingInfo``.

    Raises:
        ShipmentProviderError: The response holds no shipment.
    """
    shipment = data[0] if isinstance(data, list) and data else data
    if not isinstance(shipment, dict):
        raise ShipmentProviderError("no tracking data returned")
    events = tuple(
        TrackingEvent(
            status=normalize_delivery_status(cp.get("status")),
            description=cp.get("message") or cp.get("status_friendly") or cp.get("status") or "",
            location=cp.get("location") or cp.get("city") or "",
            timestamp=cp.get("time"),
        )
        for cp in shipment.get("checkpoints") or []
        if isinstance(cp, dict)
    )
    status = normalize_delivery_status(shipment.get("status"))
    return TrackingInfo(
        tracking_number=shipment.get("shipment_tracking_reference") or tracking_number,
        status=status,
        status_friendly=shipment.get("status_friendly") or shipment.get("status") or "Status Unknown",
        current_location=(events[0].location if events else "") or "Unknown",
        events=events,
    )


class ShipmentOrchestrator:
    """Create courier shipments and record them on orders.

    Args:
        courier: Courier port.
        store: Order store updated with the shipment.
        address_book: Resolves door-side address references.
        notifier: Used to tell the buyer the order shipped.
        label_base_url: Base URL for placeholder labels of simulated shipments.
    """

    def __init__(
        self,
        courier: CourierPort,
        store: OrderStorePort,
        address_book: AddressBookPort,
        notifier: NotifierPort,
        label_base_url: str = "https://labels.invalid/simulated",
    ):
        self.courier = courier
        self.store = store
        self.address_book = address_book
        self.notifier = notifier
        self.label_base_url = label_base_url.rstrip("/")

    def _side_payload(self, side: str, endpoint, contact) -> dict:
        out = {}
        if isinstance(endpoint, Locker):
            out[f"{side}_pickup_point_location_id"] = endpoint.location_id
        elif isinstance(endpoint, AddressRef):
            address = self.address_book.resolve(endpoint.ref)
            if address is None:
                raise MissingDeliveryInfo(f"{side} address {endpoint.ref} not found")
            out[f"{side}_address"] = address_payload(address, zone_len=3)
        else:
            raise ValidationFailed(f"{side} endpoint")
        out[f"{side}_contact_name"] = contact.full_name or ("Seller" if side == "collection" else "Buyer")
        out[f"{side}_contact_mobile_number"] = contact.phone or PLACEHOLDER_MOBILE
        out[f"{side}_contact_email"] = contact.email
        return out

    def build_payload(self, order: Order, selection: CourierSelection) -> dict:
        """Build the ``POST /shipments`` body for an order.

        Raises:
            MissingDeliveryInfo: A door side's address reference cannot be resolved.
        """
        parcel = Parcel(value=Decimal(max(order.item.price_cents, 0)) / 100 or Decimal("100"))
        payload = {
            "parcels": [parcel_payload(parcel)],
            "service_level_code": selection.service_level_code,
            "provider_slug": selection.provider_slug,
            "declared_value": float(parcel.value),
            "timeout": SHIPMENT_TIMEOUT_MS,
            "custom_tracking_reference": f"ORDER-{order.order_number or order.id}",
        }
        payload.update(self._side_payload("collection", order.pickup, order.seller))
        payload.update(self._side_payload("delivery", order.delivery, order.buyer))
        for endpoint in (order.pickup, order.delivery):
            if isinstance(endpoint, Locker):
                payload.setdefault("pickup_point_provider_slug", endpoint.provider_slug)
        return payload

    def _simulated(self, order: Order, error: str, now: datetime) -> Shipment:
        tracking = simulated_tracking_number(order.id)
        return Shipment(
            tracking_number=tracking,
            submission_status="simulated",
            label_url=f"{self.label_base_url}/{tracking}.pdf",
            delivery_eta=now + timedelta(days=SIMULATED_ETA_DAYS),
            simulated=True,
            error=error,
        )

    def create_shipment(self, order: Order, quote: Quote | CourierSelection | None = None) -> ShipmentResult:
        """Create the shipment for ``order`` and mark it shipped.

        Args:
            order: A committed order.
            quote: The chosen quote; defaults to the selection stored on the order.

        Returns:
            ShipmentResult: Shipment (real or simulated), updated order and warnings.

        Raises:
            ValidationFailed: No courier selection is available.
            MissingDeliveryInfo: A door-side address cannot be resolved.
        """
        if isinstance(quote, Quote):
            selection = CourierSelection.from_quote(quote)
        else:
            selection = quote or order.courier
        if selection is None or not selection.provider_slug or not selection.service_level_code:
            raise ValidationFailed("no courier selected for order")

        payload = self.build_payload(order, selection)
        now = datetime.now(timezone.utc)
        warnings: list[str] = []

        try:
            data = self.courier.create_shipment(payload)
            tracking = (data or {}).get("tracking_reference")
            if not tracking:
                raise ShipmentProviderError("response without tracking_reference")
            shipment = Shipment(
                tracking_number=tracking,
                shipment_id=str(data["id"]) if data.get("id") is not None else None,
                submission_status=data.get("submission_status") or "submitted",
                label_url=data.get("waybill_url") or data.get("label_url"),
                collection_eta=_parse_dt(data.get("collection_date")),
                delivery_eta=_parse_dt(data.get("delivery_date"))
                or now + timedelta(days=SIMULATED_ETA_DAYS),
            )
        except (ShipmentProviderError, httpx.HTTPError, RuntimeError, ValueError) as e:
            error = ShipmentProviderError(getattr(e, "detail", None) or str(e) or e.__class__.__name__)
            logger.warning(
                "shipment creation failed, simulated shipment",
                extra={"order_id": order.id, "error": error.detail, "code": str(error)},
            )
            shipment = self._simulated(order, error.detail, now)
            warnings.append(f"{error}: {error.detail}")

        changes = {"shipment": shipment, "courier": selection, "delivery_status": "scheduled"}
        if can_transition(order.status, OrderStatus.SHIPPED):
            changes.update(status=OrderStatus.SHIPPED, shipped_at=now)
        updated = self.store.update(order.id, **changes)
        logger.info(
            "shipment recorded",
            extra={"order_id": order.id, "tracking_number": shipment.tracking_number, "simulated": shipment.simulated},
        )

        try:
            self.notifier.notify(
                order.buyer_id,
                "order_shipped",
                "Your order is on its way",
                f"{order.item.title} has been booked with the courier. Tracking number: {shipment.tracking_number}.",
                order_id=order.id,
            )
        except Exception as e:
            logger.warning("buyer shipment notification failed", extra={"order_id": order.id, "error": str(e)})
            warnings.append(f"NOTIFICATION_FAILED: {e}")

        return ShipmentResult(shipment=shipment, order=updated, warnings=warnings)

    def track(self, shipment: Shipment) -> TrackingInfo:
        """Ask the courier where a shipment is.

        Simulated shipments and courier failures yield a ``simulated``
        snapshot with no status, so callers never overwrite a known delivery
        status with a guess.
        """
        if shipment.simulated:
            return TrackingInfo(tracking_number=shipment.tracking_number, status=None, simulated=True)
        try:
            return parse_tracking(self.courier.track(shipment.tracking_number), shipment.tracking_number)
        except (ShipmentProviderError, httpx.HTTPError, RuntimeError, ValueError) as e:
            error = getattr(e, "detail", None) or str(e) or e.__class__.__name__
            logger.warning("tracking lookup failed", extra={"tracking_number": shipment.tracking_number, "error": error})
            return TrackingInfo(tracking_number=shipment.tracking_number, status=None, simulated=True, api_error=error)
