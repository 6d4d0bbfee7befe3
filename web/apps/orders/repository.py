"""Repository layer for persisting orders and reading user data.

This module maps the domain dataclasses onto the Django ORM models. It
keeps a thin interface (the ``OrderStorePort``, ``DirectoryPort``,
``AddressBookPort`` and ``NotifierPort`` protocols) so the saga is not
coupled to ORM details: every method takes and returns domain objects.
"""

import dataclasses
import logging
import uuid
from datetime import datetime

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .domain import (
    Address,
    AddressRef,
    CourierSelection,
    FulfillmentType,
    InventoryCounters,
    ItemSnapshot,
    Locker,
    Order,
    OrderStatus,
    PartyContact,
    Profile as ProfileDTO,
    RefundStatus,
    Shipment,
)
from .errors import NotFound
from .models import OrderModel, OrderNotification, Profile, SavedAddress

logger = logging.getLogger("orders.repository")

SHIPMENT_DATETIME_FIELDS = ("collection_eta", "delivery_eta")


def _dump_shipment(shipment: Shipment | None) -> dict | None:
    if shipment is None:
        return None
    data = dataclasses.asdict(shipment)
    for key in SHIPMENT_DATETIME_FIELDS:
        if data[key] is not None:
            data[key] = data[key].isoformat()
    return data


def _load_shipment(data: dict | None) -> Shipment | None:
    if not data:
        return None
    data = dict(data)
    for key in SHIPMENT_DATETIME_FIELDS:
        if data.get(key):
            data[key] = datetime.fromisoformat(data[key])
    return Shipment(**data)


def _endpoint(address_ref: str | None, locker_id: str | None, provider: str | None):
    if locker_id:
        return Locker(locker_id, provider or "")
    return AddressRef(address_ref or "")


def _write_endpoint(obj: OrderModel, side: str, endpoint) -> None:
    is_locker = isinstance(endpoint, Locker)
    setattr(obj, f"{side}_type", FulfillmentType.LOCKER.value if is_locker else FulfillmentType.DOOR.value)
    setattr(obj, f"{side}_address_ref", None if is_locker else endpoint.ref)
    setattr(obj, f"{side}_locker_id", endpoint.location_id if is_locker else None)
    setattr(obj, f"{side}_locker_provider", endpoint.provider_slug if is_locker else None)


def to_domain(obj: OrderModel) -> Order:
    """Rebuild a domain ``Order`` from its row."""
    snapshot = obj.inventory_snapshot
    return Order(
        id=str(obj.id),
        buyer=PartyContact(obj.buyer_id, obj.buyer_name, obj.buyer_email, obj.buyer_phone),
        seller=PartyContact(obj.seller_id, obj.seller_name, obj.seller_email, obj.seller_phone),
        item=ItemSnapshot(obj.item_id, obj.item_title, obj.item_price_cents, obj.item_condition, obj.item_author),
        pickup=_endpoint(obj.pickup_address_ref, obj.pickup_locker_id, obj.pickup_locker_provider),
        delivery=_endpoint(obj.delivery_address_ref, obj.delivery_locker_id, obj.delivery_locker_provider),
        payment_reference=obj.payment_reference,
        order_number=obj.order_number,
        courier=CourierSelection(**obj.courier) if obj.courier else None,
        total_cents=obj.total_cents,
        currency=obj.currency,
        status=OrderStatus(obj.status),
        payment_status=obj.payment_status,
        delivery_status=obj.delivery_status,
        inventory_snapshot=InventoryCounters(**snapshot) if snapshot else None,
        shipment=_load_shipment(obj.shipment),
        cancellation_reason=obj.cancellation_reason,
        cancelled_at=obj.cancelled_at,
        refund_status=RefundStatus(obj.refund_status) if obj.refund_status else None,
        refund_id=obj.refund_id,
        refunded_at=obj.refunded_at,
        shipment_cancel_error=obj.shipment_cancel_error,
        decline_reason=obj.decline_reason,
        declined_at=obj.declined_at,
        paid_at=obj.paid_at,
        committed_at=obj.committed_at,
        shipped_at=obj.shipped_at,
        delivered_at=obj.delivered_at,
        created_at=obj.created_at,
    )


def _write(obj: OrderModel, order: Order) -> None:
    obj.buyer_id, obj.buyer_name, obj.buyer_email, obj.buyer_phone = dataclasses.astuple(order.buyer)
    obj.seller_id, obj.seller_name, obj.seller_email, obj.seller_phone = dataclasses.astuple(order.seller)
    obj.item_id = order.item.item_id
    obj.item_title = order.item.title
    obj.item_price_cents = order.item.price_cents
    obj.item_condition = order.item.condition
    obj.item_author = order.item.author
    _write_endpoint(obj, "pickup", order.pickup)
    _write_endpoint(obj, "delivery", order.delivery)
    obj.payment_reference = order.payment_reference
    obj.courier = dataclasses.asdict(order.courier) if order.courier else None
    obj.total_cents = order.total_cents
    obj.currency = order.currency
    obj.status = order.status.value
    obj.payment_status = order.payment_status
    obj.delivery_status = order.delivery_status
    obj.inventory_snapshot = dataclasses.asdict(order.inventory_snapshot) if order.inventory_snapshot else None
    obj.shipment = _dump_shipment(order.shipment)
    obj.tracking_number = order.tracking_number
    obj.cancellation_reason = order.cancellation_reason
    obj.cancelled_at = order.cancelled_at
    obj.refund_status = order.refund_status.value if order.refund_status else None
    obj.refund_id = order.refund_id
    obj.refunded_at = order.refunded_at
    obj.shipment_cancel_error = order.shipment_cancel_error
    obj.decline_reason = order.decline_reason
    obj.declined_at = order.declined_at
    obj.paid_at = order.paid_at
    obj.committed_at = order.committed_at
    obj.shipped_at = order.shipped_at
    obj.delivered_at = order.delivered_at


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM.

    Uniqueness of ``payment_reference`` and of the active
    (buyer, seller, item) triple is enforced by the database; a violation
    surfaces as ``ValueError`` so the saga can compensate.
    """

    def get(self, order_id: str) -> Order | None:
        try:
            uuid.UUID(str(order_id))
        except ValueError:
            return None
        obj = OrderModel.objects.filter(id=order_id).first()
        return to_domain(obj) if obj else None

    def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        obj = OrderModel.objects.filter(payment_reference=payment_reference).first()
        return to_domain(obj) if obj else None

    def find_active(self, buyer_id: str, seller_id: str, item_id: str) -> Order | None:
        obj = OrderModel.objects.filter(
            buyer_id=buyer_id, seller_id=seller_id, item_id=item_id, status__in=OrderModel.ACTIVE,
        ).first()
        return to_domain(obj) if obj else None

    def find_by_tracking_number(self, tracking_number: str) -> Order | None:
        obj = OrderModel.objects.filter(tracking_number=tracking_number).first()
        return to_domain(obj) if obj else None

    def list_for_user(self, user_id: str | None, include_all: bool = False):
        """Return a queryset of the user's orders (as buyer or seller), newest first."""
        qs = OrderModel.objects.order_by("-created_at")
        if include_all:
            return qs
        return qs.filter(Q(buyer_id=user_id) | Q(seller_id=user_id))

    def insert(self, order: Order) -> Order:
        """Persist a new order record.

        Args:
            order: Domain order with ``id`` None.

        Returns:
            Order: The stored order with ``id``, ``order_number`` and
            ``created_at`` set.

        Raises:
            ValueError: A uniqueness constraint was violated.
        """
        obj = OrderModel(id=uuid.uuid4())
        _write(obj, order)
        obj.order_number = order.order_number or f"ORD-{timezone.now():%Y%m%d}-{obj.id.hex[:8].upper()}"
        try:
            with transaction.atomic():
                obj.save()
        except IntegrityError as e:
            logger.warning("order insert rejected", extra={"item_id": order.item.item_id, "error": str(e)})
            raise ValueError("DUPLICATE_ORDER") from e
        return to_domain(obj)

    def update(self, order_id: str, **changes) -> Order:
        with transaction.atomic():
            obj = OrderModel.objects.select_for_update().filter(id=order_id).first()
            if obj is None:
                raise NotFound(f"order {order_id}")
            order = dataclasses.replace(to_domain(obj), **changes)
            _write(obj, order)
            obj.save()
        return to_domain(obj)


class DjangoDirectory:
    """``DirectoryPort`` backed by the ``profiles`` table."""

    def get_profile(self, user_id: str) -> ProfileDTO | None:
        obj = Profile.objects.filter(user_id=user_id).first()
        if obj is None:
            return None
        locker = None
        if obj.preferred_locker_id and obj.preferred_locker_provider:
            locker = Locker(obj.preferred_locker_id, obj.preferred_locker_provider)
        return ProfileDTO(
            user_id=obj.user_id,
            full_name=obj.full_name,
            email=obj.email,
            phone=obj.phone,
            role=obj.role,
            pickup_address_ref=obj.pickup_address_ref,
            shipping_address_ref=obj.shipping_address_ref,
            preferred_locker=locker,
        )


class DjangoAddressBook:
    """``AddressBookPort`` resolving saved address ids."""

    def resolve(self, ref: str) -> Address | None:
        try:
            uuid.UUID(str(ref))
        except ValueError:
            return None
        obj = SavedAddress.objects.filter(id=ref).first()
        if obj is None:
            return None
        return Address(
            street_address=obj.street_address,
            city=obj.city,
            province=obj.province,
            postal_code=obj.postal_code,
            local_area=obj.local_area,
            company=obj.company,
            country=obj.country,
        )


class DjangoNotifier:
    """``NotifierPort`` writing in-app notifications."""

    def notify(self, user_id: str, kind: str, title: str, message: str, order_id: str | None = None) -> None:
        OrderNotification.objects.create(
            user_id=user_id, order_id=order_id, kind=kind, title=title, message=message,
        )
