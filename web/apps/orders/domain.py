"""Domain models, ports and lifecycle rules for marketplace orders.

This module contains the dataclasses exchanged between the saga, the rate
aggregator and the shipment orchestrator, the protocol definitions (ports)
for every external collaborator (inventory ledger, payment processor,
courier, order store, user directory, address book, notifier) and the
order state machine. It performs no I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol, Union

from .errors import ValidationFailed


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of an order.

    Happy path is ``pending -> paid -> pending_commit -> committed ->
    shipped -> delivered``. ``cancelled`` and ``declined`` are reached only
    through the refund sagas.
    """

    PENDING = "pending"
    PAID = "paid"
    PENDING_COMMIT = "pending_commit"
    COMMITTED = "committed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DECLINED = "declined"


class FulfillmentType(str, Enum):
    """How a parcel leaves the seller or reaches the buyer."""

    DOOR = "door"
    LOCKER = "locker"


class RefundStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    COMPLETED = "completed"


ACTIVE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PENDING_COMMIT,
    OrderStatus.COMMITTED,
})

TERMINAL_STATUSES = frozenset({
    OrderStatus.CANCELLED,
    OrderStatus.DECLINED,
    OrderStatus.DELIVERED,
})

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PAID, OrderStatus.COMMITTED, OrderStatus.CANCELLED, OrderStatus.DECLINED,
    }),
    OrderStatus.PAID: frozenset({
        OrderStatus.PENDING_COMMIT, OrderStatus.COMMITTED, OrderStatus.CANCELLED,
    }),
    OrderStatus.PENDING_COMMIT: frozenset({OrderStatus.COMMITTED, OrderStatus.CANCELLED}),
    OrderStatus.COMMITTED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.DECLINED: frozenset(),
}

# Once the courier holds the parcel the order can no longer be unwound.
HANDOFF_STATUSES = frozenset({"collected", "in transit", "out for delivery", "delivered"})


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Address:
    """A resolved street address, as sent to the courier.

    Attributes:
        street_address: Street and number.
        city: City or town.
        province: Province name or zone code, normalized when building
            courier payloads.
        postal_code: Postal code.
        local_area: Suburb; the city is used when empty.
        company: Optional company name.
        country: ISO country code.
    """

    street_address: str
    city: str
    province: str
    postal_code: str
    local_area: str = ""
    company: str = ""
    country: str = "ZA"

    @property
    def kind(self) -> FulfillmentType:
        return FulfillmentType.DOOR


@dataclass(frozen=True)
class AddressRef:
    """Opaque reference to an address held by the address book."""

    ref: str

    def __post_init__(self):
        if not self.ref:
            raise ValidationFailed("address reference is empty")

    @property
    def kind(self) -> FulfillmentType:
        return FulfillmentType.DOOR


@dataclass(frozen=True)
class Locker:
    """A parcel locker identified by a provider specific location id."""

    location_id: str
    provider_slug: str

    def __post_init__(self):
        if not self.location_id or not self.provider_slug:
            raise ValidationFailed("locker needs location_id and provider_slug")

    @property
    def kind(self) -> FulfillmentType:
        return FulfillmentType.LOCKER


# Quote requests carry resolved addresses, stored orders carry references.
CollectionPoint = Union[Address, Locker]
Endpoint = Union[AddressRef, Locker]


@dataclass(frozen=True)
class Parcel:
    """Physical parcel description; defaults fit a single textbook."""

    weight_kg: float = 1.0
    length_cm: float = 25.0
    width_cm: float = 20.0
    height_cm: float = 3.0
    value: Decimal = Decimal("100")
    description: str = "Book"


@dataclass(frozen=True)
class QuoteRequest:
    """Normalized quote request.

    Attributes:
        collection: Where the courier collects the parcel.
        delivery: Where the courier delivers the parcel.
        parcels: Parcels to ship; a single default parcel when empty.
        declared_value: Insured value; defaults to the sum of parcel values.
        providers: Optional courier provider filter.
        service_levels: Optional service level filter.
    """

    collection: CollectionPoint
    delivery: CollectionPoint
    parcels: tuple[Parcel, ...] = (Parcel(),)
    declared_value: Decimal | None = None
    providers: tuple[str, ...] = ()
    service_levels: tuple[str, ...] = ()

    @property
    def total_weight_kg(self) -> float:
        return sum(p.weight_kg for p in self.parcels) if self.parcels else 1.0


@dataclass(frozen=True)
class Quote:
    """A normalized courier rate. ``cost`` already includes platform markup."""

    provider_slug: str
    provider_name: str
    service_level_code: str
    service_name: str
    cost: Decimal
    transit_days: int
    currency: str = "ZAR"
    cost_excl_vat: Decimal | None = None
    service_description: str = ""
    features: tuple[str, ...] = ("Tracking included",)
    collection_cutoff: str | None = None
    collection_date: str | None = None
    delivery_date: str | None = None
    rate_id: str | None = None
    simulated: bool = False
    api_error: str | None = None

    @property
    def cost_cents(self) -> int:
        return int((self.cost * 100).to_integral_value())


@dataclass(frozen=True)
class CourierSelection:
    """The quote the buyer picked, stored on the order by value."""

    provider_slug: str
    service_level_code: str
    cost_cents: int
    provider_name: str = ""
    service_name: str = ""

    @classmethod
    def from_quote(cls, quote: Quote) -> "CourierSelection":
        return cls(
            provider_slug=quote.provider_slug,
            service_level_code=quote.service_level_code,
            cost_cents=quote.cost_cents,
            provider_name=quote.provider_name,
            service_name=quote.service_name,
        )


@dataclass(frozen=True)
class InventoryCounters:
    """The three ledger fields the saga is allowed to touch."""

    available_quantity: int
    sold_quantity: int
    sold: bool

    @property
    def is_available(self) -> bool:
        return not self.sold and self.available_quantity >= 1


@dataclass(frozen=True)
class ItemSnapshot:
    """Immutable copy of the catalog item taken when the order is created."""

    item_id: str
    title: str
    price_cents: int
    condition: str = ""
    author: str = ""


@dataclass(frozen=True)
class CatalogItem:
    """Live catalog item as reported by the inventory ledger."""

    snapshot: ItemSnapshot
    counters: InventoryCounters


@dataclass(frozen=True)
class PartyContact:
    """Buyer or seller contact details denormalized onto the order."""

    user_id: str
    full_name: str = ""
    email: str = ""
    phone: str = ""


@dataclass(frozen=True)
class Profile:
    """User directory entry with fulfillment preferences.

    Attributes:
        user_id: Opaque user id.
        full_name: Display name.
        email: Contact email.
        phone: Contact mobile number.
        role: ``user``, ``admin`` or ``super_admin``.
        pickup_address_ref: Saved address used when this user ships.
        shipping_address_ref: Saved address used when this user receives.
        preferred_locker: Saved locker, if any.
    """

    user_id: str
    full_name: str = ""
    email: str = ""
    phone: str = ""
    role: str = "user"
    pickup_address_ref: str | None = None
    shipping_address_ref: str | None = None
    preferred_locker: Locker | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super_admin")

    def contact(self) -> PartyContact:
        return PartyContact(self.user_id, self.full_name, self.email, self.phone)


@dataclass(frozen=True)
class Shipment:
    """Shipment metadata embedded in an order.

    ``simulated`` marks a stand-in produced while the courier was
    unreachable; ``error`` keeps the provider failure text for operators.
    """

    tracking_number: str
    shipment_id: str | None = None
    submission_status: str | None = None
    label_url: str | None = None
    collection_eta: datetime | None = None
    delivery_eta: datetime | None = None
    simulated: bool = False
    error: str | None = None


@dataclass(frozen=True)
class TrackingEvent:
    status: str | None
    description: str = ""
    location: str = ""
    timestamp: str | None = None


@dataclass(frozen=True)
class TrackingInfo:
    """Courier tracking snapshot for one shipment.

    Attributes:
        tracking_number: Courier tracking reference.
        status: Normalized status (see ``normalize_delivery_status``), None
            when the courier could not be asked.
        status_friendly: Display text from the courier.
        current_location: Location of the latest checkpoint.
        events: Checkpoints, newest first.
        simulated: True when no live courier data was used.
        api_error: Courier failure text, when there was one.
    """

    tracking_number: str
    status: str | None
    status_friendly: str = "Status Unknown"
    current_location: str = "Unknown"
    events: tuple[TrackingEvent, ...] = ()
    simulated: bool = False
    api_error: str | None = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_id: str | None = None
    amount_cents: int = 0
    message: str | None = None


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Persistent identifier, or None before insertion.
        buyer: Buyer contact snapshot.
        seller: Seller contact snapshot.
        item: Item snapshot at creation time.
        pickup: Collection endpoint (address reference XOR locker).
        delivery: Delivery endpoint (address reference XOR locker).
        payment_reference: Processor supplied idempotency key.
        courier: Chosen quote, by value.
        total_cents: Item price plus shipping, in cents.
        currency: ISO currency code.
        status: Current lifecycle status.
        inventory_snapshot: Ledger counters captured before reservation,
            used to release the item later.
    """

    id: str | None
    buyer: PartyContact
    seller: PartyContact
    item: ItemSnapshot
    pickup: Endpoint
    delivery: Endpoint
    payment_reference: str | None = None
    order_number: str | None = None
    courier: CourierSelection | None = None
    total_cents: int = 0
    currency: str = "ZAR"
    status: OrderStatus = OrderStatus.PENDING
    payment_status: str | None = None
    delivery_status: str | None = None
    inventory_snapshot: InventoryCounters | None = None
    shipment: Shipment | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    refund_status: RefundStatus | None = None
    refund_id: str | None = None
    refunded_at: datetime | None = None
    shipment_cancel_error: str | None = None
    decline_reason: str | None = None
    declined_at: datetime | None = None
    paid_at: datetime | None = None
    committed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime | None = None

    def __post_init__(self):
        # exactly one of {address reference, locker} per side
        for side in ("pickup", "delivery"):
            if not isinstance(getattr(self, side), (AddressRef, Locker)):
                raise ValidationFailed(f"{side} must be an address reference or a locker")

    @property
    def buyer_id(self) -> str:
        return self.buyer.user_id

    @property
    def seller_id(self) -> str:
        return self.seller.user_id

    @property
    def pickup_type(self) -> FulfillmentType:
        return self.pickup.kind

    @property
    def delivery_type(self) -> FulfillmentType:
        return self.delivery.kind

    @property
    def tracking_number(self) -> str | None:
        return self.shipment.tracking_number if self.shipment else None


@dataclass
class ShipmentResult:
    """Outcome of ``ShipmentOrchestrator.create_shipment``.

    Attributes:
        shipment: The real or simulated shipment recorded on the order.
        order: The order after the store update.
        warnings: Recoverable problems (courier failure, notification failure).
    """

    shipment: Shipment
    order: Order
    warnings: list[str] = field(default_factory=list)

    @property
    def simulated(self) -> bool:
        return self.shipment.simulated


@dataclass(frozen=True)
class CreateOrderRequest:
    """Input of ``OrderSagaService.create_order``.

    Lockers and address references are optional: when absent the buyer's
    (delivery side) or seller's (pickup side) stored preference is used.
    """

    buyer_id: str
    seller_id: str
    item_id: str
    payment_reference: str | None = None
    delivery_type: FulfillmentType = FulfillmentType.DOOR
    pickup_type: FulfillmentType = FulfillmentType.DOOR
    delivery_locker: Locker | None = None
    pickup_locker: Locker | None = None
    delivery_address_ref: str | None = None
    pickup_address_ref: str | None = None
    courier: CourierSelection | None = None


@dataclass
class SagaResult:
    """Outcome of a saga operation.

    Attributes:
        order: The order as persisted after the operation.
        warnings: Recoverable problems (courier cancel failure, notification
            failure, simulated shipment...). Never raised.
        refund: Refund outcome, when a refund was attempted.
        created: True when ``create_order`` inserted a new row.
        tracking: Courier tracking snapshot from ``refresh_tracking``.
    """

    order: Order
    warnings: list[str] = field(default_factory=list)
    refund: RefundResult | None = None
    created: bool = False
    tracking: TrackingInfo | None = None


# ---- Lifecycle rules ----
def can_transition(src: OrderStatus, dst: OrderStatus) -> bool:
    return dst in TRANSITIONS.get(src, frozenset())


def normalize_delivery_status(value: str | None) -> str | None:
    """Lower-case a courier tracking status and turn ``_``/``-`` into spaces.

    ``"IN_TRANSIT"`` and ``"out-for-delivery"`` become ``"in transit"`` and
    ``"out for delivery"``.
    """
    if not value:
        return None
    cleaned = value.strip().lower().replace("_", " ").replace("-", " ")
    return " ".join(cleaned.split())


def is_cancellable(order: Order) -> bool:
    """Return True while no physical handoff happened and a cancel transition exists."""
    if order.status.value in HANDOFF_STATUSES:
        return False
    if normalize_delivery_status(order.delivery_status) in HANDOFF_STATUSES:
        return False
    return can_transition(order.status, OrderStatus.CANCELLED)


# ---- Ports (DIP) ----
class InventoryPort(Protocol):
    """Port describing the inventory ledger operations used by the saga."""

    def get_item(self, item_id: str) -> CatalogItem | None:
        """Return the live catalog item, or None when it does not exist."""
        raise NotImplementedError()

    def reserve(self, item_id: str) -> InventoryCounters:
        """Atomically take the item off the market.

        Args:
            item_id: Catalog item id.

        Returns:
            InventoryCounters: The counters as they were before reserving,
            to be handed back to ``release`` as a compensation.

        Raises:
            ItemUnavailable: If the item is sold or has no quantity left.
        """
        raise NotImplementedError()

    def release(self, item_id: str, previous: InventoryCounters) -> bool:
        """Restore the counters captured by ``reserve``.

        Returns:
            True when restored, False when the item changed concurrently
            and was left untouched.
        """
        raise NotImplementedError()

    def ensure_sold(self, item_id: str) -> None:
        """Mark the item sold if an existing order references it but it is not."""
        raise NotImplementedError()


class PaymentsPort(Protocol):
    """Port describing the payment processor refund operation."""

    def refund(self, order_id: str, payment_reference: str, amount_cents: int, reason: str) -> RefundResult:
        """Refund a captured payment.

        Args:
            order_id: Order the payment belongs to (used as idempotency key).
            payment_reference: Processor reference of the original payment.
            amount_cents: Amount to refund in cents.
            reason: Free text reason forwarded to the processor.

        Returns:
            RefundResult: ``success`` False when the processor refused.

        Raises:
            NotImplementedError: If the method is not implemented by the
                concrete class.
        """
        raise NotImplementedError()


class CourierPort(Protocol):
    """Port describing the courier API operations consumed."""

    def quote(self, payload: dict) -> dict:
        raise NotImplementedError()

    def create_shipment(self, payload: dict) -> dict:
        raise NotImplementedError()

    def cancel_shipment(self, tracking_reference: str, reason: str) -> dict:
        raise NotImplementedError()

    def track(self, tracking_reference: str) -> dict | list:
        raise NotImplementedError()


class OrderStorePort(Protocol):
    """Port describing order persistence."""

    def get(self, order_id: str) -> Order | None:
        raise NotImplementedError()

    def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        raise NotImplementedError()

    def find_active(self, buyer_id: str, seller_id: str, item_id: str) -> Order | None:
        raise NotImplementedError()

    def find_by_tracking_number(self, tracking_number: str) -> Order | None:
        raise NotImplementedError()

    def insert(self, order: Order) -> Order:
        """Persist a new order and return it with ``id`` and ``order_number`` set."""
        raise NotImplementedError()

    def update(self, order_id: str, **changes) -> Order:
        """Apply field changes (``Order`` attribute names) and return the fresh order."""
        raise NotImplementedError()


class DirectoryPort(Protocol):
    def get_profile(self, user_id: str) -> Profile | None:
        raise NotImplementedError()


class AddressBookPort(Protocol):
    def resolve(self, ref: str) -> Address | None:
        raise NotImplementedError()


class NotifierPort(Protocol):
    """Fire-and-forget notifications to marketplace users."""

    def notify(self, user_id: str, kind: str, title: str, message: str, order_id: str | None = None) -> None:
        raise NotImplementedError()
