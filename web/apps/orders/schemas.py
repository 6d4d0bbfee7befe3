"""Pydantic schemas for the orders API.

Request schemas validate field types and bounds and convert to domain
dataclasses through ``to_domain()``. Cross-field rules that have their own
error code (an address XOR a locker per side) are checked in
``to_domain()`` and raise domain errors, so pydantic does not fold them into
a generic validation error.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .domain import (
    Address,
    CourierSelection,
    CreateOrderRequest,
    FulfillmentType,
    Locker,
    Order,
    Parcel,
    Quote,
    QuoteRequest,
    TrackingInfo,
)
from .errors import ValidationFailed

POSTAL_CODE_RE = re.compile(r"^[0-9A-Za-z -]{3,10}$")


class AddressIn(BaseModel):
    street_address: str = Field(min_length=1, max_length=300)
    city: str = Field(min_length=1, max_length=120)
    province: str = Field(min_length=1, max_length=120)
    postal_code: str
    local_area: str = ""
    company: str = ""
    country: str = Field(default="ZA", min_length=2, max_length=2)

    @field_validator("postal_code")
    @classmethod
    def validate_postal_code(cls, v: str) -> str:
        """Validate the postal code shape.

        Raises:
            ValueError: When the code contains unexpected characters.
        """
        v2 = v.strip()
        if not POSTAL_CODE_RE.match(v2):
            raise ValueError("Invalid postal code")
        return v2

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


class LockerIn(BaseModel):
    location_id: str = Field(min_length=1, max_length=64)
    provider_slug: str = Field(min_length=1, max_length=64)

    def to_domain(self) -> Locker:
        return Locker(self.location_id, self.provider_slug)


class ParcelIn(BaseModel):
    weight_kg: float = Field(default=1.0, gt=0, le=70)
    length_cm: float = Field(default=25.0, gt=0)
    width_cm: float = Field(default=20.0, gt=0)
    height_cm: float = Field(default=3.0, gt=0)
    value: Decimal = Field(default=Decimal("100"), ge=0)
    description: str = "Book"

    def to_domain(self) -> Parcel:
        return Parcel(**self.model_dump())


class QuoteRequestIn(BaseModel):
    """Rate request body.

    Attributes:
        collection_address: Seller's street address (door pickup).
        collection_locker: Seller drops the parcel at this locker.
        delivery_address: Buyer's street address (door delivery).
        delivery_locker: Buyer collects from this locker.
        parcels: Parcels; defaults to a single textbook parcel.
        declared_value: Insured value; defaults to the parcel total.
        providers: Optional courier provider filter.
        service_levels: Optional service level filter.
    """

    collection_address: AddressIn | None = None
    collection_locker: LockerIn | None = None
    delivery_address: AddressIn | None = None
    delivery_locker: LockerIn | None = None
    parcels: list[ParcelIn] = Field(default_factory=list, max_length=10)
    declared_value: Decimal | None = Field(default=None, ge=0)
    providers: list[str] = Field(default_factory=list)
    service_levels: list[str] = Field(default_factory=list)

    @staticmethod
    def _side(name: str, address: AddressIn | None, locker: LockerIn | None):
        if (address is None) == (locker is None):
            raise ValidationFailed(f"{name} needs exactly one of address or locker")
        return address.to_domain() if address is not None else locker.to_domain()

    def to_domain(self) -> QuoteRequest:
        """Build the domain request.

        Raises:
            ValidationFailed: A side has both or neither of address and locker.
        """
        return QuoteRequest(
            collection=self._side("collection", self.collection_address, self.collection_locker),
            delivery=self._side("delivery", self.delivery_address, self.delivery_locker),
            parcels=tuple(p.to_domain() for p in self.parcels) or (Parcel(),),
            declared_value=self.declared_value,
            providers=tuple(self.providers),
            service_levels=tuple(self.service_levels),
        )


class QuoteOut(BaseModel):
    provider_slug: str
    provider_name: str
    service_level_code: str
    service_name: str
    service_description: str = ""
    cost: Decimal
    cost_cents: int
    cost_excl_vat: Decimal | None = None
    currency: str
    transit_days: int
    features: list[str]
    collection_cutoff: str | None = None
    collection_date: str | None = None
    delivery_date: str | None = None
    rate_id: str | None = None
    simulated: bool = False
    api_error: str | None = None

    @classmethod
    def from_domain(cls, q: Quote) -> "QuoteOut":
        return cls(
            provider_slug=q.provider_slug,
            provider_name=q.provider_name,
            service_level_code=q.service_level_code,
            service_name=q.service_name,
            service_description=q.service_description,
            cost=q.cost,
            cost_cents=q.cost_cents,
            cost_excl_vat=q.cost_excl_vat,
            currency=q.currency,
            transit_days=q.transit_days,
            features=list(q.features),
            collection_cutoff=q.collection_cutoff,
            collection_date=q.collection_date,
            delivery_date=q.delivery_date,
            rate_id=q.rate_id,
            simulated=q.simulated,
            api_error=q.api_error,
        )


class TrackingEventOut(BaseModel):
    status: str | None = None
    description: str = ""
    location: str = ""
    timestamp: str | None = None


class TrackingOut(BaseModel):
    tracking_number: str
    status: str | None = None
    status_friendly: str
    current_location: str
    events: list[TrackingEventOut] = []
    simulated: bool = False
    api_error: str | None = None

    @classmethod
    def from_domain(cls, t: TrackingInfo) -> "TrackingOut":
        return cls(
            tracking_number=t.tracking_number,
            status=t.status,
            status_friendly=t.status_friendly,
            current_location=t.current_location,
            events=[TrackingEventOut(**vars(e)) for e in t.events],
            simulated=t.simulated,
            api_error=t.api_error,
        )


class CourierIn(BaseModel):
    provider_slug: str = Field(min_length=1)
    service_level_code: str = Field(min_length=1)
    cost_cents: int = Field(ge=0)
    provider_name: str = ""
    service_name: str = ""

    def to_domain(self) -> CourierSelection:
        return CourierSelection(**self.model_dump())


class CreateOrderDTO(BaseModel):
    """Checkout body. The buyer is the authenticated caller.

    Attributes:
        seller_id: Seller of the item.
        item_id: Catalog item being bought.
        payment_reference: Processor reference; retries with the same value
            return the existing order.
        delivery_type: ``door`` or ``locker`` for the buyer side.
        pickup_type: ``door`` or ``locker`` for the seller side.
        courier: The quote the buyer selected.
    """

    seller_id: str = Field(min_length=1, max_length=64)
    item_id: str = Field(min_length=1, max_length=64)
    payment_reference: str | None = Field(default=None, min_length=1, max_length=128)
    delivery_type: Literal["door", "locker"] = "door"
    pickup_type: Literal["door", "locker"] = "door"
    delivery_locker: LockerIn | None = None
    pickup_locker: LockerIn | None = None
    delivery_address_ref: str | None = None
    pickup_address_ref: str | None = None
    courier: CourierIn | None = None

    def to_request(self, buyer_id: str) -> CreateOrderRequest:
        return CreateOrderRequest(
            buyer_id=buyer_id,
            seller_id=self.seller_id,
            item_id=self.item_id,
            payment_reference=self.payment_reference,
            delivery_type=FulfillmentType(self.delivery_type),
            pickup_type=FulfillmentType(self.pickup_type),
            delivery_locker=self.delivery_locker.to_domain() if self.delivery_locker else None,
            pickup_locker=self.pickup_locker.to_domain() if self.pickup_locker else None,
            delivery_address_ref=self.delivery_address_ref,
            pickup_address_ref=self.pickup_address_ref,
            courier=self.courier.to_domain() if self.courier else None,
        )


class ReasonDTO(BaseModel):
    """Body of the cancel and decline actions."""

    reason: str | None = Field(default=None, max_length=500)


class PaymentWebhookDTO(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=128)
    status: Literal["paid", "failed", "cancelled"] = "paid"


class OrderReadDTO(BaseModel):
    id: str
    order_number: str | None = None
    status: str
    payment_status: str | None = None
    delivery_status: str | None = None
    buyer_id: str
    seller_id: str
    item: dict
    pickup: dict
    delivery: dict
    total_cents: int
    currency: str
    payment_reference: str | None = None
    courier: dict | None = None
    tracking_number: str | None = None
    shipment: dict | None = None
    refund_status: str | None = None
    refund_id: str | None = None
    cancellation_reason: str | None = None
    decline_reason: str | None = None
    created_at: datetime | None = None
    cancelled_at: datetime | None = None
    declined_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None

    @staticmethod
    def _endpoint(endpoint) -> dict:
        if isinstance(endpoint, Locker):
            return {"type": "locker", "location_id": endpoint.location_id, "provider_slug": endpoint.provider_slug}
        return {"type": "door", "address_ref": endpoint.ref}

    @classmethod
    def from_domain(cls, o: Order) -> "OrderReadDTO":
        shipment = None
        if o.shipment is not None:
            s = o.shipment
            shipment = {
                "tracking_number": s.tracking_number,
                "shipment_id": s.shipment_id,
                "submission_status": s.submission_status,
                "label_url": s.label_url,
                "collection_eta": s.collection_eta.isoformat() if s.collection_eta else None,
                "delivery_eta": s.delivery_eta.isoformat() if s.delivery_eta else None,
                "simulated": s.simulated,
            }
        return cls(
            id=str(o.id),
            order_number=o.order_number,
            status=o.status.value,
            payment_status=o.payment_status,
            delivery_status=o.delivery_status,
            buyer_id=o.buyer_id,
            seller_id=o.seller_id,
            item={"id": o.item.item_id, "title": o.item.title, "price_cents": o.item.price_cents,
                  "condition": o.item.condition, "author": o.item.author},
            pickup=cls._endpoint(o.pickup),
            delivery=cls._endpoint(o.delivery),
            total_cents=o.total_cents,
            currency=o.currency,
            payment_reference=o.payment_reference,
            courier=o.courier.__dict__ if o.courier else None,
            tracking_number=o.tracking_number,
            shipment=shipment,
            refund_status=o.refund_status.value if o.refund_status else None,
            refund_id=o.refund_id,
            cancellation_reason=o.cancellation_reason,
            decline_reason=o.decline_reason,
            created_at=o.created_at,
            cancelled_at=o.cancelled_at,
            declined_at=o.declined_at,
            shipped_at=o.shipped_at,
            delivered_at=o.delivered_at,
        )
