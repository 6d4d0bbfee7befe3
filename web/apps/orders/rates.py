"""Delivery rate aggregation.

``RateAggregator.get_quotes`` turns a normalized ``QuoteRequest`` into the
courier's rate request (one of four shapes: address or locker on each
side), calls the courier, and flattens the nested provider responses into
``Quote`` objects with the platform markup applied, cheapest first.

The checkout must never dead-end on quoting: a missing credential, a
transport or HTTP error, a malformed body or an empty rate list all produce
exactly one deterministic fallback quote flagged ``simulated``.
"""

import logging
import re
from decimal import Decimal, InvalidOperation

import httpx

from .domain import Address, CollectionPoint, CourierPort, Locker, Parcel, Quote, QuoteRequest
from .errors import CourierNotConfigured, ProviderMismatch, ValidationFailed
from .provinces import to_province_code

logger = logging.getLogger("orders.rates")

DEFAULT_MARKUP = Decimal("15")
RATES_TIMEOUT_MS = 10000
PLACEHOLDER_MOBILE = "+27000000000"
PLACEHOLDER_CONTACTS = {
    "collection": ("Seller", "seller@example.com"),
    "delivery": ("Buyer", "buyer@example.com"),
}


def validate_endpoints(collection: CollectionPoint, delivery: CollectionPoint) -> None:
    """Check the request shape before anything is sent.

    Raises:
        ValidationFailed: A side is neither an address nor a locker.
        ProviderMismatch: Both sides are lockers of different providers.
    """
    for side, point in (("collection", collection), ("delivery", delivery)):
        if not isinstance(point, (Address, Locker)):
            raise ValidationFailed(f"{side} must be an address or a locker")
    if isinstance(collection, Locker) and isinstance(delivery, Locker):
        if collection.provider_slug.strip().lower() != delivery.provider_slug.strip().lower():
            raise ProviderMismatch(f"{collection.provider_slug} != {delivery.provider_slug}")


def address_payload(address: Address, zone_len: int = 2) -> dict:
    return {
        "street_address": address.street_address or "",
        "company": address.company or "",
        "local_area": address.local_area or address.city,
        "city": address.city,
        "zone": to_province_code(address.province, zone_len),
        "country": address.country or "ZA",
        "code": address.postal_code,
    }


def parcel_payload(parcel: Parcel) -> dict:
    return {
        "description": parcel.description or "Book",
        "submitted_length_cm": parcel.length_cm,
        "submitted_width_cm": parcel.width_cm,
        "submitted_height_cm": parcel.height_cm,
        "submitted_weight_kg": parcel.weight_kg,
        "custom_parcel_reference": "",
    }


def declared_value(parcels, explicit: Decimal | None = None) -> float:
    if explicit is not None:
        return float(explicit)
    return float(sum((p.value or Decimal("100")) for p in parcels) or Decimal("100"))


def build_rates_body(request: QuoteRequest) -> dict:
    """Build the courier rate request body.

    Lockers contribute only their location id and provider slug; addresses
    contribute the address object plus placeholder contact details (the
    real contacts are only known once an order exists).

    Args:
        request: Validated quote request.

    Returns:
        dict: JSON body for ``POST /rates``.
    """
    parcels = request.parcels or (Parcel(),)
    body = {
        "parcels": [parcel_payload(p) for p in parcels],
        "declared_value": declared_value(parcels, request.declared_value),
        "timeout": RATES_TIMEOUT_MS,
    }
    for side, point in (("collection", request.collection), ("delivery", request.delivery)):
        if isinstance(point, Locker):
            body[f"{side}_pickup_point_location_id"] = point.location_id
            body.setdefault("pickup_point_provider_slug", point.provider_slug)
        else:
            name, email = PLACEHOLDER_CONTACTS[side]
            body[f"{side}_address"] = address_payload(point)
            body[f"{side}_contact_name"] = name
            body[f"{side}_contact_mobile_number"] = PLACEHOLDER_MOBILE
            body[f"{side}_contact_email"] = email
    if request.providers:
        body["providers"] = list(request.providers)
    if request.service_levels:
        body["service_levels"] = list(request.service_levels)
    return body


def _decimal(value) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _days(value, default: int = 3) -> int:
    """Transit days from an int or a range such as ``"1-2"`` (upper bound wins)."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else default
    found = [int(n) for n in re.findall(r"\d+", str(value or ""))]
    return max(found) if found else default


def fallback_quote(request: QuoteRequest, api_error: str | None = None, configured: bool = True) -> Quote:
    """Deterministic stand-in quote: ``max(50, weight_kg * 40)``, no markup.

    Transit is 2 days when the courier is simply not configured and 3 days
    when a configured courier failed.
    """
    weight = Decimal(str(request.total_weight_kg or 1))
    cost = max(Decimal("50"), weight * 40)
    return Quote(
        provider_slug="simulated",
        provider_name="Simulated courier",
        service_level_code="STANDARD",
        service_name="Standard (Simulated)" if not configured else "Standard (Estimated)",
        cost=cost,
        transit_days=2 if not configured else 3,
        simulated=True,
        api_error=api_error,
    )


class RateAggregator:
    """Quote courier rates for a checkout.

    Args:
        courier: Courier port used for ``POST /rates``.
        markup: Amount added to every real rate, in currency units.
        currency: Currency of the returned quotes.
    """

    def __init__(self, courier: CourierPort, markup: Decimal | str | int = DEFAULT_MARKUP, currency: str = "ZAR"):
        self.courier = courier
        self.markup = Decimal(str(markup))
        self.currency = currency

    def get_quotes(self, request: QuoteRequest) -> list[Quote]:
        """Return normalized quotes sorted ascending by cost; never empty.

        Raises:
            ValidationFailed: Malformed collection or delivery side.
            ProviderMismatch: Locker-to-locker across providers. Raised
                before any network call.
        """
        validate_endpoints(request.collection, request.delivery)
        body = build_rates_body(request)

        try:
            data = self.courier.quote(body)
        except CourierNotConfigured:
            logger.info("courier not configured, simulated quote")
            return [fallback_quote(request, configured=False)]
        except (httpx.HTTPError, RuntimeError, ValueError) as e:
            logger.warning("rate request failed, fallback quote", extra={"error": str(e)})
            return [fallback_quote(request, api_error=str(e))]

        try:
            quotes = self.normalize(data)
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning("malformed rates response, fallback quote", extra={"error": str(e)})
            return [fallback_quote(request, api_error=f"MALFORMED_RESPONSE: {e}")]
        if not quotes:
            logger.warning("courier returned no rates, fallback quote")
            return [fallback_quote(request, api_error="NO_RATES")]
        return sorted(quotes, key=lambda q: q.cost)

    def normalize(self, data) -> list[Quote]:
        """Flatten ``provider_rate_requests[].responses[]`` into quotes.

        Responses without a usable ``rate_amount`` are skipped.
        """
        if not isinstance(data, dict):
            return []
        quotes = []
        for provider in data.get("provider_rate_requests") or []:
            if not isinstance(provider, dict):
                continue
            for rate in provider.get("responses") or []:
                if not isinstance(rate, dict):
                    continue
                amount = _decimal(rate.get("rate_amount"))
                if amount is None:
                    continue
                level = rate.get("service_level")
                if not isinstance(level, dict):
                    level = {}
                excl = _decimal(rate.get("rate_amount_excl_vat"))
                quotes.append(Quote(
                    provider_slug=provider.get("provider_slug") or "",
                    provider_name=provider.get("provider_name") or "Unknown",
                    service_level_code=rate.get("service_level_code") or level.get("code") or "",
                    service_name=level.get("name") or "Unknown Service",
                    service_description=level.get("description") or "",
                    cost=amount + self.markup,
                    cost_excl_vat=excl + self.markup if excl is not None else None,
                    currency=self.currency,
                    transit_days=_days(level.get("service_level_days")),
                    collection_cutoff=level.get("collection_cut_off_time"),
                    collection_date=data.get("collection_date"),
                    delivery_date=data.get("delivery_date"),
                    rate_id=str(data["id"]) if data.get("id") is not None else None,
                ))
        return quotes
