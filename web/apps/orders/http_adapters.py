"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements concrete HTTP clients for the domain ports using
``httpx``:

- ``HttpInventoryClient`` talks to the inventory ledger service.
- ``HttpPaymentsClient`` asks the payment processor facade for refunds,
  always sending ``Idempotency-Key: refund-<order id>``.
- ``HttpCourierClient`` talks to the courier's v2 API with a bearer key.

Every call shares the same policy: ``X-Request-ID`` propagation from the
gateway ContextVar, a circuit breaker per downstream service, and retries
with exponential backoff for transport errors and 5xx responses. Business
outcomes (404, 402, 409...) are returned to the adapter and never count as
circuit failures.
"""

import logging
import os
import sys
import threading
import time
from typing import Optional
from urllib.parse import quote

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import (
    CatalogItem,
    CourierPort,
    InventoryCounters,
    InventoryPort,
    ItemSnapshot,
    PaymentsPort,
    RefundResult,
)
from .errors import CourierNotConfigured, ItemUnavailable, NotFound

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")
logger = logging.getLogger("orders.http")

DEFAULT_COURIER_BASE_URL = "https://api.bobgo.co.za/v2"


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
        or os.environ.get("PYTEST_RUNNING") == "1"
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe re-opens the circuit.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        """Current state, moving OPEN to HALF_OPEN once the timeout elapsed."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check the breaker before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            RuntimeError: ``CIRCUIT_OPEN`` or ``CIRCUIT_HALF_OPEN_BUSY``.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise RuntimeError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise RuntimeError("CIRCUIT_HALF_OPEN_BUSY")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False

    def reset(self):
        self.on_success()

    def snapshot(self) -> dict:
        with self._lock:
            return {"state": self.state, "failures": self._failures}


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


_inventory_cb = _breaker("inventory")
_payments_cb = _breaker("payments")
_courier_cb = _breaker("courier")

BREAKERS = {cb.name: cb for cb in (_inventory_cb, _payments_cb, _courier_cb)}


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras.

    Args:
        extra: Optional dict of additional headers to include.

    Returns:
        dict: Final headers dictionary for the outgoing request.
    """
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    max_retries = getattr(settings, "HTTP_RETRY_MAX", 3)
    backoff = getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15)
    if _is_test_mode():
        max_retries = max(max_retries, 1)
        backoff = 0.0
    return max_retries, backoff


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport exceptions or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _detail(resp) -> str | None:
    try:
        body = resp.json()
    except Exception:
        return None
    return body.get("detail") if isinstance(body, dict) else None


def _send(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    *,
    timeout: float,
    json: dict | None = None,
    extra_headers: dict | None = None,
    business_statuses: tuple[int, ...] = (),
):
    """Perform one logical call under the breaker with retries.

    Args:
        breaker: Circuit breaker of the downstream service.
        method: ``"get"`` or ``"post"``.
        url: Absolute URL.
        timeout: Per-attempt timeout in seconds.
        json: Optional JSON body.
        extra_headers: Headers added to the correlation headers.
        business_statuses: Non-2xx statuses returned to the caller as
            business outcomes instead of raised.

    Returns:
        The response for 2xx and business statuses.

    Raises:
        RuntimeError: When the circuit is open.
        httpx.RequestError: For transport errors after retries.
        httpx.HTTPStatusError: For other non-2xx responses.
    """
    max_retries, backoff = _retry_policy()
    tries = 0

    state = breaker.before_call()
    headers = _request_headers({**(extra_headers or {}), "X-Circuit-State": state, "X-Retry-Count": "0"})

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    if method == "get":
                        resp = client.get(url, headers=headers)
                    else:
                        resp = client.post(url, json=json, headers=headers)
                    if 200 <= resp.status_code < 300 or resp.status_code in business_statuses:
                        breaker.on_success()
                        return resp
                    if not _should_retry(resp, None):
                        resp.raise_for_status()
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_retries or not _should_retry(resp, exc):
                    breaker.on_failure()
                    logger.warning(
                        "downstream call failed",
                        extra={"service": breaker.name, "url": url, "tries": tries, "error": str(exc or resp.status_code)},
                    )
                    if exc:
                        raise exc
                    resp.raise_for_status()

                sleep_s = backoff * (2 ** (tries - 1))
                cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                if not _is_test_mode():
                    time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


def resolve_courier_base_url(raw: str | None) -> str:
    """Normalize the configured courier URL to the v2 API root.

    Empty means production; a sandbox host without the ``api.`` prefix is
    pointed at the sandbox API; any courier host missing ``/v2`` gets it.
    """
    env = (raw or "").strip().rstrip("/")
    if not env:
        return DEFAULT_COURIER_BASE_URL
    if "sandbox.bobgo.co.za" in env and "api.sandbox.bobgo.co.za" not in env:
        return "https://api.sandbox.bobgo.co.za/v2"
    if "bobgo.co.za" in env and not env.endswith("/v2"):
        return env + "/v2"
    return env


# ---------------- Inventory Adapter ---------------- #

def _counters(data: dict) -> InventoryCounters:
    return InventoryCounters(
        available_quantity=int(data["available_quantity"]),
        sold_quantity=int(data["sold_quantity"]),
        sold=bool(data["sold"]),
    )


class HttpInventoryClient(InventoryPort):
    """HTTP client for the inventory ledger service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.INVENTORY_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_item(self, item_id: str) -> CatalogItem | None:
        resp = _send(_inventory_cb, "get", f"{self.base_url}/books/{item_id}", timeout=self.timeout, business_statuses=(404,))
        if resp.status_code == 404:
            return None
        data = resp.json()
        return CatalogItem(
            snapshot=ItemSnapshot(
                item_id=str(data["id"]),
                title=data.get("title", ""),
                price_cents=int(data.get("price_cents", 0)),
                condition=data.get("condition", ""),
                author=data.get("author", ""),
            ),
            counters=_counters(data),
        )

    def reserve(self, item_id: str) -> InventoryCounters:
        """Reserve the item through the ledger's conditional update.

        Maps business responses: 200 → previous counters, 409 →
        ``ItemUnavailable``, 404 → ``NotFound``.
        """
        resp = _send(
            _inventory_cb, "post", f"{self.base_url}/books/{item_id}/reserve",
            timeout=self.timeout, business_statuses=(404, 409),
        )
        if resp.status_code == 404:
            raise NotFound(f"item {item_id}")
        if resp.status_code == 409:
            raise ItemUnavailable(item_id)
        return _counters(resp.json()["previous"])

    def release(self, item_id: str, previous: InventoryCounters) -> bool:
        payload = {"previous": {
            "available_quantity": previous.available_quantity,
            "sold_quantity": previous.sold_quantity,
            "sold": previous.sold,
        }}
        resp = _send(_inventory_cb, "post", f"{self.base_url}/books/{item_id}/release", timeout=self.timeout, json=payload)
        return bool(resp.json().get("released", False))

    def ensure_sold(self, item_id: str) -> None:
        _send(
            _inventory_cb, "post", f"{self.base_url}/books/{item_id}/ensure-sold",
            timeout=self.timeout, business_statuses=(404,),
        )


# ---------------- Payments Adapter ---------------- #

class HttpPaymentsClient(PaymentsPort):
    """HTTP client for the payment processor facade.

    Notes:
        Refunds carry ``Idempotency-Key: refund-<order id>`` so a retried
        cancellation can never refund twice.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def refund(self, order_id: str, payment_reference: str, amount_cents: int, reason: str) -> RefundResult:
        """Request a refund.

        Business mappings: 200 → successful result, 402 → refused result
        carrying the processor's detail code. A 409 means the idempotency
        key was reused for a different refund and is raised.

        Raises:
            httpx.RequestError: For network/transport errors after retries.
            httpx.HTTPStatusError: For non-retriable non-2xx responses.
        """
        payload = {
            "order_id": order_id,
            "payment_reference": payment_reference,
            "amount_cents": amount_cents,
            "reason": reason,
        }
        resp = _send(
            _payments_cb, "post", f"{self.base_url}/refunds",
            timeout=self.timeout, json=payload,
            extra_headers={"Idempotency-Key": f"refund-{order_id}"},
            business_statuses=(402,),
        )
        if resp.status_code == 402:
            return RefundResult(success=False, message=_detail(resp))
        data = resp.json()
        return RefundResult(
            success=bool(data.get("success", True)),
            refund_id=str(data["refund_id"]) if data.get("refund_id") else None,
            amount_cents=int(data.get("amount_cents", amount_cents)),
        )


# ---------------- Courier Adapter ---------------- #

class HttpCourierClient(CourierPort):
    """HTTP client for the courier's v2 API (rates, shipments, cancel, tracking)."""

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float | None = None):
        self.base_url = resolve_courier_base_url(base_url if base_url is not None else settings.COURIER_BASE_URL)
        self.api_key = (api_key if api_key is not None else settings.COURIER_API_KEY or "").strip()
        self.timeout = timeout or getattr(settings, "COURIER_TIMEOUT_SECS", settings.HTTP_TIMEOUT_SECS)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, path: str, payload: dict) -> dict:
        if not self.configured:
            raise CourierNotConfigured()
        resp = _send(
            _courier_cb, "post", f"{self.base_url}{path}",
            timeout=self.timeout, json=payload,
            extra_headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
        )
        return resp.json()

    def quote(self, payload: dict) -> dict:
        return self._post("/rates", payload)

    def create_shipment(self, payload: dict) -> dict:
        return self._post("/shipments", payload)

    def cancel_shipment(self, tracking_reference: str, reason: str) -> dict:
        return self._post("/shipments/cancel", {
            "tracking_reference": tracking_reference,
            "cancellation_reason": reason,
        })

    def track(self, tracking_reference: str) -> dict | list:
        if not self.configured:
            raise CourierNotConfigured()
        resp = _send(
            _courier_cb, "get", f"{self.base_url}/tracking?tracking_reference={quote(tracking_reference, safe='')}",
            timeout=self.timeout,
            extra_headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
        )
        return resp.json()
