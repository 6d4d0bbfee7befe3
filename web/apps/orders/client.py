"""HTTP client for the checkout API.

``CheckoutClient`` mirrors the public endpoints for checkout front-ends and
back-office scripts. Error responses carrying a known ``detail`` code are
raised as the matching domain error (``ItemUnavailable``, ``RefundFailed``...)
so callers handle the same exceptions as in-process code; anything else is
raised as ``httpx.HTTPStatusError``.
"""

import logging

import httpx

from . import errors

logger = logging.getLogger("orders.client")


def _error_classes(base=errors.SagaError) -> dict[str, type]:
    out = {}
    for cls in base.__subclasses__():
        out[cls.code] = cls
        out.update(_error_classes(cls))
    return out


ERRORS_BY_CODE = _error_classes()


class CheckoutClient:
    """Client for the checkout API.

    Args:
        base_url: Gateway root, e.g. ``http://localhost:8000/api``.
        user_id: Caller identity sent as ``X-User-Id``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, user_id: str | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.user_id:
            headers["X-User-Id"] = self.user_id
        return headers

    def _handle(self, resp):
        if 200 <= resp.status_code < 300:
            return resp.json()
        try:
            body = resp.json()
        except ValueError:
            body = {}
        code = body.get("detail") if isinstance(body, dict) else None
        cls = ERRORS_BY_CODE.get(code)
        if cls is not None:
            raise cls(body.get("message"))
        logger.warning("checkout api error", extra={"status": resp.status_code, "detail": code})
        resp.raise_for_status()

    def _post(self, path: str, payload: dict | None = None):
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(f"{self.base_url}{path}", json=payload or {}, headers=self._headers())
        return self._handle(resp)

    def _get(self, path: str):
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.get(f"{self.base_url}{path}", headers=self._headers())
        return self._handle(resp)

    def get_quotes(self, payload: dict) -> list[dict]:
        """Return the quote list for a ``POST /quotes/`` body."""
        return self._post("/quotes/", payload)["quotes"]

    def create_order(self, payload: dict) -> dict:
        return self._post("/orders/", payload)

    def list_orders(self, page: int = 1, page_size: int = 20) -> dict:
        return self._get(f"/orders/?page={page}&page_size={page_size}")

    def get_order(self, order_id: str) -> dict:
        return self._get(f"/orders/{order_id}/")

    def cancel_order(self, order_id: str, reason: str | None = None) -> dict:
        return self._post(f"/orders/{order_id}/cancel/", {"reason": reason} if reason else {})

    def decline_commit(self, order_id: str, reason: str | None = None) -> dict:
        return self._post(f"/orders/{order_id}/decline/", {"reason": reason} if reason else {})

    def commit_order(self, order_id: str) -> dict:
        return self._post(f"/orders/{order_id}/commit/")

    def refresh_tracking(self, order_id: str) -> dict:
        """Poll the courier for the order; the snapshot is under ``tracking``."""
        return self._post(f"/orders/{order_id}/tracking/")
