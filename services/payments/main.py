"""Payment processor facade built with FastAPI.

The checkout gateway only needs refunds from the processor: this service
records captured payments (``POST /payments``, fed by the processor
callback) and refunds them (``POST /refunds``). Refunds honour an optional
``Idempotency-Key`` header so a retried compensation never pays twice.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from .repo import (
    IdempotencyKey,
    PaymentsRepo,
    RefundRefused,
    RefundTransaction,
    canonical_hash,
    engine,
    get_session,
    init_db,
)

Currency = constr(pattern=r"^[A-Z]{3}$")

logger = logging.getLogger("payments")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # short active wait until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()
    yield


app = FastAPI(title="Payments Service", lifespan=lifespan)


class PaymentIn(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=200)
    amount_cents: int = Field(gt=0)
    currency: Currency = "ZAR"
    order_id: Optional[str] = None


class RefundRequest(BaseModel):
    """Request body for the refund endpoint.

    Attributes:
        order_id: Order being cancelled or declined.
        payment_reference: Processor reference of the captured payment.
        amount_cents: Positive amount to refund, in cents.
        reason: Free text reason stored with the refund.
    """

    order_id: str = Field(min_length=1, max_length=64)
    payment_reference: str = Field(min_length=1, max_length=200)
    amount_cents: int = Field(gt=0)
    reason: str = Field(default="", max_length=500)


class RefundResponse(BaseModel):
    """Response body for the refund endpoint.

    Attributes:
        success: Whether the refund went through.
        refund_id: UUID of the refund transaction.
        amount_cents: Refunded amount in cents.
        amount: Refunded amount in currency units.
    """

    success: bool
    refund_id: uuid.UUID
    amount_cents: int
    amount: float


def _response(refund_id: uuid.UUID, amount_cents: int) -> RefundResponse:
    return RefundResponse(success=True, refund_id=refund_id, amount_cents=amount_cents, amount=amount_cents / 100)


@app.get("/health")
def health():
    """Liveness/health probe endpoint.

    Returns:
        dict: A small JSON payload indicating service health.
    """
    return {"ok": True}


@app.post("/payments", status_code=201)
def record_payment(req: PaymentIn):
    PaymentsRepo().record_payment(req.payment_reference, req.amount_cents, req.currency, req.order_id)
    return {"recorded": True}


@app.post("/refunds", response_model=RefundResponse)
def refund(
    req: RefundRequest,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Refund a captured payment with optional idempotency.

    When an ``Idempotency-Key`` header is provided, retries with the same
    key and the same order, payment and amount return the refund created by
    the first request (the reason is not compared). Reusing the key for a
    different order, payment or amount responds with HTTP 409.

    Args:
        req: Validated refund body.
        idempotency_key: Optional idempotency key provided via the
            ``Idempotency-Key`` header.

    Returns:
        RefundResponse: The refund outcome.

    Raises:
        HTTPException: 402 with the refusal code when the payment is unknown
            or the amount exceeds what is refundable; 409 on idempotency key
            reuse with a different payload; 500 on lookup failures.
    """
    # reason may differ between retries of the same refund
    payload_hash = canonical_hash(req.model_dump(exclude={"reason"}))

    with get_session() as s:
        if idempotency_key:
            try:
                s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash))
                s.commit()
            except IntegrityError:
                s.rollback()
                rec = s.execute(
                    select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key).with_for_update()
                ).scalars().first()
                if not rec:
                    raise HTTPException(status_code=500, detail="IDEMPOTENCY_LOOKUP_ERROR")
                if rec.request_hash != payload_hash:
                    raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")
                if rec.refund_id:
                    prior = s.get(RefundTransaction, rec.refund_id)
                    return _response(prior.id, prior.amount_cents)

        try:
            tx = PaymentsRepo().refund(s, req.order_id, req.payment_reference, req.amount_cents, req.reason)
        except RefundRefused as e:
            logger.warning("refund refused", extra={"order_id": req.order_id, "detail": str(e)})
            raise HTTPException(status_code=402, detail=str(e))

        refund_id, amount_cents = tx.id, tx.amount_cents
        if idempotency_key:
            rec = s.get(IdempotencyKey, idempotency_key)
            rec.refund_id = refund_id
            s.commit()

    logger.info("refund completed", extra={"order_id": req.order_id, "refund_id": str(refund_id)})
    return _response(refund_id, amount_cents)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
