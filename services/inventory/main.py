"""Inventory ledger API built with FastAPI.

This module exposes the book ledger to the checkout gateway: read a
snapshot, reserve the last copy, release a reservation as a compensation,
and the ``ensure-sold`` repair used by idempotent order creation.
Validation is performed with Pydantic models, while the ledger logic is
delegated to the SQLAlchemy-backed ``repo.InventoryRepo``.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from .repo import BookNotFound, BookUnavailable, Counters, InventoryRepo, engine, init_db

logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


def _wait_for_db(timeout_s: float = 30.0) -> None:
    # short active wait until the database accepts connections
    deadline = time.time() + timeout_s
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            return
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _wait_for_db()
    init_db()
    yield


app = FastAPI(title="Inventory Service", lifespan=lifespan)


class CountersModel(BaseModel):
    """Ledger counters for one book.

    Attributes:
        available_quantity: Copies still for sale.
        sold_quantity: Copies sold.
        sold: Terminal sold flag.
    """

    available_quantity: int = Field(ge=0)
    sold_quantity: int = Field(ge=0)
    sold: bool


class BookOut(BaseModel):
    id: str
    title: str
    author: str
    price_cents: int
    condition: str
    available_quantity: int
    sold_quantity: int
    sold: bool


class ReserveResponse(BaseModel):
    """Response body for the reserve endpoint.

    Attributes:
        reserved: Always True (failures are HTTP errors).
        previous: Counters before the reservation, for the compensating release.
    """

    reserved: bool
    previous: CountersModel


class ReleaseRequest(BaseModel):
    previous: CountersModel


class ReleaseResponse(BaseModel):
    released: bool


@app.get("/health")
def health():
    """Liveness/health probe endpoint.

    Returns:
        dict: A small JSON payload indicating service health.
    """
    return {"ok": True}


@app.get("/books/{book_id}", response_model=BookOut)
def get_book(book_id: str):
    book = InventoryRepo().get(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return BookOut(
        id=book.id,
        title=book.title,
        author=book.author,
        price_cents=book.price_cents,
        condition=book.condition,
        available_quantity=book.available_quantity,
        sold_quantity=book.sold_quantity,
        sold=book.sold,
    )


@app.post("/books/{book_id}/reserve", response_model=ReserveResponse)
def reserve(book_id: str):
    """Reserve the book for an order.

    Args:
        book_id: Book to take off the market.

    Returns:
        ReserveResponse: ``reserved`` True and the pre-reservation counters.

    Raises:
        HTTPException: 404 when the book does not exist, 409 with
            ``ITEM_UNAVAILABLE`` when it is sold or out of copies.
    """
    try:
        prev = InventoryRepo().reserve(book_id)
    except BookNotFound:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    except BookUnavailable:
        raise HTTPException(status_code=409, detail="ITEM_UNAVAILABLE")
    logger.info("book reserved", extra={"book_id": book_id, "previous": prev.__dict__})
    return ReserveResponse(reserved=True, previous=CountersModel(**prev.__dict__))


@app.post("/books/{book_id}/release", response_model=ReleaseResponse)
def release(book_id: str, req: ReleaseRequest):
    prev = Counters(**req.previous.model_dump())
    released = InventoryRepo().release(book_id, prev)
    if not released:
        logger.warning("release skipped, counters changed", extra={"book_id": book_id})
    return ReleaseResponse(released=released)


@app.post("/books/{book_id}/ensure-sold")
def ensure_sold(book_id: str):
    try:
        repaired = InventoryRepo().ensure_sold(book_id)
    except BookNotFound:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    if repaired:
        logger.info("book marked sold by repair", extra={"book_id": book_id})
    return {"repaired": repaired}


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
