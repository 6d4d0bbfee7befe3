"""SQLAlchemy repository for the book inventory ledger.

This module owns the ``books`` table: per-book ``available_quantity``,
``sold_quantity`` and the monotonic ``sold`` flag. Reservations are a single
conditional ``UPDATE ... WHERE sold = false AND available_quantity >= 1``
whose affected row decides the outcome, so two concurrent buyers can never
both take the last copy. Releases are compare-and-swap updates that only
restore counters still holding the post-reservation values.

The connection URL is read from ``INVENTORY_DATABASE_URL``; when absent it
is assembled from the ``DB_*`` variables used by the container images.
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import Boolean, Integer, String, create_engine, select, update
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "INVENTORY_DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase):
    pass


class Book(Base):
    """SQLAlchemy model for a listed textbook.

    Attributes:
        id: Catalog item id.
        title: Book title.
        author: Book author.
        price_cents: Asking price in cents.
        condition: Free text condition label.
        available_quantity: Copies still for sale (never negative).
        sold_quantity: Copies sold so far (never decreases outside a release).
        sold: Terminal flag, false to true only.
    """

    __tablename__ = "books"
    id = mapped_column(String(64), primary_key=True)
    title = mapped_column(String(255), nullable=False, default="")
    author = mapped_column(String(255), nullable=False, default="")
    price_cents = mapped_column(Integer, nullable=False, default=0)
    condition = mapped_column(String(64), nullable=False, default="")
    available_quantity = mapped_column(Integer, nullable=False, default=1)
    sold_quantity = mapped_column(Integer, nullable=False, default=0)
    sold = mapped_column(Boolean, nullable=False, default=False)


@dataclass(frozen=True)
class Counters:
    available_quantity: int
    sold_quantity: int
    sold: bool


class BookNotFound(LookupError):
    pass


class BookUnavailable(RuntimeError):
    pass


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Context manager that yields a SQLAlchemy session.

    Yields:
        Session: Active SQLAlchemy session connected to the database.
    """
    with Session(engine) as s:
        yield s


class InventoryRepo:
    """Repository class for ledger operations on books."""

    def get(self, book_id: str) -> Book | None:
        with get_session() as s:
            obj = s.get(Book, book_id)
            if obj is not None:
                s.expunge(obj)
            return obj

    def upsert(self, book_id: str, **fields) -> None:
        """Create or overwrite a book row (seeding and tests)."""
        with get_session() as s:
            obj = s.get(Book, book_id) or Book(id=book_id)
            for name, value in fields.items():
                setattr(obj, name, value)
            s.merge(obj)
            s.commit()

    def reserve(self, book_id: str) -> Counters:
        """Take one copy off the market with a single conditional update.

        Args:
            book_id: Book to reserve.

        Returns:
            Counters: Values before the reservation (derived from the
                ``RETURNING`` row, so they are exactly what was replaced).

        Raises:
            BookNotFound: If the book does not exist.
            BookUnavailable: If it is already sold or has no copies left.
        """
        stmt = (
            update(Book)
            .where(Book.id == book_id, Book.sold.is_(False), Book.available_quantity >= 1)
            .values(
                available_quantity=Book.available_quantity - 1,
                sold_quantity=Book.sold_quantity + 1,
                sold=True,
            )
            .returning(Book.available_quantity, Book.sold_quantity)
        )
        with get_session() as s:
            row = s.execute(stmt).first()
            if row is None:
                s.rollback()
                if s.get(Book, book_id) is None:
                    raise BookNotFound(book_id)
                raise BookUnavailable(book_id)
            s.commit()
        return Counters(available_quantity=row[0] + 1, sold_quantity=row[1] - 1, sold=False)

    def release(self, book_id: str, previous: Counters) -> bool:
        """Restore pre-reservation counters if nothing changed since.

        Returns:
            bool: True when the row was restored, False when the counters no
                longer match the post-reservation values (left untouched).
        """
        stmt = (
            update(Book)
            .where(
                Book.id == book_id,
                Book.sold.is_(True),
                Book.available_quantity == previous.available_quantity - 1,
                Book.sold_quantity == previous.sold_quantity + 1,
            )
            .values(
                available_quantity=previous.available_quantity,
                sold_quantity=previous.sold_quantity,
                sold=previous.sold,
            )
        )
        with get_session() as s:
            result = s.execute(stmt)
            s.commit()
            return result.rowcount == 1

    def ensure_sold(self, book_id: str) -> bool:
        """Repair a book that has an order but was never marked sold.

        Returns:
            bool: True when a repair was applied.

        Raises:
            BookNotFound: If the book does not exist.
        """
        with get_session() as s:
            obj = s.execute(select(Book).where(Book.id == book_id).with_for_update()).scalars().first()
            if obj is None:
                raise BookNotFound(book_id)
            if obj.sold:
                return False
            obj.sold = True
            obj.available_quantity = max(0, obj.available_quantity - 1)
            obj.sold_quantity = obj.sold_quantity + 1
            s.commit()
            return True
