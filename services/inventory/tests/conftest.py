import os
import tempfile
from pathlib import Path

import pytest

_DB_FILE = Path(tempfile.mkdtemp()) / "inventory.db"
os.environ.setdefault("INVENTORY_DATABASE_URL", f"sqlite:///{_DB_FILE}")


@pytest.fixture
def api():
    from fastapi.testclient import TestClient
    from services.inventory.main import app
    from services.inventory.repo import Base, engine

    with TestClient(app) as c:
        yield c
    Base.metadata.drop_all(engine)


@pytest.fixture
def seed(api):
    from services.inventory.repo import InventoryRepo

    def _seed(book_id="BOOK-1", **fields):
        defaults = {
            "title": "Calculus: Early Transcendentals",
            "author": "Stewart",
            "price_cents": 45000,
            "condition": "Good",
            "available_quantity": 1,
            "sold_quantity": 0,
            "sold": False,
        }
        defaults.update(fields)
        InventoryRepo().upsert(book_id, **defaults)
        return book_id

    return _seed
