import os
import tempfile
from pathlib import Path

import pytest

_DB_FILE = Path(tempfile.mkdtemp()) / "payments.db"
os.environ.setdefault("PAYMENTS_DATABASE_URL", f"sqlite:///{_DB_FILE}")


@pytest.fixture
def api():
    from fastapi.testclient import TestClient
    from services.payments.main import app
    from services.payments.repo import Base, engine

    with TestClient(app) as c:
        yield c
    Base.metadata.drop_all(engine)
