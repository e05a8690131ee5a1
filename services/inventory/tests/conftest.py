import os
import tempfile

import pytest

# repo builds its engine at import time
_DB_DIR = tempfile.mkdtemp(prefix="inventory-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR}/inventory.db")
os.environ.setdefault("DB_WAIT_SECS", "0")


@pytest.fixture
def api():
    from fastapi.testclient import TestClient

    from main import app
    from repo import Base, engine

    with TestClient(app) as c:
        yield c
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
