import os
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("QUALITYGATE_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("QUALITYGATE_AUTH_DISABLED", "1")

from qualitygate.store import STORE


@pytest.fixture(autouse=True)
def reset_store():
    STORE.reset()
    yield


@pytest.fixture
def pending_data_changes():
    """Forget recorded data changes, as on a database upgraded from the legacy schema."""
    from sqlalchemy import delete

    from qualitygate.db import SessionLocal
    from qualitygate.models import SchemaMigrationModel

    with SessionLocal.begin() as session:
        session.execute(delete(SchemaMigrationModel))
    yield
