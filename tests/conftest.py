from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

# Set env before any freelance_ledger imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.freelance_ledger_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import freelance_ledger.core.storage as storage_mod
    import freelance_ledger.models  # noqa: F401
    from freelance_ledger.core.db import engine
    from freelance_ledger.core.models import Base

    storage_mod._storage = None

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield
