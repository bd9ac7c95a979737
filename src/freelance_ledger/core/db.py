from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from freelance_ledger.core.config import settings


def _engine_options(database_url: str) -> dict[str, Any]:
    if make_url(database_url).drivername.startswith("sqlite"):
        # API and Celery worker may share one sqlite file in dev
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def db_session() -> Generator[Session, None, None]:
    with SessionLocal() as session:
        yield session
