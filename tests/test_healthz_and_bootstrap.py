from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from freelance_ledger.bootstrap import bootstrap
from freelance_ledger.core.config import settings
from freelance_ledger.core.db import SessionLocal
from freelance_ledger.main import app
from freelance_ledger.modules.expenses.models import ExpenseCategory
from freelance_ledger.modules.identity.models import User, UserRole


def test_healthz_and_storage_write_test():
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}

    resp = client.get("/healthz/storage?write_test=true")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["ok"] is True
    assert payload["backend"] == "local"
    assert payload["write_test"]["ok"] is True


def test_request_id_header_is_propagated():
    resp = TestClient(app).get("/healthz", headers={"x-request-id": "req-123"})
    assert resp.headers["x-request-id"] == "req-123"


def test_bootstrap_seeds_categories_and_promotes_admins(monkeypatch):
    monkeypatch.setattr(settings, "init_admin_email", "Boss@Example.com, ops@example.com")
    monkeypatch.setattr(settings, "init_admin_password", "admin-password")

    bootstrap()
    bootstrap()

    with SessionLocal() as session:
        assert session.scalar(select(func.count()).select_from(ExpenseCategory)) == 13
        admins = list(session.scalars(select(User).order_by(User.email)))
        assert [a.email for a in admins] == ["boss@example.com", "ops@example.com"]
        assert all(a.role == UserRole.ADMIN for a in admins)
