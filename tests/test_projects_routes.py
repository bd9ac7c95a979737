from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select

from freelance_ledger.core.db import SessionLocal
from freelance_ledger.core.security import create_access_token
from freelance_ledger.main import app
from freelance_ledger.modules.expenses.models import Expense
from freelance_ledger.modules.expenses.service import create_manual_expense
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.identity.service import create_user


def _headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}


def test_project_crud_is_scoped_to_owner():
    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        other = create_user(session, email="other@example.com", password="pw")
        owner_headers, other_headers = _headers(owner), _headers(other)

    client = TestClient(app)
    created = client.post(
        "/api/projects",
        headers=owner_headers,
        json={"name": "  Mobile app  ", "client_name": "Acme", "budget": "5000.00"},
    )
    assert created.status_code == 201
    project = created.json()
    assert project["name"] == "Mobile app"
    assert project["status"] == "active"

    assert client.post("/api/projects", headers=owner_headers, json={"name": " "}).status_code == 400

    listed = client.get("/api/projects", headers=owner_headers).json()
    assert [p["id"] for p in listed] == [project["id"]]
    assert client.get("/api/projects", headers=other_headers).json() == []
    assert client.get(f"/api/projects/{project['id']}", headers=other_headers).status_code == 404

    patched = client.patch(
        f"/api/projects/{project['id']}",
        headers=owner_headers,
        json={"status": "on_hold", "description": "Paused for Q3"},
    )
    assert patched.status_code == 200
    assert patched.json()["status"] == "on_hold"
    assert patched.json()["description"] == "Paused for Q3"
    assert patched.json()["client_name"] == "Acme"


def test_deleting_project_keeps_its_expenses_unassigned():
    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        headers = _headers(owner)

    client = TestClient(app)
    project_id = client.post("/api/projects", headers=headers, json={"name": "Logo"}).json()["id"]
    with SessionLocal() as session:
        user = session.scalar(select(User).where(User.email == "owner@example.com"))
        expense = create_manual_expense(
            session,
            user=user,
            vendor="Fonts Inc",
            amount=Decimal("30"),
            expense_date=date(2026, 5, 1),
            project_id=uuid.UUID(project_id),
        )
        expense_id = expense.id

    assert client.delete(f"/api/projects/{project_id}", headers=headers).status_code == 204
    assert client.get(f"/api/projects/{project_id}", headers=headers).status_code == 404

    with SessionLocal() as session:
        expense = session.scalar(select(Expense).where(Expense.id == expense_id))
        assert expense
        assert expense.project_id is None
