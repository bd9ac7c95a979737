from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient

from freelance_ledger.core.db import SessionLocal
from freelance_ledger.core.security import create_access_token
from freelance_ledger.core.storage import get_storage
from freelance_ledger.main import app
from freelance_ledger.modules.expenses.models import Expense
from freelance_ledger.modules.expenses.service import seed_categories
from freelance_ledger.modules.identity.service import create_user
from freelance_ledger.modules.projects.service import create_project


def _headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}


def test_categories_are_seeded_once():
    with SessionLocal() as session:
        assert seed_categories(session) == 13
        assert seed_categories(session) == 0
        user = create_user(session, email="user@example.com", password="pw")
        headers = _headers(user)

    names = [c["name"] for c in TestClient(app).get("/api/expenses/categories", headers=headers).json()]
    assert len(names) == 13
    assert "Professional Services" in names


def test_manual_expense_crud_and_project_filter():
    with SessionLocal() as session:
        seed_categories(session)
        user = create_user(session, email="user@example.com", password="pw")
        project = create_project(session, user=user, name="Consulting")
        headers, project_id = _headers(user), str(project.id)

    client = TestClient(app)
    categories = client.get("/api/expenses/categories", headers=headers).json()
    software = next(c for c in categories if c["name"] == "Software")

    created = client.post(
        "/api/expenses",
        headers=headers,
        json={
            "vendor": "GitHub",
            "amount": "21.00",
            "expense_date": "2026-06-01",
            "currency": "usd",
            "category_id": software["id"],
            "project_id": project_id,
        },
    )
    assert created.status_code == 201, created.text
    expense = created.json()
    assert expense["source"] == "manual"
    assert expense["ai_parsed"] is False
    assert expense["currency"] == "USD"

    other = client.post(
        "/api/expenses",
        headers=headers,
        json={"vendor": "Cafe", "amount": "4.50", "expense_date": "2026-06-02"},
    )
    assert other.status_code == 201

    all_rows = client.get("/api/expenses", headers=headers).json()
    assert [e["vendor"] for e in all_rows] == ["Cafe", "GitHub"]
    filtered = client.get(f"/api/expenses?projectId={project_id}", headers=headers).json()
    assert [e["vendor"] for e in filtered] == ["GitHub"]

    patched = client.patch(
        f"/api/expenses/{expense['id']}", headers=headers, json={"amount": "25", "vendor": "GitHub Inc"}
    )
    assert patched.status_code == 200
    assert patched.json()["vendor"] == "GitHub Inc"

    assert client.post(
        "/api/expenses",
        headers=headers,
        json={"vendor": "X", "amount": "-1", "expense_date": "2026-06-02"},
    ).status_code == 422

    assert client.get(f"/api/expenses/{expense['id']}/receipt", headers=headers).status_code == 404
    assert client.delete(f"/api/expenses/{expense['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/expenses/{expense['id']}", headers=headers).status_code == 404


def test_expense_receipt_download_streams_linked_file():
    get_storage().put(key="receipts/test/general/1-abcdef.png", body=b"\x89PNGdata", content_type="image/png")
    with SessionLocal() as session:
        user = create_user(session, email="user@example.com", password="pw")
        expense = Expense(
            user_id=user.id,
            vendor="Printer",
            amount=Decimal("9.00"),
            expense_date=date(2026, 6, 3),
            receipt_file_key="receipts/test/general/1-abcdef.png",
            receipt_file_name="café \"π\".png",
            receipt_mime_type="image/png",
        )
        session.add(expense)
        session.commit()
        headers, expense_id = _headers(user), str(expense.id)

    resp = TestClient(app).get(f"/api/expenses/{expense_id}/receipt", headers=headers)
    assert resp.status_code == 200
    assert resp.content == b"\x89PNGdata"
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["content-disposition"] == (
        "inline; filename=\"caf .png\"; filename*=UTF-8''caf%C3%A9%20%22%CF%80%22.png"
    )


def test_income_requires_owned_project():
    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        other = create_user(session, email="other@example.com", password="pw")
        project = create_project(session, user=owner, name="Retainer")
        owner_headers, other_headers, project_id = _headers(owner), _headers(other), str(project.id)

    client = TestClient(app)
    denied = client.post(
        "/api/incomes",
        headers=other_headers,
        json={"project_id": project_id, "amount": "1000", "income_date": "2026-06-30"},
    )
    assert denied.status_code == 404

    created = client.post(
        "/api/incomes",
        headers=owner_headers,
        json={
            "project_id": project_id,
            "amount": "1000",
            "income_date": "2026-06-30",
            "invoice_number": " INV-7 ",
        },
    )
    assert created.status_code == 201
    income = created.json()
    assert income["status"] == "paid"
    assert income["invoice_number"] == "INV-7"

    patched = client.patch(
        f"/api/incomes/{income['id']}", headers=owner_headers, json={"status": "overdue"}
    )
    assert patched.json()["status"] == "overdue"

    assert client.get("/api/incomes", headers=other_headers).json() == []
    listed = client.get(f"/api/incomes?projectId={project_id}", headers=owner_headers).json()
    assert [i["id"] for i in listed] == [income["id"]]

    assert client.delete(f"/api/incomes/{income['id']}", headers=owner_headers).status_code == 204
    assert client.get(f"/api/incomes/{income['id']}", headers=owner_headers).status_code == 404
