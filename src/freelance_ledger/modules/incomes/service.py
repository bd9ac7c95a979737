from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.incomes.models import Income
from freelance_ledger.modules.projects.service import get_project_for_user

_MAX_LIST = 100
_TEXT_FIELDS = ("description", "invoice_number", "payment_method", "notes")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def list_incomes(
    session: Session, *, user: User, project_id: uuid.UUID | None = None
) -> list[Income]:
    stmt = select(Income).where(Income.user_id == user.id)
    if project_id:
        stmt = stmt.where(Income.project_id == project_id)
    stmt = stmt.order_by(Income.income_date.desc(), Income.created_at.desc()).limit(_MAX_LIST)
    return list(session.scalars(stmt))


def get_income_for_user(session: Session, *, income_id: uuid.UUID, user: User) -> Income:
    income = session.scalar(select(Income).where(Income.id == income_id, Income.user_id == user.id))
    if not income:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Income not found")
    return income


def create_income(session: Session, *, user: User, **fields) -> Income:
    project = get_project_for_user(session, project_id=fields.pop("project_id"), user=user)
    income = Income(
        user_id=user.id,
        project_id=project.id,
        amount=Decimal(fields.pop("amount")).quantize(Decimal("0.01")),
        income_date=fields.pop("income_date"),
        status=fields.pop("status"),
        **{name: _clean(fields.get(name)) for name in _TEXT_FIELDS},
    )
    session.add(income)
    session.commit()
    session.refresh(income)
    return income


def update_income(session: Session, *, income: Income, user: User, changes: dict) -> Income:
    if changes.get("project_id") is not None:
        project = get_project_for_user(session, project_id=changes["project_id"], user=user)
        income.project_id = project.id
    if changes.get("amount") is not None:
        income.amount = Decimal(changes["amount"]).quantize(Decimal("0.01"))
    if changes.get("income_date") is not None:
        income.income_date = changes["income_date"]
    if changes.get("status") is not None:
        income.status = changes["status"]
    for name in _TEXT_FIELDS:
        if name in changes:
            setattr(income, name, _clean(changes[name]))

    session.add(income)
    session.commit()
    session.refresh(income)
    return income


def delete_income(session: Session, *, income: Income) -> None:
    session.delete(income)
    session.commit()
