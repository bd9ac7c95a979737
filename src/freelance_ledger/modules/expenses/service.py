from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from freelance_ledger.modules.expenses.models import Expense, ExpenseCategory, ExpenseSource
from freelance_ledger.modules.identity.models import User

_MAX_LIST = 50

# Name -> IRS Schedule C line.
DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Advertising", "8"),
    ("Office Supplies", "18"),
    ("Meals", "24b"),
    ("Travel", "24a"),
    ("Equipment", "22"),
    ("Software", "18"),
    ("Professional Services", "17"),
    ("Internet", "25"),
    ("Phone", "25"),
    ("Utilities", "25"),
    ("Insurance", "15"),
    ("Rent", "20"),
    ("Other", "27"),
)


def seed_categories(session: Session) -> int:
    existing = set(session.scalars(select(ExpenseCategory.name)))
    created = 0
    for name, line in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        session.add(ExpenseCategory(name=name, schedule_c_line=line, is_deductible=True))
        created += 1
    if created:
        session.commit()
    return created


def list_categories(session: Session) -> list[ExpenseCategory]:
    return list(session.scalars(select(ExpenseCategory).order_by(ExpenseCategory.name)))


def find_category_by_name(session: Session, name: str | None) -> ExpenseCategory | None:
    if not name or not name.strip():
        return None
    return session.scalar(
        select(ExpenseCategory).where(func.lower(ExpenseCategory.name) == name.strip().lower())
    )


def normalize_currency(value: str | None, *, default: str = "USD") -> str:
    cur = (value or "").strip().upper()
    if len(cur) != 3 or not cur.isalpha():
        return default
    return cur


def list_expenses(
    session: Session, *, user: User, project_id: uuid.UUID | None = None
) -> list[Expense]:
    stmt = select(Expense).where(Expense.user_id == user.id)
    if project_id:
        stmt = stmt.where(Expense.project_id == project_id)
    stmt = stmt.order_by(Expense.expense_date.desc(), Expense.created_at.desc()).limit(_MAX_LIST)
    return list(session.scalars(stmt))


def get_expense_for_user(session: Session, *, expense_id: uuid.UUID, user: User) -> Expense:
    expense = session.scalar(
        select(Expense).where(Expense.id == expense_id, Expense.user_id == user.id)
    )
    if not expense:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    return expense


def _assert_project_owned(session: Session, *, project_id: uuid.UUID | None, user: User) -> None:
    if project_id is None:
        return
    from freelance_ledger.modules.projects.service import get_project_for_user

    get_project_for_user(session, project_id=project_id, user=user)


def _assert_category_exists(session: Session, *, category_id: uuid.UUID | None) -> None:
    if category_id is None:
        return
    if not session.get(ExpenseCategory, category_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")


def create_manual_expense(
    session: Session,
    *,
    user: User,
    vendor: str,
    amount: Decimal,
    expense_date: date,
    description: str | None = None,
    tax_amount: Decimal | None = None,
    currency: str = "USD",
    project_id: uuid.UUID | None = None,
    category_id: uuid.UUID | None = None,
    is_deductible: bool = True,
) -> Expense:
    vendor = (vendor or "").strip()
    if not vendor:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Vendor, amount, and expense date are required",
        )
    _assert_project_owned(session, project_id=project_id, user=user)
    _assert_category_exists(session, category_id=category_id)

    expense = Expense(
        user_id=user.id,
        project_id=project_id,
        category_id=category_id,
        vendor=vendor,
        description=description.strip() if description and description.strip() else None,
        amount=amount.quantize(Decimal("0.01")),
        tax_amount=tax_amount.quantize(Decimal("0.01")) if tax_amount is not None else None,
        currency=normalize_currency(currency),
        expense_date=expense_date,
        is_deductible=is_deductible,
        ai_parsed=False,
        source=ExpenseSource.MANUAL,
    )
    session.add(expense)
    session.commit()
    session.refresh(expense)
    return expense


def update_expense(session: Session, *, expense: Expense, user: User, changes: dict) -> Expense:
    if "vendor" in changes:
        vendor = str(changes["vendor"] or "").strip()
        if not vendor:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Vendor is required")
        expense.vendor = vendor
    if "description" in changes:
        description = changes["description"]
        expense.description = str(description).strip() or None if description else None
    if changes.get("amount") is not None:
        expense.amount = Decimal(changes["amount"]).quantize(Decimal("0.01"))
    if "tax_amount" in changes:
        tax = changes["tax_amount"]
        expense.tax_amount = Decimal(tax).quantize(Decimal("0.01")) if tax is not None else None
    if changes.get("expense_date") is not None:
        expense.expense_date = changes["expense_date"]
    if changes.get("currency") is not None:
        expense.currency = normalize_currency(changes["currency"], default=expense.currency)
    if "project_id" in changes:
        _assert_project_owned(session, project_id=changes["project_id"], user=user)
        expense.project_id = changes["project_id"]
    if "category_id" in changes:
        _assert_category_exists(session, category_id=changes["category_id"])
        expense.category_id = changes["category_id"]
    if changes.get("is_deductible") is not None:
        expense.is_deductible = bool(changes["is_deductible"])

    session.add(expense)
    session.commit()
    session.refresh(expense)
    return expense


def delete_expense(session: Session, *, expense: Expense) -> None:
    from freelance_ledger.modules.receipts.models import Receipt

    session.execute(
        update(Receipt).where(Receipt.expense_id == expense.id).values(expense_id=None)
    )
    session.delete(expense)
    session.commit()
