from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from freelance_ledger.modules.analytics.schemas import (
    AnalyticsOut,
    MonthlyAmount,
    NamedAmount,
    NamedValue,
    Totals,
)
from freelance_ledger.modules.expenses.models import Expense, ExpenseCategory
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.incomes.models import Income
from freelance_ledger.modules.projects.models import Project

TOP_VENDORS = 5


@dataclass(frozen=True)
class AnalyticsFilters:
    project_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None
    start_date: date | None = None
    end_date: date | None = None


def _expense_conditions(user: User, filters: AnalyticsFilters) -> list:
    conds = [Expense.user_id == user.id]
    if filters.project_id:
        conds.append(Expense.project_id == filters.project_id)
    if filters.category_id:
        conds.append(Expense.category_id == filters.category_id)
    if filters.start_date:
        conds.append(Expense.expense_date >= filters.start_date)
    if filters.end_date:
        conds.append(Expense.expense_date <= filters.end_date)
    return conds


def _income_conditions(user: User, filters: AnalyticsFilters) -> list:
    conds = [Income.user_id == user.id]
    if filters.project_id:
        conds.append(Income.project_id == filters.project_id)
    if filters.start_date:
        conds.append(Income.income_date >= filters.start_date)
    if filters.end_date:
        conds.append(Income.income_date <= filters.end_date)
    return conds


def _f(value) -> float:
    return float(value or 0)


def build_analytics(session: Session, *, user: User, filters: AnalyticsFilters) -> AnalyticsOut:
    conds = _expense_conditions(user, filters)
    total_amount = func.sum(Expense.amount)

    by_category = session.execute(
        select(ExpenseCategory.name, total_amount)
        .select_from(Expense)
        .outerjoin(ExpenseCategory, Expense.category_id == ExpenseCategory.id)
        .where(*conds)
        .group_by(ExpenseCategory.name)
    ).all()

    by_project = session.execute(
        select(Project.name, total_amount)
        .select_from(Expense)
        .outerjoin(Project, Expense.project_id == Project.id)
        .where(*conds)
        .group_by(Project.name)
    ).all()

    by_vendor = session.execute(
        select(Expense.vendor, total_amount)
        .where(*conds)
        .group_by(Expense.vendor)
        .order_by(total_amount.desc())
        .limit(TOP_VENDORS)
    ).all()

    # Month bucketing differs per dialect; aggregate in Python instead.
    monthly: dict[str, Decimal] = defaultdict(Decimal)
    for expense_date, amount in session.execute(
        select(Expense.expense_date, Expense.amount).where(*conds)
    ):
        monthly[expense_date.strftime("%Y-%m")] += amount or Decimal("0")

    expenses_total = session.scalar(select(total_amount).where(*conds))
    income_total = session.scalar(
        select(func.sum(Income.amount)).where(*_income_conditions(user, filters))
    )

    return AnalyticsOut(
        by_category=[NamedValue(name=name or "Uncategorized", value=_f(v)) for name, v in by_category],
        monthly=[MonthlyAmount(month=m, amount=_f(monthly[m])) for m in sorted(monthly)],
        by_project=[NamedAmount(name=name or "General", amount=_f(v)) for name, v in by_project],
        by_vendor=[NamedAmount(name=name, amount=_f(v)) for name, v in by_vendor],
        totals=Totals(
            income=_f(income_total),
            expenses=_f(expenses_total),
            net=_f(Decimal(income_total or 0) - Decimal(expenses_total or 0)),
        ),
    )
