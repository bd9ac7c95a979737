from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from freelance_ledger.modules.expenses.models import ExpenseSource


class ExpenseCreateIn(BaseModel):
    vendor: str
    amount: Decimal = Field(gt=0)
    expense_date: date
    description: str | None = None
    tax_amount: Decimal | None = Field(default=None, ge=0)
    currency: str = "USD"
    project_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None
    is_deductible: bool = True


class ExpenseUpdateIn(BaseModel):
    vendor: str | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    expense_date: date | None = None
    description: str | None = None
    tax_amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    project_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None
    is_deductible: bool | None = None


class ExpenseOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID | None
    category_id: uuid.UUID | None
    vendor: str
    description: str | None
    amount: Decimal
    tax_amount: Decimal | None
    currency: str
    expense_date: date
    receipt_file_key: str | None
    receipt_file_name: str | None
    is_deductible: bool
    line_items: list | None
    ai_parsed: bool
    ai_confidence: Decimal | None
    source: ExpenseSource
    created_at: datetime
    updated_at: datetime


class ExpenseCategoryOut(BaseModel):
    id: uuid.UUID
    name: str
    schedule_c_line: str | None
    description: str | None
    is_deductible: bool
