from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from freelance_ledger.modules.incomes.models import IncomeStatus


class IncomeCreateIn(BaseModel):
    project_id: uuid.UUID
    amount: Decimal = Field(gt=0)
    income_date: date
    description: str | None = None
    status: IncomeStatus = IncomeStatus.PAID
    invoice_number: str | None = None
    payment_method: str | None = None
    notes: str | None = None


class IncomeUpdateIn(BaseModel):
    project_id: uuid.UUID | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    income_date: date | None = None
    description: str | None = None
    status: IncomeStatus | None = None
    invoice_number: str | None = None
    payment_method: str | None = None
    notes: str | None = None


class IncomeOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID
    amount: Decimal
    description: str | None
    income_date: date
    status: IncomeStatus
    invoice_number: str | None
    payment_method: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
