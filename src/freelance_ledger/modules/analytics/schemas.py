from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class NamedValue(BaseModel):
    name: str
    value: float


class NamedAmount(BaseModel):
    name: str
    amount: float


class MonthlyAmount(BaseModel):
    month: str
    amount: float


class Totals(BaseModel):
    income: float
    expenses: float
    net: float


class AnalyticsOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    by_category: list[NamedValue]
    monthly: list[MonthlyAmount]
    by_project: list[NamedAmount]
    by_vendor: list[NamedAmount]
    totals: Totals
