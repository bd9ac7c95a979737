from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from freelance_ledger.api.deps import get_current_user
from freelance_ledger.core.db import db_session
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.incomes.schemas import IncomeCreateIn, IncomeOut, IncomeUpdateIn
from freelance_ledger.modules.incomes.service import (
    create_income,
    delete_income,
    get_income_for_user,
    list_incomes,
    update_income,
)

router = APIRouter(tags=["incomes"])


@router.get("/incomes", response_model=list[IncomeOut])
def list_incomes_endpoint(
    project_id: uuid.UUID | None = Query(None, alias="projectId"),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[IncomeOut]:
    return [
        IncomeOut.model_validate(i, from_attributes=True)
        for i in list_incomes(session, user=user, project_id=project_id)
    ]


@router.post("/incomes", response_model=IncomeOut, status_code=201)
def create_income_endpoint(
    payload: IncomeCreateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IncomeOut:
    income = create_income(session, user=user, **payload.model_dump())
    return IncomeOut.model_validate(income, from_attributes=True)


@router.get("/incomes/{income_id}", response_model=IncomeOut)
def get_income_endpoint(
    income_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IncomeOut:
    income = get_income_for_user(session, income_id=income_id, user=user)
    return IncomeOut.model_validate(income, from_attributes=True)


@router.patch("/incomes/{income_id}", response_model=IncomeOut)
def update_income_endpoint(
    income_id: uuid.UUID,
    payload: IncomeUpdateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IncomeOut:
    income = get_income_for_user(session, income_id=income_id, user=user)
    updated = update_income(
        session, income=income, user=user, changes=payload.model_dump(exclude_unset=True)
    )
    return IncomeOut.model_validate(updated, from_attributes=True)


@router.delete("/incomes/{income_id}")
def delete_income_endpoint(
    income_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    income = get_income_for_user(session, income_id=income_id, user=user)
    delete_income(session, income=income)
    return Response(status_code=204)
