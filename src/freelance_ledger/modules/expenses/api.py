from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from freelance_ledger.api.deps import get_current_user
from freelance_ledger.core.db import db_session
from freelance_ledger.core.storage import StorageError, get_storage
from freelance_ledger.modules.expenses.schemas import (
    ExpenseCategoryOut,
    ExpenseCreateIn,
    ExpenseOut,
    ExpenseUpdateIn,
)
from freelance_ledger.modules.expenses.service import (
    create_manual_expense,
    delete_expense,
    get_expense_for_user,
    list_categories,
    list_expenses,
    update_expense,
)
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.receipts.storage import content_disposition

router = APIRouter(tags=["expenses"])


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses_endpoint(
    project_id: uuid.UUID | None = Query(None, alias="projectId"),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ExpenseOut]:
    return [
        ExpenseOut.model_validate(e, from_attributes=True)
        for e in list_expenses(session, user=user, project_id=project_id)
    ]


@router.get("/expenses/categories", response_model=list[ExpenseCategoryOut])
def list_categories_endpoint(
    session: Session = Depends(db_session),
    _: User = Depends(get_current_user),
) -> list[ExpenseCategoryOut]:
    return [ExpenseCategoryOut.model_validate(c, from_attributes=True) for c in list_categories(session)]


@router.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense_endpoint(
    payload: ExpenseCreateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = create_manual_expense(session, user=user, **payload.model_dump())
    return ExpenseOut.model_validate(expense, from_attributes=True)


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    return ExpenseOut.model_validate(expense, from_attributes=True)


@router.patch("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense_endpoint(
    expense_id: uuid.UUID,
    payload: ExpenseUpdateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    updated = update_expense(
        session, expense=expense, user=user, changes=payload.model_dump(exclude_unset=True)
    )
    return ExpenseOut.model_validate(updated, from_attributes=True)


@router.delete("/expenses/{expense_id}")
def delete_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    delete_expense(session, expense=expense)
    return Response(status_code=204)


@router.get("/expenses/{expense_id}/receipt")
def download_expense_receipt(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    if not expense.receipt_file_key:
        raise HTTPException(status_code=404, detail="Receipt not found")
    try:
        body = get_storage().get(key=expense.receipt_file_key)
    except StorageError as e:
        raise HTTPException(status_code=404, detail="Receipt not found") from e
    return Response(
        content=body,
        media_type=expense.receipt_mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(expense.receipt_file_name or "receipt")},
    )
