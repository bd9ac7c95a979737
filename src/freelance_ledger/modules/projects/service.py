from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.projects.models import Project, ProjectStatus

_MAX_LIST = 50


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def list_projects(session: Session, *, user: User) -> list[Project]:
    return list(
        session.scalars(
            select(Project)
            .where(Project.user_id == user.id)
            .order_by(Project.created_at.desc())
            .limit(_MAX_LIST)
        )
    )


def get_project_for_user(session: Session, *, project_id: uuid.UUID, user: User) -> Project:
    project = session.scalar(
        select(Project).where(Project.id == project_id, Project.user_id == user.id)
    )
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


def create_project(
    session: Session,
    *,
    user: User,
    name: str,
    client_name: str | None = None,
    client_email: str | None = None,
    description: str | None = None,
    status: ProjectStatus = ProjectStatus.ACTIVE,
    budget: Decimal | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Project:
    clean_name = _clean(name)
    if not clean_name:
        raise HTTPException(status_code=400, detail="Project name is required")
    project = Project(
        user_id=user.id,
        name=clean_name,
        client_name=_clean(client_name),
        client_email=_clean(client_email),
        description=_clean(description),
        status=status or ProjectStatus.ACTIVE,
        budget=budget,
        start_date=start_date,
        end_date=end_date,
    )
    session.add(project)
    session.commit()
    session.refresh(project)
    return project


def update_project(session: Session, *, project: Project, changes: dict) -> Project:
    if "name" in changes:
        name = _clean(changes["name"])
        if not name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Project name is required"
            )
        project.name = name
    for field in ("client_name", "client_email", "description"):
        if field in changes:
            setattr(project, field, _clean(changes[field]))
    if changes.get("status") is not None:
        project.status = changes["status"]
    for field in ("budget", "start_date", "end_date"):
        if field in changes:
            setattr(project, field, changes[field])
    session.add(project)
    session.commit()
    session.refresh(project)
    return project


def delete_project(session: Session, *, project: Project) -> None:
    from freelance_ledger.modules.expenses.models import Expense
    from freelance_ledger.modules.incomes.models import Income
    from freelance_ledger.modules.receipts.models import Receipt

    # Expenses and receipts outlive their project; incomes do not.
    session.execute(
        update(Expense).where(Expense.project_id == project.id).values(project_id=None)
    )
    session.execute(
        update(Receipt).where(Receipt.project_id == project.id).values(project_id=None)
    )
    session.execute(Income.__table__.delete().where(Income.project_id == project.id))
    session.delete(project)
    session.commit()
