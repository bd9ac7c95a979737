from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from freelance_ledger.api.deps import get_current_user
from freelance_ledger.core.db import db_session
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.projects.schemas import ProjectCreateIn, ProjectOut, ProjectUpdateIn
from freelance_ledger.modules.projects.service import (
    create_project,
    delete_project,
    get_project_for_user,
    list_projects,
    update_project,
)

router = APIRouter(tags=["projects"])


@router.get("/projects", response_model=list[ProjectOut])
def list_projects_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ProjectOut]:
    return [
        ProjectOut.model_validate(p, from_attributes=True)
        for p in list_projects(session, user=user)
    ]


@router.post("/projects", response_model=ProjectOut, status_code=201)
def create_project_endpoint(
    payload: ProjectCreateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ProjectOut:
    project = create_project(session, user=user, **payload.model_dump())
    return ProjectOut.model_validate(project, from_attributes=True)


@router.get("/projects/{project_id}", response_model=ProjectOut)
def get_project_endpoint(
    project_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ProjectOut:
    project = get_project_for_user(session, project_id=project_id, user=user)
    return ProjectOut.model_validate(project, from_attributes=True)


@router.patch("/projects/{project_id}", response_model=ProjectOut)
def update_project_endpoint(
    project_id: uuid.UUID,
    payload: ProjectUpdateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ProjectOut:
    project = get_project_for_user(session, project_id=project_id, user=user)
    updated = update_project(session, project=project, changes=payload.model_dump(exclude_unset=True))
    return ProjectOut.model_validate(updated, from_attributes=True)


@router.delete("/projects/{project_id}")
def delete_project_endpoint(
    project_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    project = get_project_for_user(session, project_id=project_id, user=user)
    delete_project(session, project=project)
    return Response(status_code=204)
