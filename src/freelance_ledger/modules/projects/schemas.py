from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, EmailStr

from freelance_ledger.modules.projects.models import ProjectStatus


class ProjectCreateIn(BaseModel):
    name: str
    client_name: str | None = None
    client_email: EmailStr | None = None
    description: str | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    budget: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectUpdateIn(BaseModel):
    name: str | None = None
    client_name: str | None = None
    client_email: EmailStr | None = None
    description: str | None = None
    status: ProjectStatus | None = None
    budget: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    client_name: str | None
    client_email: str | None
    description: str | None
    status: ProjectStatus
    budget: Decimal | None
    start_date: date | None
    end_date: date | None
    created_at: datetime
    updated_at: datetime
