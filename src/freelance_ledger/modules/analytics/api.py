from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from freelance_ledger.api.deps import get_current_user
from freelance_ledger.core.db import db_session
from freelance_ledger.modules.analytics.schemas import AnalyticsOut
from freelance_ledger.modules.analytics.service import AnalyticsFilters, build_analytics
from freelance_ledger.modules.identity.models import User

router = APIRouter(tags=["analytics"])


@router.get("/analytics", response_model=AnalyticsOut)
def analytics(
    project_id: uuid.UUID | None = Query(None, alias="projectId"),
    category_id: uuid.UUID | None = Query(None, alias="categoryId"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> AnalyticsOut:
    filters = AnalyticsFilters(
        project_id=project_id,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
    )
    return build_analytics(session, user=user, filters=filters)
