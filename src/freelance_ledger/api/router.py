from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from freelance_ledger.core.storage import diagnose_storage
from freelance_ledger.modules.analytics.api import router as analytics_router
from freelance_ledger.modules.expenses.api import router as expenses_router
from freelance_ledger.modules.identity.api import router as identity_router
from freelance_ledger.modules.incomes.api import router as incomes_router
from freelance_ledger.modules.projects.api import router as projects_router
from freelance_ledger.modules.receipts.api import router as receipts_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(projects_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(incomes_router, prefix="/api")
router.include_router(receipts_router, prefix="/api")
router.include_router(analytics_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz/storage")
def healthz_storage(*, write_test: bool = False) -> JSONResponse:
    result = diagnose_storage(write_test=write_test)
    status_code = 200 if result.get("ok") else 503
    return JSONResponse(status_code=status_code, content=result)
