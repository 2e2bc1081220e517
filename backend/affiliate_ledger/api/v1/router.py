from __future__ import annotations

from fastapi import APIRouter, Depends

from affiliate_ledger.api.v1.endpoints import affiliates, assignments, invoices, payouts, reports
from affiliate_ledger.core.security import require_basic_auth


api_router = APIRouter(dependencies=[Depends(require_basic_auth)])

api_router.include_router(affiliates.router, prefix="/affiliates", tags=["affiliates"])
api_router.include_router(assignments.router, prefix="/assignments", tags=["assignments"])

api_router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
api_router.include_router(payouts.router, prefix="/payouts", tags=["payouts"])

api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
