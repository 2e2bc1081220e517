from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.db import get_session
from affiliate_ledger.core.errors import to_http_exception
from affiliate_ledger.core.security import require_admin
from affiliate_ledger.schemas.accrual import AccrualOut, AccrualSweepOut
from affiliate_ledger.schemas.ledger import LedgerEntryOut
from affiliate_ledger.services.accrual import accrue_earning, accrue_pending_invoices


router = APIRouter()


@router.post("/accrual-sweep", response_model=AccrualSweepOut)
async def accrual_sweep_endpoint(
    limit: int = Query(default=200, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AccrualSweepOut:
    async with session.begin():
        result = await accrue_pending_invoices(session, limit=limit, actor=actor)
    return AccrualSweepOut(
        scanned=result.scanned,
        outcomes=result.outcomes,
        failed_invoice_ids=result.failed_invoice_ids,
    )


@router.post("/{invoice_id}/accrue", response_model=AccrualOut)
async def accrue_invoice_endpoint(
    invoice_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AccrualOut:
    """Paid-invoice hook. Safe to retry: repeated calls report ALREADY_ACCRUED."""
    try:
        async with session.begin():
            result = await accrue_earning(session, invoice_id=invoice_id, actor=actor)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AccrualOut(
        invoice_id=invoice_id,
        outcome=result.outcome,
        accrued=result.accrued,
        entry=LedgerEntryOut.model_validate(result.entry) if result.entry is not None else None,
    )
