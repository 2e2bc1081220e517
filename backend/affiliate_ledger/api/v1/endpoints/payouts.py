from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.db import get_session
from affiliate_ledger.core.enums import PayoutStatus
from affiliate_ledger.core.errors import to_http_exception
from affiliate_ledger.core.security import require_admin, require_reviewer
from affiliate_ledger.schemas.ledger import LedgerEntryOut
from affiliate_ledger.schemas.payout import (
    PayoutApprove,
    PayoutGenerate,
    PayoutOut,
    PayoutPage,
    PayoutSettle,
    PayoutTransitionOut,
    PayoutVoid,
)
from affiliate_ledger.services.payouts import (
    PayoutTransition,
    approve_payout,
    generate_payout,
    get_payout,
    list_payouts,
    payout_entries,
    settle_payout,
    void_payout,
)


router = APIRouter()


def _transition_out(result: PayoutTransition) -> PayoutTransitionOut:
    return PayoutTransitionOut(payout=PayoutOut.model_validate(result.payout), changed=result.changed)


@router.post("", response_model=PayoutOut)
async def generate_payout_endpoint(
    data: PayoutGenerate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> PayoutOut:
    try:
        async with session.begin():
            payout = await generate_payout(
                session,
                actor=actor,
                affiliate_id=data.affiliate_id,
                period_start=data.period_start,
                period_end=data.period_end,
                currency=data.currency,
            )
    except ValueError as e:
        raise to_http_exception(e) from e
    return PayoutOut.model_validate(payout)


@router.get("", response_model=PayoutPage)
async def list_payouts_endpoint(
    affiliate_id: uuid.UUID | None = None,
    status: PayoutStatus | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> PayoutPage:
    rows, total = await list_payouts(session, affiliate_id=affiliate_id, status=status, limit=limit, offset=offset)
    return PayoutPage(items=[PayoutOut.model_validate(r) for r in rows], total=total, limit=limit, offset=offset)


@router.get("/{payout_id}", response_model=PayoutOut)
async def get_payout_endpoint(
    payout_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> PayoutOut:
    try:
        payout = await get_payout(session, payout_id=payout_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return PayoutOut.model_validate(payout)


@router.get("/{payout_id}/entries", response_model=list[LedgerEntryOut])
async def payout_entries_endpoint(
    payout_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[LedgerEntryOut]:
    try:
        rows = await payout_entries(session, payout_id=payout_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return [LedgerEntryOut.model_validate(r) for r in rows]


@router.post("/{payout_id}/approve", response_model=PayoutTransitionOut)
async def approve_payout_endpoint(
    payout_id: uuid.UUID,
    data: PayoutApprove | None = None,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_reviewer),
) -> PayoutTransitionOut:
    idempotent = data.idempotent if data is not None else False
    try:
        async with session.begin():
            result = await approve_payout(session, actor=actor, payout_id=payout_id, idempotent=idempotent)
    except ValueError as e:
        raise to_http_exception(e) from e
    return _transition_out(result)


@router.post("/{payout_id}/settle", response_model=PayoutTransitionOut)
async def settle_payout_endpoint(
    payout_id: uuid.UUID,
    data: PayoutSettle,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> PayoutTransitionOut:
    try:
        async with session.begin():
            result = await settle_payout(
                session,
                actor=actor,
                payout_id=payout_id,
                method=data.payout_method,
                reference=data.reference,
            )
    except ValueError as e:
        raise to_http_exception(e) from e
    return _transition_out(result)


@router.post("/{payout_id}/void", response_model=PayoutOut)
async def void_payout_endpoint(
    payout_id: uuid.UUID,
    data: PayoutVoid,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> PayoutOut:
    try:
        async with session.begin():
            payout = await void_payout(session, actor=actor, payout_id=payout_id, reason=data.reason)
    except ValueError as e:
        raise to_http_exception(e) from e
    return PayoutOut.model_validate(payout)
