from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.db import get_session
from affiliate_ledger.core.enums import AffiliateKind, AffiliateStatus, LedgerEntryType
from affiliate_ledger.core.errors import to_http_exception
from affiliate_ledger.core.security import require_admin
from affiliate_ledger.schemas.affiliate import (
    AffiliateApply,
    AffiliateOut,
    AffiliatePage,
    AffiliateStatusChange,
    PayoutPreferencesUpdate,
)
from affiliate_ledger.schemas.assignment import CommissionAssignmentOut
from affiliate_ledger.schemas.ledger import AdjustmentCreate, BalanceOut, LedgerEntryOut, LedgerEntryPage
from affiliate_ledger.schemas.statement import EarningsOut, StatementOut
from affiliate_ledger.services.affiliates import (
    apply_as_affiliate,
    approve_affiliate,
    get_affiliate,
    list_affiliates,
    reactivate_affiliate,
    reject_affiliate,
    suspend_affiliate,
    update_payout_preferences,
)
from affiliate_ledger.services.assignments import list_assignments
from affiliate_ledger.services.ledger import balance, list_entries, record_adjustment
from affiliate_ledger.services.statements import get_statement, list_earnings, monthly_statements


router = APIRouter()


@router.post("", response_model=AffiliateOut)
async def apply_affiliate_endpoint(
    data: AffiliateApply,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AffiliateOut:
    try:
        async with session.begin():
            affiliate = await apply_as_affiliate(session, actor=actor, data=data)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.get("", response_model=AffiliatePage)
async def list_affiliates_endpoint(
    kind: AffiliateKind | None = None,
    status: AffiliateStatus | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> AffiliatePage:
    rows, total = await list_affiliates(session, kind=kind, status=status, limit=limit, offset=offset)
    return AffiliatePage(
        items=[AffiliateOut.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{affiliate_id}", response_model=AffiliateOut)
async def get_affiliate_endpoint(
    affiliate_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> AffiliateOut:
    try:
        affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.post("/{affiliate_id}/approve", response_model=AffiliateOut)
async def approve_affiliate_endpoint(
    affiliate_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AffiliateOut:
    try:
        async with session.begin():
            affiliate = await approve_affiliate(session, actor=actor, affiliate_id=affiliate_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.post("/{affiliate_id}/reject", response_model=AffiliateOut)
async def reject_affiliate_endpoint(
    affiliate_id: uuid.UUID,
    data: AffiliateStatusChange,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AffiliateOut:
    try:
        async with session.begin():
            affiliate = await reject_affiliate(session, actor=actor, affiliate_id=affiliate_id, reason=data.reason)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.post("/{affiliate_id}/suspend", response_model=AffiliateOut)
async def suspend_affiliate_endpoint(
    affiliate_id: uuid.UUID,
    data: AffiliateStatusChange,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AffiliateOut:
    try:
        async with session.begin():
            affiliate = await suspend_affiliate(session, actor=actor, affiliate_id=affiliate_id, reason=data.reason)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.post("/{affiliate_id}/reactivate", response_model=AffiliateOut)
async def reactivate_affiliate_endpoint(
    affiliate_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AffiliateOut:
    try:
        async with session.begin():
            affiliate = await reactivate_affiliate(session, actor=actor, affiliate_id=affiliate_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.put("/{affiliate_id}/payout-preferences", response_model=AffiliateOut)
async def update_payout_preferences_endpoint(
    affiliate_id: uuid.UUID,
    data: PayoutPreferencesUpdate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> AffiliateOut:
    try:
        async with session.begin():
            affiliate = await update_payout_preferences(session, actor=actor, affiliate_id=affiliate_id, data=data)
    except ValueError as e:
        raise to_http_exception(e) from e
    return AffiliateOut.model_validate(affiliate)


@router.get("/{affiliate_id}/balance", response_model=BalanceOut)
async def get_balance_endpoint(
    affiliate_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> BalanceOut:
    try:
        result = await balance(session, affiliate_id=affiliate_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return BalanceOut.model_validate(result)


@router.get("/{affiliate_id}/earnings", response_model=EarningsOut)
async def list_earnings_endpoint(
    affiliate_id: uuid.UUID,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> EarningsOut:
    try:
        out = await list_earnings(
            session,
            affiliate_id=affiliate_id,
            period_start=period_start,
            period_end=period_end,
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        raise to_http_exception(e) from e
    return EarningsOut(
        items=[LedgerEntryOut.model_validate(e) for e in out["items"]],
        total_count=out["total_count"],
        total_gross_cents=out["total_gross_cents"],
        total_commission_cents=out["total_commission_cents"],
        total_earned_cents=out["total_earned_cents"],
    )


@router.get("/{affiliate_id}/entries", response_model=LedgerEntryPage)
async def list_entries_endpoint(
    affiliate_id: uuid.UUID,
    entry_type: LedgerEntryType | None = None,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> LedgerEntryPage:
    rows, total = await list_entries(
        session,
        affiliate_id=affiliate_id,
        entry_type=entry_type,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
        offset=offset,
    )
    return LedgerEntryPage(
        items=[LedgerEntryOut.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/{affiliate_id}/adjustments", response_model=LedgerEntryOut)
async def record_adjustment_endpoint(
    affiliate_id: uuid.UUID,
    data: AdjustmentCreate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> LedgerEntryOut:
    try:
        async with session.begin():
            entry = await record_adjustment(
                session,
                actor=actor,
                affiliate_id=affiliate_id,
                amount_cents=data.amount_cents,
                currency=data.currency,
                reason=data.reason,
                occurred_at=data.occurred_at,
            )
    except ValueError as e:
        raise to_http_exception(e) from e
    return LedgerEntryOut.model_validate(entry)


@router.get("/{affiliate_id}/statement", response_model=StatementOut)
async def get_statement_endpoint(
    affiliate_id: uuid.UUID,
    period_start: datetime,
    period_end: datetime,
    currency: str | None = Query(default=None, min_length=3, max_length=3),
    session: AsyncSession = Depends(get_session),
) -> StatementOut:
    try:
        out = await get_statement(
            session,
            affiliate_id=affiliate_id,
            period_start=period_start,
            period_end=period_end,
            currency=currency.upper() if currency else None,
        )
    except ValueError as e:
        raise to_http_exception(e) from e
    return StatementOut(**out)


@router.get("/{affiliate_id}/statements/{year}", response_model=list[StatementOut])
async def monthly_statements_endpoint(
    affiliate_id: uuid.UUID,
    year: int,
    session: AsyncSession = Depends(get_session),
) -> list[StatementOut]:
    try:
        rows = await monthly_statements(session, affiliate_id=affiliate_id, year=year)
    except ValueError as e:
        raise to_http_exception(e) from e
    return [StatementOut(**r) for r in rows]


@router.get("/{affiliate_id}/assignments", response_model=list[CommissionAssignmentOut])
async def list_affiliate_assignments_endpoint(
    affiliate_id: uuid.UUID,
    include_ended: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[CommissionAssignmentOut]:
    try:
        await get_affiliate(session, affiliate_id=affiliate_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    rows = await list_assignments(session, affiliate_id=affiliate_id, include_ended=include_ended)
    return [CommissionAssignmentOut.model_validate(r) for r in rows]
