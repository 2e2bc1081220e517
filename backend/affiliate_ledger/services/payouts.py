from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from affiliate_ledger.core.config import get_settings
from affiliate_ledger.core.enums import (
    OUTSTANDING_PAYOUT_STATUSES,
    LedgerEntryType,
    PayoutMethod,
    PayoutStatus,
)
from affiliate_ledger.core.errors import (
    ConflictError,
    CurrencyMismatchError,
    InvalidStateError,
    NotFoundError,
    NothingOwedError,
)
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.ledger_entry import LedgerEntry
from affiliate_ledger.models.payout import Payout
from affiliate_ledger.services.affiliates import get_affiliate
from affiliate_ledger.services.audit import audit_log, snapshot
from affiliate_ledger.services.ledger import unsettled_entries, utcnow
from affiliate_ledger.services.money import format_cents, normalize_currency


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[PayoutStatus, set[PayoutStatus]] = {
    PayoutStatus.OWED: {PayoutStatus.APPROVED, PayoutStatus.VOID},
    PayoutStatus.APPROVED: {PayoutStatus.PAID, PayoutStatus.VOID},
    PayoutStatus.PAID: set(),
    PayoutStatus.VOID: set(),
}

_AUDIT_FIELDS = (
    "affiliate_id",
    "status",
    "net_payable_cents",
    "currency",
    "entry_count",
    "period_start",
    "period_end",
)


@dataclass(frozen=True)
class PayoutTransition:
    payout: Payout
    changed: bool


async def _lock_affiliate(session: AsyncSession, *, affiliate_id: uuid.UUID) -> None:
    """
    Serialize payout mutations for one affiliate.

    Bumping `ledger_revision` takes the affiliate's row lock on Postgres and the database
    write lock on SQLite, so it must be the first statement of the transaction. Other
    affiliates are never blocked.
    """
    res = await session.execute(
        update(Affiliate)
        .where(Affiliate.id == affiliate_id)
        .values(ledger_revision=Affiliate.ledger_revision + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise NotFoundError("Affiliate not found")


def _ensure_transition(payout: Payout, new_status: PayoutStatus) -> None:
    if new_status not in ALLOWED_TRANSITIONS[payout.status]:
        raise InvalidStateError(f"Invalid payout transition: {payout.status} -> {new_status}")


async def get_payout(session: AsyncSession, *, payout_id: uuid.UUID) -> Payout:
    payout = await session.get(Payout, payout_id)
    if payout is None:
        raise NotFoundError("Payout not found")
    return payout


async def _get_payout_locked(session: AsyncSession, *, payout_id: uuid.UUID) -> Payout:
    affiliate_id = (
        await session.execute(select(Payout.affiliate_id).where(Payout.id == payout_id))
    ).scalar_one_or_none()
    if affiliate_id is None:
        raise NotFoundError("Payout not found")
    await _lock_affiliate(session, affiliate_id=affiliate_id)
    payout = await session.get(Payout, payout_id, populate_existing=True)
    if payout is None:
        raise NotFoundError("Payout not found")
    return payout


async def outstanding_payout(session: AsyncSession, *, affiliate_id: uuid.UUID) -> Payout | None:
    return (
        await session.execute(
            select(Payout).where(
                Payout.affiliate_id == affiliate_id,
                Payout.status.in_(OUTSTANDING_PAYOUT_STATUSES),
            )
        )
    ).scalar_one_or_none()


async def generate_payout(
    session: AsyncSession,
    *,
    actor: str,
    affiliate_id: uuid.UUID,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    currency: str | None = None,
) -> Payout:
    """
    Gather an affiliate's unsettled entries into a new OWED payout.

    Candidates are the EARNED/ADJUSTMENT entries not yet claimed by a payout, optionally
    narrowed to `[period_start, period_end)` and to one currency. Entries are claimed with
    a conditional update so an entry can never end up in two payouts.
    """
    if period_start is not None and period_end is not None and period_end <= period_start:
        raise InvalidStateError("period_end must be after period_start")
    if currency is not None:
        currency = normalize_currency(currency)

    # The lock statement also detects unknown affiliates.
    await _lock_affiliate(session, affiliate_id=affiliate_id)
    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)

    existing = await outstanding_payout(session, affiliate_id=affiliate.id)
    if existing is not None:
        raise ConflictError(f"Affiliate already has an outstanding payout ({existing.id}, status={existing.status})")

    candidates = await unsettled_entries(
        session,
        affiliate_id=affiliate.id,
        currency=currency,
        period_start=period_start,
        period_end=period_end,
    )
    currencies = {e.currency for e in candidates}
    if len(currencies) > 1:
        raise CurrencyMismatchError(
            f"Unsettled entries span several currencies ({', '.join(sorted(currencies))}); pick one"
        )
    payout_currency = currency or (currencies.pop() if currencies else get_settings().default_currency)

    earned = [e for e in candidates if e.entry_type == LedgerEntryType.EARNED]
    adjustments = [e for e in candidates if e.entry_type == LedgerEntryType.ADJUSTMENT]
    gross_revenue = sum(e.gross_cents for e in earned)
    commission_earned = sum(e.amount_cents for e in earned)
    adjustments_total = sum(e.amount_cents for e in adjustments)
    net_payable = commission_earned + adjustments_total

    if net_payable <= 0:
        raise NothingOwedError("Nothing owed: net payable is zero or negative")
    minimum = get_settings().minimum_payout_cents
    if net_payable < minimum:
        raise NothingOwedError(
            f"Net payable {format_cents(net_payable, payout_currency)} is below the minimum payout "
            f"{format_cents(minimum, payout_currency)}"
        )

    payout = Payout(
        affiliate_id=affiliate.id,
        period_start=period_start,
        period_end=period_end,
        gross_revenue_cents=gross_revenue,
        commission_earned_cents=commission_earned,
        adjustments_cents=adjustments_total,
        net_payable_cents=net_payable,
        currency=payout_currency,
        entry_count=len(candidates),
        status=PayoutStatus.OWED,
        payout_method=affiliate.payout_method,
    )
    try:
        async with session.begin_nested():
            session.add(payout)
            await session.flush()
    except IntegrityError as e:
        raise ConflictError("Affiliate already has an outstanding payout") from e

    claimed = await session.execute(
        update(LedgerEntry)
        .where(
            LedgerEntry.id.in_([e.id for e in candidates]),
            LedgerEntry.payout_id.is_(None),
        )
        .values(payout_id=payout.id)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != len(candidates):
        # Raising aborts the transaction, which also discards the payout row.
        raise ConflictError("Ledger entries were claimed by another payout; retry")
    for entry in candidates:
        set_committed_value(entry, "payout_id", payout.id)

    await audit_log(
        session,
        actor=actor,
        entity_type="payout",
        entity_id=payout.id,
        action="generate",
        after={**snapshot(payout, *_AUDIT_FIELDS), "entry_ids": [e.id for e in candidates]},
    )
    logger.info(
        "Generated payout of %s",
        format_cents(net_payable, payout_currency),
        extra={"affiliate_id": str(affiliate.id), "payout_id": str(payout.id), "entry_count": len(candidates)},
    )
    return payout


async def approve_payout(
    session: AsyncSession,
    *,
    actor: str,
    payout_id: uuid.UUID,
    idempotent: bool = False,
) -> PayoutTransition:
    payout = await _get_payout_locked(session, payout_id=payout_id)
    if payout.status == PayoutStatus.APPROVED and idempotent:
        return PayoutTransition(payout=payout, changed=False)
    if payout.status != PayoutStatus.OWED:
        raise InvalidStateError(f"Only OWED payouts can be approved (status={payout.status})")

    _ensure_transition(payout, PayoutStatus.APPROVED)
    payout.status = PayoutStatus.APPROVED
    payout.approved_at = utcnow()
    payout.approved_by = actor
    await session.flush()

    await audit_log(
        session,
        actor=actor,
        entity_type="payout",
        entity_id=payout.id,
        action="approve",
        before={"status": PayoutStatus.OWED},
        after=snapshot(payout, "status", "approved_at", "approved_by"),
    )
    return PayoutTransition(payout=payout, changed=True)


async def settle_payout(
    session: AsyncSession,
    *,
    actor: str,
    payout_id: uuid.UUID,
    method: PayoutMethod | None = None,
    reference: str | None = None,
) -> PayoutTransition:
    """
    Mark an approved payout as paid and write its negative PAYOUT ledger entry.

    Replaying a settlement that already succeeded with the same reference is a no-op.
    """
    reference = (reference or "").strip() or None
    payout = await _get_payout_locked(session, payout_id=payout_id)

    if payout.status == PayoutStatus.PAID:
        if reference is not None and payout.payout_reference == reference:
            return PayoutTransition(payout=payout, changed=False)
        raise InvalidStateError("Payout already paid")
    if payout.status != PayoutStatus.APPROVED:
        raise InvalidStateError(f"Only APPROVED payouts can be settled (status={payout.status})")
    _ensure_transition(payout, PayoutStatus.PAID)

    method = method or payout.payout_method
    if method is None:
        affiliate = await get_affiliate(session, affiliate_id=payout.affiliate_id)
        method = affiliate.payout_method
    if method is None:
        raise InvalidStateError("Payout method is required")

    now = utcnow()
    payout.status = PayoutStatus.PAID
    payout.paid_at = now
    payout.payout_method = method
    payout.payout_reference = reference

    debit = LedgerEntry(
        affiliate_id=payout.affiliate_id,
        entry_type=LedgerEntryType.PAYOUT,
        invoice_id=None,
        assignment_id=None,
        amount_cents=-payout.net_payable_cents,
        currency=payout.currency,
        occurred_at=now,
        actor=actor,
        reason=f"Payout via {method.value}" + (f" ({reference})" if reference else ""),
        payout_id=payout.id,
    )
    try:
        async with session.begin_nested():
            session.add(debit)
            await session.flush()
    except IntegrityError as e:
        raise ConflictError("Payout already has a settlement entry") from e

    await audit_log(
        session,
        actor=actor,
        entity_type="payout",
        entity_id=payout.id,
        action="settle",
        before={"status": PayoutStatus.APPROVED},
        after={**snapshot(payout, "status", "paid_at", "payout_method", "payout_reference"), "ledger_entry_id": debit.id},
    )
    logger.info(
        "Payout settled: %s via %s",
        format_cents(payout.net_payable_cents, payout.currency),
        method.value,
        extra={"affiliate_id": str(payout.affiliate_id), "payout_id": str(payout.id)},
    )
    return PayoutTransition(payout=payout, changed=True)


async def void_payout(
    session: AsyncSession,
    *,
    actor: str,
    payout_id: uuid.UUID,
    reason: str | None = None,
) -> Payout:
    payout = await _get_payout_locked(session, payout_id=payout_id)
    if payout.status not in OUTSTANDING_PAYOUT_STATUSES:
        raise InvalidStateError(f"Only OWED or APPROVED payouts can be voided (status={payout.status})")
    _ensure_transition(payout, PayoutStatus.VOID)

    before_status = payout.status
    released = await session.execute(
        update(LedgerEntry)
        .where(
            LedgerEntry.payout_id == payout.id,
            LedgerEntry.entry_type != LedgerEntryType.PAYOUT,
        )
        .values(payout_id=None)
        .execution_options(synchronize_session="evaluate")
    )

    payout.status = PayoutStatus.VOID
    payout.voided_at = utcnow()
    payout.void_reason = (reason or "").strip() or "No reason provided"
    await session.flush()

    await audit_log(
        session,
        actor=actor,
        entity_type="payout",
        entity_id=payout.id,
        action="void",
        before={"status": before_status},
        after={**snapshot(payout, "status", "voided_at", "void_reason"), "released_entries": int(released.rowcount or 0)},
    )
    logger.info(
        "Payout voided, %s entries released",
        released.rowcount,
        extra={"affiliate_id": str(payout.affiliate_id), "payout_id": str(payout.id)},
    )
    return payout


async def list_payouts(
    session: AsyncSession,
    *,
    affiliate_id: uuid.UUID | None = None,
    status: PayoutStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Payout], int]:
    stmt = select(Payout)
    count_stmt = select(func.count()).select_from(Payout)
    if affiliate_id is not None:
        stmt = stmt.where(Payout.affiliate_id == affiliate_id)
        count_stmt = count_stmt.where(Payout.affiliate_id == affiliate_id)
    if status is not None:
        stmt = stmt.where(Payout.status == status)
        count_stmt = count_stmt.where(Payout.status == status)

    limit = max(1, min(int(limit), 200))
    rows = (
        await session.execute(stmt.order_by(Payout.created_at.desc(), Payout.id).limit(limit).offset(max(0, offset)))
    ).scalars().all()
    total = int((await session.execute(count_stmt)).scalar_one())
    return list(rows), total


async def payout_entries(session: AsyncSession, *, payout_id: uuid.UUID) -> list[LedgerEntry]:
    await get_payout(session, payout_id=payout_id)
    rows = (
        await session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.payout_id == payout_id)
            .order_by(LedgerEntry.occurred_at, LedgerEntry.id)
        )
    ).scalars().all()
    return list(rows)
