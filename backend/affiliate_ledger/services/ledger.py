from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.enums import (
    OUTSTANDING_PAYOUT_STATUSES,
    SETTLEABLE_ENTRY_TYPES,
    LedgerEntryType,
)
from affiliate_ledger.core.errors import LedgerError
from affiliate_ledger.models.ledger_entry import LedgerEntry
from affiliate_ledger.models.payout import Payout
from affiliate_ledger.services.affiliates import get_affiliate
from affiliate_ledger.services.audit import audit_log, snapshot
from affiliate_ledger.services.money import normalize_currency


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class CurrencyBalance:
    currency: str
    total_cents: int = 0
    unsettled_cents: int = 0
    reserved_cents: int = 0
    paid_out_cents: int = 0


@dataclass
class LedgerBalance:
    """
    Running balance of one affiliate.

    total_cents:     sum of every entry (earned + adjustments - payouts)
    unsettled_cents: earned/adjustment entries not claimed by any payout
    reserved_cents:  entries claimed by an OWED/APPROVED payout
    paid_out_cents:  sum of PAYOUT debits, as a positive number
    """

    affiliate_id: uuid.UUID
    total_cents: int = 0
    unsettled_cents: int = 0
    reserved_cents: int = 0
    paid_out_cents: int = 0
    by_currency: list[CurrencyBalance] = field(default_factory=list)


def _window(stmt, *, period_start: datetime | None, period_end: datetime | None):
    if period_start is not None:
        stmt = stmt.where(LedgerEntry.occurred_at >= period_start)
    if period_end is not None:
        stmt = stmt.where(LedgerEntry.occurred_at < period_end)
    return stmt


async def balance(session: AsyncSession, *, affiliate_id: uuid.UUID) -> LedgerBalance:
    await get_affiliate(session, affiliate_id=affiliate_id)

    rows = (
        await session.execute(
            select(
                LedgerEntry.currency,
                LedgerEntry.entry_type,
                Payout.status,
                func.coalesce(func.sum(LedgerEntry.amount_cents), 0),
            )
            .select_from(LedgerEntry)
            .outerjoin(Payout, Payout.id == LedgerEntry.payout_id)
            .where(LedgerEntry.affiliate_id == affiliate_id)
            .group_by(LedgerEntry.currency, LedgerEntry.entry_type, Payout.status)
        )
    ).all()

    per_currency: dict[str, CurrencyBalance] = {}
    for currency, entry_type, payout_status, amount in rows:
        amount = int(amount or 0)
        bucket = per_currency.setdefault(currency, CurrencyBalance(currency=currency))
        bucket.total_cents += amount
        if entry_type == LedgerEntryType.PAYOUT:
            bucket.paid_out_cents += -amount
        elif payout_status is None:
            bucket.unsettled_cents += amount
        elif payout_status in OUTSTANDING_PAYOUT_STATUSES:
            bucket.reserved_cents += amount

    result = LedgerBalance(affiliate_id=affiliate_id, by_currency=sorted(per_currency.values(), key=lambda b: b.currency))
    for bucket in result.by_currency:
        result.total_cents += bucket.total_cents
        result.unsettled_cents += bucket.unsettled_cents
        result.reserved_cents += bucket.reserved_cents
        result.paid_out_cents += bucket.paid_out_cents
    return result


async def unsettled_entries(
    session: AsyncSession,
    *,
    affiliate_id: uuid.UUID,
    currency: str | None = None,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
) -> list[LedgerEntry]:
    stmt = select(LedgerEntry).where(
        LedgerEntry.affiliate_id == affiliate_id,
        LedgerEntry.entry_type.in_(SETTLEABLE_ENTRY_TYPES),
        LedgerEntry.payout_id.is_(None),
    )
    if currency is not None:
        stmt = stmt.where(LedgerEntry.currency == currency)
    stmt = _window(stmt, period_start=period_start, period_end=period_end)
    rows = (await session.execute(stmt.order_by(LedgerEntry.occurred_at, LedgerEntry.id))).scalars().all()
    return list(rows)


async def record_adjustment(
    session: AsyncSession,
    *,
    actor: str,
    affiliate_id: uuid.UUID,
    amount_cents: int,
    currency: str,
    reason: str,
    occurred_at: datetime | None = None,
) -> LedgerEntry:
    """Append a manual correction (chargeback when negative, goodwill credit when positive)."""
    if amount_cents == 0:
        raise LedgerError("Adjustment amount must be non-zero")
    reason = (reason or "").strip()
    if not reason:
        raise LedgerError("Adjustment reason is required")

    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    entry = LedgerEntry(
        affiliate_id=affiliate.id,
        entry_type=LedgerEntryType.ADJUSTMENT,
        invoice_id=None,
        assignment_id=None,
        amount_cents=amount_cents,
        currency=normalize_currency(currency),
        occurred_at=occurred_at or utcnow(),
        actor=actor,
        reason=reason,
    )
    session.add(entry)
    await session.flush()

    await audit_log(
        session,
        actor=actor,
        entity_type="ledger_entry",
        entity_id=entry.id,
        action="adjustment",
        after=snapshot(entry, "affiliate_id", "entry_type", "amount_cents", "currency", "reason"),
    )
    logger.info(
        "Ledger adjustment of %s %s recorded",
        amount_cents,
        entry.currency,
        extra={"affiliate_id": str(affiliate.id), "actor": actor},
    )
    return entry


async def list_entries(
    session: AsyncSession,
    *,
    affiliate_id: uuid.UUID,
    entry_type: LedgerEntryType | None = None,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[LedgerEntry], int]:
    stmt = select(LedgerEntry).where(LedgerEntry.affiliate_id == affiliate_id)
    count_stmt = select(func.count()).select_from(LedgerEntry).where(LedgerEntry.affiliate_id == affiliate_id)
    if entry_type is not None:
        stmt = stmt.where(LedgerEntry.entry_type == entry_type)
        count_stmt = count_stmt.where(LedgerEntry.entry_type == entry_type)
    stmt = _window(stmt, period_start=period_start, period_end=period_end)
    count_stmt = _window(count_stmt, period_start=period_start, period_end=period_end)

    limit = max(1, min(int(limit), 200))
    rows = (
        await session.execute(
            stmt.order_by(LedgerEntry.occurred_at.desc(), LedgerEntry.id).limit(limit).offset(max(0, offset))
        )
    ).scalars().all()
    total = int((await session.execute(count_stmt)).scalar_one())
    return list(rows), total
