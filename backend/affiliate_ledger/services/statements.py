from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.enums import LedgerEntryType
from affiliate_ledger.core.errors import InvalidStateError
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.ledger_entry import LedgerEntry
from affiliate_ledger.services.affiliates import get_affiliate


@dataclass(frozen=True)
class MonthRange:
    start: datetime
    end: datetime


def month_range(*, year: int, month: int) -> MonthRange:
    start = datetime(year, month, 1, tzinfo=UTC)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=UTC)
    else:
        end = datetime(year, month + 1, 1, tzinfo=UTC)
    return MonthRange(start=start, end=end)


def _check_window(period_start: datetime | None, period_end: datetime | None) -> None:
    if period_start is not None and period_end is not None and period_end <= period_start:
        raise InvalidStateError("period_end must be after period_start")


def _window_filters(period_start: datetime | None, period_end: datetime | None) -> list:
    filters = []
    if period_start is not None:
        filters.append(LedgerEntry.occurred_at >= period_start)
    if period_end is not None:
        filters.append(LedgerEntry.occurred_at < period_end)
    return filters


async def get_statement(
    session: AsyncSession,
    *,
    affiliate_id: uuid.UUID,
    period_start: datetime,
    period_end: datetime,
    currency: str | None = None,
) -> dict:
    """Read-only projection of one affiliate's ledger over `[period_start, period_end)`."""
    _check_window(period_start, period_end)
    await get_affiliate(session, affiliate_id=affiliate_id)

    conditions = [LedgerEntry.affiliate_id == affiliate_id, *_window_filters(period_start, period_end)]
    if currency is not None:
        conditions.append(LedgerEntry.currency == currency)

    rows = (
        await session.execute(
            select(
                LedgerEntry.entry_type,
                func.coalesce(func.sum(LedgerEntry.gross_cents), 0),
                func.coalesce(func.sum(LedgerEntry.commission_cents), 0),
                func.coalesce(func.sum(LedgerEntry.amount_cents), 0),
                func.count(LedgerEntry.id),
                func.count(func.distinct(LedgerEntry.invoice_id)),
            )
            .where(and_(*conditions))
            .group_by(LedgerEntry.entry_type)
        )
    ).all()
    by_type = {
        entry_type: {
            "gross": int(gross),
            "commission": int(commission),
            "amount": int(amount),
            "entries": int(entries),
            "invoices": int(invoices),
        }
        for entry_type, gross, commission, amount, entries, invoices in rows
    }
    empty = {"gross": 0, "commission": 0, "amount": 0, "entries": 0, "invoices": 0}
    earned = by_type.get(LedgerEntryType.EARNED, empty)
    adjustments = by_type.get(LedgerEntryType.ADJUSTMENT, empty)
    payouts = by_type.get(LedgerEntryType.PAYOUT, empty)

    return {
        "affiliate_id": affiliate_id,
        "period_start": period_start,
        "period_end": period_end,
        "currency": currency,
        "gross_revenue_cents": earned["gross"],
        "platform_commission_cents": earned["commission"],
        "earnings_cents": earned["amount"],
        "adjustments_cents": adjustments["amount"],
        "payouts_cents": -payouts["amount"],
        "net_change_cents": earned["amount"] + adjustments["amount"] + payouts["amount"],
        "entry_count": sum(v["entries"] for v in by_type.values()),
        "invoice_count": earned["invoices"],
    }


async def monthly_statements(session: AsyncSession, *, affiliate_id: uuid.UUID, year: int) -> list[dict]:
    out: list[dict] = []
    for month in range(1, 13):
        mr = month_range(year=year, month=month)
        out.append(
            await get_statement(session, affiliate_id=affiliate_id, period_start=mr.start, period_end=mr.end)
        )
    return out


async def list_earnings(
    session: AsyncSession,
    *,
    affiliate_id: uuid.UUID,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    _check_window(period_start, period_end)
    await get_affiliate(session, affiliate_id=affiliate_id)

    conditions = [
        LedgerEntry.affiliate_id == affiliate_id,
        LedgerEntry.entry_type == LedgerEntryType.EARNED,
        *_window_filters(period_start, period_end),
    ]
    limit = max(1, min(int(limit), 200))
    items = (
        await session.execute(
            select(LedgerEntry)
            .where(and_(*conditions))
            .order_by(LedgerEntry.occurred_at.desc(), LedgerEntry.id)
            .limit(limit)
            .offset(max(0, offset))
        )
    ).scalars().all()

    count, gross, commission, earned = (
        await session.execute(
            select(
                func.count(LedgerEntry.id),
                func.coalesce(func.sum(LedgerEntry.gross_cents), 0),
                func.coalesce(func.sum(LedgerEntry.commission_cents), 0),
                func.coalesce(func.sum(LedgerEntry.amount_cents), 0),
            ).where(and_(*conditions))
        )
    ).one()

    return {
        "items": list(items),
        "total_count": int(count),
        "total_gross_cents": int(gross),
        "total_commission_cents": int(commission),
        "total_earned_cents": int(earned),
    }


async def platform_summary(
    session: AsyncSession,
    *,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
) -> dict:
    """
    Revenue attribution across all affiliates, per currency.

    Only accrued invoices are counted: gross is the invoiced amount, affiliate earnings
    are the EARNED entries, and platform revenue is what remains.
    """
    _check_window(period_start, period_end)
    conditions = [LedgerEntry.entry_type == LedgerEntryType.EARNED, *_window_filters(period_start, period_end)]

    rows = (
        await session.execute(
            select(
                Affiliate.id,
                Affiliate.display_name,
                Affiliate.kind,
                LedgerEntry.currency,
                func.count(LedgerEntry.id),
                func.coalesce(func.sum(LedgerEntry.gross_cents), 0),
                func.coalesce(func.sum(LedgerEntry.amount_cents), 0),
            )
            .select_from(LedgerEntry)
            .join(Affiliate, Affiliate.id == LedgerEntry.affiliate_id)
            .where(and_(*conditions))
            .group_by(Affiliate.id, Affiliate.display_name, Affiliate.kind, LedgerEntry.currency)
            .order_by(LedgerEntry.currency, func.sum(LedgerEntry.amount_cents).desc())
        )
    ).all()

    totals: dict[str, dict] = {}
    by_affiliate: list[dict] = []
    for affiliate_id, display_name, kind, currency, invoices, gross, earned in rows:
        gross, earned = int(gross), int(earned)
        by_affiliate.append(
            {
                "affiliate_id": affiliate_id,
                "display_name": display_name,
                "kind": kind,
                "currency": currency,
                "invoice_count": int(invoices),
                "gross_revenue_cents": gross,
                "affiliate_earnings_cents": earned,
                "platform_revenue_cents": gross - earned,
            }
        )
        bucket = totals.setdefault(
            currency,
            {
                "currency": currency,
                "invoice_count": 0,
                "gross_revenue_cents": 0,
                "affiliate_earnings_cents": 0,
                "platform_revenue_cents": 0,
            },
        )
        bucket["invoice_count"] += int(invoices)
        bucket["gross_revenue_cents"] += gross
        bucket["affiliate_earnings_cents"] += earned
        bucket["platform_revenue_cents"] += gross - earned

    return {
        "period_start": period_start,
        "period_end": period_end,
        "totals": [totals[c] for c in sorted(totals)],
        "by_affiliate": by_affiliate,
    }
