from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from affiliate_ledger.core.enums import AffiliateKind
from affiliate_ledger.schemas.ledger import LedgerEntryOut


class StatementOut(BaseModel):
    affiliate_id: UUID
    period_start: datetime
    period_end: datetime
    currency: str | None
    gross_revenue_cents: int
    platform_commission_cents: int
    earnings_cents: int
    adjustments_cents: int
    payouts_cents: int
    net_change_cents: int
    entry_count: int = Field(ge=0)
    invoice_count: int = Field(ge=0)


class EarningsOut(BaseModel):
    items: list[LedgerEntryOut]
    total_count: int = Field(ge=0)
    total_gross_cents: int
    total_commission_cents: int
    total_earned_cents: int


class PlatformCurrencyTotals(BaseModel):
    currency: str
    invoice_count: int = Field(ge=0)
    gross_revenue_cents: int
    affiliate_earnings_cents: int
    platform_revenue_cents: int


class PlatformAffiliateRow(PlatformCurrencyTotals):
    affiliate_id: UUID
    display_name: str
    kind: AffiliateKind


class PlatformSummaryOut(BaseModel):
    period_start: datetime | None
    period_end: datetime | None
    totals: list[PlatformCurrencyTotals]
    by_affiliate: list[PlatformAffiliateRow]
