from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from affiliate_ledger.core.enums import LedgerEntryType


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    affiliate_id: UUID
    entry_type: LedgerEntryType
    invoice_id: UUID | None
    assignment_id: UUID | None
    amount_cents: int
    gross_cents: int
    commission_cents: int
    net_cents: int
    currency: str
    occurred_at: datetime
    actor: str
    reason: str | None
    payout_id: UUID | None
    created_at: datetime


class LedgerEntryPage(BaseModel):
    items: list[LedgerEntryOut]
    total: int = Field(ge=0)
    limit: int
    offset: int


class AdjustmentCreate(BaseModel):
    # Positive credits the affiliate, negative claws back.
    amount_cents: int
    currency: str = Field(min_length=3, max_length=3)
    reason: str = Field(min_length=1, max_length=500)
    occurred_at: datetime | None = None

    @field_validator("currency", mode="before")
    @classmethod
    def _normalize_currency(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("amount_cents")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("amount_cents must be non-zero")
        return v


class CurrencyBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    total_cents: int
    unsettled_cents: int
    reserved_cents: int
    paid_out_cents: int


class BalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    affiliate_id: UUID
    total_cents: int
    unsettled_cents: int
    reserved_cents: int
    paid_out_cents: int
    by_currency: list[CurrencyBalanceOut]
