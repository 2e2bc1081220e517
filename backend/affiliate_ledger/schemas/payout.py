from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from affiliate_ledger.core.enums import PayoutMethod, PayoutStatus


class PayoutGenerate(BaseModel):
    affiliate_id: UUID
    period_start: datetime | None = None
    period_end: datetime | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)

    @model_validator(mode="after")
    def _check_window(self) -> "PayoutGenerate":
        if self.period_start and self.period_end and self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start")
        return self


class PayoutApprove(BaseModel):
    # Approving an already approved payout reports changed=false instead of failing.
    idempotent: bool = False


class PayoutSettle(BaseModel):
    payout_method: PayoutMethod | None = None
    reference: str | None = Field(default=None, max_length=200)


class PayoutVoid(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class PayoutOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    affiliate_id: UUID
    period_start: datetime | None
    period_end: datetime | None
    gross_revenue_cents: int
    commission_earned_cents: int
    adjustments_cents: int
    net_payable_cents: int
    currency: str
    entry_count: int
    status: PayoutStatus
    approved_at: datetime | None
    approved_by: str | None
    paid_at: datetime | None
    payout_method: PayoutMethod | None
    payout_reference: str | None
    voided_at: datetime | None
    void_reason: str | None
    created_at: datetime
    updated_at: datetime


class PayoutTransitionOut(BaseModel):
    payout: PayoutOut
    changed: bool


class PayoutPage(BaseModel):
    items: list[PayoutOut]
    total: int = Field(ge=0)
    limit: int
    offset: int
