from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from affiliate_ledger.core.enums import AffiliateKind, AffiliateStatus, CommissionType, PayoutMethod


_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class AffiliateApply(BaseModel):
    kind: AffiliateKind
    owner_id: UUID
    display_name: str = Field(min_length=2, max_length=100)
    contact_email: str = Field(max_length=320, pattern=_EMAIL_PATTERN)
    country: str | None = Field(default=None, min_length=2, max_length=100)
    payout_method: PayoutMethod | None = None
    payout_details: dict[str, str] | None = None

    # Resellers only; falls back to the configured default rate.
    default_commission_type: CommissionType = CommissionType.PERCENT
    default_commission_value: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_default_commission(self) -> "AffiliateApply":
        if (
            self.default_commission_type == CommissionType.PERCENT
            and self.default_commission_value is not None
            and self.default_commission_value > 10_000
        ):
            raise ValueError("percent commission must be <= 10000 bp")
        return self


class AffiliateStatusChange(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class PayoutPreferencesUpdate(BaseModel):
    payout_method: PayoutMethod | None = None
    payout_details: dict[str, str] | None = None


class AffiliateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: AffiliateKind
    owner_id: UUID
    display_name: str
    contact_email: str
    country: str
    payout_method: PayoutMethod | None
    payout_details: dict | None
    status: AffiliateStatus
    status_reason: str | None
    default_commission_type: CommissionType
    default_commission_value: int
    created_at: datetime
    updated_at: datetime


class AffiliatePage(BaseModel):
    items: list[AffiliateOut]
    total: int = Field(ge=0)
    limit: int
    offset: int
