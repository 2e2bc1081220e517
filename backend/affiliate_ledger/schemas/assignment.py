from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from affiliate_ledger.core.enums import AssignmentStatus, CommissionType, RevenueSourceType
from affiliate_ledger.services.commission import CommissionPolicy, policy_from


class CommissionPolicyIn(BaseModel):
    commission_type: CommissionType = CommissionType.PERCENT
    # PERCENT: basis points (2000 = 20%). FIXED: minor units.
    commission_value: int = Field(default=2000, ge=0)

    @model_validator(mode="after")
    def _check_percent_range(self) -> "CommissionPolicyIn":
        if self.commission_type == CommissionType.PERCENT and self.commission_value > 10_000:
            raise ValueError("percent commission must be <= 10000 bp")
        return self

    def to_policy(self) -> CommissionPolicy:
        return policy_from(self.commission_type, self.commission_value)


class CommissionAssignmentCreate(CommissionPolicyIn):
    affiliate_id: UUID
    source_type: RevenueSourceType
    source_id: UUID
    currency: str | None = Field(default=None, min_length=3, max_length=3)

    @field_validator("currency", mode="before")
    @classmethod
    def _normalize_currency(cls, v: object) -> object:
        if isinstance(v, str):
            code = v.strip().upper()
            return code or None
        return v


class CommissionAssignmentRevise(CommissionPolicyIn):
    pass


class TenantResellerAssign(BaseModel):
    tenant_id: UUID
    # None detaches the tenant from its current reseller.
    reseller_id: UUID | None = None


class CommissionAssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    affiliate_id: UUID
    source_type: RevenueSourceType
    source_id: UUID
    commission_type: CommissionType
    commission_value: int
    currency: str | None
    status: AssignmentStatus
    valid_from: datetime
    valid_to: datetime | None
    supersedes_id: UUID | None
    created_at: datetime
    updated_at: datetime
