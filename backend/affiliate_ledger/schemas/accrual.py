from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from affiliate_ledger.core.enums import AccrualOutcome
from affiliate_ledger.schemas.ledger import LedgerEntryOut


class AccrualOut(BaseModel):
    invoice_id: UUID
    outcome: AccrualOutcome
    accrued: bool
    entry: LedgerEntryOut | None = None


class AccrualSweepOut(BaseModel):
    scanned: int = Field(ge=0)
    outcomes: dict[str, int]
    failed_invoice_ids: list[UUID]
