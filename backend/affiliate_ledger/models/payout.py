from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_ledger.core.enums import PayoutMethod, PayoutStatus
from affiliate_ledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from affiliate_ledger.models.sql_enums import payout_method_enum, payout_status_enum


_OUTSTANDING = text("status IN ('OWED', 'APPROVED')")


class Payout(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "payouts"
    __table_args__ = (
        # Single outstanding payout per affiliate.
        Index(
            "uq_payout_outstanding_per_affiliate",
            "affiliate_id",
            unique=True,
            postgresql_where=_OUTSTANDING,
            sqlite_where=_OUTSTANDING,
        ),
    )

    affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True
    )

    # Optional window used to select entries; NULL bounds mean "everything unsettled".
    period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    gross_revenue_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    commission_earned_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    adjustments_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    net_payable_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[PayoutStatus] = mapped_column(payout_status_enum, nullable=False, default=PayoutStatus.OWED)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(200), nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_method: Mapped[PayoutMethod | None] = mapped_column(payout_method_enum, nullable=True)
    payout_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
