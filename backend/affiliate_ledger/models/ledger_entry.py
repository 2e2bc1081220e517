from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_ledger.core.enums import LedgerEntryType
from affiliate_ledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from affiliate_ledger.models.sql_enums import ledger_entry_type_enum


_EARNED = text("entry_type = 'EARNED'")
_PAYOUT = text("entry_type = 'PAYOUT'")


class LedgerEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index(
            "uq_ledger_earned_per_invoice",
            "affiliate_id",
            "invoice_id",
            unique=True,
            postgresql_where=_EARNED,
            sqlite_where=_EARNED,
        ),
        Index(
            "uq_ledger_payout_per_payout",
            "payout_id",
            unique=True,
            postgresql_where=_PAYOUT,
            sqlite_where=_PAYOUT,
        ),
        Index("ix_ledger_entries_affiliate_occurred_at", "affiliate_id", "occurred_at"),
    )

    affiliate_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False)
    entry_type: Mapped[LedgerEntryType] = mapped_column(ledger_entry_type_enum, nullable=False)

    invoice_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True)
    assignment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("commission_assignments.id"), nullable=True
    )

    # Positive=owed to the affiliate, Negative=paid out / clawed back
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    # Split snapshot for EARNED entries (zero otherwise).
    gross_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    commission_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    net_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    actor: Mapped[str] = mapped_column(String(200), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Settlement marker: the only column that changes after insert.
    # EARNED/ADJUSTMENT: payout that consumed the entry (NULL = unsettled).
    # PAYOUT: payout that the debit settles.
    payout_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payouts.id"), nullable=True, index=True
    )
