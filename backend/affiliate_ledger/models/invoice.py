from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_ledger.core.enums import InvoiceStatus
from affiliate_ledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from affiliate_ledger.models.sql_enums import invoice_status_enum


class Invoice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "invoices"

    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    marketplace_item_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("marketplace_items.id"), nullable=True
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(invoice_status_enum, nullable=False, default=InvoiceStatus.OPEN)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    # Write-once split stamped at accrual time.
    affiliate_share_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    platform_revenue_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    commission_assignment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("commission_assignments.id"), nullable=True
    )
