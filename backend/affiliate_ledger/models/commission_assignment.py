from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_ledger.core.enums import AssignmentStatus, CommissionType, RevenueSourceType
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from affiliate_ledger.models.sql_enums import (
    assignment_status_enum,
    commission_type_enum,
    revenue_source_type_enum,
)


_OPEN_ASSIGNMENT = text("status <> 'ENDED'")


class CommissionAssignment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "commission_assignments"
    __table_args__ = (
        # At most one open (ACTIVE or PAUSED) assignment per revenue source.
        Index(
            "uq_commission_assignment_open_source",
            "source_type",
            "source_id",
            unique=True,
            postgresql_where=_OPEN_ASSIGNMENT,
            sqlite_where=_OPEN_ASSIGNMENT,
        ),
    )

    affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True
    )

    source_type: Mapped[RevenueSourceType] = mapped_column(revenue_source_type_enum, nullable=False)
    source_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    commission_type: Mapped[CommissionType] = mapped_column(commission_type_enum, nullable=False)
    # PERCENT: basis points (2000 = 20%). FIXED: minor units.
    commission_value: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    status: Mapped[AssignmentStatus] = mapped_column(
        assignment_status_enum, nullable=False, default=AssignmentStatus.ACTIVE
    )
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    supersedes_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("commission_assignments.id"), nullable=True
    )

    affiliate: Mapped[Affiliate] = relationship()
