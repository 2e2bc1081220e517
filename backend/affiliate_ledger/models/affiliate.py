from __future__ import annotations

import uuid

from sqlalchemy import JSON, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_ledger.core.enums import AffiliateKind, AffiliateStatus, CommissionType, PayoutMethod
from affiliate_ledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from affiliate_ledger.models.sql_enums import (
    affiliate_kind_enum,
    affiliate_status_enum,
    commission_type_enum,
    payout_method_enum,
)


class Affiliate(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "affiliates"
    __table_args__ = (
        UniqueConstraint("kind", "owner_id", name="uq_affiliate_owner"),
    )

    kind: Mapped[AffiliateKind] = mapped_column(affiliate_kind_enum, nullable=False)
    # Tenant id for partners, user id for resellers.
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="US")

    payout_method: Mapped[PayoutMethod | None] = mapped_column(payout_method_enum, nullable=True)
    payout_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[AffiliateStatus] = mapped_column(affiliate_status_enum, nullable=False, index=True)
    status_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Resellers: applied to every tenant assigned to them.
    default_commission_type: Mapped[CommissionType] = mapped_column(
        commission_type_enum, nullable=False, default=CommissionType.PERCENT
    )
    default_commission_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Bumped by every payout mutation; the UPDATE doubles as the per-affiliate row lock.
    ledger_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
