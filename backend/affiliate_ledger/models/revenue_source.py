from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_ledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


# Owned by the tenant/billing side of the platform; kept minimal here so that
# assignments and invoices can reference real revenue sources.


class Tenant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(200), nullable=False)


class MarketplaceItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "marketplace_items"

    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
