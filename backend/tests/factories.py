from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.enums import AffiliateKind, CommissionType, InvoiceStatus, RevenueSourceType
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.commission_assignment import CommissionAssignment
from affiliate_ledger.models.invoice import Invoice
from affiliate_ledger.models.revenue_source import MarketplaceItem, Tenant
from affiliate_ledger.schemas.affiliate import AffiliateApply
from affiliate_ledger.schemas.assignment import CommissionAssignmentCreate
from affiliate_ledger.services.affiliates import apply_as_affiliate, approve_affiliate
from affiliate_ledger.services.assignments import create_commission_assignment


ACTOR = "test-admin"


async def make_partner(session: AsyncSession, *, approve: bool = True, name: str = "Acme Add-ons") -> Affiliate:
    partner = await apply_as_affiliate(
        session,
        actor=ACTOR,
        data=AffiliateApply(
            kind=AffiliateKind.PARTNER,
            owner_id=uuid.uuid4(),
            display_name=name,
            contact_email="partner@example.com",
        ),
    )
    if approve:
        partner = await approve_affiliate(session, actor=ACTOR, affiliate_id=partner.id)
    return partner


async def make_reseller(session: AsyncSession, *, commission_bp: int = 2000, name: str = "Reseller Co") -> Affiliate:
    return await apply_as_affiliate(
        session,
        actor=ACTOR,
        data=AffiliateApply(
            kind=AffiliateKind.RESELLER,
            owner_id=uuid.uuid4(),
            display_name=name,
            contact_email="reseller@example.com",
            default_commission_type=CommissionType.PERCENT,
            default_commission_value=commission_bp,
        ),
    )


async def make_tenant(session: AsyncSession, *, name: str = "Tenant") -> Tenant:
    tenant = Tenant(name=name)
    session.add(tenant)
    await session.flush()
    return tenant


async def make_item(session: AsyncSession, *, slug: str | None = None) -> MarketplaceItem:
    item = MarketplaceItem(slug=slug or f"item-{uuid.uuid4().hex[:8]}", title="Add-on", currency="USD")
    session.add(item)
    await session.flush()
    return item


async def make_item_assignment(
    session: AsyncSession,
    *,
    partner: Affiliate,
    item: MarketplaceItem,
    commission_type: CommissionType = CommissionType.PERCENT,
    commission_value: int = 2000,
    currency: str | None = None,
) -> CommissionAssignment:
    return await create_commission_assignment(
        session,
        actor=ACTOR,
        data=CommissionAssignmentCreate(
            affiliate_id=partner.id,
            source_type=RevenueSourceType.MARKETPLACE_ITEM,
            source_id=item.id,
            commission_type=commission_type,
            commission_value=commission_value,
            currency=currency,
        ),
    )


async def make_paid_invoice(
    session: AsyncSession,
    *,
    tenant: Tenant,
    amount_cents: int,
    item: MarketplaceItem | None = None,
    currency: str = "USD",
    paid_at: datetime | None = None,
    status: InvoiceStatus = InvoiceStatus.PAID,
) -> Invoice:
    invoice = Invoice(
        tenant_id=tenant.id,
        marketplace_item_id=item.id if item is not None else None,
        amount_cents=amount_cents,
        currency=currency,
        status=status,
        paid_at=(paid_at or datetime.now(UTC)) if status == InvoiceStatus.PAID else None,
    )
    session.add(invoice)
    await session.flush()
    return invoice
