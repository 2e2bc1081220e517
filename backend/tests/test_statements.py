from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.enums import AffiliateKind, PayoutMethod
from affiliate_ledger.core.errors import InvalidStateError
from affiliate_ledger.schemas.assignment import TenantResellerAssign
from affiliate_ledger.services.accrual import accrue_earning
from affiliate_ledger.services.assignments import assign_tenant_to_reseller
from affiliate_ledger.services.ledger import record_adjustment
from affiliate_ledger.services.payouts import approve_payout, generate_payout, settle_payout
from affiliate_ledger.services.statements import (
    get_statement,
    list_earnings,
    month_range,
    monthly_statements,
    platform_summary,
)

from factories import (
    ACTOR,
    make_item,
    make_item_assignment,
    make_paid_invoice,
    make_partner,
    make_reseller,
    make_tenant,
)


MARCH = datetime(2026, 3, 15, tzinfo=UTC)
APRIL = datetime(2026, 4, 15, tzinfo=UTC)


def test_month_range_rolls_over_year() -> None:
    december = month_range(year=2025, month=12)
    assert december.start == datetime(2025, 12, 1, tzinfo=UTC)
    assert december.end == datetime(2026, 1, 1, tzinfo=UTC)

    february = month_range(year=2026, month=2)
    assert february.end == datetime(2026, 3, 1, tzinfo=UTC)


@pytest.mark.asyncio
async def test_statement_for_one_month(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        item = await make_item(db_session)
        tenant = await make_tenant(db_session)
        await make_item_assignment(db_session, partner=partner, item=item, commission_value=2000)
        for amount, paid_at in ((1250, MARCH), (2500, MARCH), (3750, APRIL)):
            invoice = await make_paid_invoice(db_session, tenant=tenant, item=item, amount_cents=amount, paid_at=paid_at)
            await accrue_earning(db_session, invoice_id=invoice.id)
        await record_adjustment(
            db_session,
            actor=ACTOR,
            affiliate_id=partner.id,
            amount_cents=-200,
            currency="USD",
            reason="refund",
            occurred_at=MARCH,
        )

    march = month_range(year=2026, month=3)
    statement = await get_statement(
        db_session, affiliate_id=partner.id, period_start=march.start, period_end=march.end
    )

    assert statement["gross_revenue_cents"] == 3750
    assert statement["platform_commission_cents"] == 750
    assert statement["earnings_cents"] == 3000
    assert statement["adjustments_cents"] == -200
    assert statement["payouts_cents"] == 0
    assert statement["net_change_cents"] == 2800
    assert statement["entry_count"] == 3
    assert statement["invoice_count"] == 2


@pytest.mark.asyncio
async def test_statement_includes_settled_payouts(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        item = await make_item(db_session)
        tenant = await make_tenant(db_session)
        await make_item_assignment(db_session, partner=partner, item=item, commission_value=2000)
        invoice = await make_paid_invoice(db_session, tenant=tenant, item=item, amount_cents=1250)
        await accrue_earning(db_session, invoice_id=invoice.id)
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
        await approve_payout(db_session, actor=ACTOR, payout_id=payout.id)
        await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, method=PayoutMethod.BANK, reference="TX")

    now = datetime.now(UTC)
    statement = await get_statement(
        db_session,
        affiliate_id=partner.id,
        period_start=datetime(now.year - 1, 1, 1, tzinfo=UTC),
        period_end=datetime(now.year + 1, 1, 1, tzinfo=UTC),
    )
    assert statement["earnings_cents"] == 1000
    assert statement["payouts_cents"] == 1000
    assert statement["net_change_cents"] == 0


@pytest.mark.asyncio
async def test_statement_rejects_inverted_window(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
    with pytest.raises(InvalidStateError):
        await get_statement(db_session, affiliate_id=partner.id, period_start=APRIL, period_end=MARCH)


@pytest.mark.asyncio
async def test_monthly_statements_cover_the_year(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        await record_adjustment(
            db_session,
            actor=ACTOR,
            affiliate_id=partner.id,
            amount_cents=500,
            currency="USD",
            reason="april bonus",
            occurred_at=APRIL,
        )

    months = await monthly_statements(db_session, affiliate_id=partner.id, year=2026)
    assert len(months) == 12
    assert [m["adjustments_cents"] for m in months] == [0, 0, 0, 500, 0, 0, 0, 0, 0, 0, 0, 0]


@pytest.mark.asyncio
async def test_list_earnings_totals(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        item = await make_item(db_session)
        tenant = await make_tenant(db_session)
        await make_item_assignment(db_session, partner=partner, item=item, commission_value=2000)
        for amount in (1250, 2500, 3750):
            invoice = await make_paid_invoice(db_session, tenant=tenant, item=item, amount_cents=amount)
            await accrue_earning(db_session, invoice_id=invoice.id)

    earnings = await list_earnings(db_session, affiliate_id=partner.id, limit=2)
    assert len(earnings["items"]) == 2
    assert earnings["total_count"] == 3
    assert earnings["total_gross_cents"] == 7500
    assert earnings["total_commission_cents"] == 1500
    assert earnings["total_earned_cents"] == 6000


@pytest.mark.asyncio
async def test_platform_summary_attributes_revenue(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        item = await make_item(db_session)
        tenant = await make_tenant(db_session)
        await make_item_assignment(db_session, partner=partner, item=item, commission_value=2000)
        addon = await make_paid_invoice(db_session, tenant=tenant, item=item, amount_cents=1250)
        await accrue_earning(db_session, invoice_id=addon.id)

        reseller = await make_reseller(db_session, commission_bp=1000)
        await assign_tenant_to_reseller(
            db_session, actor=ACTOR, data=TenantResellerAssign(tenant_id=tenant.id, reseller_id=reseller.id)
        )
        plan = await make_paid_invoice(db_session, tenant=tenant, amount_cents=10_000)
        await accrue_earning(db_session, invoice_id=plan.id)

    summary = await platform_summary(db_session)

    assert summary["totals"] == [
        {
            "currency": "USD",
            "invoice_count": 2,
            "gross_revenue_cents": 11_250,
            "affiliate_earnings_cents": 2_000,
            "platform_revenue_cents": 9_250,
        }
    ]
    rows = {row["kind"]: row for row in summary["by_affiliate"]}
    assert rows[AffiliateKind.PARTNER]["affiliate_earnings_cents"] == 1_000
    assert rows[AffiliateKind.PARTNER]["platform_revenue_cents"] == 250
    assert rows[AffiliateKind.RESELLER]["affiliate_earnings_cents"] == 1_000
    assert rows[AffiliateKind.RESELLER]["platform_revenue_cents"] == 9_000
