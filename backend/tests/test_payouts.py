from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliate_ledger.core.config import get_settings
from affiliate_ledger.core.enums import LedgerEntryType, PayoutMethod, PayoutStatus
from affiliate_ledger.core.errors import (
    ConflictError,
    CurrencyMismatchError,
    InvalidStateError,
    NotFoundError,
    NothingOwedError,
)
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.ledger_entry import LedgerEntry
from affiliate_ledger.models.payout import Payout
from affiliate_ledger.schemas.affiliate import PayoutPreferencesUpdate
from affiliate_ledger.services.accrual import accrue_earning
from affiliate_ledger.services.affiliates import suspend_affiliate, update_payout_preferences
from affiliate_ledger.services.ledger import balance, record_adjustment
from affiliate_ledger.services.payouts import (
    ALLOWED_TRANSITIONS,
    approve_payout,
    generate_payout,
    list_payouts,
    payout_entries,
    settle_payout,
    void_payout,
)

from factories import ACTOR, make_item, make_item_assignment, make_paid_invoice, make_partner, make_tenant


async def _partner_with_earnings(session: AsyncSession, amounts: list[int]) -> Affiliate:
    partner = await make_partner(session)
    item = await make_item(session)
    tenant = await make_tenant(session)
    await make_item_assignment(session, partner=partner, item=item, commission_value=2000)
    for amount in amounts:
        invoice = await make_paid_invoice(session, tenant=tenant, item=item, amount_cents=amount)
        result = await accrue_earning(session, invoice_id=invoice.id)
        assert result.accrued
    return partner


def test_payout_transition_paths() -> None:
    assert ALLOWED_TRANSITIONS[PayoutStatus.OWED] == {PayoutStatus.APPROVED, PayoutStatus.VOID}
    assert ALLOWED_TRANSITIONS[PayoutStatus.APPROVED] == {PayoutStatus.PAID, PayoutStatus.VOID}
    assert ALLOWED_TRANSITIONS[PayoutStatus.PAID] == set()
    assert ALLOWED_TRANSITIONS[PayoutStatus.VOID] == set()


@pytest.mark.asyncio
async def test_generate_sums_unsettled_earnings(db_session: AsyncSession) -> None:
    async with db_session.begin():
        # 20% platform commission leaves the partner 10.00, 20.00 and 30.00.
        partner = await _partner_with_earnings(db_session, [1250, 2500, 3750])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

    assert payout.status == PayoutStatus.OWED
    assert payout.net_payable_cents == 6000
    assert payout.commission_earned_cents == 6000
    assert payout.gross_revenue_cents == 7500
    assert payout.adjustments_cents == 0
    assert payout.entry_count == 3
    assert payout.currency == "USD"

    entries = await payout_entries(db_session, payout_id=payout.id)
    assert len(entries) == 3
    assert {e.payout_id for e in entries} == {payout.id}
    assert sum(e.amount_cents for e in entries) == payout.net_payable_cents


@pytest.mark.asyncio
async def test_adjustments_are_netted_into_payout(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250, 2500])
        await record_adjustment(
            db_session, actor=ACTOR, affiliate_id=partner.id, amount_cents=-400, currency="USD", reason="refund"
        )
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

    assert payout.commission_earned_cents == 3000
    assert payout.adjustments_cents == -400
    assert payout.net_payable_cents == 2600
    assert payout.entry_count == 3


@pytest.mark.asyncio
async def test_only_one_outstanding_payout(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

    async with db_session.begin():
        with pytest.raises(ConflictError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

    async with db_session.begin():
        await approve_payout(db_session, actor=ACTOR, payout_id=payout.id)
        with pytest.raises(ConflictError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

    async with db_session.begin():
        await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, method=PayoutMethod.BANK, reference="TX-9")

    # Everything was settled, so there is nothing left to pay.
    async with db_session.begin():
        with pytest.raises(NothingOwedError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)


@pytest.mark.asyncio
async def test_concurrent_generation_creates_single_payout(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250, 2500, 3750])
    partner_id = partner.id

    async def _generate() -> Payout:
        async with session_factory() as session:
            async with session.begin():
                return await generate_payout(session, actor=ACTOR, affiliate_id=partner_id)

    results = await asyncio.gather(*(_generate() for _ in range(5)), return_exceptions=True)

    created = [r for r in results if isinstance(r, Payout)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 4
    assert created[0].net_payable_cents == 6000

    count = (
        await db_session.execute(select(func.count()).select_from(Payout).where(Payout.affiliate_id == partner_id))
    ).scalar_one()
    assert count == 1
    claimed = (
        await db_session.execute(
            select(func.count()).select_from(LedgerEntry).where(LedgerEntry.payout_id == created[0].id)
        )
    ).scalar_one()
    assert claimed == 3


@pytest.mark.asyncio
async def test_nothing_owed(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        with pytest.raises(NothingOwedError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

        await record_adjustment(
            db_session, actor=ACTOR, affiliate_id=partner.id, amount_cents=-300, currency="USD", reason="chargeback"
        )
        with pytest.raises(NothingOwedError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)


@pytest.mark.asyncio
async def test_minimum_payout_threshold(db_session: AsyncSession, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MINIMUM_PAYOUT_CENTS", "5000")
    get_settings.cache_clear()

    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        with pytest.raises(NothingOwedError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)


@pytest.mark.asyncio
async def test_unknown_affiliate(db_session: AsyncSession) -> None:
    async with db_session.begin():
        with pytest.raises(NotFoundError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=uuid.uuid4())


@pytest.mark.asyncio
async def test_mixed_currencies_require_explicit_currency(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        await record_adjustment(
            db_session, actor=ACTOR, affiliate_id=partner.id, amount_cents=1000, currency="USD", reason="bonus"
        )
        await record_adjustment(
            db_session, actor=ACTOR, affiliate_id=partner.id, amount_cents=800, currency="EUR", reason="bonus"
        )

        with pytest.raises(CurrencyMismatchError):
            await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id, currency="eur")

    assert payout.currency == "EUR"
    assert payout.net_payable_cents == 800
    assert payout.entry_count == 1


@pytest.mark.asyncio
async def test_period_window_limits_entries(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await make_partner(db_session)
        item = await make_item(db_session)
        tenant = await make_tenant(db_session)
        await make_item_assignment(db_session, partner=partner, item=item, commission_value=2000)
        for paid_at in (datetime(2026, 3, 10, tzinfo=UTC), datetime(2026, 4, 10, tzinfo=UTC)):
            invoice = await make_paid_invoice(db_session, tenant=tenant, item=item, amount_cents=1250, paid_at=paid_at)
            await accrue_earning(db_session, invoice_id=invoice.id)

        with pytest.raises(InvalidStateError):
            await generate_payout(
                db_session,
                actor=ACTOR,
                affiliate_id=partner.id,
                period_start=datetime(2026, 4, 1, tzinfo=UTC),
                period_end=datetime(2026, 3, 1, tzinfo=UTC),
            )

        payout = await generate_payout(
            db_session,
            actor=ACTOR,
            affiliate_id=partner.id,
            period_start=datetime(2026, 3, 1, tzinfo=UTC),
            period_end=datetime(2026, 4, 1, tzinfo=UTC),
        )

    assert payout.entry_count == 1
    assert payout.net_payable_cents == 1000
    remaining = await balance(db_session, affiliate_id=partner.id)
    assert remaining.unsettled_cents == 1000
    assert remaining.reserved_cents == 1000


@pytest.mark.asyncio
async def test_approve_and_settle(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250, 2500])
        await update_payout_preferences(
            db_session,
            actor=ACTOR,
            affiliate_id=partner.id,
            data=PayoutPreferencesUpdate(payout_method=PayoutMethod.STRIPE),
        )
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
    assert payout.payout_method == PayoutMethod.STRIPE

    async with db_session.begin():
        with pytest.raises(InvalidStateError):
            await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, reference="TX-1")

        approved = await approve_payout(db_session, actor="reviewer", payout_id=payout.id)
        assert approved.changed
        assert approved.payout.status == PayoutStatus.APPROVED
        assert approved.payout.approved_by == "reviewer"

        with pytest.raises(InvalidStateError):
            await approve_payout(db_session, actor="reviewer", payout_id=payout.id)
        replay = await approve_payout(db_session, actor="reviewer", payout_id=payout.id, idempotent=True)
        assert not replay.changed

        settled = await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, reference="TX-1")

    assert settled.changed
    assert settled.payout.status == PayoutStatus.PAID
    assert settled.payout.payout_method == PayoutMethod.STRIPE
    assert settled.payout.payout_reference == "TX-1"
    assert settled.payout.paid_at is not None

    debits = (
        await db_session.execute(
            select(LedgerEntry).where(
                LedgerEntry.payout_id == payout.id, LedgerEntry.entry_type == LedgerEntryType.PAYOUT
            )
        )
    ).scalars().all()
    assert len(debits) == 1
    assert debits[0].amount_cents == -3000


@pytest.mark.asyncio
async def test_settle_replay_with_same_reference_is_a_no_op(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
        await approve_payout(db_session, actor=ACTOR, payout_id=payout.id)
        await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, method=PayoutMethod.BKASH, reference="BK-1")

    async with db_session.begin():
        replay = await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, reference="BK-1")
        assert not replay.changed
        with pytest.raises(InvalidStateError):
            await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, reference="BK-2")

    debits = (
        await db_session.execute(
            select(func.count())
            .select_from(LedgerEntry)
            .where(LedgerEntry.payout_id == payout.id, LedgerEntry.entry_type == LedgerEntryType.PAYOUT)
        )
    ).scalar_one()
    assert debits == 1


@pytest.mark.asyncio
async def test_settle_requires_payout_method(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
        await approve_payout(db_session, actor=ACTOR, payout_id=payout.id)
        with pytest.raises(InvalidStateError):
            await settle_payout(db_session, actor=ACTOR, payout_id=payout.id)


@pytest.mark.asyncio
async def test_void_releases_entries_for_next_payout(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250, 2500])
        first = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
        await approve_payout(db_session, actor=ACTOR, payout_id=first.id)

    async with db_session.begin():
        voided = await void_payout(db_session, actor=ACTOR, payout_id=first.id, reason="wrong bank details")

    assert voided.status == PayoutStatus.VOID
    assert voided.void_reason == "wrong bank details"
    async with db_session.begin():
        released_entries = await payout_entries(db_session, payout_id=first.id)
        released = await balance(db_session, affiliate_id=partner.id)
    assert released_entries == []
    assert released.unsettled_cents == 3000
    assert released.reserved_cents == 0

    async with db_session.begin():
        second = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
    assert second.id != first.id
    assert second.net_payable_cents == first.net_payable_cents

    async with db_session.begin():
        with pytest.raises(InvalidStateError):
            await void_payout(db_session, actor=ACTOR, payout_id=first.id)


@pytest.mark.asyncio
async def test_paid_payout_cannot_be_voided(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
        await approve_payout(db_session, actor=ACTOR, payout_id=payout.id)
        await settle_payout(db_session, actor=ACTOR, payout_id=payout.id, method=PayoutMethod.BANK)

    async with db_session.begin():
        with pytest.raises(InvalidStateError):
            await void_payout(db_session, actor=ACTOR, payout_id=payout.id)


@pytest.mark.asyncio
async def test_suspension_keeps_outstanding_payout(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)
        await suspend_affiliate(db_session, actor=ACTOR, affiliate_id=partner.id, reason="under review")

    async with db_session.begin():
        approved = await approve_payout(db_session, actor=ACTOR, payout_id=payout.id)
    assert approved.payout.status == PayoutStatus.APPROVED
    assert approved.payout.net_payable_cents == 1000


@pytest.mark.asyncio
async def test_list_payouts_filters(db_session: AsyncSession) -> None:
    async with db_session.begin():
        partner = await _partner_with_earnings(db_session, [1250])
        payout = await generate_payout(db_session, actor=ACTOR, affiliate_id=partner.id)

    rows, total = await list_payouts(db_session, affiliate_id=partner.id)
    assert total == 1
    assert rows[0].id == payout.id

    rows, total = await list_payouts(db_session, status=PayoutStatus.PAID)
    assert total == 0
    assert rows == []
