from __future__ import annotations

import asyncio
import logging
import os
import random
import socket
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy import DateTime, and_, bindparam, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.config import Settings
from affiliate_ledger.core.enums import (
    EARNING_STATUSES,
    AccrualOutcome,
    AssignmentStatus,
    InvoiceStatus,
    LedgerEntryType,
    RevenueSourceType,
)
from affiliate_ledger.core.errors import CurrencyMismatchError
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.commission_assignment import CommissionAssignment
from affiliate_ledger.models.invoice import Invoice
from affiliate_ledger.models.job_lock import JobLock
from affiliate_ledger.models.ledger_entry import LedgerEntry
from affiliate_ledger.services.affiliates import is_earning
from affiliate_ledger.services.assignments import resolve_assignment_for_invoice
from affiliate_ledger.services.audit import audit_log
from affiliate_ledger.services.commission import (
    affiliate_share_cents,
    ensure_currency,
    platform_share_cents,
    policy_from,
    split,
)
from affiliate_ledger.services.ledger import utcnow


logger = logging.getLogger(__name__)
SessionLocal = None

SWEEP_LOCK_NAME = "accrual_sweep"
SWEEP_ACTOR = "system:accrual-sweep"


@dataclass(frozen=True)
class AccrualResult:
    outcome: AccrualOutcome
    entry: LedgerEntry | None = None

    @property
    def accrued(self) -> bool:
        return self.outcome == AccrualOutcome.ACCRUED


@dataclass
class AccrualSweepResult:
    scanned: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    failed_invoice_ids: list[uuid.UUID] = field(default_factory=list)


async def _earned_entry_for_invoice(session: AsyncSession, *, invoice_id: uuid.UUID) -> LedgerEntry | None:
    return (
        await session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.invoice_id == invoice_id, LedgerEntry.entry_type == LedgerEntryType.EARNED)
            .limit(1)
        )
    ).scalar_one_or_none()


async def accrue_earning(session: AsyncSession, *, invoice_id: uuid.UUID, actor: str = "system") -> AccrualResult:
    """
    Turn one paid invoice into exactly one EARNED ledger entry.

    Safe to call any number of times for the same invoice; every call after the first
    reports ALREADY_ACCRUED. Missing or unpaid invoices and unattributed revenue are
    reported as no-op outcomes, never raised.
    """
    invoice = await session.get(Invoice, invoice_id)
    if invoice is None:
        return AccrualResult(AccrualOutcome.INVOICE_NOT_FOUND)
    if invoice.status != InvoiceStatus.PAID:
        return AccrualResult(AccrualOutcome.INVOICE_NOT_PAID)

    existing = await _earned_entry_for_invoice(session, invoice_id=invoice.id)
    if existing is not None:
        return AccrualResult(AccrualOutcome.ALREADY_ACCRUED, existing)
    # A stamped invoice was split before (a zero share leaves no entry behind).
    if invoice.commission_assignment_id is not None:
        return AccrualResult(AccrualOutcome.ALREADY_ACCRUED)

    assignment = await resolve_assignment_for_invoice(session, invoice=invoice)
    if assignment is None:
        return AccrualResult(AccrualOutcome.NO_ASSIGNMENT)
    if assignment.status != AssignmentStatus.ACTIVE:
        return AccrualResult(AccrualOutcome.ASSIGNMENT_PAUSED)

    affiliate = await session.get(Affiliate, assignment.affiliate_id)
    if affiliate is None or not is_earning(affiliate):
        return AccrualResult(AccrualOutcome.AFFILIATE_NOT_ELIGIBLE)

    ensure_currency(invoice_currency=invoice.currency, assignment_currency=assignment.currency)
    parts = split(
        gross_cents=invoice.amount_cents,
        policy=policy_from(assignment.commission_type, assignment.commission_value),
    )
    share = affiliate_share_cents(kind=affiliate.kind, parts=parts)

    invoice.affiliate_share_cents = share
    invoice.platform_revenue_cents = platform_share_cents(kind=affiliate.kind, parts=parts)
    invoice.commission_assignment_id = assignment.id

    if share == 0:
        await session.flush()
        return AccrualResult(AccrualOutcome.ZERO_AMOUNT)

    entry = LedgerEntry(
        affiliate_id=affiliate.id,
        entry_type=LedgerEntryType.EARNED,
        invoice_id=invoice.id,
        assignment_id=assignment.id,
        amount_cents=share,
        gross_cents=parts.gross_cents,
        commission_cents=parts.commission_cents,
        net_cents=parts.net_cents,
        currency=invoice.currency,
        occurred_at=invoice.paid_at or utcnow(),
        actor=actor,
    )
    try:
        async with session.begin_nested():
            session.add(entry)
            await session.flush()
    except IntegrityError:
        # A concurrent call inserted the entry between our check and insert.
        existing = await _earned_entry_for_invoice(session, invoice_id=invoice.id)
        return AccrualResult(AccrualOutcome.ALREADY_ACCRUED, existing)

    await audit_log(
        session,
        actor=actor,
        entity_type="ledger_entry",
        entity_id=entry.id,
        action="earning_accrued",
        after={
            "invoice_id": invoice.id,
            "affiliate_id": affiliate.id,
            "assignment_id": assignment.id,
            "gross_cents": parts.gross_cents,
            "commission_cents": parts.commission_cents,
            "net_cents": parts.net_cents,
            "amount_cents": share,
            "currency": invoice.currency,
        },
    )
    logger.info(
        "Accrued %s %s for invoice %s",
        share,
        invoice.currency,
        invoice.id,
        extra={"affiliate_id": str(affiliate.id), "assignment_id": str(assignment.id)},
    )
    return AccrualResult(AccrualOutcome.ACCRUED, entry)


def _pending_invoices_stmt(*, limit: int):
    open_assignment = (
        select(CommissionAssignment.id)
        .join(Affiliate, Affiliate.id == CommissionAssignment.affiliate_id)
        .where(
            CommissionAssignment.status == AssignmentStatus.ACTIVE,
            Affiliate.status.in_(EARNING_STATUSES),
            or_(
                and_(
                    Invoice.marketplace_item_id.is_not(None),
                    CommissionAssignment.source_type == RevenueSourceType.MARKETPLACE_ITEM,
                    CommissionAssignment.source_id == Invoice.marketplace_item_id,
                ),
                and_(
                    Invoice.marketplace_item_id.is_(None),
                    CommissionAssignment.source_type == RevenueSourceType.TENANT,
                    CommissionAssignment.source_id == Invoice.tenant_id,
                ),
            ),
        )
        .exists()
    )
    earned = (
        select(LedgerEntry.id)
        .where(LedgerEntry.invoice_id == Invoice.id, LedgerEntry.entry_type == LedgerEntryType.EARNED)
        .exists()
    )
    return (
        select(Invoice.id)
        .where(
            Invoice.status == InvoiceStatus.PAID,
            Invoice.commission_assignment_id.is_(None),
            ~earned,
            open_assignment,
        )
        .order_by(Invoice.paid_at.asc().nullsfirst(), Invoice.id)
        .limit(max(1, int(limit)))
    )


async def accrue_pending_invoices(
    session: AsyncSession,
    *,
    limit: int = 200,
    actor: str = SWEEP_ACTOR,
) -> AccrualSweepResult:
    """Accrue paid invoices whose paid-invoice hook never reached the ledger."""
    invoice_ids = list((await session.execute(_pending_invoices_stmt(limit=limit))).scalars().all())
    result = AccrualSweepResult(scanned=len(invoice_ids))
    counts: Counter[str] = Counter()

    for invoice_id in invoice_ids:
        try:
            async with session.begin_nested():
                outcome = await accrue_earning(session, invoice_id=invoice_id, actor=actor)
            counts[outcome.outcome.value] += 1
        except CurrencyMismatchError:
            logger.warning("Skipping invoice %s: currency mismatch with its assignment", invoice_id)
            counts["CURRENCY_MISMATCH"] += 1
            result.failed_invoice_ids.append(invoice_id)

    result.outcomes = dict(counts)
    if invoice_ids:
        logger.info("Accrual sweep processed %s invoices: %s", len(invoice_ids), result.outcomes)
    return result


def _lock_holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def _get_session_local():
    global SessionLocal
    if SessionLocal is None:
        from affiliate_ledger.core.db import SessionLocal as _SessionLocal

        SessionLocal = _SessionLocal
    return SessionLocal


async def try_acquire_or_renew_lock(session: AsyncSession, *, name: str, holder: str, ttl_seconds: int) -> bool:
    now = utcnow()
    expires = now + timedelta(seconds=max(30, int(ttl_seconds)))

    stmt = text(
        "INSERT INTO job_locks (name, locked_at, locked_by, expires_at) "
        "VALUES (:name, :locked_at, :locked_by, :expires_at) "
        "ON CONFLICT (name) DO UPDATE SET "
        "locked_at = excluded.locked_at, "
        "locked_by = excluded.locked_by, "
        "expires_at = excluded.expires_at "
        "WHERE job_locks.expires_at <= :locked_at OR job_locks.locked_by = :locked_by"
    ).bindparams(
        bindparam("locked_at", type_=DateTime(timezone=True)),
        bindparam("expires_at", type_=DateTime(timezone=True)),
    )
    res = await session.execute(
        stmt,
        {
            "name": name,
            "locked_at": now,
            "locked_by": holder,
            "expires_at": expires,
        },
    )
    return bool(res.rowcount == 1)


async def run_accrual_sweep(session: AsyncSession, *, settings: Settings, holder: str) -> AccrualSweepResult | None:
    """One sweep tick; returns None when another process holds the lease."""
    acquired = await try_acquire_or_renew_lock(
        session,
        name=SWEEP_LOCK_NAME,
        holder=holder,
        ttl_seconds=settings.accrual_sweep_lock_ttl_seconds,
    )
    if not acquired:
        return None

    result = await accrue_pending_invoices(session, limit=settings.accrual_sweep_batch_size)
    await session.execute(
        update(JobLock)
        .where(JobLock.name == SWEEP_LOCK_NAME)
        .values(
            last_run_summary={
                "finished_at": utcnow().isoformat(),
                "scanned": result.scanned,
                "outcomes": result.outcomes,
            }
        )
    )
    return result


async def accrual_sweep_loop(settings: Settings) -> None:
    if not settings.accrual_sweep_enabled:
        return

    holder = _lock_holder_id()
    tick = max(10, int(settings.accrual_sweep_interval_seconds))

    while True:
        try:
            async with _get_session_local()() as session:
                async with session.begin():
                    await run_accrual_sweep(session, settings=settings, holder=holder)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Accrual sweep tick failed")

        await asyncio.sleep(tick + random.uniform(0, 3))
