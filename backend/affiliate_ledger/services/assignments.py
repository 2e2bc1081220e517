from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.enums import AffiliateKind, AssignmentStatus, RevenueSourceType
from affiliate_ledger.core.errors import ConflictError, InvalidStateError, NotFoundError
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.commission_assignment import CommissionAssignment
from affiliate_ledger.models.invoice import Invoice
from affiliate_ledger.models.revenue_source import MarketplaceItem, Tenant
from affiliate_ledger.schemas.assignment import CommissionAssignmentCreate, TenantResellerAssign
from affiliate_ledger.services.affiliates import ensure_earning, get_affiliate
from affiliate_ledger.services.audit import audit_log, snapshot
from affiliate_ledger.services.commission import CommissionPolicy, policy_fields, policy_from


logger = logging.getLogger(__name__)

SOURCE_TYPE_FOR_KIND: dict[AffiliateKind, RevenueSourceType] = {
    AffiliateKind.PARTNER: RevenueSourceType.MARKETPLACE_ITEM,
    AffiliateKind.RESELLER: RevenueSourceType.TENANT,
}

_AUDIT_FIELDS = (
    "affiliate_id",
    "source_type",
    "source_id",
    "commission_type",
    "commission_value",
    "currency",
    "status",
)


def utcnow() -> datetime:
    return datetime.now(UTC)


async def _ensure_source_exists(session: AsyncSession, *, source_type: RevenueSourceType, source_id: uuid.UUID) -> None:
    model = MarketplaceItem if source_type == RevenueSourceType.MARKETPLACE_ITEM else Tenant
    if await session.get(model, source_id) is None:
        label = "Marketplace item" if source_type == RevenueSourceType.MARKETPLACE_ITEM else "Tenant"
        raise NotFoundError(f"{label} not found")


async def get_assignment(session: AsyncSession, *, assignment_id: uuid.UUID) -> CommissionAssignment:
    assignment = await session.get(CommissionAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Commission assignment not found")
    return assignment


async def find_open_assignment(
    session: AsyncSession, *, source_type: RevenueSourceType, source_id: uuid.UUID
) -> CommissionAssignment | None:
    return (
        await session.execute(
            select(CommissionAssignment).where(
                CommissionAssignment.source_type == source_type,
                CommissionAssignment.source_id == source_id,
                CommissionAssignment.status != AssignmentStatus.ENDED,
            )
        )
    ).scalar_one_or_none()


async def _insert_assignment(
    session: AsyncSession,
    *,
    affiliate: Affiliate,
    source_type: RevenueSourceType,
    source_id: uuid.UUID,
    policy: CommissionPolicy,
    currency: str | None,
    supersedes_id: uuid.UUID | None = None,
) -> CommissionAssignment:
    commission_type, commission_value = policy_fields(policy)
    assignment = CommissionAssignment(
        affiliate_id=affiliate.id,
        source_type=source_type,
        source_id=source_id,
        commission_type=commission_type,
        commission_value=commission_value,
        currency=currency,
        status=AssignmentStatus.ACTIVE,
        valid_from=utcnow(),
        valid_to=None,
        supersedes_id=supersedes_id,
    )
    try:
        async with session.begin_nested():
            session.add(assignment)
            await session.flush()
    except IntegrityError as e:
        raise ConflictError("Revenue source already has an active commission assignment") from e
    return assignment


async def create_commission_assignment(
    session: AsyncSession,
    *,
    actor: str,
    data: CommissionAssignmentCreate,
) -> CommissionAssignment:
    affiliate = await get_affiliate(session, affiliate_id=data.affiliate_id)
    expected_source = SOURCE_TYPE_FOR_KIND[affiliate.kind]
    if data.source_type != expected_source:
        raise InvalidStateError(f"{affiliate.kind.value.title()} assignments must target {expected_source.value}")
    ensure_earning(affiliate)
    await _ensure_source_exists(session, source_type=data.source_type, source_id=data.source_id)

    if await find_open_assignment(session, source_type=data.source_type, source_id=data.source_id) is not None:
        raise ConflictError("Revenue source already has an active commission assignment")

    assignment = await _insert_assignment(
        session,
        affiliate=affiliate,
        source_type=data.source_type,
        source_id=data.source_id,
        policy=data.to_policy(),
        currency=data.currency,
    )
    await audit_log(
        session,
        actor=actor,
        entity_type="commission_assignment",
        entity_id=assignment.id,
        action="create",
        after=snapshot(assignment, *_AUDIT_FIELDS),
    )
    return assignment


async def end_commission_assignment(
    session: AsyncSession, *, actor: str, assignment_id: uuid.UUID
) -> CommissionAssignment:
    assignment = await get_assignment(session, assignment_id=assignment_id)
    if assignment.status == AssignmentStatus.ENDED:
        raise InvalidStateError("Commission assignment already ended")

    before = {"status": assignment.status, "valid_to": assignment.valid_to}
    assignment.status = AssignmentStatus.ENDED
    assignment.valid_to = utcnow()
    await session.flush()

    await audit_log(
        session,
        actor=actor,
        entity_type="commission_assignment",
        entity_id=assignment.id,
        action="end",
        before=before,
        after={"status": assignment.status, "valid_to": assignment.valid_to},
    )
    return assignment


async def _set_open_status(
    session: AsyncSession,
    *,
    actor: str,
    assignment_id: uuid.UUID,
    expected: AssignmentStatus,
    new_status: AssignmentStatus,
    action: str,
) -> CommissionAssignment:
    assignment = await get_assignment(session, assignment_id=assignment_id)
    if assignment.status != expected:
        raise InvalidStateError(f"Only {expected.value} assignments can be changed to {new_status.value}")

    assignment.status = new_status
    await session.flush()
    await audit_log(
        session,
        actor=actor,
        entity_type="commission_assignment",
        entity_id=assignment.id,
        action=action,
        before={"status": expected},
        after={"status": new_status},
    )
    return assignment


async def pause_commission_assignment(
    session: AsyncSession, *, actor: str, assignment_id: uuid.UUID
) -> CommissionAssignment:
    return await _set_open_status(
        session,
        actor=actor,
        assignment_id=assignment_id,
        expected=AssignmentStatus.ACTIVE,
        new_status=AssignmentStatus.PAUSED,
        action="pause",
    )


async def resume_commission_assignment(
    session: AsyncSession, *, actor: str, assignment_id: uuid.UUID
) -> CommissionAssignment:
    assignment = await get_assignment(session, assignment_id=assignment_id)
    affiliate = await get_affiliate(session, affiliate_id=assignment.affiliate_id)
    ensure_earning(affiliate)
    return await _set_open_status(
        session,
        actor=actor,
        assignment_id=assignment_id,
        expected=AssignmentStatus.PAUSED,
        new_status=AssignmentStatus.ACTIVE,
        action="resume",
    )


async def revise_commission_assignment(
    session: AsyncSession,
    *,
    actor: str,
    assignment_id: uuid.UUID,
    policy: CommissionPolicy,
) -> CommissionAssignment:
    """
    Change the commission terms of a revenue source.

    The current version is ended and a new version is opened that points back to it,
    so invoices accrued earlier stay traceable to the terms in effect at the time.
    """
    current = await get_assignment(session, assignment_id=assignment_id)
    if current.status == AssignmentStatus.ENDED:
        raise InvalidStateError("Ended commission assignments cannot be revised")
    affiliate = await get_affiliate(session, affiliate_id=current.affiliate_id)
    ensure_earning(affiliate)

    await end_commission_assignment(session, actor=actor, assignment_id=current.id)
    revised = await _insert_assignment(
        session,
        affiliate=affiliate,
        source_type=current.source_type,
        source_id=current.source_id,
        policy=policy,
        currency=current.currency,
        supersedes_id=current.id,
    )
    await audit_log(
        session,
        actor=actor,
        entity_type="commission_assignment",
        entity_id=revised.id,
        action="revise",
        before=snapshot(current, "commission_type", "commission_value"),
        after=snapshot(revised, *_AUDIT_FIELDS, "supersedes_id"),
    )
    return revised


async def assign_tenant_to_reseller(
    session: AsyncSession,
    *,
    actor: str,
    data: TenantResellerAssign,
) -> CommissionAssignment | None:
    """Attach a tenant to a reseller using the reseller's default commission terms."""
    await _ensure_source_exists(session, source_type=RevenueSourceType.TENANT, source_id=data.tenant_id)
    current = await find_open_assignment(session, source_type=RevenueSourceType.TENANT, source_id=data.tenant_id)

    if data.reseller_id is None:
        if current is not None:
            await end_commission_assignment(session, actor=actor, assignment_id=current.id)
        return None

    reseller = await get_affiliate(session, affiliate_id=data.reseller_id)
    if reseller.kind != AffiliateKind.RESELLER:
        raise InvalidStateError("Tenants can only be assigned to resellers")
    if current is not None and current.affiliate_id == reseller.id:
        return current
    ensure_earning(reseller)

    if current is not None:
        await end_commission_assignment(session, actor=actor, assignment_id=current.id)

    assignment = await _insert_assignment(
        session,
        affiliate=reseller,
        source_type=RevenueSourceType.TENANT,
        source_id=data.tenant_id,
        policy=policy_from(reseller.default_commission_type, reseller.default_commission_value),
        currency=None,
        supersedes_id=current.id if current is not None else None,
    )
    await audit_log(
        session,
        actor=actor,
        entity_type="commission_assignment",
        entity_id=assignment.id,
        action="assign_tenant",
        after=snapshot(assignment, *_AUDIT_FIELDS),
    )
    return assignment


async def resolve_assignment_for_invoice(session: AsyncSession, *, invoice: Invoice) -> CommissionAssignment | None:
    # Marketplace add-on invoices are attributed to the listing partner; everything else to the tenant's reseller.
    if invoice.marketplace_item_id is not None:
        return await find_open_assignment(
            session, source_type=RevenueSourceType.MARKETPLACE_ITEM, source_id=invoice.marketplace_item_id
        )
    return await find_open_assignment(session, source_type=RevenueSourceType.TENANT, source_id=invoice.tenant_id)


async def list_assignments(
    session: AsyncSession,
    *,
    affiliate_id: uuid.UUID,
    include_ended: bool = False,
) -> list[CommissionAssignment]:
    stmt = select(CommissionAssignment).where(CommissionAssignment.affiliate_id == affiliate_id)
    if not include_ended:
        stmt = stmt.where(CommissionAssignment.status != AssignmentStatus.ENDED)
    rows = (await session.execute(stmt.order_by(CommissionAssignment.valid_from.desc()))).scalars().all()
    return list(rows)
