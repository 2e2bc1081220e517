from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.config import get_settings
from affiliate_ledger.core.enums import EARNING_STATUSES, AffiliateKind, AffiliateStatus
from affiliate_ledger.core.errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.schemas.affiliate import AffiliateApply, PayoutPreferencesUpdate
from affiliate_ledger.services.audit import audit_log, snapshot


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[AffiliateKind, dict[AffiliateStatus, set[AffiliateStatus]]] = {
    AffiliateKind.PARTNER: {
        AffiliateStatus.PENDING: {AffiliateStatus.APPROVED, AffiliateStatus.REJECTED},
        AffiliateStatus.APPROVED: {AffiliateStatus.SUSPENDED},
        AffiliateStatus.SUSPENDED: {AffiliateStatus.APPROVED},
        AffiliateStatus.REJECTED: set(),
    },
    AffiliateKind.RESELLER: {
        AffiliateStatus.ACTIVE: {AffiliateStatus.SUSPENDED},
        AffiliateStatus.SUSPENDED: {AffiliateStatus.ACTIVE},
    },
}

INITIAL_STATUS: dict[AffiliateKind, AffiliateStatus] = {
    AffiliateKind.PARTNER: AffiliateStatus.PENDING,
    AffiliateKind.RESELLER: AffiliateStatus.ACTIVE,
}

# Status an affiliate returns to when a suspension is lifted.
EARNING_STATUS: dict[AffiliateKind, AffiliateStatus] = {
    AffiliateKind.PARTNER: AffiliateStatus.APPROVED,
    AffiliateKind.RESELLER: AffiliateStatus.ACTIVE,
}


def is_earning(affiliate: Affiliate) -> bool:
    return affiliate.status in EARNING_STATUSES


def ensure_earning(affiliate: Affiliate) -> None:
    if not is_earning(affiliate):
        raise ForbiddenError(f"Affiliate {affiliate.id} is not approved (status={affiliate.status})")


async def get_affiliate(session: AsyncSession, *, affiliate_id: uuid.UUID) -> Affiliate:
    affiliate = await session.get(Affiliate, affiliate_id)
    if affiliate is None:
        raise NotFoundError("Affiliate not found")
    return affiliate


async def find_affiliate_by_owner(
    session: AsyncSession, *, kind: AffiliateKind, owner_id: uuid.UUID
) -> Affiliate | None:
    return (
        await session.execute(select(Affiliate).where(Affiliate.kind == kind, Affiliate.owner_id == owner_id))
    ).scalar_one_or_none()


async def list_affiliates(
    session: AsyncSession,
    *,
    kind: AffiliateKind | None = None,
    status: AffiliateStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Affiliate], int]:
    stmt = select(Affiliate)
    count_stmt = select(func.count()).select_from(Affiliate)
    if kind is not None:
        stmt = stmt.where(Affiliate.kind == kind)
        count_stmt = count_stmt.where(Affiliate.kind == kind)
    if status is not None:
        stmt = stmt.where(Affiliate.status == status)
        count_stmt = count_stmt.where(Affiliate.status == status)

    limit = max(1, min(int(limit), 100))
    rows = (
        await session.execute(stmt.order_by(Affiliate.created_at.desc(), Affiliate.id).limit(limit).offset(offset))
    ).scalars().all()
    total = int((await session.execute(count_stmt)).scalar_one())
    return list(rows), total


async def apply_as_affiliate(session: AsyncSession, *, actor: str, data: AffiliateApply) -> Affiliate:
    existing = await find_affiliate_by_owner(session, kind=data.kind, owner_id=data.owner_id)
    if existing is not None:
        raise ConflictError(f"{data.kind.value.title()} application already exists (status={existing.status})")

    settings = get_settings()
    default_value = data.default_commission_value
    if default_value is None:
        default_value = (
            settings.default_reseller_commission_bp
            if data.kind == AffiliateKind.RESELLER
            else settings.default_partner_commission_bp
        )

    affiliate = Affiliate(
        kind=data.kind,
        owner_id=data.owner_id,
        display_name=data.display_name.strip(),
        contact_email=data.contact_email.strip(),
        country=(data.country or "US").strip(),
        payout_method=data.payout_method,
        payout_details=data.payout_details or {},
        status=INITIAL_STATUS[data.kind],
        default_commission_type=data.default_commission_type,
        default_commission_value=default_value,
        ledger_revision=0,
    )
    try:
        async with session.begin_nested():
            session.add(affiliate)
            await session.flush()
    except IntegrityError as e:
        # Lost the race against a concurrent application for the same owner.
        raise ConflictError(f"{data.kind.value.title()} application already exists") from e

    await audit_log(
        session,
        actor=actor,
        entity_type="affiliate",
        entity_id=affiliate.id,
        action="apply",
        after=snapshot(affiliate, "kind", "owner_id", "display_name", "contact_email", "status"),
    )
    logger.info("Affiliate application created", extra={"affiliate_id": str(affiliate.id), "kind": affiliate.kind.value})
    return affiliate


async def _transition(
    session: AsyncSession,
    *,
    actor: str,
    affiliate: Affiliate,
    new_status: AffiliateStatus,
    action: str,
    reason: str | None = None,
) -> Affiliate:
    if affiliate.status == new_status:
        raise InvalidStateError(f"Affiliate already {new_status.value.lower()}")
    allowed = ALLOWED_TRANSITIONS[affiliate.kind].get(affiliate.status, set())
    if new_status not in allowed:
        raise InvalidStateError(f"Invalid status transition: {affiliate.status} -> {new_status}")

    before = {"status": affiliate.status, "status_reason": affiliate.status_reason}
    affiliate.status = new_status
    affiliate.status_reason = reason
    await session.flush()

    await audit_log(
        session,
        actor=actor,
        entity_type="affiliate",
        entity_id=affiliate.id,
        action=action,
        before=before,
        after={"status": new_status, "status_reason": reason},
    )
    return affiliate


async def approve_affiliate(session: AsyncSession, *, actor: str, affiliate_id: uuid.UUID) -> Affiliate:
    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    if affiliate.status != AffiliateStatus.PENDING:
        raise InvalidStateError(f"Only PENDING affiliates can be approved (status={affiliate.status})")
    return await _transition(
        session, actor=actor, affiliate=affiliate, new_status=AffiliateStatus.APPROVED, action="approve"
    )


async def reject_affiliate(
    session: AsyncSession, *, actor: str, affiliate_id: uuid.UUID, reason: str | None = None
) -> Affiliate:
    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    if affiliate.status != AffiliateStatus.PENDING:
        raise InvalidStateError(f"Only PENDING affiliates can be rejected (status={affiliate.status})")
    return await _transition(
        session,
        actor=actor,
        affiliate=affiliate,
        new_status=AffiliateStatus.REJECTED,
        action="reject",
        reason=reason or "No reason provided",
    )


async def suspend_affiliate(
    session: AsyncSession, *, actor: str, affiliate_id: uuid.UUID, reason: str | None = None
) -> Affiliate:
    """
    Suspend an affiliate.

    Existing ledger entries and payouts are left untouched; suspension only blocks
    future accrual and new commission assignments.
    """
    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    affiliate = await _transition(
        session,
        actor=actor,
        affiliate=affiliate,
        new_status=AffiliateStatus.SUSPENDED,
        action="suspend",
        reason=reason or "No reason provided",
    )
    logger.info("Affiliate suspended", extra={"affiliate_id": str(affiliate.id)})
    return affiliate


async def reactivate_affiliate(session: AsyncSession, *, actor: str, affiliate_id: uuid.UUID) -> Affiliate:
    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    if affiliate.status != AffiliateStatus.SUSPENDED:
        raise InvalidStateError(f"Only SUSPENDED affiliates can be reactivated (status={affiliate.status})")
    return await _transition(
        session,
        actor=actor,
        affiliate=affiliate,
        new_status=EARNING_STATUS[affiliate.kind],
        action="reactivate",
    )


async def update_payout_preferences(
    session: AsyncSession,
    *,
    actor: str,
    affiliate_id: uuid.UUID,
    data: PayoutPreferencesUpdate,
) -> Affiliate:
    affiliate = await get_affiliate(session, affiliate_id=affiliate_id)
    before = snapshot(affiliate, "payout_method", "payout_details")
    affiliate.payout_method = data.payout_method
    affiliate.payout_details = data.payout_details or {}
    await session.flush()

    await audit_log(
        session,
        actor=actor,
        entity_type="affiliate",
        entity_id=affiliate.id,
        action="update_payout_preferences",
        before=before,
        after=snapshot(affiliate, "payout_method", "payout_details"),
    )
    return affiliate
