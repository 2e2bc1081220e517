from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.db import get_session
from affiliate_ledger.core.errors import to_http_exception
from affiliate_ledger.core.security import require_admin
from affiliate_ledger.schemas.assignment import (
    CommissionAssignmentCreate,
    CommissionAssignmentOut,
    CommissionAssignmentRevise,
    TenantResellerAssign,
)
from affiliate_ledger.services.assignments import (
    assign_tenant_to_reseller,
    create_commission_assignment,
    end_commission_assignment,
    get_assignment,
    pause_commission_assignment,
    resume_commission_assignment,
    revise_commission_assignment,
)


router = APIRouter()


@router.post("", response_model=CommissionAssignmentOut)
async def create_assignment_endpoint(
    data: CommissionAssignmentCreate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> CommissionAssignmentOut:
    try:
        async with session.begin():
            assignment = await create_commission_assignment(session, actor=actor, data=data)
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment)


@router.post("/assign-tenant", response_model=CommissionAssignmentOut | None)
async def assign_tenant_endpoint(
    data: TenantResellerAssign,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> CommissionAssignmentOut | None:
    try:
        async with session.begin():
            assignment = await assign_tenant_to_reseller(session, actor=actor, data=data)
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment) if assignment is not None else None


@router.get("/{assignment_id}", response_model=CommissionAssignmentOut)
async def get_assignment_endpoint(
    assignment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CommissionAssignmentOut:
    try:
        assignment = await get_assignment(session, assignment_id=assignment_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment)


@router.post("/{assignment_id}/revise", response_model=CommissionAssignmentOut)
async def revise_assignment_endpoint(
    assignment_id: uuid.UUID,
    data: CommissionAssignmentRevise,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> CommissionAssignmentOut:
    try:
        async with session.begin():
            assignment = await revise_commission_assignment(
                session,
                actor=actor,
                assignment_id=assignment_id,
                policy=data.to_policy(),
            )
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment)


@router.post("/{assignment_id}/pause", response_model=CommissionAssignmentOut)
async def pause_assignment_endpoint(
    assignment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> CommissionAssignmentOut:
    try:
        async with session.begin():
            assignment = await pause_commission_assignment(session, actor=actor, assignment_id=assignment_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment)


@router.post("/{assignment_id}/resume", response_model=CommissionAssignmentOut)
async def resume_assignment_endpoint(
    assignment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> CommissionAssignmentOut:
    try:
        async with session.begin():
            assignment = await resume_commission_assignment(session, actor=actor, assignment_id=assignment_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment)


@router.post("/{assignment_id}/end", response_model=CommissionAssignmentOut)
async def end_assignment_endpoint(
    assignment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(require_admin),
) -> CommissionAssignmentOut:
    try:
        async with session.begin():
            assignment = await end_commission_assignment(session, actor=actor, assignment_id=assignment_id)
    except ValueError as e:
        raise to_http_exception(e) from e
    return CommissionAssignmentOut.model_validate(assignment)
