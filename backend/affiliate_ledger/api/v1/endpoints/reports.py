from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.core.db import get_session
from affiliate_ledger.core.errors import to_http_exception
from affiliate_ledger.schemas.statement import PlatformSummaryOut
from affiliate_ledger.services.statements import platform_summary


router = APIRouter()


@router.get("/platform-summary", response_model=PlatformSummaryOut)
async def platform_summary_endpoint(
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    session: AsyncSession = Depends(get_session),
) -> PlatformSummaryOut:
    try:
        out = await platform_summary(session, period_start=period_start, period_end=period_end)
    except ValueError as e:
        raise to_http_exception(e) from e
    return PlatformSummaryOut(**out)
