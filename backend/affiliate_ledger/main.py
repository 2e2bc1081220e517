from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import Any

from alembic.config import Config
from alembic.script import ScriptDirectory
from alembic.util import CommandError
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from affiliate_ledger.api.v1.router import api_router
from affiliate_ledger.core.config import get_settings
from affiliate_ledger.core.db import engine
from affiliate_ledger.core.security import require_basic_auth
from affiliate_ledger.models.job_lock import JobLock
from affiliate_ledger.services.accrual import SWEEP_LOCK_NAME, accrual_sweep_loop


logger = logging.getLogger(__name__)


@lru_cache
def _repo_head_revision() -> str | None:
    default_alembic_path = Path(__file__).resolve().parents[1] / "alembic.ini"
    alembic_path = Path(os.getenv("ALEMBIC_CONFIG_PATH", str(default_alembic_path)))
    if not alembic_path.exists():
        return None
    try:
        return ScriptDirectory.from_config(Config(str(alembic_path))).get_current_head()
    except CommandError as exc:
        logger.warning("Cannot read migration scripts from %s: %s", alembic_path, exc)
        return None


def _migration_state(*, has_version_table: bool, current: str | None, head: str | None) -> str:
    if not has_version_table:
        return "missing_alembic_version"
    if head is None:
        return "unknown_repo_head"
    return "up_to_date" if current == head else "behind_head"


async def _probe_database(conn: AsyncConnection) -> dict[str, Any]:
    await conn.execute(text("SELECT 1"))
    tables = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))

    current_revision: str | None = None
    if "alembic_version" in tables:
        current_revision = await conn.scalar(text("SELECT version_num FROM alembic_version LIMIT 1"))

    sweep: dict[str, Any] | None = None
    if "job_locks" in tables:
        row = (
            await conn.execute(
                select(JobLock.locked_by, JobLock.expires_at, JobLock.last_run_summary).where(
                    JobLock.name == SWEEP_LOCK_NAME
                )
            )
        ).first()
        if row is not None:
            sweep = {
                "locked_by": row.locked_by,
                "expires_at": row.expires_at.isoformat() if row.expires_at else None,
                "last_run": row.last_run_summary,
            }

    return {
        "has_version_table": "alembic_version" in tables,
        "current_revision": current_revision,
        "accrual_sweep": sweep,
    }


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Affiliate Commission Ledger",
        version="1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    if settings.cors_origins:
        origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/healthz/deep")
    async def deep_healthz() -> JSONResponse:
        try:
            async with engine.connect() as conn:
                probe = await _probe_database(conn)
        except Exception as exc:
            logger.warning("Deep health check failed: %s", exc)
            return JSONResponse(
                status_code=503,
                content={
                    "status": "error",
                    "checks": {"database": "error"},
                    "error": f"{exc.__class__.__name__}: {exc}",
                },
            )

        repo_head = _repo_head_revision()
        state = _migration_state(
            has_version_table=probe["has_version_table"],
            current=probe["current_revision"],
            head=repo_head,
        )
        healthy = state == "up_to_date"
        payload: dict[str, Any] = {
            "status": "ok" if healthy else "degraded",
            "checks": {
                "database": "ok",
                "migration": {
                    "state": state,
                    "current_revision": probe["current_revision"],
                    "repo_head_revision": repo_head,
                },
                "accrual_sweep": {
                    "enabled": settings.accrual_sweep_enabled,
                    "lease": probe["accrual_sweep"],
                },
            },
        }
        return JSONResponse(status_code=200 if healthy else 503, content=payload)

    @app.get("/openapi.json", include_in_schema=False, dependencies=[Depends(require_basic_auth)])
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/docs", include_in_schema=False, dependencies=[Depends(require_basic_auth)])
    async def swagger_ui_html():
        return get_swagger_ui_html(openapi_url="/openapi.json", title=app.title)

    @app.on_event("startup")
    async def start_accrual_sweep() -> None:
        if settings.accrual_sweep_enabled:
            logger.info("Starting accrual sweep every %ss", settings.accrual_sweep_interval_seconds)
            app.state.accrual_sweep_task = asyncio.create_task(accrual_sweep_loop(settings))

    @app.on_event("shutdown")
    async def stop_accrual_sweep() -> None:
        task = getattr(app.state, "accrual_sweep_task", None)
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
