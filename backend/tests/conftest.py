from __future__ import annotations

import sys
from collections.abc import AsyncIterator
from pathlib import Path

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import affiliate_ledger.models  # noqa: E402,F401
from affiliate_ledger.core.config import get_settings  # noqa: E402
from affiliate_ledger.models.base import Base  # noqa: E402


@pytest_asyncio.fixture
async def db_engine(tmp_path, monkeypatch) -> AsyncIterator[AsyncEngine]:
    db_path = tmp_path / "test.db"

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("BASIC_AUTH_USERNAME", "test-user")
    monkeypatch.setenv("BASIC_AUTH_PASSWORD", "test-pass")
    monkeypatch.setenv("PAYOUT_REVIEWER_USERNAME", "test-reviewer")
    monkeypatch.setenv("PAYOUT_REVIEWER_PASSWORD", "review-pass")
    monkeypatch.setenv("DEFAULT_CURRENCY", "USD")
    monkeypatch.setenv("MINIMUM_PAYOUT_CENTS", "0")
    monkeypatch.setenv("ACCRUAL_SWEEP_ENABLED", "false")
    get_settings.cache_clear()

    # Concurrency tests queue several writers on the SQLite database lock.
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", future=True, connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session
