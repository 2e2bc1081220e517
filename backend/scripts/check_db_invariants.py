from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

# Script entrypoint: ensure `backend/` is importable.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from affiliate_ledger.core.enums import (  # noqa: E402
    AffiliateKind,
    AffiliateStatus,
    AssignmentStatus,
    CommissionType,
    InvoiceStatus,
    LedgerEntryType,
    PayoutMethod,
    PayoutStatus,
    RevenueSourceType,
)


EXPECTED_ENUMS: dict[str, list[str]] = {
    "affiliate_kind": [e.value for e in AffiliateKind],
    "affiliate_status": [e.value for e in AffiliateStatus],
    "payout_method": [e.value for e in PayoutMethod],
    "commission_type": [e.value for e in CommissionType],
    "revenue_source_type": [e.value for e in RevenueSourceType],
    "assignment_status": [e.value for e in AssignmentStatus],
    "invoice_status": [e.value for e in InvoiceStatus],
    "ledger_entry_type": [e.value for e in LedgerEntryType],
    "payout_status": [e.value for e in PayoutStatus],
}

# Each query returns the offending rows; an empty result means the invariant holds.
LEDGER_CHECKS: dict[str, str] = {
    "at most one outstanding payout per affiliate": """
        SELECT affiliate_id, count(*)
        FROM payouts
        WHERE status IN ('OWED', 'APPROVED')
        GROUP BY affiliate_id
        HAVING count(*) > 1
    """,
    "at most one earned entry per (affiliate, invoice)": """
        SELECT affiliate_id, invoice_id, count(*)
        FROM ledger_entries
        WHERE entry_type = 'EARNED'
        GROUP BY affiliate_id, invoice_id
        HAVING count(*) > 1
    """,
    "non-void payout totals match their consumed entries": """
        SELECT p.id, p.net_payable_cents, coalesce(sum(le.amount_cents), 0)
        FROM payouts p
        LEFT JOIN ledger_entries le
          ON le.payout_id = p.id AND le.entry_type IN ('EARNED', 'ADJUSTMENT')
        WHERE p.status <> 'VOID'
        GROUP BY p.id, p.net_payable_cents
        HAVING p.net_payable_cents <> coalesce(sum(le.amount_cents), 0)
    """,
    "void payouts hold no entries": """
        SELECT p.id, count(le.id)
        FROM payouts p
        JOIN ledger_entries le ON le.payout_id = p.id
        WHERE p.status = 'VOID'
        GROUP BY p.id
    """,
    "every paid payout has exactly one matching payout entry": """
        SELECT p.id, count(le.id)
        FROM payouts p
        LEFT JOIN ledger_entries le
          ON le.payout_id = p.id AND le.entry_type = 'PAYOUT' AND le.amount_cents = -p.net_payable_cents
        WHERE p.status = 'PAID'
        GROUP BY p.id
        HAVING count(le.id) <> 1
    """,
}


async def _check_enums(conn: AsyncConnection) -> bool:
    ok = True
    for type_name, expected in EXPECTED_ENUMS.items():
        rows = (
            await conn.execute(
                text(
                    """
                    SELECT e.enumlabel
                    FROM pg_enum e
                    JOIN pg_type t ON t.oid = e.enumtypid
                    JOIN pg_namespace n ON n.oid = t.typnamespace
                    WHERE n.nspname = 'public' AND t.typname = :type_name
                    ORDER BY e.enumsortorder
                    """
                ),
                {"type_name": type_name},
            )
        ).all()
        actual = [r[0] for r in rows]

        missing = [v for v in expected if v not in actual]
        if missing:
            print(f"Enum type '{type_name}' is missing values: {missing}", file=sys.stderr)
            print(f"Expected: {expected}", file=sys.stderr)
            print(f"Actual:   {actual}", file=sys.stderr)
            ok = False
    return ok


async def _check_ledger(conn: AsyncConnection) -> bool:
    ok = True
    for name, sql in LEDGER_CHECKS.items():
        rows = (await conn.execute(text(sql))).all()
        if rows:
            print(f"Ledger invariant violated: {name} ({len(rows)} rows)", file=sys.stderr)
            for row in rows[:20]:
                print(f"  {tuple(row)}", file=sys.stderr)
            ok = False
    return ok


async def _main() -> int:
    url = os.environ.get("DATABASE_URL")
    if not url:
        print("DATABASE_URL is required.", file=sys.stderr)
        return 2

    engine = create_async_engine(url, pool_pre_ping=True)
    try:
        async with engine.connect() as conn:
            enums_ok = await _check_enums(conn)
            ledger_ok = await _check_ledger(conn)
    finally:
        await engine.dispose()

    if not (enums_ok and ledger_ok):
        return 1
    print("DB invariants ok (enums complete, ledger consistent).")
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))
