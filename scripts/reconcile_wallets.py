#!/usr/bin/env python3
"""Nightly wallet reconciliation.

Compares each wallet's stored ``balance_cents`` with the signed sum of its
``wallet_transactions`` (CREDIT adds, DEBIT subtracts) and reports every
wallet where the two disagree. Also lists settlements stuck in
``processing`` and those parked as ``conflict`` (paid for an artwork that
was already sold), which need a refund.

Usage:
    DATABASE_URL=postgresql://... python scripts/reconcile_wallets.py

Exit codes:
    0 -- all balances match and every settlement completed
    1 -- one or more discrepancies found
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from datetime import datetime, timezone

import asyncpg  # type: ignore[import-untyped]

DEFAULT_DATABASE_URL = "postgresql://app:devpassword@db:5432/artmint"


def _get_dsn() -> str:
    """Return a raw ``postgresql://`` DSN (strip any SQLAlchemy dialect prefix)."""
    url = os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
    for prefix in ("postgresql+asyncpg://", "postgresql+psycopg2://"):
        if url.startswith(prefix):
            url = "postgresql://" + url[len(prefix):]
    return url


async def _balance_discrepancies(conn: asyncpg.Connection) -> list[dict]:
    rows = await conn.fetch(
        """
        SELECT
            w.wallet_id,
            w.user_id,
            w.balance_cents AS stored_balance,
            COALESCE(SUM(
                CASE WHEN t.txn_type = 'CREDIT' THEN t.amount_cents
                     ELSE -t.amount_cents END
            ), 0)::bigint AS computed_balance
        FROM wallets w
        LEFT JOIN wallet_transactions t USING (wallet_id)
        GROUP BY w.wallet_id, w.user_id, w.balance_cents
        HAVING w.balance_cents <> COALESCE(SUM(
            CASE WHEN t.txn_type = 'CREDIT' THEN t.amount_cents
                 ELSE -t.amount_cents END
        ), 0)
        ORDER BY w.wallet_id
        """
    )
    return [
        {
            "wallet_id": row["wallet_id"],
            "user_id": str(row["user_id"]),
            "stored_balance": row["stored_balance"],
            "computed_balance": row["computed_balance"],
            "difference": row["stored_balance"] - row["computed_balance"],
        }
        for row in rows
    ]


async def _settlements_in_status(conn: asyncpg.Connection, status: str) -> list[dict]:
    rows = await conn.fetch(
        """
        SELECT payment_id, asset_id, buyer_id, amount_cents, currency,
               trigger, created_at
        FROM settlements
        WHERE status = $1
        ORDER BY created_at
        """,
        status,
    )
    return [
        {
            "payment_id": row["payment_id"],
            "asset_id": str(row["asset_id"]),
            "buyer_id": str(row["buyer_id"]),
            "amount_cents": row["amount_cents"],
            "currency": row["currency"],
            "trigger": row["trigger"],
            "created_at": row["created_at"].isoformat(),
        }
        for row in rows
    ]


async def reconcile(dsn: str) -> dict:
    """Run every check and return the findings keyed by check name."""
    conn: asyncpg.Connection = await asyncpg.connect(dsn)
    try:
        return {
            "balance_discrepancies": await _balance_discrepancies(conn),
            "stuck_settlements": await _settlements_in_status(conn, "processing"),
            # Paid for an artwork that was already sold; needs a refund
            "conflicting_settlements": await _settlements_in_status(conn, "conflict"),
        }
    finally:
        await conn.close()


async def main() -> int:
    findings = await reconcile(_get_dsn())
    total = sum(len(items) for items in findings.values())

    report = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_discrepancies": total,
        **findings,
    }

    json.dump(report, sys.stdout, indent=2)
    sys.stdout.write("\n")

    return 1 if total else 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
