"""Wallet ledger service -- transaction ids, atomic appends, and integrity checks.

Every wallet mutation goes through ``append_transaction``: the balance update
and the ledger row are written in the caller's database transaction, so the
stored balance always equals the signed sum of the ledger (CREDIT adds,
DEBIT subtracts).
"""

from __future__ import annotations

import re
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Literal

import structlog
from fastapi import HTTPException
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.services.audit_logger import AuditLogger

log = structlog.get_logger()
audit = AuditLogger()

TxnType = Literal["DEBIT", "CREDIT"]

_BASE36 = string.digits + string.ascii_uppercase
_TRANSACTION_ID_RE = re.compile(r"^TX_[A-Z0-9]+_[A-Z0-9]+_[A-Z0-9]+_[A-Z0-9]{2}$")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class LedgerTransaction(BaseModel):
    transaction_id: str
    txn_type: TxnType
    amount_cents: int
    created_at: datetime
    asset_id: uuid.UUID | None = None
    payment_id: str | None = None
    description: str | None = None


class LedgerSummary(BaseModel):
    total_debits_cents: int
    total_credits_cents: int
    transaction_count: int
    last_transaction_at: datetime | None = None


class LedgerResponse(BaseModel):
    wallet_id: str
    balance_cents: int
    transactions: list[LedgerTransaction]
    summary: LedgerSummary


class LedgerEntry(BaseModel):
    """Result of a single append."""

    transaction_id: str
    wallet_id: str
    balance_cents: int
    created_at: datetime


class LedgerIntegrityReport(BaseModel):
    valid: bool
    errors: list[str]
    calculated_balance_cents: int


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def create_transaction_id(now_ms: int | None = None) -> str:
    """Return ``TX_<ts36>_<rand6>_<rand4>_<chk2>``.

    The checksum is the sum of the character codes of timestamp + first
    random block, in base 36, last two digits.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    timestamp = _base36(now_ms)
    random_a = _random_base36(6)
    random_b = _random_base36(4)
    checksum = _base36(sum(ord(c) for c in timestamp + random_a)).rjust(2, "0")[-2:]
    return f"TX_{timestamp}_{random_a}_{random_b}_{checksum}"


def is_valid_transaction_id(transaction_id: str) -> bool:
    return bool(_TRANSACTION_ID_RE.match(transaction_id or ""))


def create_wallet_id(user_id: uuid.UUID, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"wallet_{user_id.hex}_{_base36(now_ms).lower()}"


# ---------------------------------------------------------------------------
# Pure ledger helpers
# ---------------------------------------------------------------------------

def calculate_balance(transactions: list[LedgerTransaction]) -> int:
    balance = 0
    for txn in transactions:
        if txn.txn_type == "CREDIT":
            balance += txn.amount_cents
        else:
            balance -= txn.amount_cents
    return balance


def verify_ledger_integrity(
    balance_cents: int, transactions: list[LedgerTransaction]
) -> LedgerIntegrityReport:
    """Check a wallet snapshot for tampering or drift.

    Flags malformed ids, unknown types, non-positive amounts, timestamps that
    go backwards, and a stored balance that differs from the signed sum.
    """
    errors: list[str] = []
    calculated = 0
    last_ts: datetime | None = None

    for i, txn in enumerate(transactions):
        if not is_valid_transaction_id(txn.transaction_id):
            errors.append(f"Transaction {i}: Invalid ID format")
        if txn.txn_type not in ("DEBIT", "CREDIT"):
            errors.append(f"Transaction {i}: Invalid type {txn.txn_type!r}")
        if txn.amount_cents <= 0:
            errors.append(f"Transaction {i}: Invalid amount {txn.amount_cents}")

        if txn.txn_type == "CREDIT":
            calculated += txn.amount_cents
        else:
            calculated -= txn.amount_cents

        if last_ts is not None and txn.created_at < last_ts:
            errors.append(f"Transaction {i}: Timestamp out of order")
        last_ts = txn.created_at

    if calculated != balance_cents:
        errors.append(
            f"Balance mismatch: stored {balance_cents}, calculated {calculated}"
        )

    return LedgerIntegrityReport(
        valid=not errors, errors=errors, calculated_balance_cents=calculated
    )


def get_transaction_summary(transactions: list[LedgerTransaction]) -> LedgerSummary:
    debits = sum(t.amount_cents for t in transactions if t.txn_type == "DEBIT")
    credits = sum(t.amount_cents for t in transactions if t.txn_type == "CREDIT")
    return LedgerSummary(
        total_debits_cents=debits,
        total_credits_cents=credits,
        transaction_count=len(transactions),
        last_transaction_at=transactions[-1].created_at if transactions else None,
    )


# ---------------------------------------------------------------------------
# Repository functions
# ---------------------------------------------------------------------------

async def get_wallet_id(db: AsyncSession, user_id: uuid.UUID) -> str | None:
    result = await db.execute(
        text("SELECT wallet_id FROM wallets WHERE user_id = :user_id"),
        {"user_id": user_id},
    )
    row = result.fetchone()
    return row[0] if row is not None else None


async def create_wallet(db: AsyncSession, user_id: uuid.UUID) -> str:
    """Create an empty wallet for *user_id*.

    Raises HTTPException(409) if the user already has one.
    """
    wallet_id = create_wallet_id(user_id)
    result = await db.execute(
        text(
            "INSERT INTO wallets (wallet_id, user_id, balance_cents, version, "
            "created_at, updated_at) "
            "VALUES (:wallet_id, :user_id, 0, 0, :now, :now) "
            "ON CONFLICT (user_id) DO NOTHING "
            "RETURNING wallet_id"
        ),
        {"wallet_id": wallet_id, "user_id": user_id, "now": datetime.now(timezone.utc)},
    )
    if result.fetchone() is None:
        raise HTTPException(status_code=409, detail="Wallet already exists")

    log.info("wallet_created", user_id=str(user_id), wallet_id=wallet_id)
    return wallet_id


async def append_transaction(
    db: AsyncSession,
    wallet_id: str,
    user_id: uuid.UUID,
    txn_type: TxnType,
    amount_cents: int,
    asset_id: uuid.UUID | None = None,
    payment_id: str | None = None,
    description: str | None = None,
) -> LedgerEntry:
    """Append one ledger row and move the balance in the same transaction.

    The wallet row is updated with a conditional ``UPDATE ... RETURNING`` so
    two concurrent appends serialize on the row lock instead of overwriting
    each other's balance.

    Raises HTTPException(404) if the wallet does not exist or does not
    belong to *user_id*.
    """
    if amount_cents <= 0:
        raise HTTPException(status_code=400, detail="Amount must be positive")

    delta = amount_cents if txn_type == "CREDIT" else -amount_cents
    now = datetime.now(timezone.utc)

    result = await db.execute(
        text(
            "UPDATE wallets "
            "SET balance_cents = balance_cents + :delta, "
            "    version = version + 1, "
            "    updated_at = :now "
            "WHERE wallet_id = :wallet_id AND user_id = :user_id "
            "RETURNING balance_cents"
        ),
        {"delta": delta, "now": now, "wallet_id": wallet_id, "user_id": user_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Wallet not found")

    new_balance: int = row[0]
    transaction_id = create_transaction_id()

    await db.execute(
        text(
            "INSERT INTO wallet_transactions "
            "(transaction_id, wallet_id, txn_type, amount_cents, asset_id, "
            " payment_id, description, created_at) "
            "VALUES (:transaction_id, :wallet_id, :txn_type, :amount_cents, "
            " :asset_id, :payment_id, :description, :created_at)"
        ),
        {
            "transaction_id": transaction_id,
            "wallet_id": wallet_id,
            "txn_type": txn_type,
            "amount_cents": amount_cents,
            "asset_id": asset_id,
            "payment_id": payment_id,
            "description": description,
            "created_at": now,
        },
    )

    audit.log_ledger_event(
        wallet_id=wallet_id,
        user_id=user_id,
        txn_type=txn_type,
        amount_cents=amount_cents,
        transaction_id=transaction_id,
        payment_id=payment_id,
    )

    return LedgerEntry(
        transaction_id=transaction_id,
        wallet_id=wallet_id,
        balance_cents=new_balance,
        created_at=now,
    )


async def find_transaction_for_payment(
    db: AsyncSession, wallet_id: str, payment_id: str
) -> str | None:
    """Return the id of the ledger row that references *payment_id*, if any."""
    result = await db.execute(
        text(
            "SELECT transaction_id FROM wallet_transactions "
            "WHERE wallet_id = :wallet_id AND payment_id = :payment_id"
        ),
        {"wallet_id": wallet_id, "payment_id": payment_id},
    )
    row = result.fetchone()
    return row[0] if row is not None else None


async def get_ledger(db: AsyncSession, user_id: uuid.UUID) -> LedgerResponse:
    """Return the wallet, its balance and every transaction, oldest first."""
    result = await db.execute(
        text("SELECT wallet_id, balance_cents FROM wallets WHERE user_id = :user_id"),
        {"user_id": user_id},
    )
    wallet = result.fetchone()
    if wallet is None:
        raise HTTPException(status_code=404, detail="Wallet not found")

    wallet_id, balance = wallet[0], wallet[1]

    result = await db.execute(
        text(
            "SELECT transaction_id, txn_type, amount_cents, created_at, "
            "       asset_id, payment_id, description "
            "FROM wallet_transactions "
            "WHERE wallet_id = :wallet_id "
            "ORDER BY created_at, transaction_id"
        ),
        {"wallet_id": wallet_id},
    )
    transactions = [
        LedgerTransaction(
            transaction_id=row[0],
            txn_type=row[1],
            amount_cents=row[2],
            created_at=row[3],
            asset_id=row[4],
            payment_id=row[5],
            description=row[6],
        )
        for row in result.fetchall()
    ]

    return LedgerResponse(
        wallet_id=wallet_id,
        balance_cents=balance,
        transactions=transactions,
        summary=get_transaction_summary(transactions),
    )


async def delete_wallet(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Delete the user's wallet; its ledger rows go with it."""
    await db.execute(
        text("DELETE FROM wallets WHERE user_id = :user_id"),
        {"user_id": user_id},
    )
