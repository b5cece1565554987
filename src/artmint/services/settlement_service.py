"""Purchase settlement -- ledger debit, ownership transfer, and index upkeep.

``settle_purchase`` is the single settlement routine behind both the Stripe
webhook and the buyer-triggered fallback. It runs inside the caller's
database transaction:

0. claim the payment id in ``settlements`` (unique key; a second caller
   sees the first caller's result instead of settling again)
1. lock the asset row; if it can no longer be bought by this buyer, park
   the settlement as ``conflict`` and stop
2. append a DEBIT to the buyer's wallet
3. move ownership under the lock, append provenance, close the asset's
   accepted offer
4. move the asset between collection indexes, mark the settlement done

Any failure raises and the whole transaction rolls back, so a retry starts
from a clean slate. A conflict is not a failure: it is committed so Stripe
stops retrying, and ``scripts/reconcile_wallets.py`` reports it for refund.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import structlog
from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.services.audit_logger import AuditLogger
from artmint.services.collection_service import add_user_asset, remove_user_asset
from artmint.services.offer_service import close_accepted_offers, get_accepted_offer
from artmint.services.wallet_service import (
    append_transaction,
    find_transaction_for_payment,
)

log = structlog.get_logger()
audit = AuditLogger()

SettlementTrigger = Literal["webhook", "fallback"]

PURCHASABLE_STATUSES = ("sale", "resale")

MSG_PROCESSED = "Purchase processed successfully"
MSG_ALREADY_PROCESSED = "Purchase already processed"
MSG_UNAVAILABLE = "Artwork is no longer available; payment held for refund"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentDetails:
    """Everything settlement needs, taken from a completed checkout session."""

    payment_id: str
    session_id: str
    asset_id: uuid.UUID
    buyer_id: uuid.UUID
    wallet_id: str
    amount_cents: int
    currency: str


@dataclass
class SettlementResult:
    transaction_id: str | None
    payment_id: str
    already_processed: bool
    ownership_transferred: bool = False
    conflict: bool = False

    @property
    def message(self) -> str:
        if self.conflict:
            return MSG_UNAVAILABLE
        return MSG_ALREADY_PROCESSED if self.already_processed else MSG_PROCESSED


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _claim_settlement(
    db: AsyncSession, payment: PaymentDetails, trigger: SettlementTrigger
) -> bool:
    """Insert the idempotency row. Returns False if the payment was claimed before."""
    result = await db.execute(
        text(
            "INSERT INTO settlements "
            "(payment_id, session_id, asset_id, buyer_id, wallet_id, "
            " amount_cents, currency, trigger, status, created_at) "
            "VALUES (:payment_id, :session_id, :asset_id, :buyer_id, :wallet_id, "
            " :amount_cents, :currency, :trigger, 'processing', :now) "
            "ON CONFLICT (payment_id) DO NOTHING "
            "RETURNING payment_id"
        ),
        {
            "payment_id": payment.payment_id,
            "session_id": payment.session_id,
            "asset_id": payment.asset_id,
            "buyer_id": payment.buyer_id,
            "wallet_id": payment.wallet_id,
            "amount_cents": payment.amount_cents,
            "currency": payment.currency,
            "trigger": trigger,
            "now": datetime.now(timezone.utc),
        },
    )
    return result.fetchone() is not None


async def _recorded_outcome(
    db: AsyncSession, payment_id: str
) -> tuple[str | None, str | None]:
    """Return (transaction_id, status) recorded for an earlier claim."""
    result = await db.execute(
        text(
            "SELECT transaction_id, status FROM settlements "
            "WHERE payment_id = :payment_id"
        ),
        {"payment_id": payment_id},
    )
    row = result.fetchone()
    return (row[0], row[1]) if row is not None else (None, None)


async def _finish_settlement(
    db: AsyncSession,
    payment_id: str,
    status: Literal["completed", "conflict"],
    transaction_id: str | None,
) -> None:
    await db.execute(
        text(
            "UPDATE settlements SET status = :status, "
            "transaction_id = :transaction_id, completed_at = :now "
            "WHERE payment_id = :payment_id"
        ),
        {
            "payment_id": payment_id,
            "status": status,
            "transaction_id": transaction_id,
            "now": datetime.now(timezone.utc),
        },
    )


async def _lock_asset(
    db: AsyncSession, asset_id: uuid.UUID
) -> tuple[uuid.UUID | None, str]:
    """Lock the asset row. Returns (current_owner_id, status)."""
    result = await db.execute(
        text(
            "SELECT current_owner_id, status FROM assets "
            "WHERE asset_id = :asset_id FOR UPDATE"
        ),
        {"asset_id": asset_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Artwork not found")
    return row[0], row[1]


async def _transfer_ownership(
    db: AsyncSession,
    payment: PaymentDetails,
    previous_owner_id: uuid.UUID | None,
    transaction_id: str,
) -> None:
    """Write the new owner on the locked row, then append provenance."""
    now = datetime.now(timezone.utc)
    await db.execute(
        text(
            "UPDATE assets "
            "SET current_owner_id = :buyer_id, "
            "    owner_transaction_id = :transaction_id, "
            "    status = 'sold', "
            "    version = version + 1, "
            "    updated_at = :now "
            "WHERE asset_id = :asset_id"
        ),
        {
            "buyer_id": payment.buyer_id,
            "transaction_id": transaction_id,
            "now": now,
            "asset_id": payment.asset_id,
        },
    )
    await db.execute(
        text(
            "INSERT INTO ownership_history "
            "(asset_id, from_user_id, to_user_id, transfer_type, "
            " transaction_id, payment_id, price_cents, transferred_at) "
            "VALUES (:asset_id, :from_user_id, :to_user_id, 'purchase', "
            " :transaction_id, :payment_id, :price_cents, :transferred_at)"
        ),
        {
            "asset_id": payment.asset_id,
            "from_user_id": previous_owner_id,
            "to_user_id": payment.buyer_id,
            "transaction_id": transaction_id,
            "payment_id": payment.payment_id,
            "price_cents": payment.amount_cents,
            "transferred_at": now,
        },
    )


async def _update_indexes(
    db: AsyncSession,
    payment: PaymentDetails,
    previous_owner_id: uuid.UUID | None,
    transaction_id: str,
) -> None:
    if previous_owner_id is not None and previous_owner_id != payment.buyer_id:
        await remove_user_asset(db, previous_owner_id, payment.asset_id)
    await add_user_asset(
        db,
        user_id=payment.buyer_id,
        asset_id=payment.asset_id,
        transaction_id=transaction_id,
        price_cents=payment.amount_cents,
        currency=payment.currency,
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

async def settle_purchase(
    db: AsyncSession,
    payment: PaymentDetails,
    trigger: SettlementTrigger,
) -> SettlementResult:
    """Settle a paid checkout exactly once.

    Safe to call any number of times, from either trigger, for the same
    payment: only the first call writes anything. The caller commits.
    """
    bound = log.bind(
        payment_id=payment.payment_id,
        asset_id=str(payment.asset_id),
        buyer_id=str(payment.buyer_id),
        trigger=trigger,
    )

    if not await _claim_settlement(db, payment, trigger):
        transaction_id, status = await _recorded_outcome(db, payment.payment_id)
        bound.info(
            "settlement_already_claimed", transaction_id=transaction_id, status=status
        )
        return SettlementResult(
            transaction_id=transaction_id,
            payment_id=payment.payment_id,
            already_processed=True,
            conflict=status == "conflict",
        )

    previous_owner_id, status = await _lock_asset(db, payment.asset_id)

    if previous_owner_id == payment.buyer_id:
        existing = await find_transaction_for_payment(
            db, payment.wallet_id, payment.payment_id
        )
        if existing is not None:
            await _finish_settlement(db, payment.payment_id, "completed", existing)
            bound.info("settlement_already_applied", transaction_id=existing)
            return SettlementResult(
                transaction_id=existing,
                payment_id=payment.payment_id,
                already_processed=True,
            )

    if status not in PURCHASABLE_STATUSES:
        offer = await get_accepted_offer(db, payment.asset_id, payment.buyer_id)
        if offer is None:
            await _finish_settlement(db, payment.payment_id, "conflict", None)
            bound.warning(
                "settlement_asset_unavailable",
                status=status,
                current_owner_id=str(previous_owner_id) if previous_owner_id else None,
                amount_cents=payment.amount_cents,
            )
            return SettlementResult(
                transaction_id=None,
                payment_id=payment.payment_id,
                already_processed=False,
                conflict=True,
            )

    entry = await append_transaction(
        db,
        wallet_id=payment.wallet_id,
        user_id=payment.buyer_id,
        txn_type="DEBIT",
        amount_cents=payment.amount_cents,
        asset_id=payment.asset_id,
        payment_id=payment.payment_id,
        description=f"Artwork purchase: {payment.asset_id}",
    )

    await _transfer_ownership(db, payment, previous_owner_id, entry.transaction_id)
    await close_accepted_offers(db, payment.asset_id, payment.buyer_id)
    await _update_indexes(db, payment, previous_owner_id, entry.transaction_id)
    await _finish_settlement(db, payment.payment_id, "completed", entry.transaction_id)

    audit.log_ownership_transfer(
        asset_id=payment.asset_id,
        from_user_id=previous_owner_id,
        to_user_id=payment.buyer_id,
        transfer_type="purchase",
        transaction_id=entry.transaction_id,
    )
    audit.log_purchase(
        {
            "buyer_id": payment.buyer_id,
            "seller_id": previous_owner_id,
            "asset_id": payment.asset_id,
            "amount_cents": payment.amount_cents,
            "currency": payment.currency,
            "transaction_id": entry.transaction_id,
            "payment_id": payment.payment_id,
            "trigger": trigger,
        }
    )
    bound.info("purchase_settled", transaction_id=entry.transaction_id)

    return SettlementResult(
        transaction_id=entry.transaction_id,
        payment_id=payment.payment_id,
        already_processed=False,
        ownership_transferred=True,
    )
