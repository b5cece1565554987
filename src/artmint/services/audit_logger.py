"""Structured JSON audit logger for financial and ownership events.

Emits structured log entries via structlog for settled purchases, ownership
transfers, ledger appends, and offer decisions.  Every entry carries an
``audit: true`` flag so production log pipelines can filter on it easily.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog


log = structlog.get_logger()


class AuditLogger:
    """Structured audit logger for marketplace events.

    All methods are synchronous -- they only emit log lines and perform
    no I/O beyond writing to the configured structlog sink.
    """

    # ------------------------------------------------------------------
    # Purchase settlement
    # ------------------------------------------------------------------

    def log_purchase(self, purchase_details: dict) -> None:
        """Log a settled purchase.

        Expected keys in *purchase_details*: ``buyer_id``, ``seller_id``,
        ``asset_id``, ``amount_cents``, ``currency``, ``transaction_id``,
        ``payment_id``, ``trigger``.  Any extra keys are passed through.
        """
        log.info(
            "audit_event",
            event_type="purchase",
            timestamp=datetime.now(timezone.utc).isoformat(),
            buyer_id=str(purchase_details.get("buyer_id")),
            seller_id=str(purchase_details.get("seller_id")),
            asset_id=str(purchase_details.get("asset_id")),
            amount_cents=purchase_details.get("amount_cents"),
            currency=purchase_details.get("currency"),
            transaction_id=purchase_details.get("transaction_id"),
            payment_id=purchase_details.get("payment_id"),
            trigger=purchase_details.get("trigger"),
            audit=True,
        )

    # ------------------------------------------------------------------
    # Ownership transfer
    # ------------------------------------------------------------------

    def log_ownership_transfer(
        self,
        asset_id,
        from_user_id,
        to_user_id,
        transfer_type: str,
        transaction_id=None,
    ) -> None:
        """Record an ownership change (creation or purchase)."""
        log.info(
            "audit_event",
            event_type="ownership_transfer",
            timestamp=datetime.now(timezone.utc).isoformat(),
            asset_id=str(asset_id),
            from_user_id=str(from_user_id) if from_user_id else None,
            to_user_id=str(to_user_id),
            transfer_type=transfer_type,
            transaction_id=transaction_id,
            audit=True,
        )

    # ------------------------------------------------------------------
    # Ledger append
    # ------------------------------------------------------------------

    def log_ledger_event(
        self,
        wallet_id: str,
        user_id,
        txn_type: str,
        amount_cents: int,
        transaction_id: str,
        payment_id: str | None = None,
    ) -> None:
        log.info(
            "audit_event",
            event_type="ledger_append",
            timestamp=datetime.now(timezone.utc).isoformat(),
            wallet_id=wallet_id,
            user_id=str(user_id),
            txn_type=txn_type,
            amount_cents=amount_cents,
            transaction_id=transaction_id,
            payment_id=payment_id,
            audit=True,
        )

    # ------------------------------------------------------------------
    # Offer decision
    # ------------------------------------------------------------------

    def log_offer_event(
        self,
        offer_id: str,
        asset_id,
        actor_id,
        action: str,
        amount_cents: int | None = None,
        rejected_count: int = 0,
    ) -> None:
        """Log an offer being made, accepted, or rejected."""
        log.info(
            "audit_event",
            event_type="offer",
            timestamp=datetime.now(timezone.utc).isoformat(),
            offer_id=offer_id,
            asset_id=str(asset_id),
            actor_id=str(actor_id),
            action=action,
            amount_cents=amount_cents,
            rejected_count=rejected_count,
            audit=True,
        )
