"""Stripe payment entry points -- webhook handling and the manual fallback.

Both paths turn a completed checkout session into ``PaymentDetails`` and hand
it to ``settle_purchase``. Neither commits; routes commit and then fire the
publish trigger for the asset named in the returned outcome.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.config import settings
from artmint.integrations.stripe_checkout import (
    PURCHASE_TYPE,
    InvalidSignatureError,
    PaymentGatewayError,
    SessionNotFoundError,
    StripeCheckoutService,
    payment_id_from_session,
)
from artmint.models import User
from artmint.services.settlement_service import (
    PaymentDetails,
    SettlementResult,
    settle_purchase,
)

log = structlog.get_logger()

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ProcessPurchaseRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = None


class SettlementResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    transaction_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None


@dataclass
class SettlementOutcome:
    """Response body plus the asset to publish once the caller has committed."""

    body: dict = field(default_factory=dict)
    publish_asset_id: Optional[uuid.UUID] = None


# ---------------------------------------------------------------------------
# Session parsing
# ---------------------------------------------------------------------------

def payment_details_from_session(session: Any) -> PaymentDetails:
    """Extract settlement input from a completed checkout session.

    Raises HTTPException(400) when the purchase metadata is missing or
    malformed.
    """
    metadata = session.get("metadata") or {}
    asset_id = metadata.get("assetId")
    user_id = metadata.get("userId")
    wallet_id = metadata.get("walletId")

    if not asset_id or not user_id or not wallet_id:
        raise HTTPException(status_code=400, detail="Missing required metadata")

    amount_total = session.get("amount_total")
    if amount_total is None:
        raise HTTPException(status_code=400, detail="Missing payment amount")

    try:
        asset_uuid = uuid.UUID(asset_id)
        buyer_uuid = uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid purchase metadata")

    return PaymentDetails(
        payment_id=payment_id_from_session(session),
        session_id=session["id"],
        asset_id=asset_uuid,
        buyer_id=buyer_uuid,
        wallet_id=wallet_id,
        amount_cents=int(amount_total),
        currency=(session.get("currency") or settings.DEFAULT_CURRENCY).upper(),
    )


def _publish_target(payment: PaymentDetails, result: SettlementResult):
    if result.already_processed or not result.ownership_transferred:
        return None
    return payment.asset_id


# ---------------------------------------------------------------------------
# Webhook helpers
# ---------------------------------------------------------------------------

async def _is_already_processed(db: AsyncSession, event_id: str) -> bool:
    """Return True if this webhook event has already been handled."""
    existing = await db.execute(
        text("SELECT 1 FROM processed_webhooks WHERE event_id = :event_id"),
        {"event_id": event_id},
    )
    return existing.fetchone() is not None


async def _mark_event_processed(db: AsyncSession, event_id: str, event_type: str) -> None:
    """Record a webhook event ID so it is not replayed."""
    await db.execute(
        text(
            "INSERT INTO processed_webhooks (event_id, event_type, processed_at) "
            "VALUES (:event_id, :event_type, :processed_at) "
            "ON CONFLICT (event_id) DO NOTHING"
        ),
        {
            "event_id": event_id,
            "event_type": event_type,
            "processed_at": datetime.now(timezone.utc),
        },
    )


async def _process_checkout_completed(
    db: AsyncSession, session_obj: Any
) -> SettlementOutcome:
    metadata = session_obj.get("metadata") or {}
    if metadata.get("type", PURCHASE_TYPE) != PURCHASE_TYPE:
        log.info(
            "checkout_session_ignored",
            session_id=session_obj.get("id"),
            purchase_type=metadata.get("type"),
        )
        return SettlementOutcome(body={"received": True})

    payment = payment_details_from_session(session_obj)
    result = await settle_purchase(db, payment, "webhook")
    return SettlementOutcome(
        body={
            "success": not result.conflict,
            "message": result.message,
            "transactionId": result.transaction_id,
        },
        publish_asset_id=_publish_target(payment, result),
    )


# ---------------------------------------------------------------------------
# Webhook entry-point
# ---------------------------------------------------------------------------

async def handle_webhook(
    payload: bytes,
    sig_header: str | None,
    db: AsyncSession,
    gateway: StripeCheckoutService | None = None,
) -> SettlementOutcome:
    """Verify a Stripe webhook signature and process the event.

    Idempotent -- events already recorded in ``processed_webhooks`` are
    acknowledged without being processed again.
    """
    if not sig_header:
        raise HTTPException(status_code=400, detail="No signature provided")

    gateway = gateway or StripeCheckoutService()
    try:
        event = gateway.construct_event(payload, sig_header)
    except InvalidSignatureError as exc:
        log.warning("webhook_signature_invalid", error=str(exc))
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_id: str = event["id"]
    event_type: str = event["type"]

    if await _is_already_processed(db, event_id):
        log.info("webhook_duplicate", event_id=event_id, event_type=event_type)
        return SettlementOutcome(body={"received": True, "duplicate": True})

    if event_type == EVENT_CHECKOUT_COMPLETED:
        outcome = await _process_checkout_completed(db, event["data"]["object"])
        await _mark_event_processed(db, event_id, event_type)
        return outcome

    if event_type == EVENT_PAYMENT_FAILED:
        intent = event["data"]["object"]
        last_error = intent.get("last_payment_error") or {}
        log.warning(
            "payment_failed",
            event_id=event_id,
            payment_intent_id=intent.get("id"),
            error=last_error.get("message"),
        )
        await _mark_event_processed(db, event_id, event_type)
        return SettlementOutcome(body={"received": True})

    log.info("webhook_event_unhandled", event_id=event_id, event_type=event_type)
    return SettlementOutcome(body={"received": True})


# ---------------------------------------------------------------------------
# Manual fallback
# ---------------------------------------------------------------------------

async def process_checkout_session(
    db: AsyncSession,
    user: User,
    session_id: str | None,
    gateway: StripeCheckoutService | None = None,
) -> SettlementOutcome:
    """Settle a paid session on behalf of its buyer.

    Used when the webhook has not arrived yet; settling twice is harmless.
    """
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    gateway = gateway or StripeCheckoutService()
    try:
        session = await gateway.retrieve_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except PaymentGatewayError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if session.get("payment_status") != "paid":
        raise HTTPException(status_code=400, detail="Payment not completed")

    payment = payment_details_from_session(session)
    if payment.buyer_id != user.user_id:
        log.warning(
            "fallback_user_mismatch",
            session_id=session_id,
            requester_id=str(user.user_id),
        )
        raise HTTPException(
            status_code=403, detail="Unauthorized to process this purchase"
        )

    result = await settle_purchase(db, payment, "fallback")
    response = SettlementResponse(
        success=not result.conflict,
        message=result.message,
        transaction_id=result.transaction_id,
        gateway_payment_id=payment.payment_id,
    )
    return SettlementOutcome(
        body=response.model_dump(by_alias=True),
        publish_asset_id=_publish_target(payment, result),
    )
