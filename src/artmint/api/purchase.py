"""Purchase endpoints -- checkout, manual settlement fallback, Stripe webhook."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.dependencies import get_current_user
from artmint.database import get_db
from artmint.integrations.cms_client import schedule_publish
from artmint.models import User
from artmint.services.checkout_service import (
    CheckoutRequest,
    CheckoutResponse,
    create_checkout,
)
from artmint.services.payment_service import (
    ProcessPurchaseRequest,
    SettlementOutcome,
    handle_webhook,
    process_checkout_session,
)

router = APIRouter(prefix="/api/purchase", tags=["purchase"])


async def _commit_and_publish(db: AsyncSession, outcome: SettlementOutcome) -> dict:
    await db.commit()
    if outcome.publish_asset_id is not None:
        schedule_publish(outcome.publish_asset_id)
    return outcome.body


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    body: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a hosted checkout session for an artwork."""
    return await create_checkout(db, current_user, body.artwork_id)


@router.post("/process")
async def process_purchase(
    body: ProcessPurchaseRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Settle a paid session when the webhook has not been received yet."""
    outcome = await process_checkout_session(db, current_user, body.session_id)
    return await _commit_and_publish(db, outcome)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Receive Stripe events.

    Reads the raw body and the Stripe-Signature header and delegates
    verification and handling to the payment service.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    outcome = await handle_webhook(payload, sig_header, db)
    return await _commit_and_publish(db, outcome)
