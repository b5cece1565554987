"""Checkout initiation -- purchasability checks and hosted session creation."""

from __future__ import annotations

import uuid

import structlog
from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.integrations.stripe_checkout import (
    PaymentGatewayError,
    StripeCheckoutService,
)
from artmint.models import User
from artmint.services.offer_service import get_accepted_offer
from artmint.services.wallet_service import get_wallet_id

log = structlog.get_logger()

LISTED_STATUSES = ("sale", "resale")


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    artwork_id: uuid.UUID


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    url: str | None


async def create_checkout(
    db: AsyncSession,
    user: User,
    artwork_id: uuid.UUID,
    gateway: StripeCheckoutService | None = None,
) -> CheckoutResponse:
    """Validate that *user* may buy the artwork, then open a checkout session.

    Purchasable means listed (``sale``/``resale``) or carrying an offer this
    user had accepted. The price is the accepted offer's amount when there is
    one, otherwise the list price.
    """
    wallet_id = await get_wallet_id(db, user.user_id)
    if wallet_id is None:
        raise HTTPException(
            status_code=400, detail="No wallet found. Please complete account setup."
        )

    result = await db.execute(
        text(
            "SELECT title, description, file_url, price_cents, currency, status, "
            "       artist_id, current_owner_id "
            "FROM assets WHERE asset_id = :asset_id"
        ),
        {"asset_id": artwork_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Artwork not found")

    title, description, file_url, price_cents, currency, status, artist_id, owner_id = row

    accepted_offer = await get_accepted_offer(db, artwork_id, user.user_id)

    if status not in LISTED_STATUSES and accepted_offer is None:
        raise HTTPException(
            status_code=400, detail="This artwork is not available for purchase"
        )
    if owner_id == user.user_id:
        raise HTTPException(status_code=400, detail="You already own this artwork")
    if artist_id == user.user_id:
        raise HTTPException(status_code=400, detail="Cannot purchase your own artwork")

    if accepted_offer is not None:
        amount_cents, currency = accepted_offer.amount_cents, accepted_offer.currency
    else:
        amount_cents = price_cents
    if not amount_cents:
        raise HTTPException(status_code=400, detail="Artwork is not for sale")

    gateway = gateway or StripeCheckoutService()
    try:
        session = await gateway.create_purchase_session(
            asset_id=artwork_id,
            title=title,
            description=description,
            image_url=file_url,
            amount_cents=amount_cents,
            currency=currency,
            buyer_id=user.user_id,
            wallet_id=wallet_id,
        )
    except PaymentGatewayError as exc:
        log.error(
            "checkout_session_failed",
            asset_id=str(artwork_id),
            user_id=str(user.user_id),
            error=str(exc),
        )
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    log.info(
        "checkout_session_created",
        asset_id=str(artwork_id),
        user_id=str(user.user_id),
        session_id=session.session_id,
        amount_cents=amount_cents,
        via_offer=accepted_offer is not None,
    )
    return CheckoutResponse(session_id=session.session_id, url=session.url)
