"""Stripe Checkout integration for artwork purchases.

Creates hosted checkout sessions, retrieves them for the manual settlement
fallback, and verifies webhook signatures. Stripe SDK errors are translated
into the exceptions below so the service layer never imports ``stripe``
error classes directly. Sessions and events are handed back as plain dicts.

Usage:
    from artmint.integrations.stripe_checkout import StripeCheckoutService

    service = StripeCheckoutService()
    session = await service.create_purchase_session(...)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import stripe

from artmint.config import settings

PURCHASE_TYPE = "artwork_purchase"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class CheckoutSession:
    session_id: str
    url: str | None


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------

class PaymentGatewayError(Exception):
    """Raised when Stripe rejects or fails a request."""


class SessionNotFoundError(PaymentGatewayError):
    """Raised when a checkout session id is unknown to Stripe."""


class InvalidSignatureError(Exception):
    """Raised when a webhook payload fails signature verification."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def payment_id_from_session(session: Any) -> str:
    """Return the payment intent id, falling back to the session id.

    ``payment_intent`` is a plain id string, or the full object when the
    session was retrieved with ``expand=["payment_intent"]``.
    """
    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, str) and payment_intent:
        return payment_intent
    if payment_intent:
        return payment_intent["id"]
    return session["id"]


# ---------------------------------------------------------------------------
# StripeCheckoutService
# ---------------------------------------------------------------------------

class StripeCheckoutService:
    """Thin async-facing wrapper over the Stripe Checkout API."""

    def __init__(self) -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_purchase_session(
        self,
        asset_id: uuid.UUID,
        title: str,
        description: str | None,
        image_url: str | None,
        amount_cents: int,
        currency: str,
        buyer_id: uuid.UUID,
        wallet_id: str,
    ) -> CheckoutSession:
        """Create a one-item hosted checkout session for an artwork.

        The metadata carries everything settlement needs, so the webhook
        can settle without any state held by this process.
        """
        product_data: dict[str, Any] = {"name": title}
        if description:
            product_data["description"] = description
        if image_url:
            product_data["images"] = [image_url]

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": product_data,
                            "unit_amount": amount_cents,
                        },
                        "quantity": 1,
                    }
                ],
                metadata={
                    "assetId": str(asset_id),
                    "userId": str(buyer_id),
                    "walletId": wallet_id,
                    "type": PURCHASE_TYPE,
                },
                success_url=(
                    f"{settings.APP_URL}/success?session_id={{CHECKOUT_SESSION_ID}}"
                ),
                cancel_url=f"{settings.APP_URL}/art/{asset_id}",
            )
        except stripe.StripeError as exc:
            raise PaymentGatewayError(
                exc.user_message or str(exc) or "Failed to create checkout session"
            ) from exc

        return CheckoutSession(session_id=session.id, url=session.url)

    async def retrieve_session(self, session_id: str) -> dict:
        """Fetch a session with its payment intent expanded, as plain data."""
        try:
            session = stripe.checkout.Session.retrieve(
                session_id, expand=["payment_intent"]
            )
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                raise SessionNotFoundError("Session not found") from exc
            raise PaymentGatewayError(exc.user_message or str(exc)) from exc
        except stripe.StripeError as exc:
            raise PaymentGatewayError(exc.user_message or str(exc)) from exc
        return session.to_dict()

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, sig_header: str) -> dict:
        """Verify the signature and return the event as plain data.

        Raises InvalidSignatureError for a bad payload or signature.
        """
        try:
            event = stripe.Webhook.construct_event(
                payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
            )
        except ValueError as exc:
            raise InvalidSignatureError("Invalid payload") from exc
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError("Invalid signature") from exc
        return event.to_dict()
