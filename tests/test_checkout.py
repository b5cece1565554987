"""Tests for checkout initiation."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException

from artmint.integrations.stripe_checkout import CheckoutSession, PaymentGatewayError
from artmint.services.checkout_service import CheckoutResponse, create_checkout

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetchone(value):
    result = MagicMock()
    result.fetchone.return_value = value
    return result


def _asset_row(status="sale", price_cents=25_00, artist_id=None, owner_id=None):
    artist_id = artist_id or uuid.uuid4()
    return (
        "Sunset",
        "Oil on canvas",
        "https://cdn.example.com/sunset.png",
        price_cents,
        "USD",
        status,
        artist_id,
        owner_id or artist_id,
    )


def _offer_row(asset_id, buyer_id, amount_cents=18_00):
    now = datetime.now(timezone.utc)
    return (
        "OFFER_1700000000000_abc1234",
        asset_id,
        buyer_id,
        "Buyer",
        amount_cents,
        "EUR",
        None,
        "accepted",
        uuid.uuid4(),
        now,
        now,
        now,
    )


def _gateway():
    gateway = MagicMock()
    gateway.create_purchase_session = AsyncMock(
        return_value=CheckoutSession(session_id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")
    )
    return gateway


# ---------------------------------------------------------------------------
# 1. Listed artwork
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_checkout_listed_artwork(mock_db, make_user):
    buyer = make_user()
    asset_id = uuid.uuid4()
    mock_db.execute.side_effect = [
        _fetchone(("wallet_1",)),
        _fetchone(_asset_row()),
        _fetchone(None),
    ]
    gateway = _gateway()

    response = await create_checkout(mock_db, buyer, asset_id, gateway=gateway)

    assert isinstance(response, CheckoutResponse)
    assert response.session_id == "cs_test_1"
    assert response.model_dump(by_alias=True)["sessionId"] == "cs_test_1"

    kwargs = gateway.create_purchase_session.call_args.kwargs
    assert kwargs["amount_cents"] == 25_00
    assert kwargs["currency"] == "USD"
    assert kwargs["wallet_id"] == "wallet_1"
    assert kwargs["buyer_id"] == buyer.user_id


# ---------------------------------------------------------------------------
# 2. Accepted offer overrides the price and the listing state
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_checkout_uses_accepted_offer(mock_db, make_user):
    buyer = make_user()
    asset_id = uuid.uuid4()
    mock_db.execute.side_effect = [
        _fetchone(("wallet_1",)),
        _fetchone(_asset_row(status="sold", owner_id=uuid.uuid4())),
        _fetchone(_offer_row(asset_id, buyer.user_id)),
    ]
    gateway = _gateway()

    await create_checkout(mock_db, buyer, asset_id, gateway=gateway)

    kwargs = gateway.create_purchase_session.call_args.kwargs
    assert kwargs["amount_cents"] == 18_00
    assert kwargs["currency"] == "EUR"


# ---------------------------------------------------------------------------
# 3. Rejections
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_checkout_requires_wallet(mock_db, make_user):
    mock_db.execute.side_effect = [_fetchone(None)]

    with pytest.raises(HTTPException) as exc_info:
        await create_checkout(mock_db, make_user(), uuid.uuid4(), gateway=_gateway())

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "No wallet found. Please complete account setup."


@pytest.mark.asyncio
async def test_checkout_unknown_artwork(mock_db, make_user):
    mock_db.execute.side_effect = [_fetchone(("wallet_1",)), _fetchone(None)]

    with pytest.raises(HTTPException) as exc_info:
        await create_checkout(mock_db, make_user(), uuid.uuid4(), gateway=_gateway())

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_checkout_sold_without_offer(mock_db, make_user):
    mock_db.execute.side_effect = [
        _fetchone(("wallet_1",)),
        _fetchone(_asset_row(status="sold")),
        _fetchone(None),
    ]

    with pytest.raises(HTTPException) as exc_info:
        await create_checkout(mock_db, make_user(), uuid.uuid4(), gateway=_gateway())

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "This artwork is not available for purchase"


@pytest.mark.asyncio
async def test_checkout_rejects_current_owner(mock_db, make_user):
    owner = make_user()
    mock_db.execute.side_effect = [
        _fetchone(("wallet_1",)),
        _fetchone(_asset_row(status="resale", owner_id=owner.user_id)),
        _fetchone(None),
    ]

    with pytest.raises(HTTPException) as exc_info:
        await create_checkout(mock_db, owner, uuid.uuid4(), gateway=_gateway())

    assert exc_info.value.detail == "You already own this artwork"


@pytest.mark.asyncio
async def test_checkout_rejects_artist(mock_db, make_user):
    artist = make_user(role="artist")
    mock_db.execute.side_effect = [
        _fetchone(("wallet_1",)),
        _fetchone(_asset_row(status="resale", artist_id=artist.user_id, owner_id=uuid.uuid4())),
        _fetchone(None),
    ]

    with pytest.raises(HTTPException) as exc_info:
        await create_checkout(mock_db, artist, uuid.uuid4(), gateway=_gateway())

    assert exc_info.value.detail == "Cannot purchase your own artwork"


@pytest.mark.asyncio
async def test_checkout_gateway_failure_passes_message(mock_db, make_user):
    mock_db.execute.side_effect = [
        _fetchone(("wallet_1",)),
        _fetchone(_asset_row()),
        _fetchone(None),
    ]
    gateway = MagicMock()
    gateway.create_purchase_session = AsyncMock(
        side_effect=PaymentGatewayError("Your card was declined")
    )

    with pytest.raises(HTTPException) as exc_info:
        await create_checkout(mock_db, make_user(), uuid.uuid4(), gateway=gateway)

    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "Your card was declined"
