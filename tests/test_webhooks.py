"""Tests for Stripe webhook handling and the manual settlement fallback."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from artmint.integrations.stripe_checkout import (
    InvalidSignatureError,
    SessionNotFoundError,
)
from artmint.services.payment_service import (
    handle_webhook,
    payment_details_from_session,
    process_checkout_session,
)
from artmint.services.settlement_service import MSG_UNAVAILABLE, SettlementResult

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetchone(value):
    result = MagicMock()
    result.fetchone.return_value = value
    return result


def _session(buyer_id=None, asset_id=None, **overrides) -> dict:
    session = {
        "id": "cs_test_abc",
        "payment_status": "paid",
        "amount_total": 42_00,
        "currency": "usd",
        "payment_intent": {"id": "pi_test_abc"},
        "metadata": {
            "assetId": str(asset_id or uuid.uuid4()),
            "userId": str(buyer_id or uuid.uuid4()),
            "walletId": "wallet_abc",
            "type": "artwork_purchase",
        },
    }
    session.update(overrides)
    return session


def _event(event_type="checkout.session.completed", obj=None, event_id="evt_1") -> dict:
    return {"id": event_id, "type": event_type, "data": {"object": obj or _session()}}


def _gateway(event=None, session=None):
    gateway = MagicMock()
    gateway.construct_event = MagicMock(return_value=event)
    gateway.retrieve_session = AsyncMock(return_value=session)
    return gateway


def _settled(already_processed=False, transferred=True) -> SettlementResult:
    return SettlementResult(
        transaction_id="TX_ABC_DEF_GH_12",
        payment_id="pi_test_abc",
        already_processed=already_processed,
        ownership_transferred=transferred,
    )


def _conflicted() -> SettlementResult:
    return SettlementResult(
        transaction_id=None,
        payment_id="pi_test_abc",
        already_processed=False,
        conflict=True,
    )


# ---------------------------------------------------------------------------
# 1. Session parsing
# ---------------------------------------------------------------------------


def test_payment_details_from_session():
    buyer_id, asset_id = uuid.uuid4(), uuid.uuid4()
    details = payment_details_from_session(_session(buyer_id, asset_id))

    assert details.payment_id == "pi_test_abc"
    assert details.session_id == "cs_test_abc"
    assert details.buyer_id == buyer_id
    assert details.asset_id == asset_id
    assert details.amount_cents == 42_00
    assert details.currency == "USD"


def test_payment_details_falls_back_to_session_id():
    details = payment_details_from_session(_session(payment_intent=None))
    assert details.payment_id == "cs_test_abc"


def test_payment_details_missing_metadata():
    session = _session()
    del session["metadata"]["walletId"]

    with pytest.raises(HTTPException) as exc_info:
        payment_details_from_session(session)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Missing required metadata"


# ---------------------------------------------------------------------------
# 2. Webhook
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_webhook_requires_signature(mock_db):
    with pytest.raises(HTTPException) as exc_info:
        await handle_webhook(b"{}", None, mock_db, gateway=_gateway())

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "No signature provided"


@pytest.mark.asyncio
async def test_webhook_invalid_signature(mock_db):
    gateway = _gateway()
    gateway.construct_event.side_effect = InvalidSignatureError("Invalid signature")

    with pytest.raises(HTTPException) as exc_info:
        await handle_webhook(b"{}", "t=1,v1=bad", mock_db, gateway=gateway)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Invalid signature"
    mock_db.execute.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_settles_checkout(mock_db):
    asset_id = uuid.uuid4()
    event = _event(obj=_session(asset_id=asset_id))
    mock_db.execute.side_effect = [_fetchone(None), MagicMock()]

    with patch(
        "artmint.services.payment_service.settle_purchase",
        new=AsyncMock(return_value=_settled()),
    ) as mock_settle:
        outcome = await handle_webhook(b"{}", "sig", mock_db, gateway=_gateway(event))

    assert outcome.body == {
        "success": True,
        "message": "Purchase processed successfully",
        "transactionId": "TX_ABC_DEF_GH_12",
    }
    assert outcome.publish_asset_id == asset_id
    assert mock_settle.await_args.args[2] == "webhook"

    mark_params = mock_db.execute.call_args_list[1].args[1]
    assert mark_params["event_id"] == "evt_1"


@pytest.mark.asyncio
async def test_webhook_duplicate_event(mock_db):
    mock_db.execute.side_effect = [_fetchone((1,))]

    with patch("artmint.services.payment_service.settle_purchase") as mock_settle:
        outcome = await handle_webhook(b"{}", "sig", mock_db, gateway=_gateway(_event()))

    assert outcome.body == {"received": True, "duplicate": True}
    assert outcome.publish_asset_id is None
    mock_settle.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_already_settled_does_not_publish(mock_db):
    mock_db.execute.side_effect = [_fetchone(None), MagicMock()]

    with patch(
        "artmint.services.payment_service.settle_purchase",
        new=AsyncMock(return_value=_settled(already_processed=True)),
    ):
        outcome = await handle_webhook(b"{}", "sig", mock_db, gateway=_gateway(_event()))

    assert outcome.body["message"] == "Purchase already processed"
    assert outcome.publish_asset_id is None


@pytest.mark.asyncio
async def test_webhook_sold_artwork_acknowledged_without_publish(mock_db):
    mock_db.execute.side_effect = [_fetchone(None), MagicMock()]

    with patch(
        "artmint.services.payment_service.settle_purchase",
        new=AsyncMock(return_value=_conflicted()),
    ):
        outcome = await handle_webhook(b"{}", "sig", mock_db, gateway=_gateway(_event()))

    assert outcome.body == {
        "success": False,
        "message": MSG_UNAVAILABLE,
        "transactionId": None,
    }
    assert outcome.publish_asset_id is None
    mark_params = mock_db.execute.call_args_list[1].args[1]
    assert mark_params["event_id"] == "evt_1"


@pytest.mark.asyncio
async def test_webhook_payment_failed_only_logs(mock_db):
    intent = {"id": "pi_failed", "last_payment_error": {"message": "card_declined"}}
    mock_db.execute.side_effect = [_fetchone(None), MagicMock()]

    with patch("artmint.services.payment_service.settle_purchase") as mock_settle:
        outcome = await handle_webhook(
            b"{}",
            "sig",
            mock_db,
            gateway=_gateway(_event("payment_intent.payment_failed", obj=intent)),
        )

    assert outcome.body == {"received": True}
    mock_settle.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_unhandled_event_type(mock_db):
    mock_db.execute.side_effect = [_fetchone(None)]

    outcome = await handle_webhook(
        b"{}", "sig", mock_db, gateway=_gateway(_event("customer.created", obj={}))
    )

    assert outcome.body == {"received": True}
    assert mock_db.execute.await_count == 1


# ---------------------------------------------------------------------------
# 3. Manual fallback
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fallback_requires_session_id(mock_db, make_user):
    with pytest.raises(HTTPException) as exc_info:
        await process_checkout_session(mock_db, make_user(), None, gateway=_gateway())

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Session ID is required"


@pytest.mark.asyncio
async def test_fallback_unknown_session(mock_db, make_user):
    gateway = _gateway()
    gateway.retrieve_session.side_effect = SessionNotFoundError("Session not found")

    with pytest.raises(HTTPException) as exc_info:
        await process_checkout_session(mock_db, make_user(), "cs_missing", gateway=gateway)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_fallback_unpaid_session(mock_db, make_user):
    buyer = make_user()
    session = _session(buyer_id=buyer.user_id, payment_status="unpaid")

    with pytest.raises(HTTPException) as exc_info:
        await process_checkout_session(mock_db, buyer, "cs_test_abc", gateway=_gateway(session=session))

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Payment not completed"


@pytest.mark.asyncio
async def test_fallback_rejects_other_user(mock_db, make_user):
    session = _session(buyer_id=uuid.uuid4())

    with patch("artmint.services.payment_service.settle_purchase") as mock_settle:
        with pytest.raises(HTTPException) as exc_info:
            await process_checkout_session(
                mock_db, make_user(), "cs_test_abc", gateway=_gateway(session=session)
            )

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "Unauthorized to process this purchase"
    mock_settle.assert_not_called()


@pytest.mark.asyncio
async def test_fallback_settles_for_buyer(mock_db, make_user):
    buyer = make_user()
    session = _session(buyer_id=buyer.user_id)

    with patch(
        "artmint.services.payment_service.settle_purchase",
        new=AsyncMock(return_value=_settled()),
    ) as mock_settle:
        outcome = await process_checkout_session(
            mock_db, buyer, "cs_test_abc", gateway=_gateway(session=session)
        )

    assert mock_settle.await_args.args[2] == "fallback"
    assert outcome.body == {
        "success": True,
        "message": "Purchase processed successfully",
        "transactionId": "TX_ABC_DEF_GH_12",
        "gatewayPaymentId": "pi_test_abc",
    }
