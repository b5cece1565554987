"""API tests for /api/purchase/* and the error envelope."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from artmint.services.checkout_service import CheckoutResponse
from artmint.services.payment_service import SettlementOutcome


@pytest.mark.asyncio
async def test_checkout_requires_authentication(client):
    response = await client.post(
        "/api/purchase/checkout", json={"artworkId": str(uuid.uuid4())}
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


@pytest.mark.asyncio
async def test_checkout_validation_error_shape(client, make_user, login_as):
    login_as(make_user())

    response = await client.post("/api/purchase/checkout", json={"artworkId": "nope"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["details"][0]["field"] == "artworkId"


@pytest.mark.asyncio
async def test_checkout_returns_camel_case(client, make_user, login_as):
    buyer = make_user()
    login_as(buyer)
    artwork_id = uuid.uuid4()

    with patch(
        "artmint.api.purchase.create_checkout",
        new=AsyncMock(
            return_value=CheckoutResponse(session_id="cs_1", url="https://stripe.test/cs_1")
        ),
    ) as mock_checkout:
        response = await client.post(
            "/api/purchase/checkout", json={"artworkId": str(artwork_id)}
        )

    assert response.status_code == 200, response.text
    assert response.json() == {"sessionId": "cs_1", "url": "https://stripe.test/cs_1"}
    assert mock_checkout.await_args.args[2] == artwork_id


@pytest.mark.asyncio
async def test_process_commits_then_publishes(client, mock_db, make_user, login_as):
    login_as(make_user())
    asset_id = uuid.uuid4()
    outcome = SettlementOutcome(
        body={"success": True, "message": "Purchase processed successfully"},
        publish_asset_id=asset_id,
    )

    with (
        patch(
            "artmint.api.purchase.process_checkout_session",
            new=AsyncMock(return_value=outcome),
        ),
        patch("artmint.api.purchase.schedule_publish") as mock_publish,
    ):
        response = await client.post(
            "/api/purchase/process", json={"sessionId": "cs_test_1"}
        )

    assert response.status_code == 200, response.text
    assert response.json()["message"] == "Purchase processed successfully"
    mock_db.commit.assert_awaited_once()
    mock_publish.assert_called_once_with(asset_id)


@pytest.mark.asyncio
async def test_webhook_route_passes_raw_body(client, mock_db):
    outcome = SettlementOutcome(body={"received": True})

    with (
        patch(
            "artmint.api.purchase.handle_webhook", new=AsyncMock(return_value=outcome)
        ) as mock_handle,
        patch("artmint.api.purchase.schedule_publish") as mock_publish,
    ):
        response = await client.post(
            "/api/purchase/webhook",
            content=b'{"id": "evt_1"}',
            headers={"stripe-signature": "t=1,v1=abc"},
        )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    payload, sig_header, _db = mock_handle.await_args.args
    assert payload == b'{"id": "evt_1"}'
    assert sig_header == "t=1,v1=abc"
    mock_publish.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_missing_signature_is_400(client, mock_db):
    response = await client.post("/api/purchase/webhook", content=b"{}")

    assert response.status_code == 400
    assert response.json() == {"error": "No signature provided"}
    mock_db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/api/nothing-here")

    assert response.status_code == 404
    assert "error" in response.json()
