"""End-to-end purchase flows: signed webhook, fallback, and competing buyers.

The database is an in-memory store that answers the SQL the services issue,
so the webhook and the fallback run through the real settlement routine.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from artmint.config import settings
from artmint.services.payment_service import handle_webhook, process_checkout_session
from artmint.services.settlement_service import (
    MSG_ALREADY_PROCESSED,
    MSG_PROCESSED,
    MSG_UNAVAILABLE,
    PaymentDetails,
    settle_purchase,
)
from artmint.services.wallet_service import (
    LedgerTransaction,
    append_transaction,
    create_transaction_id,
    is_valid_transaction_id,
    verify_ledger_integrity,
)

_WEBHOOK_SECRET = "whsec_test"


def _result(row):
    result = MagicMock()
    result.fetchone.return_value = row
    return result


class InMemoryMarket:
    """Answers the marketplace SQL from dicts; ``db`` is the session stand-in."""

    def __init__(self):
        self.assets: dict[uuid.UUID, dict] = {}
        self.wallets: dict[str, dict] = {}
        self.ledger: list[dict] = []
        self.settlements: dict[str, dict] = {}
        self.collections: set[tuple[uuid.UUID, uuid.UUID]] = set()
        self.provenance: list[dict] = []
        self.accepted_offers: dict[tuple[uuid.UUID, uuid.UUID], tuple] = {}
        self.processed_events: set[str] = set()

        self.db = AsyncMock()
        self.db.execute = AsyncMock(side_effect=self.execute)
        self._routes = [
            ("INSERT INTO settlements", self._claim),
            ("SELECT transaction_id, status FROM settlements", self._recorded),
            ("UPDATE settlements", self._finish),
            ("SELECT current_owner_id, status FROM assets", self._lock_asset),
            ("SELECT offer_id", self._accepted_offer),
            ("UPDATE wallets", self._move_balance),
            ("INSERT INTO wallet_transactions", self._append_ledger),
            ("SELECT transaction_id FROM wallet_transactions", self._find_payment),
            ("UPDATE assets", self._transfer),
            ("INSERT INTO ownership_history", self._provenance),
            ("UPDATE offers", self._close_offers),
            ("DELETE FROM user_assets", self._remove_entry),
            ("INSERT INTO user_assets", self._add_entry),
            ("SELECT 1 FROM processed_webhooks", self._event_seen),
            ("INSERT INTO processed_webhooks", self._mark_event),
        ]

    # -- seeding ---------------------------------------------------------

    def add_asset(self, owner_id, status="sale"):
        asset_id = uuid.uuid4()
        self.assets[asset_id] = {"owner": owner_id, "status": status, "version": 0}
        self.collections.add((owner_id, asset_id))
        return asset_id

    def add_wallet(self, user_id, credit_cents=0):
        wallet_id = f"wallet_{user_id.hex}_test"
        self.wallets[wallet_id] = {"user_id": user_id, "balance": credit_cents}
        if credit_cents:
            self.ledger.append(
                {
                    "transaction_id": create_transaction_id(),
                    "wallet_id": wallet_id,
                    "txn_type": "CREDIT",
                    "amount_cents": credit_cents,
                    "payment_id": None,
                    "created_at": datetime.now(timezone.utc) - timedelta(days=1),
                }
            )
        return wallet_id

    def transactions(self, wallet_id) -> list[LedgerTransaction]:
        return [
            LedgerTransaction(
                transaction_id=row["transaction_id"],
                txn_type=row["txn_type"],
                amount_cents=row["amount_cents"],
                created_at=row["created_at"],
                payment_id=row["payment_id"],
            )
            for row in self.ledger
            if row["wallet_id"] == wallet_id
        ]

    def debits(self, wallet_id) -> list[dict]:
        return [
            row
            for row in self.ledger
            if row["wallet_id"] == wallet_id and row["txn_type"] == "DEBIT"
        ]

    # -- SQL dispatch ----------------------------------------------------

    async def execute(self, statement, params=None):
        sql = " ".join(str(statement).split())
        for prefix, handler in self._routes:
            if sql.startswith(prefix):
                return handler(params or {})
        raise AssertionError(f"unexpected SQL: {sql}")

    def _claim(self, p):
        if p["payment_id"] in self.settlements:
            return _result(None)
        self.settlements[p["payment_id"]] = {
            "status": "processing",
            "transaction_id": None,
            "buyer_id": p["buyer_id"],
            "trigger": p["trigger"],
        }
        return _result((p["payment_id"],))

    def _recorded(self, p):
        row = self.settlements.get(p["payment_id"])
        return _result((row["transaction_id"], row["status"]) if row else None)

    def _finish(self, p):
        row = self.settlements[p["payment_id"]]
        row["status"] = p["status"]
        row["transaction_id"] = p["transaction_id"]
        return _result(None)

    def _lock_asset(self, p):
        asset = self.assets.get(p["asset_id"])
        return _result((asset["owner"], asset["status"]) if asset else None)

    def _accepted_offer(self, p):
        return _result(self.accepted_offers.get((p["asset_id"], p["buyer_id"])))

    def _move_balance(self, p):
        wallet = self.wallets.get(p["wallet_id"])
        if wallet is None or wallet["user_id"] != p["user_id"]:
            return _result(None)
        wallet["balance"] += p["delta"]
        return _result((wallet["balance"],))

    def _append_ledger(self, p):
        self.ledger.append(dict(p))
        return _result(None)

    def _find_payment(self, p):
        for row in self.ledger:
            if row["wallet_id"] == p["wallet_id"] and row["payment_id"] == p["payment_id"]:
                return _result((row["transaction_id"],))
        return _result(None)

    def _transfer(self, p):
        asset = self.assets[p["asset_id"]]
        asset.update(owner=p["buyer_id"], status="sold", version=asset["version"] + 1)
        return _result(None)

    def _provenance(self, p):
        self.provenance.append(dict(p))
        return _result(None)

    def _close_offers(self, p):
        for key in [k for k in self.accepted_offers if k[0] == p["asset_id"]]:
            del self.accepted_offers[key]
        return _result(None)

    def _remove_entry(self, p):
        self.collections.discard((p["user_id"], p["asset_id"]))
        return _result(None)

    def _add_entry(self, p):
        key = (p["user_id"], p["asset_id"])
        if key in self.collections:
            return _result(None)
        self.collections.add(key)
        return _result((1,))

    def _event_seen(self, p):
        return _result((1,) if p["event_id"] in self.processed_events else None)

    def _mark_event(self, p):
        self.processed_events.add(p["event_id"])
        return _result(None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def market():
    return InMemoryMarket()


def _session(asset_id, buyer_id, wallet_id, payment_intent, amount_total=10_000) -> dict:
    return {
        "id": f"cs_{payment_intent}",
        "object": "checkout.session",
        "payment_status": "paid",
        "amount_total": amount_total,
        "currency": "usd",
        "payment_intent": payment_intent,
        "metadata": {
            "assetId": str(asset_id),
            "userId": str(buyer_id),
            "walletId": wallet_id,
            "type": "artwork_purchase",
        },
    }


def _signed_delivery(session: dict, event_id: str) -> tuple[bytes, str]:
    payload = json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": session},
        }
    ).encode()
    timestamp = int(time.time())
    signature = hmac.new(
        _WEBHOOK_SECRET.encode(),
        f"{timestamp}.{payload.decode()}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return payload, f"t={timestamp},v1={signature}"


async def _deliver(db, session: dict, event_id: str):
    payload, signature = _signed_delivery(session, event_id)
    with patch.object(settings, "STRIPE_WEBHOOK_SECRET", _WEBHOOK_SECRET):
        return await handle_webhook(payload, signature, db)


def _fallback_gateway(session: dict):
    gateway = MagicMock()
    gateway.retrieve_session = AsyncMock(return_value=session)
    return gateway


# ---------------------------------------------------------------------------
# 1. Signed webhook settles through the real routine
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_signed_webhook_settles_purchase(market):
    artist_id, buyer_id = uuid.uuid4(), uuid.uuid4()
    asset_id = market.add_asset(artist_id)
    wallet_id = market.add_wallet(buyer_id, credit_cents=25_000)

    outcome = await _deliver(market.db, _session(asset_id, buyer_id, wallet_id, "pi_1"), "evt_1")

    assert outcome.body["success"] is True
    assert outcome.body["message"] == MSG_PROCESSED
    assert is_valid_transaction_id(outcome.body["transactionId"])
    assert outcome.publish_asset_id == asset_id

    debits = market.debits(wallet_id)
    assert len(debits) == 1
    assert debits[0]["amount_cents"] == 10_000
    assert debits[0]["payment_id"] == "pi_1"
    assert debits[0]["asset_id"] == asset_id
    assert market.wallets[wallet_id]["balance"] == 15_000

    assert market.assets[asset_id]["owner"] == buyer_id
    assert market.assets[asset_id]["status"] == "sold"
    assert (buyer_id, asset_id) in market.collections
    assert (artist_id, asset_id) not in market.collections
    assert market.provenance[0]["from_user_id"] == artist_id
    assert market.settlements["pi_1"]["status"] == "completed"
    assert "evt_1" in market.processed_events


@pytest.mark.asyncio
async def test_ledger_stays_consistent_after_settlement(market):
    buyer_id = uuid.uuid4()
    asset_id = market.add_asset(uuid.uuid4())
    wallet_id = market.add_wallet(buyer_id, credit_cents=25_000)

    await _deliver(market.db, _session(asset_id, buyer_id, wallet_id, "pi_1"), "evt_1")
    await append_transaction(
        market.db,
        wallet_id=wallet_id,
        user_id=buyer_id,
        txn_type="CREDIT",
        amount_cents=5_000,
        description="Top-up",
    )

    report = verify_ledger_integrity(
        market.wallets[wallet_id]["balance"], market.transactions(wallet_id)
    )
    assert report.valid, report.errors
    assert report.calculated_balance_cents == 20_000


# ---------------------------------------------------------------------------
# 2. Webhook and fallback for the same payment debit once
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_webhook_then_fallback_debits_once(market, make_user):
    buyer = make_user()
    asset_id = market.add_asset(uuid.uuid4())
    wallet_id = market.add_wallet(buyer.user_id, credit_cents=25_000)
    session = _session(asset_id, buyer.user_id, wallet_id, "pi_1")

    first = await _deliver(market.db, session, "evt_1")
    second = await process_checkout_session(
        market.db, buyer, session["id"], gateway=_fallback_gateway(session)
    )

    assert second.body["message"] == MSG_ALREADY_PROCESSED
    assert second.body["transactionId"] == first.body["transactionId"]
    assert second.body["gatewayPaymentId"] == "pi_1"
    assert second.publish_asset_id is None
    assert len(market.debits(wallet_id)) == 1
    assert market.wallets[wallet_id]["balance"] == 15_000


@pytest.mark.asyncio
async def test_fallback_then_redelivered_webhook(market, make_user):
    buyer = make_user()
    asset_id = market.add_asset(uuid.uuid4())
    wallet_id = market.add_wallet(buyer.user_id, credit_cents=25_000)
    session = _session(asset_id, buyer.user_id, wallet_id, "pi_1")

    first = await process_checkout_session(
        market.db, buyer, session["id"], gateway=_fallback_gateway(session)
    )
    second = await _deliver(market.db, session, "evt_1")
    replay = await _deliver(market.db, session, "evt_1")

    assert first.body["message"] == MSG_PROCESSED
    assert market.settlements["pi_1"]["trigger"] == "fallback"
    assert second.body["message"] == MSG_ALREADY_PROCESSED
    assert replay.body == {"received": True, "duplicate": True}
    assert len(market.debits(wallet_id)) == 1


# ---------------------------------------------------------------------------
# 3. A second buyer paying for an already sold artwork
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_buyer_does_not_take_sold_artwork(market, make_user):
    first_buyer = uuid.uuid4()
    second_buyer = make_user()
    asset_id = market.add_asset(uuid.uuid4())
    first_wallet = market.add_wallet(first_buyer, credit_cents=25_000)
    second_wallet = market.add_wallet(second_buyer.user_id, credit_cents=25_000)

    await _deliver(market.db, _session(asset_id, first_buyer, first_wallet, "pi_a"), "evt_a")
    outcome = await _deliver(
        market.db,
        _session(asset_id, second_buyer.user_id, second_wallet, "pi_b"),
        "evt_b",
    )

    assert outcome.body["success"] is False
    assert outcome.body["message"] == MSG_UNAVAILABLE
    assert outcome.publish_asset_id is None
    assert market.assets[asset_id]["owner"] == first_buyer
    assert (second_buyer.user_id, asset_id) not in market.collections
    assert market.debits(second_wallet) == []
    assert market.wallets[second_wallet]["balance"] == 25_000
    assert market.settlements["pi_b"]["status"] == "conflict"
    assert "evt_b" in market.processed_events

    retry = await process_checkout_session(
        market.db,
        second_buyer,
        "cs_pi_b",
        gateway=_fallback_gateway(
            _session(asset_id, second_buyer.user_id, second_wallet, "pi_b")
        ),
    )
    assert retry.body["success"] is False
    assert retry.body["message"] == MSG_UNAVAILABLE
    assert market.assets[asset_id]["owner"] == first_buyer


@pytest.mark.asyncio
async def test_accepted_offer_buys_sold_artwork(market):
    collector, bidder = uuid.uuid4(), uuid.uuid4()
    asset_id = market.add_asset(collector, status="sold")
    wallet_id = market.add_wallet(bidder, credit_cents=50_000)
    now = datetime.now(timezone.utc)
    market.accepted_offers[(asset_id, bidder)] = (
        "OFFER_1_ABCDEFG", asset_id, bidder, "Bidder", 30_000, "USD",
        None, "accepted", collector, now, now, now,
    )

    result = await settle_purchase(
        market.db,
        PaymentDetails(
            payment_id="pi_offer",
            session_id="cs_offer",
            asset_id=asset_id,
            buyer_id=bidder,
            wallet_id=wallet_id,
            amount_cents=30_000,
            currency="USD",
        ),
        "webhook",
    )

    assert result.ownership_transferred is True
    assert result.conflict is False
    assert market.assets[asset_id]["owner"] == bidder
    assert (collector, asset_id) not in market.collections
    assert (bidder, asset_id) in market.collections
    assert market.accepted_offers == {}
    assert market.wallets[wallet_id]["balance"] == 20_000
