"""Offers on owned artworks -- create, list, accept/reject, and lookup.

An accepted offer authorizes its buyer to check out at the offered amount.
Accepting one offer rejects every other open offer on the same asset in the
same statement, so at most one offer per asset is ever ``accepted``.
"""

from __future__ import annotations

import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

import structlog
from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.models import User
from artmint.services.asset_service import MAX_PRICE_CENTS, set_asset_price
from artmint.services.audit_logger import AuditLogger

log = structlog.get_logger()
audit = AuditLogger()

_ID_ALPHABET = string.digits + string.ascii_lowercase
OFFERABLE_STATUSES = ("sold", "resale")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOfferRequest(_CamelModel):
    amount_cents: int = Field(gt=0, le=MAX_PRICE_CENTS)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    message: Optional[str] = Field(default=None, max_length=500)


class UpdateOfferRequest(_CamelModel):
    status: Literal["accepted", "rejected"]


class OfferResponse(_CamelModel):
    offer_id: str
    asset_id: uuid.UUID
    buyer_id: uuid.UUID
    buyer_name: str
    amount_cents: int
    currency: str
    message: Optional[str] = None
    status: str
    accepted_by: Optional[uuid.UUID] = None
    accepted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OfferListResponse(_CamelModel):
    offers: list[OfferResponse]
    count: int


class OfferCountResponse(_CamelModel):
    count: int


class OfferDecisionResponse(_CamelModel):
    success: bool = True
    offer: OfferResponse
    rejected_count: int = 0


class AcceptedOfferResponse(_CamelModel):
    success: bool = True
    offer: Optional[OfferResponse] = None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_OFFER_COLUMNS = (
    "offer_id, asset_id, buyer_id, buyer_name, amount_cents, currency, "
    "message, status, accepted_by, accepted_at, created_at, updated_at"
)


def create_offer_id(now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"OFFER_{now_ms}_{suffix}"


def _row_to_offer(row) -> OfferResponse:
    return OfferResponse(
        offer_id=row[0],
        asset_id=row[1],
        buyer_id=row[2],
        buyer_name=row[3],
        amount_cents=row[4],
        currency=row[5],
        message=row[6],
        status=row[7],
        accepted_by=row[8],
        accepted_at=row[9],
        created_at=row[10],
        updated_at=row[11],
    )


async def _fetch_asset_state(
    db: AsyncSession, asset_id: uuid.UUID, for_update: bool = False
) -> tuple[uuid.UUID, str]:
    """Return (current_owner_id, status) for the asset."""
    lock = " FOR UPDATE" if for_update else ""
    result = await db.execute(
        text(
            f"SELECT current_owner_id, status FROM assets WHERE asset_id = :asset_id{lock}"
        ),
        {"asset_id": asset_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Artwork not found")
    return row[0], row[1]


async def _require_owner(
    db: AsyncSession,
    asset_id: uuid.UUID,
    user_id: uuid.UUID,
    detail: str,
    for_update: bool = False,
) -> None:
    owner_id, _status = await _fetch_asset_state(db, asset_id, for_update)
    if owner_id != user_id:
        raise HTTPException(status_code=403, detail=detail)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_offer(
    db: AsyncSession,
    asset_id: uuid.UUID,
    buyer: User,
    request: CreateOfferRequest,
) -> OfferResponse:
    """Record a pending offer from *buyer* on an asset someone else owns."""
    owner_id, status = await _fetch_asset_state(db, asset_id)

    if owner_id == buyer.user_id:
        raise HTTPException(
            status_code=400, detail="You cannot make an offer on your own artwork"
        )
    if status not in OFFERABLE_STATUSES:
        raise HTTPException(
            status_code=400, detail="Offers can only be made on sold artworks."
        )

    now = datetime.now(timezone.utc)
    result = await db.execute(
        text(
            "INSERT INTO offers "
            "(offer_id, asset_id, buyer_id, buyer_name, amount_cents, currency, "
            " message, status, created_at, updated_at) "
            "VALUES (:offer_id, :asset_id, :buyer_id, :buyer_name, :amount_cents, "
            " :currency, :message, 'pending', :now, :now) "
            f"RETURNING {_OFFER_COLUMNS}"
        ),
        {
            "offer_id": create_offer_id(),
            "asset_id": asset_id,
            "buyer_id": buyer.user_id,
            "buyer_name": buyer.display_name or "Anonymous",
            "amount_cents": request.amount_cents,
            "currency": request.currency,
            "message": request.message,
            "now": now,
        },
    )
    offer = _row_to_offer(result.fetchone())

    audit.log_offer_event(
        offer_id=offer.offer_id,
        asset_id=asset_id,
        actor_id=buyer.user_id,
        action="created",
        amount_cents=offer.amount_cents,
    )
    return offer


async def list_offers(
    db: AsyncSession, asset_id: uuid.UUID, user_id: uuid.UUID
) -> OfferListResponse:
    """Pending offers for the owner, highest amount first."""
    await _require_owner(
        db, asset_id, user_id, "Only the current owner can view offers"
    )
    result = await db.execute(
        text(
            f"SELECT {_OFFER_COLUMNS} FROM offers "
            "WHERE asset_id = :asset_id AND status = 'pending' "
            "ORDER BY amount_cents DESC, created_at ASC"
        ),
        {"asset_id": asset_id},
    )
    offers = [_row_to_offer(row) for row in result.fetchall()]
    return OfferListResponse(offers=offers, count=len(offers))


async def count_offers(
    db: AsyncSession, asset_id: uuid.UUID, user_id: uuid.UUID
) -> OfferCountResponse:
    await _require_owner(
        db, asset_id, user_id, "Only the current owner can view offers"
    )
    result = await db.execute(
        text(
            "SELECT COUNT(*) FROM offers "
            "WHERE asset_id = :asset_id AND status = 'pending'"
        ),
        {"asset_id": asset_id},
    )
    return OfferCountResponse(count=result.scalar_one())


async def decide_offer(
    db: AsyncSession,
    asset_id: uuid.UUID,
    offer_id: str,
    user_id: uuid.UUID,
    decision: Literal["accepted", "rejected"],
) -> OfferDecisionResponse:
    """Accept or reject a pending offer as the current owner.

    Accepting also rejects every other open offer on the asset and moves the
    listed price to the offered amount. The price move runs in a savepoint
    and a failure there is logged, not raised.
    """
    await _require_owner(
        db,
        asset_id,
        user_id,
        "Only the current owner can respond to offers",
        for_update=True,
    )

    result = await db.execute(
        text(
            f"SELECT {_OFFER_COLUMNS} FROM offers "
            "WHERE offer_id = :offer_id AND asset_id = :asset_id FOR UPDATE"
        ),
        {"offer_id": offer_id, "asset_id": asset_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Offer not found")

    offer = _row_to_offer(row)
    if offer.status != "pending":
        raise HTTPException(status_code=400, detail=f"Offer is already {offer.status}")

    now = datetime.now(timezone.utc)

    if decision == "rejected":
        result = await db.execute(
            text(
                "UPDATE offers SET status = 'rejected', updated_at = :now "
                f"WHERE offer_id = :offer_id RETURNING {_OFFER_COLUMNS}"
            ),
            {"offer_id": offer_id, "now": now},
        )
        rejected = _row_to_offer(result.fetchone())
        audit.log_offer_event(
            offer_id=offer_id, asset_id=asset_id, actor_id=user_id, action="rejected"
        )
        return OfferDecisionResponse(offer=rejected)

    # Siblings go first so the one-accepted-per-asset index never sees two
    result = await db.execute(
        text(
            "UPDATE offers SET status = 'rejected', updated_at = :now "
            "WHERE asset_id = :asset_id AND offer_id != :offer_id "
            "AND status IN ('pending', 'accepted') "
            "RETURNING offer_id"
        ),
        {"asset_id": asset_id, "offer_id": offer_id, "now": now},
    )
    rejected_count = len(result.fetchall())

    result = await db.execute(
        text(
            "UPDATE offers SET status = 'accepted', accepted_by = :user_id, "
            "accepted_at = :now, updated_at = :now "
            f"WHERE offer_id = :offer_id RETURNING {_OFFER_COLUMNS}"
        ),
        {"offer_id": offer_id, "user_id": user_id, "now": now},
    )
    accepted = _row_to_offer(result.fetchone())

    try:
        async with db.begin_nested():
            await set_asset_price(
                db, asset_id, accepted.amount_cents, accepted.currency
            )
    except SQLAlchemyError as exc:
        log.warning(
            "offer_price_update_failed",
            asset_id=str(asset_id),
            offer_id=offer_id,
            error=str(exc),
        )

    audit.log_offer_event(
        offer_id=offer_id,
        asset_id=asset_id,
        actor_id=user_id,
        action="accepted",
        amount_cents=accepted.amount_cents,
        rejected_count=rejected_count,
    )
    return OfferDecisionResponse(offer=accepted, rejected_count=rejected_count)


async def get_accepted_offer(
    db: AsyncSession, asset_id: uuid.UUID, buyer_id: uuid.UUID
) -> Optional[OfferResponse]:
    """The buyer's accepted offer on the asset, if there is one."""
    result = await db.execute(
        text(
            f"SELECT {_OFFER_COLUMNS} FROM offers "
            "WHERE asset_id = :asset_id AND buyer_id = :buyer_id "
            "AND status = 'accepted' LIMIT 1"
        ),
        {"asset_id": asset_id, "buyer_id": buyer_id},
    )
    row = result.fetchone()
    return _row_to_offer(row) if row is not None else None


async def close_accepted_offers(
    db: AsyncSession, asset_id: uuid.UUID, buyer_id: uuid.UUID
) -> None:
    """Mark the accepted offer completed (if the buyer held it) or expired."""
    await db.execute(
        text(
            "UPDATE offers SET status = CASE WHEN buyer_id = :buyer_id "
            "THEN 'completed' ELSE 'expired' END, updated_at = :now "
            "WHERE asset_id = :asset_id AND status = 'accepted'"
        ),
        {"asset_id": asset_id, "buyer_id": buyer_id, "now": datetime.now(timezone.utc)},
    )


async def delete_pending_offers_by_buyer(db: AsyncSession, buyer_id: uuid.UUID) -> None:
    await db.execute(
        text("DELETE FROM offers WHERE buyer_id = :buyer_id AND status = 'pending'"),
        {"buyer_id": buyer_id},
    )
