"""Per-user collection index (which assets a user currently holds)."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

log = structlog.get_logger()

CREATOR_TRANSACTION_ID = "CREATOR"


class CollectionEntry(BaseModel):
    asset_id: uuid.UUID
    transaction_id: str
    purchase_date: datetime
    price_cents: Optional[int] = None
    currency: str
    added_at: datetime
    title: str
    file_url: Optional[str] = None
    artist_id: uuid.UUID
    status: str


class CollectionResponse(BaseModel):
    user_id: uuid.UUID
    assets: list[CollectionEntry]


async def add_user_asset(
    db: AsyncSession,
    user_id: uuid.UUID,
    asset_id: uuid.UUID,
    transaction_id: str,
    price_cents: int | None,
    currency: str,
) -> bool:
    """Add *asset_id* to the user's collection.

    Idempotent: returns False when the entry already exists.
    """
    now = datetime.now(timezone.utc)
    result = await db.execute(
        text(
            "INSERT INTO user_assets "
            "(user_id, asset_id, transaction_id, purchase_date, price_cents, "
            " currency, added_at) "
            "VALUES (:user_id, :asset_id, :transaction_id, :now, :price_cents, "
            " :currency, :now) "
            "ON CONFLICT (user_id, asset_id) DO NOTHING "
            "RETURNING entry_id"
        ),
        {
            "user_id": user_id,
            "asset_id": asset_id,
            "transaction_id": transaction_id,
            "price_cents": price_cents,
            "currency": currency,
            "now": now,
        },
    )
    added = result.fetchone() is not None
    if not added:
        log.info(
            "collection_entry_exists", user_id=str(user_id), asset_id=str(asset_id)
        )
    return added


async def remove_user_asset(
    db: AsyncSession, user_id: uuid.UUID, asset_id: uuid.UUID
) -> None:
    await db.execute(
        text("DELETE FROM user_assets WHERE user_id = :user_id AND asset_id = :asset_id"),
        {"user_id": user_id, "asset_id": asset_id},
    )


async def get_collection(db: AsyncSession, user_id: uuid.UUID) -> CollectionResponse:
    """Return the user's collection, most recently added first."""
    result = await db.execute(
        text(
            "SELECT ua.asset_id, ua.transaction_id, ua.purchase_date, "
            "       ua.price_cents, ua.currency, ua.added_at, "
            "       a.title, a.file_url, a.artist_id, a.status "
            "FROM user_assets ua "
            "JOIN assets a ON a.asset_id = ua.asset_id "
            "WHERE ua.user_id = :user_id "
            "ORDER BY ua.added_at DESC"
        ),
        {"user_id": user_id},
    )
    entries = [
        CollectionEntry(
            asset_id=row[0],
            transaction_id=row[1],
            purchase_date=row[2],
            price_cents=row[3],
            currency=row[4],
            added_at=row[5],
            title=row[6],
            file_url=row[7],
            artist_id=row[8],
            status=row[9],
        )
        for row in result.fetchall()
    ]
    return CollectionResponse(user_id=user_id, assets=entries)


async def delete_user_collection(db: AsyncSession, user_id: uuid.UUID) -> None:
    await db.execute(
        text("DELETE FROM user_assets WHERE user_id = :user_id"),
        {"user_id": user_id},
    )
