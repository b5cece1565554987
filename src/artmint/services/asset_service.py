"""Artwork CRUD with ownership-gated updates, relisting, and provenance."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

import structlog
from fastapi import HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.integrations.cms_client import UploadedFile
from artmint.models import User
from artmint.services.audit_logger import AuditLogger
from artmint.services.collection_service import CREATOR_TRANSACTION_ID, add_user_asset

log = structlog.get_logger()
audit = AuditLogger()

MAX_PRICE_CENTS = 100_000_000
AssetStatus = Literal["sale", "resale", "sold"]


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class AssetResponse(BaseModel):
    asset_id: uuid.UUID
    title: str
    description: Optional[str] = None
    tags: list[str] = []
    category: Optional[str] = None
    file_name: str
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    file_url: Optional[str] = None
    artist_id: uuid.UUID
    artist_name: Optional[str] = None
    price_cents: Optional[int] = None
    currency: str
    status: AssetStatus
    current_owner_id: uuid.UUID
    owner_transaction_id: str
    version: int
    created_at: datetime
    updated_at: datetime


class BrowseAssetsResponse(BaseModel):
    assets: list[AssetResponse]
    next_cursor: Optional[str] = None


class AssetCreate(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=50)
    tags: list[str] = Field(default_factory=list, max_length=10)
    price_cents: Optional[int] = Field(default=None, gt=0, le=MAX_PRICE_CENTS)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    status: AssetStatus = "sale"


class AssetUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=50)
    tags: Optional[list[str]] = Field(default=None, max_length=10)
    price_cents: Optional[int] = Field(default=None, gt=0, le=MAX_PRICE_CENTS)
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Z]{3}$")
    status: Optional[AssetStatus] = None


class ResaleRequest(BaseModel):
    price_cents: int = Field(gt=0, le=MAX_PRICE_CENTS, alias="priceCents")
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")

    model_config = {"populate_by_name": True}


class ProvenanceRecord(BaseModel):
    from_user_id: Optional[uuid.UUID] = None
    to_user_id: uuid.UUID
    to_display_name: Optional[str] = None
    transfer_type: str
    transaction_id: str
    price_cents: Optional[int] = None
    transferred_at: datetime


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_ASSET_COLUMNS = (
    "a.asset_id, a.title, a.description, a.tags, a.category, a.file_name, "
    "a.content_type, a.file_size, a.file_url, a.artist_id, u.display_name, "
    "a.price_cents, a.currency, a.status, a.current_owner_id, "
    "a.owner_transaction_id, a.version, a.created_at, a.updated_at"
)

_ASSET_FROM = "FROM assets a LEFT JOIN users u ON u.user_id = a.artist_id "

_DETAIL_FIELDS = ("title", "description", "category", "tags")


def _row_to_asset(row) -> AssetResponse:
    """Map a database row to an AssetResponse."""
    tags = row[3]
    if isinstance(tags, str):
        tags = json.loads(tags)
    return AssetResponse(
        asset_id=row[0],
        title=row[1],
        description=row[2],
        tags=tags or [],
        category=row[4],
        file_name=row[5],
        content_type=row[6],
        file_size=row[7],
        file_url=row[8],
        artist_id=row[9],
        artist_name=row[10],
        price_cents=row[11],
        currency=row[12],
        status=row[13],
        current_owner_id=row[14],
        owner_transaction_id=row[15],
        version=row[16],
        created_at=row[17],
        updated_at=row[18],
    )


async def _lock_asset(db: AsyncSession, asset_id: uuid.UUID):
    """Lock the asset row. Returns (artist_id, current_owner_id, status, price_cents)."""
    result = await db.execute(
        text(
            "SELECT artist_id, current_owner_id, status, price_cents "
            "FROM assets WHERE asset_id = :asset_id FOR UPDATE"
        ),
        {"asset_id": asset_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Artwork not found")
    return row[0], row[1], row[2], row[3]


async def _apply_changes(
    db: AsyncSession, asset_id: uuid.UUID, changes: dict
) -> AssetResponse:
    """Write *changes* to the asset, bump its version and return the new state."""
    params = dict(changes)
    if "tags" in params:
        params["tags"] = json.dumps(params["tags"])

    assignments = [
        f"{column} = CAST(:tags AS JSONB)" if column == "tags" else f"{column} = :{column}"
        for column in changes
    ]
    assignments += ["version = version + 1", "updated_at = :updated_at"]
    params.update(asset_id=asset_id, updated_at=datetime.now(timezone.utc))

    await db.execute(
        text(
            f"UPDATE assets SET {', '.join(assignments)} WHERE asset_id = :asset_id"
        ),
        params,
    )
    return await get_asset(db, asset_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_asset(db: AsyncSession, asset_id: uuid.UUID) -> AssetResponse:
    """Get a single asset by ID."""
    result = await db.execute(
        text(f"SELECT {_ASSET_COLUMNS} {_ASSET_FROM}WHERE a.asset_id = :asset_id"),
        {"asset_id": asset_id},
    )
    row = result.fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail="Artwork not found")
    return _row_to_asset(row)


async def browse_assets(
    db: AsyncSession,
    cursor: Optional[str] = None,
    limit: int = 50,
) -> BrowseAssetsResponse:
    """Browse assets that are for sale, newest first (max 100 per page)."""
    limit = min(max(limit, 1), 100)
    if cursor is not None:
        result = await db.execute(
            text(
                f"SELECT {_ASSET_COLUMNS} {_ASSET_FROM}"
                "WHERE a.status IN ('sale', 'resale') AND (a.created_at, a.asset_id) < ("
                "  SELECT created_at, asset_id FROM assets WHERE asset_id = :cursor_id"
                ") ORDER BY a.created_at DESC, a.asset_id DESC LIMIT :fetch_limit"
            ),
            {"cursor_id": uuid.UUID(cursor), "fetch_limit": limit + 1},
        )
    else:
        result = await db.execute(
            text(
                f"SELECT {_ASSET_COLUMNS} {_ASSET_FROM}"
                "WHERE a.status IN ('sale', 'resale') "
                "ORDER BY a.created_at DESC, a.asset_id DESC LIMIT :fetch_limit"
            ),
            {"fetch_limit": limit + 1},
        )
    rows = result.fetchall()

    has_next = len(rows) > limit
    rows = rows[:limit] if has_next else rows

    assets = [_row_to_asset(r) for r in rows]
    next_cursor = str(assets[-1].asset_id) if has_next and assets else None
    return BrowseAssetsResponse(assets=assets, next_cursor=next_cursor)


async def get_provenance(
    db: AsyncSession, asset_id: uuid.UUID
) -> list[ProvenanceRecord]:
    """Return the full ownership chain, oldest first."""
    await get_asset(db, asset_id)
    result = await db.execute(
        text(
            "SELECT oh.from_user_id, oh.to_user_id, u.display_name, "
            "       oh.transfer_type, oh.transaction_id, oh.price_cents, "
            "       oh.transferred_at "
            "FROM ownership_history oh "
            "LEFT JOIN users u ON u.user_id = oh.to_user_id "
            "WHERE oh.asset_id = :asset_id "
            "ORDER BY oh.transferred_at ASC, oh.record_id ASC"
        ),
        {"asset_id": asset_id},
    )
    return [
        ProvenanceRecord(
            from_user_id=row[0],
            to_user_id=row[1],
            to_display_name=row[2],
            transfer_type=row[3],
            transaction_id=row[4],
            price_cents=row[5],
            transferred_at=row[6],
        )
        for row in result.fetchall()
    ]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_asset(
    db: AsyncSession,
    artist: User,
    upload: UploadedFile,
    file_name: str,
    content_type: str | None,
    fields: AssetCreate,
) -> AssetResponse:
    """Record an uploaded artwork with the artist as its first owner."""
    if not artist.is_artist:
        raise HTTPException(status_code=403, detail="Only artists can upload artwork")

    asset_id = uuid.uuid4()
    now = datetime.now(timezone.utc)

    await db.execute(
        text(
            "INSERT INTO assets "
            "(asset_id, title, description, tags, category, file_name, "
            " content_type, file_size, file_url, cms_asset_uid, artist_id, "
            " price_cents, currency, status, current_owner_id, "
            " owner_transaction_id, version, created_at, updated_at) "
            "VALUES (:asset_id, :title, :description, CAST(:tags AS JSONB), "
            " :category, :file_name, :content_type, :file_size, :file_url, "
            " :cms_asset_uid, :artist_id, :price_cents, :currency, :status, "
            " :artist_id, :owner_transaction_id, 0, :now, :now)"
        ),
        {
            "asset_id": asset_id,
            "title": fields.title,
            "description": fields.description,
            "tags": json.dumps(fields.tags),
            "category": fields.category,
            "file_name": file_name,
            "content_type": content_type,
            "file_size": upload.file_size,
            "file_url": upload.url,
            "cms_asset_uid": upload.uid,
            "artist_id": artist.user_id,
            "price_cents": fields.price_cents,
            "currency": fields.currency,
            "status": fields.status,
            "owner_transaction_id": CREATOR_TRANSACTION_ID,
            "now": now,
        },
    )
    await db.execute(
        text(
            "INSERT INTO ownership_history "
            "(asset_id, from_user_id, to_user_id, transfer_type, "
            " transaction_id, price_cents, transferred_at) "
            "VALUES (:asset_id, NULL, :artist_id, 'creation', "
            " :transaction_id, :price_cents, :now)"
        ),
        {
            "asset_id": asset_id,
            "artist_id": artist.user_id,
            "transaction_id": CREATOR_TRANSACTION_ID,
            "price_cents": fields.price_cents,
            "now": now,
        },
    )
    await add_user_asset(
        db,
        user_id=artist.user_id,
        asset_id=asset_id,
        transaction_id=CREATOR_TRANSACTION_ID,
        price_cents=fields.price_cents,
        currency=fields.currency,
    )

    audit.log_ownership_transfer(
        asset_id=asset_id,
        from_user_id=None,
        to_user_id=artist.user_id,
        transfer_type="creation",
        transaction_id=CREATOR_TRANSACTION_ID,
    )
    log.info("asset_created", asset_id=str(asset_id), artist_id=str(artist.user_id))
    return await get_asset(db, asset_id)


async def update_asset(
    db: AsyncSession,
    asset_id: uuid.UUID,
    user: User,
    request: AssetUpdateRequest,
) -> AssetResponse:
    """Apply a permission-gated partial update.

    * artist or current owner may change price and currency
    * only the artist may change title/description/category/tags, and only
      while the asset is not sold
    * the owner may set status ``resale``; the artist may set ``sale``
      while the asset is not sold
    """
    artist_id, owner_id, status, price_cents = await _lock_asset(db, asset_id)

    is_artist = artist_id == user.user_id
    is_owner = owner_id == user.user_id
    if not (is_artist or is_owner):
        raise HTTPException(
            status_code=403, detail="You do not have permission to update this artwork"
        )

    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")

    if any(field in changes for field in _DETAIL_FIELDS):
        if not is_artist:
            raise HTTPException(
                status_code=403, detail="Only the artist can edit artwork details"
            )
        if status == "sold":
            raise HTTPException(
                status_code=403, detail="Cannot edit details of a sold artwork"
            )

    new_status = changes.get("status")
    if new_status is not None and new_status != status:
        if new_status == "resale" and is_owner:
            if price_cents is None and "price_cents" not in changes:
                raise HTTPException(
                    status_code=400, detail="A price is required to list for resale"
                )
        elif new_status == "sale" and is_artist and user.is_artist and status != "sold":
            pass
        else:
            raise HTTPException(
                status_code=403, detail=f"You cannot set this artwork to '{new_status}'"
            )

    updated = await _apply_changes(db, asset_id, changes)
    log.info(
        "asset_updated",
        asset_id=str(asset_id),
        user_id=str(user.user_id),
        fields=sorted(changes),
    )
    return updated


async def publish_asset(
    db: AsyncSession, asset_id: uuid.UUID, user: User
) -> AssetResponse:
    """Put the artist's own, still-held asset up for sale."""
    if not user.is_artist:
        raise HTTPException(status_code=403, detail="Only artists can publish artwork")

    artist_id, owner_id, status, _price = await _lock_asset(db, asset_id)
    if artist_id != user.user_id:
        raise HTTPException(
            status_code=403, detail="You can only publish your own artwork"
        )
    if status == "sold" or owner_id != artist_id:
        raise HTTPException(
            status_code=403, detail="Artwork has been sold and belongs to its collector"
        )
    return await _apply_changes(db, asset_id, {"status": "sale"})


async def list_for_resale(
    db: AsyncSession,
    asset_id: uuid.UUID,
    user: User,
    request: ResaleRequest,
) -> AssetResponse:
    """Relist an owned asset at a new price."""
    _artist_id, owner_id, _status, _price = await _lock_asset(db, asset_id)
    if owner_id != user.user_id:
        raise HTTPException(
            status_code=403, detail="Only the current owner can list this artwork for resale"
        )

    updated = await _apply_changes(
        db,
        asset_id,
        {
            "price_cents": request.price_cents,
            "currency": request.currency,
            "status": "resale",
        },
    )
    log.info(
        "asset_listed_for_resale",
        asset_id=str(asset_id),
        owner_id=str(user.user_id),
        price_cents=request.price_cents,
    )
    return updated


async def set_asset_price(
    db: AsyncSession, asset_id: uuid.UUID, price_cents: int, currency: str
) -> None:
    await db.execute(
        text(
            "UPDATE assets SET price_cents = :price_cents, currency = :currency, "
            "version = version + 1, updated_at = :now WHERE asset_id = :asset_id"
        ),
        {
            "price_cents": price_cents,
            "currency": currency,
            "now": datetime.now(timezone.utc),
            "asset_id": asset_id,
        },
    )
