"""Artwork endpoints -- upload, browse, update, relist, provenance."""

from __future__ import annotations

import json
import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.dependencies import get_current_user
from artmint.config import settings
from artmint.database import get_db
from artmint.integrations.cms_client import (
    CmsClient,
    CmsConnectionError,
    CmsTimeoutError,
    CmsUploadError,
    schedule_publish,
)
from artmint.models import User
from artmint.services.asset_service import (
    AssetCreate,
    AssetResponse,
    AssetUpdateRequest,
    BrowseAssetsResponse,
    ProvenanceRecord,
    ResaleRequest,
    browse_assets,
    create_asset,
    get_asset,
    get_provenance,
    list_for_resale,
    publish_asset,
    update_asset,
)

log = structlog.get_logger()

router = APIRouter(prefix="/api/assets", tags=["assets"])


def _parse_tags(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Tags must be a JSON array")
    if not isinstance(tags, list):
        raise HTTPException(status_code=400, detail="Tags must be a JSON array")
    return tags


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/upload", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def upload_asset(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    price_cents: Optional[int] = Form(None),
    currency: str = Form(settings.DEFAULT_CURRENCY),
    asset_status: str = Form("sale", alias="status"),
    tags: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Upload an image to the asset store and record it as a new artwork.

    Artists only. The artist becomes the first owner.
    """
    if not current_user.is_artist:
        raise HTTPException(status_code=403, detail="Only artists can upload artwork")

    file_name = file.filename or "artwork"
    try:
        fields = AssetCreate(
            title=title or file_name,
            description=description,
            category=category,
            tags=_parse_tags(tags),
            price_cents=price_cents,
            currency=currency,
            status=asset_status,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc

    content = await file.read()
    try:
        uploaded = await CmsClient().upload_file(file_name, content, file.content_type)
    except (CmsTimeoutError, CmsConnectionError, CmsUploadError) as exc:
        log.error("asset_upload_failed", file_name=file_name, error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if uploaded.file_size is None:
        uploaded.file_size = len(content)

    try:
        asset = await create_asset(
            db,
            artist=current_user,
            upload=uploaded,
            file_name=file_name,
            content_type=file.content_type,
            fields=fields,
        )
        await db.commit()
    except Exception:
        # The stored file has no asset row now; log its uid for cleanup
        log.error(
            "asset_record_failed_file_orphaned",
            uid=uploaded.uid,
            url=uploaded.url,
            file_name=file_name,
        )
        raise

    schedule_publish(asset.asset_id)
    return asset


@router.get("", response_model=BrowseAssetsResponse)
async def browse_assets_endpoint(
    cursor: Optional[uuid.UUID] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Artworks for sale or resale, newest first, with cursor pagination."""
    return await browse_assets(
        db, cursor=str(cursor) if cursor is not None else None, limit=limit
    )


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset_endpoint(
    asset_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await get_asset(db, asset_id)


@router.put("/{asset_id}", response_model=AssetResponse)
async def update_asset_endpoint(
    asset_id: uuid.UUID,
    body: AssetUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    asset = await update_asset(db, asset_id, current_user, body)
    await db.commit()
    schedule_publish(asset_id)
    return asset


@router.post("/{asset_id}/publish", response_model=AssetResponse)
async def publish_asset_endpoint(
    asset_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Put the artist's own artwork up for sale."""
    asset = await publish_asset(db, asset_id, current_user)
    await db.commit()
    schedule_publish(asset_id)
    return asset


@router.post("/{asset_id}/resale", response_model=AssetResponse)
async def resale_endpoint(
    asset_id: uuid.UUID,
    body: ResaleRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    asset = await list_for_resale(db, asset_id, current_user, body)
    await db.commit()
    schedule_publish(asset_id)
    return asset


@router.get("/{asset_id}/provenance", response_model=list[ProvenanceRecord])
async def provenance_endpoint(
    asset_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Ownership chain from creation to the current owner."""
    return await get_provenance(db, asset_id)
