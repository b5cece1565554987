"""Offer endpoints nested under an artwork -- /api/assets/{asset_id}/offers."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.dependencies import get_current_user
from artmint.database import get_db
from artmint.integrations.cms_client import schedule_publish
from artmint.models import User
from artmint.services.offer_service import (
    AcceptedOfferResponse,
    CreateOfferRequest,
    OfferCountResponse,
    OfferDecisionResponse,
    OfferListResponse,
    OfferResponse,
    UpdateOfferRequest,
    count_offers,
    create_offer,
    decide_offer,
    get_accepted_offer,
    list_offers,
)

router = APIRouter(prefix="/api/assets/{asset_id}/offers", tags=["offers"])


@router.post("", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer_endpoint(
    asset_id: uuid.UUID,
    body: CreateOfferRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    offer = await create_offer(db, asset_id, current_user, body)
    await db.commit()
    return offer


@router.get("", response_model=OfferListResponse)
async def list_offers_endpoint(
    asset_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pending offers, highest first. Current owner only."""
    return await list_offers(db, asset_id, current_user.user_id)


@router.get("/count", response_model=OfferCountResponse)
async def count_offers_endpoint(
    asset_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await count_offers(db, asset_id, current_user.user_id)


@router.get("/accepted", response_model=AcceptedOfferResponse)
async def accepted_offer_endpoint(
    asset_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's own accepted offer on this artwork, if any."""
    offer = await get_accepted_offer(db, asset_id, current_user.user_id)
    return AcceptedOfferResponse(offer=offer)


@router.put("/{offer_id}", response_model=OfferDecisionResponse)
async def decide_offer_endpoint(
    asset_id: uuid.UUID,
    offer_id: str,
    body: UpdateOfferRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept or reject a pending offer."""
    decision = await decide_offer(
        db, asset_id, offer_id, current_user.user_id, body.status
    )
    await db.commit()
    if body.status == "accepted":
        schedule_publish(asset_id)
    return decision
