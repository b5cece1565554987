"""The caller's collection index -- /api/collection."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.dependencies import get_current_user
from artmint.database import get_db
from artmint.models import User
from artmint.services.collection_service import CollectionResponse, get_collection

router = APIRouter(prefix="/api/collection", tags=["collection"])


@router.get("", response_model=CollectionResponse)
async def collection_endpoint(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_collection(db, current_user.user_id)
