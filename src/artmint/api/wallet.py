"""Wallet endpoints -- /api/wallet/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.dependencies import get_current_user
from artmint.database import get_db
from artmint.models import User
from artmint.services.wallet_service import LedgerResponse, create_wallet, get_ledger

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_wallet_endpoint(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a wallet for an account that does not have one yet."""
    wallet_id = await create_wallet(db, current_user.user_id)
    await db.commit()
    return {"success": True, "wallet_id": wallet_id}


@router.get("/ledger", response_model=LedgerResponse)
async def ledger_endpoint(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_ledger(db, current_user.user_id)
