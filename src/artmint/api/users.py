"""Account management -- /api/user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.auth import clear_token_cookies
from artmint.api.dependencies import get_current_user
from artmint.database import get_db
from artmint.models import User
from artmint.services.auth_service import delete_account

router = APIRouter(prefix="/api/user", tags=["user"])


@router.delete("")
async def delete_user(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete the caller's collection, pending offers and wallet, then deactivate them."""
    await delete_account(db, current_user)
    await db.commit()

    clear_token_cookies(response)
    return {"success": True, "message": "Account deleted"}
