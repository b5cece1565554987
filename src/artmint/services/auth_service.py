"""Authentication service: password hashing, JWT tokens, sign-up, login, deletion."""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Literal
from uuid import UUID, uuid4

import bcrypt
import structlog
from fastapi import HTTPException, status
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.config import settings
from artmint.models import User, Wallet
from artmint.services.collection_service import delete_user_collection
from artmint.services.offer_service import delete_pending_offers_by_buyer
from artmint.services.wallet_service import (
    create_wallet_id,
    delete_wallet,
    get_wallet_id,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Password hashing helpers (bcrypt, cost 12)
# ---------------------------------------------------------------------------

_BCRYPT_ROUNDS = 12
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt (cost 12)."""
    salt = bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., max_length=320)
    display_name: str = Field(..., min_length=1, max_length=80, alias="displayName")
    password: str = Field(..., min_length=8)
    role: Literal["buyer", "artist"] = "buyer"

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v.lower().strip()


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    user_id: UUID
    email: str
    display_name: str
    role: str
    wallet_id: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Service functions
# ---------------------------------------------------------------------------


async def register_user(db: AsyncSession, request: RegisterRequest) -> UserResponse:
    """Register a new user together with an empty wallet.

    Raises 409 if the email is already taken.
    """
    result = await db.execute(select(User).where(User.email == request.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user_id = uuid4()
    user = User(
        user_id=user_id,
        email=request.email,
        display_name=request.display_name,
        password_hash=hash_password(request.password),
        role=request.role,
    )
    wallet = Wallet(wallet_id=create_wallet_id(user_id), user_id=user_id)
    db.add(user)
    db.add(wallet)
    await db.flush()
    await db.refresh(user)

    log.info("user_registered", user_id=str(user_id), role=request.role)
    return UserResponse(
        user_id=user.user_id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        wallet_id=wallet.wallet_id,
        created_at=user.created_at,
    )


async def authenticate_user(
    db: AsyncSession, email: str, password: str
) -> User | None:
    """Authenticate a user by email and password.

    SECURITY: Always performs a password hash even when the user does not exist
    to prevent timing-based user enumeration.
    """
    result = await db.execute(select(User).where(User.email == email.lower().strip()))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        hash_password(password)
        return None

    if not verify_password(password, user.password_hash):
        return None

    return user


async def get_profile(db: AsyncSession, user: User) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        wallet_id=await get_wallet_id(db, user.user_id),
        created_at=user.created_at,
    )


def _encode_token(
    user_id: UUID, token_version: int, token_type: str, lifetime: timedelta
) -> str:
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "token_version": token_version,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm="HS256")


def create_tokens(user_id: UUID, token_version: int) -> TokenResponse:
    """Issue an access/refresh pair stamped with the user's token_version."""
    return TokenResponse(
        access_token=_encode_token(
            user_id,
            token_version,
            "access",
            timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        ),
        refresh_token=_encode_token(
            user_id,
            token_version,
            "refresh",
            timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        ),
    )


def verify_token(token: str, token_type: str) -> dict:
    """Decode *token* and check it is a *token_type* token.

    Raises HTTPException(401) on a bad signature, expiry, or type mismatch.
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=["HS256"])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if claims.get("type") != token_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Expected {token_type} token",
        )
    return claims


async def _find_user(db: AsyncSession, user_id: UUID) -> User | None:
    result = await db.execute(select(User).where(User.user_id == user_id))
    return result.scalar_one_or_none()


async def refresh_tokens(db: AsyncSession, refresh_token: str) -> TokenResponse:
    """Trade a refresh token for a fresh pair.

    The account must still be active and the token's version must match the
    user's current one; logging out bumps the version.
    """
    claims = verify_token(refresh_token, "refresh")
    try:
        user_id = UUID(claims["sub"])
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = await _find_user(db, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if user.token_version != claims.get("token_version"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
        )

    return create_tokens(user.user_id, user.token_version)


async def revoke_all_tokens(db: AsyncSession, user_id: UUID) -> None:
    """Bump token_version so every token issued so far stops validating."""
    user = await _find_user(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    user.token_version += 1
    await db.flush()
    log.info("tokens_revoked", user_id=str(user_id), token_version=user.token_version)


async def delete_account(db: AsyncSession, user: User) -> None:
    """Remove the user's private state and deactivate the account.

    Collection entries, pending offers and the wallet (with its ledger) are
    deleted. The user row stays, anonymized, because assets and provenance
    records keep pointing at it.
    """
    await delete_user_collection(db, user.user_id)
    await delete_pending_offers_by_buyer(db, user.user_id)
    await delete_wallet(db, user.user_id)

    user.email = f"deleted+{user.user_id.hex}@deleted.invalid"
    user.display_name = "Deleted user"
    user.password_hash = hash_password(secrets.token_urlsafe(32))
    user.is_active = False
    user.token_version += 1
    await db.flush()

    log.info("account_deleted", user_id=str(user.user_id))
