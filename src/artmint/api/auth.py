"""Authentication API router -- /api/auth/*."""

from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from artmint.api.dependencies import get_current_user
from artmint.config import settings
from artmint.database import get_db
from artmint.models import User
from artmint.services.auth_service import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
    authenticate_user,
    create_tokens,
    get_profile,
    refresh_tokens as refresh_tokens_service,
    register_user,
    revoke_all_tokens,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_REFRESH_COOKIE_PATH = "/api/auth"


def _set_token_cookies(response: Response, tokens: TokenResponse) -> None:
    """Mirror both tokens into httpOnly, Secure, SameSite=Strict cookies."""
    cookies = (
        (
            "access_token",
            tokens.access_token,
            settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "/",
        ),
        (
            "refresh_token",
            tokens.refresh_token,
            settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 86400,
            _REFRESH_COOKIE_PATH,
        ),
    )
    for key, value, max_age, path in cookies:
        response.set_cookie(
            key=key,
            value=value,
            max_age=max_age,
            path=path,
            httponly=True,
            secure=True,
            samesite="strict",
        )


def clear_token_cookies(response: Response) -> None:
    response.delete_cookie("access_token", path="/")
    response.delete_cookie("refresh_token", path=_REFRESH_COOKIE_PATH)


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Create an account and its wallet."""
    user = await register_user(db, request)
    await db.commit()
    return user


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    user = await authenticate_user(db, request.email, request.password)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    tokens = create_tokens(user.user_id, user.token_version)
    _set_token_cookies(response, tokens)
    return tokens


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    db: AsyncSession = Depends(get_db),
    refresh_token: str | None = Cookie(default=None),
) -> TokenResponse:
    """Exchange the refresh_token cookie for a new token pair."""
    if refresh_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token missing",
        )

    tokens = await refresh_tokens_service(db, refresh_token)
    _set_token_cookies(response, tokens)
    return tokens


@router.post("/logout")
async def logout(
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    """Revoke every outstanding token and clear the cookies."""
    await revoke_all_tokens(db, current_user.user_id)
    await db.commit()

    clear_token_cookies(response)

    return {"detail": "Successfully logged out"}


@router.get("/me", response_model=UserResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return await get_profile(db, current_user)
