"""Authentication routes."""

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import get_access_claims, get_current_user
from app.api.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.database import get_session
from app.domain.models import User
from app.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Create a new account. The email must not be registered yet."""
    user = await AuthService(session).register(data)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> LoginResponse:
    user, access, refresh = await AuthService(session).login(data.email, data.password)
    return LoginResponse(
        user=UserResponse.model_validate(user),
        access_token=access,
        refresh_token=refresh,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    data: RefreshRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Trade a refresh token for a new access/refresh pair."""
    access, refresh_token = await AuthService(session).refresh(data.refresh_token)
    return TokenResponse(access_token=access, refresh_token=refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    claims: dict[str, Any] = Depends(get_access_claims),
) -> Response:
    await AuthService(session).logout(user, claims)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/profile", response_model=UserResponse)
async def profile(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
