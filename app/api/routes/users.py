"""User profile routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import get_current_user
from app.api.schemas import (
    FavoriteBookResponse,
    Page,
    ProfileUpdateRequest,
    ReadingStats,
    UserProfileResponse,
    UserSearchItem,
)
from app.database import get_session
from app.domain.models import User
from app.services.book import BookService
from app.services.user import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/search", response_model=Page[UserSearchItem])
async def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(get_current_user),
) -> Page[UserSearchItem]:
    return await UserService(session).search_users(q, page, limit)


@router.get("/profile", response_model=UserProfileResponse)
async def my_profile(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> UserProfileResponse:
    return await UserService(session).get_profile(user.id)


@router.put("/profile", response_model=UserProfileResponse)
async def update_profile(
    data: ProfileUpdateRequest,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> UserProfileResponse:
    return await UserService(session).update_profile(user, data)


@router.get("/{user_id}", response_model=UserProfileResponse)
async def get_profile(
    user_id: UUID, session: AsyncSession = Depends(get_session)
) -> UserProfileResponse:
    """Public profile with review and favorite statistics."""
    return await UserService(session).get_profile(user_id)


@router.get("/{user_id}/favorites", response_model=Page[FavoriteBookResponse])
async def user_favorites(
    user_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Page[FavoriteBookResponse]:
    await UserService(session).get_or_404(user_id)
    return await BookService(session).favorites_of(user_id, page, limit)


@router.get("/{user_id}/reading-stats", response_model=ReadingStats)
async def reading_stats(
    user_id: UUID, session: AsyncSession = Depends(get_session)
) -> ReadingStats:
    return await UserService(session).reading_stats(user_id)
