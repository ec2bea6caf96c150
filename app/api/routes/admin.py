"""Admin routes. Every endpoint requires the ADMIN role."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import require_roles
from app.api.schemas import (
    AdminStats,
    ModerateReviewRequest,
    Page,
    ReviewResponse,
    RoleUpdateRequest,
    UserResponse,
)
from app.database import get_session
from app.domain.models import User, UserRole
from app.services.admin import AdminService

admin_only = require_roles(UserRole.ADMIN)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(admin_only)])


@router.get("/stats", response_model=AdminStats)
async def stats(session: AsyncSession = Depends(get_session)) -> AdminStats:
    return await AdminService(session).stats()


@router.get("/users", response_model=Page[UserResponse])
async def list_users(
    q: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Page[UserResponse]:
    return await AdminService(session).list_users(page, limit, q)


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def update_role(
    user_id: UUID,
    data: RoleUpdateRequest,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(admin_only),
) -> UserResponse:
    return await AdminService(session).update_role(admin, user_id, data.role)


@router.get("/reviews/flagged", response_model=Page[ReviewResponse])
async def flagged_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Page[ReviewResponse]:
    return await AdminService(session).flagged_reviews(page, limit)


@router.put("/reviews/{review_id}/moderate", response_model=ReviewResponse | None)
async def moderate_review(
    review_id: UUID,
    data: ModerateReviewRequest,
    session: AsyncSession = Depends(get_session),
) -> ReviewResponse | Response:
    """Approve, flag or reject (delete) a review. Rejection answers 204."""
    review = await AdminService(session).moderate_review(review_id, data.action)
    if review is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return review
