"""Moderation routes for MODERATOR and ADMIN staff. Bulk actions are ADMIN only."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_ai_service
from app.api.middleware.auth import require_roles
from app.api.schemas import (
    BulkModerationRequest,
    BulkModerationResponse,
    ModerationEditRequest,
    ModerationHistoryItem,
    ModerationNoteRequest,
    ModerationQueueItem,
    ModerationRejectRequest,
    ModerationRequest,
    ModerationResult,
    ModerationStats,
    Page,
    ReviewResponse,
)
from app.database import get_session
from app.domain.models import User, UserRole
from app.services.ai import AIService
from app.services.moderation import ModerationService

staff_only = require_roles(UserRole.MODERATOR, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)

router = APIRouter(prefix="/moderation", tags=["Moderation"], dependencies=[Depends(staff_only)])


@router.get("/queue", response_model=Page[ModerationQueueItem])
async def queue(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> Page[ModerationQueueItem]:
    return await ModerationService(session, ai).queue(page, limit)


@router.post("/moderate-content", response_model=ModerationResult)
async def moderate_content(
    data: ModerationRequest,
    ai: AIService = Depends(get_ai_service),
) -> ModerationResult:
    """Ask the model whether a piece of text is fit to publish."""
    return await ai.moderate_content(data.content, data.content_type)


@router.post("/approve/{review_id}", response_model=ReviewResponse)
async def approve(
    review_id: UUID,
    data: ModerationNoteRequest | None = None,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    moderator: User = Depends(staff_only),
) -> ReviewResponse:
    reason = data.reason if data else None
    return await ModerationService(session, ai).approve(moderator, review_id, reason)


@router.post("/reject/{review_id}", response_model=ReviewResponse)
async def reject(
    review_id: UUID,
    data: ModerationRejectRequest,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    moderator: User = Depends(staff_only),
) -> ReviewResponse:
    return await ModerationService(session, ai).reject(moderator, review_id, data.reason)


@router.post("/edit/{review_id}", response_model=ReviewResponse)
async def edit(
    review_id: UUID,
    data: ModerationEditRequest,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    moderator: User = Depends(staff_only),
) -> ReviewResponse:
    return await ModerationService(session, ai).edit(
        moderator, review_id, data.new_content, data.reason
    )


@router.get("/stats", response_model=ModerationStats)
async def stats(
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> ModerationStats:
    return await ModerationService(session, ai).stats()


@router.get("/user-history/{user_id}", response_model=Page[ModerationHistoryItem])
async def user_history(
    user_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> Page[ModerationHistoryItem]:
    return await ModerationService(session, ai).user_history(user_id, page, limit)


@router.post("/bulk-moderate", response_model=BulkModerationResponse)
async def bulk_moderate(
    data: BulkModerationRequest,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    admin: User = Depends(admin_only),
) -> BulkModerationResponse:
    return await ModerationService(session, ai).bulk_moderate(
        admin, data.review_ids, data.action, data.reason
    )
