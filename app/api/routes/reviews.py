"""Review routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_ai_service
from app.api.middleware.auth import get_current_user
from app.api.schemas import (
    HelpfulVoteRequest,
    Page,
    ReviewCreateForBookRequest,
    ReviewResponse,
    ReviewUpdateRequest,
)
from app.database import get_session
from app.domain.models import User
from app.services.ai import AIService
from app.services.review import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("", response_model=Page[ReviewResponse])
async def list_reviews(
    book_id: UUID | None = None,
    user_id: UUID | None = None,
    min_rating: int | None = Query(None, ge=1, le=5),
    max_rating: int | None = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> Page[ReviewResponse]:
    return await ReviewService(session, ai).list_reviews(
        page, limit, book_id=book_id, user_id=user_id,
        min_rating=min_rating, max_rating=max_rating,
    )


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreateForBookRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    user: User = Depends(get_current_user),
) -> ReviewResponse:
    """Create a review, or update the caller's existing review of that book (200)."""
    review, created = await ReviewService(session, ai).create_review(user, data.book_id, data)
    if not created:
        response.status_code = status.HTTP_200_OK
    return review


@router.get("/user/{user_id}", response_model=Page[ReviewResponse])
async def user_reviews(
    user_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> Page[ReviewResponse]:
    return await ReviewService(session, ai).list_reviews(page, limit, user_id=user_id)


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(
    review_id: UUID,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> ReviewResponse:
    return await ReviewService(session, ai).get_review(review_id)


@router.put("/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: UUID,
    data: ReviewUpdateRequest,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    user: User = Depends(get_current_user),
) -> ReviewResponse:
    return await ReviewService(session, ai).update_review(review_id, user, data)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: UUID,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    user: User = Depends(get_current_user),
) -> Response:
    await ReviewService(session, ai).delete_review(review_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{review_id}/helpful", response_model=ReviewResponse)
async def vote_helpful(
    review_id: UUID,
    data: HelpfulVoteRequest,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    user: User = Depends(get_current_user),
) -> ReviewResponse:
    """Mark someone else's review as helpful (or not). Voting again changes the vote."""
    return await ReviewService(session, ai).vote_helpful(review_id, user, data.is_helpful)
