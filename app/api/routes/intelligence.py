"""Recommendation and GenAI routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_ai_service
from app.api.middleware.auth import get_current_user, require_roles
from app.api.schemas import (
    AIStatusResponse,
    AnalyzeReviewRequest,
    DescriptionRequest,
    DescriptionResponse,
    ModerationRequest,
    ModerationResult,
    QueryRecommendationRequest,
    QueryRecommendationResponse,
    RecommendationsResponse,
    ReviewAnalysis,
)
from app.database import get_session
from app.domain.models import User, UserRole
from app.services.ai import AIService
from app.services.recommendation import RecommendationService

router = APIRouter(prefix="/recommendations", tags=["Recommendations"])
ai_router = APIRouter(prefix="/ai", tags=["AI"])


@router.get("", response_model=RecommendationsResponse)
async def personalized(
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    user: User = Depends(get_current_user),
) -> RecommendationsResponse:
    """Personalized picks: LLM suggestions blended with collaborative filtering."""
    return await RecommendationService(session, ai).personalized(user.id, limit)


@router.get("/similar/{book_id}", response_model=RecommendationsResponse)
async def similar_books(
    book_id: UUID,
    limit: int = Query(5, ge=1, le=20),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> RecommendationsResponse:
    return await RecommendationService(session, ai).similar(book_id, limit)


@router.get("/trending", response_model=RecommendationsResponse)
async def trending(
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> RecommendationsResponse:
    return await RecommendationService(session, ai).trending(limit)


@router.get("/genre/{genre_id}", response_model=RecommendationsResponse)
async def by_genre(
    genre_id: UUID,
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> RecommendationsResponse:
    return await RecommendationService(session, ai).by_genre(genre_id, limit)


@router.get("/new-releases", response_model=RecommendationsResponse)
async def new_releases(
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> RecommendationsResponse:
    return await RecommendationService(session, ai).new_releases(limit)


@router.post("/analyze-review", response_model=ReviewAnalysis)
async def analyze_review(
    data: AnalyzeReviewRequest,
    ai: AIService = Depends(get_ai_service),
    _user: User = Depends(get_current_user),
) -> ReviewAnalysis:
    return await ai.analyze_review(data.review_text)


@router.post("/generate-description", response_model=DescriptionResponse)
async def generate_description(
    data: DescriptionRequest,
    ai: AIService = Depends(get_ai_service),
    _user: User = Depends(get_current_user),
) -> DescriptionResponse:
    description = await ai.generate_description(
        data.title, data.author, data.existing_description
    )
    return DescriptionResponse(description=description)


# ── /ai ────────────────────────────────────────────


@ai_router.post("/recommendations", response_model=QueryRecommendationResponse)
async def query_recommendations(
    data: QueryRecommendationRequest,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
) -> QueryRecommendationResponse:
    """Free-text request ("cozy mysteries set in Japan") answered from the catalog."""
    return await RecommendationService(session, ai).query_recommendations(data.query, data.limit)


@ai_router.post("/moderate", response_model=ModerationResult)
async def moderate(
    data: ModerationRequest,
    ai: AIService = Depends(get_ai_service),
    _user: User = Depends(require_roles(UserRole.MODERATOR, UserRole.ADMIN)),
) -> ModerationResult:
    return await ai.moderate_content(data.content, data.content_type)


@ai_router.get("/status", response_model=AIStatusResponse)
async def ai_status(ai: AIService = Depends(get_ai_service)) -> AIStatusResponse:
    return ai.status()
