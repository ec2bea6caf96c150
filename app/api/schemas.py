"""Pydantic request/response schemas."""

import math
from datetime import datetime
from typing import Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.domain.models import UserRole

T = TypeVar("T")

SortField = Literal["title", "rating", "published_year", "created_at", "price", "popularity"]
SortOrder = Literal["asc", "desc"]
Sentiment = Literal["positive", "negative", "neutral"]


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: list, total: int, page: int, limit: int) -> "Page":
        pages = math.ceil(total / limit) if limit else 0
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )


# ── Auth ───────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    avatar_url: str | None = None
    bio: str | None = None
    created_at: datetime
    last_login: datetime | None = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenResponse):
    user: UserResponse


# ── Genres ─────────────────────────────────────────


class GenreCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class GenreUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None


class GenreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    book_count: int = 0
    created_at: datetime


# ── Books ──────────────────────────────────────────


class BookCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    author: str = Field(min_length=1, max_length=200)
    description: str | None = None
    isbn: str | None = Field(default=None, max_length=20)
    published_year: int | None = Field(default=None, ge=0, le=3000)
    page_count: int | None = Field(default=None, ge=1)
    language: str = Field(default="en", max_length=10)
    publisher: str | None = Field(default=None, max_length=200)
    price: float | None = Field(default=None, ge=0)
    cover_image_url: str | None = Field(default=None, max_length=500)
    genre_ids: list[UUID] = Field(default_factory=list)


class BookUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    author: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    isbn: str | None = Field(default=None, max_length=20)
    published_year: int | None = Field(default=None, ge=0, le=3000)
    page_count: int | None = Field(default=None, ge=1)
    language: str | None = Field(default=None, max_length=10)
    publisher: str | None = Field(default=None, max_length=200)
    price: float | None = Field(default=None, ge=0)
    cover_image_url: str | None = Field(default=None, max_length=500)
    genre_ids: list[UUID] | None = None


class BookResponse(BaseModel):
    id: UUID
    title: str
    author: str
    description: str | None = None
    isbn: str | None = None
    published_year: int | None = None
    page_count: int | None = None
    language: str = "en"
    publisher: str | None = None
    price: float | None = None
    cover_image_url: str | None = None
    average_rating: float = 0.0
    total_reviews: int = 0
    total_favorites: int = 0
    genres: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ReviewerSummary(BaseModel):
    id: UUID
    first_name: str
    last_name: str


class BookSummary(BaseModel):
    id: UUID
    title: str
    author: str
    cover_image_url: str | None = None


class ReviewResponse(BaseModel):
    id: UUID
    book_id: UUID
    user_id: UUID
    rating: int
    review_text: str | None = None
    sentiment: Sentiment | None = None
    is_flagged: bool = False
    is_moderated: bool = False
    helpful_votes: int = 0
    user: ReviewerSummary | None = None
    book: BookSummary | None = None
    created_at: datetime
    updated_at: datetime


class BookDetailResponse(BookResponse):
    reviews: list[ReviewResponse] = Field(default_factory=list)
    is_favorite: bool | None = None


class FavoriteStatusResponse(BaseModel):
    is_in_favorites: bool


class FavoriteBookResponse(BookResponse):
    added_to_favorites: datetime


class GenreCount(BaseModel):
    name: str
    book_count: int


class AuthorCount(BaseModel):
    author: str
    book_count: int


class BookStatistics(BaseModel):
    total_books: int
    total_reviews: int
    average_rating: float
    top_genres: list[GenreCount]


class SearchSuggestion(BaseModel):
    type: Literal["title", "author"]
    value: str
    book_id: UUID | None = None


# ── Reviews ────────────────────────────────────────


class ReviewCreateRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review_text: str | None = Field(default=None, max_length=5000)


class ReviewCreateForBookRequest(ReviewCreateRequest):
    book_id: UUID


class ReviewUpdateRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    review_text: str | None = Field(default=None, max_length=5000)


class HelpfulVoteRequest(BaseModel):
    is_helpful: bool = True


# ── Users ──────────────────────────────────────────


class ProfileUpdateRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    bio: str | None = Field(default=None, max_length=2000)
    avatar_url: str | None = Field(default=None, max_length=500)


class UserStats(BaseModel):
    total_reviews: int
    total_favorites: int
    average_rating: float
    helpful_votes: int


class UserProfileResponse(UserResponse):
    stats: UserStats


class ReadingStats(BaseModel):
    total_books_read: int
    total_pages_read: int
    average_rating: float
    favorite_genres: list[str]
    books_read_this_year: int


class UserSearchItem(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: str
    avatar_url: str | None = None
    created_at: datetime
    total_reviews: int
    total_favorites: int


# ── AI & Recommendations ──────────────────────────


class RecommendationItem(BaseModel):
    id: UUID
    title: str
    author: str
    cover_image_url: str | None = None
    description: str | None = None
    published_year: int | None = None
    average_rating: float
    total_reviews: int
    genres: list[str] = Field(default_factory=list)
    reason: str
    confidence: float
    trending_score: float | None = None


class RecommendationsResponse(BaseModel):
    recommendations: list[RecommendationItem]
    count: int
    explanation: str | None = None


class QueryRecommendationRequest(BaseModel):
    query: str = Field(max_length=500)
    limit: int = Field(default=3, ge=1, le=20)


class QueryRecommendationResponse(BaseModel):
    recommendations: list[RecommendationItem]
    explanation: str
    query: str
    total_found: int


class AnalyzeReviewRequest(BaseModel):
    review_text: str = Field(min_length=1, max_length=5000)


class ReviewAnalysis(BaseModel):
    sentiment: Sentiment
    themes: list[str]
    quality: float
    summary: str


class DescriptionRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    author: str = Field(min_length=1, max_length=200)
    existing_description: str | None = None


class DescriptionResponse(BaseModel):
    description: str


class ModerationRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    content_type: Literal["review", "comment"] = "review"


class ModerationResult(BaseModel):
    is_appropriate: bool
    confidence: float
    reasons: list[str]
    suggested_action: Literal["approve", "reject", "edit"]


class AIStatusResponse(BaseModel):
    provider: str
    model: str
    configured: bool
    prompts: dict[str, str]


# ── Admin ──────────────────────────────────────────


class RoleUpdateRequest(BaseModel):
    role: UserRole


class ModerateReviewRequest(BaseModel):
    action: Literal["approve", "reject", "flag"]


class AdminStats(BaseModel):
    total_users: int
    total_books: int
    total_reviews: int
    total_genres: int
    flagged_reviews: int
    average_rating: float


# ── Moderation ─────────────────────────────────────

ModerationStatus = Literal["pending", "approved", "rejected", "published"]


class ModerationQueueItem(BaseModel):
    id: UUID
    content_type: Literal["review"] = "review"
    content: str | None = None
    rating: int
    book_id: UUID
    book_title: str
    author_id: UUID
    author_name: str
    created_at: datetime
    flagged_at: datetime


class ModerationNoteRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ModerationRejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class ModerationEditRequest(BaseModel):
    new_content: str = Field(min_length=1, max_length=5000)
    reason: str = Field(min_length=1, max_length=500)


class ModerationStats(BaseModel):
    pending_count: int
    approved_count: int
    rejected_count: int
    flagged_count: int
    average_processing_hours: float


class ModerationHistoryItem(BaseModel):
    id: UUID
    book_id: UUID
    content: str | None = None
    rating: int
    status: ModerationStatus
    created_at: datetime
    updated_at: datetime


class BulkModerationRequest(BaseModel):
    review_ids: list[UUID] = Field(min_length=1, max_length=100)
    action: Literal["approve", "reject"]
    reason: str | None = Field(default=None, max_length=500)


class BulkModerationResponse(BaseModel):
    message: str
    updated: int
