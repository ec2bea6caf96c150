"""Book catalog routes: listing, CRUD, covers, favorites and book reviews."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_ai_service, get_storage
from app.api.middleware.auth import get_current_user, get_optional_user, require_roles
from app.api.schemas import (
    AuthorCount,
    BookCreateRequest,
    BookDetailResponse,
    BookResponse,
    BookStatistics,
    BookUpdateRequest,
    FavoriteStatusResponse,
    Page,
    ReviewCreateRequest,
    ReviewResponse,
    SearchSuggestion,
    SortField,
    SortOrder,
)
from app.database import get_session
from app.domain.models import User, UserRole
from app.ports.storage import StoragePort
from app.services.ai import AIService
from app.services.book import BookFilters, BookService
from app.services.review import ReviewService

router = APIRouter(prefix="/books", tags=["Books"])

staff = require_roles(UserRole.MODERATOR, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)


@router.get("", response_model=Page[BookResponse])
async def list_books(
    search: str | None = Query(None, max_length=200),
    genre: str | None = Query(None, max_length=100),
    author: str | None = Query(None, max_length=200),
    min_rating: float | None = Query(None, ge=0, le=5),
    max_rating: float | None = Query(None, ge=0, le=5),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    year_from: int | None = Query(None),
    year_to: int | None = Query(None),
    sort_by: SortField = Query("created_at"),
    sort_order: SortOrder = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Page[BookResponse]:
    """List books with search, filters, sorting and pagination."""
    filters = BookFilters(
        search=search,
        genre=genre,
        author=author,
        min_rating=min_rating,
        max_rating=max_rating,
        min_price=min_price,
        max_price=max_price,
        year_from=year_from,
        year_to=year_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await BookService(session).list_books(filters, page, limit)


# ── Static paths (declared before /{book_id}) ──────


@router.get("/genres", response_model=list[str])
async def genre_names(session: AsyncSession = Depends(get_session)) -> list[str]:
    return await BookService(session).genre_names()


@router.get("/statistics", response_model=BookStatistics)
async def statistics(session: AsyncSession = Depends(get_session)) -> BookStatistics:
    return await BookService(session).statistics()


@router.get("/authors", response_model=list[AuthorCount])
async def authors(
    limit: int = Query(50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
) -> list[AuthorCount]:
    return await BookService(session).authors(limit)


@router.get("/search-suggestions", response_model=list[SearchSuggestion])
async def search_suggestions(
    q: str = Query("", max_length=200),
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> list[SearchSuggestion]:
    return await BookService(session).search_suggestions(q, limit)


@router.get("/recent/reviews", response_model=list[ReviewResponse])
async def recent_reviews(
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> list[ReviewResponse]:
    return await BookService(session).recent_reviews(limit)


@router.get("/isbn/{isbn}", response_model=BookResponse)
async def get_by_isbn(isbn: str, session: AsyncSession = Depends(get_session)) -> BookResponse:
    return await BookService(session).get_by_isbn(isbn)


# ── CRUD ───────────────────────────────────────────


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    data: BookCreateRequest,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(staff),
) -> BookResponse:
    return await BookService(session).create_book(data)


@router.get("/{book_id}", response_model=BookDetailResponse)
async def get_book(
    book_id: UUID,
    session: AsyncSession = Depends(get_session),
    viewer: User | None = Depends(get_optional_user),
) -> BookDetailResponse:
    """Book with statistics and all of its reviews, newest first."""
    return await BookService(session).get_book(book_id, viewer)


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: UUID,
    data: BookUpdateRequest,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(staff),
) -> BookResponse:
    return await BookService(session).update_book(book_id, data)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: UUID,
    session: AsyncSession = Depends(get_session),
    storage: StoragePort = Depends(get_storage),
    _user: User = Depends(admin_only),
) -> Response:
    await BookService(session).delete_book(book_id, storage)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{book_id}/cover", response_model=BookResponse)
async def upload_cover(
    book_id: UUID,
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    storage: StoragePort = Depends(get_storage),
    _user: User = Depends(staff),
) -> BookResponse:
    """Upload a JPEG/PNG/GIF cover image (size limited by MAX_UPLOAD_SIZE)."""
    return await BookService(session).upload_cover(book_id, file, storage)


# ── Favorites ──────────────────────────────────────


@router.put(
    "/{book_id}/favorites",
    response_model=FavoriteStatusResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_favorite(
    book_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> FavoriteStatusResponse:
    await BookService(session).add_favorite(user, book_id)
    return FavoriteStatusResponse(is_in_favorites=True)


@router.delete("/{book_id}/favorites", status_code=status.HTTP_204_NO_CONTENT)
async def remove_favorite(
    book_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> Response:
    await BookService(session).remove_favorite(user, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{book_id}/favorites-status", response_model=FavoriteStatusResponse)
async def favorite_status(
    book_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> FavoriteStatusResponse:
    return FavoriteStatusResponse(
        is_in_favorites=await BookService(session).favorite_status(user, book_id)
    )


# ── Reviews of a book ──────────────────────────────


@router.get("/{book_id}/reviews", response_model=Page[ReviewResponse])
async def book_reviews(
    book_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Page[ReviewResponse]:
    return await BookService(session).book_reviews(book_id, page, limit)


@router.post("/{book_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_book_review(
    book_id: UUID,
    data: ReviewCreateRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    ai: AIService = Depends(get_ai_service),
    user: User = Depends(get_current_user),
) -> ReviewResponse:
    """Review a book. Reviewing it again replaces the earlier review (200)."""
    review, created = await ReviewService(session, ai).create_review(user, book_id, data)
    if not created:
        response.status_code = status.HTTP_200_OK
    return review
