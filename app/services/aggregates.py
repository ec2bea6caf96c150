"""
Rating aggregation and response assembly shared by the services.

Everything here works on batches: one grouped query per statistic for a
whole page of books or reviews, never one query per row.
"""

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import BookResponse, BookSummary, ReviewerSummary, ReviewResponse
from app.domain.models import Book, BookGenre, Genre, Review, ReviewHelpful, User, UserFavorite


def round_rating(value: float | None) -> float:
    """Round an average rating half-up to one decimal; no ratings means 0."""
    if not value:
        return 0.0
    return math.floor(float(value) * 10 + 0.5) / 10


async def rating_stats(
    session: AsyncSession, book_ids: Sequence[UUID]
) -> dict[UUID, tuple[float, int]]:
    """Map book id -> (rounded average rating, review count)."""
    if not book_ids:
        return {}
    result = await session.execute(
        select(Review.book_id, func.avg(Review.rating), func.count(Review.id))
        .where(Review.book_id.in_(book_ids))
        .group_by(Review.book_id)
    )
    return {row[0]: (round_rating(row[1]), row[2]) for row in result.all()}


async def favorite_counts(session: AsyncSession, book_ids: Sequence[UUID]) -> dict[UUID, int]:
    if not book_ids:
        return {}
    result = await session.execute(
        select(UserFavorite.book_id, func.count(UserFavorite.id))
        .where(UserFavorite.book_id.in_(book_ids))
        .group_by(UserFavorite.book_id)
    )
    return dict(result.all())


async def genre_names(session: AsyncSession, book_ids: Sequence[UUID]) -> dict[UUID, list[str]]:
    """Map book id -> sorted genre names."""
    if not book_ids:
        return {}
    result = await session.execute(
        select(BookGenre.book_id, Genre.name)
        .join(Genre, Genre.id == BookGenre.genre_id)
        .where(BookGenre.book_id.in_(book_ids))
        .order_by(Genre.name)
    )
    names: dict[UUID, list[str]] = defaultdict(list)
    for book_id, name in result.all():
        names[book_id].append(name)
    return names


async def book_cards(session: AsyncSession, books: Sequence[Book]) -> list[BookResponse]:
    """Attach average rating, review/favorite counts and genres to each book."""
    ids = [b.id for b in books]
    ratings = await rating_stats(session, ids)
    favorites = await favorite_counts(session, ids)
    genres = await genre_names(session, ids)

    cards = []
    for book in books:
        average, total = ratings.get(book.id, (0.0, 0))
        cards.append(
            BookResponse(
                id=book.id,
                title=book.title,
                author=book.author,
                description=book.description,
                isbn=book.isbn,
                published_year=book.published_year,
                page_count=book.page_count,
                language=book.language,
                publisher=book.publisher,
                price=book.price,
                cover_image_url=book.cover_image_url,
                average_rating=average,
                total_reviews=total,
                total_favorites=favorites.get(book.id, 0),
                genres=genres.get(book.id, []),
                created_at=book.created_at,
                updated_at=book.updated_at,
            )
        )
    return cards


async def helpful_counts(session: AsyncSession, review_ids: Sequence[UUID]) -> dict[UUID, int]:
    """Map review id -> number of 'helpful' votes."""
    if not review_ids:
        return {}
    result = await session.execute(
        select(ReviewHelpful.review_id, func.count(ReviewHelpful.id))
        .where(
            ReviewHelpful.review_id.in_(review_ids),
            ReviewHelpful.is_helpful.is_(True),
        )
        .group_by(ReviewHelpful.review_id)
    )
    return dict(result.all())


async def review_cards(
    session: AsyncSession,
    reviews: Iterable[Review],
    with_user: bool = True,
    with_book: bool = False,
) -> list[ReviewResponse]:
    """Build review responses with reviewer/book summaries and helpful-vote counts."""
    reviews = list(reviews)
    helpful = await helpful_counts(session, [r.id for r in reviews])

    users: dict[UUID, User] = {}
    if with_user and reviews:
        result = await session.execute(
            select(User).where(User.id.in_(list({r.user_id for r in reviews})))
        )
        users = {u.id: u for u in result.scalars().all()}

    books: dict[UUID, Book] = {}
    if with_book and reviews:
        result = await session.execute(
            select(Book).where(Book.id.in_(list({r.book_id for r in reviews})))
        )
        books = {b.id: b for b in result.scalars().all()}

    cards = []
    for review in reviews:
        user = users.get(review.user_id)
        book = books.get(review.book_id)
        cards.append(
            ReviewResponse(
                id=review.id,
                book_id=review.book_id,
                user_id=review.user_id,
                rating=review.rating,
                review_text=review.review_text,
                sentiment=review.sentiment,
                is_flagged=review.is_flagged,
                is_moderated=review.is_moderated,
                helpful_votes=helpful.get(review.id, 0),
                user=ReviewerSummary(
                    id=user.id, first_name=user.first_name, last_name=user.last_name
                ) if user else None,
                book=BookSummary(
                    id=book.id,
                    title=book.title,
                    author=book.author,
                    cover_image_url=book.cover_image_url,
                ) if book else None,
                created_at=review.created_at,
                updated_at=review.updated_at,
            )
        )
    return cards
