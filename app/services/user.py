"""User profiles, reading statistics and user search."""

from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import desc, extract, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    Page,
    ProfileUpdateRequest,
    ReadingStats,
    UserProfileResponse,
    UserResponse,
    UserSearchItem,
    UserStats,
)
from app.domain.models import Book, BookGenre, Genre, Review, ReviewHelpful, User, UserFavorite
from app.services.aggregates import round_rating


class UserService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_or_404(self, user_id: UUID) -> User:
        user = await self._session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user

    async def get_profile(self, user_id: UUID) -> UserProfileResponse:
        user = await self.get_or_404(user_id)
        return UserProfileResponse(
            **UserResponse.model_validate(user).model_dump(),
            stats=await self._stats(user.id),
        )

    async def update_profile(self, user: User, data: ProfileUpdateRequest) -> UserProfileResponse:
        changes = data.model_dump(exclude_unset=True)
        for field in ("first_name", "last_name"):
            if changes.get(field) is not None:
                setattr(user, field, changes[field].strip())
        for field in ("bio", "avatar_url"):
            if field in changes:
                setattr(user, field, changes[field])
        await self._session.flush()
        return await self.get_profile(user.id)

    async def _stats(self, user_id: UUID) -> UserStats:
        review_row = (
            await self._session.execute(
                select(func.count(Review.id), func.avg(Review.rating)).where(
                    Review.user_id == user_id
                )
            )
        ).one()
        favorites = (
            await self._session.execute(
                select(func.count(UserFavorite.id)).where(UserFavorite.user_id == user_id)
            )
        ).scalar_one()
        helpful = (
            await self._session.execute(
                select(func.count(ReviewHelpful.id))
                .join(Review, Review.id == ReviewHelpful.review_id)
                .where(Review.user_id == user_id, ReviewHelpful.is_helpful.is_(True))
            )
        ).scalar_one()
        return UserStats(
            total_reviews=review_row[0],
            total_favorites=favorites,
            average_rating=round_rating(review_row[1]),
            helpful_votes=helpful,
        )

    async def reading_stats(self, user_id: UUID) -> ReadingStats:
        """Reading habits derived from the user's reviews: a review counts as a book read."""
        await self.get_or_404(user_id)

        row = (
            await self._session.execute(
                select(
                    func.count(Review.id),
                    func.coalesce(func.sum(Book.page_count), 0),
                    func.avg(Review.rating),
                )
                .join(Book, Book.id == Review.book_id)
                .where(Review.user_id == user_id)
            )
        ).one()

        genres = await self._session.execute(
            select(Genre.name, func.count(Review.id).label("times"))
            .join(BookGenre, BookGenre.genre_id == Genre.id)
            .join(Review, Review.book_id == BookGenre.book_id)
            .where(Review.user_id == user_id)
            .group_by(Genre.id, Genre.name)
            .order_by(desc("times"), Genre.name)
            .limit(5)
        )

        this_year = (
            await self._session.execute(
                select(func.count(Review.id)).where(
                    Review.user_id == user_id,
                    extract("year", Review.created_at) == datetime.utcnow().year,
                )
            )
        ).scalar_one()

        return ReadingStats(
            total_books_read=row[0],
            total_pages_read=int(row[1] or 0),
            average_rating=round_rating(row[2]),
            favorite_genres=[name for name, _ in genres.all()],
            books_read_this_year=this_year,
        )

    async def search_users(self, q: str, page: int, limit: int) -> Page[UserSearchItem]:
        """Active users whose name or email contains ``q``."""
        term = q.strip()
        conditions = [
            User.is_active.is_(True),
            or_(
                User.first_name.icontains(term, autoescape=True),
                User.last_name.icontains(term, autoescape=True),
                User.email.icontains(term, autoescape=True),
            ),
        ]
        total = (
            await self._session.execute(select(func.count(User.id)).where(*conditions))
        ).scalar_one()

        review_counts = (
            select(Review.user_id, func.count(Review.id).label("n"))
            .group_by(Review.user_id)
            .subquery()
        )
        favorite_counts = (
            select(UserFavorite.user_id, func.count(UserFavorite.id).label("n"))
            .group_by(UserFavorite.user_id)
            .subquery()
        )
        result = await self._session.execute(
            select(
                User,
                func.coalesce(review_counts.c.n, 0),
                func.coalesce(favorite_counts.c.n, 0),
            )
            .outerjoin(review_counts, review_counts.c.user_id == User.id)
            .outerjoin(favorite_counts, favorite_counts.c.user_id == User.id)
            .where(*conditions)
            .order_by(User.first_name, User.last_name, User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            UserSearchItem(
                id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
                avatar_url=user.avatar_url,
                created_at=user.created_at,
                total_reviews=reviews,
                total_favorites=favorites,
            )
            for user, reviews, favorites in result.all()
        ]
        return Page[UserSearchItem].build(items, total, page, limit)
