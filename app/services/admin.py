"""Administration: platform counters, role management and review moderation."""

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import AdminStats, Page, ReviewResponse, UserResponse
from app.domain.models import Book, Genre, Review, User, UserRole
from app.services.aggregates import review_cards, round_rating

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _count(self, column, *conditions) -> int:
        result = await self._session.execute(select(func.count(column)).where(*conditions))
        return result.scalar_one()

    async def stats(self) -> AdminStats:
        average = (await self._session.execute(select(func.avg(Review.rating)))).scalar_one()
        return AdminStats(
            total_users=await self._count(User.id),
            total_books=await self._count(Book.id),
            total_reviews=await self._count(Review.id),
            total_genres=await self._count(Genre.id),
            flagged_reviews=await self._count(Review.id, Review.is_flagged.is_(True)),
            average_rating=round_rating(average),
        )

    async def list_users(self, page: int, limit: int, q: str | None = None) -> Page[UserResponse]:
        conditions = []
        if q and q.strip():
            term = q.strip()
            conditions.append(
                or_(
                    User.email.icontains(term, autoescape=True),
                    User.first_name.icontains(term, autoescape=True),
                    User.last_name.icontains(term, autoescape=True),
                )
            )
        total = await self._count(User.id, *conditions)
        result = await self._session.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [UserResponse.model_validate(u) for u in result.scalars().all()]
        return Page[UserResponse].build(items, total, page, limit)

    async def update_role(self, actor: User, user_id: UUID, role: UserRole) -> UserResponse:
        if user_id == actor.id and role != UserRole.ADMIN:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Admins cannot demote themselves",
            )
        user = await self._session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        user.role = role
        await self._session.flush()
        logger.info("Admin %s set role of %s to %s", actor.id, user.id, role.value)
        return UserResponse.model_validate(user)

    async def flagged_reviews(self, page: int, limit: int) -> Page[ReviewResponse]:
        flagged = Review.is_flagged.is_(True)
        total = await self._count(Review.id, flagged)
        result = await self._session.execute(
            select(Review)
            .where(flagged)
            .order_by(Review.created_at.desc(), Review.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = await review_cards(self._session, result.scalars().all(), with_book=True)
        return Page[ReviewResponse].build(items, total, page, limit)

    async def moderate_review(self, review_id: UUID, action: str) -> ReviewResponse | None:
        """
        Apply a moderation decision.

        ``approve`` clears the flag and marks the review moderated, ``flag``
        raises the flag, ``reject`` deletes the review and returns None.
        """
        review = await self._session.get(Review, review_id)
        if review is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")

        if action == "reject":
            await self._session.delete(review)
            await self._session.flush()
            logger.info("Review %s rejected and removed", review_id)
            return None

        if action == "approve":
            review.is_flagged = False
            review.is_moderated = True
        elif action == "flag":
            review.is_flagged = True
        else:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown action")
        await self._session.flush()
        logger.info("Review %s moderation: %s", review_id, action)
        return (await review_cards(self._session, [review], with_book=True))[0]
