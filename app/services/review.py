"""Review service: one review per user and book, sentiment tagging, helpful votes."""

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import Page, ReviewCreateRequest, ReviewResponse, ReviewUpdateRequest
from app.domain.models import Book, Review, ReviewHelpful, User, UserRole
from app.services.aggregates import review_cards
from app.services.ai import AIService

logger = logging.getLogger(__name__)


class ReviewService:
    """Handles review writes and reads. Sentiment comes from the AI layer."""

    def __init__(self, session: AsyncSession, ai: AIService) -> None:
        self._session = session
        self._ai = ai

    async def get_or_404(self, review_id: UUID) -> Review:
        review = await self._session.get(Review, review_id)
        if review is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
        return review

    async def create_review(
        self, user: User, book_id: UUID, data: ReviewCreateRequest
    ) -> tuple[ReviewResponse, bool]:
        """
        Submit a review for a book.

        A second review by the same user replaces the first one. Returns the
        review and whether it was newly created.
        """
        if await self._session.get(Book, book_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

        result = await self._session.execute(
            select(Review).where(Review.book_id == book_id, Review.user_id == user.id)
        )
        review = result.scalar_one_or_none()
        created = review is None

        if created:
            review = Review(
                book_id=book_id,
                user_id=user.id,
                rating=data.rating,
                review_text=data.review_text,
            )
            self._session.add(review)
        else:
            review.rating = data.rating
            review.review_text = data.review_text
        await self._session.flush()

        review.sentiment = await self._ai.sentiment_of(review.review_text)
        await self._session.flush()
        logger.info(
            "%s review %s by user %s (sentiment=%s)",
            "Created" if created else "Updated", review.id, user.id, review.sentiment,
        )
        return await self._card(review), created

    async def update_review(
        self, review_id: UUID, user: User, data: ReviewUpdateRequest
    ) -> ReviewResponse:
        review = await self.get_or_404(review_id)
        if review.user_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only update your own reviews",
            )

        changes = data.model_dump(exclude_unset=True)
        if changes.get("rating") is not None:
            review.rating = changes["rating"]
        if "review_text" in changes and changes["review_text"] != review.review_text:
            review.review_text = changes["review_text"]
            review.sentiment = await self._ai.sentiment_of(review.review_text)
        await self._session.flush()
        return await self._card(review)

    async def delete_review(self, review_id: UUID, user: User) -> None:
        review = await self.get_or_404(review_id)
        is_staff = UserRole(user.role) in (UserRole.MODERATOR, UserRole.ADMIN)
        if review.user_id != user.id and not is_staff:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only delete your own reviews",
            )
        await self._session.delete(review)
        await self._session.flush()
        logger.info("Review %s deleted by %s", review_id, user.id)

    async def get_review(self, review_id: UUID) -> ReviewResponse:
        return await self._card(await self.get_or_404(review_id))

    async def list_reviews(
        self,
        page: int,
        limit: int,
        book_id: UUID | None = None,
        user_id: UUID | None = None,
        min_rating: int | None = None,
        max_rating: int | None = None,
    ) -> Page[ReviewResponse]:
        conditions = []
        if book_id is not None:
            conditions.append(Review.book_id == book_id)
        if user_id is not None:
            conditions.append(Review.user_id == user_id)
        if min_rating is not None:
            conditions.append(Review.rating >= min_rating)
        if max_rating is not None:
            conditions.append(Review.rating <= max_rating)

        total = (
            await self._session.execute(select(func.count(Review.id)).where(*conditions))
        ).scalar_one()
        result = await self._session.execute(
            select(Review)
            .where(*conditions)
            .order_by(Review.created_at.desc(), Review.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = await review_cards(self._session, result.scalars().all(), with_book=True)
        return Page[ReviewResponse].build(items, total, page, limit)

    async def vote_helpful(self, review_id: UUID, user: User, is_helpful: bool) -> ReviewResponse:
        """Record or change the user's helpful vote on someone else's review."""
        review = await self.get_or_404(review_id)
        if review.user_id == user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot vote on your own review",
            )

        result = await self._session.execute(
            select(ReviewHelpful).where(
                ReviewHelpful.review_id == review_id, ReviewHelpful.user_id == user.id
            )
        )
        vote = result.scalar_one_or_none()
        if vote is None:
            self._session.add(
                ReviewHelpful(review_id=review_id, user_id=user.id, is_helpful=is_helpful)
            )
        else:
            vote.is_helpful = is_helpful
        await self._session.flush()
        return await self._card(review)

    async def _card(self, review: Review) -> ReviewResponse:
        return (await review_cards(self._session, [review], with_book=True))[0]
