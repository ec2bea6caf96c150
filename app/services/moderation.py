"""
Review moderation for MODERATOR and ADMIN staff.

A review's moderation state is carried by two flags:

- flagged, not moderated: waiting in the queue (pending)
- moderated, not flagged: approved (or edited) by staff
- moderated and flagged: rejected by staff, kept for the record
- neither: published without review
"""

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    BulkModerationResponse,
    ModerationHistoryItem,
    ModerationQueueItem,
    ModerationStats,
    Page,
    ReviewResponse,
)
from app.domain.models import Book, Review, User
from app.services.aggregates import review_cards
from app.services.ai import AIService

logger = logging.getLogger(__name__)


def moderation_status(review: Review) -> str:
    if review.is_moderated:
        return "rejected" if review.is_flagged else "approved"
    return "pending" if review.is_flagged else "published"


class ModerationService:
    def __init__(self, session: AsyncSession, ai: AIService) -> None:
        self._session = session
        self._ai = ai

    async def _count(self, *conditions) -> int:
        result = await self._session.execute(select(func.count(Review.id)).where(*conditions))
        return result.scalar_one()

    async def _review_or_404(self, review_id: UUID) -> Review:
        review = await self._session.get(Review, review_id)
        if review is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
        return review

    async def queue(self, page: int, limit: int) -> Page[ModerationQueueItem]:
        """Flagged reviews no one has acted on yet, most recently flagged first."""
        pending = (Review.is_flagged.is_(True), Review.is_moderated.is_(False))
        total = await self._count(*pending)
        result = await self._session.execute(
            select(Review, Book.title, User.first_name, User.last_name)
            .join(Book, Book.id == Review.book_id)
            .join(User, User.id == Review.user_id)
            .where(*pending)
            .order_by(Review.updated_at.desc(), Review.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            ModerationQueueItem(
                id=review.id,
                content=review.review_text,
                rating=review.rating,
                book_id=review.book_id,
                book_title=title,
                author_id=review.user_id,
                author_name=f"{first} {last}".strip(),
                created_at=review.created_at,
                flagged_at=review.updated_at,
            )
            for review, title, first, last in result.all()
        ]
        return Page[ModerationQueueItem].build(items, total, page, limit)

    async def approve(
        self, moderator: User, review_id: UUID, reason: str | None = None
    ) -> ReviewResponse:
        review = await self._review_or_404(review_id)
        review.is_flagged = False
        review.is_moderated = True
        await self._session.flush()
        logger.info("Review %s approved by %s: %s", review_id, moderator.id, reason or "-")
        return (await review_cards(self._session, [review], with_book=True))[0]

    async def reject(self, moderator: User, review_id: UUID, reason: str) -> ReviewResponse:
        review = await self._review_or_404(review_id)
        review.is_flagged = True
        review.is_moderated = True
        await self._session.flush()
        logger.info("Review %s rejected by %s: %s", review_id, moderator.id, reason)
        return (await review_cards(self._session, [review], with_book=True))[0]

    async def edit(
        self, moderator: User, review_id: UUID, new_content: str, reason: str
    ) -> ReviewResponse:
        """Replace the review text, clear the flag and re-tag its sentiment."""
        review = await self._review_or_404(review_id)
        review.review_text = new_content
        review.sentiment = await self._ai.sentiment_of(new_content)
        review.is_flagged = False
        review.is_moderated = True
        await self._session.flush()
        logger.info("Review %s edited by %s: %s", review_id, moderator.id, reason)
        return (await review_cards(self._session, [review], with_book=True))[0]

    async def stats(self) -> ModerationStats:
        moderated = Review.is_moderated.is_(True)
        result = await self._session.execute(
            select(Review.created_at, Review.updated_at).where(moderated)
        )
        durations = [
            (updated - created).total_seconds() / 3600
            for created, updated in result.all()
            if created and updated
        ]
        average = round(sum(durations) / len(durations), 1) if durations else 0.0
        return ModerationStats(
            pending_count=await self._count(Review.is_flagged.is_(True), ~moderated),
            approved_count=await self._count(Review.is_flagged.is_(False), moderated),
            rejected_count=await self._count(Review.is_flagged.is_(True), moderated),
            flagged_count=await self._count(Review.is_flagged.is_(True)),
            average_processing_hours=average,
        )

    async def user_history(
        self, user_id: UUID, page: int, limit: int
    ) -> Page[ModerationHistoryItem]:
        """Every review by ``user_id`` with its moderation state, latest change first."""
        if await self._session.get(User, user_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        total = await self._count(Review.user_id == user_id)
        result = await self._session.execute(
            select(Review)
            .where(Review.user_id == user_id)
            .order_by(Review.updated_at.desc(), Review.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            ModerationHistoryItem(
                id=r.id,
                book_id=r.book_id,
                content=r.review_text,
                rating=r.rating,
                status=moderation_status(r),
                created_at=r.created_at,
                updated_at=r.updated_at,
            )
            for r in result.scalars().all()
        ]
        return Page[ModerationHistoryItem].build(items, total, page, limit)

    async def bulk_moderate(
        self, admin: User, review_ids: list[UUID], action: str, reason: str | None = None
    ) -> BulkModerationResponse:
        """Approve or reject many reviews at once. Unknown ids are skipped."""
        ids = list(dict.fromkeys(review_ids))
        result = await self._session.execute(select(Review).where(Review.id.in_(ids)))
        reviews = result.scalars().all()
        for review in reviews:
            review.is_flagged = action == "reject"
            review.is_moderated = True
        await self._session.flush()
        updated = len(reviews)
        logger.info(
            "Bulk %s of %d reviews (%d found) by %s: %s",
            action, len(ids), updated, admin.id, reason or "-",
        )
        return BulkModerationResponse(
            message=f"Bulk {action} completed for {updated} items", updated=updated
        )
