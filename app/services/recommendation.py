"""
Recommendation engine.

Personalized picks blend two sources: the LLM's suggestions for the
reader's profile (matched back onto the catalog) and a collaborative
filter over readers who reviewed the same books. Every AI-backed path has
a database-only fallback, so a missing or failing model never breaks an
endpoint.
"""

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    BookResponse,
    QueryRecommendationResponse,
    RecommendationItem,
    RecommendationsResponse,
)
from app.domain.models import Book, BookGenre, Genre, Review
from app.prompts.templates import (
    render_query_prompt,
    render_reader_prompt,
    render_similar_books_prompt,
)
from app.services.aggregates import book_cards, genre_names, rating_stats, round_rating
from app.services.ai import AIService, clamp_unit

logger = logging.getLogger(__name__)

AI_SHARE = 0.6
COLLABORATIVE_SHARE = 0.4
TRENDING_WINDOW_DAYS = 30
PROFILE_REVIEWS = 20
QUERY_CATALOG_SIZE = 50


def _item(card: BookResponse, reason: str, confidence: float, **extra) -> RecommendationItem:
    return RecommendationItem(
        id=card.id,
        title=card.title,
        author=card.author,
        cover_image_url=card.cover_image_url,
        description=card.description,
        published_year=card.published_year,
        average_rating=card.average_rating,
        total_reviews=card.total_reviews,
        genres=card.genres,
        reason=reason,
        confidence=confidence,
        **extra,
    )


def _text_or_none(value) -> str | None:
    return str(value) if value else None


def dedupe(items: list[RecommendationItem]) -> list[RecommendationItem]:
    """Drop repeated books, keeping the first occurrence."""
    seen: set[UUID] = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


def trending_score(recent: int, total: int) -> float:
    """Recent reviews weigh double: ``(recent * 2 + total) / (total + 1)``."""
    return round((recent * 2 + total) / (total + 1), 2)


def keyword_score(query: str, text: str) -> int:
    """+1 for every query word of 3 or more letters found in ``text``."""
    haystack = text.lower()
    return sum(1 for word in query.lower().split() if len(word) > 2 and word in haystack)


class RecommendationService:
    def __init__(self, session: AsyncSession, ai: AIService) -> None:
        self._session = session
        self._ai = ai

    # ── Personalized ───────────────────────────────

    async def personalized(self, user_id: UUID, limit: int = 10) -> RecommendationsResponse:
        result = await self._session.execute(
            select(Review, Book)
            .join(Book, Book.id == Review.book_id)
            .where(Review.user_id == user_id)
            .order_by(Review.created_at.desc())
        )
        history = result.all()
        if not history:
            items = await self.popular(limit)
            return RecommendationsResponse(
                recommendations=items,
                count=len(items),
                explanation="Popular books recommended for new readers",
            )

        reviewed_ids = {book.id for _, book in history}
        ai_limit = math.ceil(limit * AI_SHARE)
        profile = await self._reader_profile(history)
        try:
            data = await self._ai.generate_json(render_reader_prompt(profile, ai_limit))
        except Exception as exc:
            logger.warning("AI recommendations failed for user %s: %s", user_id, exc)
            ai_items = (await self.trending(ai_limit)).recommendations
            explanation = "Trending books from the last 30 days"
        else:
            ai_items = await self._match_suggestions(
                data.get("recommendations"), exclude=reviewed_ids, confidence=0.8
            )
            ai_items = ai_items[:ai_limit]
            explanation = _text_or_none(data.get("explanation"))

        collaborative = await self._collaborative(
            user_id, reviewed_ids, math.ceil(limit * COLLABORATIVE_SHARE)
        )
        items = dedupe(ai_items + collaborative)[:limit]
        return RecommendationsResponse(
            recommendations=items,
            count=len(items),
            explanation=explanation
            or f"Based on your reading profile, here are {len(items)} personalized recommendations.",
        )

    async def _reader_profile(self, history: list) -> dict:
        """Summarize the reader's review history for the recommendation prompt."""
        recent = history[:PROFILE_REVIEWS]
        genres = await genre_names(self._session, [book.id for _, book in recent])
        genre_counts = Counter(name for _, book in recent for name in genres.get(book.id, []))
        favorite_genres = [
            name for name, _ in sorted(genre_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:3]
        ]
        return {
            "review_count": len(history),
            "favorite_genres": favorite_genres,
            "average_rating": round_rating(
                sum(review.rating for review, _ in history) / len(history)
            ),
            "reviewed_books": [
                {
                    "title": book.title,
                    "author": book.author,
                    "genres": genres.get(book.id, []),
                    "rating": review.rating,
                }
                for review, book in recent
            ],
        }

    async def _match_suggestions(
        self, suggestions, exclude: set[UUID], confidence: float
    ) -> list[RecommendationItem]:
        """
        Map LLM suggestions onto catalog books.

        A book matches when its title contains the suggested title or its
        author contains the suggested author, case-insensitively.
        """
        if not isinstance(suggestions, list):
            return []
        matched: list[tuple[Book, str]] = []
        taken = set(exclude)
        for suggestion in suggestions:
            if not isinstance(suggestion, dict):
                continue
            title = str(suggestion.get("title") or "").strip()
            author = str(suggestion.get("author") or "").strip()
            clauses = []
            if title:
                clauses.append(Book.title.icontains(title, autoescape=True))
            if author:
                clauses.append(Book.author.icontains(author, autoescape=True))
            if not clauses:
                continue
            stmt = select(Book).where(or_(*clauses)).order_by(Book.title, Book.id)
            if taken:
                stmt = stmt.where(Book.id.notin_(list(taken)))
            book = (await self._session.execute(stmt.limit(1))).scalar_one_or_none()
            if book is None:
                continue
            taken.add(book.id)
            matched.append((book, str(suggestion.get("reason") or "Recommended for you")))

        cards = await book_cards(self._session, [book for book, _ in matched])
        return [_item(card, reason, confidence) for card, (_, reason) in zip(cards, matched)]

    async def _collaborative(
        self, user_id: UUID, reviewed_ids: set[UUID], limit: int
    ) -> list[RecommendationItem]:
        """Books that readers with overlapping reviews rated 4 or 5 stars."""
        if not reviewed_ids or limit <= 0:
            return []
        overlap = min(3, len(reviewed_ids))
        similar_users = (
            select(Review.user_id)
            .where(Review.user_id != user_id, Review.book_id.in_(list(reviewed_ids)))
            .group_by(Review.user_id)
            .having(func.count(Review.id) >= overlap)
        )
        result = await self._session.execute(
            select(Review.book_id, Review.rating).where(
                Review.user_id.in_(similar_users),
                Review.rating >= 4,
                Review.book_id.notin_(list(reviewed_ids)),
            )
        )
        rows = result.all()
        if not rows:
            return []

        stats = await rating_stats(self._session, list({book_id for book_id, _ in rows}))
        scores: dict[UUID, float] = {}
        for book_id, rating in rows:
            average = stats.get(book_id, (0.0, 0))[0]
            scores[book_id] = max(scores.get(book_id, 0.0), rating * (average / 5))

        books = (
            await self._session.execute(select(Book).where(Book.id.in_(list(scores))))
        ).scalars().all()
        ranked = sorted(books, key=lambda b: (-scores[b.id], b.title))[:limit]
        cards = await book_cards(self._session, ranked)
        return [_item(c, "Recommended by users with similar taste", 0.7) for c in cards]

    # ── Catalog-driven lists ───────────────────────

    async def _ranked_by_reviews(self, *conditions, limit: int) -> list[BookResponse]:
        review_count = func.count(Review.id).label("review_count")
        result = await self._session.execute(
            select(Book, review_count)
            .outerjoin(Review, Review.book_id == Book.id)
            .where(*conditions)
            .group_by(Book.id)
            .order_by(desc("review_count"), Book.title, Book.id)
            .limit(limit)
        )
        return await book_cards(self._session, [row[0] for row in result.all()])

    async def popular(self, limit: int = 10) -> list[RecommendationItem]:
        cards = await self._ranked_by_reviews(limit=limit)
        return [_item(c, "Popular among readers", 0.7) for c in cards]

    async def trending(self, limit: int = 10) -> RecommendationsResponse:
        cutoff = datetime.utcnow() - timedelta(days=TRENDING_WINDOW_DAYS)
        recent_count = func.count(Review.id).label("recent_count")
        result = await self._session.execute(
            select(Book, recent_count)
            .join(Review, Review.book_id == Book.id)
            .where(Review.created_at >= cutoff)
            .group_by(Book.id)
            .order_by(desc("recent_count"), Book.title, Book.id)
            .limit(limit)
        )
        rows = result.all()
        cards = await book_cards(self._session, [book for book, _ in rows])
        items = [
            _item(
                card,
                "Trending based on recent reviews",
                0.8,
                trending_score=trending_score(recent, card.total_reviews),
            )
            for card, (_, recent) in zip(cards, rows)
        ]
        return RecommendationsResponse(
            recommendations=items,
            count=len(items),
            explanation="Trending books from the last 30 days",
        )

    async def by_genre(self, genre_id: UUID, limit: int = 10) -> RecommendationsResponse:
        genre = await self._session.get(Genre, genre_id)
        if genre is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Genre not found")
        cards = await self._ranked_by_reviews(
            Book.id.in_(select(BookGenre.book_id).where(BookGenre.genre_id == genre_id)),
            limit=limit,
        )
        items = [_item(c, "Popular in this genre", 0.7) for c in cards]
        return RecommendationsResponse(
            recommendations=items,
            count=len(items),
            explanation=f"Most reviewed books in {genre.name}",
        )

    async def new_releases(self, limit: int = 10) -> RecommendationsResponse:
        since = datetime.utcnow().year - 1
        result = await self._session.execute(
            select(Book)
            .where(Book.published_year >= since)
            .order_by(Book.published_year.desc(), Book.title, Book.id)
            .limit(limit)
        )
        cards = await book_cards(self._session, result.scalars().all())
        items = [_item(c, "Recently published", 0.6) for c in cards]
        return RecommendationsResponse(
            recommendations=items,
            count=len(items),
            explanation=f"Books published since {since}",
        )

    # ── Similar books ──────────────────────────────

    async def similar(self, book_id: UUID, limit: int = 5) -> RecommendationsResponse:
        book = await self._session.get(Book, book_id)
        if book is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
        card = (await book_cards(self._session, [book]))[0]

        texts = await self._session.execute(
            select(Review.review_text)
            .where(Review.book_id == book_id, Review.review_text.is_not(None))
            .order_by(Review.created_at.desc())
            .limit(5)
        )
        prompt = render_similar_books_prompt(card.model_dump(), list(texts.scalars().all()), limit)
        try:
            data = await self._ai.generate_json(prompt)
        except Exception as exc:
            logger.warning("AI similar-books failed for %s: %s", book_id, exc)
        else:
            items = await self._match_suggestions(
                data.get("similarBooks"), exclude={book_id}, confidence=0.8
            )
            if items:
                return RecommendationsResponse(
                    recommendations=items[:limit],
                    count=len(items[:limit]),
                    explanation=_text_or_none(data.get("explanation")),
                )

        items = await self._same_genre(book_id, limit)
        return RecommendationsResponse(
            recommendations=items,
            count=len(items),
            explanation=f'Books sharing a genre with "{book.title}"',
        )

    async def _same_genre(self, book_id: UUID, limit: int) -> list[RecommendationItem]:
        genre_ids = select(BookGenre.genre_id).where(BookGenre.book_id == book_id)
        result = await self._session.execute(
            select(Book)
            .where(
                Book.id != book_id,
                Book.id.in_(select(BookGenre.book_id).where(BookGenre.genre_id.in_(genre_ids))),
            )
            .order_by(Book.created_at.desc(), Book.title, Book.id)
            .limit(limit)
        )
        cards = await book_cards(self._session, result.scalars().all())
        return [_item(c, "Similar genre and themes", 0.6) for c in cards]

    # ── Free-text query ────────────────────────────

    async def query_recommendations(self, query: str, limit: int = 3) -> QueryRecommendationResponse:
        """
        Pick catalog books for a free-text request.

        The LLM sees up to 50 catalog entries and must name them by exact
        title and author. Any shortfall is filled by keyword overlap with
        the query, ties going to catalog order.
        """
        query = query.strip()
        if not query:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Query is required"
            )

        catalog = await self._ranked_by_reviews(limit=QUERY_CATALOG_SIZE)
        chosen: list[RecommendationItem] = []
        try:
            data = await self._ai.generate_json(
                render_query_prompt(query, [c.model_dump() for c in catalog], limit)
            )
        except Exception as exc:
            logger.warning("AI query recommendations failed: %s", exc)
        else:
            chosen = self._exact_matches(data.get("recommendations"), catalog)[:limit]

        if len(chosen) < limit:
            picked = {item.id for item in chosen}
            scored = [
                (keyword_score(query, f"{c.title} {c.author} {c.description or ''}"), index, c)
                for index, c in enumerate(catalog)
                if c.id not in picked
            ]
            scored.sort(key=lambda entry: (-entry[0], entry[1]))
            reason = f'Based on your query "{query}", this book matches your interests'
            chosen.extend(_item(c, reason, 0.7) for _, _, c in scored[: limit - len(chosen)])

        return QueryRecommendationResponse(
            recommendations=chosen,
            explanation=f'Based on your query "{query}", here are {len(chosen)} book recommendations.',
            query=query,
            total_found=len(chosen),
        )

    @staticmethod
    def _exact_matches(suggestions, catalog: list[BookResponse]) -> list[RecommendationItem]:
        if not isinstance(suggestions, list):
            return []
        index = {(c.title.strip().lower(), c.author.strip().lower()): c for c in catalog}
        items: list[RecommendationItem] = []
        seen: set[UUID] = set()
        for suggestion in suggestions:
            if not isinstance(suggestion, dict):
                continue
            key = (
                str(suggestion.get("title") or "").strip().lower(),
                str(suggestion.get("author") or "").strip().lower(),
            )
            card = index.get(key)
            if card is None or card.id in seen:
                continue
            seen.add(card.id)
            items.append(
                _item(
                    card,
                    str(suggestion.get("reason") or "Matches your request"),
                    clamp_unit(suggestion.get("confidence"), 0.8),
                )
            )
        return items
