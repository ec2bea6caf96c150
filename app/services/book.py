"""Book catalog service: filtering, CRUD, covers, favorites and catalog statistics."""

import logging
import uuid
from dataclasses import dataclass
from uuid import UUID

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    AuthorCount,
    BookCreateRequest,
    BookDetailResponse,
    BookResponse,
    BookStatistics,
    BookUpdateRequest,
    FavoriteBookResponse,
    GenreCount,
    Page,
    ReviewResponse,
    SearchSuggestion,
)
from app.config import settings
from app.domain.models import Book, BookGenre, Genre, Review, User, UserFavorite
from app.ports.storage import StoragePort
from app.services.aggregates import book_cards, review_cards, round_rating

logger = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/gif": "gif", "image/webp": "webp"}


@dataclass
class BookFilters:
    search: str | None = None
    genre: str | None = None
    author: str | None = None
    min_rating: float | None = None
    max_rating: float | None = None
    min_price: float | None = None
    max_price: float | None = None
    year_from: int | None = None
    year_to: int | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


def _review_stats_subquery():
    return (
        select(
            Review.book_id.label("book_id"),
            func.avg(Review.rating).label("avg_rating"),
            func.count(Review.id).label("review_count"),
        )
        .group_by(Review.book_id)
        .subquery()
    )


class BookService:
    """Book catalog operations. Every response carries live review statistics."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Lookup ─────────────────────────────────────

    async def get_or_404(self, book_id: UUID) -> Book:
        book = await self._session.get(Book, book_id)
        if book is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
        return book

    async def list_books(self, filters: BookFilters, page: int, limit: int) -> Page[BookResponse]:
        """
        Filter, sort and paginate the catalog.

        Rating filters compare against the average rounded to one decimal,
        with unrated books counting as 0. All filtering happens in SQL so
        ``total`` reflects the filtered set.
        """
        stats = _review_stats_subquery()
        avg_rating = func.round(func.coalesce(stats.c.avg_rating, 0), 1)
        review_count = func.coalesce(stats.c.review_count, 0)

        conditions = []
        if filters.search:
            term = filters.search.strip()
            conditions.append(
                or_(
                    Book.title.icontains(term, autoescape=True),
                    Book.author.icontains(term, autoescape=True),
                    Book.description.icontains(term, autoescape=True),
                )
            )
        if filters.genre:
            conditions.append(
                Book.id.in_(
                    select(BookGenre.book_id)
                    .join(Genre, Genre.id == BookGenre.genre_id)
                    .where(Genre.name.icontains(filters.genre.strip(), autoescape=True))
                )
            )
        if filters.author:
            conditions.append(Book.author.icontains(filters.author.strip(), autoescape=True))
        if filters.min_rating is not None:
            conditions.append(avg_rating >= filters.min_rating)
        if filters.max_rating is not None:
            conditions.append(avg_rating <= filters.max_rating)
        if filters.min_price is not None:
            conditions.append(Book.price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(Book.price <= filters.max_price)
        if filters.year_from is not None:
            conditions.append(Book.published_year >= filters.year_from)
        if filters.year_to is not None:
            conditions.append(Book.published_year <= filters.year_to)

        base = (
            select(Book)
            .outerjoin(stats, stats.c.book_id == Book.id)
            .where(*conditions)
        )

        total = (
            await self._session.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()

        sort_columns = {
            "title": Book.title,
            "rating": avg_rating,
            "published_year": Book.published_year,
            "created_at": Book.created_at,
            "price": Book.price,
            "popularity": review_count,
        }
        column = sort_columns.get(filters.sort_by, Book.created_at)
        ordering = column.asc() if filters.sort_order == "asc" else column.desc()

        result = await self._session.execute(
            base.order_by(ordering, Book.title.asc(), Book.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        books = list(result.scalars().all())
        return Page[BookResponse].build(
            await book_cards(self._session, books), total, page, limit
        )

    async def get_book(self, book_id: UUID, viewer: User | None = None) -> BookDetailResponse:
        """Book with stats and reviews; ``is_favorite`` is set only for a signed-in viewer."""
        book = await self.get_or_404(book_id)
        card = (await book_cards(self._session, [book]))[0]
        result = await self._session.execute(
            select(Review)
            .where(Review.book_id == book_id)
            .order_by(Review.created_at.desc(), Review.id.asc())
        )
        reviews = await review_cards(self._session, result.scalars().all())
        is_favorite = None
        if viewer is not None:
            is_favorite = await self._favorite(viewer.id, book_id) is not None
        return BookDetailResponse(**card.model_dump(), reviews=reviews, is_favorite=is_favorite)

    async def get_by_isbn(self, isbn: str) -> BookResponse:
        result = await self._session.execute(select(Book).where(Book.isbn == isbn.strip()))
        book = result.scalar_one_or_none()
        if book is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
        return (await book_cards(self._session, [book]))[0]

    async def card(self, book: Book) -> BookResponse:
        return (await book_cards(self._session, [book]))[0]

    # ── Mutations ──────────────────────────────────

    async def create_book(self, data: BookCreateRequest) -> BookResponse:
        isbn = (data.isbn or "").strip() or None
        if isbn:
            await self._ensure_isbn_free(isbn)

        book = Book(
            title=data.title.strip(),
            author=data.author.strip(),
            description=data.description,
            isbn=isbn,
            published_year=data.published_year,
            page_count=data.page_count,
            language=data.language,
            publisher=data.publisher,
            price=data.price,
            cover_image_url=data.cover_image_url,
        )
        self._session.add(book)
        await self._session.flush()
        await self._set_genres(book.id, data.genre_ids)
        logger.info("Created book %s (%s)", book.id, book.title)
        return await self.card(book)

    async def update_book(self, book_id: UUID, data: BookUpdateRequest) -> BookResponse:
        book = await self.get_or_404(book_id)
        changes = data.model_dump(exclude_unset=True)
        genre_ids = changes.pop("genre_ids", None)

        if "isbn" in changes:
            isbn = (changes["isbn"] or "").strip() or None
            if isbn and isbn != book.isbn:
                await self._ensure_isbn_free(isbn)
            changes["isbn"] = isbn

        for field, value in changes.items():
            if field in ("title", "author", "language") and value is None:
                continue
            setattr(book, field, value)

        if genre_ids is not None:
            await self._set_genres(book.id, genre_ids)
        await self._session.flush()
        return await self.card(book)

    async def delete_book(self, book_id: UUID, storage: StoragePort) -> None:
        book = await self.get_or_404(book_id)
        cover_key = book.cover_image_key
        await self._session.delete(book)
        await self._session.flush()
        if cover_key:
            try:
                await storage.delete(cover_key)
            except OSError:
                logger.exception("Could not remove cover %s for deleted book %s", cover_key, book_id)
        logger.info("Deleted book %s", book_id)

    async def upload_cover(self, book_id: UUID, file: UploadFile, storage: StoragePort) -> BookResponse:
        """Validate and store a cover image, replacing any previous one."""
        book = await self.get_or_404(book_id)

        content_type = (file.content_type or "").lower()
        if content_type not in settings.allowed_image_type_list:
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail=f"Unsupported image type '{content_type}'",
            )
        content = await file.read()
        if len(content) > settings.max_upload_size:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File exceeds {settings.max_upload_size} bytes",
            )
        if not content:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

        old_key = book.cover_image_key
        key = await storage.save(uuid.uuid4(), content, _IMAGE_EXTENSIONS.get(content_type, "bin"))
        book.cover_image_key = key
        book.cover_image_url = storage.url_for(key)
        await self._session.flush()

        if old_key and old_key != key:
            try:
                await storage.delete(old_key)
            except OSError:
                logger.exception("Could not remove previous cover %s", old_key)
        return await self.card(book)

    async def _ensure_isbn_free(self, isbn: str) -> None:
        result = await self._session.execute(select(Book.id).where(Book.isbn == isbn))
        if result.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Book with this ISBN already exists",
            )

    async def _set_genres(self, book_id: UUID, genre_ids: list[UUID]) -> None:
        """Replace the book's genre links. Unknown genre ids raise 404."""
        wanted = list(dict.fromkeys(genre_ids))
        if wanted:
            result = await self._session.execute(select(Genre.id).where(Genre.id.in_(wanted)))
            found = set(result.scalars().all())
            missing = [str(g) for g in wanted if g not in found]
            if missing:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Genre not found: {', '.join(missing)}",
                )
        await self._session.execute(delete(BookGenre).where(BookGenre.book_id == book_id))
        for genre_id in wanted:
            self._session.add(BookGenre(book_id=book_id, genre_id=genre_id))
        await self._session.flush()

    # ── Genres, reviews, favorites ─────────────────

    async def genre_names(self) -> list[str]:
        result = await self._session.execute(select(Genre.name).order_by(Genre.name))
        return list(result.scalars().all())

    async def recent_reviews(self, limit: int) -> list[ReviewResponse]:
        result = await self._session.execute(
            select(Review).order_by(Review.created_at.desc(), Review.id.asc()).limit(limit)
        )
        return await review_cards(self._session, result.scalars().all(), with_book=True)

    async def book_reviews(self, book_id: UUID, page: int, limit: int) -> Page[ReviewResponse]:
        await self.get_or_404(book_id)
        total = (
            await self._session.execute(
                select(func.count(Review.id)).where(Review.book_id == book_id)
            )
        ).scalar_one()
        result = await self._session.execute(
            select(Review)
            .where(Review.book_id == book_id)
            .order_by(Review.created_at.desc(), Review.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = await review_cards(self._session, result.scalars().all())
        return Page[ReviewResponse].build(items, total, page, limit)

    async def add_favorite(self, user: User, book_id: UUID) -> None:
        await self.get_or_404(book_id)
        if await self._favorite(user.id, book_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Book is already in favorites",
            )
        self._session.add(UserFavorite(user_id=user.id, book_id=book_id))
        await self._session.flush()

    async def remove_favorite(self, user: User, book_id: UUID) -> None:
        favorite = await self._favorite(user.id, book_id)
        if favorite is not None:
            await self._session.delete(favorite)
            await self._session.flush()

    async def favorite_status(self, user: User, book_id: UUID) -> bool:
        return await self._favorite(user.id, book_id) is not None

    async def _favorite(self, user_id: UUID, book_id: UUID) -> UserFavorite | None:
        result = await self._session.execute(
            select(UserFavorite).where(
                UserFavorite.user_id == user_id, UserFavorite.book_id == book_id
            )
        )
        return result.scalar_one_or_none()

    async def favorites_of(self, user_id: UUID, page: int, limit: int) -> Page[FavoriteBookResponse]:
        total = (
            await self._session.execute(
                select(func.count(UserFavorite.id)).where(UserFavorite.user_id == user_id)
            )
        ).scalar_one()
        result = await self._session.execute(
            select(Book, UserFavorite.created_at)
            .join(UserFavorite, UserFavorite.book_id == Book.id)
            .where(UserFavorite.user_id == user_id)
            .order_by(UserFavorite.created_at.desc(), Book.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = result.all()
        cards = await book_cards(self._session, [row[0] for row in rows])
        items = [
            FavoriteBookResponse(**card.model_dump(), added_to_favorites=row[1])
            for card, row in zip(cards, rows)
        ]
        return Page[FavoriteBookResponse].build(items, total, page, limit)

    # ── Catalog statistics ─────────────────────────

    async def statistics(self) -> BookStatistics:
        total_books = (await self._session.execute(select(func.count(Book.id)))).scalar_one()
        review_row = (
            await self._session.execute(select(func.count(Review.id), func.avg(Review.rating)))
        ).one()
        genre_rows = await self._session.execute(
            select(Genre.name, func.count(BookGenre.id).label("book_count"))
            .join(BookGenre, BookGenre.genre_id == Genre.id)
            .group_by(Genre.id, Genre.name)
            .order_by(desc("book_count"), Genre.name)
            .limit(10)
        )
        return BookStatistics(
            total_books=total_books,
            total_reviews=review_row[0],
            average_rating=round_rating(review_row[1]),
            top_genres=[GenreCount(name=n, book_count=c) for n, c in genre_rows.all()],
        )

    async def authors(self, limit: int) -> list[AuthorCount]:
        result = await self._session.execute(
            select(Book.author, func.count(Book.id).label("book_count"))
            .group_by(Book.author)
            .order_by(desc("book_count"), Book.author)
            .limit(limit)
        )
        return [AuthorCount(author=a, book_count=c) for a, c in result.all()]

    async def search_suggestions(self, q: str, limit: int) -> list[SearchSuggestion]:
        """Titles and authors containing ``q``; fewer than 2 characters yields nothing."""
        term = q.strip()
        if len(term) < 2:
            return []
        titles = await self._session.execute(
            select(Book.id, Book.title)
            .where(Book.title.icontains(term, autoescape=True))
            .order_by(Book.title)
            .limit(limit)
        )
        suggestions = [
            SearchSuggestion(type="title", value=title, book_id=book_id)
            for book_id, title in titles.all()
        ]

        authors = await self._session.execute(
            select(Book.author)
            .where(Book.author.icontains(term, autoescape=True))
            .group_by(Book.author)
            .order_by(Book.author)
            .limit(limit)
        )
        suggestions.extend(SearchSuggestion(type="author", value=a) for a in authors.scalars().all())
        return suggestions[:limit]
