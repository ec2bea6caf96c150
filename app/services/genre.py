"""Genre management service."""

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import GenreCreateRequest, GenreResponse, GenreUpdateRequest
from app.domain.models import BookGenre, Genre

logger = logging.getLogger(__name__)


class GenreService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _with_counts(self):
        book_count = func.count(BookGenre.id).label("book_count")
        return (
            select(Genre, book_count)
            .outerjoin(BookGenre, BookGenre.genre_id == Genre.id)
            .group_by(Genre.id)
        ), book_count

    @staticmethod
    def _response(genre: Genre, book_count: int) -> GenreResponse:
        return GenreResponse(
            id=genre.id,
            name=genre.name,
            description=genre.description,
            book_count=book_count,
            created_at=genre.created_at,
        )

    async def list_genres(self) -> list[GenreResponse]:
        stmt, _ = self._with_counts()
        result = await self._session.execute(stmt.order_by(Genre.name))
        return [self._response(g, n) for g, n in result.all()]

    async def popular_genres(self, limit: int = 10) -> list[GenreResponse]:
        stmt, book_count = self._with_counts()
        result = await self._session.execute(
            stmt.order_by(book_count.desc(), Genre.name).limit(limit)
        )
        return [self._response(g, n) for g, n in result.all()]

    async def get_or_404(self, genre_id: UUID) -> Genre:
        genre = await self._session.get(Genre, genre_id)
        if genre is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Genre not found")
        return genre

    async def get_genre(self, genre_id: UUID) -> GenreResponse:
        genre = await self.get_or_404(genre_id)
        return self._response(genre, await self._book_count(genre.id))

    async def create_genre(self, data: GenreCreateRequest) -> GenreResponse:
        name = data.name.strip()
        await self._ensure_name_free(name)
        genre = Genre(name=name, description=data.description)
        self._session.add(genre)
        await self._session.flush()
        logger.info("Created genre %s", name)
        return self._response(genre, 0)

    async def update_genre(self, genre_id: UUID, data: GenreUpdateRequest) -> GenreResponse:
        genre = await self.get_or_404(genre_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name"):
            name = changes["name"].strip()
            if name.lower() != genre.name.lower():
                await self._ensure_name_free(name)
            genre.name = name
        if "description" in changes:
            genre.description = changes["description"]
        await self._session.flush()
        return self._response(genre, await self._book_count(genre.id))

    async def delete_genre(self, genre_id: UUID) -> None:
        """Delete a genre. Refused with 409 while any book is assigned to it."""
        genre = await self.get_or_404(genre_id)
        count = await self._book_count(genre.id)
        if count:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot delete genre with {count} associated books",
            )
        await self._session.delete(genre)
        await self._session.flush()
        logger.info("Deleted genre %s", genre.name)

    async def _book_count(self, genre_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count(BookGenre.id)).where(BookGenre.genre_id == genre_id)
        )
        return result.scalar_one()

    async def _ensure_name_free(self, name: str) -> None:
        result = await self._session.execute(
            select(Genre.id).where(func.lower(Genre.name) == name.lower())
        )
        if result.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Genre with this name already exists",
            )
