"""Genre routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import require_roles
from app.api.schemas import GenreCreateRequest, GenreResponse, GenreUpdateRequest
from app.database import get_session
from app.domain.models import User, UserRole
from app.services.genre import GenreService

router = APIRouter(prefix="/genres", tags=["Genres"])

staff = require_roles(UserRole.MODERATOR, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)


@router.get("", response_model=list[GenreResponse])
async def list_genres(session: AsyncSession = Depends(get_session)) -> list[GenreResponse]:
    return await GenreService(session).list_genres()


@router.get("/popular", response_model=list[GenreResponse])
async def popular_genres(
    limit: int = Query(10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> list[GenreResponse]:
    return await GenreService(session).popular_genres(limit)


@router.get("/{genre_id}", response_model=GenreResponse)
async def get_genre(genre_id: UUID, session: AsyncSession = Depends(get_session)) -> GenreResponse:
    return await GenreService(session).get_genre(genre_id)


@router.post("", response_model=GenreResponse, status_code=status.HTTP_201_CREATED)
async def create_genre(
    data: GenreCreateRequest,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(staff),
) -> GenreResponse:
    return await GenreService(session).create_genre(data)


@router.put("/{genre_id}", response_model=GenreResponse)
async def update_genre(
    genre_id: UUID,
    data: GenreUpdateRequest,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(staff),
) -> GenreResponse:
    return await GenreService(session).update_genre(genre_id, data)


@router.delete("/{genre_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_genre(
    genre_id: UUID,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(admin_only),
) -> Response:
    """Delete an unused genre; genres still assigned to books are refused (409)."""
    await GenreService(session).delete_genre(genre_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
