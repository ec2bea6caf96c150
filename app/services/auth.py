"""Authentication and session lifecycle service."""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import jwt
from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    purge_expired_revocations,
    token_digest,
    token_expiry,
    verify_password,
)
from app.api.schemas import RegisterRequest
from app.config import settings
from app.domain.models import RefreshToken, RevokedToken, User

logger = logging.getLogger(__name__)


class AuthService:
    """Handles registration, login, token rotation and logout."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def register(self, data: RegisterRequest) -> User:
        """Register a new user. Raises 409 if the email is taken."""
        email = data.email.lower()
        existing = await self._session.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User with this email already exists",
            )

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
        )
        self._session.add(user)
        await self._session.flush()
        logger.info("Registered user %s", user.id)
        return user

    async def login(self, email: str, password: str) -> tuple[User, str, str]:
        """Authenticate and return ``(user, access_token, refresh_token)``."""
        result = await self._session.execute(
            select(User).where(User.email == email.lower())
        )
        user = result.scalar_one_or_none()

        if not user or not verify_password(password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is deactivated",
            )

        user.last_login = datetime.utcnow()
        access, refresh = await self._issue_pair(user)
        logger.info("User %s logged in", user.id)
        return user, access, refresh

    async def refresh(self, refresh_token: str) -> tuple[str, str]:
        """Rotate a refresh token into a fresh token pair."""
        try:
            claims = decode_token(refresh_token, REFRESH)
            user_id = UUID(claims["sub"])
        except (jwt.InvalidTokenError, ValueError) as exc:
            logger.info("Rejected refresh token: %s", exc)
            raise self._invalid_refresh() from exc

        result = await self._session.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == token_digest(refresh_token),
                RefreshToken.user_id == user_id,
            )
        )
        stored = result.scalar_one_or_none()
        if stored is None or stored.expires_at < datetime.utcnow():
            raise self._invalid_refresh()

        user = await self._session.get(User, user_id)
        if user is None or not user.is_active:
            raise self._invalid_refresh()

        return await self._issue_pair(user)

    async def logout(self, user: User, access_claims: dict[str, Any]) -> None:
        """Revoke the presented access token and drop the user's refresh tokens."""
        await purge_expired_revocations(self._session)
        if await self._session.get(RevokedToken, access_claims["jti"]) is None:
            self._session.add(
                RevokedToken(jti=access_claims["jti"], expires_at=token_expiry(access_claims))
            )
        await self._session.execute(
            delete(RefreshToken).where(RefreshToken.user_id == user.id)
        )
        await self._session.flush()
        logger.info("User %s logged out", user.id)

    async def _issue_pair(self, user: User) -> tuple[str, str]:
        # one live refresh token per user
        await self._session.execute(
            delete(RefreshToken).where(RefreshToken.user_id == user.id)
        )
        access = create_access_token(user)
        refresh = create_refresh_token(user)
        self._session.add(
            RefreshToken(
                user_id=user.id,
                token_hash=token_digest(refresh),
                expires_at=datetime.utcnow()
                + timedelta(days=settings.refresh_token_expire_days),
            )
        )
        await self._session.flush()
        return access, refresh

    @staticmethod
    def _invalid_refresh() -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
