"""
Password hashing, JWT issue/verify and the FastAPI auth dependencies.

Tokens are HS256 JWTs carrying ``sub`` (user id), ``email``, ``role``,
``type`` (access|refresh), ``jti``, ``iat`` and ``exp``. Access and refresh
tokens are signed with different secrets, so one can never stand in for the other.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_session
from app.domain.models import RevokedToken, User, UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS = "access"
REFRESH = "refresh"

# bcrypt only looks at the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:_BCRYPT_MAX_BYTES], password_hash.encode("utf-8")
        )
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def _create_token(user: User, kind: str, secret: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": UserRole(user.role).value,
        "type": kind,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    return _create_token(
        user,
        ACCESS,
        settings.jwt_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user: User) -> str:
    return _create_token(
        user,
        REFRESH,
        settings.jwt_refresh_secret,
        timedelta(days=settings.refresh_token_expire_days),
    )


def decode_token(token: str, kind: str = ACCESS) -> dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises:
        jwt.InvalidTokenError: if the token is malformed, expired, badly
            signed, or of the wrong type.
    """
    secret = settings.jwt_secret if kind == ACCESS else settings.jwt_refresh_secret
    claims = jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp", "jti", "type"]},
    )
    if claims["type"] != kind:
        raise jwt.InvalidTokenError(f"Expected a {kind} token")
    return claims


def token_expiry(claims: dict[str, Any]) -> datetime:
    """Naive UTC datetime of the token's ``exp`` claim, matching DB columns."""
    return datetime.fromtimestamp(claims["exp"], tz=timezone.utc).replace(tzinfo=None)


def token_digest(token: str) -> str:
    """Hex SHA-256 of a token; refresh tokens are stored only in this form."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _unauthorized(detail: str = "Invalid or expired token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _resolve_user(token: str, session: AsyncSession) -> tuple[User, dict[str, Any]]:
    try:
        claims = decode_token(token, ACCESS)
        user_id = UUID(claims["sub"])
    except (jwt.InvalidTokenError, ValueError) as exc:
        logger.info("Rejected access token: %s", exc)
        raise _unauthorized() from exc

    revoked = await session.get(RevokedToken, claims["jti"])
    if revoked is not None:
        raise _unauthorized()

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized()
    return user, claims


async def get_access_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Validated claims of the request's access token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")
    _, claims = await _resolve_user(credentials.credentials, session)
    return claims


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Require a valid, unrevoked access token for an active user."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")
    user, _ = await _resolve_user(credentials.credentials, session)
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User | None:
    """Like get_current_user, but anonymous or bad tokens just yield None."""
    if credentials is None:
        return None
    try:
        user, _ = await _resolve_user(credentials.credentials, session)
    except HTTPException:
        logger.debug("Ignoring invalid token on optional-auth route")
        return None
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: the current user must hold one of ``roles``."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if UserRole(user.role) not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return checker


async def purge_expired_revocations(session: AsyncSession) -> int:
    """Drop revocation rows whose tokens have expired anyway. Returns rows removed."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    result = await session.execute(select(RevokedToken).where(RevokedToken.expires_at < now))
    stale = list(result.scalars().all())
    for row in stale:
        await session.delete(row)
    return len(stale)
