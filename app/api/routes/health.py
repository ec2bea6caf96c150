"""Health check routes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import require_roles
from app.config import settings
from app.database import get_session
from app.domain.models import UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["System"])


def health_payload() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": "bookreview-api",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("")
async def health() -> dict[str, str]:
    return health_payload()


@router.get("/database", dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def database_health(session: AsyncSession = Depends(get_session)) -> dict[str, str]:
    """Run ``SELECT 1`` against the configured database."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        await session.rollback()
        return {"database": "down", "timestamp": datetime.now(timezone.utc).isoformat()}
    return {"database": "up", "timestamp": datetime.now(timezone.utc).isoformat()}
