"""FastAPI application factory, entry point for the BookReview API."""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.api.routes.admin import router as admin_router
from app.api.routes.auth import router as auth_router
from app.api.routes.books import router as books_router
from app.api.routes.genres import router as genres_router
from app.api.routes.health import health_payload
from app.api.routes.health import router as health_router
from app.api.routes.intelligence import ai_router
from app.api.routes.intelligence import router as recommendations_router
from app.api.routes.moderation import router as moderation_router
from app.api.routes.reviews import router as reviews_router
from app.api.routes.users import router as users_router
from app.config import StorageBackend, settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown events."""
    logger.info("BookReview API starting up (%s)", settings.environment)
    logger.info("Storage backend: %s", settings.storage_backend.value)
    logger.info("LLM provider: %s", settings.llm_provider.value)
    yield
    logger.info("BookReview API shutting down...")


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="BookReview API",
        description="Book review platform with AI-assisted recommendations",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # ── Middleware ──────────────────────────────────
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
        return response

    @application.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = {"detail": "Internal server error"}
        if settings.is_development:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    # ── Routes ─────────────────────────────────────
    for router in (
        auth_router,
        books_router,
        reviews_router,
        users_router,
        genres_router,
        recommendations_router,
        ai_router,
        moderation_router,
        admin_router,
        health_router,
    ):
        application.include_router(router, prefix=API_PREFIX)

    if settings.storage_backend == StorageBackend.LOCAL:
        Path(settings.local_storage_path).mkdir(parents=True, exist_ok=True)
        application.mount(
            "/uploads",
            StaticFiles(directory=settings.local_storage_path),
            name="uploads",
        )

    # ── Health Check & Index ───────────────────────
    @application.get("/health", tags=["System"])
    async def health() -> dict[str, str]:
        return health_payload()

    @application.get(API_PREFIX, tags=["System"])
    async def api_index() -> dict:
        return {
            "name": "BookReview API",
            "version": API_VERSION,
            "endpoints": {
                "auth": f"{API_PREFIX}/auth",
                "books": f"{API_PREFIX}/books",
                "reviews": f"{API_PREFIX}/reviews",
                "users": f"{API_PREFIX}/users",
                "genres": f"{API_PREFIX}/genres",
                "recommendations": f"{API_PREFIX}/recommendations",
                "ai": f"{API_PREFIX}/ai",
                "moderation": f"{API_PREFIX}/moderation",
                "admin": f"{API_PREFIX}/admin",
                "health": f"{API_PREFIX}/health",
            },
        }

    return application


app = create_app()
