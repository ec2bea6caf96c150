import os
import tempfile

# Settings are read at import time, so the environment must be ready first.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LLM_PROVIDER"] = "mock"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="bookreview-uploads-")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.adapters.llm.mock import MockLLMAdapter  # noqa: E402
from app.adapters.storage.local import LocalStorageAdapter  # noqa: E402
from app.api.dependencies import get_llm, get_storage  # noqa: E402
from app.api.middleware.auth import hash_password  # noqa: E402
from app.database import get_session  # noqa: E402
from app.domain.models import (  # noqa: E402
    Base,
    Book,
    BookGenre,
    Genre,
    Review,
    User,
    UserRole,
)
from app.main import app  # noqa: E402
from app.ports.llm import LLMPort  # noqa: E402

BASE = "http://test"
API = "/api/v1"
PASSWORD = "securepass123"


class FailingLLM(LLMPort):
    """Adapter whose every call fails, to exercise the AI fallbacks."""

    provider = "failing"
    model = "none"
    configured = False

    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        raise RuntimeError("model unavailable")


class ScriptedLLM(LLMPort):
    """Adapter that answers every prompt with a fixed string."""

    provider = "scripted"
    model = "scripted"

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[dict[str, str]] = []

    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        self.prompts.append(prompt)
        return self.reply


@pytest.fixture
async def engine():
    """Fresh in-memory database per test, with foreign keys enforced."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def llm():
    """The LLM adapter injected into the app. Tests may replace ``llm.adapter``."""
    return SimpleNamespace(adapter=MockLLMAdapter())


@pytest.fixture
async def client(session_factory, llm, tmp_path) -> AsyncGenerator[AsyncClient, None]:
    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    storage = LocalStorageAdapter(str(tmp_path / "covers"))
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_llm] = lambda: llm.adapter
    app.dependency_overrides[get_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client: AsyncClient, session_factory):
    """Create a user directly in the database and log them in through the API."""

    async def _make(
        role: UserRole = UserRole.USER,
        email: str | None = None,
        first_name: str = "Test",
        last_name: str = "Reader",
        is_active: bool = True,
    ) -> SimpleNamespace:
        email = email or f"user_{uuid4().hex[:8]}@example.com"
        async with session_factory() as session:
            user = User(
                email=email,
                password_hash=hash_password(PASSWORD),
                first_name=first_name,
                last_name=last_name,
                role=role,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            user_id = user.id

        headers: dict[str, str] = {}
        refresh_token = None
        if is_active:
            resp = await client.post(
                f"{API}/auth/login", json={"email": email, "password": PASSWORD}
            )
            body = resp.json()
            headers = {"Authorization": f"Bearer {body['access_token']}"}
            refresh_token = body["refresh_token"]
        return SimpleNamespace(
            id=user_id, email=email, headers=headers, refresh_token=refresh_token
        )

    return _make


@pytest.fixture
async def user(make_user):
    return await make_user()


@pytest.fixture
async def moderator(make_user):
    return await make_user(role=UserRole.MODERATOR, first_name="Mod")


@pytest.fixture
async def admin(make_user):
    return await make_user(role=UserRole.ADMIN, first_name="Admin")


@pytest.fixture
async def auth_client(client: AsyncClient, user):
    """Client whose requests carry the regular user's token."""
    client.headers.update(user.headers)
    return client


@pytest.fixture
def make_genre(session_factory):
    async def _make(name: str, description: str | None = None):
        async with session_factory() as session:
            genre = Genre(name=name, description=description)
            session.add(genre)
            await session.commit()
            return genre.id

    return _make


@pytest.fixture
def make_book(session_factory):
    """Insert a book, optionally linked to genres (by id)."""

    async def _make(
        title: str = "Untitled",
        author: str = "Anonymous",
        genre_ids: list | None = None,
        **fields,
    ):
        async with session_factory() as session:
            book = Book(title=title, author=author, **fields)
            session.add(book)
            await session.flush()
            for genre_id in genre_ids or []:
                session.add(BookGenre(book_id=book.id, genre_id=genre_id))
            await session.commit()
            return book.id

    return _make


@pytest.fixture
def make_review(session_factory):
    """Insert a review directly, e.g. to control ``created_at``."""

    async def _make(
        user_id,
        book_id,
        rating: int,
        review_text: str | None = None,
        created_at: datetime | None = None,
        **fields,
    ):
        async with session_factory() as session:
            review = Review(
                user_id=user_id,
                book_id=book_id,
                rating=rating,
                review_text=review_text,
                **fields,
            )
            if created_at is not None:
                review.created_at = created_at
            session.add(review)
            await session.commit()
            return review.id

    return _make
