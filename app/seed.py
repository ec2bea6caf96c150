"""
Seed the database with default genres, an admin account and a starter catalog.

Usage:
    python -m app.seed

Safe to run repeatedly: rows that already exist are left alone.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import hash_password
from app.config import settings
from app.database import async_session_factory
from app.domain.models import Book, BookGenre, Genre, User, UserRole

logger = logging.getLogger(__name__)

GENRES = {
    "Fiction": "Literary works of imagination",
    "Non-Fiction": "Books based on facts and real events",
    "Science Fiction": "Fiction dealing with futuristic concepts",
    "Fantasy": "Fiction with magical elements",
    "Mystery": "Books involving puzzles and crime",
    "Romance": "Books focused on romantic relationships",
    "Thriller": "Books designed to keep readers in suspense",
    "Biography": "Accounts of people's lives",
    "History": "Books about past events",
    "Self-Help": "Books for personal improvement",
    "Classic Literature": "Enduring works of literary merit",
    "Dystopian": "Fiction about oppressive imagined societies",
}

BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "description": "A classic American novel set in the Jazz Age, exploring wealth, love and the American Dream.",
        "isbn": "9780743273565",
        "published_year": 1925,
        "page_count": 180,
        "price": 12.99,
        "genres": ["Fiction", "Classic Literature"],
    },
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "description": "A gripping tale of racial injustice and childhood innocence in the American South.",
        "isbn": "9780061120084",
        "published_year": 1960,
        "page_count": 324,
        "price": 14.99,
        "genres": ["Fiction", "Classic Literature"],
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "description": "A dystopian novel about totalitarian control and surveillance.",
        "isbn": "9780451524935",
        "published_year": 1949,
        "page_count": 328,
        "price": 13.99,
        "genres": ["Fiction", "Dystopian", "Science Fiction"],
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "description": "A romantic novel of manners written in the early 19th century.",
        "isbn": "9780141439518",
        "published_year": 1813,
        "page_count": 432,
        "price": 11.99,
        "genres": ["Fiction", "Romance", "Classic Literature"],
    },
    {
        "title": "The Hobbit",
        "author": "J.R.R. Tolkien",
        "description": "Bilbo Baggins is swept into a quest to reclaim a dragon-guarded treasure.",
        "isbn": "9780547928227",
        "published_year": 1937,
        "page_count": 300,
        "price": 10.99,
        "genres": ["Fantasy", "Fiction"],
    },
    {
        "title": "Dune",
        "author": "Frank Herbert",
        "description": "Politics, religion and ecology collide on the desert planet Arrakis.",
        "isbn": "9780441172719",
        "published_year": 1965,
        "page_count": 688,
        "price": 15.99,
        "genres": ["Science Fiction"],
    },
    {
        "title": "The Girl with the Dragon Tattoo",
        "author": "Stieg Larsson",
        "description": "A journalist and a hacker investigate a forty-year-old disappearance.",
        "isbn": "9780307454546",
        "published_year": 2005,
        "page_count": 672,
        "price": 14.49,
        "genres": ["Mystery", "Thriller"],
    },
    {
        "title": "Sapiens",
        "author": "Yuval Noah Harari",
        "description": "A brief history of humankind from the Stone Age to the present.",
        "isbn": "9780062316097",
        "published_year": 2011,
        "page_count": 464,
        "price": 18.99,
        "genres": ["Non-Fiction", "History"],
    },
]


async def seed(session: AsyncSession) -> dict[str, int]:
    """Insert missing seed rows. Returns how many of each kind were created."""
    created = {"genres": 0, "users": 0, "books": 0}

    existing = await session.execute(select(Genre))
    genres = {g.name: g for g in existing.scalars().all()}
    for name, description in GENRES.items():
        if name not in genres:
            genres[name] = Genre(name=name, description=description)
            session.add(genres[name])
            created["genres"] += 1
    await session.flush()

    admin_email = settings.seed_admin_email.strip().lower()
    admin = await session.execute(select(User).where(User.email == admin_email))
    if admin.scalar_one_or_none() is None:
        session.add(
            User(
                email=admin_email,
                password_hash=hash_password(settings.seed_admin_password),
                first_name="Admin",
                last_name="User",
                role=UserRole.ADMIN,
                is_verified=True,
            )
        )
        created["users"] += 1

    for entry in BOOKS:
        found = await session.execute(select(Book.id).where(Book.isbn == entry["isbn"]))
        if found.first() is not None:
            continue
        data = {k: v for k, v in entry.items() if k != "genres"}
        book = Book(**data)
        session.add(book)
        await session.flush()
        for name in entry["genres"]:
            session.add(BookGenre(book_id=book.id, genre_id=genres[name].id))
        created["books"] += 1

    await session.flush()
    return created


async def main() -> None:
    async with async_session_factory() as session:
        created = await seed(session)
        await session.commit()
    logger.info(
        "Seed complete: %d genres, %d users, %d books created",
        created["genres"], created["users"], created["books"],
    )


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    asyncio.run(main())
