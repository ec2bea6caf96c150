"""Integration tests for the book catalog: listing, CRUD, covers and favorites."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from app.config import settings
from app.domain.models import BookGenre, UserFavorite
from tests.conftest import API

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ── Listing & filters ──────────────────────────────


@pytest.mark.asyncio
async def test_list_books_pagination(client: AsyncClient, make_book):
    for title in ("Alpha", "Beta", "Gamma"):
        await make_book(title=title)

    resp = await client.get(f"{API}/books", params={"limit": 2, "sort_by": "title", "sort_order": "asc"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert data["pages"] == 2
    assert data["has_next"] is True
    assert data["has_prev"] is False
    assert [b["title"] for b in data["items"]] == ["Alpha", "Beta"]

    resp = await client.get(
        f"{API}/books", params={"limit": 2, "page": 2, "sort_by": "title", "sort_order": "asc"}
    )
    data = resp.json()
    assert [b["title"] for b in data["items"]] == ["Gamma"]
    assert data["has_next"] is False
    assert data["has_prev"] is True


@pytest.mark.asyncio
async def test_list_books_rejects_bad_limit(client: AsyncClient):
    resp = await client.get(f"{API}/books", params={"limit": 500})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_books_search(client: AsyncClient, make_book):
    await make_book(title="The Great Gatsby", author="F. Scott Fitzgerald")
    await make_book(title="Dune", author="Frank Herbert", description="Desert planet politics")

    resp = await client.get(f"{API}/books", params={"search": "gatsby"})
    assert [b["title"] for b in resp.json()["items"]] == ["The Great Gatsby"]

    resp = await client.get(f"{API}/books", params={"search": "desert"})
    assert [b["title"] for b in resp.json()["items"]] == ["Dune"]


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(client: AsyncClient, make_book):
    await make_book(title="100% Natural", author="Grace Field")
    await make_book(title="1000 Nights", author="Ann_Smith")
    await make_book(title="Plain", author="Annx Smith")

    resp = await client.get(f"{API}/books", params={"search": "100%"})
    assert [b["title"] for b in resp.json()["items"]] == ["100% Natural"]

    resp = await client.get(f"{API}/books", params={"author": "ann_"})
    assert [b["title"] for b in resp.json()["items"]] == ["1000 Nights"]

    resp = await client.get(f"{API}/books/search-suggestions", params={"q": "0% n"})
    assert [s["value"] for s in resp.json()] == ["100% Natural"]


@pytest.mark.asyncio
async def test_list_books_genre_and_author_filters(client: AsyncClient, make_book, make_genre):
    fantasy = await make_genre("Fantasy")
    await make_book(title="The Hobbit", author="J.R.R. Tolkien", genre_ids=[fantasy])
    await make_book(title="Emma", author="Jane Austen")

    resp = await client.get(f"{API}/books", params={"genre": "fant"})
    items = resp.json()["items"]
    assert [b["title"] for b in items] == ["The Hobbit"]
    assert items[0]["genres"] == ["Fantasy"]

    resp = await client.get(f"{API}/books", params={"author": "austen"})
    assert [b["title"] for b in resp.json()["items"]] == ["Emma"]


@pytest.mark.asyncio
async def test_list_books_rating_filter_and_sort(
    client: AsyncClient, make_book, make_review, user, moderator
):
    good = await make_book(title="Good Book")
    poor = await make_book(title="Poor Book")
    await make_book(title="Unrated Book")
    await make_review(user.id, good, 5)
    await make_review(moderator.id, good, 4)
    await make_review(user.id, poor, 2)

    resp = await client.get(f"{API}/books", params={"min_rating": 4})
    data = resp.json()
    assert data["total"] == 1
    assert data["items"][0]["title"] == "Good Book"
    assert data["items"][0]["average_rating"] == 4.5
    assert data["items"][0]["total_reviews"] == 2

    resp = await client.get(f"{API}/books", params={"max_rating": 2})
    assert {b["title"] for b in resp.json()["items"]} == {"Poor Book", "Unrated Book"}

    resp = await client.get(f"{API}/books", params={"sort_by": "rating", "sort_order": "desc"})
    assert [b["title"] for b in resp.json()["items"]] == ["Good Book", "Poor Book", "Unrated Book"]


@pytest.mark.asyncio
async def test_list_books_price_and_year_filters(client: AsyncClient, make_book):
    await make_book(title="Cheap Old", price=5.0, published_year=1950)
    await make_book(title="Pricey New", price=30.0, published_year=2020)

    resp = await client.get(f"{API}/books", params={"max_price": 10})
    assert [b["title"] for b in resp.json()["items"]] == ["Cheap Old"]

    resp = await client.get(f"{API}/books", params={"year_from": 2000})
    assert [b["title"] for b in resp.json()["items"]] == ["Pricey New"]


# ── CRUD ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_book_requires_staff(client: AsyncClient, user, moderator, make_genre):
    genre_id = await make_genre("Mystery")
    payload = {"title": "New Book", "author": "Some Author", "genre_ids": [str(genre_id)]}

    assert (await client.post(f"{API}/books", json=payload)).status_code == 401
    resp = await client.post(f"{API}/books", json=payload, headers=user.headers)
    assert resp.status_code == 403

    resp = await client.post(f"{API}/books", json=payload, headers=moderator.headers)
    assert resp.status_code == 201
    data = resp.json()
    assert data["title"] == "New Book"
    assert data["genres"] == ["Mystery"]
    assert data["average_rating"] == 0.0
    assert data["total_reviews"] == 0


@pytest.mark.asyncio
async def test_create_book_duplicate_isbn(client: AsyncClient, moderator):
    payload = {"title": "First", "author": "A", "isbn": "9780000000001"}
    resp = await client.post(f"{API}/books", json=payload, headers=moderator.headers)
    assert resp.status_code == 201

    payload["title"] = "Second"
    resp = await client.post(f"{API}/books", json=payload, headers=moderator.headers)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Book with this ISBN already exists"


@pytest.mark.asyncio
async def test_create_book_blank_isbn_is_stored_as_null(client: AsyncClient, moderator):
    for title in ("One", "Two"):
        resp = await client.post(
            f"{API}/books",
            json={"title": title, "author": "A", "isbn": "  "},
            headers=moderator.headers,
        )
        assert resp.status_code == 201
        assert resp.json()["isbn"] is None


@pytest.mark.asyncio
async def test_create_book_unknown_genre(client: AsyncClient, moderator):
    resp = await client.post(
        f"{API}/books",
        json={"title": "T", "author": "A", "genre_ids": ["00000000-0000-0000-0000-000000000001"]},
        headers=moderator.headers,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"].startswith("Genre not found")


@pytest.mark.asyncio
async def test_update_book_replaces_genres(client: AsyncClient, admin, make_book, make_genre):
    fiction = await make_genre("Fiction")
    history = await make_genre("History")
    book_id = await make_book(title="Old Title", genre_ids=[fiction])

    resp = await client.put(
        f"{API}/books/{book_id}",
        json={"title": "New Title", "genre_ids": [str(history)]},
        headers=admin.headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "New Title"
    assert data["genres"] == ["History"]


@pytest.mark.asyncio
async def test_delete_book_admin_only(
    client: AsyncClient, moderator, admin, user, make_book, make_review
):
    book_id = await make_book(title="Doomed")
    await make_review(user.id, book_id, 3)

    resp = await client.delete(f"{API}/books/{book_id}", headers=moderator.headers)
    assert resp.status_code == 403

    resp = await client.delete(f"{API}/books/{book_id}", headers=admin.headers)
    assert resp.status_code == 204

    assert (await client.get(f"{API}/books/{book_id}")).status_code == 404
    resp = await client.get(f"{API}/reviews", params={"user_id": str(user.id)})
    assert resp.json()["total"] == 0


@pytest.mark.asyncio
async def test_update_book_to_taken_isbn(client: AsyncClient, admin, make_book):
    await make_book(title="Holder", isbn="9780000000002")
    book_id = await make_book(title="Mover", isbn="9780000000003")

    resp = await client.put(
        f"{API}/books/{book_id}", json={"isbn": "9780000000002"}, headers=admin.headers
    )
    assert resp.status_code == 409

    # Re-sending its own ISBN is not a conflict
    resp = await client.put(
        f"{API}/books/{book_id}", json={"isbn": "9780000000003"}, headers=admin.headers
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_delete_book_removes_favorites_and_genre_links(
    client: AsyncClient, session_factory, admin, user, make_book, make_genre
):
    genre_id = await make_genre("Gothic")
    book_id = await make_book(title="Castle", genre_ids=[genre_id])
    resp = await client.put(f"{API}/books/{book_id}/favorites", headers=user.headers)
    assert resp.status_code == 201

    resp = await client.delete(f"{API}/books/{book_id}", headers=admin.headers)
    assert resp.status_code == 204

    async with session_factory() as session:
        favorites = await session.execute(
            select(func.count(UserFavorite.id)).where(UserFavorite.book_id == book_id)
        )
        links = await session.execute(
            select(func.count(BookGenre.id)).where(BookGenre.book_id == book_id)
        )
        assert favorites.scalar_one() == 0
        assert links.scalar_one() == 0

    genre = (await client.get(f"{API}/genres/{genre_id}")).json()
    assert genre["book_count"] == 0
    favorites = (await client.get(f"{API}/users/{user.id}/favorites")).json()
    assert favorites["total"] == 0


@pytest.mark.asyncio
async def test_delete_book_removes_stored_cover(
    client: AsyncClient, admin, make_book, tmp_path
):
    book_id = await make_book(title="Covered then gone")
    resp = await client.post(
        f"{API}/books/{book_id}/cover",
        files={"file": ("cover.png", PNG_BYTES, "image/png")},
        headers=admin.headers,
    )
    stored = tmp_path / "covers" / resp.json()["cover_image_url"].rsplit("/", 1)[1]
    assert stored.read_bytes() == PNG_BYTES

    resp = await client.delete(f"{API}/books/{book_id}", headers=admin.headers)
    assert resp.status_code == 204
    assert not stored.exists()


@pytest.mark.asyncio
async def test_get_book_detail(client: AsyncClient, user, make_book, make_review):
    book_id = await make_book(title="Detailed")
    await make_review(user.id, book_id, 4, review_text="Solid")

    resp = await client.get(f"{API}/books/{book_id}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["average_rating"] == 4.0
    assert len(data["reviews"]) == 1
    assert data["reviews"][0]["user"]["first_name"] == "Test"
    assert data["is_favorite"] is None

    resp = await client.get(f"{API}/books/{book_id}", headers=user.headers)
    assert resp.json()["is_favorite"] is False


@pytest.mark.asyncio
async def test_get_book_not_found(client: AsyncClient):
    resp = await client.get(f"{API}/books/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_get_by_isbn(client: AsyncClient, make_book):
    await make_book(title="By ISBN", isbn="9781234567897")
    resp = await client.get(f"{API}/books/isbn/9781234567897")
    assert resp.status_code == 200
    assert resp.json()["title"] == "By ISBN"
    assert (await client.get(f"{API}/books/isbn/0000")).status_code == 404


# ── Catalog helpers ────────────────────────────────


@pytest.mark.asyncio
async def test_genre_names(client: AsyncClient, make_genre):
    await make_genre("Thriller")
    await make_genre("Biography")
    resp = await client.get(f"{API}/books/genres")
    assert resp.json() == ["Biography", "Thriller"]


@pytest.mark.asyncio
async def test_statistics(client: AsyncClient, user, make_book, make_genre, make_review):
    fiction = await make_genre("Fiction")
    first = await make_book(title="A", genre_ids=[fiction])
    await make_book(title="B", genre_ids=[fiction])
    await make_review(user.id, first, 5)

    data = (await client.get(f"{API}/books/statistics")).json()
    assert data["total_books"] == 2
    assert data["total_reviews"] == 1
    assert data["average_rating"] == 5.0
    assert data["top_genres"] == [{"name": "Fiction", "book_count": 2}]


@pytest.mark.asyncio
async def test_authors(client: AsyncClient, make_book):
    await make_book(title="A", author="Ursula K. Le Guin")
    await make_book(title="B", author="Ursula K. Le Guin")
    await make_book(title="C", author="Octavia Butler")

    data = (await client.get(f"{API}/books/authors")).json()
    assert data[0] == {"author": "Ursula K. Le Guin", "book_count": 2}
    assert data[1] == {"author": "Octavia Butler", "book_count": 1}


@pytest.mark.asyncio
async def test_search_suggestions(client: AsyncClient, make_book):
    await make_book(title="Dune Messiah", author="Frank Herbert")
    await make_book(title="Children of Dune", author="Frank Herbert")

    assert (await client.get(f"{API}/books/search-suggestions", params={"q": "d"})).json() == []

    data = (await client.get(f"{API}/books/search-suggestions", params={"q": "dune"})).json()
    assert [s["value"] for s in data] == ["Children of Dune", "Dune Messiah"]
    assert all(s["type"] == "title" for s in data)

    data = (await client.get(f"{API}/books/search-suggestions", params={"q": "herb"})).json()
    assert data == [{"type": "author", "value": "Frank Herbert", "book_id": None}]


@pytest.mark.asyncio
async def test_recent_reviews(client: AsyncClient, user, make_book, make_review):
    book_id = await make_book(title="Recent")
    await make_review(user.id, book_id, 5, review_text="Great")

    data = (await client.get(f"{API}/books/recent/reviews")).json()
    assert len(data) == 1
    assert data[0]["book"]["title"] == "Recent"


# ── Favorites ──────────────────────────────────────


@pytest.mark.asyncio
async def test_favorites_flow(client: AsyncClient, user, make_book):
    book_id = await make_book(title="Beloved")
    url = f"{API}/books/{book_id}/favorites"

    resp = await client.put(url, headers=user.headers)
    assert resp.status_code == 201
    assert resp.json() == {"is_in_favorites": True}

    resp = await client.put(url, headers=user.headers)
    assert resp.status_code == 409

    resp = await client.get(f"{API}/books/{book_id}/favorites-status", headers=user.headers)
    assert resp.json() == {"is_in_favorites": True}

    detail = (await client.get(f"{API}/books/{book_id}", headers=user.headers)).json()
    assert detail["is_favorite"] is True
    assert detail["total_favorites"] == 1

    assert (await client.delete(url, headers=user.headers)).status_code == 204
    # Removing again is not an error
    assert (await client.delete(url, headers=user.headers)).status_code == 204

    resp = await client.get(f"{API}/books/{book_id}/favorites-status", headers=user.headers)
    assert resp.json() == {"is_in_favorites": False}


@pytest.mark.asyncio
async def test_favorite_unknown_book(client: AsyncClient, user):
    resp = await client.put(
        f"{API}/books/00000000-0000-0000-0000-000000000000/favorites", headers=user.headers
    )
    assert resp.status_code == 404


# ── Covers ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_upload_cover(client: AsyncClient, moderator, make_book):
    book_id = await make_book(title="Covered")
    resp = await client.post(
        f"{API}/books/{book_id}/cover",
        files={"file": ("cover.png", PNG_BYTES, "image/png")},
        headers=moderator.headers,
    )
    assert resp.status_code == 200
    url = resp.json()["cover_image_url"]
    assert url.startswith("/uploads/")
    assert url.endswith(".png")


@pytest.mark.asyncio
async def test_upload_cover_rejects_type(client: AsyncClient, moderator, make_book):
    book_id = await make_book()
    resp = await client.post(
        f"{API}/books/{book_id}/cover",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=moderator.headers,
    )
    assert resp.status_code == 415


@pytest.mark.asyncio
async def test_upload_cover_rejects_large_file(
    client: AsyncClient, moderator, make_book, monkeypatch
):
    monkeypatch.setattr(settings, "max_upload_size", 16)
    book_id = await make_book()
    resp = await client.post(
        f"{API}/books/{book_id}/cover",
        files={"file": ("cover.png", PNG_BYTES, "image/png")},
        headers=moderator.headers,
    )
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_upload_cover_requires_staff(client: AsyncClient, user, make_book):
    book_id = await make_book()
    resp = await client.post(
        f"{API}/books/{book_id}/cover",
        files={"file": ("cover.png", PNG_BYTES, "image/png")},
        headers=user.headers,
    )
    assert resp.status_code == 403
