"""Integration tests for recommendations and the GenAI endpoints."""

import json
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.services import recommendation
from app.services.ai import AIService
from app.services.recommendation import RecommendationService
from tests.conftest import API, FailingLLM, ScriptedLLM


def _titles(data: dict) -> list[str]:
    return [r["title"] for r in data["recommendations"]]


# ── Personalized ───────────────────────────────────


@pytest.mark.asyncio
async def test_personalized_requires_auth(client: AsyncClient):
    assert (await client.get(f"{API}/recommendations")).status_code == 401


@pytest.mark.asyncio
async def test_new_reader_gets_popular_books(client: AsyncClient, user, make_user, make_book, make_review):
    popular = await make_book(title="Crowd Pleaser")
    await make_book(title="Quiet Gem")
    other = await make_user()
    await make_review(other.id, popular, 5)

    resp = await client.get(f"{API}/recommendations", headers=user.headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["explanation"] == "Popular books recommended for new readers"
    assert _titles(data) == ["Crowd Pleaser", "Quiet Gem"]
    assert data["recommendations"][0]["reason"] == "Popular among readers"
    assert data["recommendations"][0]["confidence"] == 0.7
    assert data["count"] == 2


@pytest.mark.asyncio
async def test_collaborative_recommendations(
    client: AsyncClient, user, make_user, make_book, make_review
):
    shared = await make_book(title="Shared Favourite")
    liked = await make_book(title="Neighbour Pick")
    disliked = await make_book(title="Neighbour Dud")
    neighbour = await make_user()
    await make_review(user.id, shared, 5)
    await make_review(neighbour.id, shared, 5)
    await make_review(neighbour.id, liked, 5)
    await make_review(neighbour.id, disliked, 2)

    data = (await client.get(f"{API}/recommendations", headers=user.headers)).json()
    assert _titles(data) == ["Neighbour Pick"]
    item = data["recommendations"][0]
    assert item["reason"] == "Recommended by users with similar taste"
    assert item["confidence"] == 0.7
    assert str(liked) == item["id"]


@pytest.mark.asyncio
async def test_personalized_matches_llm_suggestions(
    client: AsyncClient, user, make_book, make_review, llm
):
    read = await make_book(title="Foundation", author="Isaac Asimov")
    await make_book(title="Dune", author="Frank Herbert")
    await make_review(user.id, read, 5)
    llm.adapter = ScriptedLLM(
        json.dumps(
            {
                "recommendations": [
                    {"title": "Foundation", "author": "Isaac Asimov", "reason": "Already read"},
                    {"title": "dune", "author": "", "reason": "Epic desert saga"},
                    {"title": "Not In Catalog", "author": "Nobody", "reason": "Missing"},
                ],
                "explanation": "Science fiction classics",
            }
        )
    )

    data = (await client.get(f"{API}/recommendations", headers=user.headers)).json()
    assert data["explanation"] == "Science fiction classics"
    assert _titles(data) == ["Dune"]
    assert data["recommendations"][0]["reason"] == "Epic desert saga"
    assert data["recommendations"][0]["confidence"] == 0.8
    assert llm.adapter.prompts[0]["name"] == "recommend_for_reader"


@pytest.mark.asyncio
async def test_personalized_falls_back_to_trending(
    client: AsyncClient, user, make_user, make_book, make_review, llm
):
    llm.adapter = FailingLLM()
    read = await make_book(title="Read Already")
    hot = await make_book(title="Hot Right Now")
    other = await make_user()
    await make_review(user.id, read, 3)
    await make_review(other.id, hot, 4)

    resp = await client.get(f"{API}/recommendations", headers=user.headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["explanation"] == "Trending books from the last 30 days"
    assert "Hot Right Now" in _titles(data)


@pytest.mark.asyncio
async def test_database_errors_are_not_taken_for_model_failures(
    session_factory, user, make_book, make_review, monkeypatch
):
    read = await make_book(title="Read Already")
    await make_review(user.id, read, 4)

    async def broken_genre_names(session, book_ids):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(recommendation, "genre_names", broken_genre_names)
    async with session_factory() as session:
        service = RecommendationService(session, AIService(FailingLLM()))
        with pytest.raises(OperationalError):
            await service.personalized(user.id)


@pytest.mark.asyncio
async def test_personalized_ignores_non_text_explanation(
    client: AsyncClient, user, make_book, make_review, llm
):
    read = await make_book(title="Read Already")
    await make_book(title="Next Up", author="Someone")
    await make_review(user.id, read, 4)
    llm.adapter = ScriptedLLM(
        json.dumps({"recommendations": [{"title": "Next Up"}], "explanation": ["not", "text"]})
    )
    resp = await client.get(f"{API}/recommendations", headers=user.headers)
    assert resp.status_code == 200
    assert _titles(resp.json()) == ["Next Up"]


# ── Catalog-driven lists ───────────────────────────


@pytest.mark.asyncio
async def test_trending(client: AsyncClient, make_user, make_book, make_review):
    busy = await make_book(title="Busy")
    steady = await make_book(title="Steady")
    stale = await make_book(title="Stale")
    old = datetime.utcnow() - timedelta(days=60)
    readers = [await make_user() for _ in range(3)]

    await make_review(readers[0].id, busy, 5)
    await make_review(readers[1].id, busy, 4)
    await make_review(readers[2].id, busy, 4, created_at=old)
    await make_review(readers[0].id, steady, 3)
    await make_review(readers[1].id, stale, 5, created_at=old)

    data = (await client.get(f"{API}/recommendations/trending")).json()
    assert _titles(data) == ["Busy", "Steady"]
    assert data["recommendations"][0]["trending_score"] == 1.75
    assert data["recommendations"][1]["trending_score"] == 1.5
    assert data["recommendations"][0]["reason"] == "Trending based on recent reviews"
    assert data["recommendations"][0]["confidence"] == 0.8


@pytest.mark.asyncio
async def test_by_genre(client: AsyncClient, make_genre, make_book):
    horror = await make_genre("Horror")
    await make_book(title="It", genre_ids=[horror])
    await make_book(title="Emma")

    data = (await client.get(f"{API}/recommendations/genre/{horror}")).json()
    assert _titles(data) == ["It"]
    assert data["recommendations"][0]["reason"] == "Popular in this genre"

    resp = await client.get(f"{API}/recommendations/genre/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_new_releases(client: AsyncClient, make_book):
    year = datetime.utcnow().year
    await make_book(title="Fresh", published_year=year)
    await make_book(title="Last Year", published_year=year - 1)
    await make_book(title="Ancient", published_year=1900)

    data = (await client.get(f"{API}/recommendations/new-releases")).json()
    assert _titles(data) == ["Fresh", "Last Year"]
    assert data["recommendations"][0]["reason"] == "Recently published"
    assert data["recommendations"][0]["confidence"] == 0.6


# ── Similar books ──────────────────────────────────


@pytest.mark.asyncio
async def test_similar_falls_back_to_shared_genre(client: AsyncClient, make_genre, make_book):
    noir = await make_genre("Noir")
    source = await make_book(title="The Big Sleep", genre_ids=[noir])
    await make_book(title="The Long Goodbye", genre_ids=[noir])
    await make_book(title="Unrelated")

    data = (await client.get(f"{API}/recommendations/similar/{source}")).json()
    assert _titles(data) == ["The Long Goodbye"]
    assert data["recommendations"][0]["reason"] == "Similar genre and themes"
    assert data["recommendations"][0]["confidence"] == 0.6


@pytest.mark.asyncio
async def test_similar_uses_llm_matches(client: AsyncClient, make_book, llm):
    source = await make_book(title="Neuromancer", author="William Gibson")
    await make_book(title="Snow Crash", author="Neal Stephenson")
    llm.adapter = ScriptedLLM(
        "```json\n"
        + json.dumps(
            {
                "similarBooks": [
                    {"title": "Neuromancer", "author": "William Gibson", "reason": "Itself"},
                    {"title": "Snow Crash", "author": "Neal Stephenson", "reason": "Cyberpunk"},
                ],
                "explanation": "Cyberpunk touchstones",
            }
        )
        + "\n```"
    )

    data = (await client.get(f"{API}/recommendations/similar/{source}")).json()
    assert _titles(data) == ["Snow Crash"]
    assert data["explanation"] == "Cyberpunk touchstones"
    assert data["recommendations"][0]["confidence"] == 0.8


@pytest.mark.asyncio
async def test_similar_unknown_book(client: AsyncClient):
    resp = await client.get(f"{API}/recommendations/similar/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404


# ── Free-text query ────────────────────────────────


@pytest.mark.asyncio
async def test_query_recommendations_from_llm(client: AsyncClient, make_book):
    for title in ("Cosmos", "Brief History of Time", "Astrophysics for People in a Hurry"):
        await make_book(title=title, author="Scientist")

    resp = await client.post(f"{API}/ai/recommendations", json={"query": "popular science", "limit": 2})
    assert resp.status_code == 200
    data = resp.json()
    assert data["query"] == "popular science"
    assert data["total_found"] == 2
    assert _titles(data) == ["Astrophysics for People in a Hurry", "Brief History of Time"]
    assert data["recommendations"][0]["confidence"] == 0.9
    assert data["explanation"] == 'Based on your query "popular science", here are 2 book recommendations.'


@pytest.mark.asyncio
async def test_query_recommendations_keyword_fallback(client: AsyncClient, make_book, llm):
    llm.adapter = FailingLLM()
    await make_book(title="Gardening Basics", author="Green Thumb")
    await make_book(title="Dune", author="Frank Herbert", description="Spice and sand on a desert planet")

    resp = await client.post(
        f"{API}/ai/recommendations", json={"query": "a desert planet adventure", "limit": 1}
    )
    data = resp.json()
    assert _titles(data) == ["Dune"]
    item = data["recommendations"][0]
    assert item["confidence"] == 0.7
    assert item["reason"] == 'Based on your query "a desert planet adventure", this book matches your interests'


@pytest.mark.asyncio
async def test_query_recommendations_fills_unmatched_picks(client: AsyncClient, make_book, llm):
    await make_book(title="Only Book", author="Solo")
    llm.adapter = ScriptedLLM(
        json.dumps({"recommendations": [{"title": "Invented", "author": "Nobody"}]})
    )
    data = (await client.post(f"{API}/ai/recommendations", json={"query": "anything"})).json()
    assert _titles(data) == ["Only Book"]
    assert data["total_found"] == 1


@pytest.mark.asyncio
async def test_query_recommendations_keeps_match_with_odd_confidence(
    client: AsyncClient, make_book, llm
):
    await make_book(title="Emma", author="Jane Austen")
    await make_book(title="Dune", author="Frank Herbert", description="A desert planet epic")
    llm.adapter = ScriptedLLM(
        json.dumps(
            {
                "recommendations": [
                    {"title": "Emma", "author": "Jane Austen", "reason": "Witty", "confidence": "high"}
                ]
            }
        )
    )
    resp = await client.post(
        f"{API}/ai/recommendations", json={"query": "desert planet", "limit": 1}
    )
    data = resp.json()
    assert _titles(data) == ["Emma"]
    assert data["recommendations"][0]["reason"] == "Witty"
    assert data["recommendations"][0]["confidence"] == 0.8


@pytest.mark.asyncio
async def test_query_recommendations_empty_query(client: AsyncClient):
    resp = await client.post(f"{API}/ai/recommendations", json={"query": "   "})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Query is required"


# ── GenAI utilities ────────────────────────────────


@pytest.mark.asyncio
async def test_analyze_review(client: AsyncClient, user):
    resp = await client.post(
        f"{API}/recommendations/analyze-review",
        json={"review_text": "Boring and dull, a terrible waste of time"},
        headers=user.headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["sentiment"] == "negative"
    assert data["quality"] == 0.7


@pytest.mark.asyncio
async def test_analyze_review_fallback(client: AsyncClient, user, llm):
    llm.adapter = FailingLLM()
    resp = await client.post(
        f"{API}/recommendations/analyze-review",
        json={"review_text": "Whatever"},
        headers=user.headers,
    )
    assert resp.json() == {
        "sentiment": "neutral",
        "themes": [],
        "quality": 0.5,
        "summary": "Analysis failed",
    }


@pytest.mark.asyncio
async def test_generate_description(client: AsyncClient, user, llm):
    resp = await client.post(
        f"{API}/recommendations/generate-description",
        json={"title": "Dune", "author": "Frank Herbert"},
        headers=user.headers,
    )
    assert resp.status_code == 200
    assert resp.json()["description"].startswith("A thoughtful, engaging read")

    llm.adapter = FailingLLM()
    resp = await client.post(
        f"{API}/recommendations/generate-description",
        json={"title": "Dune", "author": "Frank Herbert", "existing_description": "Sand."},
        headers=user.headers,
    )
    assert resp.json()["description"] == "Sand."


@pytest.mark.asyncio
async def test_moderate_requires_staff(client: AsyncClient, user, moderator):
    payload = {"content": "Click here to buy now!"}
    assert (await client.post(f"{API}/ai/moderate", json=payload, headers=user.headers)).status_code == 403

    resp = await client.post(f"{API}/ai/moderate", json=payload, headers=moderator.headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_appropriate"] is False
    assert data["suggested_action"] == "reject"


@pytest.mark.asyncio
async def test_moderate_fallback(client: AsyncClient, moderator, llm):
    llm.adapter = FailingLLM()
    resp = await client.post(
        f"{API}/ai/moderate", json={"content": "Lovely book"}, headers=moderator.headers
    )
    assert resp.json() == {
        "is_appropriate": True,
        "confidence": 0.3,
        "reasons": ["AI analysis failed"],
        "suggested_action": "approve",
    }


@pytest.mark.asyncio
async def test_ai_status(client: AsyncClient):
    data = (await client.get(f"{API}/ai/status")).json()
    assert data["provider"] == "mock"
    assert data["configured"] is True
    assert data["prompts"]["analyze_review"] == "1.0.0"
    assert "query_recommendations" in data["prompts"]
