"""Integration tests for registration, login, token rotation and logout."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from app.api.middleware.auth import token_digest
from app.domain.models import RefreshToken
from tests.conftest import API, PASSWORD


def _email(prefix: str = "new") -> str:
    return f"{prefix}_{uuid4().hex[:8]}@example.com"


@pytest.mark.asyncio
async def test_register(client: AsyncClient):
    resp = await client.post(
        f"{API}/auth/register",
        json={
            "email": _email(),
            "password": "strongpass123",
            "first_name": "Ada",
            "last_name": "Lovelace",
        },
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["role"] == "USER"
    assert data["first_name"] == "Ada"
    assert "password_hash" not in data


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient):
    payload = {
        "email": _email("dup"),
        "password": "strongpass123",
        "first_name": "A",
        "last_name": "B",
    }
    assert (await client.post(f"{API}/auth/register", json=payload)).status_code == 201
    resp = await client.post(f"{API}/auth/register", json=payload)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_register_short_password(client: AsyncClient):
    resp = await client.post(
        f"{API}/auth/register",
        json={"email": _email(), "password": "short", "first_name": "A", "last_name": "B"},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, make_user):
    account = await make_user()
    resp = await client.post(
        f"{API}/auth/login", json={"email": account.email, "password": PASSWORD}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"] and data["refresh_token"]
    assert data["user"]["email"] == account.email
    assert data["user"]["last_login"] is not None


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, user):
    resp = await client.post(
        f"{API}/auth/login", json={"email": user.email, "password": "wrongpassword"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_unknown_email(client: AsyncClient):
    resp = await client.post(
        f"{API}/auth/login", json={"email": _email("ghost"), "password": PASSWORD}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_inactive_user(client: AsyncClient, make_user):
    account = await make_user(is_active=False)
    resp = await client.post(
        f"{API}/auth/login", json={"email": account.email, "password": PASSWORD}
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_profile(client: AsyncClient, user):
    resp = await client.get(f"{API}/auth/profile", headers=user.headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == user.email


@pytest.mark.asyncio
async def test_profile_requires_token(client: AsyncClient):
    resp = await client.get(f"{API}/auth/profile")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Not authenticated"


@pytest.mark.asyncio
async def test_profile_rejects_garbage_token(client: AsyncClient):
    resp = await client.get(
        f"{API}/auth/profile", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_cannot_be_used_as_access_token(client: AsyncClient, user):
    resp = await client.get(
        f"{API}/auth/profile",
        headers={"Authorization": f"Bearer {user.refresh_token}"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_tokens(client: AsyncClient, user):
    resp = await client.post(
        f"{API}/auth/refresh", json={"refresh_token": user.refresh_token}
    )
    assert resp.status_code == 200
    new_tokens = resp.json()
    assert new_tokens["refresh_token"] != user.refresh_token

    # The old refresh token was replaced and is no longer accepted
    resp = await client.post(
        f"{API}/auth/refresh", json={"refresh_token": user.refresh_token}
    )
    assert resp.status_code == 401

    resp = await client.get(
        f"{API}/auth/profile",
        headers={"Authorization": f"Bearer {new_tokens['access_token']}"},
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(client: AsyncClient, user):
    access = user.headers["Authorization"].split()[1]
    resp = await client.post(f"{API}/auth/refresh", json={"refresh_token": access})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_new_login_replaces_refresh_token(client: AsyncClient, user):
    resp = await client.post(
        f"{API}/auth/login", json={"email": user.email, "password": PASSWORD}
    )
    assert resp.status_code == 200
    resp = await client.post(
        f"{API}/auth/refresh", json={"refresh_token": user.refresh_token}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_tokens(client: AsyncClient, user):
    resp = await client.post(f"{API}/auth/logout", headers=user.headers)
    assert resp.status_code == 204

    resp = await client.get(f"{API}/auth/profile", headers=user.headers)
    assert resp.status_code == 401

    resp = await client.post(
        f"{API}/auth/refresh", json={"refresh_token": user.refresh_token}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rejects_expired_stored_token(client: AsyncClient, session_factory, user):
    async with session_factory() as session:
        await session.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user.id)
            .values(expires_at=datetime.utcnow() - timedelta(minutes=1))
        )
        await session.commit()

    resp = await client.post(
        f"{API}/auth/refresh", json={"refresh_token": user.refresh_token}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired refresh token"


@pytest.mark.asyncio
async def test_refresh_token_stored_as_fixed_length_digest(
    client: AsyncClient, session_factory, make_user
):
    # Long addresses make long JWTs; the stored form must not grow with them
    domain = ".".join(["d" * 60, "e" * 60, "example.com"])
    reader = await make_user(email=f"{'r' * 60}@{domain}")
    assert len(reader.refresh_token) > 500

    async with session_factory() as session:
        stored = (
            await session.execute(select(RefreshToken).where(RefreshToken.user_id == reader.id))
        ).scalar_one()
    assert stored.token_hash == token_digest(reader.refresh_token)
    assert len(stored.token_hash) == 64

    resp = await client.post(
        f"{API}/auth/refresh", json={"refresh_token": reader.refresh_token}
    )
    assert resp.status_code == 200
