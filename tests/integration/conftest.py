"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session.
"""

import uuid

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.main import app
from src.sf_common.database import engine

CATALOG_SEED = [
    "INSERT INTO products (id, name, price) VALUES ('it-panjabi', 'Cotton Panjabi', 45000) "
    "ON CONFLICT (id) DO UPDATE SET price = EXCLUDED.price, is_active = TRUE",
    "INSERT INTO shipping_options (code, name, fee) VALUES ('it-dhaka', 'Inside Dhaka', 10000) "
    "ON CONFLICT (code) DO UPDATE SET fee = EXCLUDED.fee, is_active = TRUE",
]


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client; keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def catalog() -> None:
    """Products and shipping options the order flow tests buy."""
    async with engine.begin() as conn:
        for statement in CATALOG_SEED:
            await conn.execute(text(statement))


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def admin_token(client: AsyncClient) -> str:
    """Register a staff user, grant is_admin out of band, return a Bearer token."""
    uid = uuid.uuid4().hex[:8]
    user = {
        "username": f"admin_{uid}",
        "email": f"admin_{uid}@example.com",
        "password": "TestPass123!",
    }
    await client.post("/api/v1/auth/register", json=user)
    async with engine.begin() as conn:
        await conn.execute(
            text("UPDATE users SET is_admin = TRUE WHERE username = :username"),
            {"username": user["username"]},
        )
    login_resp = await client.post(
        "/api/v1/auth/login",
        json={"username": user["username"], "password": user["password"]},
    )
    return str(login_resp.json()["data"]["access_token"])
