"""Shared test fixtures.

Provides:
- test_settings: Settings with an SSR key and the cache endpoint enabled
- repository / fake_redis: in-memory doubles from tests/doubles.py
- app / client: create_app() wired to the doubles, httpx AsyncClient on a.com
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.tenancy.config import Settings, get_settings
from src.tenancy.main import create_app, wire_services
from tests.doubles import SSR_KEY, FakeRedis, InMemoryTenantRepository


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def repository() -> InMemoryTenantRepository:
    return InMemoryTenantRepository()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        TENANT_PRIVACY_SSR_API_KEY=SSR_KEY,
        TENANT_CACHE_API_ENABLED=True,
        SENTRY_DSN="",
    )


@pytest.fixture
def app(test_settings, repository, fake_redis):
    """FastAPI app wired to the in-memory repository and fake Redis."""
    application = create_app()
    wire_services(application, test_settings, repository=repository, redis_client=fake_redis)
    application.dependency_overrides[get_settings] = lambda: test_settings
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client whose requests arrive for host a.com from 127.0.0.1."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://a.com") as ac:
        yield ac
