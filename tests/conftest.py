"""
Pytest configuration and shared fixtures.
"""
import pytest
from httpx import AsyncClient, ASGITransport
from src.api.main import app, get_store, get_cache, get_market_data, get_settings
from src.core.config import Settings
from src.core.services import LedgerService
from src.infrastructure.cache.redis_service import RedisService
from src.infrastructure.persistence.memory_repo import InMemoryLedgerStore
from src.infrastructure.gateways.local_mock import LocalMockMarketData

TEST_USER = "3f1c9a7e-5b2d-4c8f-9e61-0a7d2b4c6e81"


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def market():
    return LocalMockMarketData()


@pytest.fixture
def settings():
    return Settings(_env_file=None, DATABASE_URL=None, REDIS_URL=None, MARKET_DATA_MODE="mock")


@pytest.fixture
def ledger(store):
    return LedgerService(store)


@pytest.fixture
async def client(store, market, settings):
    """Async HTTP client for testing FastAPI endpoints against in-memory collaborators."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_market_data] = lambda: market
    app.dependency_overrides[get_cache] = lambda: RedisService(None)
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return {"X-User-Id": TEST_USER}
