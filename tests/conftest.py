import os

# Point the app at sqlite before src.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import copy
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from src.agents.sow.agent import PipelineConfig
from src.agents.sow.client import get_generation_client
from src.database import build_engine, build_session_factory, create_tables, get_db
from src.estimation.market_rates import MarketRateProvider, get_market_rate_provider
from src.main import app
from src.sow import models  # noqa: F401  registers the table

from factories import LOFT_DRAFT, MINIMAL_LOFT_DRAFT, FakeGenerationClient


@pytest.fixture
def loft_draft() -> dict:
    return copy.deepcopy(LOFT_DRAFT)


@pytest.fixture
def minimal_loft_draft() -> dict:
    return copy.deepcopy(MINIMAL_LOFT_DRAFT)


@pytest.fixture
def fast_config() -> PipelineConfig:
    return PipelineConfig(generation_timeout=5, max_retries=2, retry_backoff=0, pipeline_timeout=10)


@pytest.fixture
def rate_provider() -> MarketRateProvider:
    return MarketRateProvider()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """File-backed sqlite so concurrent sessions see each other's commits."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'sow.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_client(loft_draft) -> FakeGenerationClient:
    return FakeGenerationClient([loft_draft])


@pytest_asyncio.fixture(scope="function")
async def async_client(session_factory, fake_client) -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_client] = lambda: fake_client
    app.dependency_overrides[get_market_rate_provider] = lambda: MarketRateProvider()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
