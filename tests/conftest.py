"""Pytest fixtures and configuration"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.database import create_all
from app.engine import AggregationEngine
from app.main import create_app
from app.schemas.user import UserCreate, UserResponse


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database"""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        cache_enabled=False,
        default_currency="INR",
        retry_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        # Small pages exercise keyset pagination of the ledger
        ledger_batch_size=2,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AggregationEngine, None]:
    """Aggregation engine over a fresh database"""
    engine = AggregationEngine.from_settings(settings)
    await create_all(engine.db_engine)
    yield engine
    await engine.close()


@pytest_asyncio.fixture
async def client(
    settings: Settings, engine: AggregationEngine
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client sharing the test engine"""
    app = create_app(settings)
    app.state.engine = engine

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def alice(engine: AggregationEngine) -> UserResponse:
    """Create a test user"""
    return await engine.create_user(UserCreate(name="Alice", email="alice@example.com"))


@pytest_asyncio.fixture
async def bob(engine: AggregationEngine) -> UserResponse:
    """Create a second test user"""
    return await engine.create_user(UserCreate(name="Bob", email="bob@example.com"))


@pytest_asyncio.fixture
async def carol(engine: AggregationEngine) -> UserResponse:
    """Create a third test user"""
    return await engine.create_user(UserCreate(name="Carol", email="carol@example.com"))
