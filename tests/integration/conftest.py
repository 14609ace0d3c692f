"""Integration-test fixtures.

The app runs in-process through httpx's ASGITransport (lifespan is not
triggered, so no database is required). The market service is replaced per
test by one built on a FakeClock over an in-memory repository, and the DB
session by a FakeSession that applies staged writes on commit.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.pm_common.database import get_db_session
from src.pm_market.application.service import MarketApplicationService, get_market_service
from tests.fakes import FakeSession, InMemoryMarketRepository


@pytest.fixture
def store() -> InMemoryMarketRepository:
    return InMemoryMarketRepository()


@pytest.fixture
def service(clock, store: InMemoryMarketRepository) -> MarketApplicationService:
    return MarketApplicationService(repo=store, clock=clock)


@pytest.fixture
def db() -> FakeSession:
    return FakeSession()


@pytest_asyncio.fixture
async def client(  # type: ignore[override]
    service: MarketApplicationService, db: FakeSession
) -> AsyncClient:
    async def _db_session():
        yield db

    app.dependency_overrides[get_market_service] = lambda: service
    app.dependency_overrides[get_db_session] = _db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
