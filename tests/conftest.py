"""Pytest configuration and fixtures for TerraBuild tests.

Provides an in-memory database session, request contexts and small row
factories shared by the unit and integration suites.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from terrabuild.config import reset_config
from terrabuild.core.context import RequestContext
from terrabuild.db import guards  # noqa: F401  append-only listeners
from terrabuild.db.models import Base, UserModel


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6390/0")
    for name in (
        "DEFAULT_REGION",
        "MATERIAL_FALLBACK_POLICY",
        "PRICE_CACHE_TTL_SECONDS",
        "SHARED_LINK_DEFAULT_EXPIRY_DAYS",
        "SHARED_LINK_TOKEN_BYTES",
        "TERRABUILD_AUTH_DISABLED",
        "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def admin_ctx() -> RequestContext:
    return RequestContext(user_id=1, username="assessor_admin", role="admin")


@pytest.fixture
def user_ctx() -> RequestContext:
    return RequestContext(user_id=2, username="appraiser", role="user")


@pytest.fixture
def viewer_ctx() -> RequestContext:
    return RequestContext(user_id=3, username="auditor", role="viewer")


@pytest_asyncio.fixture()
async def users(db_session: AsyncSession) -> dict[int, UserModel]:
    """Accounts 1, 2, 3 and 7, committed so later rollbacks keep them."""
    rows = {
        1: UserModel(id=1, username="assessor_admin", password="x", role="admin"),
        2: UserModel(id=2, username="appraiser", password="x", role="user"),
        3: UserModel(id=3, username="auditor", password="x", role="viewer"),
        7: UserModel(id=7, username="field_reviewer", password="x", role="user"),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    return rows


@pytest.fixture
def matrix_payload() -> dict:
    """A valid cost matrix payload in wire (camelCase) form."""
    return {
        "region": "West",
        "buildingType": "Residential",
        "buildingTypeDescription": "Single family residential",
        "baseCost": "150.00",
        "matrixYear": 2024,
        "sourceMatrixId": 101,
        "matrixDescription": "2024 residential base rates",
        "county": "Benton",
        "state": "WA",
    }


@pytest.fixture
def calculation_payload() -> dict:
    """A valid calculation snapshot in wire form."""
    return {
        "name": "Parcel 1-2345 estimate",
        "region": "West",
        "buildingType": "Residential",
        "squareFootage": 2000,
        "baseCost": "150.00",
        "regionFactor": "1.05",
        "complexity": "standard",
        "complexityFactor": "1.00",
        "quality": "good",
        "qualityFactor": Decimal("1.10"),
        "costPerSqft": "173.25",
        "totalCost": "346500.00",
        "adjustedCost": "346500.00",
    }
