"""
Pytest configuration and fixtures for MMM engine tests.
"""
import pytest
import pytest_asyncio
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from mmm_engine.config.settings import Settings, Environment
from mmm_engine.database.connection import Base
from mmm_engine.database.models import AdSpendDaily, OrderLedger
from mmm_engine.database.repositories import SqlObservationStore, SqlParamsStore, ScenarioRepository
from mmm_engine.model.hill import HillParameters
from mmm_engine.services.engine import MMMEngine


AS_OF = date(2026, 3, 31)
OWNER_ID = "acme"

META_TRUTH = HillParameters(alpha=8000.0, beta=1.2, gamma=2500.0)
TIKTOK_TRUTH = HillParameters(alpha=3000.0, beta=0.9, gamma=1500.0)


@pytest.fixture
def test_settings():
    """Settings pinned to the default channel set."""
    config = Settings(env=Environment.TESTING)
    config.fitting.channels = ("meta", "tiktok", "newsbreak")
    config.fitting.platform_revenue_channels = ("tiktok", "newsbreak")
    return config


@pytest_asyncio.fixture
async def session_maker():
    """Create an in-memory test database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def observation_store(session_maker, test_settings):
    return SqlObservationStore(session_maker, test_settings.fitting.platform_revenue_channels)


@pytest.fixture
def params_store(session_maker):
    return SqlParamsStore(session_maker)


@pytest.fixture
def scenario_repository(session_maker):
    return ScenarioRepository(session_maker)


@pytest.fixture
def engine(observation_store, params_store, test_settings):
    return MMMEngine(observation_store, params_store, test_settings)


async def seed_spend(session_maker, owner_id: str, rows: List[Dict]):
    """Insert ad archive rows: dicts with channel, spend_date, spend, conversion_value."""
    async with session_maker() as session:
        session.add_all([AdSpendDaily(owner_id=owner_id, **row) for row in rows])
        await session.commit()


async def seed_orders(session_maker, owner_id: str, rows: List[Dict]):
    """Insert order ledger rows: dicts with order_date, revenue and optional status fields."""
    async with session_maker() as session:
        session.add_all([OrderLedger(owner_id=owner_id, **row) for row in rows])
        await session.commit()


def synthetic_history(days: int = 30, end: date = AS_OF,
                      tiktok_days: Optional[int] = None):
    """
    Daily spend and revenue generated from known Hill curves.

    Meta spends every day on a rising ramp; TikTok spends on the last
    tiktok_days days only (every day when None). Revenue per day is the sum
    of both channels' curve outputs.
    """
    spend_rows = []
    order_rows = []
    tiktok_days = days if tiktok_days is None else tiktok_days

    for i in range(days):
        day = end - timedelta(days=days - 1 - i)
        meta_spend = 500.0 + 150.0 * i
        revenue = META_TRUTH.predict(meta_spend)
        spend_rows.append({"channel": "meta", "spend_date": day, "spend": meta_spend, "conversion_value": None})

        if i >= days - tiktok_days:
            tiktok_spend = 200.0 + 40.0 * i
            revenue += TIKTOK_TRUTH.predict(tiktok_spend)
            spend_rows.append({"channel": "tiktok", "spend_date": day, "spend": tiktok_spend, "conversion_value": 0.0})

        order_rows.append({"order_date": day, "revenue": revenue})

    return spend_rows, order_rows


@pytest_asyncio.fixture
async def seeded_history(session_maker):
    """Thirty days of meta history and three days of tiktok history for OWNER_ID."""
    spend_rows, order_rows = synthetic_history(days=30, tiktok_days=3)
    await seed_spend(session_maker, OWNER_ID, spend_rows)
    await seed_orders(session_maker, OWNER_ID, order_rows)
    return spend_rows, order_rows
