"""
SQL-backed stores for observations, fitted parameters and saved scenarios.
"""
from datetime import date, datetime, timedelta, UTC
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
import structlog
from sqlalchemy import select, func, false
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mmm_engine.config.settings import settings
from mmm_engine.data.aggregator import ChannelObservation, attribute_revenue, average_daily_spend
from mmm_engine.database.models import AdSpendDaily, OrderLedger, ChannelParams, BudgetScenario
from mmm_engine.model.fitting import ChannelFit
from mmm_engine.model.hill import HillParameters
from mmm_engine.optimization.optimizer import BudgetAllocation
from mmm_engine.optimization.scenarios import Scenario
from mmm_engine.utils.exceptions import StorageError

logger = structlog.get_logger()

SPEND_COLUMNS = ["date", "channel", "spend", "conversion_value"]
REVENUE_COLUMNS = ["date", "revenue"]


def _window(window_days: int, as_of: Optional[date]) -> Tuple[date, date]:
    """Inclusive (start, end) dates of a trailing window ending at as_of."""
    end = as_of or date.today()
    return end - timedelta(days=window_days), end


class SqlObservationStore:
    """Reads the ad-spend archive and order ledger and attributes revenue per channel."""

    def __init__(self, session_maker: async_sessionmaker,
                 platform_revenue_channels: Optional[Iterable[str]] = None):
        self.session_maker = session_maker
        self.platform_revenue_channels = tuple(
            settings.fitting.platform_revenue_channels
            if platform_revenue_channels is None else platform_revenue_channels
        )

    async def _spend_rows(self, session: AsyncSession, owner_id: str,
                          since: date, until: date) -> pd.DataFrame:
        stmt = (
            select(
                AdSpendDaily.spend_date,
                AdSpendDaily.channel,
                func.sum(AdSpendDaily.spend),
                func.sum(func.coalesce(AdSpendDaily.conversion_value, 0.0)),
            )
            .where(
                AdSpendDaily.owner_id == owner_id,
                AdSpendDaily.spend_date >= since,
                AdSpendDaily.spend_date <= until,
            )
            .group_by(AdSpendDaily.spend_date, AdSpendDaily.channel)
            .order_by(AdSpendDaily.spend_date)
        )
        rows = (await session.execute(stmt)).all()
        return pd.DataFrame([tuple(r) for r in rows], columns=SPEND_COLUMNS)

    async def _order_revenue(self, session: AsyncSession, owner_id: str,
                             since: date, until: date) -> pd.DataFrame:
        stmt = (
            select(
                OrderLedger.order_date,
                func.sum(func.coalesce(OrderLedger.subtotal, OrderLedger.revenue, 0.0)),
            )
            .where(
                OrderLedger.owner_id == owner_id,
                OrderLedger.order_date >= since,
                OrderLedger.order_date <= until,
                OrderLedger.order_status == "completed",
                OrderLedger.is_test == false(),
            )
            .group_by(OrderLedger.order_date)
        )
        rows = (await session.execute(stmt)).all()
        return pd.DataFrame([tuple(r) for r in rows], columns=REVENUE_COLUMNS)

    async def get(self, owner_id: str, channel: str, window_days: int,
                  as_of: Optional[date] = None) -> List[ChannelObservation]:
        since, until = _window(window_days, as_of)
        try:
            async with self.session_maker() as session:
                spend_rows = await self._spend_rows(session, owner_id, since, until)
                order_revenue = await self._order_revenue(session, owner_id, since, until)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load observations for {owner_id}/{channel}: {e}") from e

        return attribute_revenue(spend_rows, order_revenue, channel, self.platform_revenue_channels)

    async def current_spend(self, owner_id: str, window_days: int,
                            as_of: Optional[date] = None) -> Dict[str, float]:
        since, until = _window(window_days, as_of)
        try:
            async with self.session_maker() as session:
                spend_rows = await self._spend_rows(session, owner_id, since, until)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load current spend for {owner_id}: {e}") from e

        return average_daily_spend(spend_rows)

    async def list_owners(self) -> List[str]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(AdSpendDaily.owner_id).distinct().order_by(AdSpendDaily.owner_id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list owners: {e}") from e


def _to_channel_fit(row: ChannelParams) -> ChannelFit:
    return ChannelFit(
        channel=row.channel,
        params=HillParameters(alpha=row.alpha, beta=row.beta, gamma=row.gamma),
        r_squared=row.r_squared if row.r_squared is not None else 0.0,
        data_points=row.data_points,
        last_fitted=row.last_fitted,
    )


class SqlParamsStore:
    """Stores one fitted Hill curve per (owner, channel)."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    @staticmethod
    def _insert_for(session: AsyncSession):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise StorageError(f"Upsert is not supported for dialect {dialect}")

    async def upsert(self, owner_id: str, fit: ChannelFit) -> None:
        """Insert or fully replace the row for (owner, channel)."""
        now = datetime.now(UTC)
        values = {
            "alpha": fit.alpha,
            "beta": fit.beta,
            "gamma": fit.gamma,
            "r_squared": fit.r_squared,
            "data_points": fit.data_points,
            "last_fitted": fit.last_fitted or now,
            "updated_at": now,
        }
        try:
            async with self.session_maker() as session:
                insert = self._insert_for(session)
                stmt = insert(ChannelParams).values(
                    owner_id=owner_id, channel=fit.channel, created_at=now, **values
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["owner_id", "channel"],
                    set_={key: stmt.excluded[key] for key in values},
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to store parameters for {owner_id}/{fit.channel}: {e}") from e

    async def get(self, owner_id: str, channel: str) -> Optional[ChannelFit]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(ChannelParams).where(
                        ChannelParams.owner_id == owner_id, ChannelParams.channel == channel
                    )
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load parameters for {owner_id}/{channel}: {e}") from e

        return _to_channel_fit(row) if row else None

    async def list_for_owner(self, owner_id: str) -> List[ChannelFit]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(ChannelParams)
                    .where(ChannelParams.owner_id == owner_id)
                    .order_by(ChannelParams.channel)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list parameters for {owner_id}: {e}") from e

        return [_to_channel_fit(row) for row in rows]


def _to_scenario(row: BudgetScenario) -> Scenario:
    return Scenario(
        id=row.id,
        name=row.name,
        total_budget=row.total_budget,
        allocations=[BudgetAllocation(**a) for a in (row.allocations or [])],
        predicted_total_revenue=row.predicted_total_revenue or 0.0,
        predicted_roas=row.predicted_roas or 0.0,
        is_optimal=row.is_optimal,
        created_at=row.created_at,
    )


class ScenarioRepository:
    """Persists saved what-if scenarios for the caller."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def save(self, owner_id: str, scenario: Scenario) -> Scenario:
        row = BudgetScenario(
            owner_id=owner_id,
            name=scenario.name,
            total_budget=scenario.total_budget,
            allocations=[a.to_dict() for a in scenario.allocations],
            predicted_total_revenue=scenario.predicted_total_revenue,
            predicted_roas=scenario.predicted_roas,
            is_optimal=scenario.is_optimal,
        )
        try:
            async with self.session_maker() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save scenario {scenario.name!r} for {owner_id}: {e}") from e

        logger.info("Scenario saved", owner_id=owner_id, scenario_id=row.id, name=row.name)
        return _to_scenario(row)

    async def list_recent(self, owner_id: str, limit: int = 50) -> List[Scenario]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(BudgetScenario)
                    .where(BudgetScenario.owner_id == owner_id)
                    .order_by(BudgetScenario.created_at.desc(), BudgetScenario.id.desc())
                    .limit(limit)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list scenarios for {owner_id}: {e}") from e

        return [_to_scenario(row) for row in rows]
