"""
End-to-end engine tests: fitting from stored history through to budget decisions.
"""
import pytest
from datetime import date

from mmm_engine.database.repositories import SqlParamsStore
from mmm_engine.model.efficiency import Headroom
from mmm_engine.model.fitting import ChannelFit
from mmm_engine.model.hill import HillParameters
from mmm_engine.optimization.scenarios import SpendAllocationSchema
from mmm_engine.services.engine import MMMEngine
from mmm_engine.utils.exceptions import StorageError
from tests.conftest import AS_OF, META_TRUTH, OWNER_ID, seed_orders, seed_spend, synthetic_history


class FlakyParamsStore(SqlParamsStore):
    """Fails to store one channel."""

    def __init__(self, session_maker, failing_channel: str):
        super().__init__(session_maker)
        self.failing_channel = failing_channel

    async def upsert(self, owner_id: str, fit: ChannelFit) -> None:
        if fit.channel == self.failing_channel:
            raise StorageError("connection reset")
        await super().upsert(owner_id, fit)


async def store_fit(params_store, channel: str, params: HillParameters):
    await params_store.upsert(OWNER_ID, ChannelFit(channel, params, r_squared=0.9, data_points=30))


@pytest.mark.asyncio
class TestCurveFitting:

    async def test_fits_channels_with_enough_history(self, engine, params_store, seeded_history):
        fits = await engine.fit_channel_curves(OWNER_ID, as_of=AS_OF)

        # tiktok has three days of spend, newsbreak none
        assert [f.channel for f in fits] == ["meta"]
        assert fits[0].data_points == 30
        assert fits[0].r_squared > 0.8
        assert fits[0].last_fitted is not None

        stored = await params_store.get(OWNER_ID, "meta")
        assert stored.params == fits[0].params
        assert await params_store.get(OWNER_ID, "tiktok") is None

    async def test_fitted_curve_tracks_history(self, engine, seeded_history):
        fits = await engine.fit_channel_curves(OWNER_ID, as_of=AS_OF)
        params = fits[0].params

        for spend in (1000.0, 2500.0, 4000.0):
            assert params.predict(spend) == pytest.approx(META_TRUTH.predict(spend), rel=0.15)

    async def test_window_excludes_old_history(self, engine, seeded_history):
        later = date(2026, 12, 31)
        assert await engine.fit_channel_curves(OWNER_ID, as_of=later) == []

    async def test_one_failing_channel_does_not_stop_others(self, session_maker, observation_store,
                                                            test_settings):
        spend_rows, order_rows = synthetic_history(days=30)
        await seed_spend(session_maker, OWNER_ID, spend_rows)
        await seed_orders(session_maker, OWNER_ID, order_rows)

        params_store = FlakyParamsStore(session_maker, failing_channel="meta")
        engine = MMMEngine(observation_store, params_store, test_settings)

        fits = await engine.fit_channel_curves(OWNER_ID, as_of=AS_OF)

        assert [f.channel for f in fits] == ["tiktok"]
        assert [f.channel for f in await params_store.list_for_owner(OWNER_ID)] == ["tiktok"]

    async def test_fit_all_owners(self, engine, seeded_history):
        summary = await engine.fit_all_owners_curves(["acme", "ghost"], as_of=AS_OF)
        assert summary == {"owners_processed": 2, "total_channels_fit": 1}

    async def test_list_channel_fits(self, engine, seeded_history):
        await engine.fit_channel_curves(OWNER_ID, as_of=AS_OF)
        assert [f.channel for f in await engine.list_channel_fits(OWNER_ID)] == ["meta"]


@pytest.mark.asyncio
class TestPredictions:

    async def test_predict_revenue(self, engine, params_store):
        await store_fit(params_store, "meta", HillParameters(alpha=10000, beta=1.0, gamma=5000))

        assert await engine.predict_revenue(OWNER_ID, "meta", 5000) == 5000
        assert await engine.predict_revenue(OWNER_ID, "meta", 0) == 0

    async def test_predict_without_fit_is_zero(self, engine):
        assert await engine.predict_revenue(OWNER_ID, "meta", 5000) == 0

    async def test_response_curve(self, engine, params_store):
        await store_fit(params_store, "meta", HillParameters(alpha=10000, beta=1.0, gamma=5000))

        curve = await engine.get_response_curve(OWNER_ID, "meta", min_spend=0, max_spend=10000, steps=4)

        assert [p.spend for p in curve] == [0, 2500, 5000, 7500, 10000]
        assert curve[0].predicted_revenue == 0
        assert curve[2].predicted_revenue == 5000

    async def test_response_curve_defaults(self, engine, params_store):
        await store_fit(params_store, "meta", HillParameters(alpha=10000, beta=1.0, gamma=5000))

        curve = await engine.get_response_curve(OWNER_ID, "meta")

        assert len(curve) == 51
        assert curve[-1].spend == 10000

    async def test_response_curve_without_fit(self, engine):
        assert await engine.get_response_curve(OWNER_ID, "tiktok") == []


@pytest.mark.asyncio
class TestBudgetDecisions:

    @pytest.fixture
    def fitted_channels(self):
        return {
            "meta": HillParameters(alpha=10000, beta=1.0, gamma=5000),
            "tiktok": HillParameters(alpha=10000, beta=1.0, gamma=1000),
        }

    async def test_optimize_budget(self, engine, params_store, fitted_channels):
        for channel, params in fitted_channels.items():
            await store_fit(params_store, channel, params)

        allocations = await engine.optimize_budget(OWNER_ID, 1000)

        assert {a.channel: a.spend for a in allocations} == {"meta": 50, "tiktok": 950}

    async def test_optimize_without_fits(self, engine):
        assert await engine.optimize_budget(OWNER_ID, 1000) == []

    async def test_simulate_scenario_accepts_dicts(self, engine, params_store, fitted_channels):
        for channel, params in fitted_channels.items():
            await store_fit(params_store, channel, params)

        result = await engine.simulate_scenario(OWNER_ID, [
            {"channel": "meta", "spend": 5000},
            SpendAllocationSchema(channel="tiktok", spend=1000),
            {"channel": "newsbreak", "spend": 500},
        ])

        assert [a.predicted_revenue for a in result.allocations] == [5000, 5000, 0]
        assert result.total_revenue == 10000
        assert result.total_spend == 6500

    async def test_channel_efficiency(self, engine, session_maker, params_store, fitted_channels):
        for channel, params in fitted_channels.items():
            await store_fit(params_store, channel, params)
        await seed_spend(session_maker, OWNER_ID, [
            {"channel": "meta", "spend_date": date(2026, 3, 30), "spend": 2000.0, "conversion_value": None},
            {"channel": "meta", "spend_date": date(2026, 3, 31), "spend": 4000.0, "conversion_value": None},
        ])

        efficiency = {e.channel: e for e in await engine.get_channel_efficiency(OWNER_ID, as_of=AS_OF)}

        assert efficiency["meta"].current_spend == 3000
        assert efficiency["meta"].headroom == Headroom.MEDIUM
        assert efficiency["tiktok"].current_spend == 0
        assert efficiency["tiktok"].headroom == Headroom.HIGH

    async def test_efficiency_without_fits(self, engine):
        assert await engine.get_channel_efficiency(OWNER_ID, as_of=AS_OF) == []
