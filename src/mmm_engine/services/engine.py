"""
MMM engine facade.

Wires the observation and parameter stores to the curve fitter, response
predictor, efficiency classifier, budget optimizer and scenario simulator.
CPU-bound work (grid search, greedy reallocation) runs in a worker thread so
callers on an event loop are not blocked.
"""
import asyncio
from datetime import date, datetime, UTC
from typing import Dict, Any, Iterable, List, Mapping, Optional, Union

import structlog

from mmm_engine.config.settings import Settings, settings as default_settings
from mmm_engine.model.efficiency import ChannelEfficiency, summarize_efficiency
from mmm_engine.model.fitting import ChannelFit, CurveFitter
from mmm_engine.model.hill import HillParameters
from mmm_engine.model.response_curves import ResponseCurveGenerator, ResponseCurvePoint
from mmm_engine.optimization.optimizer import BudgetAllocation, BudgetOptimizer
from mmm_engine.optimization.scenarios import ScenarioSimulator, SimulationResult, SpendAllocationSchema
from mmm_engine.services.ports import ObservationStore, ParamsStore
from mmm_engine.utils.exceptions import InsufficientDataError

logger = structlog.get_logger()

AllocationInput = Union[SpendAllocationSchema, Mapping[str, Any]]


class MMMEngine:
    """Fits, evaluates and optimizes per-channel Hill response curves."""

    def __init__(self,
                 observations: ObservationStore,
                 params: ParamsStore,
                 config: Optional[Settings] = None):
        self.observations = observations
        self.params = params
        self.settings = config or default_settings
        self.fitter = CurveFitter(self.settings.fitting)
        self.curve_generator = ResponseCurveGenerator(self.settings.response_curve)
        self.optimizer = BudgetOptimizer(self.settings.optimization)
        self.simulator = ScenarioSimulator()

    async def _channel_params(self, owner_id: str) -> Dict[str, HillParameters]:
        fits = await self.params.list_for_owner(owner_id)
        return {fit.channel: fit.params for fit in fits}

    async def fit_channel_curves(self, owner_id: str, as_of: Optional[date] = None) -> List[ChannelFit]:
        """
        Refit every configured channel for an owner.

        Channels with too little data are skipped; a failure on one channel
        is logged and the remaining channels are still fitted.
        """
        results = []
        window_days = self.settings.fitting.window_days

        for channel in self.settings.fitting.channels:
            try:
                observations = await self.observations.get(owner_id, channel, window_days, as_of)
                fit = await asyncio.to_thread(
                    self.fitter.fit_channel, channel, observations, datetime.now(UTC)
                )
                logger.info(
                    "Fitted response curve",
                    owner_id=owner_id,
                    channel=channel,
                    alpha=fit.alpha,
                    beta=fit.beta,
                    gamma=fit.gamma,
                    r_squared=fit.r_squared,
                    data_points=fit.data_points
                )
                await self.params.upsert(owner_id, fit)
                results.append(fit)
            except InsufficientDataError as e:
                logger.info(
                    "Insufficient data for curve fitting",
                    owner_id=owner_id, channel=channel, data_points=e.data_points
                )
            except Exception as e:
                logger.error(
                    "Failed to fit curve",
                    owner_id=owner_id, channel=channel, error=str(e), exc_info=True
                )

        return results

    async def fit_all_owners_curves(self, owner_ids: Iterable[str],
                                    as_of: Optional[date] = None) -> Dict[str, int]:
        """Batch entry point for a scheduler; owner ids are supplied by the caller."""
        owners_processed = 0
        total_channels_fit = 0

        for owner_id in owner_ids:
            owners_processed += 1
            try:
                fitted = await self.fit_channel_curves(owner_id, as_of)
                total_channels_fit += len(fitted)
            except Exception as e:
                logger.error("Failed to fit curves for owner", owner_id=owner_id, error=str(e), exc_info=True)

        logger.info(
            "Curve fitting batch completed",
            owners_processed=owners_processed,
            total_channels_fit=total_channels_fit
        )
        return {"owners_processed": owners_processed, "total_channels_fit": total_channels_fit}

    async def list_channel_fits(self, owner_id: str) -> List[ChannelFit]:
        return await self.params.list_for_owner(owner_id)

    async def predict_revenue(self, owner_id: str, channel: str, spend: float) -> float:
        fit = await self.params.get(owner_id, channel)
        if fit is None:
            return 0.0
        return fit.params.predict(spend)

    async def get_response_curve(self, owner_id: str, channel: str,
                                 min_spend: Optional[float] = None,
                                 max_spend: Optional[float] = None,
                                 steps: Optional[int] = None) -> List[ResponseCurvePoint]:
        fit = await self.params.get(owner_id, channel)
        return self.curve_generator.generate_response_curve(
            fit.params if fit else None, min_spend, max_spend, steps
        )

    async def optimize_budget(self, owner_id: str, total_budget: float) -> List[BudgetAllocation]:
        channel_params = await self._channel_params(owner_id)
        allocations = await asyncio.to_thread(self.optimizer.optimize, channel_params, total_budget)
        logger.info(
            "Budget optimized",
            owner_id=owner_id,
            total_budget=total_budget,
            channels=len(allocations)
        )
        return allocations

    async def simulate_scenario(self, owner_id: str,
                                allocations: Iterable[AllocationInput]) -> SimulationResult:
        requested = [
            a if isinstance(a, SpendAllocationSchema) else SpendAllocationSchema.model_validate(a)
            for a in allocations
        ]
        channel_params = await self._channel_params(owner_id)
        return self.simulator.simulate(channel_params, requested)

    async def get_channel_efficiency(self, owner_id: str, as_of: Optional[date] = None) -> List[ChannelEfficiency]:
        fits = await self.params.list_for_owner(owner_id)
        if not fits:
            return []
        current_spend = await self.observations.current_spend(
            owner_id, self.settings.efficiency.current_spend_window_days, as_of
        )
        return summarize_efficiency(fits, current_spend, self.settings.efficiency)
