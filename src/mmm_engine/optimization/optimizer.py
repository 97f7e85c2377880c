"""
Budget optimization module for the MMM engine.

Reallocates a fixed daily budget across channels by greedy equal-marginal
hill-climbing: starting from an equal split, a fixed increment is moved from
the channel with the lowest marginal return to the one with the highest until
marginal returns are (approximately) equal. This approximates the
water-filling solution and is not guaranteed to be a global optimum, since
Hill curves are not concave everywhere.
"""
from dataclasses import dataclass
from typing import Dict, Any, List, Mapping, Optional

import structlog

from mmm_engine.config.settings import OptimizationConfig
from mmm_engine.model.hill import HillParameters
from mmm_engine.utils.exceptions import ParameterValidationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class BudgetAllocation:
    channel: str
    spend: float
    predicted_revenue: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "spend": self.spend,
            "predicted_revenue": self.predicted_revenue
        }


@dataclass
class OptimizationSummary:
    allocations: List[BudgetAllocation]
    total_revenue: float
    total_spend: float
    roas: float

    @classmethod
    def from_allocations(cls, allocations: List[BudgetAllocation]) -> "OptimizationSummary":
        total_revenue = sum(a.predicted_revenue for a in allocations)
        total_spend = sum(a.spend for a in allocations)
        return cls(
            allocations=allocations,
            total_revenue=round(total_revenue, 2),
            total_spend=round(total_spend, 2),
            roas=round(total_revenue / total_spend, 4) if total_spend > 0 else 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "total_revenue": self.total_revenue,
            "total_spend": self.total_spend,
            "roas": self.roas
        }


class BudgetOptimizer:
    """Allocates a total budget across channels to maximize predicted revenue."""

    def __init__(self, config: Optional[OptimizationConfig] = None):
        self.config = config or OptimizationConfig()

    def increment_for(self, total_budget: float) -> float:
        """Dollar amount moved per iteration."""
        return max(self.config.min_increment, self.config.increment_fraction * total_budget)

    def optimize(self,
                 channel_params: Mapping[str, HillParameters],
                 total_budget: float) -> List[BudgetAllocation]:
        """
        Optimize the split of total_budget across channels.

        Args:
            channel_params: Fitted parameters keyed by channel, iterated in order
            total_budget: Daily budget to allocate

        Returns:
            One allocation per channel, spend and revenue rounded to cents
        """
        if total_budget < 0:
            raise ParameterValidationError(f"total_budget must be non-negative, got {total_budget}")

        channels = list(channel_params.keys())
        if not channels:
            return []

        allocation: Dict[str, float] = {ch: total_budget / len(channels) for ch in channels}
        increment = self.increment_for(total_budget)

        iterations = 0
        for iterations in range(1, self.config.max_iterations + 1):
            lowest_marginal = float("inf")
            lowest_channel = None
            highest_marginal = float("-inf")
            highest_channel = None

            for ch in channels:
                spend = allocation[ch]
                marginal = channel_params[ch].marginal(spend)
                if marginal < lowest_marginal and spend > increment:
                    lowest_marginal = marginal
                    lowest_channel = ch
                if marginal > highest_marginal:
                    highest_marginal = marginal
                    highest_channel = ch

            if lowest_channel is None or highest_channel is None or lowest_channel == highest_channel:
                break
            if highest_marginal - lowest_marginal < self.config.convergence_tolerance:
                break

            allocation[lowest_channel] -= increment
            allocation[highest_channel] += increment

        logger.debug(
            "Budget optimization finished",
            total_budget=total_budget,
            increment=increment,
            iterations=iterations,
            channels=len(channels),
        )

        return [
            BudgetAllocation(
                channel=ch,
                spend=round(allocation[ch], 2),
                predicted_revenue=round(channel_params[ch].predict(allocation[ch]), 2),
            )
            for ch in channels
        ]
