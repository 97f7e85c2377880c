"""
Response curve generation for fitted Hill curves.

Produces evenly spaced (spend, predicted revenue) points for plotting a
channel's diminishing-returns curve.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from mmm_engine.config.settings import ResponseCurveConfig
from mmm_engine.model.hill import HillParameters, hill_function
from mmm_engine.utils.exceptions import ParameterValidationError


@dataclass(frozen=True)
class ResponseCurvePoint:
    spend: float
    predicted_revenue: float

    def to_dict(self) -> Dict[str, float]:
        return {"spend": self.spend, "predicted_revenue": self.predicted_revenue}


class ResponseCurveGenerator:
    """Samples response curves from fitted parameters."""

    def __init__(self, config: Optional[ResponseCurveConfig] = None):
        self.config = config or ResponseCurveConfig()

    def generate_response_curve(self,
                                params: Optional[HillParameters],
                                min_spend: Optional[float] = None,
                                max_spend: Optional[float] = None,
                                steps: Optional[int] = None) -> List[ResponseCurvePoint]:
        """
        Generate a response curve.

        Args:
            params: Fitted parameters, or None when the channel has no model
            min_spend: Lowest spend level (default from config)
            max_spend: Highest spend level (default from config)
            steps: Number of intervals, at most the configured maximum;
                steps + 1 points are returned

        Returns:
            Points rounded to cents, empty when params is None
        """
        min_spend = self.config.default_min_spend if min_spend is None else min_spend
        max_spend = self.config.default_max_spend if max_spend is None else max_spend
        steps = self.config.default_steps if steps is None else steps

        if steps < 1:
            raise ParameterValidationError(f"steps must be at least 1, got {steps}")
        if steps > self.config.max_steps:
            raise ParameterValidationError(
                f"steps must not exceed {self.config.max_steps}, got {steps}"
            )
        if max_spend < min_spend:
            raise ParameterValidationError(
                f"max_spend ({max_spend}) must not be below min_spend ({min_spend})"
            )
        if params is None:
            return []

        steps = int(steps)
        spend_levels = min_spend + (max_spend - min_spend) * np.arange(steps + 1) / steps

        return [
            ResponseCurvePoint(
                spend=round(float(spend), 2),
                predicted_revenue=round(hill_function(float(spend), params), 2),
            )
            for spend in spend_levels
        ]
