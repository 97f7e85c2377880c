"""
Hill saturation response function for per-channel media response.

    f(spend) = alpha * spend^beta / (spend^beta + gamma^beta)

alpha is the revenue ceiling, beta the shape/steepness and gamma the
half-saturation spend, i.e. f(gamma) = alpha / 2.

Both the scalar and the vectorized evaluations use the equivalent form
alpha / (1 + (gamma / spend)^beta). The ratio is exactly 1.0 at
spend == gamma, and overflow of (gamma / spend)^beta just drives the
response to 0 instead of raising.
"""
import math
from dataclasses import dataclass
from typing import Union

import numpy as np

from mmm_engine.utils.exceptions import ParameterValidationError

ArrayLike = Union[float, np.ndarray]


@dataclass(frozen=True)
class HillParameters:
    """Fitted Hill curve parameters for one channel."""
    alpha: float
    beta: float
    gamma: float

    def __post_init__(self):
        for name in ("alpha", "beta", "gamma"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ParameterValidationError(
                    f"Hill parameter {name} must be a positive finite number, got {value!r}"
                )

    def predict(self, spend: float) -> float:
        """Predicted revenue at a daily spend level."""
        return hill_function(spend, self)

    def marginal(self, spend: float) -> float:
        """Incremental revenue per incremental dollar at a daily spend level."""
        return hill_derivative(spend, self)


def _saturation_ratio(spend: float, beta: float, gamma: float) -> float:
    with np.errstate(over="ignore"):
        return float(np.power(np.float64(gamma / spend), beta))


def hill_function(spend: float, params: HillParameters) -> float:
    """Evaluate the Hill curve; zero for non-positive spend."""
    if spend <= 0:
        return 0.0
    ratio = _saturation_ratio(spend, params.beta, params.gamma)
    return params.alpha * (1.0 / (1.0 + ratio))


def hill_derivative(spend: float, params: HillParameters) -> float:
    """
    Derivative of the Hill curve with respect to spend (marginal ROAS).

        alpha * beta * x^(beta-1) * gamma^beta / (x^beta + gamma^beta)^2

    which, with r = (gamma / x)^beta, equals alpha * beta * r / (x * (1 + r)^2).
    The square is split into two bounded factors so large r cannot overflow.
    """
    if spend <= 0:
        return 0.0
    ratio = _saturation_ratio(spend, params.beta, params.gamma)
    if math.isinf(ratio):
        return 0.0
    share = 1.0 / (1.0 + ratio)
    return params.alpha * params.beta * share * (ratio * share) / spend


def hill_response(spend: ArrayLike, alpha: ArrayLike, beta: ArrayLike, gamma: ArrayLike) -> np.ndarray:
    """
    Vectorized Hill evaluation with numpy broadcasting.

    Used by the grid search, where alpha/beta/gamma are broadcast grids and
    spend is the observation vector. Non-positive spends map to 0.
    """
    spend = np.asarray(spend, dtype=float)
    positive = spend > 0
    safe_spend = np.where(positive, spend, 1.0)
    with np.errstate(over="ignore"):
        ratio = np.power(np.asarray(gamma, dtype=float) / safe_spend, beta)
    return np.where(positive, np.asarray(alpha, dtype=float) * (1.0 / (1.0 + ratio)), 0.0)
