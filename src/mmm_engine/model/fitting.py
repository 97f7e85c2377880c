"""
Hill curve fitting for per-channel response curves.

Fits alpha, beta and gamma by minimizing the sum of squared residuals over a
two-phase grid search: a coarse grid spanning the plausible range, followed
by a local refinement around the coarse winner. The grid is evaluated with
numpy broadcasting, one (alpha, beta, gamma, observation) tensor per phase.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional, Sequence, Tuple

import numpy as np

from mmm_engine.config.settings import FittingConfig
from mmm_engine.data.aggregator import ChannelObservation
from mmm_engine.model.hill import HillParameters, hill_response
from mmm_engine.utils.exceptions import InsufficientDataError


@dataclass
class FitResult:
    params: HillParameters
    r_squared: float
    ssr: float
    data_points: int


@dataclass
class ChannelFit:
    """Persisted fit for one (owner, channel)."""
    channel: str
    params: HillParameters
    r_squared: float
    data_points: int
    last_fitted: Optional[datetime] = field(default=None)

    @property
    def alpha(self) -> float:
        return self.params.alpha

    @property
    def beta(self) -> float:
        return self.params.beta

    @property
    def gamma(self) -> float:
        return self.params.gamma

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "channel": self.channel,
            "alpha": self.alpha,
            "beta": self.beta,
            "gamma": self.gamma,
            "r_squared": self.r_squared,
            "data_points": self.data_points,
            "last_fitted": self.last_fitted.isoformat() if self.last_fitted else None
        }


def grid_ssr(spend: np.ndarray,
             revenue: np.ndarray,
             alphas: np.ndarray,
             betas: np.ndarray,
             gammas: np.ndarray) -> np.ndarray:
    """
    Sum of squared residuals for every (alpha, beta, gamma) combination.

    Returns:
        Array of shape (len(alphas), len(betas), len(gammas))
    """
    predicted = hill_response(
        spend[None, None, None, :],
        alphas[:, None, None, None],
        betas[None, :, None, None],
        gammas[None, None, :, None],
    )
    residuals = revenue[None, None, None, :] - predicted
    return np.sum(residuals * residuals, axis=-1)


def r_squared(spend: np.ndarray, revenue: np.ndarray, params: HillParameters) -> float:
    """Coefficient of determination against the mean-revenue baseline."""
    if len(revenue) < 2:
        return 0.0
    predicted = hill_response(spend, params.alpha, params.beta, params.gamma)
    ss_tot = float(np.sum((revenue - revenue.mean()) ** 2))
    if ss_tot == 0:
        return 0.0
    ss_res = float(np.sum((revenue - predicted) ** 2))
    return 1.0 - ss_res / ss_tot


class CurveFitter:
    """Fits Hill response curves to channel observations."""

    def __init__(self, config: Optional[FittingConfig] = None):
        self.config = config or FittingConfig()

    def coarse_grid(self, max_spend: float, max_revenue: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Phase 1 candidate values scaled to the observed maxima."""
        cfg = self.config
        alphas = np.linspace(
            max(cfg.alpha_min_floor, cfg.alpha_min_multiplier * max_revenue),
            max(cfg.alpha_max_floor, cfg.alpha_max_multiplier * max_revenue),
            cfg.coarse_alpha_steps,
        )
        betas = np.asarray(cfg.beta_candidates, dtype=float)
        gammas = np.linspace(
            max(cfg.gamma_min_floor, cfg.gamma_min_multiplier * max_spend),
            max(cfg.gamma_max_floor, cfg.gamma_max_multiplier * max_spend),
            cfg.coarse_gamma_steps,
        )
        return alphas, betas, gammas

    def refine_grid(self, best: HillParameters) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Phase 2 candidate values around the coarse winner."""
        cfg = self.config
        low, high = cfg.refine_alpha_span
        alphas = np.linspace(max(cfg.min_alpha, best.alpha * low), best.alpha * high, cfg.refine_steps)
        betas = np.linspace(
            max(cfg.min_beta, best.beta - cfg.refine_beta_delta),
            min(cfg.max_beta, best.beta + cfg.refine_beta_delta),
            cfg.refine_steps,
        )
        low, high = cfg.refine_gamma_span
        gammas = np.linspace(max(cfg.min_gamma, best.gamma * low), best.gamma * high, cfg.refine_steps)
        return alphas, betas, gammas

    @staticmethod
    def _best_on_grid(ssr: np.ndarray,
                      alphas: np.ndarray,
                      betas: np.ndarray,
                      gammas: np.ndarray) -> Tuple[HillParameters, float]:
        # argmin returns the first minimum in (alpha, beta, gamma) order
        ai, bi, gi = np.unravel_index(int(np.argmin(ssr)), ssr.shape)
        params = HillParameters(
            alpha=float(alphas[ai]), beta=float(betas[bi]), gamma=float(gammas[gi])
        )
        return params, float(ssr[ai, bi, gi])

    def fit(self, observations: Sequence[ChannelObservation]) -> FitResult:
        """
        Fit a Hill curve to observations.

        Raises:
            InsufficientDataError: If fewer than the configured minimum
                number of observations is available
        """
        n = len(observations)
        if n < self.config.min_observations:
            raise InsufficientDataError(
                f"Need at least {self.config.min_observations} observations, got {n}",
                data_points=n,
            )

        spend = np.array([o.spend for o in observations], dtype=float)
        revenue = np.array([o.attributed_revenue for o in observations], dtype=float)

        grid = self.coarse_grid(float(spend.max()), float(revenue.max()))
        best, best_ssr = self._best_on_grid(grid_ssr(spend, revenue, *grid), *grid)

        grid = self.refine_grid(best)
        refined, refined_ssr = self._best_on_grid(grid_ssr(spend, revenue, *grid), *grid)
        if refined_ssr < best_ssr:
            best, best_ssr = refined, refined_ssr

        return FitResult(
            params=best,
            r_squared=r_squared(spend, revenue, best),
            ssr=best_ssr,
            data_points=n,
        )

    def fit_channel(self, channel: str, observations: List[ChannelObservation],
                    fitted_at: Optional[datetime] = None) -> ChannelFit:
        """Fit one channel and package the result for persistence."""
        result = self.fit(observations)
        return ChannelFit(
            channel=channel,
            params=result.params,
            r_squared=result.r_squared,
            data_points=result.data_points,
            last_fitted=fitted_at,
        )
