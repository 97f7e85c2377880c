"""
Channel efficiency metrics relative to the fitted saturation point.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Iterable, List, Mapping, Optional

from mmm_engine.config.settings import EfficiencyConfig
from mmm_engine.model.fitting import ChannelFit
from mmm_engine.model.hill import HillParameters


class Headroom(str, Enum):
    HIGH = "high"        # well below saturation
    MEDIUM = "medium"
    LOW = "low"          # deep into diminishing returns


@dataclass
class ChannelEfficiency:
    channel: str
    current_spend: float
    predicted_revenue: float
    marginal_roas: float
    headroom: Headroom

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "current_spend": self.current_spend,
            "predicted_revenue": self.predicted_revenue,
            "marginal_roas": self.marginal_roas,
            "headroom": self.headroom.value
        }


def classify_headroom(current_spend: float, gamma: float,
                      config: Optional[EfficiencyConfig] = None) -> Headroom:
    """Compare current spend to the half-saturation point; boundaries are strict."""
    config = config or EfficiencyConfig()
    if current_spend < gamma * config.high_headroom_ratio:
        return Headroom.HIGH
    if current_spend < gamma * config.low_headroom_ratio:
        return Headroom.MEDIUM
    return Headroom.LOW


def channel_efficiency(channel: str, params: HillParameters, current_spend: float,
                       config: Optional[EfficiencyConfig] = None) -> ChannelEfficiency:
    return ChannelEfficiency(
        channel=channel,
        current_spend=round(current_spend, 2),
        predicted_revenue=round(params.predict(current_spend), 2),
        marginal_roas=round(params.marginal(current_spend), 4),
        headroom=classify_headroom(current_spend, params.gamma, config),
    )


def summarize_efficiency(fits: Iterable[ChannelFit],
                         current_spend: Mapping[str, float],
                         config: Optional[EfficiencyConfig] = None) -> List[ChannelEfficiency]:
    """Efficiency for every fitted channel; channels without recent spend count as 0."""
    return [
        channel_efficiency(fit.channel, fit.params, current_spend.get(fit.channel, 0.0), config)
        for fit in fits
    ]
