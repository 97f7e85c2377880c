"""
Daily observation aggregation for MMM curve fitting.
Turns per-channel ad spend and daily revenue into per-channel
(spend, attributed revenue) observations.
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

import pandas as pd


@dataclass(frozen=True)
class ChannelObservation:
    date: date
    spend: float
    attributed_revenue: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "spend": self.spend,
            "attributed_revenue": self.attributed_revenue
        }


def _normalize_spend_rows(spend_rows: pd.DataFrame) -> pd.DataFrame:
    """Coerce raw archive rows into (date, channel, spend, conversion_value)."""
    df = spend_rows.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df["spend"] = pd.to_numeric(df["spend"], errors="coerce").fillna(0.0)
    if "conversion_value" not in df.columns:
        df["conversion_value"] = 0.0
    df["conversion_value"] = pd.to_numeric(df["conversion_value"], errors="coerce").fillna(0.0)
    return df


def _daily_order_revenue(order_revenue: pd.DataFrame) -> pd.Series:
    if order_revenue is None or order_revenue.empty:
        return pd.Series(dtype=float, name="order_revenue")
    df = order_revenue.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df["revenue"] = pd.to_numeric(df["revenue"], errors="coerce").fillna(0.0)
    return df.groupby("date")["revenue"].sum().rename("order_revenue")


def daily_revenue(spend_rows: pd.DataFrame, order_revenue: pd.DataFrame,
                  platform_channels: Optional[Iterable[str]] = None) -> pd.Series:
    """
    Total revenue per day.

    The completed-orders ledger and the platform-reported conversion value
    are reconciled by taking the larger of the two for each day. Only the
    conversion value of platform_channels counts (every channel when None).
    """
    spend = _normalize_spend_rows(spend_rows)
    if platform_channels is not None:
        spend = spend[spend["channel"].isin(list(platform_channels))]
    platform = spend.groupby("date")["conversion_value"].sum().rename("platform_revenue")
    orders = _daily_order_revenue(order_revenue)
    combined = pd.concat([orders, platform], axis=1).fillna(0.0)
    return combined.max(axis=1).rename("revenue")


def attribute_revenue(spend_rows: pd.DataFrame,
                      order_revenue: pd.DataFrame,
                      channel: str,
                      platform_channels: Optional[Iterable[str]] = None) -> List[ChannelObservation]:
    """
    Build a channel's daily observations using proportional attribution.

    attributed_revenue = day_revenue * channel_spend / total_spend

    Args:
        spend_rows: Archive rows for all channels with columns
            date, channel, spend and optionally conversion_value
        order_revenue: Completed-order revenue with columns date, revenue
        channel: Channel to build observations for
        platform_channels: Channels whose conversion value counts as
            platform revenue, every channel when None

    Returns:
        Observations sorted by date, one per day with positive channel spend
    """
    if spend_rows is None or spend_rows.empty:
        return []

    spend = _normalize_spend_rows(spend_rows)
    channel_daily = (
        spend.groupby(["date", "channel"])["spend"].sum()
        .unstack("channel", fill_value=0.0)
    )
    if channel not in channel_daily.columns:
        return []

    frame = pd.DataFrame({
        "spend": channel_daily[channel],
        "total_spend": channel_daily.sum(axis=1),
    })
    revenue = daily_revenue(spend_rows, order_revenue, platform_channels)
    frame["revenue"] = revenue.reindex(frame.index, fill_value=0.0)

    # Attribution is undefined on days without spend
    frame = frame[(frame["spend"] > 0) & (frame["total_spend"] > 0)].sort_index()
    frame["attributed_revenue"] = frame["revenue"] * (frame["spend"] / frame["total_spend"])

    return [
        ChannelObservation(
            date=row.Index,
            spend=float(row.spend),
            attributed_revenue=float(row.attributed_revenue)
        )
        for row in frame.itertuples()
    ]


def average_daily_spend(spend_rows: pd.DataFrame) -> Dict[str, float]:
    """Mean daily spend per channel over the days present in the archive rows."""
    if spend_rows is None or spend_rows.empty:
        return {}
    spend = _normalize_spend_rows(spend_rows)
    daily = spend.groupby(["channel", "date"])["spend"].sum()
    return {channel: float(value) for channel, value in daily.groupby(level="channel").mean().items()}
