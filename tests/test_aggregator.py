"""
Daily observation aggregation and proportional revenue attribution tests.
"""
import pytest
import pandas as pd
from datetime import date

from mmm_engine.data.aggregator import attribute_revenue, average_daily_spend, daily_revenue


@pytest.fixture
def spend_rows():
    """Three days of archive rows across two channels."""
    return pd.DataFrame([
        # Day 1: meta 100, tiktok 300; tiktok reports 200 conversion value
        {"date": "2026-03-01", "channel": "meta", "spend": 100.0, "conversion_value": None},
        {"date": "2026-03-01", "channel": "tiktok", "spend": 300.0, "conversion_value": 200.0},
        # Day 2: meta idle, tiktok reports more than the order ledger
        {"date": "2026-03-02", "channel": "meta", "spend": 0.0, "conversion_value": None},
        {"date": "2026-03-02", "channel": "tiktok", "spend": 100.0, "conversion_value": 400.0},
        # Day 3: meta split over two ad rows, no revenue at all
        {"date": "2026-03-03", "channel": "meta", "spend": 150.0, "conversion_value": None},
        {"date": "2026-03-03", "channel": "meta", "spend": 50.0, "conversion_value": None},
    ])


@pytest.fixture
def order_revenue():
    return pd.DataFrame([
        {"date": "2026-03-01", "revenue": 1000.0},
        {"date": "2026-03-02", "revenue": 50.0},
    ])


class TestDailyRevenue:

    def test_takes_larger_of_orders_and_platform(self, spend_rows, order_revenue):
        revenue = daily_revenue(spend_rows, order_revenue)

        assert revenue[date(2026, 3, 1)] == 1000.0
        assert revenue[date(2026, 3, 2)] == 400.0
        assert revenue[date(2026, 3, 3)] == 0.0

    def test_platform_only_when_ledger_empty(self, spend_rows):
        revenue = daily_revenue(spend_rows, pd.DataFrame(columns=["date", "revenue"]))
        assert revenue[date(2026, 3, 1)] == 200.0


class TestAttribution:

    def test_proportional_split(self, spend_rows, order_revenue):
        meta = attribute_revenue(spend_rows, order_revenue, "meta")
        tiktok = attribute_revenue(spend_rows, order_revenue, "tiktok")

        assert [o.date for o in meta] == [date(2026, 3, 1), date(2026, 3, 3)]
        assert meta[0].spend == 100.0
        assert meta[0].attributed_revenue == pytest.approx(250.0)
        assert meta[1].spend == 200.0
        assert meta[1].attributed_revenue == 0.0

        assert [o.date for o in tiktok] == [date(2026, 3, 1), date(2026, 3, 2)]
        assert tiktok[0].attributed_revenue == pytest.approx(750.0)
        assert tiktok[1].attributed_revenue == pytest.approx(400.0)

    def test_shares_sum_to_day_revenue(self, spend_rows, order_revenue):
        meta = attribute_revenue(spend_rows, order_revenue, "meta")
        tiktok = attribute_revenue(spend_rows, order_revenue, "tiktok")

        day_one = [o for o in meta + tiktok if o.date == date(2026, 3, 1)]
        assert sum(o.attributed_revenue for o in day_one) == pytest.approx(1000.0)

    def test_platform_revenue_limited_to_given_channels(self, order_revenue):
        rows = pd.DataFrame([
            {"date": "2026-03-01", "channel": "meta", "spend": 100.0, "conversion_value": 9000.0},
            {"date": "2026-03-01", "channel": "tiktok", "spend": 100.0, "conversion_value": 1500.0},
        ])

        everything = daily_revenue(rows, order_revenue)
        tiktok_only = daily_revenue(rows, order_revenue, platform_channels=("tiktok", "newsbreak"))
        assert everything[date(2026, 3, 1)] == 10500.0
        assert tiktok_only[date(2026, 3, 1)] == 1500.0

        meta = attribute_revenue(rows, order_revenue, "meta", platform_channels=("tiktok", "newsbreak"))
        assert meta[0].attributed_revenue == pytest.approx(750.0)

    def test_unknown_channel_has_no_observations(self, spend_rows, order_revenue):
        assert attribute_revenue(spend_rows, order_revenue, "newsbreak") == []

    def test_empty_archive(self, order_revenue):
        empty = pd.DataFrame(columns=["date", "channel", "spend", "conversion_value"])
        assert attribute_revenue(empty, order_revenue, "meta") == []

    def test_missing_conversion_value_column(self, order_revenue):
        rows = pd.DataFrame([
            {"date": "2026-03-01", "channel": "meta", "spend": 100.0},
            {"date": "2026-03-01", "channel": "tiktok", "spend": 100.0},
        ])
        meta = attribute_revenue(rows, order_revenue, "meta")
        assert meta[0].attributed_revenue == pytest.approx(500.0)

    def test_to_dict(self, spend_rows, order_revenue):
        observation = attribute_revenue(spend_rows, order_revenue, "meta")[0]
        assert observation.to_dict() == {
            "date": "2026-03-01",
            "spend": 100.0,
            "attributed_revenue": pytest.approx(250.0),
        }


class TestAverageDailySpend:

    def test_mean_over_days_present(self, spend_rows):
        averages = average_daily_spend(spend_rows)

        # meta: (100 + 0 + 200) / 3 days
        assert averages["meta"] == pytest.approx(100.0)
        assert averages["tiktok"] == pytest.approx(200.0)

    def test_empty(self):
        assert average_daily_spend(pd.DataFrame(columns=["date", "channel", "spend"])) == {}
