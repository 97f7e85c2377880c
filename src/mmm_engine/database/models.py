"""
SQLAlchemy database models for the MMM engine.
"""
from datetime import datetime, UTC
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, JSON, Boolean, UniqueConstraint, Index
)

from mmm_engine.database.connection import Base


class ChannelParams(Base):
    """Fitted Hill curve per (owner, channel); replaced on every refit."""
    __tablename__ = "mmm_channel_params"
    __table_args__ = (
        UniqueConstraint("owner_id", "channel", name="uq_mmm_channel_params_owner_channel"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False, index=True)
    channel = Column(String(30), nullable=False)

    # revenue = alpha * spend^beta / (spend^beta + gamma^beta)
    alpha = Column(Float, nullable=False)
    beta = Column(Float, nullable=False)
    gamma = Column(Float, nullable=False)
    r_squared = Column(Float)
    data_points = Column(Integer, nullable=False, default=0)
    last_fitted = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))


class BudgetScenario(Base):
    """Saved what-if budget allocation."""
    __tablename__ = "budget_scenarios"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    total_budget = Column(Float, nullable=False)
    allocations = Column(JSON, nullable=False, default=list)  # [{channel, spend, predicted_revenue}]
    predicted_total_revenue = Column(Float)
    predicted_roas = Column(Float)
    is_optimal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))


class AdSpendDaily(Base):
    """Ad-platform archive rows, written by the ingestion jobs."""
    __tablename__ = "ad_spend_daily"
    __table_args__ = (
        Index("ix_ad_spend_daily_owner_date", "owner_id", "spend_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False)
    channel = Column(String(30), nullable=False)
    spend_date = Column(Date, nullable=False)
    spend = Column(Float, nullable=False, default=0.0)
    conversion_value = Column(Float, nullable=True)


class OrderLedger(Base):
    """Completed-orders ledger, written by the ingestion jobs."""
    __tablename__ = "order_ledger"
    __table_args__ = (
        Index("ix_order_ledger_owner_date", "owner_id", "order_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False)
    order_date = Column(Date, nullable=False)
    order_status = Column(String(30), nullable=False, default="completed")
    is_test = Column(Boolean, nullable=False, default=False)
    subtotal = Column(Float, nullable=True)
    revenue = Column(Float, nullable=True)
