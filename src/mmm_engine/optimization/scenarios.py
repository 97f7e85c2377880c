"""
Scenario simulation and saved-scenario records.

Simulation is pure evaluation of a user-chosen allocation against the fitted
curves; nothing is searched or persisted here.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from mmm_engine.model.hill import HillParameters
from mmm_engine.optimization.optimizer import BudgetAllocation


class SpendAllocationSchema(BaseModel):
    channel: str = Field(..., description="Channel name")
    spend: float = Field(..., description="Daily spend for the channel")


class ScenarioSchema(BaseModel):
    name: str = Field(..., max_length=100, description="Scenario name")
    total_budget: float = Field(..., description="Total daily budget")
    is_optimal: bool = Field(False, description="Whether allocations came from the optimizer")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Scenario name is required")
        return v.strip()

    @field_validator("total_budget")
    @classmethod
    def validate_total_budget(cls, v):
        if v <= 0:
            raise ValueError("Total budget must be positive")
        return v


@dataclass
class SimulationResult:
    allocations: List[BudgetAllocation]
    total_revenue: float
    total_spend: float
    roas: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "total_revenue": self.total_revenue,
            "total_spend": self.total_spend,
            "roas": self.roas
        }


@dataclass
class Scenario:
    name: str
    total_budget: float
    allocations: List[BudgetAllocation]
    predicted_total_revenue: float
    predicted_roas: float
    is_optimal: bool = False
    created_at: Optional[datetime] = field(default=None)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "total_budget": self.total_budget,
            "allocations": [a.to_dict() for a in self.allocations],
            "predicted_total_revenue": self.predicted_total_revenue,
            "predicted_roas": self.predicted_roas,
            "is_optimal": self.is_optimal,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }


class ScenarioSimulator:
    """Evaluates arbitrary allocations against fitted curves."""

    def simulate(self,
                 channel_params: Mapping[str, HillParameters],
                 allocations: Iterable[SpendAllocationSchema]) -> SimulationResult:
        results = []
        total_revenue = 0.0
        total_spend = 0.0

        for alloc in allocations:
            params = channel_params.get(alloc.channel)
            predicted = params.predict(alloc.spend) if params else 0.0
            results.append(BudgetAllocation(
                channel=alloc.channel,
                spend=alloc.spend,
                predicted_revenue=round(predicted, 2),
            ))
            total_revenue += predicted
            total_spend += alloc.spend

        return SimulationResult(
            allocations=results,
            total_revenue=round(total_revenue, 2),
            total_spend=round(total_spend, 2),
            roas=round(total_revenue / total_spend, 4) if total_spend > 0 else 0.0,
        )


def build_scenario(name: str, total_budget: float, allocations: List[BudgetAllocation],
                   is_optimal: bool = False) -> Scenario:
    """Validate and assemble a scenario record from evaluated allocations."""
    schema = ScenarioSchema(name=name, total_budget=total_budget, is_optimal=is_optimal)
    total_revenue = sum(a.predicted_revenue for a in allocations)
    total_spend = sum(a.spend for a in allocations)
    return Scenario(
        name=schema.name,
        total_budget=schema.total_budget,
        allocations=list(allocations),
        predicted_total_revenue=round(total_revenue, 2),
        predicted_roas=round(total_revenue / total_spend, 4) if total_spend > 0 else 0.0,
        is_optimal=schema.is_optimal,
    )
