from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import Field, model_validator

from src.briefs.schemas import CostMethodology
from src.shared.schemas import CamelModel, FrozenCamelModel

RECONCILIATION_TOLERANCE = 0.005


class MarketRateSnapshot(FrozenCamelModel):
    """Rates fetched together at one point in time. Never mutated after fetch."""
    snapshot_id: str
    region: str
    source: str
    fetched_at: datetime
    currency: str = "GBP"
    regional_multiplier: float = 1.0
    quality_multipliers: Dict[str, float]
    # NRM1: project type -> element -> rate per m2 of floor area
    element_rates: Dict[str, Dict[str, float]]
    default_element_rate: float = 500.0
    demolition_rate: float = 50.0
    temporary_works_rate: float = 25.0
    professional_fee_percentages: Dict[str, float]
    other_development_percentage: float = 5.0
    # NRM2: keyword -> unit rate for draft items that arrive unpriced
    material_rates: Dict[str, float]
    labour_day_rate: float = 220.0
    preliminaries_percentage: float = 12.0
    overheads_profit_percentage: float = 15.0
    vat_percentage: float = 20.0


class MarketRateReference(CamelModel):
    snapshot_id: str
    region: str
    source: str
    fetched_at: datetime


class CostBreakdownLine(CamelModel):
    category: str
    description: str
    quantity: float
    unit: str
    unit_rate: float
    total_cost: float
    source: str = "market-rate"
    confidence: float = Field(default=0.7, ge=0, le=1)


class ConfidenceFactor(CamelModel):
    factor: str
    score: float
    weight: float
    description: str


class ConfidenceScore(CamelModel):
    overall: float = Field(ge=0, le=1)
    data_quality: float = Field(ge=0, le=1)
    market_stability: float = Field(ge=0, le=1)
    project_complexity: float = Field(ge=0, le=1)
    time_horizon: float = Field(ge=0, le=1)
    explanation: str
    factors: List[ConfidenceFactor] = Field(default_factory=list)


class CostEstimate(CamelModel):
    id: UUID = Field(default_factory=uuid4)
    methodology: CostMethodology
    currency: str = "GBP"
    total_cost: float
    breakdown: List[CostBreakdownLine] = Field(default_factory=list)
    confidence: ConfidenceScore
    market_rates: MarketRateReference
    valid_from: datetime
    valid_until: datetime
    version: int = 1
    status: str = "draft"
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _total_reconciles(self):
        expected = round(sum(line.total_cost for line in self.breakdown), 2)
        if abs(expected - self.total_cost) > RECONCILIATION_TOLERANCE:
            raise ValueError(
                f"totalCost {self.total_cost} does not equal the sum of breakdown lines {expected}"
            )
        return self
