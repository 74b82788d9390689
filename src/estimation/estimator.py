import logging
from datetime import date, datetime, timedelta
from typing import Optional

from src.briefs.schemas import CostMethodology, NormalizedBrief, ProjectType
from src.config import settings
from src.estimation.methodologies import METHODOLOGIES
from src.estimation.schemas import (
    ConfidenceFactor,
    ConfidenceScore,
    CostEstimate,
    MarketRateReference,
    MarketRateSnapshot,
)
from src.shared.models import utcnow
from src.sow.schemas import ParsedSoWDraft, ResourceType

logger = logging.getLogger(__name__)

CONFIDENCE_WEIGHTS = {
    "data_quality": 0.30,
    "market_stability": 0.25,
    "project_complexity": 0.25,
    "time_horizon": 0.20,
}

# Confidence before special requirements: harder project types score lower
COMPLEXITY_BASE = {
    ProjectType.BATHROOM_RENOVATION: 0.8,
    ProjectType.KITCHEN_RENOVATION: 0.8,
    ProjectType.CONSERVATORY: 0.8,
    ProjectType.GARAGE_CONVERSION: 0.75,
    ProjectType.ROOF_REPLACEMENT: 0.75,
    ProjectType.REAR_EXTENSION: 0.7,
    ProjectType.SIDE_EXTENSION: 0.7,
    ProjectType.LOFT_CONVERSION: 0.65,
    ProjectType.OTHER: 0.6,
    ProjectType.BASEMENT_CONVERSION: 0.5,
}

# Keyword families used to measure how varied the special requirements are
REQUIREMENT_FAMILIES = {
    "access": ("access", "wheelchair", "step-free", "lift", "mobility"),
    "heritage": ("heritage", "listed", "period", "conservation", "original"),
    "structural": ("steel", "beam", "load", "knock", "open plan", "remove wall", "underpin"),
    "services": ("heating", "underfloor", "solar", "heat pump", "ventilation", "electric", "smart"),
    "acoustic": ("acoustic", "soundproof", "noise"),
    "environmental": ("sustainab", "eco", "recycled", "passivhaus", "low carbon"),
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class CostEstimator:
    """Builds a ``CostEstimate`` for a parsed draft under one methodology.

    The market-rate snapshot is always passed in; the estimator never fetches
    rates itself and never trusts the model's own cost figure.
    """

    def __init__(self, validity_days: Optional[int] = None):
        self.validity_days = validity_days if validity_days is not None else settings.COST_ESTIMATE_VALIDITY_DAYS

    def estimate(
        self,
        draft: ParsedSoWDraft,
        methodology: CostMethodology,
        brief: NormalizedBrief,
        snapshot: MarketRateSnapshot,
        now: Optional[datetime] = None,
    ) -> CostEstimate:
        now = now or utcnow()
        method = METHODOLOGIES[methodology]
        lines = method.build_lines(draft, brief, snapshot)
        total = round(sum(line.total_cost for line in lines), 2)

        confidence = self._confidence(draft, brief, snapshot, method.data_quality_bonus, methodology, now)
        notes = None
        if not lines:
            notes = "No priced quantities were available; estimate is empty"
            logger.info(f"Empty {methodology.value} estimate for project {brief.project_id}")

        return CostEstimate(
            methodology=methodology,
            currency=snapshot.currency,
            total_cost=total,
            breakdown=lines,
            confidence=confidence,
            market_rates=MarketRateReference(
                snapshot_id=snapshot.snapshot_id,
                region=snapshot.region,
                source=snapshot.source,
                fetched_at=snapshot.fetched_at,
            ),
            valid_from=now,
            valid_until=now + timedelta(days=self.validity_days),
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def _confidence(self, draft, brief, snapshot, bonus, methodology, now) -> ConfidenceScore:
        data_quality = self.data_quality(draft, bonus)
        market_stability = self.market_stability(snapshot, now)
        project_complexity = self.project_complexity(brief)
        time_horizon = self.time_horizon(brief, now.date())

        scores = {
            "data_quality": data_quality,
            "market_stability": market_stability,
            "project_complexity": project_complexity,
            "time_horizon": time_horizon,
        }
        overall = round(_clamp(sum(scores[k] * w for k, w in CONFIDENCE_WEIGHTS.items())), 3)

        descriptions = {
            "data_quality": "Share of draft quantities and rates that were supplied",
            "market_stability": f"Age of market-rate snapshot {snapshot.snapshot_id}",
            "project_complexity": f"{brief.project_type.value} with {len(brief.special_requirements)} special requirement(s)",
            "time_horizon": "Time until the preferred start date",
        }
        return ConfidenceScore(
            overall=overall,
            explanation=self._explanation(overall, methodology),
            factors=[
                ConfidenceFactor(factor=k, score=round(scores[k], 3), weight=w, description=descriptions[k])
                for k, w in CONFIDENCE_WEIGHTS.items()
            ],
            **{k: round(v, 3) for k, v in scores.items()},
        )

    @staticmethod
    def data_quality(draft: ParsedSoWDraft, bonus: float = 0.0) -> float:
        total = 0
        complete = 0
        for category in draft.materials.categories:
            for item in category.items:
                total += 1
                if item.quantity > 0 and item.unit_cost > 0:
                    complete += 1
        for phase in draft.work_phases:
            for res in phase.resources:
                if res.type == ResourceType.MATERIALS:
                    continue
                total += 1
                if res.quantity > 0 and res.cost > 0:
                    complete += 1
        if total == 0:
            return _clamp(0.2 + bonus)
        return _clamp(0.3 + 0.6 * complete / total + bonus)

    @staticmethod
    def market_stability(snapshot: MarketRateSnapshot, now: datetime) -> float:
        age_days = (now - snapshot.fetched_at).total_seconds() / 86400
        if age_days <= 7:
            return 0.85
        if age_days <= 30:
            return 0.75
        if age_days <= 90:
            return 0.6
        return 0.45

    @staticmethod
    def project_complexity(brief: NormalizedBrief) -> float:
        base = COMPLEXITY_BASE.get(brief.project_type, 0.6)
        requirements = [r.lower() for r in brief.special_requirements]
        families = {
            family
            for family, keywords in REQUIREMENT_FAMILIES.items()
            for req in requirements
            if any(k in req for k in keywords)
        }
        penalty = min(0.4, 0.04 * len(requirements) + 0.03 * len(families))
        return _clamp(base - penalty, 0.3, 1.0)

    @staticmethod
    def time_horizon(brief: NormalizedBrief, today: date) -> float:
        start = brief.timeline.start_date if brief.timeline else None
        if start is None:
            return 0.6
        months_ahead = (start - today).days / 30
        if months_ahead < 1:
            return 0.9
        if months_ahead < 3:
            return 0.8
        if months_ahead < 6:
            return 0.7
        if months_ahead < 12:
            return 0.6
        return 0.5

    @staticmethod
    def _explanation(overall: float, methodology: CostMethodology) -> str:
        if overall > 0.8:
            return (f"High confidence estimate using {methodology.value} methodology with recent "
                    "market data and well-defined project parameters.")
        if overall > 0.6:
            return (f"Good confidence estimate using {methodology.value} methodology. Some "
                    "uncertainty due to project complexity or market conditions.")
        if overall > 0.4:
            return (f"Moderate confidence estimate using {methodology.value} methodology. "
                    "Consider obtaining more detailed quantities or market data.")
        return (f"Low confidence estimate using {methodology.value} methodology. "
                "Significant uncertainty; a detailed survey and measured quantities are recommended.")
