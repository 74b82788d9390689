from dataclasses import dataclass
from typing import List, Sequence

from src.compliance.schemas import ValidationResult
from src.compliance.validator import latest_results, summary_score
from src.config import settings
from src.core.exceptions import ApprovalBlockedError


@dataclass(frozen=True)
class ApprovalPolicy:
    block_on_critical: bool = True
    min_score: float = 0.0

    @classmethod
    def from_settings(cls) -> "ApprovalPolicy":
        return cls(
            block_on_critical=settings.SOW_APPROVAL_BLOCK_ON_CRITICAL,
            min_score=settings.SOW_APPROVAL_MIN_SCORE,
        )

    def blocking_reasons(self, results: Sequence[ValidationResult]) -> List[str]:
        current = latest_results(results)
        reasons = []
        if self.block_on_critical:
            for r in current:
                if r.critical and not r.passed:
                    reasons.append(f"critical check '{r.validator}' failed (score {r.score:g})")
        score = summary_score(current)
        if self.min_score > 0 and score < self.min_score:
            reasons.append(f"validation score {score:g} is below the required {self.min_score:g}")
        return reasons

    def enforce(self, results: Sequence[ValidationResult]) -> None:
        reasons = self.blocking_reasons(results)
        if reasons:
            raise ApprovalBlockedError(reasons)
