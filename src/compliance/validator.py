import logging
from collections import Counter
from typing import List, Optional, Sequence

from src.briefs.schemas import NormalizedBrief
from src.compliance.checkers import CHECKERS, Checker
from src.compliance.schemas import (
    ComplianceCheck,
    ComplianceStatus,
    IssueSeverity,
    ValidationIssue,
    ValidationResult,
    ValidationSummary,
)
from src.sow.schemas import ParsedSoWDraft

logger = logging.getLogger(__name__)


class ComplianceValidator:
    """Runs every registered checker, in order, against a parsed draft."""

    def __init__(self, checkers: Optional[Sequence[Checker]] = None, pass_score: float = 70.0):
        self.checkers = list(checkers) if checkers is not None else list(CHECKERS)
        self.pass_score = pass_score

    def validate(self, draft: ParsedSoWDraft, brief: NormalizedBrief) -> List[ValidationResult]:
        results = []
        for chk in self.checkers:
            try:
                result = chk.run(draft, brief)
            except Exception as e:
                logger.error("Checker %s failed: %s", chk.name, e)
                result = ValidationResult(
                    validator=chk.name,
                    validation_type=chk.validation_type,
                    critical=chk.critical,
                    passed=False,
                    score=0,
                    issues=[ValidationIssue(
                        severity=IssueSeverity.CRITICAL if chk.critical else IssueSeverity.ERROR,
                        category="checker-error",
                        description=f"Checker could not evaluate the document: {e}",
                    )],
                    regulations=chk.regulations,
                )
            if chk.critical and not result.passed:
                logger.warning(f"Critical checker {chk.name} failed with score {result.score}")
            results.append(result)
        return results

    def summarize(self, results: Sequence[ValidationResult]) -> ValidationSummary:
        return summarize(results, self.pass_score)


def latest_results(results: Sequence[ValidationResult]) -> List[ValidationResult]:
    """Newest result per checker, in first-seen order."""
    latest = {}
    for result in results:
        current = latest.get(result.validator)
        if current is None or result.validated_at >= current.validated_at:
            latest[result.validator] = result
    return list(latest.values())


def summary_score(results: Sequence[ValidationResult]) -> float:
    """Mean checker score, forced to 0 when any critical checker failed."""
    if not results:
        return 0.0
    if any(r.critical and not r.passed for r in results):
        return 0.0
    return round(sum(r.score for r in results) / len(results), 1)


def compliance_checks(results: Sequence[ValidationResult]) -> List[ComplianceCheck]:
    checks = []
    for result in results:
        if not result.applicable:
            status = ComplianceStatus.NOT_APPLICABLE
        elif result.insufficient_information:
            status = ComplianceStatus.INSUFFICIENT_INFORMATION
        elif result.passed:
            status = ComplianceStatus.COMPLIANT
        else:
            status = ComplianceStatus.NON_COMPLIANT
        checks.append(ComplianceCheck(
            checker=result.validator,
            regulations=result.regulations,
            status=status,
            score=result.score,
            critical=result.critical,
            checked_at=result.validated_at,
        ))
    return checks


def summarize(results: Sequence[ValidationResult], pass_score: float = 70.0) -> ValidationSummary:
    current = latest_results(results)
    score = summary_score(current)
    critical_failures = [r.validator for r in current if r.critical and not r.passed]
    counts = Counter(issue.severity.value for r in current for issue in r.issues)

    recommendations: List[str] = []
    for r in current:
        for rec in r.recommendations:
            if rec not in recommendations:
                recommendations.append(rec)

    return ValidationSummary(
        overall_score=score,
        passed=not critical_failures and score >= pass_score,
        critical_failures=critical_failures,
        issue_counts=dict(counts),
        recommendations=recommendations,
        results=current,
        compliance_checks=compliance_checks(current),
    )
