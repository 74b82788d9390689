import asyncio
import logging
import time
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from src.agents.sow.agent import PipelineConfig, create_sow_agent
from src.agents.sow.client import GenerationClient
from src.briefs.schemas import GenerationRequest
from src.compliance.policy import ApprovalPolicy
from src.compliance.schemas import ValidationSummary
from src.compliance.validator import ComplianceValidator, compliance_checks
from src.core.exceptions import NotFoundError, SoWServiceError
from src.estimation.estimator import CostEstimator
from src.estimation.market_rates import MarketRateProvider
from src.sow.repository import SoWRepository
from src.sow.schemas import GenerationResult, ParsedSoWDraft, ScopeOfWork, SoWStatus

logger = logging.getLogger(__name__)

REVIEW_CONFIDENCE = 0.8
COST_CLAIM_TOLERANCE = 0.25


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(i for i in items if i))


class SoWGenerationService:
    """Runs the drafting pipeline and owns the Scope of Work lifecycle."""

    def __init__(
        self,
        repository: SoWRepository,
        client: GenerationClient,
        rate_provider: MarketRateProvider,
        validator: Optional[ComplianceValidator] = None,
        estimator: Optional[CostEstimator] = None,
        config: Optional[PipelineConfig] = None,
        policy: Optional[ApprovalPolicy] = None,
    ):
        self.repository = repository
        self.config = config or PipelineConfig.from_settings()
        self.validator = validator or ComplianceValidator(pass_score=self.config.validation_pass_score)
        self.policy = policy or ApprovalPolicy.from_settings()
        self.agent = create_sow_agent(
            client,
            rate_provider,
            validator=self.validator,
            estimator=estimator,
            config=self.config,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_scope_of_work(self, request: GenerationRequest) -> GenerationResult:
        """Brief in, persisted ``ScopeOfWork`` out. Failures come back as ``success=False``."""
        started = time.perf_counter()
        loop = asyncio.get_running_loop()
        timeout = request.timeout_seconds or self.config.pipeline_timeout
        deadline = loop.time() + timeout
        brief = request.to_brief()
        logger.info(
            f"Generating Scope of Work for project {brief.project_id} ({brief.project_type.value})",
            extra={"project_id": brief.project_id},
        )

        try:
            state = await asyncio.wait_for(
                self.agent.ainvoke({"brief": brief, "warnings": [], "errors": []}),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Pipeline for project {brief.project_id} exceeded {timeout:g}s",
                extra={"project_id": brief.project_id, "duration_ms": self._elapsed(started)},
            )
            return self._failure(started, [f"Generation pipeline exceeded the {timeout:g}s deadline"])
        except Exception as e:
            logger.exception(
                f"Pipeline for project {brief.project_id} failed unexpectedly",
                extra={"project_id": brief.project_id},
            )
            return self._failure(started, [f"Unexpected pipeline error: {e}"])

        warnings = _dedupe(state.get("warnings") or [])
        sow = state.get("sow")
        if state.get("errors") or sow is None:
            return self._failure(started, state.get("errors") or ["Pipeline produced no document"], warnings)

        remaining = deadline - loop.time()
        if remaining <= 0:
            return self._failure(started, ["No time left to store the Scope of Work"], warnings)
        try:
            stored = await asyncio.wait_for(
                self.repository.save(sow, brief=state.get("normalized")),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Storing Scope of Work for project {brief.project_id} ran past the deadline",
                extra={"project_id": brief.project_id},
            )
            return self._failure(started, ["Storing the Scope of Work ran past the deadline"], warnings)
        except (SoWServiceError, SQLAlchemyError) as e:
            logger.error(
                "Failed to store Scope of Work for project %s: %s", brief.project_id, e,
                extra={"project_id": brief.project_id},
            )
            return self._failure(started, [f"Failed to store the Scope of Work: {e}"], warnings)

        logger.info(
            f"Generated Scope of Work {stored.id} for project {stored.project_id}",
            extra={
                "project_id": stored.project_id,
                "sow_id": str(stored.id),
                "version": stored.version,
                "duration_ms": self._elapsed(started),
            },
        )
        summary = self.validator.summarize(stored.validation_results)
        budget_max = state["normalized"].budget.max if state["normalized"].budget else None
        return GenerationResult(
            success=True,
            sow_id=stored.id,
            sow=stored,
            generation_time_ms=self._elapsed(started),
            estimated_cost=stored.cost_estimate.total_cost,
            confidence=stored.generation_metadata.confidence,
            warnings=warnings,
            recommendations=self._recommendations(stored, summary, state["draft"], budget_max),
            next_steps=self._next_steps(stored, summary),
        )

    @staticmethod
    def _elapsed(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 1)

    def _failure(self, started: float, errors: List[str], warnings: Optional[List[str]] = None) -> GenerationResult:
        return GenerationResult(
            success=False,
            generation_time_ms=self._elapsed(started),
            errors=_dedupe(errors),
            warnings=warnings or [],
        )

    @staticmethod
    def _recommendations(
        sow: ScopeOfWork,
        summary: ValidationSummary,
        draft: ParsedSoWDraft,
        budget_max: Optional[float],
    ) -> List[str]:
        recommendations = list(summary.recommendations)
        if sow.generation_metadata.confidence < REVIEW_CONFIDENCE:
            recommendations.append("Consider reviewing and refining the generated content due to lower AI confidence")
        if summary.critical_failures:
            recommendations.append("Address critical validation issues before proceeding")
        if sow.materials.is_empty:
            recommendations.append("Add detailed materials list with specifications and costs")
        if not sow.deliverables:
            recommendations.append("Define project deliverables and acceptance criteria")

        total = sow.cost_estimate.total_cost
        if budget_max and total > budget_max:
            recommendations.append(
                f"Estimated cost of {total:,.2f} {sow.cost_estimate.currency} exceeds the maximum budget "
                f"of {budget_max:,.2f}; review scope or quality level"
            )
        claimed = draft.cost_estimate.total_cost if draft.cost_estimate else None
        if claimed and total > 0 and abs(claimed - total) / total > COST_CLAIM_TOLERANCE:
            recommendations.append(
                f"The model's own cost figure ({claimed:,.2f}) differs from the {sow.cost_estimate.methodology.value} "
                f"estimate ({total:,.2f}) by more than {COST_CLAIM_TOLERANCE:.0%}; verify quantities"
            )
        return _dedupe(recommendations)

    @staticmethod
    def _next_steps(sow: ScopeOfWork, summary: ValidationSummary) -> List[str]:
        steps = []
        if sow.status == SoWStatus.GENERATED:
            steps.append("Review the generated Scope of Work for accuracy and completeness")
            steps.append("Validate compliance with building regulations and industry standards")
            steps.append("Approve the SoW to proceed with builder distribution")
        if not summary.passed:
            steps.append("Address validation issues before approval")
        if sow.cost_estimate.total_cost == 0:
            steps.append("Generate detailed cost estimates")
        return steps

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get_scope_of_work(self, sow_id: UUID) -> ScopeOfWork:
        sow = await self.repository.get_by_id(sow_id)
        if sow is None:
            raise NotFoundError(f"Scope of Work {sow_id} not found")
        return sow

    async def list_versions(self, project_id: str) -> List[ScopeOfWork]:
        return await self.repository.get_versions_by_project(project_id)

    async def approve_scope_of_work(self, sow_id: UUID) -> ScopeOfWork:
        return await self.repository.approve(sow_id, self.policy)

    async def get_validation_summary(self, sow_id: UUID) -> ValidationSummary:
        sow = await self.get_scope_of_work(sow_id)
        summary = self.validator.summarize(sow.validation_results)
        summary.sow_id = sow.id
        return summary

    async def revalidate_scope_of_work(self, sow_id: UUID) -> ScopeOfWork:
        """Re-run every checker against the stored document and append the results."""
        sow = await self.get_scope_of_work(sow_id)
        brief = await self.repository.get_brief(sow_id)
        if brief is None:
            raise NotFoundError(f"No stored brief for Scope of Work {sow_id}")

        draft = ParsedSoWDraft(
            riba_stages=sow.riba_stages,
            specifications=sow.specifications,
            materials=sow.materials,
            work_phases=sow.work_phases,
            deliverables=sow.deliverables,
        )
        results = self.validator.validate(draft, brief)
        logger.info(f"Revalidated Scope of Work {sow_id}: {len(results)} checker result(s)")
        return await self.repository.append_validation_results(sow_id, results, compliance_checks(results))
