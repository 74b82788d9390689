"""Scope of Work drafting pipeline.

Graph topology::

    START → normalize_brief → generate_draft → parse_response → fan_out
                                                                 ├─→ validate_compliance ──┐
                                                                 └─→ estimate_cost ────────┤
                                                                                           ▼
                                                                               assemble_sow → END

Any node that records an error routes straight to END. Persistence is not
part of the graph; the service writes the assembled document once the graph
has finished inside the caller's deadline.
"""

import logging
import operator
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Optional, TypedDict
from uuid import uuid4

from langgraph.graph import END, StateGraph
from langgraph.types import Send
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.agents.sow.client import GenerationClient, RawModelOutput
from src.agents.sow.prompts import StructuredPrompt, build_prompt
from src.briefs.normalizer import RequirementsNormalizer
from src.briefs.schemas import NormalizedBrief, ProjectBrief
from src.compliance.schemas import ValidationResult
from src.compliance.validator import ComplianceValidator, compliance_checks, latest_results, summary_score
from src.config import settings
from src.core.exceptions import (
    InvalidBriefError,
    InvalidPromptError,
    ModelConfigurationError,
    ParseError,
    TransientGenerationError,
)
from src.estimation.estimator import CostEstimator
from src.estimation.market_rates import MarketRateProvider
from src.estimation.schemas import CostEstimate
from src.shared.models import utcnow
from src.sow.parser import ResponseParser
from src.sow.schemas import GenerationMetadata, ParsedSoWDraft, ScopeOfWork

logger = logging.getLogger(__name__)

PARSE_QUALITY_WEIGHT = 0.20
VALIDATION_WEIGHT = 0.55
MODEL_CONFIDENCE_WEIGHT = 0.25
DEFAULT_MODEL_CONFIDENCE = 0.5


@dataclass(frozen=True)
class PipelineConfig:
    generation_timeout: float = 120.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    pipeline_timeout: float = 300.0
    validation_pass_score: float = 70.0
    warn_confidence: float = 0.6

    @classmethod
    def from_settings(cls) -> "PipelineConfig":
        return cls(
            generation_timeout=settings.SOW_GENERATION_TIMEOUT_SECONDS,
            max_retries=settings.SOW_GENERATION_MAX_RETRIES,
            retry_backoff=settings.SOW_RETRY_BACKOFF_SECONDS,
            pipeline_timeout=settings.SOW_PIPELINE_TIMEOUT_SECONDS,
            validation_pass_score=settings.SOW_VALIDATION_PASS_SCORE,
            warn_confidence=settings.SOW_WARN_CONFIDENCE,
        )


class SoWAgentState(TypedDict):
    brief: ProjectBrief
    normalized: Optional[NormalizedBrief]
    prompt: Optional[StructuredPrompt]
    raw_output: Optional[RawModelOutput]
    attempts: int
    draft: Optional[ParsedSoWDraft]
    partial: Optional[Dict[str, Any]]
    validation_results: Optional[List[ValidationResult]]
    cost_estimate: Optional[CostEstimate]
    sow: Optional[ScopeOfWork]
    warnings: Annotated[List[str], operator.add]
    errors: Annotated[List[str], operator.add]


def sow_confidence(parse_quality: float, validation_score: float, model_confidence: Optional[float]) -> float:
    """Overall document confidence from parse quality, validation score (0-100) and the model's own figure."""
    if model_confidence is None:
        model_confidence = DEFAULT_MODEL_CONFIDENCE
    value = (
        PARSE_QUALITY_WEIGHT * parse_quality
        + VALIDATION_WEIGHT * (validation_score / 100)
        + MODEL_CONFIDENCE_WEIGHT * model_confidence
    )
    return round(max(0.0, min(1.0, value)), 3)


def _stop_on_errors(next_node: str):
    def route(state):
        return END if state.get("errors") else next_node
    return route


def _fan_out(state):
    """Run compliance validation and cost estimation in the same superstep, or END on error."""
    if state.get("errors"):
        return END
    return [
        Send("validate_compliance", state),
        Send("estimate_cost", state),
    ]


def create_sow_agent(
    client: GenerationClient,
    rate_provider: MarketRateProvider,
    validator: Optional[ComplianceValidator] = None,
    estimator: Optional[CostEstimator] = None,
    parser: Optional[ResponseParser] = None,
    normalizer: Optional[RequirementsNormalizer] = None,
    config: Optional[PipelineConfig] = None,
):
    config = config or PipelineConfig.from_settings()
    validator = validator or ComplianceValidator(pass_score=config.validation_pass_score)
    estimator = estimator or CostEstimator()
    parser = parser or ResponseParser()
    normalizer = normalizer or RequirementsNormalizer()

    async def normalize_brief_node(state: SoWAgentState):
        try:
            normalized = normalizer.normalize(state["brief"])
            prompt = build_prompt(normalized)
        except (InvalidBriefError, InvalidPromptError) as e:
            logger.warning(f"Brief for project {state['brief'].project_id} rejected: {e}")
            return {"errors": [str(e)]}
        return {"normalized": normalized, "prompt": prompt}

    def _log_retry(retry_state):
        logger.warning(
            f"Generation attempt {retry_state.attempt_number} failed "
            f"({retry_state.outcome.exception()}); retrying",
            extra={"attempt": retry_state.attempt_number},
        )

    async def generate_draft_node(state: SoWAgentState):
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(config.max_retries + 1),
                wait=wait_exponential(multiplier=config.retry_backoff),
                retry=retry_if_exception_type(TransientGenerationError),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    raw = await client.generate(state["prompt"])
        except TransientGenerationError as e:
            logger.error(
                f"Generation failed after {attempts} attempt(s): {e}",
                extra={"project_id": state["brief"].project_id, "attempt": attempts},
            )
            return {"attempts": attempts, "errors": [f"Generation failed after {attempts} attempt(s): {e}"]}
        except (InvalidPromptError, ModelConfigurationError) as e:
            return {"attempts": attempts, "errors": [str(e)]}
        return {"raw_output": raw, "attempts": attempts}

    async def parse_response_node(state: SoWAgentState):
        try:
            draft = parser.parse(state["raw_output"])
        except ParseError as e:
            return {"partial": e.partial, "errors": [str(e)] + e.details[1:]}
        return {"draft": draft, "warnings": draft.parser_warnings + draft.warnings}

    async def validate_compliance_node(state: SoWAgentState):
        results = validator.validate(state["draft"], state["normalized"])
        return {"validation_results": results}

    async def estimate_cost_node(state: SoWAgentState):
        normalized = state["normalized"]
        try:
            snapshot = rate_provider.get_snapshot(normalized.region)
            estimate = estimator.estimate(state["draft"], normalized.methodology, normalized, snapshot)
        except Exception as e:
            logger.error("Cost estimation failed: %s", e)
            return {"errors": [f"Cost estimation failed: {e}"]}
        return {"cost_estimate": estimate}

    async def assemble_sow_node(state: SoWAgentState):
        if state.get("errors"):
            return {}
        draft = state["draft"]
        raw = state["raw_output"]
        prompt = state["prompt"]
        results = state["validation_results"]
        current = latest_results(results)
        score = summary_score(current)
        confidence = sow_confidence(draft.parse_quality, score, draft.confidence)

        warnings = []
        for r in current:
            if not r.passed and r.applicable:
                detail = r.issues[0].description if r.issues else "no details"
                prefix = "Critical check" if r.critical else "Check"
                warnings.append(f"{prefix} '{r.validator}' did not pass (score {r.score:g}): {detail}")
        if draft.materials.is_empty:
            warnings.append("No materials were specified; the materials schedule is empty")
        if confidence < config.warn_confidence:
            warnings.append(f"Low confidence ({confidence:.2f}); review the document before approval")

        try:
            sow = ScopeOfWork(
                id=uuid4(),
                project_id=state["normalized"].project_id,
                riba_stages=draft.riba_stages,
                specifications=draft.specifications,
                materials=draft.materials,
                work_phases=draft.work_phases,
                deliverables=draft.deliverables,
                cost_estimate=state["cost_estimate"],
                validation_results=results,
                compliance_checks=compliance_checks(results),
                generation_metadata=GenerationMetadata(
                    model=raw.model,
                    prompt_template=prompt.template_id,
                    prompt_version=prompt.template_version,
                    tokens_used=raw.tokens_used,
                    latency_ms=raw.latency_ms,
                    attempts=state.get("attempts") or 1,
                    parse_quality=draft.parse_quality,
                    model_confidence=draft.confidence,
                    validation_score=score,
                    confidence=confidence,
                ),
                generated_at=utcnow(),
            )
        except ValueError as e:
            return {"errors": [f"Could not assemble Scope of Work: {e}"]}
        return {"sow": sow, "warnings": warnings}

    workflow = StateGraph(SoWAgentState)

    # Nodes
    workflow.add_node("normalize_brief", normalize_brief_node)
    workflow.add_node("generate_draft", generate_draft_node)
    workflow.add_node("parse_response", parse_response_node)
    workflow.add_node("validate_compliance", validate_compliance_node)
    workflow.add_node("estimate_cost", estimate_cost_node)
    workflow.add_node("assemble_sow", assemble_sow_node)

    # Edges
    workflow.set_entry_point("normalize_brief")
    workflow.add_conditional_edges("normalize_brief", _stop_on_errors("generate_draft"), {
        "generate_draft": "generate_draft",
        END: END,
    })
    workflow.add_conditional_edges("generate_draft", _stop_on_errors("parse_response"), {
        "parse_response": "parse_response",
        END: END,
    })
    workflow.add_conditional_edges(
        "parse_response",
        _fan_out,
        ["validate_compliance", "estimate_cost", END],
    )
    workflow.add_edge("validate_compliance", "assemble_sow")
    workflow.add_edge("estimate_cost", "assemble_sow")
    workflow.add_edge("assemble_sow", END)

    return workflow.compile()
