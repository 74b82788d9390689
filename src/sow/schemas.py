import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, Field, ValidationInfo, field_validator, model_validator

from src.briefs.defaults import RIBA_STAGE_TITLES
from src.compliance.schemas import ComplianceCheck, ValidationResult
from src.estimation.schemas import CostEstimate
from src.shared.schemas import CamelModel, slugify_enum

# A leading hyphen is a sign only when it does not join a word ("stage-3" is 3)
_NUMBER_RE = re.compile(r"(?<![A-Za-z0-9])-?\d+(?:\.\d+)?")
_UNSIGNED_RE = re.compile(r"\d+(?:\.\d+)?")


def _search_number(value, pattern):
    if isinstance(value, str):
        match = pattern.search(value.replace(",", ""))
        if match:
            return float(match.group())
    return value


def coerce_number(value):
    """Pull a number out of loose model output ("£1,250.50", "14 days")."""
    return _search_number(value, _NUMBER_RE)


def coerce_int(value):
    """Stage, phase and duration numbers are never negative, so hyphens are separators."""
    value = _search_number(value, _UNSIGNED_RE)
    if isinstance(value, float):
        return int(round(value))
    return value


def coerce_references(values):
    """Turn [1, "2", "stage-3", "Stage 4"] into [1, 2, 3, 4], dropping unreadable tokens."""
    if values is None:
        return []
    if not isinstance(values, list):
        values = [values]
    refs = []
    for value in values:
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            refs.append(int(value))
            continue
        if isinstance(value, str):
            match = _UNSIGNED_RE.search(value)
            if match:
                refs.append(int(float(match.group())))
    return refs


_NUMERIC_ANNOTATIONS = (float, int, Optional[float], Optional[int])
_DIGIT_RE = re.compile(r"\d")


def _alias_enum(value, aliases: Dict[str, str]):
    value = slugify_enum(value)
    return aliases.get(value, value)


class SoWStatus(str, Enum):
    GENERATED = "generated"
    APPROVED = "approved"


class SpecificationCategory(str, Enum):
    STRUCTURAL = "structural"
    ARCHITECTURAL = "architectural"
    MECHANICAL = "mechanical"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    FINISHES = "finishes"
    EXTERNAL_WORKS = "external-works"
    TEMPORARY_WORKS = "temporary-works"
    HEALTH_SAFETY = "health-safety"


_SPEC_CATEGORY_ALIASES = {
    "health-and-safety": "health-safety",
    "h&s": "health-safety",
    "external": "external-works",
    "temporary": "temporary-works",
    "mep": "mechanical",
    "structure": "structural",
}


class ResourceType(str, Enum):
    LABOUR = "labour"
    EQUIPMENT = "equipment"
    MATERIALS = "materials"
    SERVICES = "services"


_RESOURCE_ALIASES = {"labor": "labour", "material": "materials", "service": "services", "plant": "equipment"}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DeliverableType(str, Enum):
    DRAWING = "drawing"
    SPECIFICATION = "specification"
    CALCULATION = "calculation"
    REPORT = "report"
    CERTIFICATE = "certificate"
    APPROVAL = "approval"
    SCHEDULE = "schedule"
    STRATEGY = "strategy"
    DOCUMENTATION = "documentation"


_DELIVERABLE_ALIASES = {
    "drawings": "drawing",
    "plan": "drawing",
    "plans": "drawing",
    "calculations": "calculation",
    "calc": "calculation",
    "certification": "certificate",
    "consent": "approval",
    "permission": "approval",
    "document": "documentation",
}


# ---------------------------------------------------------------------------
# Document sections
# ---------------------------------------------------------------------------

class DraftSection(CamelModel):
    """Model output section. A null, or a number field holding no number ("TBC"),
    falls back to the field default instead of failing the whole document.

    Each replacement is noted under ``"defaulted"`` when validation runs with a
    dict context, so the parser can report it.
    """

    @model_validator(mode="before")
    @classmethod
    def _blank_to_default(cls, data: Any, info: ValidationInfo):
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for name, field in cls.model_fields.items():
            if field.is_required():
                continue
            for key in _field_keys(name, field):
                if key not in cleaned:
                    continue
                value = cleaned[key]
                if value is None:
                    if field.default is None:
                        continue
                elif not (
                    field.annotation in _NUMERIC_ANNOTATIONS
                    and isinstance(value, str)
                    and not _DIGIT_RE.search(value)
                ):
                    continue
                del cleaned[key]
                if isinstance(info.context, dict):
                    info.context.setdefault("defaulted", []).append(f"{cls.__name__}.{key}")
        return cleaned


def _field_keys(name: str, field) -> List[str]:
    keys = [name]
    if field.alias and field.alias != name:
        keys.append(field.alias)
    if isinstance(field.validation_alias, AliasChoices):
        keys.extend(c for c in field.validation_alias.choices if isinstance(c, str) and c not in keys)
    return keys



class RibaStage(DraftSection):
    stage: int = Field(ge=0, le=7)
    title: str = ""
    description: str = ""
    deliverables: List[str] = Field(default_factory=list)
    duration: Optional[int] = None  # days
    dependencies: List[int] = Field(default_factory=list)

    _coerce_stage = field_validator("stage", "duration", mode="before")(coerce_int)
    _coerce_deps = field_validator("dependencies", mode="before")(coerce_references)

    @model_validator(mode="after")
    def _default_title(self):
        if not self.title.strip():
            self.title = RIBA_STAGE_TITLES.get(self.stage, f"Stage {self.stage}")
        return self


class TechnicalRequirement(DraftSection):
    parameter: str
    value: str = ""
    unit: Optional[str] = None
    tolerance: Optional[str] = None
    standard: Optional[str] = None
    test_method: Optional[str] = None
    critical: bool = False

    @field_validator("value", "tolerance", mode="before")
    @classmethod
    def _stringify(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return f"{v:g}"
        return v


class Specification(DraftSection):
    id: str = ""
    category: SpecificationCategory
    title: str
    description: str = ""
    technical_requirements: List[TechnicalRequirement] = Field(default_factory=list)
    materials: List[str] = Field(default_factory=list)
    compliance_notes: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("complianceNotes", "compliance_notes", "compliance"),
    )

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return _alias_enum(v, _SPEC_CATEGORY_ALIASES)


class MaterialItem(DraftSection):
    id: str = ""
    name: str
    specification: str = ""
    quantity: float = 0.0
    unit: str = "item"
    unit_cost: float = 0.0
    total_cost: float = 0.0
    supplier: Optional[str] = None

    _coerce_numbers = field_validator("quantity", "unit_cost", "total_cost", mode="before")(coerce_number)


class MaterialCategory(DraftSection):
    category: str
    items: List[MaterialItem] = Field(default_factory=list)
    subtotal: float = 0.0

    _coerce_subtotal = field_validator("subtotal", mode="before")(coerce_number)


class MaterialSchedule(DraftSection):
    categories: List[MaterialCategory]
    total_cost: float = Field(
        default=0.0,
        validation_alias=AliasChoices("totalCost", "total_cost", "totalEstimatedCost"),
    )
    currency: str = "GBP"

    _coerce_total = field_validator("total_cost", mode="before")(coerce_number)

    @model_validator(mode="before")
    @classmethod
    def _bare_list(cls, data):
        if isinstance(data, list):
            return {"categories": data}
        return data

    @property
    def is_empty(self) -> bool:
        return not any(c.items for c in self.categories)


class ResourceRequirement(DraftSection):
    type: ResourceType
    resource: str
    quantity: float = 0.0
    unit: str = ""
    cost: float = 0.0
    critical: bool = False

    _coerce_numbers = field_validator("quantity", "cost", mode="before")(coerce_number)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v):
        return _alias_enum(v, _RESOURCE_ALIASES)


class RiskFactor(DraftSection):
    category: str = "general"
    description: str
    probability: RiskLevel = RiskLevel.MEDIUM
    impact: RiskLevel = RiskLevel.MEDIUM
    mitigation: str = ""

    @field_validator("probability", "impact", mode="before")
    @classmethod
    def _level(cls, v):
        return slugify_enum(v)


class WorkPhase(DraftSection):
    phase: int
    title: str
    description: str = ""
    duration: Optional[int] = None  # days
    dependencies: List[int] = Field(default_factory=list)
    resources: List[ResourceRequirement] = Field(default_factory=list)
    risks: List[RiskFactor] = Field(default_factory=list)
    quality_gates: List[str] = Field(default_factory=list)

    _coerce_ints = field_validator("phase", "duration", mode="before")(coerce_int)
    _coerce_deps = field_validator("dependencies", mode="before")(coerce_references)


class Deliverable(DraftSection):
    id: str = ""
    title: str
    description: str = ""
    type: DeliverableType = DeliverableType.DOCUMENTATION
    riba_stage: Optional[int] = Field(default=None, ge=0, le=7)
    recipient: str = "Client"
    format: List[str] = Field(default_factory=lambda: ["PDF"])

    _coerce_stage = field_validator("riba_stage", mode="before")(coerce_int)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v):
        return _alias_enum(v, _DELIVERABLE_ALIASES)


class ModelCostClaim(DraftSection):
    """The model's own cost figure. Only ever compared against, never trusted."""
    total_cost: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("totalCost", "total_cost", "totalEstimatedCost", "total"),
    )

    _coerce_total = field_validator("total_cost", mode="before")(coerce_number)


def _check_stage_graph(stages: List[RibaStage]) -> None:
    numbers = [s.stage for s in stages]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        raise ValueError(f"duplicate RIBA stage numbers: {duplicates}")


class ParsedSoWDraft(DraftSection):
    """Model output after strict validation. Top-level sections are required but may be empty."""
    riba_stages: List[RibaStage]
    specifications: List[Specification]
    materials: MaterialSchedule
    work_phases: List[WorkPhase]
    deliverables: List[Deliverable]
    cost_estimate: Optional[ModelCostClaim] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    warnings: List[str] = Field(default_factory=list)

    # Filled in by the parser, not by the model
    parse_quality: float = 1.0
    parser_warnings: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _percent_confidence(cls, v):
        v = coerce_number(v)
        if isinstance(v, (int, float)) and 1 < v <= 100:
            return v / 100
        return v

    @model_validator(mode="after")
    def _unique_stages(self):
        _check_stage_graph(self.riba_stages)
        return self


class GenerationMetadata(CamelModel):
    model: str
    prompt_template: str
    prompt_version: str
    tokens_used: Optional[int] = None
    latency_ms: float = 0.0
    attempts: int = 1
    parse_quality: float = 1.0
    model_confidence: Optional[float] = None
    validation_score: float = 0.0
    confidence: float = Field(ge=0, le=1)


class ScopeOfWork(CamelModel):
    id: UUID
    project_id: str
    version: Optional[int] = None
    status: SoWStatus = SoWStatus.GENERATED
    riba_stages: List[RibaStage]
    specifications: List[Specification]
    materials: MaterialSchedule
    work_phases: List[WorkPhase]
    deliverables: List[Deliverable]
    cost_estimate: CostEstimate
    validation_results: List[ValidationResult] = Field(default_factory=list)
    compliance_checks: List[ComplianceCheck] = Field(default_factory=list)
    generation_metadata: GenerationMetadata
    generated_at: datetime
    approved_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _stage_references(self):
        _check_stage_graph(self.riba_stages)
        present = {s.stage for s in self.riba_stages}
        for stage in self.riba_stages:
            dangling = [d for d in stage.dependencies if d not in present]
            if dangling:
                raise ValueError(f"RIBA stage {stage.stage} depends on missing stages {dangling}")
        return self


class GenerationResult(CamelModel):
    success: bool
    sow_id: Optional[UUID] = None
    sow: Optional[ScopeOfWork] = None
    generation_time_ms: float = 0.0
    estimated_cost: Optional[float] = None
    confidence: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
