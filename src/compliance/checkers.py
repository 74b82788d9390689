"""Independent compliance checkers.

Each checker is a pure function ``(draft, brief) -> ValidationResult``. A
checker never raises on missing sections: absent information is reported as
an "insufficient information" finding with a low score.
"""

import re
from typing import Callable, Iterable, List, NamedTuple, Optional

from src.briefs.schemas import NormalizedBrief, ProjectType
from src.compliance.schemas import (
    IssueSeverity,
    ValidationIssue,
    ValidationResult,
    ValidationType,
)
from src.sow.schemas import DeliverableType, ParsedSoWDraft, RiskLevel, Specification, SpecificationCategory

PASS_MARK = 60.0
INSUFFICIENT_INFORMATION_SCORE = 20.0


class Checker(NamedTuple):
    name: str
    critical: bool
    validation_type: ValidationType
    regulations: List[str]
    run: Callable[[ParsedSoWDraft, NormalizedBrief], ValidationResult]


CHECKERS: List[Checker] = []


def checker(name: str, *, critical: bool, regulations: List[str],
            validation_type: ValidationType = ValidationType.COMPLIANCE):
    def decorator(fn):
        CHECKERS.append(Checker(name, critical, validation_type, regulations, fn))
        return fn
    return decorator


class _Findings:
    """Accumulates deductions and issues for one checker run."""

    def __init__(self, name: str, critical: bool, validation_type: ValidationType, regulations: List[str]):
        self.name = name
        self.critical = critical
        self.validation_type = validation_type
        self.regulations = regulations
        self.score = 100.0
        self.issues: List[ValidationIssue] = []
        self.recommendations: List[str] = []
        self.insufficient = False

    def deduct(self, points: float, severity: IssueSeverity, category: str, description: str,
               suggestion: Optional[str] = None, location: Optional[str] = None) -> None:
        self.score -= points
        self.issues.append(ValidationIssue(
            severity=severity, category=category, description=description,
            suggestion=suggestion, location=location,
        ))
        if suggestion and suggestion not in self.recommendations:
            self.recommendations.append(suggestion)

    def insufficient_information(self, description: str, suggestion: str,
                                 score: float = INSUFFICIENT_INFORMATION_SCORE) -> ValidationResult:
        self.insufficient = True
        severity = IssueSeverity.CRITICAL if self.critical else IssueSeverity.WARNING
        self.score = score
        self.issues.append(ValidationIssue(
            severity=severity, category="insufficient-information",
            description=description, suggestion=suggestion,
        ))
        self.recommendations.append(suggestion)
        return self.result()

    def not_applicable(self, reason: str) -> ValidationResult:
        self.issues.append(ValidationIssue(
            severity=IssueSeverity.INFO, category="not-applicable", description=reason,
        ))
        return self.result(applicable=False)

    def result(self, pass_mark: float = PASS_MARK, applicable: bool = True) -> ValidationResult:
        score = max(0.0, min(100.0, round(self.score, 1)))
        blocking = any(
            i.severity == IssueSeverity.CRITICAL for i in self.issues
        ) and self.critical
        return ValidationResult(
            validator=self.name,
            validation_type=self.validation_type,
            critical=self.critical,
            passed=score >= pass_mark and not blocking and not self.insufficient,
            score=score,
            issues=self.issues,
            recommendations=self.recommendations,
            regulations=self.regulations,
            insufficient_information=self.insufficient,
            applicable=applicable,
        )


def _findings(name: str) -> _Findings:
    spec = next(c for c in CHECKERS if c.name == name)
    return _Findings(spec.name, spec.critical, spec.validation_type, spec.regulations)


def _spec_text(spec: Specification) -> str:
    parts = [spec.title, spec.description, *spec.materials, *spec.compliance_notes]
    for req in spec.technical_requirements:
        parts.extend([req.parameter, req.value, req.unit or "", req.standard or ""])
    return " ".join(parts).lower()


def _document_text(draft: ParsedSoWDraft) -> str:
    parts = [_spec_text(s) for s in draft.specifications]
    parts.extend(f"{d.title} {d.description}".lower() for d in draft.deliverables)
    parts.extend(f"{p.title} {p.description}".lower() for p in draft.work_phases)
    parts.extend(f"{s.title} {s.description} {' '.join(s.deliverables)}".lower() for s in draft.riba_stages)
    return " ".join(parts)


def _mentions(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


# ---------------------------------------------------------------------------
# Structural (Approved Document A)
# ---------------------------------------------------------------------------

_STRUCTURAL_TYPES = {
    ProjectType.LOFT_CONVERSION, ProjectType.REAR_EXTENSION, ProjectType.SIDE_EXTENSION,
    ProjectType.CONSERVATORY, ProjectType.GARAGE_CONVERSION, ProjectType.BASEMENT_CONVERSION,
    ProjectType.ROOF_REPLACEMENT, ProjectType.OTHER,
}
_STRUCTURAL_STANDARDS = ("eurocode", "bs en 199", "part a", "bs 5268", "bs 8110", "bs 5950")
_STRUCTURAL_PARAMETERS = ("load", "beam", "joist", "span", "foundation", "lintel", "steel", "rafter", "bearing", "underpinning")


@checker("structural", critical=True, regulations=["Building Regulations Part A (Structure)"])
def check_structural(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("structural")
    structural = [s for s in draft.specifications if s.category == SpecificationCategory.STRUCTURAL]

    if brief.project_type not in _STRUCTURAL_TYPES and not structural:
        return f.not_applicable(f"No structural alteration expected for {brief.project_type.value}")

    if not structural:
        return f.insufficient_information(
            "No structural specification was provided",
            "Add a structural specification with load, member sizing and Part A references",
        )

    text = " ".join(_spec_text(s) for s in structural)
    if not _mentions(text, _STRUCTURAL_STANDARDS):
        f.deduct(25, IssueSeverity.ERROR, "standards",
                 "Structural requirements do not cite a design standard (Eurocode / Part A)",
                 "Reference BS EN 1990-1995 or Approved Document A for structural elements")
    if not _mentions(text, _STRUCTURAL_PARAMETERS):
        f.deduct(20, IssueSeverity.ERROR, "members",
                 "No structural members, loads or foundations are specified",
                 "Specify beams, joists, foundations and design loads")

    has_calcs = any(
        d.type == DeliverableType.CALCULATION or "structural calc" in d.title.lower()
        for d in draft.deliverables
    )
    if not has_calcs:
        f.deduct(25, IssueSeverity.ERROR, "deliverables",
                 "Structural calculations are not listed as a deliverable",
                 "Add structural calculations by a chartered engineer as a Stage 4 deliverable")

    if draft.riba_stages and 4 not in {s.stage for s in draft.riba_stages}:
        f.deduct(10, IssueSeverity.WARNING, "riba",
                 "RIBA Stage 4 (Technical Design) is missing, structural design has no home",
                 "Include RIBA Stage 4 for technical and structural design")

    if brief.project_type == ProjectType.BASEMENT_CONVERSION and not _mentions(text, ("underpin", "retaining", "waterproof")):
        f.deduct(15, IssueSeverity.ERROR, "basement",
                 "Basement works lack underpinning, retaining wall or waterproofing design",
                 "Specify underpinning / retaining structure and BS 8102 waterproofing")

    return f.result()


# ---------------------------------------------------------------------------
# Fire safety (Approved Document B)
# ---------------------------------------------------------------------------

_FIRE_TYPES = {
    ProjectType.LOFT_CONVERSION, ProjectType.REAR_EXTENSION, ProjectType.SIDE_EXTENSION,
    ProjectType.GARAGE_CONVERSION, ProjectType.BASEMENT_CONVERSION, ProjectType.OTHER,
}
_ESCAPE_TYPES = {ProjectType.LOFT_CONVERSION, ProjectType.BASEMENT_CONVERSION}


@checker("fire_safety", critical=True, regulations=["Building Regulations Part B (Fire Safety)"])
def check_fire_safety(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("fire_safety")
    text = _document_text(draft)
    fire_content = _mentions(text, ("fire", "smoke", "escape", "part b"))

    if brief.project_type not in _FIRE_TYPES and not fire_content:
        return f.not_applicable(f"No fire-safety alterations expected for {brief.project_type.value}")

    if not fire_content:
        return f.insufficient_information(
            "No fire-safety provisions were specified",
            "Add a fire-safety specification covering detection, escape and fire resistance (Part B)",
        )

    if not _mentions(text, ("smoke alarm", "smoke detect", "heat detect", "fire alarm", "bs 5839")):
        f.deduct(20, IssueSeverity.ERROR, "detection",
                 "No interlinked smoke or heat detection is specified",
                 "Specify mains-powered interlinked smoke alarms to BS 5839-6")

    if brief.project_type in _ESCAPE_TYPES and not _mentions(
        text, ("escape", "protected stair", "fire door", "fd30", "egress")
    ):
        f.deduct(30, IssueSeverity.ERROR, "means-of-escape",
                 "No means of escape (protected stair, FD30 doors or egress windows) is specified",
                 "Define the means of escape: protected stairway with FD30 doors or egress windows")

    if not _mentions(text, ("part b", "bs 9991", "bs 476", "bs en 13501", "approved document b")):
        f.deduct(15, IssueSeverity.WARNING, "standards",
                 "Fire-safety provisions do not reference Approved Document B",
                 "Reference Approved Document B and BS 9991 for fire-safety provisions")

    return f.result()


# ---------------------------------------------------------------------------
# Thermal (Approved Document L)
# ---------------------------------------------------------------------------

_THERMAL_TYPES = {
    ProjectType.LOFT_CONVERSION, ProjectType.REAR_EXTENSION, ProjectType.SIDE_EXTENSION,
    ProjectType.CONSERVATORY, ProjectType.GARAGE_CONVERSION, ProjectType.BASEMENT_CONVERSION,
    ProjectType.ROOF_REPLACEMENT, ProjectType.OTHER,
}
# Limiting U-values (W/m2K) for new and replacement elements in existing dwellings
U_VALUE_LIMITS = {
    "roof": 0.15,
    "wall": 0.18,
    "floor": 0.18,
    "rooflight": 2.2,
    "window": 1.4,
    "door": 1.4,
}
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _u_value_element(parameter: str) -> Optional[str]:
    for element in ("rooflight", "roof", "wall", "floor", "window", "door"):
        if element in parameter:
            return element
    return None


@checker("thermal", critical=False, regulations=["Building Regulations Part L (Conservation of Fuel and Power)"])
def check_thermal(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("thermal")
    if brief.project_type not in _THERMAL_TYPES:
        return f.not_applicable(f"No new thermal elements expected for {brief.project_type.value}")

    u_values = []
    for spec in draft.specifications:
        for req in spec.technical_requirements:
            unit = (req.unit or "").lower().replace("²", "2")
            if "u-value" in req.parameter.lower() or "u value" in req.parameter.lower() or "w/m2k" in unit:
                u_values.append((spec, req))

    if not u_values:
        return f.insufficient_information(
            "No thermal performance (U-value) targets were specified",
            "State target U-values for each new or renovated thermal element (Part L)",
            score=40.0,
        )

    for spec, req in u_values:
        element = _u_value_element(req.parameter.lower())
        match = _NUMBER_RE.search(req.value)
        if element is None or match is None:
            continue
        value = float(match.group())
        limit = U_VALUE_LIMITS[element]
        if value > limit:
            f.deduct(20, IssueSeverity.ERROR, "u-value",
                     f"{element.capitalize()} U-value {value:g} W/m2K exceeds the {limit:g} limit",
                     f"Improve {element} insulation to achieve {limit:g} W/m2K or better",
                     location=spec.id or spec.title)

    text = _document_text(draft)
    if not _mentions(text, ("part l", "approved document l")):
        f.deduct(10, IssueSeverity.WARNING, "standards",
                 "Thermal requirements do not reference Approved Document L",
                 "Reference Approved Document L for thermal performance")

    return f.result()


# ---------------------------------------------------------------------------
# Heritage and planning
# ---------------------------------------------------------------------------

def _significant_words(text: str) -> List[str]:
    return [w for w in re.findall(r"[a-z]+", text.lower()) if len(w) > 4]


@checker("heritage_planning", critical=False,
         regulations=["Town and Country Planning Act 1990", "Planning (Listed Buildings and Conservation Areas) Act 1990"])
def check_heritage_planning(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("heritage_planning")
    council = brief.council
    if not brief.has_heritage_constraints:
        return f.not_applicable("No conservation area, listing or planning restrictions recorded")

    text = _document_text(draft)

    if council.listed_building and "listed building consent" not in text:
        f.deduct(40, IssueSeverity.ERROR, "listed-building",
                 "Property is listed but listed building consent is not addressed",
                 "Add listed building consent as an approval deliverable before works start")

    if council.conservation_area and not _mentions(text, ("conservation area", "planning permission", "planning application")):
        f.deduct(30, IssueSeverity.ERROR, "conservation-area",
                 "Property is in a conservation area but planning controls are not addressed",
                 "Confirm planning permission requirements with the local authority conservation officer")

    if draft.riba_stages and 3 not in {s.stage for s in draft.riba_stages}:
        f.deduct(15, IssueSeverity.WARNING, "riba",
                 "RIBA Stage 3 (planning application stage) is missing for a constrained site",
                 "Include RIBA Stage 3 to cover the planning application")

    for restriction in council.planning_restrictions:
        words = _significant_words(restriction)
        if words and not any(w in text for w in words):
            f.deduct(10, IssueSeverity.WARNING, "planning-restriction",
                     f"Planning restriction not addressed: {restriction}",
                     f"Show how the design responds to: {restriction}")

    return f.result()


# ---------------------------------------------------------------------------
# Health and safety (CDM 2015)
# ---------------------------------------------------------------------------

@checker("health_safety", critical=False, regulations=["Construction (Design and Management) Regulations 2015"])
def check_health_safety(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("health_safety")
    if not draft.work_phases:
        return f.insufficient_information(
            "No work phases were provided, so construction risks cannot be assessed",
            "Add work phases with identified risks and mitigations",
            score=30.0,
        )

    unassessed = [p for p in draft.work_phases if not p.risks]
    if unassessed:
        f.deduct(min(30, 5 * len(unassessed)), IssueSeverity.WARNING, "risk-assessment",
                 f"{len(unassessed)} work phase(s) have no identified risks",
                 "Identify risks and mitigations for every work phase",
                 location=", ".join(p.title for p in unassessed[:5]))

    text = _document_text(draft)
    has_hs_spec = any(s.category == SpecificationCategory.HEALTH_SAFETY for s in draft.specifications)
    if not has_hs_spec and not _mentions(text, ("cdm", "construction phase plan", "method statement", "risk assessment")):
        f.deduct(25, IssueSeverity.ERROR, "cdm",
                 "No CDM 2015 duties, construction phase plan or method statements are identified",
                 "Add a construction phase plan and method statements under CDM 2015")

    high_risks = [r for p in draft.work_phases for r in p.risks if r.impact == RiskLevel.HIGH and not r.mitigation.strip()]
    if high_risks:
        f.deduct(min(20, 5 * len(high_risks)), IssueSeverity.WARNING, "mitigation",
                 f"{len(high_risks)} high-impact risk(s) have no mitigation",
                 "Record a mitigation for every high-impact risk")

    return f.result()


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------

@checker("completeness", critical=False, regulations=[], validation_type=ValidationType.COMPLETENESS)
def check_completeness(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("completeness")
    if not draft.riba_stages:
        f.deduct(30, IssueSeverity.ERROR, "riba", "No RIBA stages were generated",
                 "Regenerate with explicit RIBA stages")
    if not draft.specifications:
        f.deduct(20, IssueSeverity.ERROR, "specifications", "No technical specifications were generated",
                 "Add technical specifications for each trade")
    if not draft.work_phases:
        f.deduct(20, IssueSeverity.ERROR, "work-phases", "No work phases were generated",
                 "Add a phased programme of works")
    if draft.materials.is_empty:
        f.deduct(15, IssueSeverity.WARNING, "materials", "Materials schedule is empty",
                 "Add detailed materials list with specifications and costs")
    if not draft.deliverables:
        f.deduct(10, IssueSeverity.WARNING, "deliverables", "No deliverables were listed",
                 "List the drawings, calculations and certificates to be delivered")

    present = {s.stage for s in draft.riba_stages}
    missing = [s for s in brief.riba_stages if s not in present]
    if draft.riba_stages and missing:
        f.deduct(min(20, 5 * len(missing)), IssueSeverity.WARNING, "riba",
                 f"Requested RIBA stages missing from the document: {missing}",
                 "Cover every requested RIBA stage")

    return f.result(pass_mark=70.0)


# ---------------------------------------------------------------------------
# Material preferences
# ---------------------------------------------------------------------------

@checker("material_preferences", critical=False, regulations=[], validation_type=ValidationType.QUALITY)
def check_material_preferences(draft: ParsedSoWDraft, brief: NormalizedBrief) -> ValidationResult:
    f = _findings("material_preferences")
    if draft.materials.is_empty:
        return f.insufficient_information(
            "Materials schedule is empty, so material preferences cannot be checked",
            "Add a materials schedule reflecting the client's preferences",
            score=50.0,
        )

    names = [
        f"{item.name} {item.specification}".lower()
        for category in draft.materials.categories
        for item in category.items
    ]
    for restriction in brief.material_restrictions:
        term = restriction.lower()
        offending = [n for n in names if term in n]
        if offending:
            f.deduct(25, IssueSeverity.ERROR, "restriction",
                     f"Restricted material '{restriction}' appears in the schedule",
                     f"Replace items containing '{restriction}'")

    schedule = " ".join(names)
    for preference in brief.material_preferences:
        if preference.lower() not in schedule:
            f.deduct(5, IssueSeverity.INFO, "preference",
                     f"Preferred material '{preference}' is not reflected in the schedule")

    return f.result()
