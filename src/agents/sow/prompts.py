"""Per-project-type Scope of Work prompt templates.

Every template shares the same context block and JSON output contract; the
templates differ in the specialism, the focus areas and the compliance
points the model is steered towards.
"""

import json
from typing import Any, Dict, List, NamedTuple

from langchain_core.prompts import PromptTemplate
from pydantic import BaseModel

from src.briefs.schemas import NormalizedBrief, ProjectType
from src.core.exceptions import InvalidPromptError


class StructuredPrompt(BaseModel):
    system: str
    user: str
    template_id: str
    template_version: str


class SoWTemplate(NamedTuple):
    id: str
    version: str
    specialism: str
    standards: str
    focus: List[str]
    phases: List[str]
    compliance: List[str]


REQUIRED_VARIABLES = ("project_type", "property_address", "requirements", "council_data", "preferences")
OPTIONAL_VARIABLES = ("documents",)


SOW_SYSTEM_PROMPT = """You are an expert UK construction professional specializing in {specialism}. Generate a comprehensive Scope of Work following {standards}.

**Focus Areas:**
{focus}

**Expected Work Phases:**
{phases}

**Compliance Requirements:**
{compliance}

**Rules:**
- All specifications must be unambiguous and measurable.
- Reference British Standards and Building Regulations parts by name.
- Only reference RIBA stages (0-7) that you include in the document.
- Give quantities, units and unit costs in GBP for every material you list.
- Do NOT invent planning consents or survey results that are not in the context."""

SOW_OUTPUT_CONTRACT = """Respond with a single JSON object and nothing else:

{
  "ribaStages": [{"stage": 0, "title": "", "description": "", "deliverables": [""], "duration": 14, "dependencies": []}],
  "specifications": [{"id": "SPEC-01", "category": "structural|architectural|mechanical|electrical|plumbing|finishes|external-works|temporary-works|health-safety",
                      "title": "", "description": "",
                      "technicalRequirements": [{"parameter": "", "value": "", "unit": "", "standard": "", "tolerance": "", "critical": false}],
                      "materials": [""], "complianceNotes": [""]}],
  "materials": {"categories": [{"category": "", "items": [{"name": "", "specification": "", "quantity": 0, "unit": "", "unitCost": 0, "totalCost": 0, "supplier": ""}], "subtotal": 0}],
                "totalCost": 0, "currency": "GBP"},
  "workPhases": [{"phase": 1, "title": "", "description": "", "duration": 5, "dependencies": [],
                  "resources": [{"type": "labour|equipment|materials|services", "resource": "", "quantity": 0, "unit": "", "cost": 0}],
                  "risks": [{"category": "", "description": "", "probability": "low|medium|high", "impact": "low|medium|high", "mitigation": ""}],
                  "qualityGates": [""]}],
  "deliverables": [{"title": "", "description": "", "type": "drawing|specification|calculation|report|certificate|approval|schedule|strategy|documentation",
                    "ribaStage": 2, "recipient": "Client", "format": ["PDF"]}],
  "costEstimate": {"totalCost": 0},
  "confidence": 0.8,
  "warnings": [""]
}

All five sections (ribaStages, specifications, materials, workPhases, deliverables) must be present, even if empty."""

SOW_USER_PROMPT = """PROJECT CONTEXT:
- Project Type: {project_type}
- Property Address: {property_address}
- Requirements: {requirements}
- Council Data: {council_data}
- Documents: {documents}
- Preferences: {preferences}

Generate the Scope of Work for this project."""


_BASE_STANDARDS = "RICS, RIBA Plan of Work, NRM1/NRM2, and NHBC standards"

TEMPLATES: Dict[ProjectType, SoWTemplate] = {
    ProjectType.LOFT_CONVERSION: SoWTemplate(
        id="loft-conversion-v2.1",
        version="2.1",
        specialism="loft conversions",
        standards=_BASE_STANDARDS,
        focus=[
            "Structural requirements (beam calculations, load paths)",
            "Insulation specifications (U-values, thermal bridging)",
            "Fire safety requirements (escape routes, fire doors)",
            "Staircase design and building regs compliance",
            "Dormer window and roof light specifications",
            "Minimum head height of 2.2m",
            "Acoustic performance between floors",
        ],
        phases=[
            "Preparation and access",
            "Structural alterations",
            "First fix (electrical, plumbing)",
            "Insulation and boarding",
            "Second fix and finishes",
            "Final inspections and handover",
        ],
        compliance=[
            "Building Control approval process",
            "Party Wall Act considerations",
            "CDM regulations compliance",
            "Structural engineer requirements",
            "Building Regulations Parts A, B, C, F, K, L, M",
        ],
    ),
    ProjectType.REAR_EXTENSION: SoWTemplate(
        id="rear-extension-v2.0",
        version="2.0",
        specialism="rear extensions",
        standards=_BASE_STANDARDS,
        focus=[
            "Foundation design and calculations",
            "Structural frame and roof design with drainage",
            "External wall construction and insulation",
            "Bi-fold door specifications and structural support",
            "Drainage and surface water management",
            "Structural integration with the existing building",
        ],
        phases=[
            "Excavation and foundations",
            "Structural frame and roof",
            "External envelope",
            "First fix services",
            "Second fix and finishes",
            "External works and landscaping",
        ],
        compliance=[
            "Planning permission or permitted development rights",
            "Building Control approval",
            "Party Wall Act procedures",
            "SAP calculations for thermal performance",
        ],
    ),
    ProjectType.SIDE_EXTENSION: SoWTemplate(
        id="side-extension-v2.0",
        version="2.0",
        specialism="side extensions",
        standards=_BASE_STANDARDS,
        focus=[
            "Foundation design considering existing foundations",
            "Structural calculations for wall removal or modification",
            "Roof integration and weatherproofing details",
            "External walls matching existing materials",
            "Boundary distance requirements",
        ],
        phases=[
            "Site preparation and access",
            "Excavation and foundations",
            "Structural alterations to existing building",
            "New structure and roof works",
            "Services installation",
            "Internal finishes and boundary treatments",
        ],
        compliance=[
            "Planning permission considerations",
            "Building regulations approval",
            "Party wall procedures if applicable",
        ],
    ),
    ProjectType.BATHROOM_RENOVATION: SoWTemplate(
        id="bathroom-renovation-v1.8",
        version="1.8",
        specialism="bathroom renovations",
        standards="industry best practice and UK building regulations",
        focus=[
            "Waterproofing strategy and materials",
            "Plumbing layout and pipe sizing",
            "Electrical zones and IP ratings",
            "Ventilation requirements and fan specifications",
            "Tiling, sanitaryware and heating",
        ],
        phases=[
            "Strip out and preparation",
            "First fix plumbing and electrical",
            "Waterproofing installation",
            "Tiling and wall finishes",
            "Second fix and commissioning",
        ],
        compliance=[
            "Building Regulations Part G (hygiene)",
            "Electrical safety (Part P)",
            "Ventilation requirements (Part F)",
        ],
    ),
    ProjectType.KITCHEN_RENOVATION: SoWTemplate(
        id="kitchen-renovation-v1.9",
        version="1.9",
        specialism="kitchen renovations",
        standards="industry best practice and UK building regulations",
        focus=[
            "Layout and work triangle",
            "Electrical requirements for appliances",
            "Plumbing for sinks and appliances",
            "Ventilation and extraction",
            "Worktop, unit and flooring specifications",
        ],
        phases=[
            "Strip out and preparation",
            "First fix electrical and plumbing",
            "Unit installation and worktops",
            "Appliance installation and connection",
            "Second fix and final finishes",
        ],
        compliance=[
            "Electrical safety (Part P)",
            "Ventilation requirements (Part F)",
            "Gas Safe requirements where applicable",
        ],
    ),
    ProjectType.CONSERVATORY: SoWTemplate(
        id="conservatory-v1.7",
        version="1.7",
        specialism="conservatories",
        standards="UK building regulations and industry standards",
        focus=[
            "Foundation design and thermal break",
            "Frame and glazing specifications",
            "Roof design and drainage",
            "Thermal separation from the existing building",
        ],
        phases=[
            "Excavation and foundations",
            "Frame erection",
            "Glazing installation",
            "Roofing and weatherproofing",
            "Services and final finishes",
        ],
        compliance=[
            "Thermal separation requirements",
            "Drainage and surface water management",
            "Structural calculations if required",
        ],
    ),
    ProjectType.GARAGE_CONVERSION: SoWTemplate(
        id="garage-conversion-v1.6",
        version="1.6",
        specialism="garage conversions",
        standards="UK building regulations and industry standards",
        focus=[
            "Insulation strategy for walls, floor and roof",
            "Damp proofing and ventilation",
            "Floor level adjustments",
            "Infill of the garage door opening",
        ],
        phases=[
            "Preparation and door removal",
            "Insulation and damp proofing",
            "Window and door installation",
            "First fix electrical and heating",
            "Second fix and finishes",
        ],
        compliance=[
            "Building regulations approval",
            "Thermal performance requirements",
            "Electrical safety compliance",
        ],
    ),
    ProjectType.BASEMENT_CONVERSION: SoWTemplate(
        id="basement-conversion-v2.2",
        version="2.2",
        specialism="basement conversions",
        standards="RICS, RIBA Plan of Work, and building regulations",
        focus=[
            "Structural assessment and calculations",
            "Waterproofing strategy (tanking or cavity drainage)",
            "Excavation and underpinning",
            "Emergency egress and ceiling height",
            "Drainage and pumping systems",
        ],
        phases=[
            "Structural assessment and design",
            "Excavation and underpinning",
            "Waterproofing installation",
            "Structural works",
            "Services and internal construction",
            "Finishes and commissioning",
        ],
        compliance=[
            "Planning permission requirements",
            "Structural engineer involvement",
            "Party wall considerations",
            "Emergency egress compliance",
        ],
    ),
    ProjectType.ROOF_REPLACEMENT: SoWTemplate(
        id="roof-replacement-v1.5",
        version="1.5",
        specialism="roof replacement",
        standards="UK building regulations and industry standards",
        focus=[
            "Structural assessment of the existing roof",
            "New covering and insulation upgrade",
            "Ventilation strategy",
            "Scaffolding, access and weather protection",
            "Waste disposal",
        ],
        phases=[
            "Scaffolding and weather protection",
            "Strip out of existing covering",
            "Structural repairs and upgrades",
            "Insulation and new covering",
            "Guttering, drainage and final inspection",
        ],
        compliance=[
            "Building regulations approval",
            "CDM regulations compliance",
            "Waste disposal licensing",
        ],
    ),
}

GENERIC_TEMPLATE = SoWTemplate(
    id="generic-project-v1.0",
    version="1.0",
    specialism="residential improvement projects",
    standards="RICS, RIBA Plan of Work, and relevant building regulations",
    focus=["Analyze the project requirements thoroughly and cover every relevant trade"],
    phases=["Derive the phases from the project description"],
    compliance=["All relevant Building Regulations parts"],
)


def get_template(project_type: ProjectType) -> SoWTemplate:
    return TEMPLATES.get(project_type, GENERIC_TEMPLATE)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, default=str)
    return str(value)


def brief_variables(brief: NormalizedBrief) -> Dict[str, Any]:
    """Template variables for a normalized brief."""
    documents = [
        {"filename": d.filename, "classification": d.classification, "extractedText": d.extracted_text}
        for d in brief.documents
    ]
    return {
        "project_type": brief.project_type.value,
        "property_address": brief.property_address.model_dump(by_alias=True, exclude_none=True),
        "requirements": {
            "description": brief.description,
            "dimensions": brief.dimensions.model_dump(by_alias=True, exclude_none=True) if brief.dimensions else None,
            "floorArea": brief.floor_area,
            "materials": {
                "quality": brief.material_quality.value,
                "categories": brief.material_categories,
                "preferences": brief.material_preferences,
                "restrictions": brief.material_restrictions,
            },
            "timeline": brief.timeline.model_dump(mode="json", by_alias=True) if brief.timeline else None,
            "budget": brief.budget.model_dump(by_alias=True) if brief.budget else None,
            "specialRequirements": brief.special_requirements,
        },
        "council_data": brief.council.model_dump(by_alias=True),
        "documents": documents,
        "preferences": {
            "ribaStages": brief.riba_stages,
            "detailLevel": brief.detail_level.value,
            "qualityLevel": brief.quality_level.value,
            "sustainabilityFocus": brief.sustainability_focus,
            "specificationCategories": brief.specification_categories,
            "workPhases": brief.work_phases,
            "deliverables": brief.deliverables,
            "customRequirements": brief.custom_requirements,
            "excludeItems": brief.exclude_items,
        },
    }


def render_prompt(template: SoWTemplate, variables: Dict[str, Any]) -> StructuredPrompt:
    missing = [name for name in REQUIRED_VARIABLES if variables.get(name) is None]
    if missing:
        raise InvalidPromptError(f"Missing required prompt variables: {', '.join(missing)}")

    system = SOW_SYSTEM_PROMPT.format(
        specialism=template.specialism,
        standards=template.standards,
        focus=_bullets(template.focus),
        phases=_bullets(template.phases),
        compliance=_bullets(template.compliance),
    )
    user = PromptTemplate.from_template(SOW_USER_PROMPT).format(
        **{name: _render(variables.get(name) or []) for name in REQUIRED_VARIABLES + OPTIONAL_VARIABLES}
    )
    return StructuredPrompt(
        system=f"{system}\n\n{SOW_OUTPUT_CONTRACT}",
        user=user,
        template_id=template.id,
        template_version=template.version,
    )


def build_prompt(brief: NormalizedBrief) -> StructuredPrompt:
    return render_prompt(get_template(brief.project_type), brief_variables(brief))
