"""Canned model output, request builders and a fake generation client shared by the tests."""

import asyncio
import json
from typing import List, Optional, Union
from uuid import uuid4

from src.agents.sow.client import RawModelOutput
from src.agents.sow.prompts import StructuredPrompt
from src.briefs.normalizer import normalize
from src.briefs.schemas import GenerationRequest, NormalizedBrief
from src.compliance.validator import ComplianceValidator, compliance_checks
from src.estimation.estimator import CostEstimator
from src.estimation.market_rates import build_default_snapshot
from src.shared.models import utcnow
from src.sow.schemas import GenerationMetadata, ParsedSoWDraft, ScopeOfWork

LOFT_DRAFT = {
    "ribaStages": [
        {"stage": 0, "title": "Strategic Definition", "description": "Confirm feasibility of the loft conversion",
         "deliverables": ["Feasibility note"], "duration": 7, "dependencies": []},
        {"stage": 1, "title": "Preparation and Briefing", "description": "Measured survey and client brief",
         "deliverables": ["Measured survey"], "duration": 10, "dependencies": [0]},
        {"stage": 2, "title": "Concept Design", "description": "Dormer layout and stair position",
         "deliverables": ["Concept drawings"], "duration": 14, "dependencies": [1]},
        {"stage": 3, "title": "Spatial Coordination", "description": "Coordinate structure and services",
         "deliverables": ["Coordinated drawings"], "duration": 14, "dependencies": [2]},
        {"stage": 4, "title": "Technical Design", "description": "Structural design and building regulations drawings",
         "deliverables": ["Structural calculations", "Building regulations drawings"], "duration": 21,
         "dependencies": [3]},
        {"stage": 5, "title": "Manufacturing and Construction", "description": "Construction on site",
         "deliverables": ["Completion certificate"], "duration": 56, "dependencies": [4]},
    ],
    "specifications": [
        {
            "id": "SPEC-01",
            "category": "structural",
            "title": "Steel beams and floor joists",
            "description": "New steel beam and C24 floor joists to carry the loft floor loads",
            "technicalRequirements": [
                {"parameter": "Imposed floor load", "value": "1.5", "unit": "kN/m2",
                 "standard": "BS EN 1991-1-1", "critical": True},
                {"parameter": "Joist span", "value": "4.0", "unit": "m", "standard": "BS EN 1995-1-1"},
            ],
            "materials": ["203x133 UB steel beam", "C24 timber joists"],
            "complianceNotes": ["Approved Document A"],
        },
        {
            "id": "SPEC-02",
            "category": "architectural",
            "title": "Fire protection and means of escape",
            "description": "Protected stair enclosure with FD30 fire doors and mains-wired interlinked "
                           "smoke alarms to BS 5839-6",
            "complianceNotes": ["Approved Document B"],
        },
        {
            "id": "SPEC-03",
            "category": "architectural",
            "title": "Roof insulation",
            "description": "Insulate between and under rafters",
            "technicalRequirements": [
                {"parameter": "Roof U-value", "value": "0.15", "unit": "W/m2K", "standard": "Approved Document L"},
            ],
            "complianceNotes": ["Part L"],
        },
        {
            "id": "SPEC-04",
            "category": "health-safety",
            "title": "Construction phase plan",
            "description": "CDM 2015 construction phase plan, method statements and risk assessment",
        },
    ],
    "materials": {
        "categories": [
            {"category": "steelwork", "items": [
                {"name": "Steel beam 203x133 UB", "quantity": 2, "unit": "each", "unitCost": 450, "totalCost": 900},
            ], "subtotal": 900},
            {"category": "insulation", "items": [
                {"name": "PIR insulation board 100mm", "quantity": 40, "unit": "m2", "unitCost": 18.5,
                 "totalCost": 740},
            ], "subtotal": 740},
        ],
        "totalCost": 1640,
        "currency": "GBP",
    },
    "workPhases": [
        {"phase": 1, "title": "Preparation and access", "duration": 3, "dependencies": [],
         "resources": [{"type": "labour", "resource": "General builder", "quantity": 3, "unit": "days", "cost": 660}],
         "risks": [{"category": "access", "description": "Working at height", "probability": "medium",
                    "impact": "high", "mitigation": "Scaffold with edge protection"}]},
        {"phase": 2, "title": "Structural alterations", "duration": 10, "dependencies": [1],
         "resources": [{"type": "equipment", "resource": "Acrow props", "quantity": 1, "unit": "week", "cost": 150}],
         "risks": [{"category": "structural", "description": "Temporary instability", "probability": "low",
                    "impact": "high", "mitigation": "Propping design by engineer"}]},
        {"phase": 3, "title": "Insulation and boarding", "duration": 8, "dependencies": [2],
         "risks": [{"category": "health", "description": "Dust exposure", "probability": "medium",
                    "impact": "low", "mitigation": "RPE and extraction"}]},
    ],
    "deliverables": [
        {"title": "Structural calculations", "type": "calculation", "ribaStage": 4},
        {"title": "Building regulations drawings", "type": "drawing", "ribaStage": 4},
        {"title": "Fire safety strategy", "type": "strategy", "ribaStage": 4},
    ],
    "costEstimate": {"totalCost": 48000},
    "confidence": 0.85,
    "warnings": [],
}

# Two stages and nothing else: parses, but fails the critical structural check
MINIMAL_LOFT_DRAFT = {
    "ribaStages": [
        {"stage": 2, "title": "Concept Design", "description": "Loft layout", "dependencies": []},
        {"stage": 4, "title": "Technical Design", "description": "Drawings", "dependencies": [2]},
    ],
    "specifications": [],
    "materials": {"categories": []},
    "workPhases": [],
    "deliverables": [],
}


def loft_payload(**overrides) -> dict:
    payload = {
        "projectId": "proj-loft-1",
        "projectType": "loft-conversion",
        "propertyAddress": {"line1": "12 Acacia Avenue", "city": "London", "postcode": "SW1A 1AA"},
        "requirements": {
            "description": "Convert loft to a bedroom with ensuite",
            "dimensions": {"length": 8, "width": 4, "height": 2.5, "unit": "meters"},
            "materials": {"quality": "standard"},
            "budget": {"min": 40000, "max": 80000, "currency": "GBP"},
        },
        "preferences": {"methodology": "NRM1"},
    }
    payload.update(overrides)
    return payload


def loft_request(**overrides) -> GenerationRequest:
    return GenerationRequest.model_validate(loft_payload(**overrides))


def loft_brief(**overrides) -> NormalizedBrief:
    return normalize(loft_request(**overrides).to_brief())


def build_sow(project_id: str = "proj-loft-1", draft: Optional[dict] = None) -> ScopeOfWork:
    """Assemble a document the way the pipeline does, without the model or the graph."""
    parsed = ParsedSoWDraft.model_validate(draft if draft is not None else LOFT_DRAFT)
    brief = loft_brief(projectId=project_id)
    results = ComplianceValidator().validate(parsed, brief)
    return ScopeOfWork(
        id=uuid4(),
        project_id=project_id,
        riba_stages=parsed.riba_stages,
        specifications=parsed.specifications,
        materials=parsed.materials,
        work_phases=parsed.work_phases,
        deliverables=parsed.deliverables,
        cost_estimate=CostEstimator().estimate(parsed, brief.methodology, brief, build_default_snapshot(brief.region)),
        validation_results=results,
        compliance_checks=compliance_checks(results),
        generation_metadata=GenerationMetadata(
            model="fake-model",
            prompt_template="loft-conversion-v2.1",
            prompt_version="2.1",
            confidence=0.9,
        ),
        generated_at=utcnow(),
    )


class FakeGenerationClient:
    """Replays canned responses; an Exception entry is raised instead of returned."""

    def __init__(self, responses: List[Union[str, dict, Exception]], delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls = 0
        self.prompts: List[StructuredPrompt] = []

    async def generate(self, prompt: StructuredPrompt) -> RawModelOutput:
        self.calls += 1
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        text = response if isinstance(response, str) else json.dumps(response)
        return RawModelOutput(text=text, model="fake-model", tokens_used=1200, latency_ms=5.0)


