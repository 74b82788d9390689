"""Per-project-type defaults used when a brief leaves a section unspecified."""

from typing import Dict, List, NamedTuple

from src.briefs.schemas import ProjectType


class ProjectTypeDefaults(NamedTuple):
    riba_stages: List[int]
    specification_categories: List[str]
    work_phases: List[str]
    deliverables: List[str]
    material_categories: List[str]


PROJECT_TYPE_DEFAULTS: Dict[ProjectType, ProjectTypeDefaults] = {
    ProjectType.LOFT_CONVERSION: ProjectTypeDefaults(
        riba_stages=[0, 1, 2, 3, 4, 5],
        specification_categories=["structural", "architectural", "mechanical", "electrical", "finishes"],
        work_phases=["preparation", "structural", "first-fix", "insulation", "second-fix", "finishes"],
        deliverables=["structural-calculations", "building-regs-drawings", "fire-safety-strategy"],
        material_categories=["structural-timber", "steelwork", "insulation", "plasterboard", "staircase", "windows-rooflights", "finishes"],
    ),
    ProjectType.REAR_EXTENSION: ProjectTypeDefaults(
        riba_stages=[0, 1, 2, 3, 4, 5],
        specification_categories=["structural", "architectural", "mechanical", "electrical", "external-works", "finishes"],
        work_phases=["excavation", "foundations", "structural", "roofing", "first-fix", "second-fix", "finishes", "external-works"],
        deliverables=["planning-drawings", "structural-calculations", "building-regs-drawings"],
        material_categories=["concrete", "masonry", "structural-timber", "roofing", "insulation", "glazing", "finishes"],
    ),
    ProjectType.SIDE_EXTENSION: ProjectTypeDefaults(
        riba_stages=[0, 1, 2, 3, 4, 5],
        specification_categories=["structural", "architectural", "mechanical", "electrical", "external-works", "finishes"],
        work_phases=["excavation", "foundations", "structural", "roofing", "first-fix", "second-fix", "finishes", "external-works"],
        deliverables=["planning-drawings", "structural-calculations", "building-regs-drawings"],
        material_categories=["concrete", "masonry", "structural-timber", "roofing", "insulation", "glazing", "finishes"],
    ),
    ProjectType.BATHROOM_RENOVATION: ProjectTypeDefaults(
        riba_stages=[2, 3, 4, 5],
        specification_categories=["mechanical", "electrical", "plumbing", "finishes"],
        work_phases=["strip-out", "first-fix", "waterproofing", "tiling", "second-fix", "finishes"],
        deliverables=["design-drawings", "specification-schedule"],
        material_categories=["sanitaryware", "plumbing", "tanking", "tiling", "electrical", "finishes"],
    ),
    ProjectType.KITCHEN_RENOVATION: ProjectTypeDefaults(
        riba_stages=[2, 3, 4, 5],
        specification_categories=["mechanical", "electrical", "plumbing", "finishes"],
        work_phases=["strip-out", "first-fix", "units-installation", "worktops", "second-fix", "finishes"],
        deliverables=["design-drawings", "specification-schedule", "appliance-schedule"],
        material_categories=["kitchen-units", "worktops", "appliances", "plumbing", "electrical", "finishes"],
    ),
    ProjectType.CONSERVATORY: ProjectTypeDefaults(
        riba_stages=[0, 1, 2, 3, 4, 5],
        specification_categories=["structural", "architectural", "mechanical", "external-works"],
        work_phases=["excavation", "foundations", "frame-erection", "glazing", "roofing", "finishes"],
        deliverables=["structural-calculations", "building-regs-drawings"],
        material_categories=["concrete", "masonry", "frame", "glazing", "roofing", "finishes"],
    ),
    ProjectType.GARAGE_CONVERSION: ProjectTypeDefaults(
        riba_stages=[1, 2, 3, 4, 5],
        specification_categories=["structural", "architectural", "mechanical", "electrical", "finishes"],
        work_phases=["preparation", "insulation", "first-fix", "second-fix", "finishes"],
        deliverables=["building-regs-drawings", "insulation-strategy"],
        material_categories=["masonry", "insulation", "windows-doors", "plasterboard", "electrical", "finishes"],
    ),
    ProjectType.BASEMENT_CONVERSION: ProjectTypeDefaults(
        riba_stages=[0, 1, 2, 3, 4, 5, 6],
        specification_categories=["structural", "architectural", "mechanical", "electrical", "finishes", "health-safety"],
        work_phases=["excavation", "waterproofing", "structural", "first-fix", "second-fix", "finishes"],
        deliverables=["structural-calculations", "building-regs-drawings", "waterproofing-strategy", "ventilation-strategy"],
        material_categories=["concrete", "steelwork", "waterproofing", "insulation", "ventilation", "finishes"],
    ),
    ProjectType.ROOF_REPLACEMENT: ProjectTypeDefaults(
        riba_stages=[1, 2, 3, 4, 5],
        specification_categories=["structural", "external-works"],
        work_phases=["strip-out", "structural-repairs", "insulation", "covering", "guttering"],
        deliverables=["structural-assessment", "building-regs-drawings"],
        material_categories=["structural-timber", "roofing", "insulation", "rainwater-goods"],
    ),
    ProjectType.OTHER: ProjectTypeDefaults(
        riba_stages=[0, 1, 2, 3, 4, 5],
        specification_categories=["structural", "architectural", "mechanical", "electrical", "finishes"],
        work_phases=["preparation", "construction", "finishes"],
        deliverables=["design-drawings", "specification-schedule"],
        material_categories=["general-building", "finishes"],
    ),
}


RIBA_STAGE_TITLES: Dict[int, str] = {
    0: "Strategic Definition",
    1: "Preparation and Briefing",
    2: "Concept Design",
    3: "Spatial Coordination",
    4: "Technical Design",
    5: "Manufacturing and Construction",
    6: "Handover",
    7: "Use",
}


# Postcode area prefix -> cost region
_POSTCODE_REGIONS: Dict[str, str] = {
    "E": "London", "EC": "London", "N": "London", "NW": "London",
    "SE": "London", "SW": "London", "W": "London", "WC": "London",
    "NE": "North East",
    "S": "Yorkshire", "LS": "Yorkshire",
    "B": "West Midlands",
    "M": "North West", "L": "North West",
    "G": "Scotland", "EH": "Scotland",
    "CF": "Wales",
    "BT": "Northern Ireland",
}

DEFAULT_REGION = "England"


def region_for_postcode(postcode) -> str:
    if not postcode:
        return DEFAULT_REGION
    letters = ""
    for ch in postcode.strip().upper():
        if not ch.isalpha():
            break
        letters += ch
    return _POSTCODE_REGIONS.get(letters[:2], DEFAULT_REGION)
