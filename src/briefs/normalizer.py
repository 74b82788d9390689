import logging
from typing import List, Optional

from src.briefs.defaults import PROJECT_TYPE_DEFAULTS, region_for_postcode
from src.briefs.schemas import (
    CouncilData,
    Dimensions,
    MeasurementUnit,
    NormalizedBrief,
    ProjectBrief,
)
from src.core.exceptions import InvalidBriefError

logger = logging.getLogger(__name__)

FEET_TO_METERS = 0.3048
SQ_FEET_TO_SQ_METERS = 0.09290304
MAX_CONTINGENCY_PERCENT = 50.0


def _dedupe(values: List[str]) -> List[str]:
    """Strip, drop blanks and de-duplicate case-insensitively, keeping first spelling."""
    seen = set()
    result = []
    for value in values:
        cleaned = " ".join(value.split())
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen.add(key)
            result.append(cleaned)
    return result


class RequirementsNormalizer:
    """Validates a project brief and resolves it into a ``NormalizedBrief``.

    Every violation is collected before raising, so callers get the full list
    of fields to fix in one round trip.
    """

    def normalize(self, brief: ProjectBrief) -> NormalizedBrief:
        violations = self._collect_violations(brief)
        if violations:
            raise InvalidBriefError(violations)

        req = brief.requirements
        prefs = brief.preferences
        defaults = PROJECT_TYPE_DEFAULTS[brief.project_type]

        dimensions = self._to_meters(req.dimensions)
        floor_area = None
        if dimensions is not None:
            if dimensions.area:
                floor_area = round(dimensions.area, 2)
            elif dimensions.length and dimensions.width:
                floor_area = round(dimensions.length * dimensions.width, 2)

        riba_stages = sorted(set(prefs.riba_stages)) or list(defaults.riba_stages)

        return NormalizedBrief(
            project_id=brief.project_id.strip(),
            project_type=brief.project_type,
            property_address=brief.property_address,
            region=region_for_postcode(brief.property_address.postcode),
            description=" ".join(req.description.split()),
            dimensions=dimensions,
            floor_area=floor_area,
            material_quality=req.materials.quality,
            material_categories=list(defaults.material_categories),
            material_preferences=_dedupe(req.materials.preferences),
            material_restrictions=_dedupe(req.materials.restrictions),
            budget=req.budget,
            timeline=req.timeline,
            special_requirements=_dedupe(req.special_requirements),
            council=brief.council_data or CouncilData(),
            riba_stages=riba_stages,
            specification_categories=list(defaults.specification_categories),
            work_phases=list(defaults.work_phases),
            deliverables=list(defaults.deliverables),
            detail_level=prefs.detail_level,
            quality_level=prefs.quality_level or req.materials.quality,
            sustainability_focus=prefs.sustainability_focus,
            methodology=prefs.methodology,
            include_contingency=prefs.include_contingency,
            contingency_percentage=prefs.contingency_percentage if prefs.include_contingency else 0.0,
            custom_requirements=_dedupe(prefs.custom_requirements),
            exclude_items=_dedupe(prefs.exclude_items),
            documents=list(brief.documents),
        )

    def _collect_violations(self, brief: ProjectBrief) -> List[str]:
        violations: List[str] = []
        req = brief.requirements

        if not brief.project_id.strip():
            violations.append("projectId: must not be empty")
        if not req.description.strip():
            violations.append("requirements.description: must not be empty")

        if req.budget is not None:
            if req.budget.min < 0 or req.budget.max < 0:
                violations.append("requirements.budget: amounts must not be negative")
            if req.budget.min > req.budget.max:
                violations.append(
                    f"requirements.budget: min ({req.budget.min:g}) exceeds max ({req.budget.max:g})"
                )

        if req.dimensions is not None:
            for field in ("length", "width", "height", "area"):
                value = getattr(req.dimensions, field)
                if value is not None and value <= 0:
                    violations.append(f"requirements.dimensions.{field}: must be positive")

        timeline = req.timeline
        if timeline and timeline.start_date and timeline.end_date:
            if timeline.end_date < timeline.start_date:
                violations.append("requirements.timeline: endDate is before startDate")

        bad_stages = [s for s in brief.preferences.riba_stages if not 0 <= s <= 7]
        if bad_stages:
            violations.append(f"preferences.ribaStages: {bad_stages} outside 0-7")

        contingency = brief.preferences.contingency_percentage
        if not 0 <= contingency <= MAX_CONTINGENCY_PERCENT:
            violations.append(
                f"preferences.contingencyPercentage: must be between 0 and {MAX_CONTINGENCY_PERCENT:g}"
            )

        if violations:
            logger.info(f"Rejected brief for project {brief.project_id!r}: {len(violations)} violation(s)")
        return violations

    @staticmethod
    def _to_meters(dimensions: Optional[Dimensions]) -> Optional[Dimensions]:
        if dimensions is None:
            return None
        if dimensions.unit == MeasurementUnit.METERS:
            return dimensions

        def convert(value, factor):
            return round(value * factor, 3) if value is not None else None

        return Dimensions(
            length=convert(dimensions.length, FEET_TO_METERS),
            width=convert(dimensions.width, FEET_TO_METERS),
            height=convert(dimensions.height, FEET_TO_METERS),
            area=convert(dimensions.area, SQ_FEET_TO_SQ_METERS),
            unit=MeasurementUnit.METERS,
        )


def normalize(brief: ProjectBrief) -> NormalizedBrief:
    return RequirementsNormalizer().normalize(brief)
