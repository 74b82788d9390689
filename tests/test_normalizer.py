import pytest
from unittest.mock import AsyncMock

from src.briefs.context import resolve_brief_context
from src.briefs.defaults import region_for_postcode
from src.briefs.normalizer import RequirementsNormalizer
from src.briefs.schemas import (
    CostMethodology,
    CouncilData,
    DocumentReference,
    MeasurementUnit,
    ProjectType,
    QualityLevel,
)
from src.core.exceptions import InvalidBriefError

from factories import loft_payload, loft_request


def normalize(**overrides):
    return RequirementsNormalizer().normalize(loft_request(**overrides).to_brief())


# ---------------------------------------------------------------------------
# Defaults and canonical units
# ---------------------------------------------------------------------------

class TestNormalize:
    def test_loft_defaults_are_filled_in(self):
        brief = normalize()

        assert brief.project_type == ProjectType.LOFT_CONVERSION
        assert brief.riba_stages == [0, 1, 2, 3, 4, 5]
        assert "structural-calculations" in brief.deliverables
        assert "staircase" in brief.material_categories
        assert brief.methodology == CostMethodology.NRM1
        assert brief.quality_level == QualityLevel.STANDARD
        assert brief.region == "London"
        assert brief.floor_area == 32

    def test_feet_are_converted_to_meters(self):
        brief = normalize(requirements={
            "description": "Garage to office",
            "dimensions": {"length": 10, "width": 20, "unit": "feet"},
        })

        assert brief.dimensions.unit == MeasurementUnit.METERS
        assert brief.dimensions.length == pytest.approx(3.048)
        assert brief.dimensions.width == pytest.approx(6.096)
        assert brief.floor_area == pytest.approx(18.58)

    def test_explicit_area_wins_over_length_and_width(self):
        brief = normalize(requirements={
            "description": "Loft",
            "dimensions": {"length": 8, "width": 4, "area": 28.5},
        })
        assert brief.floor_area == 28.5

    def test_no_dimensions_means_no_floor_area(self):
        brief = normalize(requirements={"description": "Loft"})
        assert brief.floor_area is None

    def test_requested_stages_are_sorted_and_deduplicated(self):
        brief = normalize(preferences={"ribaStages": [5, 2, 2]})
        assert brief.riba_stages == [2, 5]

    def test_loose_enum_spelling_is_accepted(self):
        brief = normalize(
            projectType="Loft Conversion",
            preferences={"methodology": "nrm2", "qualityLevel": "Premium"},
        )
        assert brief.project_type == ProjectType.LOFT_CONVERSION
        assert brief.methodology == CostMethodology.NRM2
        assert brief.quality_level == QualityLevel.PREMIUM

    def test_contingency_switched_off(self):
        brief = normalize(preferences={"includeContingency": False, "contingencyPercentage": 15})
        assert brief.contingency_percentage == 0

    def test_requirement_lists_are_cleaned(self):
        payload = loft_payload()
        payload["requirements"]["specialRequirements"] = ["  Wheelchair   access ", "wheelchair access", ""]
        brief = normalize(requirements=payload["requirements"])
        assert brief.special_requirements == ["Wheelchair access"]

    def test_missing_council_data_means_no_constraints(self):
        brief = normalize()
        assert brief.council == CouncilData()
        assert brief.has_heritage_constraints is False

    def test_council_restrictions_are_constraints(self):
        brief = normalize(councilData={"planningRestrictions": ["No rear dormers"]})
        assert brief.has_heritage_constraints is True


# ---------------------------------------------------------------------------
# Rejection
# ---------------------------------------------------------------------------

class TestViolations:
    def test_all_violations_reported_together(self):
        with pytest.raises(InvalidBriefError) as exc_info:
            normalize(
                projectId=" ",
                requirements={
                    "description": "",
                    "dimensions": {"length": -2, "width": 4},
                    "budget": {"min": 50000, "max": 20000},
                    "timeline": {"startDate": "2026-06-01", "endDate": "2026-03-01"},
                },
                preferences={"ribaStages": [1, 9], "contingencyPercentage": 60},
            )

        violations = exc_info.value.violations
        assert "projectId: must not be empty" in violations
        assert "requirements.description: must not be empty" in violations
        assert "requirements.dimensions.length: must be positive" in violations
        assert "requirements.budget: min (50000) exceeds max (20000)" in violations
        assert "requirements.timeline: endDate is before startDate" in violations
        assert "preferences.ribaStages: [9] outside 0-7" in violations
        assert "preferences.contingencyPercentage: must be between 0 and 50" in violations
        assert len(violations) == 7

    def test_negative_budget(self):
        with pytest.raises(InvalidBriefError) as exc_info:
            normalize(requirements={"description": "Loft", "budget": {"min": -1, "max": 100}})
        assert exc_info.value.violations == ["requirements.budget: amounts must not be negative"]


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------

class TestRegionForPostcode:
    @pytest.mark.parametrize("postcode,region", [
        ("SW1A 1AA", "London"),
        ("ec2a 4ny", "London"),
        ("LS1 4AP", "Yorkshire"),
        ("S1 2HE", "Yorkshire"),
        ("M1 1AE", "North West"),
        ("EH1 1YZ", "Scotland"),
        ("BT1 5GS", "Northern Ireland"),
        ("ZZ9 9ZZ", "England"),
        (None, "England"),
        ("", "England"),
    ])
    def test_region(self, postcode, region):
        assert region_for_postcode(postcode) == region


# ---------------------------------------------------------------------------
# Context resolution
# ---------------------------------------------------------------------------

class TestResolveBriefContext:
    @pytest.mark.asyncio
    async def test_council_data_filled_from_lookup(self):
        lookup = AsyncMock()
        lookup.lookup.return_value = CouncilData(conservation_area=True, local_authority="Westminster")

        request = await resolve_brief_context(loft_request(), council_lookup=lookup)

        lookup.lookup.assert_awaited_once_with("SW1A 1AA")
        assert request.council_data.conservation_area is True

    @pytest.mark.asyncio
    async def test_supplied_council_data_is_not_overwritten(self):
        lookup = AsyncMock()
        request = loft_request(councilData={"listedBuilding": True})

        resolved = await resolve_brief_context(request, council_lookup=lookup)

        lookup.lookup.assert_not_awaited()
        assert resolved.council_data.listed_building is True

    @pytest.mark.asyncio
    async def test_failed_lookup_is_skipped(self):
        lookup = AsyncMock()
        lookup.lookup.side_effect = Exception("council API down")
        request = loft_request()

        resolved = await resolve_brief_context(request, council_lookup=lookup)

        assert resolved.council_data is None

    @pytest.mark.asyncio
    async def test_document_text_filled_from_store(self):
        store = AsyncMock()
        store.get_document_context.side_effect = [
            DocumentReference(id="doc-2", filename="survey.pdf", extracted_text="Purlins are undersized"),
            Exception("storage timeout"),
        ]
        request = loft_request(documents=[
            {"id": "doc-1", "filename": "plans.pdf", "extractedText": "Existing plans"},
            {"id": "doc-2", "filename": "survey.pdf"},
            {"id": "doc-3", "filename": "photos.pdf"},
        ])

        resolved = await resolve_brief_context(request, document_store=store)

        assert [d.extracted_text for d in resolved.documents] == [
            "Existing plans", "Purlins are undersized", None,
        ]
        assert store.get_document_context.await_count == 2
