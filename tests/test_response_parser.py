import json

import pytest

from src.agents.sow.client import RawModelOutput
from src.core.exceptions import ParseError
from src.sow.parser import ResponseParser
from src.sow.schemas import DeliverableType, ResourceType, SpecificationCategory


def raw(text: str) -> RawModelOutput:
    return RawModelOutput(text=text, model="test-model")


def parse(payload):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return ResponseParser().parse(raw(text))


# ---------------------------------------------------------------------------
# Locating the payload
# ---------------------------------------------------------------------------

class TestLocatePayload:
    def test_bare_json_has_full_quality(self, loft_draft):
        draft = parse(loft_draft)
        assert draft.parse_quality == 1.0
        assert draft.parser_warnings == []
        assert len(draft.riba_stages) == 6

    def test_fenced_block(self, loft_draft):
        text = f"Here is the Scope of Work:\n```json\n{json.dumps(loft_draft, indent=2)}\n```\nLet me know."
        draft = parse(text)
        assert draft.parser_warnings == ["Extracted JSON from a fenced code block"]
        assert draft.parse_quality == 0.9

    def test_trailing_commas_in_fence_are_repaired(self, minimal_loft_draft):
        body = json.dumps(minimal_loft_draft).replace("]}", "],}")
        draft = parse(f"```\n{body}\n```")
        assert draft.parser_warnings == [
            "Extracted JSON from a fenced code block",
            "Removed trailing commas from model JSON",
        ]
        assert draft.parse_quality == 0.75

    def test_object_embedded_in_prose(self, minimal_loft_draft):
        text = f"Sure! {{\"note\": \"ignore me\"}} The document: {json.dumps(minimal_loft_draft)} Thanks."
        draft = parse(text)
        assert draft.parser_warnings == ["Extracted JSON object from surrounding text"]
        assert [s.stage for s in draft.riba_stages] == [2, 4]

    def test_empty_response(self):
        with pytest.raises(ParseError, match="empty response"):
            parse("   ")

    def test_no_json_at_all(self):
        with pytest.raises(ParseError, match="No JSON object"):
            parse("The model declined to answer.")

    def test_json_array_is_not_a_document(self):
        with pytest.raises(ParseError):
            parse("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------

class TestSchema:
    def test_missing_section_keeps_valid_partial(self, loft_draft):
        del loft_draft["deliverables"]
        loft_draft["workPhases"] = "see attached"

        with pytest.raises(ParseError) as exc_info:
            parse(loft_draft)

        error = exc_info.value
        assert str(error).startswith("Model output does not match the Scope of Work schema")
        assert set(error.partial) == {"ribaStages", "specifications", "materials"}
        assert len(error.details) == 2

    def test_duplicate_stages_rejected(self, minimal_loft_draft):
        minimal_loft_draft["ribaStages"].append({"stage": 2, "title": "Concept again"})
        with pytest.raises(ParseError, match="duplicate RIBA stage numbers"):
            parse(minimal_loft_draft)

    def test_empty_sections_are_valid(self, minimal_loft_draft):
        draft = parse(minimal_loft_draft)
        assert draft.specifications == []
        assert draft.materials.is_empty
        assert draft.confidence is None

    def test_loose_values_are_coerced(self, minimal_loft_draft):
        minimal_loft_draft["specifications"] = [
            {"category": "Health and Safety", "title": "CDM", "compliance": ["CDM 2015"]},
        ]
        minimal_loft_draft["materials"] = [
            {"category": "timber", "items": [
                {"name": "C24 joists", "quantity": "12", "unitCost": "£18.50", "totalCost": "£222.00"},
            ]},
        ]
        minimal_loft_draft["workPhases"] = [
            {"phase": "Strip out", "resources": [{"type": "labor", "resource": "Labourer", "quantity": "2 days"}]},
        ]
        minimal_loft_draft["deliverables"] = [{"title": "Calcs", "type": "Calculations", "ribaStage": "Stage 4"}]
        minimal_loft_draft["confidence"] = 80

        draft = parse(minimal_loft_draft)

        assert draft.specifications[0].category == SpecificationCategory.HEALTH_SAFETY
        assert draft.specifications[0].compliance_notes == ["CDM 2015"]
        item = draft.materials.categories[0].items[0]
        assert (item.quantity, item.unit_cost, item.total_cost) == (12, 18.5, 222)
        phase = draft.work_phases[0]
        assert (phase.phase, phase.title) == (1, "Strip out")
        assert phase.resources[0].type == ResourceType.LABOUR
        assert phase.resources[0].quantity == 2
        assert draft.deliverables[0].type == DeliverableType.CALCULATION
        assert draft.deliverables[0].riba_stage == 4
        assert draft.confidence == 0.8

    def test_stage_titles_default_from_riba(self, minimal_loft_draft):
        minimal_loft_draft["ribaStages"][0]["title"] = ""
        draft = parse(minimal_loft_draft)
        assert draft.riba_stages[0].title == "Concept Design"


# ---------------------------------------------------------------------------
# Repairs
# ---------------------------------------------------------------------------

class TestRepairs:
    def test_dangling_dependencies_dropped(self, minimal_loft_draft):
        minimal_loft_draft["ribaStages"][1]["dependencies"] = [2, 3, "stage-7"]

        draft = parse(minimal_loft_draft)

        assert draft.riba_stages[1].dependencies == [2]
        assert draft.parser_warnings == ["Dropped invalid dependencies [3, 7] from RIBA stage 4"]
        assert draft.parse_quality == 0.95

    def test_hyphenated_references_are_kept(self, loft_draft):
        loft_draft["ribaStages"][4]["dependencies"] = ["stage-3"]
        loft_draft["workPhases"][2]["dependencies"] = ["phase-2"]

        draft = parse(loft_draft)

        assert draft.riba_stages[4].dependencies == [3]
        assert draft.work_phases[2].dependencies == [2]
        assert draft.parser_warnings == []

    def test_hyphenated_stage_number(self, minimal_loft_draft):
        minimal_loft_draft["ribaStages"][1]["stage"] = "Stage-4"
        draft = parse(minimal_loft_draft)
        assert [s.stage for s in draft.riba_stages] == [2, 4]

    def test_self_dependency_dropped_from_phase(self, loft_draft):
        loft_draft["workPhases"][1]["dependencies"] = [1, 2]
        draft = parse(loft_draft)
        assert draft.work_phases[1].dependencies == [1]
        assert "Dropped invalid dependencies [2] from work phase 2" in draft.parser_warnings

    def test_material_totals_recomputed(self, loft_draft):
        steel = loft_draft["materials"]["categories"][0]
        steel["items"][0]["totalCost"] = 1000
        steel["subtotal"] = 1000
        loft_draft["materials"]["totalCost"] = 99999

        draft = parse(loft_draft)

        assert draft.materials.categories[0].items[0].total_cost == 900
        assert draft.materials.categories[0].subtotal == 900
        assert draft.materials.total_cost == 1640
        assert draft.parser_warnings == ["Recomputed material totals that did not match quantities and unit costs"]

    def test_missing_totals_filled_silently(self, loft_draft):
        for category in loft_draft["materials"]["categories"]:
            category.pop("subtotal")
            for item in category["items"]:
                item.pop("totalCost")
        loft_draft["materials"].pop("totalCost")

        draft = parse(loft_draft)

        assert draft.materials.total_cost == 1640
        assert draft.parser_warnings == []

    def test_ids_assigned(self, loft_draft):
        draft = parse(loft_draft)
        assert [d.id for d in draft.deliverables] == ["DEL-01", "DEL-02", "DEL-03"]
        assert draft.materials.categories[0].items[0].id == "steelwork-1"
        assert draft.specifications[0].id == "SPEC-01"


# ---------------------------------------------------------------------------
# Blank and placeholder values
# ---------------------------------------------------------------------------

class TestBlankValues:
    def test_null_unit_cost_leaves_item_unpriced(self, loft_draft):
        loft_draft["materials"]["categories"][0]["items"][0]["unitCost"] = None

        draft = parse(loft_draft)

        item = draft.materials.categories[0].items[0]
        assert item.unit_cost == 0
        assert item.total_cost == 0
        assert draft.parser_warnings[0] == (
            "Replaced 1 blank or unreadable value(s) with defaults: MaterialItem.unitCost"
        )
        assert "Recomputed material totals that did not match quantities and unit costs" in draft.parser_warnings

    def test_placeholder_prices(self, loft_draft):
        item = loft_draft["materials"]["categories"][1]["items"][0]
        item["unitCost"] = "TBC"
        item["totalCost"] = "TBC"

        draft = parse(loft_draft)

        assert draft.materials.categories[1].items[0].unit_cost == 0
        assert draft.materials.total_cost == 900
        assert draft.parser_warnings[0] == (
            "Replaced 2 blank or unreadable value(s) with defaults: MaterialItem.unitCost, MaterialItem.totalCost"
        )
        assert draft.parse_quality == 0.9

    @pytest.mark.parametrize("path,field,expected", [
        (("materials", "categories", 0, "items", 0), "quantity", 0),
        (("materials", "categories", 0, "items", 0), "unit", "item"),
        (("workPhases", 0, "resources", 0), "cost", 0),
        (("ribaStages", 0), "description", ""),
        (("ribaStages", 0), "duration", None),
        (("deliverables", 0), "ribaStage", None),
    ])
    def test_null_falls_back_to_default(self, loft_draft, path, field, expected):
        node = loft_draft
        for key in path:
            node = node[key]
        node[field] = None

        draft = parse(loft_draft)

        parsed = draft
        for key in path:
            parsed = parsed[key] if isinstance(key, int) else getattr(parsed, _snake(key))
        assert getattr(parsed, _snake(field)) == expected

    def test_unreadable_duration_and_confidence(self, minimal_loft_draft):
        minimal_loft_draft["ribaStages"][0]["duration"] = "TBC"
        minimal_loft_draft["confidence"] = "unknown"

        draft = parse(minimal_loft_draft)

        assert draft.riba_stages[0].duration is None
        assert draft.confidence is None
        assert "RibaStage.duration" in draft.parser_warnings[0]
        assert "ParsedSoWDraft.confidence" in draft.parser_warnings[0]

    def test_required_fields_still_fail(self, loft_draft):
        loft_draft["materials"]["categories"][0]["items"][0]["name"] = None
        with pytest.raises(ParseError, match="name"):
            parse(loft_draft)


def _snake(key: str) -> str:
    return "".join(f"_{ch.lower()}" if ch.isupper() else ch for ch in key)
