"""Turns raw model text into a ``ParsedSoWDraft``.

This is the only place untyped model output is handled. The payload is
located (bare JSON, fenced block, or the first decodable object embedded in
prose), validated against the strict draft schema, then repaired where the
repair is unambiguous: dangling dependencies are dropped and material totals
are recomputed. Null or unreadable optional values take their defaults.
Anything else is a ``ParseError``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from src.agents.sow.client import RawModelOutput
from src.core.exceptions import ParseError
from src.sow.schemas import (
    Deliverable,
    MaterialSchedule,
    ParsedSoWDraft,
    RibaStage,
    Specification,
    WorkPhase,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_EXPECTED_KEYS = {"ribaStages", "riba_stages", "specifications", "materials", "workPhases", "work_phases", "deliverables"}

# parse_quality penalties
EXTRACTION_PENALTY = 0.1
SYNTAX_REPAIR_PENALTY = 0.15
CONTENT_REPAIR_PENALTY = 0.05
MIN_PARSE_QUALITY = 0.5

_SECTION_ADAPTERS = {
    "ribaStages": ("ribaStages", "riba_stages", TypeAdapter(List[RibaStage])),
    "specifications": ("specifications", "specifications", TypeAdapter(List[Specification])),
    "materials": ("materials", "materials", TypeAdapter(MaterialSchedule)),
    "workPhases": ("workPhases", "work_phases", TypeAdapter(List[WorkPhase])),
    "deliverables": ("deliverables", "deliverables", TypeAdapter(List[Deliverable])),
}


class ResponseParser:

    def parse(self, raw: RawModelOutput) -> ParsedSoWDraft:
        text = (raw.text or "").strip()
        if not text:
            raise ParseError("Model returned an empty response")

        payload, repairs = self._locate_payload(text)
        payload = self._number_work_phases(payload)

        context: Dict[str, List[str]] = {"defaulted": []}
        try:
            draft = ParsedSoWDraft.model_validate(payload, context=context)
        except ValidationError as e:
            details = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            partial = self._partial_sections(payload)
            logger.warning(
                f"Model output failed schema validation ({len(details)} error(s)); "
                f"valid sections: {sorted(partial)}"
            )
            raise ParseError(
                f"Model output does not match the Scope of Work schema: {details[0]}",
                partial=partial,
                details=details,
            ) from e

        self._assign_ids(draft)
        content_repairs = self._defaulted_values(context["defaulted"])
        content_repairs += self._repair_dependencies(draft) + self._recompute_material_totals(draft)
        repairs.extend(content_repairs)

        quality = 1.0
        for note in repairs:
            if note.startswith("Extracted"):
                quality -= EXTRACTION_PENALTY
            elif note.startswith("Removed trailing"):
                quality -= SYNTAX_REPAIR_PENALTY
            else:
                quality -= CONTENT_REPAIR_PENALTY
        draft.parse_quality = round(max(MIN_PARSE_QUALITY, quality), 3)
        draft.parser_warnings = repairs
        if repairs:
            logger.info(f"Parsed model output with {len(repairs)} repair(s)")
        return draft

    # ------------------------------------------------------------------
    # Payload location
    # ------------------------------------------------------------------

    def _locate_payload(self, text: str) -> Tuple[Dict[str, Any], List[str]]:
        repairs: List[str] = []

        direct = self._loads_object(text)
        if direct is not None:
            return direct, repairs

        for block in _FENCE_RE.findall(text):
            obj = self._loads_object(block.strip())
            if obj is None:
                obj = self._loads_object(_TRAILING_COMMA_RE.sub(r"\1", block.strip()))
                if obj is not None:
                    repairs.append("Removed trailing commas from model JSON")
            if obj is not None:
                repairs.insert(0, "Extracted JSON from a fenced code block")
                return obj, repairs

        candidate = self._first_embedded_object(text)
        if candidate is not None:
            repairs.append("Extracted JSON object from surrounding text")
            return candidate, repairs

        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            obj = self._loads_object(_TRAILING_COMMA_RE.sub(r"\1", text[start:end + 1]))
            if obj is not None:
                repairs.append("Extracted JSON object from surrounding text")
                repairs.append("Removed trailing commas from model JSON")
                return obj, repairs

        raise ParseError("No JSON object found in model output")

    @staticmethod
    def _loads_object(text: str) -> Optional[Dict[str, Any]]:
        try:
            value = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return None
        return value if isinstance(value, dict) else None

    @staticmethod
    def _first_embedded_object(text: str) -> Optional[Dict[str, Any]]:
        decoder = json.JSONDecoder()
        fallback = None
        index = text.find("{")
        while index != -1:
            try:
                value, _ = decoder.raw_decode(text, index)
            except json.JSONDecodeError:
                value = None
            if isinstance(value, dict):
                if _EXPECTED_KEYS & set(value):
                    return value
                if fallback is None:
                    fallback = value
            index = text.find("{", index + 1)
        return fallback

    # ------------------------------------------------------------------
    # Pre-validation
    # ------------------------------------------------------------------

    @staticmethod
    def _number_work_phases(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Give phases without a numeric order their list position."""
        key = "workPhases" if "workPhases" in payload else "work_phases"
        phases = payload.get(key)
        if not isinstance(phases, list):
            return payload
        numbered = []
        for index, phase in enumerate(phases, start=1):
            if isinstance(phase, dict):
                order = phase.get("phase")
                readable = isinstance(order, (int, float)) and not isinstance(order, bool)
                if not readable and not (isinstance(order, str) and any(ch.isdigit() for ch in order)):
                    phase = dict(phase)
                    if isinstance(order, str) and order.strip() and not phase.get("title"):
                        phase["title"] = order.strip()
                    phase["phase"] = index
            numbered.append(phase)
        return {**payload, key: numbered}

    @staticmethod
    def _partial_sections(payload: Dict[str, Any]) -> Dict[str, Any]:
        partial = {}
        for name, (camel, snake, adapter) in _SECTION_ADAPTERS.items():
            value = payload.get(camel, payload.get(snake))
            if value is None:
                continue
            try:
                partial[name] = adapter.validate_python(value)
            except ValidationError:
                continue
        return partial

    # ------------------------------------------------------------------
    # Repairs
    # ------------------------------------------------------------------

    @staticmethod
    def _assign_ids(draft: ParsedSoWDraft) -> None:
        for index, spec in enumerate(draft.specifications, start=1):
            if not spec.id:
                spec.id = f"SPEC-{index:02d}"
        for index, deliverable in enumerate(draft.deliverables, start=1):
            if not deliverable.id:
                deliverable.id = f"DEL-{index:02d}"

    @staticmethod
    def _defaulted_values(defaulted: List[str]) -> List[str]:
        if not defaulted:
            return []
        fields = ", ".join(dict.fromkeys(defaulted))
        return [f"Replaced {len(defaulted)} blank or unreadable value(s) with defaults: {fields}"]

    @staticmethod
    def _repair_dependencies(draft: ParsedSoWDraft) -> List[str]:
        notes = []
        stages = {s.stage for s in draft.riba_stages}
        for stage in draft.riba_stages:
            kept = [d for d in dict.fromkeys(stage.dependencies) if d in stages and d != stage.stage]
            if kept != stage.dependencies:
                dropped = sorted(set(stage.dependencies) - set(kept))
                notes.append(f"Dropped invalid dependencies {dropped} from RIBA stage {stage.stage}")
                stage.dependencies = kept

        phases = {p.phase for p in draft.work_phases}
        for phase in draft.work_phases:
            kept = [d for d in dict.fromkeys(phase.dependencies) if d in phases and d != phase.phase]
            if kept != phase.dependencies:
                dropped = sorted(set(phase.dependencies) - set(kept))
                notes.append(f"Dropped invalid dependencies {dropped} from work phase {phase.phase}")
                phase.dependencies = kept
        return notes

    @staticmethod
    def _recompute_material_totals(draft: ParsedSoWDraft) -> List[str]:
        changed = False
        grand_total = 0.0
        for category in draft.materials.categories:
            subtotal = 0.0
            for index, item in enumerate(category.items, start=1):
                if not item.id:
                    item.id = f"{category.category}-{index}"
                total = round(item.quantity * item.unit_cost, 2)
                if abs(total - item.total_cost) > 0.005:
                    changed = changed or item.total_cost != 0
                    item.total_cost = total
                subtotal += total
            subtotal = round(subtotal, 2)
            if abs(subtotal - category.subtotal) > 0.005:
                changed = changed or category.subtotal != 0
                category.subtotal = subtotal
            grand_total += subtotal
        grand_total = round(grand_total, 2)
        if abs(grand_total - draft.materials.total_cost) > 0.005:
            changed = changed or draft.materials.total_cost != 0
            draft.materials.total_cost = grand_total
        if changed:
            return ["Recomputed material totals that did not match quantities and unit costs"]
        return []
