"""NRM1 (elemental) and NRM2 (measured quantity) breakdown builders.

Both take the same inputs and return ordered breakdown lines. On-cost lines
(fees, preliminaries, risk, VAT) are only added over a positive base, so an
empty input produces no lines at all.
"""

from typing import List, Optional, Protocol, Tuple

from src.briefs.schemas import CostMethodology, NormalizedBrief, ProjectType
from src.estimation.schemas import CostBreakdownLine, MarketRateSnapshot
from src.sow.schemas import ParsedSoWDraft, ResourceType, SpecificationCategory

_DEMOLITION_TYPES = {
    ProjectType.REAR_EXTENSION,
    ProjectType.SIDE_EXTENSION,
    ProjectType.BASEMENT_CONVERSION,
    ProjectType.GARAGE_CONVERSION,
}
EXTERNAL_WORKS_AREA_FACTOR = 0.3
DEMOLITION_AREA_FACTOR = 0.5


def make_line(category: str, description: str, quantity: float, unit: str, unit_rate: float,
              source: str = "market-rate", confidence: float = 0.7) -> CostBreakdownLine:
    quantity = round(quantity, 3)
    unit_rate = round(unit_rate, 2)
    return CostBreakdownLine(
        category=category,
        description=description,
        quantity=quantity,
        unit=unit,
        unit_rate=unit_rate,
        total_cost=round(quantity * unit_rate, 2),
        source=source,
        confidence=confidence,
    )


def percentage_line(category: str, description: str, base: float, percentage: float) -> Optional[CostBreakdownLine]:
    if base <= 0 or percentage <= 0:
        return None
    return make_line(category, f"{description} ({percentage:g}%)", 1, "sum", base * percentage / 100)


def _subtotal(lines: List[CostBreakdownLine]) -> float:
    return round(sum(line.total_cost for line in lines), 2)


def _append(lines: List[CostBreakdownLine], line: Optional[CostBreakdownLine]) -> None:
    if line is not None:
        lines.append(line)


def _on_costs(lines: List[CostBreakdownLine], brief: NormalizedBrief, snapshot: MarketRateSnapshot) -> None:
    if brief.include_contingency:
        _append(lines, percentage_line("risk-allowances", "Risk allowance", _subtotal(lines), brief.contingency_percentage))
    _append(lines, percentage_line("vat", "VAT", _subtotal(lines), snapshot.vat_percentage))


class Methodology(Protocol):
    name: CostMethodology
    data_quality_bonus: float

    def build_lines(self, draft: ParsedSoWDraft, brief: NormalizedBrief,
                    snapshot: MarketRateSnapshot) -> List[CostBreakdownLine]:
        ...


class ElementalMethodology:
    """NRM1 order-of-cost estimate: floor area x elemental rate."""

    name = CostMethodology.NRM1
    data_quality_bonus = 0.0

    def build_lines(self, draft, brief, snapshot):
        area = brief.floor_area
        if not area:
            return []

        rates = snapshot.element_rates.get(brief.project_type.value, {})
        regional = snapshot.regional_multiplier
        quality = snapshot.quality_multipliers.get(brief.quality_level.value, 1.0)

        def rate(element: str) -> float:
            return rates.get(element, snapshot.default_element_rate) * regional

        lines: List[CostBreakdownLine] = [
            make_line("facilitating-works", "Facilitating works", area, "m2", rate("facilitating-works")),
            make_line("building-works", "Building works", area, "m2", rate("building-works") * quality),
            make_line("building-services", "Building services", area, "m2", rate("building-services")),
        ]

        has_external = any(s.category == SpecificationCategory.EXTERNAL_WORKS for s in draft.specifications)
        if has_external or "external-works" in brief.specification_categories:
            lines.append(make_line("external-works", "External works", area * EXTERNAL_WORKS_AREA_FACTOR, "m2", rate("external-works")))

        strips_out = any(
            any(word in p.title.lower() for word in ("demolition", "strip-out", "strip out"))
            for p in draft.work_phases
        )
        if brief.project_type in _DEMOLITION_TYPES or strips_out:
            lines.append(make_line("demolition-works", "Demolition and strip-out", area * DEMOLITION_AREA_FACTOR, "m2",
                                   snapshot.demolition_rate * regional))

        lines.append(make_line("temporary-works", "Temporary works", area, "m2", snapshot.temporary_works_rate * regional))

        construction = _subtotal(lines)
        fee_pct = snapshot.professional_fee_percentages.get(brief.project_type.value, 12.0)
        _append(lines, percentage_line("professional-fees", "Professional fees", construction, fee_pct))
        _append(lines, percentage_line("other-development-costs", "Other development costs", construction,
                                       snapshot.other_development_percentage))
        _on_costs(lines, brief, snapshot)
        return lines


class MeasuredQuantityMethodology:
    """NRM2 detailed estimate: one line per measured, priced item in the draft."""

    name = CostMethodology.NRM2
    data_quality_bonus = 0.1

    def build_lines(self, draft, brief, snapshot):
        regional = snapshot.regional_multiplier
        lines: List[CostBreakdownLine] = []

        for category in draft.materials.categories:
            for item in category.items:
                priced = _price_material(item.name, item.quantity, item.unit_cost, snapshot, regional)
                if priced is None:
                    continue
                unit_rate, source = priced
                lines.append(make_line(
                    f"materials/{category.category}", item.name, item.quantity, item.unit or "item",
                    unit_rate, source=source, confidence=0.85 if source == "draft" else 0.6,
                ))

        for phase in draft.work_phases:
            for res in phase.resources:
                if res.type == ResourceType.MATERIALS:
                    continue  # measured through the materials schedule
                if res.cost > 0:
                    quantity = res.quantity if res.quantity > 0 else 1
                    lines.append(make_line(
                        f"{res.type.value}/{phase.title}", res.resource, quantity, res.unit or "item",
                        res.cost / quantity, source="draft", confidence=0.8,
                    ))
                elif res.type == ResourceType.LABOUR and res.quantity > 0 and res.unit.lower().startswith("day"):
                    lines.append(make_line(
                        f"labour/{phase.title}", res.resource, res.quantity, "day",
                        snapshot.labour_day_rate * regional, confidence=0.6,
                    ))

        measured = _subtotal(lines)
        _append(lines, percentage_line("preliminaries", "Main contractor preliminaries", measured,
                                       snapshot.preliminaries_percentage))
        _append(lines, percentage_line("overheads-profit", "Overheads and profit", _subtotal(lines),
                                       snapshot.overheads_profit_percentage))
        _on_costs(lines, brief, snapshot)
        return lines


def _price_material(name: str, quantity: float, unit_cost: float, snapshot: MarketRateSnapshot,
                    regional: float) -> Optional[Tuple[float, str]]:
    if quantity <= 0:
        return None
    if unit_cost > 0:
        return unit_cost, "draft"
    lowered = name.lower()
    for keyword, rate in snapshot.material_rates.items():
        if keyword in lowered:
            return rate * regional, "market-rate"
    return None


METHODOLOGIES = {
    CostMethodology.NRM1: ElementalMethodology(),
    CostMethodology.NRM2: MeasuredQuantityMethodology(),
}
