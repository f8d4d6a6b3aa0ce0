"""
CareBundle Cost Annotation

Sets the weekly cost of a composed scenario against a reference cap and
breaks it down by service category and by discipline.

Status bands (utilization = weekly cost / reference cap):
- within_cap: up to within_cap_ratio (0.85)
- near_cap: up to near_cap_ratio (1.0)
- over_cap: above near_cap_ratio

The cap is a reference point for coordinators, not a limit: over_cap
scenarios are annotated, never trimmed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Optional, Union

from ..models import (
    CostAnnotation,
    CostBreakdown,
    CostReference,
    CostStatus,
    DeliveryMode,
    ScenarioAxis,
    ScenarioComposition,
    ServiceAllocation,
)
from ..packs import build_cost_reference, read_optional_document
from ..settings import DEFAULT_CONFIG_DIR
from .composition import DAILY_MONITORING_CODES, REMOTE_SERVICE_CODES


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

DISCIPLINE_BY_CODE: dict[str, str] = {
    "NUR": "rn",
    "NP": "rn",
    "PSW": "psw",
    "HMK": "psw",
    "DEM": "psw",
    "RES": "psw",
    "PT": "pt",
    "OT": "ot",
    "SLP": "slp",
    "RT": "rt",
    "SW": "sw",
    "RD": "dietitian",
    "BEH": "behavioural",
}
DEFAULT_DISCIPLINE = "css"

AXIS_COST_NOTES: dict[ScenarioAxis, str] = {
    ScenarioAxis.RECOVERY_REHAB: "Therapy-intensive approach to support recovery goals.",
    ScenarioAxis.SAFETY_STABILITY: "Consistent daily support for safety and stability.",
    ScenarioAxis.TECH_ENABLED: (
        "Remote monitoring reduces in-person visits while maintaining oversight."
    ),
    ScenarioAxis.CAREGIVER_RELIEF: "Includes family support services to sustain caregiving.",
    ScenarioAxis.MEDICAL_INTENSIVE: "High clinical intensity for complex medical needs.",
    ScenarioAxis.COGNITIVE_SUPPORT: "Specialized support for cognitive and behavioural needs.",
    ScenarioAxis.COMMUNITY_INTEGRATED: (
        "Community programs provide social connection and structure."
    ),
    ScenarioAxis.BALANCED: "Balanced allocation across all care domains.",
}

# Differences below these are not worth a comparison note
COMPARISON_COST_THRESHOLD = Decimal("100")
COMPARISON_HOURS_THRESHOLD = 2.0


def discipline_for(service: ServiceAllocation) -> str:
    return DISCIPLINE_BY_CODE.get(service.service_code.upper(), DEFAULT_DISCIPLINE)


def delivery_mode_for(service: ServiceAllocation) -> DeliveryMode:
    """Catalog delivery mode, or a guess from the service code when uncatalogued."""
    if service.service_type is not None:
        return service.service_type.delivery_mode
    if service.service_code in REMOTE_SERVICE_CODES:
        return DeliveryMode.VIRTUAL
    if service.service_code in DAILY_MONITORING_CODES:
        return DeliveryMode.AUTOMATED
    return DeliveryMode.IN_PERSON


def cost_status(utilization: Decimal, reference: CostReference) -> CostStatus:
    if utilization <= Decimal(str(reference.within_cap_ratio)):
        return CostStatus.WITHIN_CAP
    if utilization <= Decimal(str(reference.near_cap_ratio)):
        return CostStatus.NEAR_CAP
    return CostStatus.OVER_CAP


def cost_note(axis: ScenarioAxis, status: CostStatus, utilization_pct: float) -> str:
    """Axis note followed by a plain-language reading of the cap utilization."""
    pct = f"{utilization_pct:.0f}%"
    if status == CostStatus.WITHIN_CAP:
        status_note = f"Resource use at {pct} of typical care parameters."
    elif status == CostStatus.NEAR_CAP:
        status_note = (
            f"Resource use at {pct} of typical care parameters, "
            "within the typical range for this level of need."
        )
    else:
        status_note = (
            f"Resource use at {pct} of typical care parameters reflects intensive "
            "service needs and may be appropriate for complexity."
        )
    return f"{AXIS_COST_NOTES[axis]} {status_note}"


def _percentage(part: Decimal, total: Decimal) -> float:
    if total <= 0:
        return 0.0
    return round(float(part / total * 100), 1)


def _breakdown(
    services: list[ServiceAllocation], key, total: Decimal
) -> dict[str, CostBreakdown]:
    slices: dict[str, CostBreakdown] = {}
    for service in services:
        entry = slices.setdefault(key(service), CostBreakdown())
        entry.weekly_cost += service.weekly_cost
        entry.service_count += 1
        entry.hours += service.weekly_hours
    for entry in slices.values():
        entry.percentage = _percentage(entry.weekly_cost, total)
        entry.hours = round(entry.hours, 1)
    return slices


def annotate_costs(
    composition: ScenarioComposition,
    reference_cap: Optional[Union[Decimal, int, str]] = None,
    reference: Optional[CostReference] = None,
) -> CostAnnotation:
    """
    Cost annotation for a composed scenario.

    Args:
        composition: Scenario to annotate
        reference_cap: Weekly cap overriding the reference's cap
        reference: Cap and bands (default: CostReference())

    Returns:
        CostAnnotation whose category and discipline breakdowns each sum
        to the scenario's weekly cost

    Raises:
        ValueError: If the reference cap is not positive
    """
    reference = reference or CostReference()
    cap = Decimal(str(reference_cap)) if reference_cap is not None else reference.weekly_reference_cap
    if cap <= 0:
        raise ValueError(f"reference cap must be positive, got {cap}")

    services = list(composition.services)
    weekly_cost = composition.weekly_cost
    utilization = weekly_cost / cap
    utilization_pct = round(float(utilization * 100), 1)
    status = cost_status(utilization, reference)

    total_visits = sum((s.weekly_visits for s in services), Decimal(0))
    remote_visits = sum(
        (s.weekly_visits for s in services if delivery_mode_for(s).is_remote), Decimal(0)
    )
    virtual_pct = _percentage(remote_visits, total_visits)
    in_person_pct = round(100.0 - virtual_pct, 1) if total_visits > 0 else 0.0

    by_discipline = _breakdown(services, discipline_for, weekly_cost)
    annotation = CostAnnotation(
        reference_cap=cap.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        weekly_cost=weekly_cost,
        cap_utilization=utilization_pct,
        status=status,
        note=cost_note(composition.axis, status, utilization_pct),
        total_weekly_hours=round(sum(s.weekly_hours for s in services), 1),
        total_weekly_visits=round(float(total_visits), 1),
        in_person_percentage=in_person_pct,
        virtual_percentage=virtual_pct,
        discipline_count=len(by_discipline),
        by_category=_breakdown(services, lambda s: s.category, weekly_cost),
        by_discipline=by_discipline,
    )

    if status == CostStatus.OVER_CAP:
        logger.info(
            "Scenario %s at %.1f%% of the reference cap",
            composition.axis.value, utilization_pct,
            extra={"axis": composition.axis.value},
        )
    return annotation


def compare_scenarios(first: ScenarioComposition, second: ScenarioComposition) -> str:
    """
    One-line comparison of `second` against `first`.

    Only a weekly cost difference above 100 and an hours difference
    above 2 are mentioned; an empty string means the two are close.
    """
    notes = []
    cost_diff = second.weekly_cost - first.weekly_cost
    if abs(cost_diff) > COMPARISON_COST_THRESHOLD:
        direction = "higher" if cost_diff > 0 else "lower"
        notes.append(
            f"{second.axis.label} is ${abs(cost_diff):.0f}/week {direction} in resource use"
        )

    hours_diff = (
        sum(s.weekly_hours for s in second.services)
        - sum(s.weekly_hours for s in first.services)
    )
    if abs(hours_diff) > COMPARISON_HOURS_THRESHOLD:
        direction = "more" if hours_diff > 0 else "fewer"
        notes.append(f"{abs(hours_diff):.1f} {direction} hours of direct service per week")
    return "; ".join(notes)


@dataclass
class CostAnnotator:
    """
    Annotates scenarios against a configured cost reference.

    Usage:
        annotator = CostAnnotator.from_config_dir()
        scenario.cost = annotator.annotate(scenario)
    """

    reference: CostReference = field(default_factory=CostReference)

    @classmethod
    def from_config_dir(cls, config_dir: Optional[Union[str, Path]] = None) -> CostAnnotator:
        root = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        path = root / "cost_reference.yaml"
        data = read_optional_document(path, "Cost reference")
        if data is None:
            return cls()
        return cls(reference=build_cost_reference(data, source=str(path)))

    def annotate(self, composition: ScenarioComposition) -> CostAnnotation:
        return annotate_costs(composition, reference=self.reference)
