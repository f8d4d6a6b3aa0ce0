"""
CareBundle Allocation Models

Outputs of the resolvers and the composition engine, plus the service
type and rate records they are priced from.

Key components:
- CategoryFloor: per-category clinical minimum and recommended budget
- ServiceType / ServiceRate: catalog records for pricing and durations
- ServiceAllocation: one concrete service line in a composed bundle
- ServiceIntensity: output unit of the score-keyed intensity resolver
- CostAnnotation: weekly cost against a reference cap, with breakdowns
- ScenarioComposition: a composed bundle for one axis

All monetary values use Decimal for precision.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from .enums import AllocationSource, CategoryUnit, CostStatus, DeliveryMode, ScenarioAxis


CENTS = Decimal("0.01")

# Number of frequency periods per week
PERIODS_PER_WEEK: dict[str, Decimal] = {
    "day": Decimal(7),
    "week": Decimal(1),
    "month": Decimal(12) / Decimal(52),
}


# =============================================================================
# Category Floors
# =============================================================================

@dataclass(frozen=True)
class CapBoost:
    """Contribution of one CAP to a category budget."""
    floor_add: float
    recommended_add: float
    level: str


@dataclass
class CategoryFloor:
    """
    Budget envelope for one service category.

    Invariant (enforced by the resolver as its last step):
    recommended >= floor.
    """
    category: str
    floor: float = 0.0
    recommended: float = 0.0
    unit: CategoryUnit = CategoryUnit.UNITS
    triggered_caps: list[str] = field(default_factory=list)
    cap_boosts: dict[str, CapBoost] = field(default_factory=dict)

    def add(self, floor_add: float, recommended_add: float) -> None:
        self.floor += floor_add
        self.recommended += recommended_add

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "floor": self.floor,
            "recommended": self.recommended,
            "unit": self.unit.value,
            "triggered_caps": list(self.triggered_caps),
            "cap_boosts": {
                name: {
                    "floor_add": boost.floor_add,
                    "recommended_add": boost.recommended_add,
                    "level": boost.level,
                }
                for name, boost in self.cap_boosts.items()
            },
        }


# =============================================================================
# Service Catalog Records
# =============================================================================

@dataclass(frozen=True)
class ServiceType:
    """A billable home-care service registered in the catalog."""
    code: str
    name: str = ""
    category: Optional[str] = None
    default_duration_minutes: Optional[int] = None
    cost_per_visit: Optional[Decimal] = None
    active: bool = True
    delivery_mode: DeliveryMode = DeliveryMode.IN_PERSON


@dataclass(frozen=True)
class ServiceRate:
    """A dated billing rate for a service type."""
    service_code: str
    rate: Decimal
    effective_from: date
    effective_to: Optional[date] = None

    def is_effective_on(self, on: date) -> bool:
        if on < self.effective_from:
            return False
        return self.effective_to is None or on <= self.effective_to


# =============================================================================
# Service Allocation
# =============================================================================

@dataclass
class ServiceAllocation:
    """
    One service line in a composed bundle.

    frequency counts visits per frequency_period; duration_minutes is the
    length of one visit.
    """
    service_code: str
    frequency: int
    duration_minutes: int
    category: str
    source: AllocationSource
    rationale: str = ""
    frequency_period: str = "week"
    service_type: Optional[ServiceType] = None
    cost_per_visit: Decimal = Decimal("100.00")

    @property
    def weekly_visits(self) -> Decimal:
        per_week = PERIODS_PER_WEEK.get(self.frequency_period, Decimal(1))
        return Decimal(self.frequency) * per_week

    @property
    def weekly_hours(self) -> float:
        return float(self.weekly_visits) * self.duration_minutes / 60

    @property
    def weekly_cost(self) -> Decimal:
        return (self.weekly_visits * self.cost_per_visit).quantize(
            CENTS, rounding=ROUND_HALF_UP
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_code": self.service_code,
            "service_type": self.service_type.name if self.service_type else None,
            "frequency": self.frequency,
            "frequency_period": self.frequency_period,
            "duration_minutes": self.duration_minutes,
            "rationale": self.rationale,
            "category": self.category,
            "source": self.source.value,
            "cost_per_visit": str(self.cost_per_visit),
            "weekly_cost": str(self.weekly_cost),
        }


# =============================================================================
# Score-keyed Service Intensity
# =============================================================================

@dataclass
class ServiceIntensity:
    """Hours/visits recommendation for one service code."""
    hours: float = 0.0
    visits: float = 0.0
    rationale: str = ""
    source: str = "matrix"
    label: str = ""
    confidence: str = "medium"
    priority: Optional[str] = None
    focus: Optional[str] = None
    cap_triggered: bool = False
    scenario_modifier: Optional[float] = None
    scenario_axis: Optional[str] = None


# =============================================================================
# Cost Annotation
# =============================================================================

@dataclass
class CostBreakdown:
    """Weekly cost of one slice (category or discipline) of a bundle."""
    weekly_cost: Decimal = Decimal("0.00")
    percentage: float = 0.0
    service_count: int = 0
    hours: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekly_cost": str(self.weekly_cost),
            "percentage": self.percentage,
            "service_count": self.service_count,
            "hours": self.hours,
        }


@dataclass
class CostAnnotation:
    """
    Weekly cost of a scenario set against a reference cap.

    cap_utilization is a percentage of reference_cap, rounded to one
    decimal. The breakdown weekly costs sum to weekly_cost exactly.
    """
    reference_cap: Decimal
    weekly_cost: Decimal
    cap_utilization: float
    status: CostStatus
    note: str = ""
    total_weekly_hours: float = 0.0
    total_weekly_visits: float = 0.0
    in_person_percentage: float = 0.0
    virtual_percentage: float = 0.0
    discipline_count: int = 0
    by_category: dict[str, CostBreakdown] = field(default_factory=dict)
    by_discipline: dict[str, CostBreakdown] = field(default_factory=dict)

    @property
    def is_within_cap(self) -> bool:
        return self.status == CostStatus.WITHIN_CAP

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference_cap": str(self.reference_cap),
            "weekly_cost": str(self.weekly_cost),
            "cap_utilization": self.cap_utilization,
            "status": self.status.value,
            "note": self.note,
            "total_weekly_hours": self.total_weekly_hours,
            "total_weekly_visits": self.total_weekly_visits,
            "in_person_percentage": self.in_person_percentage,
            "virtual_percentage": self.virtual_percentage,
            "discipline_count": self.discipline_count,
            "by_category": {k: v.to_dict() for k, v in self.by_category.items()},
            "by_discipline": {k: v.to_dict() for k, v in self.by_discipline.items()},
        }


# =============================================================================
# Scenario Composition
# =============================================================================

@dataclass
class ScenarioComposition:
    """A composed bundle for one axis."""
    axis: ScenarioAxis
    services: list[ServiceAllocation] = field(default_factory=list)
    category_floors: dict[str, CategoryFloor] = field(default_factory=dict)
    triggered_caps: list[str] = field(default_factory=list)
    algorithm_scores: dict[str, Any] = field(default_factory=dict)
    cost: Optional[CostAnnotation] = None

    @property
    def weekly_cost(self) -> Decimal:
        return sum((s.weekly_cost for s in self.services), Decimal("0.00"))

    @property
    def service_codes(self) -> list[str]:
        return [s.service_code for s in self.services]

    def get_service(self, code: str) -> Optional[ServiceAllocation]:
        for service in self.services:
            if service.service_code == code:
                return service
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "axis": self.axis.value,
            "label": self.axis.label,
            "services": [s.to_dict() for s in self.services],
            "category_floors": {
                name: cat.to_dict() for name, cat in self.category_floors.items()
            },
            "triggered_caps": list(self.triggered_caps),
            "algorithm_scores": dict(self.algorithm_scores),
            "weekly_cost": str(self.weekly_cost),
            "cost": self.cost.to_dict() if self.cost else None,
        }
