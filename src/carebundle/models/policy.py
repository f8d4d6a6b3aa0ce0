"""
CareBundle Selection and Cost Policies

Tunable numbers behind axis selection and cost annotation, loaded from
axis_selection.yaml and cost_reference.yaml. The defaults here are the
values the engines use when those documents are absent.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping


# Profile thresholds the axis scoring rules compare against
DEFAULT_AXIS_THRESHOLDS: dict[str, int] = {
    "rehab_score_minimum": 40,
    "weekly_therapy_minutes_minimum": 30,
    "falls_risk_high": 2,
    "health_instability_high": 3,
    "cognitive_complexity_safety": 3,
    "tech_readiness_minimum": 2,
    "tech_health_instability_max": 2,
    "tech_cognitive_complexity_penalty": 4,
    "caregiver_stress_high": 3,
    "caregiver_availability_with_stress": 2,
    "health_instability_medical": 4,
    "skin_integrity_medical": 2,
    "pain_management_medical": 2,
    "active_conditions_medical": 3,
    "cognitive_complexity_high": 3,
    "behavioural_complexity_high": 3,
    "behavioural_complexity_caregiver": 2,
    "mental_health_cognitive": 2,
    "social_support_low": 2,
    "iadl_support_level_minimum": 2,
    "community_cognitive_max": 2,
    "community_health_instability_max": 2,
}


@dataclass(frozen=True)
class AxisSelectionPolicy:
    """
    Scoring knobs for choosing which scenario axes to offer.

    An axis qualifies once its score reaches minimum_score. Balanced
    starts at balanced_base_score and is always offered.
    """
    balanced_base_score: int = 50
    minimum_score: int = 40
    max_axes: int = 4
    thresholds: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_AXIS_THRESHOLDS)
    )
    version: str = "default"

    def threshold(self, name: str) -> int:
        """Configured threshold, falling back to the built-in default."""
        if name in self.thresholds:
            return self.thresholds[name]
        return DEFAULT_AXIS_THRESHOLDS[name]


@dataclass(frozen=True)
class CostReference:
    """
    Reference weekly cap and the utilization bands around it.

    Utilization up to within_cap_ratio is within cap, up to near_cap_ratio
    is near cap, and anything above is over cap.
    """
    weekly_reference_cap: Decimal = Decimal("5000.00")
    within_cap_ratio: float = 0.85
    near_cap_ratio: float = 1.0
    version: str = "default"
