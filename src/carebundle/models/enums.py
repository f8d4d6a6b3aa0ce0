"""
CareBundle Enumerations

All enumeration types used throughout the CareBundle engine.

All enums inherit from (str, Enum) for JSON serialization compatibility.
"""
from __future__ import annotations

from enum import Enum


# =============================================================================
# CAP Levels
# =============================================================================

class CAPLevel(str, Enum):
    """
    Clinical Assessment Protocol trigger levels.

    MAINTAIN is accepted from upstream callers (and scaled by the category
    resolver) but cannot be authored in a CAP definition.
    """
    IMPROVE = "IMPROVE"
    PREVENT = "PREVENT"
    FACILITATE = "FACILITATE"
    MAINTAIN = "MAINTAIN"
    NOT_TRIGGERED = "NOT_TRIGGERED"

    @property
    def is_triggered(self) -> bool:
        return self != CAPLevel.NOT_TRIGGERED


# Levels a CAP definition may declare on a trigger
AUTHORABLE_CAP_LEVELS: frozenset[str] = frozenset({
    CAPLevel.IMPROVE.value,
    CAPLevel.PREVENT.value,
    CAPLevel.FACILITATE.value,
    CAPLevel.NOT_TRIGGERED.value,
})


# =============================================================================
# Scenario Axes
# =============================================================================

class ScenarioAxis(str, Enum):
    """
    Patient-experience orientations for bundle scenarios.

    Each axis biases service selection without overriding clinical floors.
    """
    RECOVERY_REHAB = "recovery_rehab"
    SAFETY_STABILITY = "safety_stability"
    TECH_ENABLED = "tech_enabled"
    CAREGIVER_RELIEF = "caregiver_relief"
    MEDICAL_INTENSIVE = "medical_intensive"
    COGNITIVE_SUPPORT = "cognitive_support"
    COMMUNITY_INTEGRATED = "community_integrated"
    BALANCED = "balanced"

    @property
    def label(self) -> str:
        return _AXIS_LABELS[self]

    @property
    def description(self) -> str:
        return _AXIS_DESCRIPTIONS[self]

    @property
    def is_primary(self) -> bool:
        """Primary axes are the ones commonly offered to patients."""
        return self in _PRIMARY_AXES

    @classmethod
    def primary_axes(cls) -> list[ScenarioAxis]:
        return [axis for axis in cls if axis.is_primary]


_AXIS_LABELS: dict[ScenarioAxis, str] = {
    ScenarioAxis.RECOVERY_REHAB: "Recovery-Focused Care",
    ScenarioAxis.SAFETY_STABILITY: "Safety & Stability",
    ScenarioAxis.TECH_ENABLED: "Tech-Enabled Care",
    ScenarioAxis.CAREGIVER_RELIEF: "Caregiver Relief",
    ScenarioAxis.MEDICAL_INTENSIVE: "Medical Intensive",
    ScenarioAxis.COGNITIVE_SUPPORT: "Cognitive Support",
    ScenarioAxis.COMMUNITY_INTEGRATED: "Community Integrated",
    ScenarioAxis.BALANCED: "Balanced Care",
}

_AXIS_DESCRIPTIONS: dict[ScenarioAxis, str] = {
    ScenarioAxis.RECOVERY_REHAB: (
        "Prioritizes therapy and function restoration with intensive "
        "PT/OT services to support recovery goals."
    ),
    ScenarioAxis.SAFETY_STABILITY: (
        "Maximizes daily functioning and fall prevention with consistent "
        "PSW support and nursing monitoring."
    ),
    ScenarioAxis.TECH_ENABLED: (
        "Leverages remote monitoring and telehealth for continuous "
        "oversight with targeted in-person visits."
    ),
    ScenarioAxis.CAREGIVER_RELIEF: (
        "Supports both patient and family caregiver with respite hours, "
        "homemaking, and family support services."
    ),
    ScenarioAxis.MEDICAL_INTENSIVE: (
        "Provides intensive clinical care with high nursing frequency "
        "for complex medical needs."
    ),
    ScenarioAxis.COGNITIVE_SUPPORT: (
        "Focuses on cognitive stimulation and behavioural support with "
        "structured routines and supervision."
    ),
    ScenarioAxis.COMMUNITY_INTEGRATED: (
        "Emphasizes social engagement and community connections through "
        "day programs and social services."
    ),
    ScenarioAxis.BALANCED: (
        "Provides a balanced mix of services across all care domains "
        "based on assessed needs."
    ),
}

_PRIMARY_AXES = frozenset({
    ScenarioAxis.RECOVERY_REHAB,
    ScenarioAxis.SAFETY_STABILITY,
    ScenarioAxis.TECH_ENABLED,
    ScenarioAxis.CAREGIVER_RELIEF,
})


# =============================================================================
# Allocation Vocabulary
# =============================================================================

class CategoryUnit(str, Enum):
    """Unit a category budget is expressed in."""
    HOURS = "hours"
    VISITS = "visits"
    UNITS = "units"


class AllocationSource(str, Enum):
    """Where a service allocation came from."""
    FLOOR = "floor"
    SUBSTITUTION = "substitution"
    PRIMARY = "primary"
    CAP_PACKAGE = "cap_package"


class AxisPriority(str, Enum):
    """Rank of an eligible service under an axis template."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


class RecommendationPriority(str, Enum):
    """Priority attached to a CAP service recommendation."""
    CORE = "core"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class DeliveryMode(str, Enum):
    """How a service reaches the patient."""
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"
    AUTOMATED = "automated"

    @property
    def is_remote(self) -> bool:
        return self in (DeliveryMode.VIRTUAL, DeliveryMode.AUTOMATED)


# =============================================================================
# Cost Annotation
# =============================================================================

class CostStatus(str, Enum):
    """Weekly cost relative to the reference cap."""
    WITHIN_CAP = "within_cap"
    NEAR_CAP = "near_cap"
    OVER_CAP = "over_cap"
