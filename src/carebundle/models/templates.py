"""
CareBundle Axis Templates and Substitution Rules

Key components:
- AxisTemplate: the preference profile behind a scenario axis
- SubstitutionPreferences: per-category preference flags of a template
- SubstitutionRule / CategorySubstitutions: within-category substitutions
- CapPackage: cross-category services added when CAPs fire
- SubstitutionRuleSet: the full substitution document
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from .profile import PatientNeedsProfile
from .rules import RuleCondition


# Suffixes marking a package entry that boosts an existing service.
# Ordered longest first so "NUR_wound_care_boost" strips to "NUR".
BOOST_SUFFIXES: tuple[str, ...] = (
    "_nutrition_monitoring_boost",
    "_supervision_boost",
    "_wound_care_boost",
    "_positioning_boost",
    "_boost",
)


def boost_target(entry_code: str) -> Optional[str]:
    """Base service code of a boost entry, or None for a regular entry."""
    for suffix in BOOST_SUFFIXES:
        if entry_code.endswith(suffix):
            return entry_code[: -len(suffix)]
    return None


# =============================================================================
# Axis Templates
# =============================================================================

@dataclass(frozen=True)
class AxisRequirements:
    """Profile gate an axis must pass before its template is used."""
    tech_readiness_min: Optional[int] = None
    has_internet: bool = False
    cognitive_complexity_max: Optional[int] = None

    def is_met(self, profile: PatientNeedsProfile) -> bool:
        if (
            self.tech_readiness_min is not None
            and profile.technology_readiness < self.tech_readiness_min
        ):
            return False
        if self.has_internet and not profile.has_internet:
            return False
        if (
            self.cognitive_complexity_max is not None
            and profile.cognitive_complexity > self.cognitive_complexity_max
        ):
            return False
        return True


@dataclass(frozen=True)
class SubstitutionPreferences:
    """
    Substitution preference flags for one category.

    Only prefer_in_person can veto a substitute (remote codes); the other
    flags endorse specific codes and leave everything else permitted.
    """
    prefer_in_person: bool = False
    max_remote_ratio: Optional[float] = None
    remote_services: tuple[str, ...] = ()
    prefer_specialized: bool = False
    specialized_services: tuple[str, ...] = ()
    maximize_tech: bool = False
    include_safety_checks: bool = False
    include_respite_ratio: Optional[float] = None
    prioritize_respite: bool = False
    include_day_program_ratio: Optional[float] = None
    express_as_day_program_ratio: bool = False


@dataclass(frozen=True)
class AxisTemplate:
    axis: str
    target_mix: Mapping[str, float] = field(default_factory=dict)
    primary_services: tuple[str, ...] = ()
    secondary_services: tuple[str, ...] = ()
    excluded_services: tuple[str, ...] = ()
    requirements: AxisRequirements = field(default_factory=AxisRequirements)
    substitution_preferences: Mapping[str, SubstitutionPreferences] = field(
        default_factory=dict
    )
    cap_priorities: tuple[str, ...] = ()
    description: str = ""

    def preferences_for(self, category: str) -> SubstitutionPreferences:
        return self.substitution_preferences.get(category, SubstitutionPreferences())


# =============================================================================
# Substitution Rules
# =============================================================================

@dataclass(frozen=True)
class SubstitutionRule:
    """
    Move up to max_ratio of a category's target onto a substitute service.

    conditions are ANDed.
    """
    substitute: str
    max_ratio: float
    conditions: tuple[RuleCondition, ...] = ()
    rationale: Optional[str] = None


@dataclass(frozen=True)
class CategorySubstitutions:
    hard_floor_service: Optional[str] = None
    hard_floor_ratio: float = 0.0
    rules: tuple[SubstitutionRule, ...] = ()


@dataclass(frozen=True)
class PackageEntry:
    """Service added, or boosted, by a CAP package."""
    frequency: float = 1
    unit: str = "week"
    visits_add: Optional[float] = None
    hours_add: Optional[float] = None

    @property
    def boost_amount(self) -> float:
        if self.visits_add is not None:
            return self.visits_add
        if self.hours_add is not None:
            return self.hours_add
        return 0.0


@dataclass(frozen=True)
class CapPackage:
    name: str
    trigger_condition: Optional[RuleCondition]
    trigger_text: str = ""
    adds: Mapping[str, Mapping[str, PackageEntry]] = field(default_factory=dict)

    def referenced_caps(self) -> list[str]:
        if self.trigger_condition is None:
            return []
        return self.trigger_condition.referenced_caps()


@dataclass(frozen=True)
class SubstitutionRuleSet:
    within_category: Mapping[str, CategorySubstitutions] = field(default_factory=dict)
    packages: tuple[CapPackage, ...] = ()
    version: str = "unknown"

    def for_category(self, category: str) -> CategorySubstitutions:
        return self.within_category.get(category, CategorySubstitutions())
