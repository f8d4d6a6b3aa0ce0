"""
CareBundle CAP Models

Clinical Assessment Protocols (CAPs) are ordered trigger lists. The first
trigger whose condition group matches decides the CAP's level.

Key components:
- TriggerCondition: a single field/operator/value comparison
- ConditionGroup: all / any / min_count sub-clauses, ANDed together
- CAPTrigger, CAPDefinition: the loaded protocol
- CAPResult: outcome of evaluating a CAP against a profile
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .enums import CAPLevel, RecommendationPriority


# =============================================================================
# Conditions
# =============================================================================

@dataclass(frozen=True)
class TriggerCondition:
    """Comparison of one profile field against a literal value."""
    field: str
    operator: str = "=="
    value: Any = None


@dataclass(frozen=True)
class MinCount:
    """At least `count` of `conditions` must hold."""
    count: int
    conditions: tuple[TriggerCondition, ...] = ()


@dataclass(frozen=True)
class ConditionGroup:
    """
    Condition group of a CAP trigger.

    A group with `is_default` matches unconditionally. Otherwise every
    sub-clause that is present must pass; a group with none of them never
    matches.
    """
    all: tuple[TriggerCondition, ...] = ()
    any: tuple[TriggerCondition, ...] = ()
    min_count: Optional[MinCount] = None
    is_default: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.all or self.any or self.min_count is not None)


# =============================================================================
# Triggers and Definitions
# =============================================================================

@dataclass(frozen=True)
class ServiceRecommendation:
    """Service a CAP recommends when triggered."""
    service_code: str
    priority: RecommendationPriority = RecommendationPriority.OPTIONAL
    frequency_multiplier: float = 1.0
    focus: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "frequency_multiplier": self.frequency_multiplier,
            "focus": self.focus,
        }


@dataclass(frozen=True)
class CAPTrigger:
    """One ordered trigger of a CAP."""
    level: CAPLevel
    conditions: ConditionGroup
    description: str = ""
    service_recommendations: tuple[ServiceRecommendation, ...] = ()
    care_guidelines: tuple[str, ...] = ()


@dataclass(frozen=True)
class CAPDefinition:
    """A validated Clinical Assessment Protocol."""
    name: str
    version: str
    triggers: tuple[CAPTrigger, ...]
    category: str = "unknown"
    applicable_instruments: tuple[str, ...] = ()
    source: Optional[str] = None

    def meta(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "source": self.source,
            "applicable_instruments": list(self.applicable_instruments),
            "category": self.category,
            "trigger_levels": [t.level.value for t in self.triggers],
        }


# =============================================================================
# Evaluation Result
# =============================================================================

@dataclass(frozen=True)
class CAPResult:
    """
    Outcome of evaluating one CAP.

    recommendations is keyed by service code.
    """
    cap_name: str
    level: CAPLevel
    description: str = ""
    recommendations: dict[str, ServiceRecommendation] = field(default_factory=dict)
    guidelines: tuple[str, ...] = ()

    @property
    def is_triggered(self) -> bool:
        return self.level.is_triggered

    @classmethod
    def not_triggered(cls, cap_name: str) -> CAPResult:
        return cls(
            cap_name=cap_name,
            level=CAPLevel.NOT_TRIGGERED,
            description="No CAP triggered",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "cap_name": self.cap_name,
            "description": self.description,
            "recommendations": {
                code: rec.to_dict() for code, rec in self.recommendations.items()
            },
            "guidelines": list(self.guidelines),
        }
