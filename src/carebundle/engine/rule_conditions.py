"""
CareBundle Rule-Condition Evaluator

Evaluates compiled rule conditions (see packs.rule_parser) against the
triggered CAPs and, for profile comparisons, the patient profile.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from ..models import (
    AllOf,
    AnyOf,
    CAPResult,
    CapLevelIn,
    CapTriggered,
    PatientNeedsProfile,
    ProfileComparison,
    RuleCondition,
)
from .expression import loose_compare


@dataclass(frozen=True)
class RuleContext:
    """What a rule condition can see."""
    triggered_caps: Mapping[str, CAPResult] = field(default_factory=dict)
    profile: Optional[PatientNeedsProfile] = None

    def is_triggered(self, cap_name: str) -> bool:
        result = self.triggered_caps.get(cap_name)
        return result is not None and result.level.is_triggered


def evaluate_rule(condition: RuleCondition, context: RuleContext) -> bool:
    """
    Evaluate one rule condition.

    Profile comparisons are false when no profile is supplied; an unknown
    profile field reads as None and compares loosely.
    """
    if isinstance(condition, CapTriggered):
        return context.is_triggered(condition.cap_name)

    if isinstance(condition, CapLevelIn):
        return any(
            result.level.value in condition.levels
            for result in context.triggered_caps.values()
        )

    if isinstance(condition, ProfileComparison):
        if context.profile is None:
            return False
        actual = context.profile.get_value(condition.field)
        return loose_compare(actual, condition.operator, condition.value)

    if isinstance(condition, AllOf):
        return all(evaluate_rule(child, context) for child in condition.children)

    if isinstance(condition, AnyOf):
        return any(evaluate_rule(child, context) for child in condition.children)

    raise TypeError(f"Unsupported rule condition: {type(condition).__name__}")


def evaluate_all_rules(conditions: Sequence[RuleCondition], context: RuleContext) -> bool:
    """AND a list of conditions together. An empty list passes."""
    return all(evaluate_rule(condition, context) for condition in conditions)
