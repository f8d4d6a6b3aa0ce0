"""
CareBundle Rule Conditions

Composable condition trees for substitution rules and CAP packages.
Built by the rule-condition parser at load time and evaluated by
engine.rule_conditions.

Key components:
- CapTriggered: a named CAP fired at any level
- CapLevelIn: some triggered CAP sits at one of the listed levels
- ProfileComparison: a profile field compared against a literal
- AllOf / AnyOf: AND / OR combinators
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class CapTriggered:
    cap_name: str

    def referenced_caps(self) -> list[str]:
        return [self.cap_name]


@dataclass(frozen=True)
class CapLevelIn:
    levels: tuple[str, ...]

    def referenced_caps(self) -> list[str]:
        return []


@dataclass(frozen=True)
class ProfileComparison:
    field: str
    operator: str
    value: Any

    def referenced_caps(self) -> list[str]:
        return []


@dataclass(frozen=True)
class AllOf:
    children: tuple[RuleCondition, ...]

    def referenced_caps(self) -> list[str]:
        return _collect(self.children)


@dataclass(frozen=True)
class AnyOf:
    children: tuple[RuleCondition, ...]

    def referenced_caps(self) -> list[str]:
        return _collect(self.children)


RuleCondition = Union[CapTriggered, CapLevelIn, ProfileComparison, AllOf, AnyOf]


def _collect(children: tuple[RuleCondition, ...]) -> list[str]:
    names: list[str] = []
    for child in children:
        for name in child.referenced_caps():
            if name not in names:
                names.append(name)
    return names
