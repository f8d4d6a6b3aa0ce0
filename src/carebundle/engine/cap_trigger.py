"""
CareBundle CAP Trigger Engine

Evaluates Clinical Assessment Protocol definitions against a flat profile
map (see PatientNeedsProfile.to_cap_input).

Key features:
- CAP files resolved from category subdirectories, then the root
- Triggers evaluated in declared order; first match wins
- `default: true` groups match unconditionally
- evaluate_all isolates per-CAP failures and drops NOT_TRIGGERED results
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..exceptions import DefinitionNotFoundError
from ..models import (
    CAPDefinition,
    CAPResult,
    CAPTrigger,
    ConditionGroup,
    TriggerCondition,
)
from ..packs import load_cap_file
from .expression import loose_compare


logger = logging.getLogger(__name__)

# Searched in this order before the root of the CAP directory
CAP_SUBDIRECTORIES: tuple[str, ...] = ("functional", "clinical", "cognition", "social")

CAP_SUFFIXES: tuple[str, ...] = (".yaml", ".yml", ".json")


# =============================================================================
# Condition Evaluation
# =============================================================================

def check_condition(condition: TriggerCondition, profile: Mapping[str, Any]) -> bool:
    """Compare one profile field (None when absent) with the condition value."""
    return loose_compare(profile.get(condition.field), condition.operator, condition.value)


def matches_group(group: ConditionGroup, profile: Mapping[str, Any]) -> bool:
    """
    Evaluate a trigger's condition group.

    Every sub-clause present must pass:
    - all: each condition true
    - any: at least one condition true
    - min_count: at least `count` of its own conditions true

    A group with no sub-clause never matches.
    """
    if group.is_default:
        return True
    if group.is_empty:
        return False

    if group.all and not all(check_condition(c, profile) for c in group.all):
        return False

    if group.any and not any(check_condition(c, profile) for c in group.any):
        return False

    if group.min_count is not None:
        passing = sum(1 for c in group.min_count.conditions if check_condition(c, profile))
        if passing < group.min_count.count:
            return False

    return True


def format_result(cap_name: str, trigger: CAPTrigger) -> CAPResult:
    return CAPResult(
        cap_name=cap_name,
        level=trigger.level,
        description=trigger.description,
        recommendations={
            rec.service_code: rec for rec in trigger.service_recommendations
        },
        guidelines=trigger.care_guidelines,
    )


def evaluate_definition(definition: CAPDefinition, profile: Mapping[str, Any]) -> CAPResult:
    """First matching trigger's result, or a NOT_TRIGGERED result."""
    for trigger in definition.triggers:
        if matches_group(trigger.conditions, profile):
            return format_result(definition.name, trigger)
    return CAPResult.not_triggered(definition.name)


# =============================================================================
# Engine
# =============================================================================

@dataclass
class CAPTriggerEngine:
    """
    Loads and evaluates CAP definitions.

    Usage:
        engine = CAPTriggerEngine(Path("config/cap_triggers"))

        result = engine.evaluate("falls", profile.to_cap_input())
        triggered = engine.evaluate_all(profile.to_cap_input())
    """

    caps_path: Path
    _cache: dict[str, CAPDefinition] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.caps_path = Path(self.caps_path)

    def _search_dirs(self) -> list[Path]:
        return [self.caps_path / sub for sub in CAP_SUBDIRECTORIES] + [self.caps_path]

    def _locate(self, name: str) -> Path:
        for directory in self._search_dirs():
            for suffix in CAP_SUFFIXES:
                candidate = directory / f"{name}{suffix}"
                if candidate.is_file():
                    return candidate
        raise DefinitionNotFoundError(
            message=f"CAP definition not found: {name}",
            details={"directory": str(self.caps_path)},
            definition_name=name,
        )

    def load_cap(self, name: str) -> CAPDefinition:
        """
        Load a CAP by name, caching it for this engine instance.

        Raises:
            DefinitionNotFoundError: If no file exists for the name
            DefinitionLoadError: If the file cannot be parsed
            DefinitionValidationError: If required fields are missing or a
                trigger level is not recognised
        """
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                return cached
            definition = load_cap_file(self._locate(name))
            self._cache[name] = definition
            return definition

    def register(self, definition: CAPDefinition) -> None:
        with self._lock:
            self._cache[definition.name] = definition

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def evaluate(self, name: str, profile: Mapping[str, Any]) -> CAPResult:
        """Evaluate one CAP against a flat profile map."""
        return evaluate_definition(self.load_cap(name), profile)

    def evaluate_all(
        self,
        profile: Mapping[str, Any],
        names: Optional[list[str]] = None,
    ) -> dict[str, CAPResult]:
        """
        Evaluate every available CAP (or the given names).

        A CAP that fails to load or evaluate is logged and skipped; the
        rest of the sweep continues. NOT_TRIGGERED results are dropped.

        Returns:
            CAP name -> triggered result
        """
        triggered: dict[str, CAPResult] = {}
        for name in names if names is not None else self.get_available_caps():
            try:
                result = self.evaluate(name, profile)
            except Exception as e:
                logger.warning(
                    "CAP evaluation failed for %s: %s", name, e,
                    extra={"cap_name": name, "error": str(e)},
                )
                continue
            if result.is_triggered:
                triggered[name] = result
        return triggered

    def get_cap_meta(self, name: str) -> dict[str, Any]:
        return self.load_cap(name).meta()

    def get_available_caps(self) -> list[str]:
        """
        Names of every CAP file, in search-directory order.

        Sorted within each directory; a name found twice is listed once.
        """
        names: list[str] = []
        for directory in self._search_dirs():
            if not directory.is_dir():
                continue
            for path in sorted(directory.iterdir()):
                if (
                    path.is_file()
                    and path.suffix.lower() in CAP_SUFFIXES
                    and path.stem not in names
                ):
                    names.append(path.stem)
        return names


def create_engine(caps_path: Union[str, Path]) -> CAPTriggerEngine:
    return CAPTriggerEngine(Path(caps_path))
