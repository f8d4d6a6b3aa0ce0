"""
CareBundle Exception Hierarchy

Domain-specific exceptions for the care-bundle composition engine.
All exceptions include error codes for tracking and logging.

Only configuration problems raise. Evaluation-time gaps (unknown
variables, unmapped scores, missing categories) resolve to documented
defaults and never surface here.

Exception codes follow the pattern: CB_<CATEGORY>_<SPECIFIC>
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class CareBundleError(Exception):
    """
    Base exception for all CareBundle errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (CB_*)
        details: Additional context about the error
        definition_name: Associated algorithm/CAP/document name if applicable
        source: File the error came from; defaults to details["path"]
    """
    message: str
    code: str = "CB_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)
    definition_name: Optional[str] = None
    source: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.source is None and self.details.get("path"):
            self.source = str(self.details["path"])

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.definition_name:
            parts.append(f"(definition: {self.definition_name})")
        if self.source:
            parts.append(f"(source: {self.source})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/API responses."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.definition_name:
            result["definition_name"] = self.definition_name
        if self.source:
            result["source"] = self.source
        return result


# =============================================================================
# Definition Errors (configuration defects, never retried)
# =============================================================================

@dataclass
class DefinitionLoadError(CareBundleError):
    """Definition file could not be read or parsed."""
    code: str = "CB_DEFINITION_LOAD_ERROR"


@dataclass
class DefinitionNotFoundError(CareBundleError):
    """Requested algorithm or CAP definition does not exist."""
    code: str = "CB_DEFINITION_NOT_FOUND"


@dataclass
class DefinitionValidationError(CareBundleError):
    """Definition failed schema or structural validation."""
    code: str = "CB_DEFINITION_VALIDATION_ERROR"


# =============================================================================
# Rule Condition Errors
# =============================================================================

@dataclass
class ConditionSyntaxError(CareBundleError):
    """Rule-condition string could not be parsed."""
    code: str = "CB_CONDITION_SYNTAX"
