"""
CareBundle Category and Intensity Models

Key components:
- ServiceDefinition / CategoryDefinition: the category service catalog
  with its eligibility gates
- MappingEntry / IntensityMapping: score -> hours/visits tables
- CapFloorAdjustment / IntensityMatrix: the service intensity matrix
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .enums import CategoryUnit


# =============================================================================
# Service Categories
# =============================================================================

@dataclass(frozen=True)
class ServiceDefinition:
    """
    A service a category can allocate to.

    Eligibility gates (each applies only when declared):
    - requires_tech: technology_readiness >= 2 and internet access
    - requires_cap: at least one listed CAP triggered
    - requires_clinical: profile requires extensive services
    """
    code: str
    name: str = ""
    is_primary: bool = False
    requires_tech: bool = False
    requires_cap: tuple[str, ...] = ()
    requires_clinical: bool = False


@dataclass(frozen=True)
class CategoryDefinition:
    name: str
    unit: CategoryUnit = CategoryUnit.UNITS
    description: str = ""
    algorithm_drivers: tuple[str, ...] = ()
    cap_boosters: tuple[str, ...] = ()
    floor_mapping: Optional[str] = None
    services: Mapping[str, ServiceDefinition] = field(default_factory=dict)


# =============================================================================
# Intensity Matrix
# =============================================================================

@dataclass(frozen=True)
class MappingEntry:
    """One score row of an intensity mapping."""
    hours: Optional[float] = None
    visits: Optional[float] = None
    label: str = ""
    rationale: Optional[str] = None
    confidence: str = "medium"

    @property
    def amount(self) -> float:
        """Hours when the row has them, else visits, else zero."""
        if self.hours is not None:
            return self.hours
        if self.visits is not None:
            return self.visits
        return 0.0


@dataclass(frozen=True)
class IntensityMapping:
    """Score-keyed table translating an algorithm score into service volume."""
    name: str
    mappings: Mapping[int, MappingEntry]
    description: str = ""
    algorithm: Optional[str] = None
    source: Optional[str] = None
    modifiers: Mapping[str, float] = field(default_factory=dict)

    def lookup(self, score: int) -> Optional[MappingEntry]:
        """
        Exact score row, else the row whose key is closest to the score.

        Ties between equally close keys go to the smaller key.
        """
        if not self.mappings:
            return None
        if score in self.mappings:
            return self.mappings[score]
        closest = min(sorted(self.mappings), key=lambda key: abs(score - key))
        return self.mappings[closest]


@dataclass(frozen=True)
class CapFloorAdjustment:
    floor_add: float = 0.0
    recommended_add: float = 0.0


@dataclass(frozen=True)
class IntensityMatrix:
    """The service intensity matrix document."""
    version: str = "unknown"
    mappings: Mapping[str, IntensityMapping] = field(default_factory=dict)
    cap_floor_adjustments: Mapping[str, Mapping[str, CapFloorAdjustment]] = field(
        default_factory=dict
    )
    last_updated: Optional[str] = None
    updated_by: Optional[str] = None
    review_status: str = "unknown"
    next_review_date: Optional[str] = None

    def meta(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "last_updated": self.last_updated,
            "updated_by": self.updated_by,
            "review_status": self.review_status,
            "next_review_date": self.next_review_date,
            "available_mappings": list(self.mappings),
        }
