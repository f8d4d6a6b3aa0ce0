"""
CareBundle Category Intensity Resolver

Turns algorithm scores, triggered CAPs and the patient profile into
per-category budgets (CategoryFloor). The composition engine later picks
concrete services inside each category.

Resolution order:
1. Algorithm floors: each driver score is looked up in the category's
   floor mapping; the largest floor/recommended across drivers wins
2. CAP adjustments from the matrix, scaled by CAP level, then the flat
   booster for categories listing the CAP in cap_boosters
3. Profile boosts (cognition, falls, living alone, caregiver stress, pain)
4. Clamp: recommended >= floor
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..models import (
    CAPResult,
    CapBoost,
    CategoryDefinition,
    CategoryFloor,
    IntensityMatrix,
    PatientNeedsProfile,
    ServiceDefinition,
)
from ..packs import build_intensity_matrix, build_service_categories, read_optional_document
from ..settings import DEFAULT_CONFIG_DIR


logger = logging.getLogger(__name__)

# Recommended allocation over the mapped floor
RECOMMENDED_BUFFER = 1.2

LEVEL_MULTIPLIERS: dict[str, float] = {
    "IMPROVE": 1.0,
    "PREVENT": 0.7,
    "FACILITATE": 0.5,
    "MAINTAIN": 0.3,
}

# Flat boost for a category listing a triggered CAP in cap_boosters
BOOSTER_FLOOR_ADD = 1.0
BOOSTER_RECOMMENDED_ADD = 2.0

PERSONAL_SUPPORT = "personal_support"
CLINICAL_MONITORING = "clinical_monitoring"
RISK_MANAGEMENT = "risk_mgmt_and_complexity"
SOCIAL_SUPPORT = "social_support"


@dataclass
class CategoryIntensityResolver:
    """
    Resolves category floors and eligible services.

    Usage:
        resolver = CategoryIntensityResolver.from_paths(
            "config/service_categories.json",
            "config/service_intensity_matrix.json",
        )
        floors = resolver.resolve_to_categories(scores, triggered_caps, profile)
        eligible = resolver.get_eligible_services("personal_support", profile, triggered_caps)
    """

    categories: dict[str, CategoryDefinition] = field(default_factory=dict)
    matrix: IntensityMatrix = field(default_factory=IntensityMatrix)

    @classmethod
    def from_paths(
        cls,
        categories_path: Union[str, Path],
        matrix_path: Union[str, Path],
    ) -> CategoryIntensityResolver:
        """
        Load both documents. A missing document is logged and resolves
        to empty configuration; a malformed one raises.
        """
        categories: dict[str, CategoryDefinition] = {}
        data = read_optional_document(categories_path, "Service categories config")
        if data is not None:
            categories = build_service_categories(data, source=str(categories_path))

        matrix = IntensityMatrix()
        data = read_optional_document(matrix_path, "Service intensity matrix")
        if data is not None:
            matrix = build_intensity_matrix(data, source=str(matrix_path))

        return cls(categories=categories, matrix=matrix)

    def get_category_definitions(self) -> dict[str, CategoryDefinition]:
        return dict(self.categories)

    # =========================================================================
    # Category Floors
    # =========================================================================

    def resolve_to_categories(
        self,
        algorithm_scores: Mapping[str, Any],
        triggered_caps: Mapping[str, CAPResult],
        profile: PatientNeedsProfile,
    ) -> dict[str, CategoryFloor]:
        """
        Resolve scores, CAPs and profile into category budgets.

        Args:
            algorithm_scores: Algorithm name -> score
            triggered_caps: CAP name -> result
            profile: Patient needs profile

        Returns:
            Category name -> CategoryFloor, in configuration order
        """
        if not self.categories:
            logger.debug("No service categories configured, nothing to resolve")
        floors = {
            name: self._algorithm_floor(definition, algorithm_scores)
            for name, definition in self.categories.items()
        }
        self._apply_cap_adjustments(floors, triggered_caps)
        self._apply_profile_adjustments(floors, profile)

        for floor in floors.values():
            floor.recommended = max(floor.floor, floor.recommended)
        return floors

    def _algorithm_floor(
        self, definition: CategoryDefinition, scores: Mapping[str, Any]
    ) -> CategoryFloor:
        result = CategoryFloor(category=definition.name, unit=definition.unit)
        mapping = None
        if definition.floor_mapping:
            mapping = self.matrix.mappings.get(definition.floor_mapping)
        if mapping is None:
            return result

        for driver in definition.algorithm_drivers:
            if driver not in scores or scores[driver] is None:
                continue
            entry = mapping.lookup(int(scores[driver]))
            if entry is None:
                continue
            result.floor = max(result.floor, entry.amount)
            result.recommended = max(
                result.recommended, round(entry.amount * RECOMMENDED_BUFFER, 2)
            )
        return result

    def _apply_cap_adjustments(
        self,
        floors: dict[str, CategoryFloor],
        triggered_caps: Mapping[str, CAPResult],
    ) -> None:
        for cap_name, result in triggered_caps.items():
            if not result.is_triggered:
                continue
            level = result.level.value
            multiplier = LEVEL_MULTIPLIERS.get(level, 0.0)

            for category, adjustment in self.matrix.cap_floor_adjustments.get(cap_name, {}).items():
                target = floors.get(category)
                if target is None:
                    continue
                floor_add = adjustment.floor_add * multiplier
                recommended_add = adjustment.recommended_add * multiplier
                target.add(floor_add, recommended_add)
                target.triggered_caps.append(cap_name)
                target.cap_boosts[cap_name] = CapBoost(floor_add, recommended_add, level)

            for category, definition in self.categories.items():
                target = floors[category]
                if cap_name in definition.cap_boosters and cap_name not in target.triggered_caps:
                    target.add(BOOSTER_FLOOR_ADD, BOOSTER_RECOMMENDED_ADD)
                    target.triggered_caps.append(cap_name)
                    target.cap_boosts[cap_name] = CapBoost(
                        BOOSTER_FLOOR_ADD, BOOSTER_RECOMMENDED_ADD, level
                    )

    @staticmethod
    def _apply_profile_adjustments(
        floors: dict[str, CategoryFloor], profile: PatientNeedsProfile
    ) -> None:
        def boost(category: str, floor_add: float, recommended_add: float) -> None:
            target = floors.get(category)
            if target is not None:
                target.add(floor_add, recommended_add)

        if profile.cognitive_complexity >= 3:
            amount = (profile.cognitive_complexity - 2) * 2
            boost(PERSONAL_SUPPORT, amount, amount * 1.5)
            boost(RISK_MANAGEMENT, 1, 2)

        if profile.falls_risk_level >= 2:
            boost(RISK_MANAGEMENT, profile.falls_risk_level, profile.falls_risk_level * 1.5)

        if profile.lives_alone:
            boost(RISK_MANAGEMENT, 2, 3)
            boost(SOCIAL_SUPPORT, 1, 2)

        if profile.caregiver_stress_level >= 3:
            boost(SOCIAL_SUPPORT, 2, 4)

        if profile.effective_pain_score >= 2:
            boost(CLINICAL_MONITORING, 1, 1)

    # =========================================================================
    # Eligibility
    # =========================================================================

    def get_eligible_services(
        self,
        category: str,
        profile: PatientNeedsProfile,
        triggered_caps: Mapping[str, CAPResult],
    ) -> dict[str, ServiceDefinition]:
        """
        Services of a category that pass every gate they declare.

        Unknown categories have no eligible services.
        """
        definition = self.categories.get(category)
        if definition is None:
            return {}
        return {
            code: service
            for code, service in definition.services.items()
            if is_eligible(service, profile, triggered_caps)
        }


def is_eligible(
    service: ServiceDefinition,
    profile: PatientNeedsProfile,
    triggered_caps: Mapping[str, CAPResult],
) -> bool:
    if service.requires_tech and (profile.technology_readiness < 2 or not profile.has_internet):
        return False

    if service.requires_cap and not any(
        cap in triggered_caps and triggered_caps[cap].is_triggered
        for cap in service.requires_cap
    ):
        return False

    if service.requires_clinical and not profile.requires_extensive_services:
        return False

    return True


def create_resolver(config_dir: Optional[Union[str, Path]] = None) -> CategoryIntensityResolver:
    """Resolver over a configuration directory (default: bundled config)."""
    root = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    return CategoryIntensityResolver.from_paths(
        root / "service_categories.json",
        root / "service_intensity_matrix.json",
    )
