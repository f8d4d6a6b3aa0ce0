"""
CareBundle - Care Bundle Composition Engine

CareBundle turns standardized home-care assessment data into costed
service bundles. It proposes bundles; the care coordinator decides.

Key Features:
- JSON decision-tree algorithms with a small expression language
- YAML Clinical Assessment Protocol (CAP) triggers
- Category floors from scores, CAPs and the patient profile
- Scenario axes (recovery, safety, tech-enabled, caregiver relief, ...)
- Within-category substitutions and CAP-driven service packages
- Profile-driven axis selection, balanced always offered
- Date-effective service rates for weekly cost estimates
- Cost annotation against a reference weekly cap

Quick Start:
    from carebundle import BundlePipeline, PatientNeedsProfile

    pipeline = BundlePipeline.from_settings()
    profile = PatientNeedsProfile(has_full_hc_assessment=True, adl_support_level=3)
    scenarios = pipeline.generate_scenarios(profile, raw_items={"iB3a": 2})

    for scenario in scenarios:
        print(scenario.axis.label, scenario.weekly_cost)

Version: 0.1.0
"""
from __future__ import annotations

__version__ = "0.1.0"

# =============================================================================
# Core Models (Re-exported for convenience)
# =============================================================================
from .models import (
    # Enums
    AllocationSource,
    CAPLevel,
    CategoryUnit,
    RecommendationPriority,
    ScenarioAxis,
    # Definitions
    AlgorithmDefinition,
    AxisTemplate,
    CAPDefinition,
    CAPResult,
    CategoryDefinition,
    IntensityMatrix,
    SubstitutionRuleSet,
    # Profile
    PatientNeedsProfile,
    # Outputs
    CategoryFloor,
    CostAnnotation,
    ScenarioComposition,
    ServiceAllocation,
    ServiceIntensity,
)

# =============================================================================
# Engines
# =============================================================================
from .engine import (
    AssessmentScorer,
    AxisSelector,
    BundlePipeline,
    CAPTriggerEngine,
    CategoryIntensityResolver,
    CostAnnotator,
    DecisionTreeEngine,
    ScenarioCompositionEngine,
    ServiceIntensityResolver,
)

# =============================================================================
# Configuration
# =============================================================================
from .logging_setup import configure_logging
from .settings import Settings, get_settings

# =============================================================================
# Exceptions
# =============================================================================
from .exceptions import (
    CareBundleError,
    ConditionSyntaxError,
    DefinitionLoadError,
    DefinitionNotFoundError,
    DefinitionValidationError,
)

# =============================================================================
# Public API
# =============================================================================
__all__ = [
    # Version
    "__version__",
    # Enums
    "AllocationSource",
    "CAPLevel",
    "CategoryUnit",
    "RecommendationPriority",
    "ScenarioAxis",
    # Definitions
    "AlgorithmDefinition",
    "AxisTemplate",
    "CAPDefinition",
    "CAPResult",
    "CategoryDefinition",
    "IntensityMatrix",
    "SubstitutionRuleSet",
    # Profile
    "PatientNeedsProfile",
    # Outputs
    "CategoryFloor",
    "CostAnnotation",
    "ScenarioComposition",
    "ServiceAllocation",
    "ServiceIntensity",
    # Engines
    "AssessmentScorer",
    "AxisSelector",
    "BundlePipeline",
    "CAPTriggerEngine",
    "CategoryIntensityResolver",
    "CostAnnotator",
    "DecisionTreeEngine",
    "ScenarioCompositionEngine",
    "ServiceIntensityResolver",
    # Configuration
    "Settings",
    "configure_logging",
    "get_settings",
    # Exceptions
    "CareBundleError",
    "ConditionSyntaxError",
    "DefinitionLoadError",
    "DefinitionNotFoundError",
    "DefinitionValidationError",
]
