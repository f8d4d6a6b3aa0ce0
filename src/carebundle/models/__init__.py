"""
CareBundle Models

All domain models for the care-bundle composition engine.

Exports all models organized by category for convenient imports:

    from carebundle.models import (
        # Enums
        CAPLevel, ScenarioAxis, CategoryUnit, AllocationSource,
        # Algorithms
        AlgorithmDefinition, Leaf, Branch,
        # CAPs
        CAPDefinition, CAPResult, ConditionGroup,
        # Profile
        PatientNeedsProfile,
        # Catalog and templates
        CategoryDefinition, IntensityMatrix, AxisTemplate, SubstitutionRuleSet,
        # Outputs
        CategoryFloor, ServiceAllocation, ScenarioComposition,
        # Policies
        AxisSelectionPolicy, CostReference,
    )
"""
from __future__ import annotations

# =============================================================================
# Enums
# =============================================================================
from .enums import (
    AUTHORABLE_CAP_LEVELS,
    AllocationSource,
    AxisPriority,
    CAPLevel,
    CategoryUnit,
    CostStatus,
    DeliveryMode,
    RecommendationPriority,
    ScenarioAxis,
)

# =============================================================================
# Algorithms
# =============================================================================
from .algorithm import (
    AlgorithmDefinition,
    AlgorithmMeta,
    Branch,
    Leaf,
    LeafValue,
    TreeNode,
    iter_nodes,
    tree_depth,
)

# =============================================================================
# CAPs
# =============================================================================
from .cap import (
    CAPDefinition,
    CAPResult,
    CAPTrigger,
    ConditionGroup,
    MinCount,
    ServiceRecommendation,
    TriggerCondition,
)

# =============================================================================
# Profile
# =============================================================================
from .profile import FIELD_ALIASES, PatientNeedsProfile

# =============================================================================
# Rule Conditions
# =============================================================================
from .rules import (
    AllOf,
    AnyOf,
    CapLevelIn,
    CapTriggered,
    ProfileComparison,
    RuleCondition,
)

# =============================================================================
# Catalog, Matrix and Templates
# =============================================================================
from .catalog import (
    CapFloorAdjustment,
    CategoryDefinition,
    IntensityMapping,
    IntensityMatrix,
    MappingEntry,
    ServiceDefinition,
)
from .templates import (
    BOOST_SUFFIXES,
    AxisRequirements,
    AxisTemplate,
    CapPackage,
    CategorySubstitutions,
    PackageEntry,
    SubstitutionPreferences,
    SubstitutionRule,
    SubstitutionRuleSet,
    boost_target,
)

# =============================================================================
# Allocations
# =============================================================================
from .allocation import (
    CapBoost,
    CategoryFloor,
    CostAnnotation,
    CostBreakdown,
    ScenarioComposition,
    ServiceAllocation,
    ServiceIntensity,
    ServiceRate,
    ServiceType,
)

# =============================================================================
# Policies
# =============================================================================
from .policy import DEFAULT_AXIS_THRESHOLDS, AxisSelectionPolicy, CostReference


__all__ = [
    # Enums
    "AUTHORABLE_CAP_LEVELS",
    "AllocationSource",
    "AxisPriority",
    "CAPLevel",
    "CategoryUnit",
    "CostStatus",
    "DeliveryMode",
    "RecommendationPriority",
    "ScenarioAxis",
    # Algorithms
    "AlgorithmDefinition",
    "AlgorithmMeta",
    "Branch",
    "Leaf",
    "LeafValue",
    "TreeNode",
    "iter_nodes",
    "tree_depth",
    # CAPs
    "CAPDefinition",
    "CAPResult",
    "CAPTrigger",
    "ConditionGroup",
    "MinCount",
    "ServiceRecommendation",
    "TriggerCondition",
    # Profile
    "FIELD_ALIASES",
    "PatientNeedsProfile",
    # Rule conditions
    "AllOf",
    "AnyOf",
    "CapLevelIn",
    "CapTriggered",
    "ProfileComparison",
    "RuleCondition",
    # Catalog
    "CapFloorAdjustment",
    "CategoryDefinition",
    "IntensityMapping",
    "IntensityMatrix",
    "MappingEntry",
    "ServiceDefinition",
    # Templates
    "BOOST_SUFFIXES",
    "AxisRequirements",
    "AxisTemplate",
    "CapPackage",
    "CategorySubstitutions",
    "PackageEntry",
    "SubstitutionPreferences",
    "SubstitutionRule",
    "SubstitutionRuleSet",
    "boost_target",
    # Allocations
    "CapBoost",
    "CategoryFloor",
    "CostAnnotation",
    "CostBreakdown",
    "ScenarioComposition",
    "ServiceAllocation",
    "ServiceIntensity",
    "ServiceRate",
    "ServiceType",
    # Policies
    "DEFAULT_AXIS_THRESHOLDS",
    "AxisSelectionPolicy",
    "CostReference",
]
