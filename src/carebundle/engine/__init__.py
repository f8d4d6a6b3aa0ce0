"""
CareBundle Engine

Evaluators, resolvers and composition for care-bundle scenarios.

Services:
- DecisionTreeEngine: Load and evaluate decision-tree algorithms
- CAPTriggerEngine: Load and evaluate Clinical Assessment Protocols
- AssessmentScorer: Score raw assessment items with the standard algorithms
- CategoryIntensityResolver: Resolve scores and CAPs into category floors
- ScenarioCompositionEngine: Compose services per scenario axis
- ServiceIntensityResolver: Score-keyed per-service intensities
- AxisSelector: Choose the scenario axes worth offering for a profile
- CostAnnotator: Weekly cost against a reference cap, with breakdowns
- BundlePipeline: End-to-end facade over the engines above

Usage:
    from carebundle.engine import (
        BundlePipeline,
        CAPTriggerEngine,
        DecisionTreeEngine,
        ScenarioCompositionEngine,
    )
"""
from __future__ import annotations

# Rule interpretation
from .expression import (
    evaluate_condition,
    evaluate_expression,
    expression_identifiers,
    loose_compare,
    loose_equals,
    parse_expression,
    to_bool,
    to_number,
)
from .rule_conditions import (
    RuleContext,
    evaluate_all_rules,
    evaluate_rule,
)
from .decision_tree import (
    DecisionTreeEngine,
    LintFinding,
    lint_definition,
    traverse,
)
from .cap_trigger import (
    CAPTriggerEngine,
    check_condition,
    matches_group,
)
from .scoring import (
    CA_TO_HC_MAP,
    AssessmentScorer,
    map_to_ca_input,
)

# Allocation
from .catalog import (
    InMemoryRateRepository,
    InMemoryServiceCatalog,
    RateRepository,
    ServiceCatalog,
    load_catalog,
)
from .category_resolver import (
    CategoryIntensityResolver,
    create_resolver,
    is_eligible,
)
from .composition import (
    ScenarioCompositionEngine,
    amount_to_frequency,
    consolidate_services,
    rank_services,
)
from .service_intensity import ServiceIntensityResolver
from .axis_selector import AxisCandidate, AxisSelector
from .cost_annotation import CostAnnotator, annotate_costs, compare_scenarios
from .pipeline import BundlePipeline


__all__ = [
    # Expressions
    "evaluate_condition",
    "evaluate_expression",
    "expression_identifiers",
    "loose_compare",
    "loose_equals",
    "parse_expression",
    "to_bool",
    "to_number",
    # Rule conditions
    "RuleContext",
    "evaluate_all_rules",
    "evaluate_rule",
    # Decision trees
    "DecisionTreeEngine",
    "LintFinding",
    "lint_definition",
    "traverse",
    # CAPs
    "CAPTriggerEngine",
    "check_condition",
    "matches_group",
    # Scoring
    "CA_TO_HC_MAP",
    "AssessmentScorer",
    "map_to_ca_input",
    # Catalog
    "InMemoryRateRepository",
    "InMemoryServiceCatalog",
    "RateRepository",
    "ServiceCatalog",
    "load_catalog",
    # Categories
    "CategoryIntensityResolver",
    "create_resolver",
    "is_eligible",
    # Composition
    "ScenarioCompositionEngine",
    "amount_to_frequency",
    "consolidate_services",
    "rank_services",
    # Service intensity
    "ServiceIntensityResolver",
    # Axis selection
    "AxisCandidate",
    "AxisSelector",
    # Cost annotation
    "CostAnnotator",
    "annotate_costs",
    "compare_scenarios",
    # Pipeline
    "BundlePipeline",
]
