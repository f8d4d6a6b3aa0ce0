"""
CareBundle Definition Packs

Schema validation and loading for the documents that drive the engines:
decision-tree algorithms, CAP trigger definitions, service categories,
the service intensity matrix, scenario templates, substitution rules and
the service type catalog, axis selection thresholds and the cost
reference cap.

Usage:
    from carebundle.packs import load_algorithm_file, load_cap_file

    algorithm = load_algorithm_file("config/algorithms/personal_support.json")
    cap = load_cap_file("config/cap_triggers/functional/falls.yaml")
"""
from __future__ import annotations

from .loader import (
    DOCUMENT_SUFFIXES,
    build_algorithm,
    build_axis_selection_policy,
    build_axis_templates,
    build_cap,
    build_intensity_matrix,
    build_cost_reference,
    build_service_categories,
    build_service_types,
    build_substitution_rules,
    load_algorithm_file,
    load_axis_selection,
    load_axis_templates,
    load_cap_file,
    load_cost_reference,
    load_intensity_matrix,
    load_service_categories,
    load_service_types,
    load_substitution_rules,
    read_document,
    read_optional_document,
    validate_reference_integrity,
)
from .rule_parser import parse_rule_condition
from .schema import (
    AlgorithmSchema,
    AxisSelectionSchema,
    CAPSchema,
    ConditionGroupSchema,
    CostReferenceSchema,
    IntensityMatrixSchema,
    ScenarioTemplatesSchema,
    ServiceCategoriesSchema,
    ServiceTypesSchema,
    SubstitutionRulesSchema,
    TreeNodeSchema,
)

__all__ = [
    # Reading
    "DOCUMENT_SUFFIXES",
    "read_document",
    "read_optional_document",
    # Builders
    "build_algorithm",
    "build_axis_selection_policy",
    "build_axis_templates",
    "build_cap",
    "build_intensity_matrix",
    "build_cost_reference",
    "build_service_categories",
    "build_service_types",
    "build_substitution_rules",
    # File loaders
    "load_algorithm_file",
    "load_axis_selection",
    "load_axis_templates",
    "load_cap_file",
    "load_cost_reference",
    "load_intensity_matrix",
    "load_service_categories",
    "load_service_types",
    "load_substitution_rules",
    # Validation
    "parse_rule_condition",
    "validate_reference_integrity",
    # Schemas (for advanced usage)
    "AlgorithmSchema",
    "AxisSelectionSchema",
    "CAPSchema",
    "ConditionGroupSchema",
    "CostReferenceSchema",
    "IntensityMatrixSchema",
    "ScenarioTemplatesSchema",
    "ServiceCategoriesSchema",
    "ServiceTypesSchema",
    "SubstitutionRulesSchema",
    "TreeNodeSchema",
]
