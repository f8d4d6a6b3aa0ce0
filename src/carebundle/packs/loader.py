"""
CareBundle Definition Pack Loader

Loads and validates definition documents from YAML or JSON files.

Converts Pydantic schema models to CareBundle domain models. Rule-condition
strings are compiled here, so authoring errors surface at load time rather
than mid-composition.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, TypeVar, Union

import yaml
from pydantic import BaseModel, ValidationError

from ..exceptions import (
    ConditionSyntaxError,
    DefinitionLoadError,
    DefinitionNotFoundError,
    DefinitionValidationError,
)
from ..models import (
    DEFAULT_AXIS_THRESHOLDS,
    AlgorithmDefinition,
    AxisRequirements,
    AxisSelectionPolicy,
    AxisTemplate,
    Branch,
    CapFloorAdjustment,
    CapPackage,
    CAPDefinition,
    CAPLevel,
    CAPTrigger,
    CategoryDefinition,
    CategorySubstitutions,
    CategoryUnit,
    ConditionGroup,
    CostReference,
    DeliveryMode,
    IntensityMapping,
    IntensityMatrix,
    Leaf,
    MappingEntry,
    MinCount,
    PackageEntry,
    RecommendationPriority,
    RuleCondition,
    ServiceDefinition,
    ServiceRate,
    ServiceRecommendation,
    ServiceType,
    SubstitutionPreferences,
    SubstitutionRule,
    SubstitutionRuleSet,
    TreeNode,
    TriggerCondition,
)
from .rule_parser import parse_rule_condition
from .schema import (
    AlgorithmSchema,
    AxisSelectionSchema,
    AxisTemplateSchema,
    CAPSchema,
    ConditionGroupSchema,
    CostReferenceSchema,
    IntensityMatrixSchema,
    ScenarioTemplatesSchema,
    ServiceCategoriesSchema,
    ServiceTypesSchema,
    SubstitutionRulesSchema,
    TreeNodeSchema,
    TriggerConditionSchema,
)


logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")


# =============================================================================
# Reading and Validation
# =============================================================================

def read_document(path: Union[str, Path]) -> dict[str, Any]:
    """
    Read a YAML or JSON document into a dictionary.

    Args:
        path: Path to a .yaml/.yml or .json file

    Returns:
        The parsed top-level mapping

    Raises:
        DefinitionNotFoundError: If the file does not exist
        DefinitionLoadError: If the file cannot be read or parsed
        DefinitionValidationError: If the top level is not a mapping
    """
    path = Path(path)
    if not path.is_file():
        raise DefinitionNotFoundError(
            message=f"Definition file not found: {path}",
            details={"path": str(path)},
            definition_name=path.stem,
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in {".yaml", ".yml"}:
                data = yaml.safe_load(f)
            elif path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                # Try YAML first, then JSON
                content = f.read()
                try:
                    data = yaml.safe_load(content)
                except yaml.YAMLError:
                    data = json.loads(content)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise DefinitionLoadError(
            message=f"Failed to load definition: {e}",
            details={"path": str(path), "error": str(e)},
            definition_name=path.stem,
        ) from e

    if not isinstance(data, dict):
        raise DefinitionValidationError(
            message="Definition document must be a mapping",
            details={"path": str(path), "type": type(data).__name__},
            definition_name=path.stem,
        )
    return data


def read_optional_document(path: Union[str, Path], label: str) -> Optional[dict[str, Any]]:
    """
    Read a document that an engine can run without.

    A missing file is logged and returns None. A file that exists but is
    malformed still raises.
    """
    path = Path(path)
    if not path.is_file():
        logger.warning("%s not found: %s", label, path, extra={"path": str(path)})
        return None
    return read_document(path)


def _validate(
    schema_cls: type[SchemaT],
    data: Any,
    source: str = "",
    name: Optional[str] = None,
) -> SchemaT:
    """Validate data against a schema, converting pydantic errors."""
    try:
        return schema_cls.model_validate(data)
    except ValidationError as e:
        raise DefinitionValidationError(
            message=f"{schema_cls.__name__} validation failed: {e.error_count()} errors",
            details={"errors": e.errors(include_url=False), "path": source},
            definition_name=name,
        ) from e


def _compile_condition(text: str, source: str, where: str) -> RuleCondition:
    try:
        return parse_rule_condition(text)
    except ConditionSyntaxError as e:
        raise DefinitionValidationError(
            message=f"Invalid rule condition in {where}: {e.message}",
            details={"condition": text, "path": source, **e.details},
        ) from e


# =============================================================================
# Schema to Model Converters
# =============================================================================

def _convert_tree(schema: TreeNodeSchema) -> TreeNode:
    """Convert TreeNodeSchema to Leaf/Branch nodes."""
    if schema.is_leaf:
        return Leaf(value=schema.return_)
    # Branch fields are guaranteed by TreeNodeSchema.validate_node
    return Branch(
        condition=schema.condition or "",
        true_branch=_convert_tree(schema.true_branch),
        false_branch=_convert_tree(schema.false_branch),
    )


def _convert_trigger_condition(schema: TriggerConditionSchema) -> TriggerCondition:
    return TriggerCondition(field=schema.field, operator=schema.operator, value=schema.value)


def _convert_condition_group(schema: ConditionGroupSchema) -> ConditionGroup:
    min_count = None
    if schema.min_count is not None:
        min_count = MinCount(
            count=schema.min_count.count,
            conditions=tuple(_convert_trigger_condition(c) for c in schema.min_count.from_),
        )
    return ConditionGroup(
        all=tuple(_convert_trigger_condition(c) for c in schema.all or []),
        any=tuple(_convert_trigger_condition(c) for c in schema.any or []),
        min_count=min_count,
        is_default=schema.default,
    )


def build_algorithm(data: Mapping[str, Any], source: str = "") -> AlgorithmDefinition:
    """
    Validate an algorithm document and convert it to a definition.

    Raises:
        DefinitionValidationError: If a required field is missing or any
            tree node is malformed
    """
    schema = _validate(AlgorithmSchema, data, source, name=data.get("name"))
    return AlgorithmDefinition(
        name=schema.name,
        version=schema.version,
        output_range=schema.output_range,
        tree=_convert_tree(schema.tree),
        computed_inputs=tuple(schema.formulas()),
        items_used=tuple(schema.items_used),
        output_type=schema.output_type,
        verification_status=schema.verification_status,
        verification_source=schema.verification_source,
        description=schema.description,
    )


def build_cap(data: Mapping[str, Any], source: str = "") -> CAPDefinition:
    """
    Validate a CAP document and convert it to a definition.

    Raises:
        DefinitionValidationError: If a required field is missing, no
            trigger is declared, or a trigger level is not recognised
    """
    schema = _validate(CAPSchema, data, source, name=data.get("name"))
    triggers = []
    for trigger in schema.triggers:
        triggers.append(CAPTrigger(
            level=CAPLevel(trigger.level),
            conditions=_convert_condition_group(trigger.conditions),
            description=trigger.description,
            service_recommendations=tuple(
                ServiceRecommendation(
                    service_code=code,
                    priority=RecommendationPriority(rec.priority),
                    frequency_multiplier=rec.frequency_multiplier,
                    focus=rec.focus,
                )
                for code, rec in trigger.service_recommendations.items()
            ),
            care_guidelines=tuple(trigger.care_guidelines),
        ))
    return CAPDefinition(
        name=schema.name,
        version=schema.version,
        triggers=tuple(triggers),
        category=schema.category,
        applicable_instruments=tuple(schema.applicable_instruments),
        source=schema.source,
    )


def build_service_categories(
    data: Mapping[str, Any], source: str = ""
) -> dict[str, CategoryDefinition]:
    """Convert a service_categories document to category definitions."""
    schema = _validate(ServiceCategoriesSchema, data, source, name="service_categories")
    categories: dict[str, CategoryDefinition] = {}
    for name, cat in schema.categories.items():
        categories[name] = CategoryDefinition(
            name=name,
            unit=CategoryUnit(cat.unit),
            description=cat.description,
            algorithm_drivers=tuple(cat.algorithm_drivers),
            cap_boosters=tuple(cat.cap_boosters),
            floor_mapping=cat.floor_mapping,
            services={
                code: ServiceDefinition(
                    code=code,
                    name=svc.name,
                    is_primary=svc.is_primary,
                    requires_tech=svc.requires_tech,
                    requires_cap=tuple(svc.requires_cap),
                    requires_clinical=svc.requires_clinical,
                )
                for code, svc in cat.services.items()
            },
        )
    return categories


def build_intensity_matrix(data: Mapping[str, Any], source: str = "") -> IntensityMatrix:
    """Convert a service intensity matrix document."""
    schema = _validate(IntensityMatrixSchema, data, source, name="service_intensity_matrix")
    mappings = {
        key: IntensityMapping(
            name=key,
            description=mapping.description,
            algorithm=mapping.algorithm,
            source=mapping.source.get("primary"),
            mappings={
                score: MappingEntry(
                    hours=entry.hours,
                    visits=entry.visits,
                    label=entry.label,
                    rationale=entry.rationale,
                    confidence=entry.confidence,
                )
                for score, entry in mapping.mappings.items()
            },
            modifiers={k: m.multiplier for k, m in mapping.modifiers.items()},
        )
        for key, mapping in schema.mappings.items()
    }
    adjustments = {
        cap: {
            category: CapFloorAdjustment(adj.floor_add, adj.recommended_add)
            for category, adj in by_category.items()
        }
        for cap, by_category in schema.cap_floor_adjustments.items()
    }
    return IntensityMatrix(
        version=schema.version,
        mappings=mappings,
        cap_floor_adjustments=adjustments,
        last_updated=schema.last_updated,
        updated_by=schema.updated_by,
        review_status=schema.review_status,
        next_review_date=schema.next_review_date,
    )


def _convert_axis_template(axis: str, schema: AxisTemplateSchema) -> AxisTemplate:
    return AxisTemplate(
        axis=axis,
        description=schema.description,
        target_mix=dict(schema.target_mix),
        primary_services=tuple(schema.primary_services),
        secondary_services=tuple(schema.secondary_services),
        excluded_services=tuple(schema.excluded_services),
        requirements=AxisRequirements(
            tech_readiness_min=schema.requirements.tech_readiness_min,
            has_internet=schema.requirements.has_internet,
            cognitive_complexity_max=schema.requirements.cognitive_complexity_max,
        ),
        substitution_preferences={
            category: SubstitutionPreferences(
                prefer_in_person=prefs.prefer_in_person,
                max_remote_ratio=prefs.max_remote_ratio,
                remote_services=tuple(prefs.remote_services),
                prefer_specialized=prefs.prefer_specialized,
                specialized_services=tuple(prefs.specialized_services),
                maximize_tech=prefs.maximize_tech,
                include_safety_checks=prefs.include_safety_checks,
                include_respite_ratio=prefs.include_respite_ratio,
                prioritize_respite=prefs.prioritize_respite,
                include_day_program_ratio=prefs.include_day_program_ratio,
                express_as_day_program_ratio=prefs.express_as_day_program_ratio,
            )
            for category, prefs in schema.substitution_preferences.items()
        },
        cap_priorities=tuple(schema.cap_priorities),
    )


def build_axis_templates(data: Mapping[str, Any], source: str = "") -> dict[str, AxisTemplate]:
    """Convert a scenario_templates document to templates keyed by axis value."""
    schema = _validate(ScenarioTemplatesSchema, data, source, name="scenario_templates")
    return {
        axis: _convert_axis_template(axis, template)
        for axis, template in schema.axes.items()
    }


def build_substitution_rules(data: Mapping[str, Any], source: str = "") -> SubstitutionRuleSet:
    """
    Convert a substitution_rules document, compiling every condition.

    Raises:
        DefinitionValidationError: If the document or any condition
            string is malformed
    """
    schema = _validate(SubstitutionRulesSchema, data, source, name="substitution_rules")

    within: dict[str, CategorySubstitutions] = {}
    for category, cat_rules in schema.within_category_substitutions.items():
        rules = []
        for index, rule in enumerate(cat_rules.rules):
            where = f"{category} rule {index} ({rule.substitute})"
            rules.append(SubstitutionRule(
                substitute=rule.substitute,
                max_ratio=rule.max_ratio,
                conditions=tuple(
                    _compile_condition(text, source, where) for text in rule.conditions
                ),
                rationale=rule.conversion.rationale,
            ))
        within[category] = CategorySubstitutions(
            hard_floor_service=cat_rules.hard_floor_service,
            hard_floor_ratio=cat_rules.hard_floor_ratio,
            rules=tuple(rules),
        )

    packages = []
    for name, package in schema.cross_category_packages.items():
        trigger = None
        if package.trigger_condition.strip():
            trigger = _compile_condition(
                package.trigger_condition, source, f"package {name}"
            )
        packages.append(CapPackage(
            name=name,
            trigger_condition=trigger,
            trigger_text=package.trigger_condition,
            adds={
                category: {
                    code: PackageEntry(
                        frequency=entry.frequency,
                        unit=entry.unit,
                        visits_add=entry.visits_add,
                        hours_add=entry.hours_add,
                    )
                    for code, entry in entries.items()
                }
                for category, entries in package.adds.items()
            },
        ))

    return SubstitutionRuleSet(
        within_category=within,
        packages=tuple(packages),
        version=schema.version,
    )


def build_service_types(
    data: Mapping[str, Any], source: str = ""
) -> tuple[list[ServiceType], list[ServiceRate]]:
    """Convert a service_types document to service types and their rates."""
    schema = _validate(ServiceTypesSchema, data, source, name="service_types")
    types: list[ServiceType] = []
    rates: list[ServiceRate] = []
    for svc in schema.service_types:
        types.append(ServiceType(
            code=svc.code,
            name=svc.name,
            category=svc.category,
            default_duration_minutes=svc.default_duration_minutes,
            cost_per_visit=svc.cost_per_visit,
            active=svc.active,
            delivery_mode=DeliveryMode(svc.delivery_mode),
        ))
        rates.extend(
            ServiceRate(
                service_code=svc.code,
                rate=rate.rate,
                effective_from=rate.effective_from,
                effective_to=rate.effective_to,
            )
            for rate in svc.rates
        )
    return types, rates


def build_axis_selection_policy(data: Mapping[str, Any], source: str = "") -> AxisSelectionPolicy:
    """Convert an axis_selection document; omitted thresholds keep their defaults."""
    schema = _validate(AxisSelectionSchema, data, source, name="axis_selection")
    return AxisSelectionPolicy(
        balanced_base_score=schema.balanced_base_score,
        minimum_score=schema.minimum_score,
        max_axes=schema.max_axes,
        thresholds={**DEFAULT_AXIS_THRESHOLDS, **schema.thresholds},
        version=schema.version,
    )


def build_cost_reference(data: Mapping[str, Any], source: str = "") -> CostReference:
    schema = _validate(CostReferenceSchema, data, source, name="cost_reference")
    return CostReference(
        weekly_reference_cap=schema.weekly_reference_cap,
        within_cap_ratio=schema.within_cap_ratio,
        near_cap_ratio=schema.near_cap_ratio,
        version=schema.version,
    )


# =============================================================================
# File Loaders
# =============================================================================

def load_algorithm_file(path: Union[str, Path]) -> AlgorithmDefinition:
    """Load and validate an algorithm definition file."""
    return build_algorithm(read_document(path), source=str(path))


def load_cap_file(path: Union[str, Path]) -> CAPDefinition:
    """Load and validate a CAP definition file."""
    return build_cap(read_document(path), source=str(path))


def load_service_categories(path: Union[str, Path]) -> dict[str, CategoryDefinition]:
    return build_service_categories(read_document(path), source=str(path))


def load_intensity_matrix(path: Union[str, Path]) -> IntensityMatrix:
    return build_intensity_matrix(read_document(path), source=str(path))


def load_axis_templates(path: Union[str, Path]) -> dict[str, AxisTemplate]:
    return build_axis_templates(read_document(path), source=str(path))


def load_substitution_rules(path: Union[str, Path]) -> SubstitutionRuleSet:
    return build_substitution_rules(read_document(path), source=str(path))


def load_service_types(path: Union[str, Path]) -> tuple[list[ServiceType], list[ServiceRate]]:
    return build_service_types(read_document(path), source=str(path))


def load_axis_selection(path: Union[str, Path]) -> AxisSelectionPolicy:
    return build_axis_selection_policy(read_document(path), source=str(path))


def load_cost_reference(path: Union[str, Path]) -> CostReference:
    return build_cost_reference(read_document(path), source=str(path))


# =============================================================================
# Reference Integrity Validation
# =============================================================================

def validate_reference_integrity(
    categories: Mapping[str, CategoryDefinition],
    matrix: Optional[IntensityMatrix] = None,
    templates: Optional[Mapping[str, AxisTemplate]] = None,
    rules: Optional[SubstitutionRuleSet] = None,
    service_codes: Optional[set[str]] = None,
) -> list[str]:
    """
    Check cross-document references of the composition configuration.

    Catches:
    - Categories naming a floor mapping the matrix does not define
    - Template target mixes naming unknown categories
    - Substitution rules for unknown categories
    - Services missing from the service type catalog

    Returns:
        Human-readable findings (empty when consistent)
    """
    findings: list[str] = []

    if matrix is not None:
        for cat in categories.values():
            if cat.floor_mapping and cat.floor_mapping not in matrix.mappings:
                findings.append(
                    f"Category '{cat.name}' references unknown mapping '{cat.floor_mapping}'"
                )
        for cap, by_category in matrix.cap_floor_adjustments.items():
            for category in by_category:
                if category not in categories:
                    findings.append(
                        f"CAP adjustment '{cap}' targets unknown category '{category}'"
                    )

    for template in (templates or {}).values():
        for category in template.target_mix:
            if category not in categories:
                findings.append(
                    f"Axis '{template.axis}' mixes unknown category '{category}'"
                )

    if rules is not None:
        for category in rules.within_category:
            if category not in categories:
                findings.append(f"Substitution rules for unknown category '{category}'")

    if service_codes is not None:
        for cat in categories.values():
            for code in cat.services:
                if code not in service_codes:
                    findings.append(
                        f"Service '{code}' in category '{cat.name}' has no service type"
                    )

    return findings
