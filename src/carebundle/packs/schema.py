"""
CareBundle Definition Pack Schemas

Pydantic models for validating the YAML/JSON documents the engines load:
algorithms, CAP triggers, service categories, the intensity matrix,
scenario templates, substitution rules, service types, axis selection
and the cost reference.

These schemas define the on-disk structure only. The loader converts
validated schemas into the immutable domain models in carebundle.models.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, field_validator, model_validator

from ..models.enums import ScenarioAxis
from ..models.policy import DEFAULT_AXIS_THRESHOLDS


# =============================================================================
# Enums as Literals (for YAML validation)
# =============================================================================

TriggerLevelValue = Literal["IMPROVE", "PREVENT", "FACILITATE", "NOT_TRIGGERED"]

ComparisonOperatorValue = Literal["==", "!=", ">=", "<=", ">", "<"]

RecommendationPriorityValue = Literal["core", "recommended", "optional"]

CategoryUnitValue = Literal["hours", "visits", "units"]

OutputTypeValue = Literal["integer", "boolean"]

DeliveryModeValue = Literal["in_person", "virtual", "hybrid", "automated"]


def _coerce_str(value: Any) -> Any:
    """YAML reads `version: 1.0` as a float and dates as date objects."""
    if isinstance(value, (int, float, date)) and not isinstance(value, bool):
        return str(value)
    return value


VersionStr = Annotated[str, BeforeValidator(_coerce_str)]
OptionalStr = Annotated[Optional[str], BeforeValidator(_coerce_str)]


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        return [value]
    return value


# =============================================================================
# Algorithm Schemas
# =============================================================================

class TreeNodeSchema(BaseModel):
    """
    Schema for a decision-tree node.

    A node carrying `return` is a leaf. Any other node is a branch and must
    carry `condition`, `true_branch` and `false_branch`. Children are
    validated recursively, so a valid tree ends in leaves on every path.
    """
    model_config = {"populate_by_name": True}

    return_: Optional[Union[bool, int]] = Field(None, alias="return")
    condition: Optional[str] = None
    true_branch: Optional["TreeNodeSchema"] = None
    false_branch: Optional["TreeNodeSchema"] = None

    @property
    def is_leaf(self) -> bool:
        return self.return_ is not None

    @model_validator(mode="after")
    def validate_node(self) -> "TreeNodeSchema":
        if self.is_leaf:
            return self
        if not self.condition:
            raise ValueError("Branch node must have 'condition'")
        if self.true_branch is None:
            raise ValueError("Branch node must have 'true_branch'")
        if self.false_branch is None:
            raise ValueError("Branch node must have 'false_branch'")
        return self


class ComputedInputSchema(BaseModel):
    """Long form of a computed input: {"formula": "...", "description": "..."}."""
    formula: str
    description: Optional[str] = None


class AlgorithmSchema(BaseModel):
    """Schema for a decision-tree algorithm document."""
    name: str = Field(..., min_length=1)
    version: VersionStr
    output_range: tuple[int, int]
    tree: TreeNodeSchema
    computed_inputs: dict[str, Union[str, ComputedInputSchema]] = Field(default_factory=dict)
    items_used: list[str] = Field(default_factory=list)
    output_type: OutputTypeValue = "integer"
    verification_status: str = "unverified"
    verification_source: Optional[str] = None
    description: str = ""

    @model_validator(mode="after")
    def validate_range(self) -> "AlgorithmSchema":
        low, high = self.output_range
        if low > high:
            raise ValueError(f"output_range min {low} exceeds max {high}")
        return self

    def formulas(self) -> list[tuple[str, str]]:
        """Computed inputs as ordered (name, formula) pairs."""
        return [
            (name, spec if isinstance(spec, str) else spec.formula)
            for name, spec in self.computed_inputs.items()
        ]


# =============================================================================
# CAP Schemas
# =============================================================================

class TriggerConditionSchema(BaseModel):
    """Schema for a single field comparison inside a CAP trigger."""
    field: str = Field(..., min_length=1)
    operator: ComparisonOperatorValue = "=="
    value: Any = None


class MinCountSchema(BaseModel):
    count: int = Field(..., ge=0)
    from_: list[TriggerConditionSchema] = Field(default_factory=list, alias="from")

    model_config = {"populate_by_name": True}


class ConditionGroupSchema(BaseModel):
    """
    Schema for a CAP trigger's condition group.

    Accepts the legacy form where `min_count` is a bare integer and its
    conditions sit in a sibling `from` list.
    """
    all: Optional[list[TriggerConditionSchema]] = None
    any: Optional[list[TriggerConditionSchema]] = None
    min_count: Optional[MinCountSchema] = None
    default: bool = False

    @model_validator(mode="before")
    @classmethod
    def normalize_min_count(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        min_count = data.get("min_count")
        if isinstance(min_count, int) and not isinstance(min_count, bool):
            from_conditions = data.get("from") or []
            data = {k: v for k, v in data.items() if k != "from"}
            data["min_count"] = {"count": min_count, "from": from_conditions}
        return data


class ServiceRecommendationSchema(BaseModel):
    priority: RecommendationPriorityValue = "optional"
    frequency_multiplier: float = Field(1.0, ge=0)
    focus: Optional[str] = None


class CAPTriggerSchema(BaseModel):
    level: TriggerLevelValue
    conditions: ConditionGroupSchema = Field(default_factory=ConditionGroupSchema)
    description: str = ""
    service_recommendations: dict[str, ServiceRecommendationSchema] = Field(
        default_factory=dict
    )
    care_guidelines: list[str] = Field(default_factory=list)


class CAPSchema(BaseModel):
    """Schema for a Clinical Assessment Protocol document."""
    name: str = Field(..., min_length=1)
    version: VersionStr
    triggers: list[CAPTriggerSchema] = Field(..., min_length=1)
    category: str = "unknown"
    applicable_instruments: list[str] = Field(default_factory=list)
    source: Optional[str] = None


# =============================================================================
# Service Category Schemas
# =============================================================================

class ServiceDefinitionSchema(BaseModel):
    name: str = ""
    is_primary: bool = False
    requires_tech: bool = False
    requires_cap: list[str] = Field(default_factory=list)
    requires_clinical: bool = False

    @field_validator("requires_cap", mode="before")
    @classmethod
    def coerce_requires_cap(cls, v: Any) -> Any:
        return [] if v is None else _as_list(v)


class CategorySchema(BaseModel):
    unit: CategoryUnitValue = "units"
    description: str = ""
    algorithm_drivers: list[str] = Field(default_factory=list)
    cap_boosters: list[str] = Field(default_factory=list)
    floor_mapping: Optional[str] = Field(
        None, description="Intensity-matrix mapping supplying this category's floors"
    )
    services: dict[str, ServiceDefinitionSchema] = Field(default_factory=dict)


class ServiceCategoriesSchema(BaseModel):
    """Schema for service_categories documents."""
    version: VersionStr = "unknown"
    categories: dict[str, CategorySchema] = Field(default_factory=dict)


# =============================================================================
# Intensity Matrix Schemas
# =============================================================================

class MappingEntrySchema(BaseModel):
    hours: Optional[float] = Field(None, ge=0)
    visits: Optional[float] = Field(None, ge=0)
    label: str = ""
    rationale: Optional[str] = None
    confidence: str = "medium"


class ModifierSchema(BaseModel):
    multiplier: float = Field(1.0, ge=0)
    description: Optional[str] = None


class IntensityMappingSchema(BaseModel):
    """A score -> hours/visits table. JSON keys are numeric strings."""
    description: str = ""
    algorithm: Optional[str] = None
    source: dict[str, Any] = Field(default_factory=dict)
    mappings: dict[int, MappingEntrySchema]
    modifiers: dict[str, ModifierSchema] = Field(default_factory=dict)


class CapAdjustmentSchema(BaseModel):
    floor_add: float = 0.0
    recommended_add: float = 0.0


class IntensityMatrixSchema(BaseModel):
    """
    Schema for the service intensity matrix.

    Every top-level object carrying a `mappings` table is collected into
    `mappings`, keyed by its document key (e.g. "psa_to_psw_hours").
    """
    version: VersionStr = "unknown"
    last_updated: OptionalStr = None
    updated_by: Optional[str] = None
    review_status: str = "unknown"
    next_review_date: OptionalStr = None
    cap_floor_adjustments: dict[str, dict[str, CapAdjustmentSchema]] = Field(
        default_factory=dict
    )
    mappings: dict[str, IntensityMappingSchema] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def collect_mappings(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "mappings" in data:
            return data
        known = set(cls.model_fields)
        result: dict[str, Any] = {k: v for k, v in data.items() if k in known}
        result["mappings"] = {
            key: value
            for key, value in data.items()
            if key not in known and isinstance(value, dict) and "mappings" in value
        }
        return result


# =============================================================================
# Scenario Template Schemas
# =============================================================================

class AxisRequirementsSchema(BaseModel):
    tech_readiness_min: Optional[int] = None
    has_internet: bool = False
    cognitive_complexity_max: Optional[int] = None


class SubstitutionPreferencesSchema(BaseModel):
    prefer_in_person: bool = False
    max_remote_ratio: Optional[float] = Field(None, ge=0, le=1)
    remote_services: list[str] = Field(default_factory=list)
    prefer_specialized: bool = False
    specialized_services: list[str] = Field(default_factory=list)
    maximize_tech: bool = False
    include_safety_checks: bool = False
    include_respite_ratio: Optional[float] = Field(None, ge=0, le=1)
    prioritize_respite: bool = False
    include_day_program_ratio: Optional[float] = Field(None, ge=0, le=1)
    express_as_day_program_ratio: bool = False


class AxisTemplateSchema(BaseModel):
    description: str = ""
    target_mix: dict[str, float] = Field(default_factory=dict)
    primary_services: list[str] = Field(default_factory=list)
    secondary_services: list[str] = Field(default_factory=list)
    excluded_services: list[str] = Field(default_factory=list)
    requirements: AxisRequirementsSchema = Field(default_factory=AxisRequirementsSchema)
    substitution_preferences: dict[str, SubstitutionPreferencesSchema] = Field(
        default_factory=dict
    )
    cap_priorities: list[str] = Field(default_factory=list)


class ScenarioTemplatesSchema(BaseModel):
    """Schema for scenario_templates documents."""
    version: VersionStr = "unknown"
    axes: dict[str, AxisTemplateSchema] = Field(default_factory=dict)

    @field_validator("axes")
    @classmethod
    def validate_axis_keys(
        cls, v: dict[str, AxisTemplateSchema]
    ) -> dict[str, AxisTemplateSchema]:
        known = {axis.value for axis in ScenarioAxis}
        unknown = sorted(set(v) - known)
        if unknown:
            raise ValueError(f"Unknown scenario axes: {', '.join(unknown)}")
        return v


# =============================================================================
# Substitution Rule Schemas
# =============================================================================

class ConversionSchema(BaseModel):
    rationale: Optional[str] = None
    factor: Optional[float] = None


class SubstitutionRuleSchema(BaseModel):
    substitute: str = Field(..., min_length=1)
    max_ratio: float = Field(..., ge=0, le=1)
    conditions: list[str] = Field(default_factory=list)
    conversion: ConversionSchema = Field(default_factory=ConversionSchema)

    @field_validator("conditions", mode="before")
    @classmethod
    def coerce_conditions(cls, v: Any) -> Any:
        return [] if v is None else _as_list(v)


class CategorySubstitutionsSchema(BaseModel):
    hard_floor_service: Optional[str] = None
    hard_floor_ratio: float = Field(0.0, ge=0, le=1)
    rules: list[SubstitutionRuleSchema] = Field(default_factory=list)


class PackageEntrySchema(BaseModel):
    frequency: float = Field(1, ge=0)
    unit: str = "week"
    visits_add: Optional[float] = None
    hours_add: Optional[float] = None


class CapPackageSchema(BaseModel):
    trigger_condition: str = ""
    description: str = ""
    adds: dict[str, dict[str, PackageEntrySchema]] = Field(default_factory=dict)


class SubstitutionRulesSchema(BaseModel):
    """Schema for substitution_rules documents."""
    version: VersionStr = "unknown"
    within_category_substitutions: dict[str, CategorySubstitutionsSchema] = Field(
        default_factory=dict
    )
    cross_category_packages: dict[str, CapPackageSchema] = Field(default_factory=dict)


# =============================================================================
# Service Type Schemas
# =============================================================================

class ServiceRateSchema(BaseModel):
    rate: Decimal = Field(..., ge=0)
    effective_from: date
    effective_to: Optional[date] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "ServiceRateSchema":
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to precedes effective_from")
        return self


class ServiceTypeSchema(BaseModel):
    code: str = Field(..., min_length=1)
    name: str = ""
    category: Optional[str] = None
    default_duration_minutes: Optional[int] = Field(None, gt=0)
    cost_per_visit: Optional[Decimal] = Field(None, ge=0)
    active: bool = True
    delivery_mode: DeliveryModeValue = "in_person"
    rates: list[ServiceRateSchema] = Field(default_factory=list)


class ServiceTypesSchema(BaseModel):
    """Schema for service_types documents."""
    version: VersionStr = "unknown"
    service_types: list[ServiceTypeSchema] = Field(default_factory=list)

    @field_validator("service_types")
    @classmethod
    def validate_unique_codes(cls, v: list[ServiceTypeSchema]) -> list[ServiceTypeSchema]:
        seen: set[str] = set()
        for service in v:
            if service.code in seen:
                raise ValueError(f"Duplicate service code: '{service.code}'")
            seen.add(service.code)
        return v


# =============================================================================
# Axis Selection and Cost Reference Schemas
# =============================================================================

class AxisSelectionSchema(BaseModel):
    """Schema for axis_selection documents."""
    version: VersionStr = "unknown"
    balanced_base_score: int = Field(50, ge=0)
    minimum_score: int = Field(40, ge=0)
    max_axes: int = Field(4, ge=1)
    thresholds: dict[str, int] = Field(default_factory=dict)

    @field_validator("thresholds")
    @classmethod
    def validate_threshold_names(cls, v: dict[str, int]) -> dict[str, int]:
        unknown = sorted(set(v) - set(DEFAULT_AXIS_THRESHOLDS))
        if unknown:
            raise ValueError(f"Unknown axis thresholds: {', '.join(unknown)}")
        return v


class CostReferenceSchema(BaseModel):
    """Schema for cost_reference documents."""
    version: VersionStr = "unknown"
    weekly_reference_cap: Decimal = Field(Decimal("5000.00"), gt=0)
    within_cap_ratio: float = Field(0.85, gt=0)
    near_cap_ratio: float = Field(1.0, gt=0)

    @model_validator(mode="after")
    def validate_bands(self) -> "CostReferenceSchema":
        if self.near_cap_ratio < self.within_cap_ratio:
            raise ValueError("near_cap_ratio must not be below within_cap_ratio")
        return self
