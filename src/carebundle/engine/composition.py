"""
CareBundle Scenario Composition Engine

Composes a concrete, priced service mix for one scenario axis from the
category floors produced by CategoryIntensityResolver.

Composition steps:
1. Resolve the axis template (balanced when missing or when the profile
   fails the axis requirements)
2. Split the total budget across categories by target_mix, never below a
   category's floor
3. Inside each category: hard floor service, substitution rules, then an
   even split of what is left across primary services
4. Add CAP-driven cross-category packages
5. Drop axis-excluded services
6. Consolidate duplicate service lines

Without any usable template the engine falls back to compose_default,
a minimal floor-only mix.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from ..models import (
    AllocationSource,
    AxisPriority,
    AxisTemplate,
    CAPResult,
    CategoryFloor,
    CategoryUnit,
    PatientNeedsProfile,
    ScenarioAxis,
    ServiceAllocation,
    ServiceDefinition,
    ServiceType,
    SubstitutionPreferences,
    SubstitutionRuleSet,
    boost_target,
)
from ..packs import build_axis_templates, build_substitution_rules, read_optional_document
from ..settings import DEFAULT_CONFIG_DIR
from .catalog import (
    InMemoryRateRepository,
    InMemoryServiceCatalog,
    RateRepository,
    ServiceCatalog,
    load_catalog,
)
from .category_resolver import CategoryIntensityResolver, create_resolver
from .rule_conditions import RuleContext, evaluate_all_rules, evaluate_rule


logger = logging.getLogger(__name__)

BALANCED = ScenarioAxis.BALANCED.value

# Used when every category recommends nothing
MINIMUM_TOTAL_BUDGET = 20.0

DEFAULT_COST_PER_VISIT = Decimal("100.00")

# Package intensity for CAPs the axis does / does not prioritise
PRIORITY_PACKAGE_MULTIPLIER = 1.0
NON_PRIORITY_PACKAGE_MULTIPLIER = 0.5

# Substitutes vetoed by prefer_in_person
REMOTE_SERVICE_CODES = frozenset({"RPM", "TELE", "CDM"})

# Unit-budgeted services delivered daily whatever the amount
DAILY_MONITORING_CODES = frozenset({"RPM", "PERS", "PERS-ADV", "FALL-MON", "CDM", "MED-DISP"})

# Average visit length in hours, for hour budgets
AVERAGE_VISIT_HOURS: dict[str, float] = {
    "PSW": 1.5,
    "HMK": 2.0,
    "DEM": 2.0,
    "NUR": 1.0,
    "PT": 0.75,
    "OT": 0.75,
    "SLP": 0.75,
    "RT": 0.75,
    "SW": 1.0,
    "RES": 4.0,
    "ADP": 6.0,
}

DEFAULT_DURATIONS: dict[str, int] = {
    "PSW": 90,
    "HMK": 120,
    "DEM": 120,
    "NUR": 60,
    "NP": 45,
    "PT": 45,
    "OT": 45,
    "SLP": 45,
    "RT": 45,
    "SW": 60,
    "RD": 45,
    "RES": 240,
    "ADP": 360,
    "SEC": 15,
    "MEAL": 15,
    "MOW": 15,
    "TELE": 30,
    "RPM": 15,
    "PERS": 15,
    "CDM": 15,
    "FALL-MON": 15,
    "MED-DISP": 15,
    "LAB": 30,
    "LAB-MOBILE": 30,
    "PHAR": 30,
    "BEH": 90,
    "CGC": 60,
    "REC": 120,
}

_PRIORITY_ORDER = {
    AxisPriority.PRIMARY: 0,
    AxisPriority.SECONDARY: 1,
    AxisPriority.TERTIARY: 2,
}


# =============================================================================
# Unit Conversion
# =============================================================================

def _ceil(value: float) -> int:
    # Float noise such as 3.0000000000000004 must not add a visit
    return math.ceil(round(value, 6))


def average_visit_hours(service_code: str) -> float:
    return AVERAGE_VISIT_HOURS.get(service_code, 1.0)


def default_duration(service_code: str, service_type: Optional[ServiceType] = None) -> int:
    """Visit length in minutes; the service type's own default wins."""
    if service_type is not None and service_type.default_duration_minutes:
        return service_type.default_duration_minutes
    return DEFAULT_DURATIONS.get(service_code, 60)


def amount_to_frequency(amount: float, unit: CategoryUnit, service_code: str) -> int:
    """
    Weekly visit count for a category amount.

    - hours: amount / average visit length, rounded up
    - visits: amount rounded up
    - units: daily monitoring codes are always 7, security checks
      double the amount, anything else rounds up
    """
    if unit == CategoryUnit.HOURS:
        return _ceil(amount / average_visit_hours(service_code))
    if unit == CategoryUnit.UNITS:
        if service_code in DAILY_MONITORING_CODES:
            return 7
        if service_code == "SEC":
            return _ceil(amount * 2)
    return _ceil(amount)


def is_substitution_preferred(service_code: str, preferences: SubstitutionPreferences) -> bool:
    """
    Whether an axis lets a substitute into a category.

    prefer_in_person vetoes the remote codes. The remaining preference
    flags only endorse codes, so anything not vetoed is allowed.
    """
    if preferences.prefer_in_person and service_code in REMOTE_SERVICE_CODES:
        return False
    return True


def consolidate_services(services: Sequence[ServiceAllocation]) -> list[ServiceAllocation]:
    """
    Merge allocations sharing a service code.

    Frequencies add up, the longer duration wins and rationales are
    joined with "; " unless the new text is already contained. The first
    occurrence keeps its position.
    """
    merged: dict[str, ServiceAllocation] = {}
    for service in services:
        existing = merged.get(service.service_code)
        if existing is None:
            merged[service.service_code] = replace(service)
            continue
        existing.frequency += service.frequency
        existing.duration_minutes = max(existing.duration_minutes, service.duration_minutes)
        if service.rationale not in existing.rationale:
            existing.rationale = f"{existing.rationale}; {service.rationale}"
    return list(merged.values())


# =============================================================================
# Within-category Allocation
# =============================================================================

@dataclass
class RankedService:
    """An eligible service with its rank under the axis template."""
    definition: ServiceDefinition
    axis_priority: AxisPriority

    @property
    def code(self) -> str:
        return self.definition.code

    @property
    def is_primary(self) -> bool:
        return self.definition.is_primary or self.axis_priority == AxisPriority.PRIMARY


@dataclass
class CategoryAllocation:
    """Amount of a category budget assigned to one service."""
    amount: float
    source: AllocationSource
    rationale: str = ""


def rank_services(
    eligible: Mapping[str, ServiceDefinition], template: AxisTemplate
) -> list[RankedService]:
    """Drop excluded services and order the rest primary, secondary, tertiary."""
    ranked = []
    for code, definition in eligible.items():
        if code in template.excluded_services:
            continue
        if code in template.primary_services:
            priority = AxisPriority.PRIMARY
        elif code in template.secondary_services:
            priority = AxisPriority.SECONDARY
        else:
            priority = AxisPriority.TERTIARY
        ranked.append(RankedService(definition, priority))
    ranked.sort(key=lambda s: _PRIORITY_ORDER[s.axis_priority])
    return ranked


# =============================================================================
# Engine
# =============================================================================

@dataclass
class ScenarioCompositionEngine:
    """
    Composes service bundles per scenario axis.

    Usage:
        engine = ScenarioCompositionEngine.from_config_dir("config/")

        floors = engine.category_resolver.resolve_to_categories(scores, caps, profile)
        services = engine.compose_for_axis(ScenarioAxis.RECOVERY_REHAB, floors, caps, profile)
    """

    category_resolver: CategoryIntensityResolver
    templates: dict[str, AxisTemplate] = field(default_factory=dict)
    rules: SubstitutionRuleSet = field(default_factory=SubstitutionRuleSet)
    catalog: ServiceCatalog = field(default_factory=InMemoryServiceCatalog)
    rate_repository: RateRepository = field(default_factory=InMemoryRateRepository)
    rate_date: Optional[date] = None

    @classmethod
    def from_config_dir(
        cls, config_dir: Optional[Union[str, Path]] = None
    ) -> ScenarioCompositionEngine:
        """
        Build the engine and its collaborators from one configuration
        directory. Missing templates or rules are logged and left empty.
        """
        root = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

        templates: dict[str, AxisTemplate] = {}
        path = root / "scenario_templates.json"
        data = read_optional_document(path, "Scenario templates")
        if data is not None:
            templates = build_axis_templates(data, source=str(path))

        rules = SubstitutionRuleSet()
        path = root / "substitution_rules.json"
        data = read_optional_document(path, "Substitution rules")
        if data is not None:
            rules = build_substitution_rules(data, source=str(path))

        catalog, rates = InMemoryServiceCatalog(), InMemoryRateRepository()
        path = root / "service_types.yaml"
        if path.is_file():
            catalog, rates = load_catalog(path)
        else:
            logger.warning("Service types not found: %s", path, extra={"path": str(path)})

        return cls(
            category_resolver=create_resolver(root),
            templates=templates,
            rules=rules,
            catalog=catalog,
            rate_repository=rates,
        )

    # =========================================================================
    # Templates
    # =========================================================================

    def get_axis_template(self, axis: Union[ScenarioAxis, str]) -> Optional[AxisTemplate]:
        return self.templates.get(ScenarioAxis(axis).value)

    def get_all_axis_templates(self) -> dict[str, AxisTemplate]:
        return dict(self.templates)

    def _resolve_template(
        self, axis: ScenarioAxis, profile: PatientNeedsProfile
    ) -> Optional[AxisTemplate]:
        template = self.templates.get(axis.value) or self.templates.get(BALANCED)
        if template is None:
            return None
        if not template.requirements.is_met(profile):
            logger.info(
                "Axis %s requirements not met, falling back to balanced", axis.value,
                extra={"axis": axis.value},
            )
            return self.templates.get(BALANCED)
        return template

    # =========================================================================
    # Composition
    # =========================================================================

    def compose_for_axis(
        self,
        axis: Union[ScenarioAxis, str],
        category_floors: Mapping[str, CategoryFloor],
        triggered_caps: Mapping[str, CAPResult],
        profile: PatientNeedsProfile,
    ) -> list[ServiceAllocation]:
        """
        Compose the service list for one axis.

        Args:
            axis: Scenario axis
            category_floors: Output of resolve_to_categories
            triggered_caps: CAP name -> result
            profile: Patient needs profile

        Returns:
            Consolidated service allocations
        """
        axis = ScenarioAxis(axis)
        template = self._resolve_template(axis, profile)
        if template is None:
            logger.warning(
                "No template found for axis %s, using default composition", axis.value,
                extra={"axis": axis.value},
            )
            return self.compose_default(category_floors)

        total_budget = sum(floor.recommended for floor in category_floors.values())
        if total_budget <= 0:
            total_budget = MINIMUM_TOTAL_BUDGET

        services: list[ServiceAllocation] = []
        for category, ratio in template.target_mix.items():
            if ratio <= 0:
                continue
            floor = category_floors.get(category) or self._empty_floor(category)
            target = max(floor.floor, total_budget * ratio)

            eligible = self.category_resolver.get_eligible_services(
                category, profile, triggered_caps
            )
            allocations = self.allocate_within_category(
                category=category,
                target_allocation=target,
                hard_floor=floor.floor,
                ranked=rank_services(eligible, template),
                triggered_caps=triggered_caps,
                profile=profile,
                preferences=template.preferences_for(category),
            )
            services.extend(self._to_service_allocations(allocations, category, floor.unit))

        services = self.apply_cap_packages(services, triggered_caps, template, profile)
        services = [s for s in services if s.service_code not in template.excluded_services]
        return consolidate_services(services)

    def allocate_within_category(
        self,
        category: str,
        target_allocation: float,
        hard_floor: float,
        ranked: Sequence[RankedService],
        triggered_caps: Mapping[str, CAPResult],
        profile: PatientNeedsProfile,
        preferences: Optional[SubstitutionPreferences] = None,
    ) -> dict[str, CategoryAllocation]:
        """
        Spread a category's target amount over its services.

        Remaining capacity only ever shrinks: the hard floor service takes
        its share first, each substitution takes at most what is left, and
        the rest is split evenly across primary services.

        Returns:
            Service code -> allocated amount, in allocation order
        """
        preferences = preferences or SubstitutionPreferences()
        category_rules = self.rules.for_category(category)
        eligible_codes = {s.code for s in ranked}
        context = RuleContext(triggered_caps=triggered_caps, profile=profile)

        allocations: dict[str, CategoryAllocation] = {}
        remaining = target_allocation

        hard_floor_service = category_rules.hard_floor_service
        if hard_floor_service and hard_floor > 0 and self._is_available(
            hard_floor_service, eligible_codes
        ):
            amount = max(hard_floor, target_allocation * category_rules.hard_floor_ratio)
            allocations[hard_floor_service] = CategoryAllocation(
                amount=amount,
                source=AllocationSource.FLOOR,
                rationale=f"Clinical floor requirement ({category})",
            )
            remaining -= amount

        for rule in category_rules.rules:
            if remaining <= 0:
                break
            if not is_substitution_preferred(rule.substitute, preferences):
                continue
            if not evaluate_all_rules(rule.conditions, context):
                continue
            if not self._is_available(rule.substitute, eligible_codes):
                continue
            amount = min(remaining, target_allocation * rule.max_ratio)
            if amount > 0:
                allocations[rule.substitute] = CategoryAllocation(
                    amount=amount,
                    source=AllocationSource.SUBSTITUTION,
                    rationale=f"Substitution: {rule.rationale or rule.substitute}",
                )
                remaining -= amount

        if remaining > 0:
            primaries = [s for s in ranked if s.is_primary]
            if primaries:
                share = remaining / len(primaries)
                for service in primaries:
                    allocation = allocations.setdefault(
                        service.code,
                        CategoryAllocation(amount=0.0, source=AllocationSource.PRIMARY),
                    )
                    allocation.amount += share
                    allocation.rationale = f"Primary service for {category}"

        return allocations

    def _empty_floor(self, category: str) -> CategoryFloor:
        definition = self.category_resolver.categories.get(category)
        if definition is None:
            return CategoryFloor(category=category)
        return CategoryFloor(category=category, unit=definition.unit)

    def _is_available(self, code: str, eligible_codes: set[str]) -> bool:
        return code in eligible_codes or code in self.catalog

    def _to_service_allocations(
        self,
        allocations: Mapping[str, CategoryAllocation],
        category: str,
        unit: CategoryUnit,
    ) -> list[ServiceAllocation]:
        services = []
        for code, allocation in allocations.items():
            if allocation.amount <= 0:
                continue
            service_type = self.catalog.get(code)
            if service_type is None:
                continue
            services.append(ServiceAllocation(
                service_code=code,
                frequency=max(1, amount_to_frequency(allocation.amount, unit, code)),
                duration_minutes=default_duration(code, service_type),
                category=category,
                source=allocation.source,
                rationale=allocation.rationale or f"Service for {category}",
                service_type=service_type,
                cost_per_visit=self.effective_rate(service_type),
            ))
        return services

    def effective_rate(self, service_type: ServiceType) -> Decimal:
        """Current repository rate, else the type's static cost, else 100.00."""
        rate = self.rate_repository.current_rate(service_type, self.rate_date)
        if rate is not None:
            return rate
        if service_type.cost_per_visit is not None:
            return service_type.cost_per_visit
        return DEFAULT_COST_PER_VISIT

    # =========================================================================
    # CAP Packages
    # =========================================================================

    def apply_cap_packages(
        self,
        services: list[ServiceAllocation],
        triggered_caps: Mapping[str, CAPResult],
        template: AxisTemplate,
        profile: Optional[PatientNeedsProfile] = None,
    ) -> list[ServiceAllocation]:
        """
        Add services from every package whose trigger holds.

        Packages driven by a CAP the axis prioritises apply at full
        intensity, others at half. Boost entries raise the frequency of an
        already allocated service instead of adding a line; regular entries
        are skipped when the service is already present.
        """
        context = RuleContext(triggered_caps=triggered_caps, profile=profile)
        services = [replace(s) for s in services]

        for package in self.rules.packages:
            if package.trigger_condition is None:
                continue
            if not evaluate_rule(package.trigger_condition, context):
                continue

            prioritised = any(
                cap in template.cap_priorities for cap in package.referenced_caps()
            )
            multiplier = (
                PRIORITY_PACKAGE_MULTIPLIER if prioritised else NON_PRIORITY_PACKAGE_MULTIPLIER
            )

            for category, entries in package.adds.items():
                for entry_code, entry in entries.items():
                    base_code = boost_target(entry_code)
                    if base_code is not None:
                        increase = _ceil(entry.boost_amount * multiplier)
                        for service in services:
                            if service.service_code == base_code:
                                service.frequency += increase
                                service.rationale += " + CAP boost"
                        continue

                    if any(s.service_code == entry_code for s in services):
                        continue
                    service_type = self.catalog.get(entry_code)
                    if service_type is None:
                        continue

                    services.append(ServiceAllocation(
                        service_code=entry_code,
                        frequency=max(1, _ceil(entry.frequency * multiplier)),
                        frequency_period=entry.unit,
                        duration_minutes=default_duration(entry_code, service_type),
                        category=category,
                        source=AllocationSource.CAP_PACKAGE,
                        rationale=f"CAP package: {package.name}",
                        service_type=service_type,
                        cost_per_visit=self.effective_rate(service_type),
                    ))
        return services

    # =========================================================================
    # Default Composition
    # =========================================================================

    def compose_default(
        self, category_floors: Mapping[str, CategoryFloor]
    ) -> list[ServiceAllocation]:
        """
        Floor-only service mix used when no axis template is available.

        PSW covers personal_support, NUR covers clinical_monitoring and
        rehab_support splits between PT (rounded up) and OT (rounded down).
        """
        def floor_of(category: str) -> float:
            floor = category_floors.get(category)
            return floor.floor if floor is not None else 0.0

        planned: list[tuple[str, int, int, str, str]] = []

        psw_floor = floor_of("personal_support")
        if psw_floor > 0:
            planned.append((
                "PSW", max(1, _ceil(psw_floor / 1.5)), 90,
                "Personal support floor", "personal_support",
            ))

        nur_floor = floor_of("clinical_monitoring")
        if nur_floor > 0:
            planned.append((
                "NUR", max(1, _ceil(nur_floor)), 60,
                "Clinical monitoring floor", "clinical_monitoring",
            ))

        rehab_floor = floor_of("rehab_support")
        if rehab_floor > 0:
            pt_visits = _ceil(rehab_floor / 2)
            ot_visits = math.floor(round(rehab_floor / 2, 6))
            if pt_visits > 0:
                planned.append(("PT", pt_visits, 45, "Rehab support floor", "rehab_support"))
            if ot_visits > 0:
                planned.append(("OT", ot_visits, 45, "Rehab support floor", "rehab_support"))

        services = []
        for code, frequency, duration, rationale, category in planned:
            service_type = self.catalog.get(code)
            if service_type is None:
                continue
            services.append(ServiceAllocation(
                service_code=code,
                frequency=frequency,
                duration_minutes=duration,
                category=category,
                source=AllocationSource.FLOOR,
                rationale=rationale,
                service_type=service_type,
                cost_per_visit=self.effective_rate(service_type),
            ))
        return services

    def consolidate_services(
        self, services: Sequence[ServiceAllocation]
    ) -> list[ServiceAllocation]:
        return consolidate_services(services)
