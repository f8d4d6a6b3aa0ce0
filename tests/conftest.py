"""
Pytest configuration and fixtures for CareBundle tests.

Provides helper factories for profiles, CAP results, categories and
service types, plus writers for throwaway configuration directories.
"""
import json
import pytest
from datetime import date
from decimal import Decimal
from pathlib import Path

import yaml

from carebundle.engine.catalog import InMemoryRateRepository, InMemoryServiceCatalog
from carebundle.models import (
    AllocationSource,
    CAPLevel,
    CAPResult,
    CategoryDefinition,
    CategoryFloor,
    CategoryUnit,
    DeliveryMode,
    PatientNeedsProfile,
    RecommendationPriority,
    ServiceAllocation,
    ServiceDefinition,
    ServiceRate,
    ServiceRecommendation,
    ServiceType,
)
from carebundle.settings import DEFAULT_CONFIG_DIR, Settings


# =============================================================================
# Factory Helpers
# =============================================================================

def make_profile(**overrides) -> PatientNeedsProfile:
    """Create a PatientNeedsProfile backed by a full assessment."""
    data = {"patient_id": 1001, "has_full_hc_assessment": True}
    data.update(overrides)
    return PatientNeedsProfile(**data)


def make_recommendation(
    service_code: str,
    priority: RecommendationPriority = RecommendationPriority.CORE,
    frequency_multiplier: float = 1.0,
    focus=None,
) -> ServiceRecommendation:
    """Create a ServiceRecommendation with required fields."""
    return ServiceRecommendation(
        service_code=service_code,
        priority=priority,
        frequency_multiplier=frequency_multiplier,
        focus=focus,
    )


def make_cap_result(
    cap_name: str,
    level: CAPLevel = CAPLevel.IMPROVE,
    recommendations=None,
) -> CAPResult:
    """Create a CAPResult with required fields."""
    return CAPResult(
        cap_name=cap_name,
        level=level,
        description=f"{cap_name} {level.value}",
        recommendations={r.service_code: r for r in recommendations or []},
    )


def make_caps(*names: str, level: CAPLevel = CAPLevel.IMPROVE) -> dict[str, CAPResult]:
    """Create a triggered-CAP mapping for the given names."""
    return {name: make_cap_result(name, level) for name in names}


def make_service(code: str, **kwargs) -> ServiceDefinition:
    """Create a ServiceDefinition with required fields."""
    return ServiceDefinition(code=code, name=kwargs.pop("name", code), **kwargs)


def make_category(
    name: str,
    services,
    unit: CategoryUnit = CategoryUnit.UNITS,
    **kwargs,
) -> CategoryDefinition:
    """Create a CategoryDefinition from a list of ServiceDefinitions."""
    return CategoryDefinition(
        name=name,
        unit=unit,
        services={s.code: s for s in services},
        **kwargs,
    )


def make_floor(
    category: str,
    floor: float,
    recommended=None,
    unit: CategoryUnit = CategoryUnit.UNITS,
) -> CategoryFloor:
    """Create a CategoryFloor with required fields."""
    return CategoryFloor(
        category=category,
        floor=floor,
        recommended=floor if recommended is None else recommended,
        unit=unit,
    )


def make_service_type(
    code: str,
    cost_per_visit="50.00",
    duration=None,
    active: bool = True,
    delivery_mode: DeliveryMode = DeliveryMode.IN_PERSON,
) -> ServiceType:
    """Create a ServiceType with required fields."""
    return ServiceType(
        code=code,
        name=code,
        default_duration_minutes=duration,
        cost_per_visit=Decimal(cost_per_visit) if cost_per_visit is not None else None,
        active=active,
        delivery_mode=delivery_mode,
    )


def make_allocation(
    code: str,
    frequency: int = 1,
    cost_per_visit: str = "100.00",
    category: str = "personal_support",
    duration: int = 60,
    period: str = "week",
    service_type=None,
) -> ServiceAllocation:
    """Create a primary ServiceAllocation priced per visit."""
    return ServiceAllocation(
        service_code=code,
        frequency=frequency,
        duration_minutes=duration,
        category=category,
        source=AllocationSource.PRIMARY,
        frequency_period=period,
        service_type=service_type,
        cost_per_visit=Decimal(cost_per_visit),
    )


def make_catalog(*codes: str) -> InMemoryServiceCatalog:
    """Create a catalog holding an active service type per code."""
    return InMemoryServiceCatalog.from_types(make_service_type(code) for code in codes)


def make_rate(
    service_code: str,
    rate: str,
    effective_from: date,
    effective_to=None,
) -> ServiceRate:
    """Create a ServiceRate with required fields."""
    return ServiceRate(
        service_code=service_code,
        rate=Decimal(rate),
        effective_from=effective_from,
        effective_to=effective_to,
    )


def make_rates(*rates: ServiceRate) -> InMemoryRateRepository:
    return InMemoryRateRepository.from_rates(rates)


def make_algorithm_doc(name: str, tree: dict, **kwargs) -> dict:
    """Create an algorithm document with required fields."""
    doc = {
        "name": name,
        "version": "1.0",
        "output_range": kwargs.pop("output_range", [0, 5]),
        "tree": tree,
    }
    doc.update(kwargs)
    return doc


# =============================================================================
# Document Writers
# =============================================================================

def write_json(path: Path, data: dict) -> Path:
    """Write a JSON document, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def write_yaml(path: Path, data: dict) -> Path:
    """Write a YAML document, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


# =============================================================================
# Common Fixtures
# =============================================================================

@pytest.fixture
def bundled_settings() -> Settings:
    """Settings pointing at the configuration shipped with the package."""
    return Settings(config_dir=DEFAULT_CONFIG_DIR)


@pytest.fixture
def algorithms_dir(tmp_path) -> Path:
    """Empty algorithm store."""
    path = tmp_path / "algorithms"
    path.mkdir()
    return path


@pytest.fixture
def caps_dir(tmp_path) -> Path:
    """Empty CAP store."""
    path = tmp_path / "cap_triggers"
    path.mkdir()
    return path
