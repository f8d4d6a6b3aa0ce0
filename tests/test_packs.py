"""
Tests for CareBundle Definition Packs

Tests cover:
- Reading YAML/JSON documents and their error cases
- Service categories and intensity matrix conversion
- Scenario template validation
- Substitution rules with compiled conditions
- Service types and dated rates
- Axis selection policy and cost reference documents
- Cross-document reference integrity
"""
import logging
import pytest
from datetime import date
from decimal import Decimal

from carebundle.exceptions import (
    DefinitionLoadError,
    DefinitionNotFoundError,
    DefinitionValidationError,
)
from carebundle.models import CapTriggered, CategoryUnit, DeliveryMode, ProfileComparison
from carebundle.packs import (
    build_axis_selection_policy,
    build_axis_templates,
    build_cost_reference,
    build_intensity_matrix,
    build_service_categories,
    build_service_types,
    build_substitution_rules,
    load_service_types,
    read_document,
    read_optional_document,
    validate_reference_integrity,
)

from tests.conftest import write_json, write_yaml


# =============================================================================
# Document Reading Tests
# =============================================================================

class TestReadDocument:
    """Tests for read_document and read_optional_document."""

    def test_yaml_and_json(self, tmp_path):
        """Test both formats parse to mappings."""
        yaml_path = write_yaml(tmp_path / "doc.yaml", {"name": "a", "version": 1.0})
        json_path = write_json(tmp_path / "doc.json", {"name": "b"})
        assert read_document(yaml_path) == {"name": "a", "version": 1.0}
        assert read_document(json_path) == {"name": "b"}

    def test_unknown_suffix_read_as_yaml(self, tmp_path):
        """Test other suffixes are tried as YAML."""
        path = tmp_path / "doc.txt"
        path.write_text("name: c\n", encoding="utf-8")
        assert read_document(path) == {"name": "c"}

    def test_missing_file(self, tmp_path):
        """Test a missing file raises DefinitionNotFoundError."""
        with pytest.raises(DefinitionNotFoundError) as exc_info:
            read_document(tmp_path / "missing.yaml")
        assert exc_info.value.definition_name == "missing"

    @pytest.mark.parametrize("filename,content", [
        ("broken.yaml", "name: [unclosed\n"),
        ("broken.json", "{\"name\": "),
    ])
    def test_unparseable(self, tmp_path, filename, content):
        """Test syntax errors raise DefinitionLoadError."""
        path = tmp_path / filename
        path.write_text(content, encoding="utf-8")
        with pytest.raises(DefinitionLoadError) as exc_info:
            read_document(path)
        assert exc_info.value.code == "CB_DEFINITION_LOAD_ERROR"
        assert exc_info.value.to_dict()["source"] == str(path)

    def test_non_mapping(self, tmp_path):
        """Test a top-level list is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(DefinitionValidationError):
            read_document(path)

    def test_optional_missing(self, tmp_path, caplog):
        """Test a missing optional document logs and returns None."""
        with caplog.at_level(logging.WARNING, logger="carebundle"):
            assert read_optional_document(tmp_path / "none.json", "Scenario templates") is None
        assert "Scenario templates not found" in caplog.text


# =============================================================================
# Service Category Tests
# =============================================================================

class TestServiceCategories:
    """Tests for build_service_categories."""

    def test_conversion(self):
        """Test categories and services convert with their gates."""
        categories = build_service_categories({
            "categories": {
                "personal_support": {
                    "unit": "hours",
                    "algorithm_drivers": ["personal_support"],
                    "cap_boosters": ["adl"],
                    "floor_mapping": "psa_to_psw_hours",
                    "services": {
                        "PSW": {"name": "Personal Support Worker", "is_primary": True},
                        "DEM": {"requires_cap": "cognitive_loss"},
                    },
                },
            },
        })
        category = categories["personal_support"]
        assert category.unit == CategoryUnit.HOURS
        assert category.floor_mapping == "psa_to_psw_hours"
        assert category.services["PSW"].is_primary is True
        assert category.services["DEM"].requires_cap == ("cognitive_loss",)

    def test_unit_defaults_to_units(self):
        """Test a category without a unit counts units."""
        categories = build_service_categories({"categories": {"risk": {}}})
        assert categories["risk"].unit == CategoryUnit.UNITS

    def test_bad_unit(self):
        """Test an unknown unit is rejected."""
        with pytest.raises(DefinitionValidationError) as exc_info:
            build_service_categories({"categories": {"risk": {"unit": "weeks"}}})
        assert exc_info.value.details["errors"]


# =============================================================================
# Intensity Matrix Tests
# =============================================================================

class TestIntensityMatrix:
    """Tests for build_intensity_matrix."""

    def test_top_level_mappings_collected(self):
        """Test objects carrying a mappings table become mappings."""
        matrix = build_intensity_matrix({
            "version": 1.1,
            "psa_to_psw_hours": {
                "description": "PSA to hours",
                "source": {"primary": "psa"},
                "mappings": {"1": {"hours": 0}, "4": {"hours": 14, "label": "Moderate"}},
                "modifiers": {"SAFETY_STABILITY_AXIS": {"multiplier": 1.1}},
            },
            "notes": {"text": "ignored"},
            "cap_floor_adjustments": {
                "falls": {"risk_mgmt_and_complexity": {"floor_add": 2, "recommended_add": 3}},
            },
        })
        assert matrix.version == "1.1"
        assert list(matrix.mappings) == ["psa_to_psw_hours"]
        mapping = matrix.mappings["psa_to_psw_hours"]
        assert mapping.mappings[4].label == "Moderate"
        assert mapping.source == "psa"
        assert mapping.modifiers == {"SAFETY_STABILITY_AXIS": 1.1}
        adjustment = matrix.cap_floor_adjustments["falls"]["risk_mgmt_and_complexity"]
        assert (adjustment.floor_add, adjustment.recommended_add) == (2, 3)

    def test_negative_hours_rejected(self):
        """Test mapped amounts must not be negative."""
        with pytest.raises(DefinitionValidationError):
            build_intensity_matrix({"psa": {"mappings": {"1": {"hours": -1}}}})

    def test_entry_amount(self):
        """Test rows expose hours, else visits, else zero."""
        matrix = build_intensity_matrix({
            "m": {"mappings": {"1": {"hours": 3}, "2": {"visits": 2}, "3": {"label": "none"}}},
        })
        entries = matrix.mappings["m"].mappings
        assert [entries[k].amount for k in (1, 2, 3)] == [3, 2, 0.0]


# =============================================================================
# Scenario Template Tests
# =============================================================================

class TestAxisTemplates:
    """Tests for build_axis_templates."""

    def test_conversion(self):
        """Test templates convert with requirements and preferences."""
        templates = build_axis_templates({
            "axes": {
                "tech_enabled": {
                    "target_mix": {"clinical_monitoring": 0.6, "personal_support": 0.4},
                    "primary_services": ["RPM"],
                    "requirements": {"tech_readiness_min": 2, "has_internet": True},
                    "substitution_preferences": {
                        "clinical_monitoring": {"max_remote_ratio": 0.7, "maximize_tech": True},
                    },
                },
            },
        })
        template = templates["tech_enabled"]
        assert template.axis == "tech_enabled"
        assert template.primary_services == ("RPM",)
        assert template.requirements.tech_readiness_min == 2
        assert template.preferences_for("clinical_monitoring").maximize_tech is True
        assert template.preferences_for("personal_support").prefer_in_person is False

    def test_unknown_axis(self):
        """Test axis keys must name a scenario axis."""
        with pytest.raises(DefinitionValidationError) as exc_info:
            build_axis_templates({"axes": {"luxury": {}}})
        assert "luxury" in str(exc_info.value.details["errors"])

    def test_ratio_bounds(self):
        """Test preference ratios must lie in [0, 1]."""
        with pytest.raises(DefinitionValidationError):
            build_axis_templates({
                "axes": {"balanced": {"substitution_preferences": {"x": {"max_remote_ratio": 2}}}},
            })


# =============================================================================
# Substitution Rule Tests
# =============================================================================

class TestSubstitutionRules:
    """Tests for build_substitution_rules."""

    def test_conditions_compiled(self):
        """Test rule conditions compile at load time."""
        rules = build_substitution_rules({
            "within_category_substitutions": {
                "personal_support": {
                    "hard_floor_service": "PSW",
                    "hard_floor_ratio": 0.6,
                    "rules": [{
                        "substitute": "DEM",
                        "max_ratio": 0.3,
                        "conditions": "cap_triggered:cognitive_loss",
                        "conversion": {"rationale": "Dementia-trained support"},
                    }],
                },
            },
        })
        category = rules.for_category("personal_support")
        assert category.hard_floor_service == "PSW"
        rule = category.rules[0]
        assert rule.conditions == (CapTriggered("cognitive_loss"),)
        assert rule.rationale == "Dementia-trained support"

    def test_unknown_category_is_empty(self):
        """Test categories without rules get an empty rule set."""
        category = build_substitution_rules({}).for_category("social_support")
        assert category.hard_floor_service is None
        assert category.rules == ()

    def test_bad_condition(self):
        """Test a malformed condition fails the whole document."""
        with pytest.raises(DefinitionValidationError) as exc_info:
            build_substitution_rules({
                "within_category_substitutions": {
                    "personal_support": {
                        "rules": [{"substitute": "HMK", "max_ratio": 0.2, "conditions": ["iadl >="]}],
                    },
                },
            }, source="rules.json")
        error = exc_info.value
        assert "personal_support rule 0 (HMK)" in error.message
        assert error.details["condition"] == "iadl >="
        assert error.details["path"] == "rules.json"

    def test_max_ratio_bounds(self):
        """Test max_ratio must lie in [0, 1]."""
        with pytest.raises(DefinitionValidationError):
            build_substitution_rules({
                "within_category_substitutions": {
                    "x": {"rules": [{"substitute": "A", "max_ratio": 1.5}]},
                },
            })

    def test_packages(self):
        """Test packages keep their trigger, entries and boosts."""
        rules = build_substitution_rules({
            "cross_category_packages": {
                "falls_prevention": {
                    "trigger_condition": "cap_triggered:falls OR falls_risk >= 2",
                    "adds": {"risk_mgmt_and_complexity": {"PERS": {"frequency": 7}}},
                },
                "wound_care": {
                    "trigger_condition": "cap_triggered:pressure_ulcer",
                    "adds": {"clinical_monitoring": {"NUR_wound_care_boost": {"visits_add": 2}}},
                },
                "manual": {"trigger_condition": "  "},
            },
        })
        falls, wound, manual = rules.packages
        assert falls.referenced_caps() == ["falls"]
        assert falls.trigger_condition.children[1] == ProfileComparison("falls_risk", ">=", 2)
        assert falls.adds["risk_mgmt_and_complexity"]["PERS"].unit == "week"
        assert wound.adds["clinical_monitoring"]["NUR_wound_care_boost"].boost_amount == 2
        assert manual.trigger_condition is None
        assert manual.referenced_caps() == []


# =============================================================================
# Service Type Tests
# =============================================================================

class TestServiceTypes:
    """Tests for build_service_types."""

    def test_types_and_rates(self):
        """Test service types convert with their dated rates."""
        types, rates = build_service_types({
            "service_types": [{
                "code": "PSW",
                "name": "Personal Support",
                "default_duration_minutes": 90,
                "cost_per_visit": "55.00",
                "rates": [
                    {"rate": "52.50", "effective_from": "2024-04-01", "effective_to": "2025-03-31"},
                    {"rate": "55.00", "effective_from": "2025-04-01"},
                ],
            }],
        })
        assert types[0].cost_per_visit == Decimal("55.00")
        assert types[0].active is True
        assert rates[0].effective_to == date(2025, 3, 31)
        assert rates[1].rate == Decimal("55.00")
        assert rates[1].is_effective_on(date(2030, 1, 1))

    def test_duplicate_codes(self):
        """Test service codes must be unique."""
        with pytest.raises(DefinitionValidationError) as exc_info:
            build_service_types({"service_types": [{"code": "PSW"}, {"code": "PSW"}]})
        assert "Duplicate service code" in str(exc_info.value.details["errors"])

    def test_reversed_rate_dates(self):
        """Test a rate may not end before it starts."""
        with pytest.raises(DefinitionValidationError):
            build_service_types({
                "service_types": [{
                    "code": "NUR",
                    "rates": [{"rate": 100, "effective_from": "2025-04-01", "effective_to": "2025-01-01"}],
                }],
            })

    def test_bundled_service_types(self, bundled_settings):
        """Test the bundled catalog loads with an inactive TRANS type."""
        types, rates = load_service_types(bundled_settings.service_types_path)
        by_code = {t.code: t for t in types}
        assert len(types) == 23
        assert by_code["TRANS"].active is False
        assert by_code["PSW"].default_duration_minutes == 90
        assert {r.rate for r in rates if r.service_code == "NUR"} == {Decimal("105"), Decimal("110")}
        assert by_code["TELE"].delivery_mode == DeliveryMode.VIRTUAL
        assert by_code["PERS"].delivery_mode == DeliveryMode.AUTOMATED
        assert by_code["PSW"].delivery_mode == DeliveryMode.IN_PERSON

    def test_unknown_delivery_mode(self):
        """Test delivery modes are limited to the known set."""
        with pytest.raises(DefinitionValidationError):
            build_service_types({"service_types": [{"code": "PSW", "delivery_mode": "carrier_pigeon"}]})


# =============================================================================
# Selection and Cost Policy Tests
# =============================================================================

class TestSelectionPolicies:
    """Tests for build_axis_selection_policy and build_cost_reference."""

    def test_thresholds_merge_with_defaults(self):
        """Test omitted thresholds keep their built-in values."""
        policy = build_axis_selection_policy({
            "minimum_score": 45,
            "thresholds": {"falls_risk_high": 3},
        })
        assert policy.minimum_score == 45
        assert policy.max_axes == 4
        assert policy.threshold("falls_risk_high") == 3
        assert policy.threshold("social_support_low") == 2

    def test_unknown_threshold(self):
        """Test misspelled threshold names are rejected."""
        with pytest.raises(DefinitionValidationError) as exc_info:
            build_axis_selection_policy(
                {"thresholds": {"falls_risk_hgih": 3}}, source="axis_selection.yaml",
            )
        assert "Unknown axis thresholds: falls_risk_hgih" in str(exc_info.value.details["errors"])
        assert exc_info.value.to_dict()["source"] == "axis_selection.yaml"

    def test_max_axes_at_least_one(self):
        """Test a zero axis limit is rejected."""
        with pytest.raises(DefinitionValidationError):
            build_axis_selection_policy({"max_axes": 0})

    def test_cost_reference(self):
        """Test the cap converts to Decimal with its bands."""
        reference = build_cost_reference({
            "weekly_reference_cap": "4200.00",
            "within_cap_ratio": 0.8,
            "near_cap_ratio": 1.1,
        })
        assert reference.weekly_reference_cap == Decimal("4200.00")
        assert reference.near_cap_ratio == 1.1

    @pytest.mark.parametrize("data", [
        {"weekly_reference_cap": 0},
        {"within_cap_ratio": 0.9, "near_cap_ratio": 0.8},
    ])
    def test_invalid_cost_reference(self, data):
        """Test a non-positive cap and inverted bands are rejected."""
        with pytest.raises(DefinitionValidationError):
            build_cost_reference(data)


# =============================================================================
# Reference Integrity Tests
# =============================================================================

class TestReferenceIntegrity:
    """Tests for validate_reference_integrity."""

    def test_findings(self):
        """Test each kind of broken reference is reported."""
        categories = build_service_categories({
            "categories": {
                "personal_support": {"floor_mapping": "missing_map", "services": {"PSW": {}, "XYZ": {}}},
            },
        })
        matrix = build_intensity_matrix({
            "cap_floor_adjustments": {"falls": {"nowhere": {"floor_add": 1}}},
        })
        templates = build_axis_templates({"axes": {"balanced": {"target_mix": {"ghost": 1.0}}}})
        rules = build_substitution_rules({"within_category_substitutions": {"phantom": {}}})

        findings = validate_reference_integrity(
            categories, matrix=matrix, templates=templates, rules=rules, service_codes={"PSW"},
        )
        assert findings == [
            "Category 'personal_support' references unknown mapping 'missing_map'",
            "CAP adjustment 'falls' targets unknown category 'nowhere'",
            "Axis 'balanced' mixes unknown category 'ghost'",
            "Substitution rules for unknown category 'phantom'",
            "Service 'XYZ' in category 'personal_support' has no service type",
        ]

    def test_bundled_configuration_consistent(self, bundled_settings):
        """Test the bundled documents reference each other cleanly."""
        from carebundle.packs import (
            load_axis_templates,
            load_intensity_matrix,
            load_service_categories,
            load_substitution_rules,
        )

        types, _rates = load_service_types(bundled_settings.service_types_path)
        findings = validate_reference_integrity(
            load_service_categories(bundled_settings.service_categories_path),
            matrix=load_intensity_matrix(bundled_settings.intensity_matrix_path),
            templates=load_axis_templates(bundled_settings.scenario_templates_path),
            rules=load_substitution_rules(bundled_settings.substitution_rules_path),
            service_codes={t.code for t in types},
        )
        assert findings == []
