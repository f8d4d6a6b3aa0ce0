"""
Tests for CareBundle CLI validate tool

Tests cover:
- Validation of the bundled configuration
- Broken algorithm, CAP and composition documents
- Lint and reference findings
- Exit codes (normal, strict, missing directory)
"""
import logging
import pytest

from carebundle.cli import FileReport, main, validate_config
from carebundle.logging_setup import ROOT_LOGGER
from carebundle.settings import Settings

from tests.conftest import make_algorithm_doc, write_json, write_yaml


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def restore_package_logger():
    """main() configures logging; undo it after each test."""
    logger = logging.getLogger(ROOT_LOGGER)
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture
def config_dir(tmp_path):
    """A minimal valid configuration directory."""
    write_json(
        tmp_path / "algorithms" / "personal_support.json",
        make_algorithm_doc(
            "personal_support",
            {"condition": "C2a >= 3", "true_branch": {"return": 3}, "false_branch": {"return": 1}},
            output_range=[1, 6],
        ),
    )
    write_yaml(tmp_path / "cap_triggers" / "functional" / "falls.yaml", {
        "name": "falls",
        "version": "1.0",
        "triggers": [
            {"level": "IMPROVE", "conditions": {"all": [{"field": "has_recent_fall", "value": True}]}},
            {"level": "NOT_TRIGGERED", "conditions": {"default": True}},
        ],
    })
    write_json(tmp_path / "service_categories.json", {
        "categories": {"personal_support": {"unit": "hours", "services": {"PSW": {"is_primary": True}}}},
    })
    write_json(tmp_path / "service_intensity_matrix.json", {
        "psa_to_psw_hours": {"mappings": {"1": {"hours": 0}}},
    })
    write_json(tmp_path / "scenario_templates.json", {
        "axes": {"balanced": {"target_mix": {"personal_support": 1.0}}},
    })
    write_json(tmp_path / "substitution_rules.json", {})
    write_yaml(tmp_path / "service_types.yaml", {"service_types": [{"code": "PSW"}]})
    write_yaml(tmp_path / "axis_selection.yaml", {"minimum_score": 40, "thresholds": {"falls_risk_high": 2}})
    write_yaml(tmp_path / "cost_reference.yaml", {"weekly_reference_cap": 3500})
    return tmp_path


def statuses(report):
    return {f.path.name: f.status for f in report.files}


# =============================================================================
# Validation Tests
# =============================================================================

class TestValidateConfig:
    """Tests for validate_config."""

    def test_bundled_configuration_valid(self):
        """Test the shipped configuration has no errors or findings."""
        report = validate_config(Settings())
        assert report.error_count == 0
        assert report.finding_count == 0
        assert report.exit_code(strict=True) == 0

    def test_minimal_configuration(self, config_dir):
        """Test a small consistent directory validates cleanly."""
        report = validate_config(Settings(config_dir=config_dir))
        assert report.error_count == 0
        assert statuses(report)["falls.yaml"] == "VALID"
        assert len(report.files) == 9

    def test_broken_algorithm(self, config_dir):
        """Test a malformed algorithm is reported invalid."""
        write_json(config_dir / "algorithms" / "broken.json", {"name": "broken", "version": "1"})
        report = validate_config(Settings(config_dir=config_dir))
        assert statuses(report)["broken.json"] == "INVALID"
        assert report.exit_code() == 1

    def test_lint_finding(self, config_dir):
        """Test unknown identifiers become findings, not errors."""
        write_json(
            config_dir / "algorithms" / "mystery.json",
            make_algorithm_doc(
                "mystery",
                {"condition": "ZZ9 >= 1", "true_branch": {"return": 1}, "false_branch": {"return": 0}},
            ),
        )
        report = validate_config(Settings(config_dir=config_dir))
        assert statuses(report)["mystery.json"] == "WARN"
        assert report.exit_code() == 0
        assert report.exit_code(strict=True) == 1

    def test_unknown_cap_field(self, config_dir):
        """Test CAP conditions reading unknown fields are flagged."""
        write_yaml(config_dir / "cap_triggers" / "social" / "loneliness.yaml", {
            "name": "loneliness",
            "version": "1.0",
            "triggers": [{"level": "PREVENT", "conditions": {"all": [{"field": "pet_count", "value": 0}]}}],
        })
        report = validate_config(Settings(config_dir=config_dir))
        loneliness = next(f for f in report.files if f.path.name == "loneliness.yaml")
        assert loneliness.findings == ["unknown_field: condition reads 'pet_count'"]

    def test_bad_rule_condition(self, config_dir):
        """Test an unparseable substitution condition invalidates the rules."""
        write_json(config_dir / "substitution_rules.json", {
            "within_category_substitutions": {
                "personal_support": {"rules": [{"substitute": "PSW", "max_ratio": 0.5, "conditions": ["a =="]}]},
            },
        })
        report = validate_config(Settings(config_dir=config_dir))
        assert statuses(report)["substitution_rules.json"] == "INVALID"

    def test_missing_document_is_finding(self, config_dir):
        """Test a missing composition document is a finding."""
        (config_dir / "scenario_templates.json").unlink()
        report = validate_config(Settings(config_dir=config_dir))
        assert statuses(report)["scenario_templates.json"] == "WARN"
        assert report.error_count == 0

    def test_unknown_axis_threshold(self, config_dir):
        """Test axis selection rejects thresholds no rule reads."""
        write_yaml(config_dir / "axis_selection.yaml", {"thresholds": {"moon_phase": 3}})
        report = validate_config(Settings(config_dir=config_dir))
        axis_selection = next(f for f in report.files if f.path.name == "axis_selection.yaml")
        assert axis_selection.status == "INVALID"
        assert any("moon_phase" in error for error in axis_selection.errors)

    def test_inverted_cost_bands(self, config_dir):
        """Test a near-cap band below the within-cap band is invalid."""
        write_yaml(config_dir / "cost_reference.yaml", {
            "within_cap_ratio": 0.9, "near_cap_ratio": 0.8,
        })
        report = validate_config(Settings(config_dir=config_dir))
        assert statuses(report)["cost_reference.yaml"] == "INVALID"

    def test_missing_selection_documents_are_findings(self, config_dir):
        """Test the selection and cost documents are optional."""
        (config_dir / "axis_selection.yaml").unlink()
        (config_dir / "cost_reference.yaml").unlink()
        report = validate_config(Settings(config_dir=config_dir))
        assert statuses(report)["axis_selection.yaml"] == "WARN"
        assert statuses(report)["cost_reference.yaml"] == "WARN"
        assert report.error_count == 0

    def test_reference_findings(self, config_dir):
        """Test broken cross-references are collected."""
        write_yaml(config_dir / "service_types.yaml", {"service_types": [{"code": "NUR"}]})
        report = validate_config(Settings(config_dir=config_dir))
        assert report.reference_findings == [
            "Service 'PSW' in category 'personal_support' has no service type",
        ]

    def test_file_report_status(self, tmp_path):
        """Test errors outrank findings."""
        report = FileReport(tmp_path, errors=["bad"], findings=["odd"])
        assert report.status == "INVALID"


# =============================================================================
# Entry Point Tests
# =============================================================================

class TestMain:
    """Tests for the command-line entry point."""

    def test_valid_directory(self, config_dir, capsys):
        """Test a clean run exits 0 and prints a summary."""
        assert main(["--config-dir", str(config_dir)]) == 0
        out = capsys.readouterr().out
        assert "VALID" in out
        assert "0 errors" in out

    def test_missing_directory(self, tmp_path, capsys):
        """Test a missing directory exits 2."""
        assert main(["--config-dir", str(tmp_path / "nowhere")]) == 2
        assert "not found" in capsys.readouterr().out

    def test_invalid_document(self, config_dir, capsys):
        """Test an invalid document exits 1."""
        (config_dir / "service_types.yaml").write_text("service_types: [\n", encoding="utf-8")
        assert main(["--config-dir", str(config_dir)]) == 1
        assert "INVALID" in capsys.readouterr().out
