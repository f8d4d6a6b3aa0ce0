"""
CareBundle CLI: Validate Tool

Load every definition document of a configuration directory and report
load errors, lint findings and broken cross-document references.

Usage:
    carebundle-validate
    carebundle-validate --config-dir /etc/carebundle --strict
"""
from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from .engine.cap_trigger import CAP_SUBDIRECTORIES, CAP_SUFFIXES
from .engine.decision_tree import lint_definition
from .engine.scoring import CA_TO_HC_MAP
from .exceptions import CareBundleError
from .logging_setup import configure_logging
from .models import CAPDefinition, PatientNeedsProfile
from .packs import (
    DOCUMENT_SUFFIXES,
    load_algorithm_file,
    load_axis_selection,
    load_axis_templates,
    load_cap_file,
    load_cost_reference,
    load_intensity_matrix,
    load_service_categories,
    load_service_types,
    load_substitution_rules,
    validate_reference_integrity,
)
from .settings import Settings


COMPOSITION_DOCUMENTS: tuple[tuple[str, str, Callable[[Path], Any]], ...] = (
    ("categories", "service_categories.json", load_service_categories),
    ("matrix", "service_intensity_matrix.json", load_intensity_matrix),
    ("templates", "scenario_templates.json", load_axis_templates),
    ("rules", "substitution_rules.json", load_substitution_rules),
    ("service_types", "service_types.yaml", load_service_types),
    ("axis_selection", "axis_selection.yaml", load_axis_selection),
    ("cost_reference", "cost_reference.yaml", load_cost_reference),
)


@dataclass
class FileReport:
    """Outcome of validating one document."""
    path: Path
    errors: list[str] = field(default_factory=list)
    findings: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors:
            return "INVALID"
        if self.findings:
            return "WARN"
        return "VALID"


@dataclass
class ValidationReport:
    files: list[FileReport] = field(default_factory=list)
    reference_findings: list[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(len(f.errors) for f in self.files)

    @property
    def finding_count(self) -> int:
        return sum(len(f.findings) for f in self.files) + len(self.reference_findings)

    def exit_code(self, strict: bool = False) -> int:
        if self.error_count:
            return 1
        if strict and self.finding_count:
            return 1
        return 0


def _describe(error: CareBundleError) -> list[str]:
    messages = [error.message]
    for item in error.details.get("errors", [])[:5]:
        location = " -> ".join(str(p) for p in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg', '')}")
    return messages


def _documents(directory: Path, suffixes: tuple[str, ...]) -> Iterator[Path]:
    if not directory.is_dir():
        return
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.suffix.lower() in suffixes:
            yield path


def _cap_fields(definition: CAPDefinition) -> set[str]:
    fields: set[str] = set()
    for trigger in definition.triggers:
        group = trigger.conditions
        conditions = list(group.all) + list(group.any)
        if group.min_count is not None:
            conditions.extend(group.min_count.conditions)
        fields.update(c.field for c in conditions)
    return fields


# =============================================================================
# Validators
# =============================================================================

def validate_algorithms(settings: Settings) -> list[FileReport]:
    """Load and lint every algorithm against the CA item vocabulary."""
    reports = []
    for path in _documents(settings.algorithms_dir, DOCUMENT_SUFFIXES):
        report = FileReport(path)
        try:
            definition = load_algorithm_file(path)
        except CareBundleError as e:
            report.errors.extend(_describe(e))
        else:
            report.findings.extend(
                f"{f.kind}: {f.message}" for f in lint_definition(definition, CA_TO_HC_MAP)
            )
        reports.append(report)
    return reports


def validate_caps(settings: Settings) -> list[FileReport]:
    """Load every CAP and flag condition fields the profile map never carries."""
    known_fields = set(PatientNeedsProfile().to_cap_input())
    directories = [settings.cap_triggers_dir / sub for sub in CAP_SUBDIRECTORIES]
    directories.append(settings.cap_triggers_dir)

    reports = []
    for directory in directories:
        for path in _documents(directory, CAP_SUFFIXES):
            report = FileReport(path)
            try:
                definition = load_cap_file(path)
            except CareBundleError as e:
                report.errors.extend(_describe(e))
            else:
                report.findings.extend(
                    f"unknown_field: condition reads '{name}'"
                    for name in sorted(_cap_fields(definition) - known_fields)
                )
            reports.append(report)
    return reports


def validate_composition(settings: Settings) -> tuple[list[FileReport], list[str]]:
    """Load the composition documents, then check their cross-references."""
    reports = []
    loaded: dict[str, Any] = {}
    for key, filename, loader in COMPOSITION_DOCUMENTS:
        path = settings.config_dir / filename
        report = FileReport(path)
        if not path.is_file():
            report.findings.append("missing: engines fall back to empty configuration")
        else:
            try:
                loaded[key] = loader(path)
            except CareBundleError as e:
                report.errors.extend(_describe(e))
        reports.append(report)

    if "categories" not in loaded:
        return reports, []

    service_codes: Optional[set[str]] = None
    if "service_types" in loaded:
        types, _rates = loaded["service_types"]
        service_codes = {t.code for t in types}

    findings = validate_reference_integrity(
        loaded["categories"],
        matrix=loaded.get("matrix"),
        templates=loaded.get("templates"),
        rules=loaded.get("rules"),
        service_codes=service_codes,
    )
    return reports, findings


def validate_config(settings: Settings) -> ValidationReport:
    report = ValidationReport()
    report.files.extend(validate_algorithms(settings))
    report.files.extend(validate_caps(settings))
    composition, references = validate_composition(settings)
    report.files.extend(composition)
    report.reference_findings.extend(references)
    return report


# =============================================================================
# Entry Point
# =============================================================================

def print_report(report: ValidationReport, root: Path) -> None:
    for file_report in report.files:
        try:
            name = file_report.path.relative_to(root)
        except ValueError:
            name = file_report.path
        print(f"{file_report.status:8} {name}")
        for error in file_report.errors:
            print(f"    - {error}")
        for finding in file_report.findings:
            print(f"    ~ {finding}")

    if report.reference_findings:
        print("\nReference integrity:")
        for finding in report.reference_findings:
            print(f"    ~ {finding}")

    print(
        f"\nResults: {len(report.files)} files, "
        f"{report.error_count} errors, {report.finding_count} findings"
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate CareBundle definition documents"
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        help="Configuration directory (default: CB_CONFIG_DIR or bundled config)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero on lint and reference findings too",
    )
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    if args.config_dir:
        settings = Settings(
            config_dir=args.config_dir,
            log_level=settings.log_level,
            log_format=settings.log_format,
        )
    configure_logging(settings.log_level, settings.log_format)

    if not settings.config_dir.is_dir():
        print(f"Configuration directory not found: {settings.config_dir}")
        return 2

    print(f"Validating configuration: {settings.config_dir}")
    report = validate_config(settings)
    print_report(report, settings.config_dir)
    return report.exit_code(args.strict)


if __name__ == "__main__":
    sys.exit(main())
