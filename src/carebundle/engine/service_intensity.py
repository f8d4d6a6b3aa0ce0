"""
CareBundle Service Intensity Resolver

A coarser, score-keyed strategy kept alongside the category pipeline:
algorithm scores map straight to PSW hours, PT/OT visits and nursing
visits, then CAP recommendations and the scenario axis adjust them.

It does not feed CategoryIntensityResolver or the composition engine.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..models import (
    CAPResult,
    IntensityMatrix,
    RecommendationPriority,
    ScenarioAxis,
    ServiceIntensity,
)
from ..packs import load_intensity_matrix
from ..settings import DEFAULT_CONFIG_DIR


PSA_TO_PSW = "psa_to_psw_hours"
REHAB_TO_THERAPY = "rehab_to_therapy_visits"
CHESS_TO_NURSING = "chess_to_nursing_visits"

# Share of rehab visits going to PT; OT gets the rest
PT_RATIO = 0.5
THERAPY_VISIT_HOURS = 0.75

# Baseline hours/visits for a service only a CAP recommends
CAP_BASELINES: dict[str, tuple[float, float]] = {
    RecommendationPriority.CORE.value: (2.0, 2.0),
    RecommendationPriority.RECOMMENDED.value: (1.0, 1.0),
    RecommendationPriority.OPTIONAL.value: (0.5, 0.0),
}

AXIS_MULTIPLIERS: dict[str, dict[str, float]] = {
    ScenarioAxis.RECOVERY_REHAB.value: {"PT": 1.3, "OT": 1.3, "SLP": 1.2},
    ScenarioAxis.SAFETY_STABILITY.value: {"NUR": 1.2, "PSW": 1.1},
    ScenarioAxis.TECH_ENABLED.value: {"NUR": 0.8, "PSW": 0.9},
    ScenarioAxis.CAREGIVER_RELIEF.value: {"PSW": 1.25, "HM": 1.3},
    ScenarioAxis.COMMUNITY_INTEGRATED.value: {"SW": 1.2},
}

# Service a matrix modifier applies to, per mapping
MODIFIER_TARGETS: dict[str, str] = {
    PSA_TO_PSW: "PSW",
    REHAB_TO_THERAPY: "PT",
    CHESS_TO_NURSING: "NUR",
}


def round1(value: float) -> float:
    """Round half up to one decimal place."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass
class ServiceIntensityResolver:
    """
    Resolves algorithm scores to per-service hours and visits.

    Usage:
        resolver = ServiceIntensityResolver("config/service_intensity_matrix.json")
        services = resolver.resolve(
            {"personal_support": 4, "rehabilitation": 3, "chess_ca": 2},
            triggered_caps,
            scenario_axis="recovery_rehab",
        )
    """

    matrix_path: Optional[Path] = None
    matrix: Optional[IntensityMatrix] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def load_matrix(self) -> IntensityMatrix:
        """
        The intensity matrix, loaded on first use.

        Raises:
            DefinitionNotFoundError: If the matrix file does not exist
            DefinitionLoadError: If it cannot be parsed
        """
        with self._lock:
            if self.matrix is None:
                path = self.matrix_path or DEFAULT_CONFIG_DIR / "service_intensity_matrix.json"
                self.matrix = load_intensity_matrix(path)
            return self.matrix

    def get_matrix_meta(self) -> dict[str, Any]:
        return self.load_matrix().meta()

    def get_service_intensity(self, mapping_name: str, score: int) -> ServiceIntensity:
        """Row of a mapping for a score, or an empty default when unmapped."""
        mapping = self.load_matrix().mappings.get(mapping_name)
        entry = mapping.lookup(int(score)) if mapping is not None else None
        if mapping is None or entry is None:
            return ServiceIntensity(
                hours=0.0, visits=0.0, rationale="No mapping defined", source="default"
            )
        return ServiceIntensity(
            hours=entry.hours or 0.0,
            visits=entry.visits or 0.0,
            label=entry.label,
            rationale=entry.rationale or mapping.description,
            confidence=entry.confidence or "medium",
            source=mapping.source or "matrix",
        )

    def resolve(
        self,
        algorithm_scores: Mapping[str, Any],
        triggered_caps: Optional[Mapping[str, CAPResult]] = None,
        scenario_axis: Optional[Union[ScenarioAxis, str]] = None,
    ) -> dict[str, ServiceIntensity]:
        """
        Resolve scores into service intensities.

        Args:
            algorithm_scores: Algorithm name -> score
            triggered_caps: CAP name -> result
            scenario_axis: Axis whose multipliers to apply

        Returns:
            Service code -> ServiceIntensity
        """
        services: dict[str, ServiceIntensity] = {}

        if algorithm_scores.get("personal_support") is not None:
            services["PSW"] = self.get_service_intensity(
                PSA_TO_PSW, algorithm_scores["personal_support"]
            )

        if algorithm_scores.get("rehabilitation") is not None:
            rehab = self.get_service_intensity(REHAB_TO_THERAPY, algorithm_scores["rehabilitation"])
            for code, ratio, portion in (
                ("PT", PT_RATIO, "PT portion"),
                ("OT", 1 - PT_RATIO, "OT portion"),
            ):
                services[code] = ServiceIntensity(
                    visits=round1(rehab.visits * ratio),
                    hours=round1(rehab.visits * ratio * THERAPY_VISIT_HOURS),
                    rationale=f"{rehab.rationale} ({portion})",
                    source=rehab.source,
                    label=rehab.label,
                    confidence=rehab.confidence,
                )

        if algorithm_scores.get("chess_ca") is not None:
            services["NUR"] = self.get_service_intensity(
                CHESS_TO_NURSING, algorithm_scores["chess_ca"]
            )

        self._apply_cap_adjustments(services, triggered_caps or {})
        if scenario_axis:
            self._apply_scenario_modifiers(services, ScenarioAxis(scenario_axis).value)
        return services

    @staticmethod
    def _apply_cap_adjustments(
        services: dict[str, ServiceIntensity], triggered_caps: Mapping[str, CAPResult]
    ) -> None:
        for cap_name, result in triggered_caps.items():
            for code, rec in result.recommendations.items():
                priority = rec.priority.value
                existing = services.get(code)
                if existing is not None:
                    existing.hours *= rec.frequency_multiplier
                    existing.visits *= rec.frequency_multiplier
                    existing.rationale += f" | CAP: {cap_name} ({priority})"
                    existing.cap_triggered = True
                    if rec.focus:
                        existing.focus = rec.focus
                    continue

                hours, visits = CAP_BASELINES.get(priority, CAP_BASELINES["optional"])
                services[code] = ServiceIntensity(
                    hours=hours,
                    visits=visits,
                    rationale=f"CAP: {cap_name} ({priority})",
                    source="cap_trigger",
                    priority=priority,
                    focus=rec.focus,
                    cap_triggered=True,
                )

    def _apply_scenario_modifiers(
        self, services: dict[str, ServiceIntensity], axis: str
    ) -> None:
        for code, modifier in AXIS_MULTIPLIERS.get(axis, {}).items():
            service = services.get(code)
            if service is None:
                continue
            service.hours = round1(service.hours * modifier)
            service.visits = round1(service.visits * modifier)
            service.scenario_modifier = modifier
            service.scenario_axis = axis

        modifier_key = f"{axis.upper()}_AXIS"
        for mapping_name, mapping in self.load_matrix().mappings.items():
            multiplier = mapping.modifiers.get(modifier_key)
            target = services.get(MODIFIER_TARGETS.get(mapping_name, ""))
            if multiplier is None or target is None:
                continue
            target.hours = round1(target.hours * multiplier)
            target.visits = round1(target.visits * multiplier)
