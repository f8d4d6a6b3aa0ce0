"""
CareBundle Axis Selector

Decides which scenario axes are worth offering for a patient.

Every axis is scored from the needs profile with additive rules (see
_score_* below). An axis is applicable when:
1. Its score reaches the policy's minimum_score
2. Its template requirements, when a template is known, are met
3. For tech_enabled, the patient has internet access

get_applicable_axes ranks applicable axes by score, highest first, and
keeps at most max_axes of them. Balanced scores balanced_base_score and
is always part of the result; when it would rank outside the cut it
takes the last slot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from ..models import AxisSelectionPolicy, AxisTemplate, PatientNeedsProfile, ScenarioAxis
from ..packs import build_axis_selection_policy, build_axis_templates, read_optional_document
from ..settings import DEFAULT_CONFIG_DIR


logger = logging.getLogger(__name__)

REHAB_EPISODE_TYPES = frozenset({"post_acute", "acute_exacerbation"})


@dataclass(frozen=True)
class AxisCandidate:
    """Score of one axis for one profile, with the rules that contributed."""
    axis: ScenarioAxis
    score: int
    reasons: tuple[str, ...] = ()
    applicable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "axis": self.axis.value,
            "score": self.score,
            "reasons": list(self.reasons),
            "applicable": self.applicable,
        }


class _Tally:
    def __init__(self) -> None:
        self.score = 0
        self.reasons: list[str] = []

    def add(self, points: int, reason: Optional[str] = None) -> None:
        self.score += points
        if reason:
            self.reasons.append(reason)


@dataclass
class AxisSelector:
    """
    Scores scenario axes against a patient profile.

    Usage:
        selector = AxisSelector.from_config_dir()
        axes = selector.get_applicable_axes(profile)
        if selector.is_axis_applicable(ScenarioAxis.TECH_ENABLED, profile):
            ...
    """

    policy: AxisSelectionPolicy = field(default_factory=AxisSelectionPolicy)
    templates: Mapping[str, AxisTemplate] = field(default_factory=dict)

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Optional[Union[str, Path]] = None,
        templates: Optional[Mapping[str, AxisTemplate]] = None,
    ) -> AxisSelector:
        """
        Build a selector from axis_selection.yaml in a configuration directory.

        A missing document leaves the default policy. Templates are read
        from scenario_templates.json unless given.
        """
        root = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

        policy = AxisSelectionPolicy()
        path = root / "axis_selection.yaml"
        data = read_optional_document(path, "Axis selection")
        if data is not None:
            policy = build_axis_selection_policy(data, source=str(path))

        if templates is None:
            templates = {}
            path = root / "scenario_templates.json"
            data = read_optional_document(path, "Scenario templates")
            if data is not None:
                templates = build_axis_templates(data, source=str(path))

        return cls(policy=policy, templates=templates)

    # =========================================================================
    # Selection
    # =========================================================================

    def get_applicable_axes(
        self, profile: PatientNeedsProfile, max_axes: Optional[int] = None
    ) -> list[ScenarioAxis]:
        """
        Applicable axes, highest score first.

        Args:
            profile: Patient needs profile
            max_axes: Result size limit (default: the policy's max_axes)

        Returns:
            At most max_axes axes; balanced is always included
        """
        limit = self.policy.max_axes if max_axes is None else max_axes
        if limit < 1:
            raise ValueError(f"max_axes must be at least 1, got {limit}")

        ranked = sorted(
            (c for c in self.evaluate(profile) if c.applicable),
            key=lambda c: c.score,
            reverse=True,
        )
        selected = [c.axis for c in ranked[:limit]]
        if ScenarioAxis.BALANCED not in selected:
            selected = selected[: limit - 1] + [ScenarioAxis.BALANCED]

        logger.debug(
            "Axes for profile %s: %s", profile.patient_id,
            ", ".join(a.value for a in selected),
            extra={"patient_id": profile.patient_id},
        )
        return selected

    def is_axis_applicable(
        self, axis: Union[ScenarioAxis, str], profile: PatientNeedsProfile
    ) -> bool:
        return self.evaluate_axis(axis, profile).applicable

    def evaluate(self, profile: PatientNeedsProfile) -> list[AxisCandidate]:
        """Candidates for every axis, balanced first."""
        return [self.evaluate_axis(axis, profile) for axis in _EVALUATION_ORDER]

    def evaluate_axis(
        self, axis: Union[ScenarioAxis, str], profile: PatientNeedsProfile
    ) -> AxisCandidate:
        axis = ScenarioAxis(axis)
        if axis == ScenarioAxis.BALANCED:
            return AxisCandidate(
                axis=axis,
                score=self.policy.balanced_base_score,
                reasons=("Default balanced option",),
                applicable=True,
            )

        tally = _Tally()
        _SCORERS[axis](self, profile, tally)
        applicable = (
            tally.score >= self.policy.minimum_score
            and self._requirements_met(axis, profile)
        )
        return AxisCandidate(
            axis=axis,
            score=tally.score,
            reasons=tuple(tally.reasons),
            applicable=applicable,
        )

    def _requirements_met(self, axis: ScenarioAxis, profile: PatientNeedsProfile) -> bool:
        if axis == ScenarioAxis.TECH_ENABLED and not profile.has_internet:
            return False
        template = self.templates.get(axis.value)
        return template is None or template.requirements.is_met(profile)

    # =========================================================================
    # Axis Scores
    # =========================================================================

    def _score_recovery(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.rehab_potential_score >= t("rehab_score_minimum"):
            tally.add(40, f"Rehab potential score: {p.rehab_potential_score}")
        if p.weekly_therapy_minutes >= t("weekly_therapy_minutes_minimum"):
            tally.add(30, f"Therapy minutes/week: {p.weekly_therapy_minutes}")
        if p.episode_type in REHAB_EPISODE_TYPES:
            tally.add(20, f"Episode type: {p.episode_type}")
        if p.has_rehab_potential:
            tally.add(10, "Has documented rehab potential")

    def _score_safety(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.falls_risk_level >= t("falls_risk_high"):
            tally.add(35, f"High falls risk level: {p.falls_risk_level}")
        if p.health_instability >= t("health_instability_high"):
            tally.add(30, f"Health instability (CHESS): {p.health_instability}")
        if p.cognitive_complexity >= t("cognitive_complexity_safety"):
            tally.add(20, f"Cognitive complexity: {p.cognitive_complexity}")
        if p.lives_alone:
            tally.add(15, "Lives alone")
        if p.has_wandering_risk or p.has_aggression_risk:
            tally.add(10, "Behavioural safety risk")

    def _score_tech(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.technology_readiness >= t("tech_readiness_minimum"):
            tally.add(35, f"Technology readiness: {p.technology_readiness}")
        if p.has_internet:
            tally.add(25, "Has reliable internet")
        if p.health_instability <= t("tech_health_instability_max"):
            tally.add(15, "Stable health status")
        if p.has_pers:
            tally.add(10, "Has PERS installed")
        if p.suitable_for_rpm:
            tally.add(15, "Suitable for RPM")
        if p.is_rural:
            tally.add(10, "Rural location benefits from remote support")
        # May struggle with devices
        if p.cognitive_complexity >= t("tech_cognitive_complexity_penalty"):
            tally.add(-20)

    def _score_caregiver(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.caregiver_stress_level >= t("caregiver_stress_high"):
            tally.add(40, f"High caregiver stress: {p.caregiver_stress_level}")
        if p.caregiver_requires_relief:
            tally.add(30, "Caregiver requires relief")
        if p.caregiver_availability_score >= t("caregiver_availability_with_stress"):
            tally.add(15, "Caregiver is engaged and available")
        if p.cognitive_complexity >= t("cognitive_complexity_high"):
            tally.add(10, "Cognitive complexity increases caregiver burden")
        if p.behavioural_complexity >= t("behavioural_complexity_caregiver"):
            tally.add(10, "Behavioural complexity increases caregiver burden")

    def _score_medical(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.requires_extensive_services:
            tally.add(50, "Requires extensive services")
            if p.extensive_services:
                tally.add(0, "Services: " + ", ".join(p.extensive_services))
        if p.health_instability >= t("health_instability_medical"):
            tally.add(30, f"Very high health instability: {p.health_instability}")
        if p.skin_integrity_risk >= t("skin_integrity_medical"):
            tally.add(15, f"Skin integrity risk: {p.skin_integrity_risk}")
        if p.pain_management_need >= t("pain_management_medical"):
            tally.add(10, f"Pain management need: {p.pain_management_need}")
        if len(p.active_conditions) >= t("active_conditions_medical"):
            tally.add(10, "Multiple active conditions")

    def _score_cognitive(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.cognitive_complexity >= t("cognitive_complexity_high"):
            tally.add(40, f"Cognitive complexity: {p.cognitive_complexity}")
        if p.behavioural_complexity >= t("behavioural_complexity_high"):
            tally.add(25, f"Behavioural complexity: {p.behavioural_complexity}")
        if p.mental_health_complexity >= t("mental_health_cognitive"):
            tally.add(15, f"Mental health complexity: {p.mental_health_complexity}")
        if p.has_wandering_risk:
            tally.add(15, "Wandering risk")
        if p.has_aggression_risk:
            tally.add(10, "Aggression risk")
        if p.behavioural_flags:
            tally.add(10, "Documented behavioural concerns")

    def _score_community(self, p: PatientNeedsProfile, tally: _Tally) -> None:
        t = self.policy.threshold
        if p.social_support_score <= t("social_support_low"):
            tally.add(30, f"Low social support: {p.social_support_score}")
        if p.iadl_support_level >= t("iadl_support_level_minimum"):
            tally.add(25, f"IADL support need: {p.iadl_support_level}")
        if p.lives_alone:
            tally.add(15, "Lives alone, benefits from social connection")
        if p.cognitive_complexity <= t("community_cognitive_max"):
            tally.add(15, "Can participate in community programs")
        if p.health_instability <= t("community_health_instability_max"):
            tally.add(10, "Stable enough for community activities")


_SCORERS: dict[ScenarioAxis, Callable[[AxisSelector, PatientNeedsProfile, _Tally], None]] = {
    ScenarioAxis.RECOVERY_REHAB: AxisSelector._score_recovery,
    ScenarioAxis.SAFETY_STABILITY: AxisSelector._score_safety,
    ScenarioAxis.TECH_ENABLED: AxisSelector._score_tech,
    ScenarioAxis.CAREGIVER_RELIEF: AxisSelector._score_caregiver,
    ScenarioAxis.MEDICAL_INTENSIVE: AxisSelector._score_medical,
    ScenarioAxis.COGNITIVE_SUPPORT: AxisSelector._score_cognitive,
    ScenarioAxis.COMMUNITY_INTEGRATED: AxisSelector._score_community,
}

# Ties keep this order
_EVALUATION_ORDER: tuple[ScenarioAxis, ...] = (ScenarioAxis.BALANCED, *_SCORERS)
