"""
CareBundle Pipeline

Facade wiring the engines together:

    raw items -> AssessmentScorer -> algorithm scores
    profile (+ scores) -> CAPTriggerEngine -> triggered CAPs
    scores + CAPs + profile -> CategoryIntensityResolver -> category floors
    profile -> AxisSelector -> axes worth offering
    floors + CAPs + profile -> ScenarioCompositionEngine -> services per axis
    services -> CostAnnotator -> cost against the reference cap
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from ..models import (
    CAPResult,
    CategoryFloor,
    PatientNeedsProfile,
    ScenarioAxis,
    ScenarioComposition,
)
from ..settings import Settings, get_settings
from .axis_selector import AxisSelector
from .cap_trigger import CAPTriggerEngine
from .composition import ScenarioCompositionEngine
from .cost_annotation import CostAnnotator
from .decision_tree import DecisionTreeEngine
from .scoring import AssessmentScorer


logger = logging.getLogger(__name__)


@dataclass
class BundlePipeline:
    """
    End-to-end bundle composition for one patient.

    Usage:
        pipeline = BundlePipeline.from_settings()
        scenarios = pipeline.generate_scenarios(profile, raw_items=assessment_items)
        for scenario in scenarios:
            print(scenario.axis.label, scenario.weekly_cost)
    """

    decision_tree: DecisionTreeEngine
    cap_engine: CAPTriggerEngine
    composition: ScenarioCompositionEngine
    axis_selector: AxisSelector = field(default_factory=AxisSelector)
    cost_annotator: CostAnnotator = field(default_factory=CostAnnotator)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> BundlePipeline:
        settings = settings or get_settings()
        composition = ScenarioCompositionEngine.from_config_dir(settings.config_dir)
        return cls(
            decision_tree=DecisionTreeEngine(settings.algorithms_dir),
            cap_engine=CAPTriggerEngine(settings.cap_triggers_dir),
            composition=composition,
            axis_selector=AxisSelector.from_config_dir(
                settings.config_dir, templates=composition.templates
            ),
            cost_annotator=CostAnnotator.from_config_dir(settings.config_dir),
        )

    @property
    def scorer(self) -> AssessmentScorer:
        return AssessmentScorer(self.decision_tree)

    # =========================================================================
    # Stages
    # =========================================================================

    def score(
        self,
        raw_items: Mapping[str, Any],
        profile: Optional[PatientNeedsProfile] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Algorithm scores for raw assessment items.

        Recent-event flags default to the profile's, and a palliative
        episode marks the referral as palliative.
        """
        facts: dict[str, Any] = {}
        if profile is not None:
            facts = {
                "has_recent_hospital_stay": profile.has_recent_hospital_stay,
                "has_recent_er_visit": profile.has_recent_er_visit,
                "is_palliative": profile.episode_type == "palliative",
            }
        facts.update(context or {})
        return self.scorer.evaluate_all_algorithms(raw_items, facts)

    def evaluate_caps(
        self,
        profile: PatientNeedsProfile,
        scores: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, CAPResult]:
        return self.cap_engine.evaluate_all(profile.to_cap_input(scores))

    def resolve_floors(
        self,
        scores: Mapping[str, Any],
        triggered_caps: Mapping[str, CAPResult],
        profile: PatientNeedsProfile,
    ) -> dict[str, CategoryFloor]:
        return self.composition.category_resolver.resolve_to_categories(
            scores, triggered_caps, profile
        )

    # =========================================================================
    # Scenarios
    # =========================================================================

    def compose_scenario(
        self,
        axis: Union[ScenarioAxis, str],
        profile: PatientNeedsProfile,
        scores: Mapping[str, Any],
        triggered_caps: Optional[Mapping[str, CAPResult]] = None,
    ) -> ScenarioComposition:
        """Compose one axis from already computed scores (and CAPs)."""
        if triggered_caps is None:
            triggered_caps = self.evaluate_caps(profile, scores)
        floors = self.resolve_floors(scores, triggered_caps, profile)
        return self._compose(ScenarioAxis(axis), profile, scores, triggered_caps, floors)

    def generate_scenarios(
        self,
        profile: PatientNeedsProfile,
        raw_items: Optional[Mapping[str, Any]] = None,
        scores: Optional[Mapping[str, Any]] = None,
        axes: Optional[Iterable[Union[ScenarioAxis, str]]] = None,
        include_balanced: bool = True,
        context: Optional[Mapping[str, Any]] = None,
    ) -> list[ScenarioComposition]:
        """
        Compose one scenario per axis.

        Scores come from `scores` when given, else from `raw_items`.
        CAPs and category floors are resolved once and shared by every
        axis. Without explicit axes the axis selector picks them from the
        profile. Balanced is moved or appended last when include_balanced
        is set, and dropped otherwise. Every scenario carries its cost
        annotation.

        Returns:
            ScenarioComposition per axis, in axis order
        """
        if scores is None:
            scores = self.score(raw_items or {}, profile, context)

        if axes is None:
            selected = self.axis_selector.get_applicable_axes(profile)
        else:
            selected = [ScenarioAxis(a) for a in axes]
        selected = [a for a in selected if a != ScenarioAxis.BALANCED]
        if include_balanced:
            selected.append(ScenarioAxis.BALANCED)

        if not profile.is_sufficient_for_bundling:
            logger.info(
                "Profile %s has no assessment or referral data; scenarios rely on defaults",
                profile.patient_id,
            )

        triggered_caps = self.evaluate_caps(profile, scores)
        floors = self.resolve_floors(scores, triggered_caps, profile)

        return [
            self._compose(axis, profile, scores, triggered_caps, floors)
            for axis in selected
        ]

    def _compose(
        self,
        axis: ScenarioAxis,
        profile: PatientNeedsProfile,
        scores: Mapping[str, Any],
        triggered_caps: Mapping[str, CAPResult],
        floors: dict[str, CategoryFloor],
    ) -> ScenarioComposition:
        services = self.composition.compose_for_axis(axis, floors, triggered_caps, profile)
        scenario = ScenarioComposition(
            axis=axis,
            services=services,
            category_floors=floors,
            triggered_caps=list(triggered_caps),
            algorithm_scores=dict(scores),
        )
        scenario.cost = self.cost_annotator.annotate(scenario)
        return scenario
