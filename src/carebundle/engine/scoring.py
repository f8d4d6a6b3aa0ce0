"""
CareBundle Assessment Scorer

Bridges raw home-care assessment items to the algorithm scores the
category resolver consumes.

Raw items are renamed onto CA item codes (CA_TO_HC_MAP). Codes the HC
assessment cannot supply are derived from other items or from request
context. Each standard algorithm is then evaluated; a failing algorithm
is logged and replaced by its fallback score so one broken definition
does not stop the rest.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .decision_tree import DecisionTreeEngine
from .expression import to_number


logger = logging.getLogger(__name__)


# CA item code -> HC raw item key (None: derived, see derive_item)
CA_TO_HC_MAP: dict[str, Optional[str]] = {
    # Section C - preliminary screener
    "C1": "iB3a",
    "C2a": "adl_bathing",
    "C2b": "adl_transfer",
    "C2c": "adl_hygiene",
    "C2d": "adl_dressing_lower",
    "C2e": "adl_bed_mobility",
    "C3": "dyspnea",
    "C4": None,
    "C5a": "mood_sad_expressions",
    "C5b": "mood_unrealistic_fears",
    "C5c": "mood_crying",
    "C6a": None,
    # Section D - extended evaluation
    "D1": None,
    "D3a": "iadl_meal_prep",
    "D3b": "iadl_housework",
    "D3c": "iadl_medications",
    "D3d": None,
    "D4": None,
    "D7c": "edema",
    "D7d": "vomiting",
    "D8a": "pain_frequency",
    "D8b": "pain_intensity",
    "D10a": None,
    "D10b": "weight_loss",
    "D14b": "extensive_iv",
    "D14e": "clinical_wound",
    "D15": None,
    "D16": None,
    "D19b": "caregiver_stress",
    # Referral
    "B2c": None,
}


@dataclass(frozen=True)
class AlgorithmSpec:
    """How one standard algorithm is scored."""
    algorithm: str
    score_key: str
    cast: Callable[[Any], Any]
    fallback: Any


STANDARD_ALGORITHMS: tuple[AlgorithmSpec, ...] = (
    AlgorithmSpec("self_reliance_index", "self_reliance_index", bool, False),
    AlgorithmSpec("assessment_urgency", "assessment_urgency", int, 1),
    AlgorithmSpec("service_urgency", "service_urgency", int, 1),
    AlgorithmSpec("rehabilitation", "rehabilitation", int, 1),
    AlgorithmSpec("personal_support", "personal_support", int, 1),
    AlgorithmSpec("distressed_mood", "distressed_mood", int, 0),
    AlgorithmSpec("pain_scale", "pain", int, 0),
    AlgorithmSpec("chess_ca", "chess_ca", int, 0),
)


def _flag(context: Mapping[str, Any], key: str) -> int:
    return 1 if context.get(key) else 0


def derive_item(code: str, raw_items: Mapping[str, Any], context: Mapping[str, Any]) -> int:
    """Value for a CA item the HC assessment does not record."""
    chess = raw_items.get("chess")
    if code == "C4":
        return 3 if chess is not None and to_number(chess) >= 3 else 1
    if code == "C6a":
        return 1 if chess is not None and to_number(chess) >= 3 else 0
    if code == "D15":
        return _flag(context, "has_recent_hospital_stay")
    if code == "D16":
        return _flag(context, "has_recent_er_visit")
    if code == "B2c":
        return _flag(context, "is_palliative")
    return 0


def map_to_ca_input(
    raw_items: Mapping[str, Any], context: Optional[Mapping[str, Any]] = None
) -> dict[str, Any]:
    """
    CA item codes for a raw HC item map.

    Mapped items missing from raw_items read as 0.
    """
    context = context or {}
    ca_input: dict[str, Any] = {}
    for code, hc_key in CA_TO_HC_MAP.items():
        if hc_key is None:
            ca_input[code] = derive_item(code, raw_items, context)
        else:
            value = raw_items.get(hc_key)
            ca_input[code] = 0 if value is None else value
    return ca_input


@dataclass
class AssessmentScorer:
    """
    Scores the standard algorithm set from raw assessment items.

    Usage:
        scorer = AssessmentScorer(DecisionTreeEngine(settings.algorithms_dir))
        scores = scorer.evaluate_all_algorithms(raw_items, {"is_palliative": True})
    """

    engine: DecisionTreeEngine

    def evaluate_all_algorithms(
        self,
        raw_items: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Args:
            raw_items: HC raw item key -> value
            context: Request facts such as has_recent_hospital_stay,
                has_recent_er_visit and is_palliative

        Returns:
            Score key -> score (pain_scale is reported under "pain")
        """
        ca_input = map_to_ca_input(raw_items, context)
        scores: dict[str, Any] = {}
        for spec in STANDARD_ALGORITHMS:
            try:
                scores[spec.score_key] = spec.cast(self.engine.evaluate(spec.algorithm, ca_input))
            except Exception as e:
                logger.warning(
                    "%s evaluation failed: %s", spec.algorithm, e,
                    extra={"algorithm": spec.algorithm, "error": str(e)},
                )
                scores[spec.score_key] = spec.fallback
        return scores

    @staticmethod
    def get_item_mapping() -> dict[str, Optional[str]]:
        return dict(CA_TO_HC_MAP)
