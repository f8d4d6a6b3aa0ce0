"""
CareBundle Patient Needs Profile

Flat, read-only summary of a patient's assessed needs. Built upstream from
assessment data and handed to every resolver unchanged.

Scales (all integers, higher means more need unless stated):
- adl_support_level / iadl_support_level / mobility_complexity: 0-6
- cognitive_complexity: 0-6 (CPS derived)
- falls_risk_level / skin_integrity_risk: 0-2
- pain_management_need: 0-3
- health_instability: 0-5 (CHESS derived)
- caregiver_stress_level: 0-4
- caregiver_availability_score / social_support_score: 0-5 (higher is better)
- technology_readiness: 0-3 (higher is better)
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Optional


# Short names used by substitution rule conditions
FIELD_ALIASES: dict[str, str] = {
    "tech_readiness": "technology_readiness",
    "falls_risk": "falls_risk_level",
    "caregiver_stress": "caregiver_stress_level",
    "pain": "pain_score",
}

_LIST_FIELDS = (
    "extensive_services", "active_conditions", "behavioural_flags", "missing_data_fields",
)


@dataclass(frozen=True)
class PatientNeedsProfile:
    """Patient needs consumed by the CAP engine, resolvers and composition."""
    patient_id: Optional[int] = None
    profile_version: str = "1.0"

    # Data sources
    has_full_hc_assessment: bool = False
    has_ca_assessment: bool = False
    has_referral_data: bool = False
    episode_type: Optional[str] = None
    confidence_level: str = "low"

    # Functional
    adl_support_level: int = 0
    iadl_support_level: int = 0
    mobility_complexity: int = 0

    # Cognitive and behavioural
    cognitive_complexity: int = 0
    behavioural_complexity: int = 0
    mental_health_complexity: int = 0
    has_wandering_risk: bool = False
    has_aggression_risk: bool = False
    has_delirium: bool = False

    # Clinical risk
    falls_risk_level: int = 0
    has_recent_fall: Optional[bool] = None
    skin_integrity_risk: int = 0
    pain_management_need: int = 0
    pain_score: Optional[int] = None
    continence_support: int = 0
    health_instability: int = 0
    has_polypharmacy_risk: bool = False
    has_recent_hospital_stay: bool = False
    has_recent_er_visit: bool = False

    # Treatments and rehab
    has_rehab_potential: bool = False
    rehab_potential_score: int = 0
    requires_extensive_services: bool = False
    weekly_therapy_minutes: int = 0
    extensive_services: tuple[str, ...] = field(default_factory=tuple)
    active_conditions: tuple[str, ...] = field(default_factory=tuple)
    behavioural_flags: tuple[str, ...] = field(default_factory=tuple)

    # Caregiver and social
    caregiver_availability_score: int = 0
    caregiver_stress_level: int = 0
    lives_alone: bool = False
    caregiver_requires_relief: bool = False
    social_support_score: int = 0
    has_home_environment_risk: bool = False

    # Technology
    technology_readiness: int = 0
    has_internet: bool = False
    has_pers: bool = False
    suitable_for_rpm: bool = False

    # Geography
    region_code: Optional[str] = None
    is_rural: bool = False
    travel_complexity_score: int = 0

    missing_data_fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def effective_pain_score(self) -> int:
        """Explicit pain score, or the pain management need when unset."""
        if self.pain_score is not None:
            return self.pain_score
        return self.pain_management_need

    @property
    def is_sufficient_for_bundling(self) -> bool:
        return (
            self.has_full_hc_assessment
            or self.has_ca_assessment
            or self.has_referral_data
        )

    def get_value(self, name: str) -> Any:
        """
        Look up a profile value by field name or short alias.

        Returns None for names the profile does not carry.
        """
        attr = FIELD_ALIASES.get(name, name)
        if attr == "pain_score":
            return self.effective_pain_score
        if attr.startswith("_") or attr not in self.__dataclass_fields__:
            return None
        return getattr(self, attr)

    def to_cap_input(self, scores: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        """
        Flatten the profile into the snake_case map CAP definitions read.

        Args:
            scores: Algorithm scores to expose as *_score fields

        Returns:
            Field name -> value mapping for CAPTriggerEngine
        """
        scores = scores or {}
        has_recent_fall = self.has_recent_fall
        if has_recent_fall is None:
            has_recent_fall = self.falls_risk_level >= 2

        return {
            # Falls
            "has_recent_fall": has_recent_fall,
            "falls_risk_level": self.falls_risk_level,
            # Function
            "mobility_complexity": self.mobility_complexity,
            "adl_support_level": self.adl_support_level,
            "iadl_support_level": self.iadl_support_level,
            # Cognition and behaviour
            "cognitive_complexity": self.cognitive_complexity,
            "has_delirium": self.has_delirium,
            "behavioural_complexity": self.behavioural_complexity,
            "mental_health_complexity": self.mental_health_complexity,
            # Clinical risk
            "pain_score": self.effective_pain_score,
            "health_instability": self.health_instability,
            "has_pressure_ulcer_risk": self.skin_integrity_risk >= 2,
            "has_polypharmacy_risk": self.has_polypharmacy_risk,
            "continence_support": self.continence_support,
            # Environment and support
            "has_home_environment_risk": self.has_home_environment_risk,
            "caregiver_stress_level": self.caregiver_stress_level,
            "caregiver_availability_score": self.caregiver_availability_score,
            "social_support_score": self.social_support_score,
            "lives_alone": self.lives_alone,
            # Recent events
            "has_recent_hospital_stay": self.has_recent_hospital_stay,
            "has_recent_er_visit": self.has_recent_er_visit,
            # Context
            "has_full_hc_assessment": self.has_full_hc_assessment,
            "episode_type": self.episode_type or "unknown",
            "rehab_potential_score": self.rehab_potential_score,
            # Algorithm scores
            "self_reliance_index": scores.get("self_reliance_index", False),
            "personal_support_score": scores.get("personal_support", 1),
            "rehabilitation_score": scores.get("rehabilitation", 1),
            "chess_ca_score": scores.get("chess_ca", 0),
            "distressed_mood_score": scores.get("distressed_mood", 0),
            "pain_scale_score": scores.get("pain", 0),
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for name in _LIST_FIELDS:
            data[name] = list(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PatientNeedsProfile:
        """Build a profile from a mapping, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for name in _LIST_FIELDS:
            if name in known:
                known[name] = tuple(known[name] or ())
        return cls(**known)
