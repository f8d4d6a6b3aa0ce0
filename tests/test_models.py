"""
Tests for CareBundle Models

Tests cover:
- Enum helpers (CAP levels, scenario axes)
- Algorithm tree helpers
- PatientNeedsProfile lookups and CAP input flattening
- Axis requirements and boost entry names
- Allocation arithmetic and serialization
"""
import pytest
from datetime import date
from decimal import Decimal

from carebundle.models import (
    AllocationSource,
    AlgorithmDefinition,
    AxisRequirements,
    Branch,
    CAPLevel,
    CAPResult,
    CapBoost,
    CategoryFloor,
    CategoryUnit,
    Leaf,
    PatientNeedsProfile,
    ScenarioAxis,
    ScenarioComposition,
    ServiceAllocation,
    boost_target,
    iter_nodes,
    tree_depth,
)

from tests.conftest import make_profile, make_rate


# =============================================================================
# Enum Tests
# =============================================================================

class TestEnums:
    """Tests for enum helpers."""

    def test_cap_level_triggered(self):
        """Test every level but NOT_TRIGGERED counts as triggered."""
        assert CAPLevel.MAINTAIN.is_triggered is True
        assert CAPLevel.NOT_TRIGGERED.is_triggered is False

    def test_not_triggered_result(self):
        """Test the not-triggered factory."""
        result = CAPResult.not_triggered("falls")
        assert result.is_triggered is False
        assert result.to_dict()["level"] == "NOT_TRIGGERED"

    def test_primary_axes(self):
        """Test the commonly offered axes."""
        assert ScenarioAxis.primary_axes() == [
            ScenarioAxis.RECOVERY_REHAB,
            ScenarioAxis.SAFETY_STABILITY,
            ScenarioAxis.TECH_ENABLED,
            ScenarioAxis.CAREGIVER_RELIEF,
        ]

    def test_every_axis_described(self):
        """Test every axis carries a label and description."""
        for axis in ScenarioAxis:
            assert axis.label
            assert axis.description


# =============================================================================
# Algorithm Tree Tests
# =============================================================================

class TestAlgorithmTree:
    """Tests for tree helpers on AlgorithmDefinition."""

    @pytest.fixture
    def definition(self):
        tree = Branch(
            condition="a >= 2",
            true_branch=Leaf(3),
            false_branch=Branch(condition="b == 1", true_branch=Leaf(2), false_branch=Leaf(1)),
        )
        return AlgorithmDefinition(
            name="demo",
            version="1.0",
            output_range=(1, 3),
            tree=tree,
            computed_inputs=(("total", "a + b"),),
        )

    def test_walk(self, definition):
        """Test depth-first walking order."""
        assert definition.conditions() == ["a >= 2", "b == 1"]
        assert definition.leaf_values() == [3, 2, 1]
        assert len(list(iter_nodes(definition.tree))) == 5

    def test_depth(self, definition):
        """Test depth counts branch nodes."""
        assert tree_depth(definition.tree) == 2
        assert tree_depth(Leaf(1)) == 0

    def test_range_and_meta(self, definition):
        """Test output range checks and metadata."""
        assert definition.in_output_range(3) is True
        assert definition.in_output_range(4) is False
        assert definition.computed_input_names == ["total"]
        assert definition.meta().to_dict()["output_range"] == [1, 3]


# =============================================================================
# Profile Tests
# =============================================================================

class TestPatientNeedsProfile:
    """Tests for PatientNeedsProfile."""

    def test_get_value_aliases(self):
        """Test short aliases and unknown names."""
        profile = make_profile(technology_readiness=3, falls_risk_level=2)
        assert profile.get_value("tech_readiness") == 3
        assert profile.get_value("falls_risk") == 2
        assert profile.get_value("no_such_field") is None
        assert profile.get_value("_private") is None

    def test_effective_pain(self):
        """Test pain_score wins over pain_management_need."""
        assert make_profile(pain_management_need=2).effective_pain_score == 2
        assert make_profile(pain_management_need=2, pain_score=0).effective_pain_score == 0

    def test_sufficient_for_bundling(self):
        """Test any data source is sufficient."""
        assert make_profile().is_sufficient_for_bundling is True
        assert make_profile(has_full_hc_assessment=False).is_sufficient_for_bundling is False
        assert make_profile(
            has_full_hc_assessment=False, has_referral_data=True
        ).is_sufficient_for_bundling is True

    def test_cap_input(self):
        """Test derived CAP input fields and score defaults."""
        data = make_profile(falls_risk_level=2, skin_integrity_risk=2).to_cap_input()
        assert data["has_recent_fall"] is True
        assert data["has_pressure_ulcer_risk"] is True
        assert data["episode_type"] == "unknown"
        assert data["personal_support_score"] == 1
        assert data["self_reliance_index"] is False

    def test_cap_input_scores(self):
        """Test algorithm scores surface as *_score fields."""
        data = make_profile(has_recent_fall=False, falls_risk_level=2).to_cap_input(
            {"personal_support": 5, "pain": 3}
        )
        assert data["has_recent_fall"] is False
        assert data["personal_support_score"] == 5
        assert data["pain_scale_score"] == 3

    def test_from_dict_ignores_unknown(self):
        """Test from_dict drops unknown keys and round-trips to_dict."""
        profile = PatientNeedsProfile.from_dict({
            "patient_id": 7,
            "lives_alone": True,
            "missing_data_fields": ["pain_score"],
            "favourite_colour": "blue",
        })
        assert profile.lives_alone is True
        assert profile.missing_data_fields == ("pain_score",)
        assert PatientNeedsProfile.from_dict(profile.to_dict()) == profile

    def test_list_fields_become_tuples(self):
        """Test list-valued fields are stored as tuples and serialized as lists."""
        profile = PatientNeedsProfile.from_dict({
            "extensive_services": ["IV therapy"],
            "active_conditions": ["chf", "copd"],
            "behavioural_flags": None,
        })
        assert profile.extensive_services == ("IV therapy",)
        assert profile.behavioural_flags == ()
        assert profile.to_dict()["active_conditions"] == ["chf", "copd"]


# =============================================================================
# Template Model Tests
# =============================================================================

class TestTemplateModels:
    """Tests for axis requirements and boost entries."""

    def test_requirements(self):
        """Test each requirement gates independently."""
        requirements = AxisRequirements(tech_readiness_min=2, has_internet=True)
        assert requirements.is_met(make_profile(technology_readiness=2, has_internet=True))
        assert not requirements.is_met(make_profile(technology_readiness=1, has_internet=True))
        assert not requirements.is_met(make_profile(technology_readiness=3))
        assert AxisRequirements().is_met(make_profile())

    def test_cognitive_ceiling(self):
        """Test the cognitive complexity ceiling."""
        requirements = AxisRequirements(cognitive_complexity_max=3)
        assert requirements.is_met(make_profile(cognitive_complexity=3))
        assert not requirements.is_met(make_profile(cognitive_complexity=4))

    @pytest.mark.parametrize("entry,target", [
        ("NUR_wound_care_boost", "NUR"),
        ("RD_nutrition_monitoring_boost", "RD"),
        ("PSW_supervision_boost", "PSW"),
        ("PSW_boost", "PSW"),
        ("PERS", None),
    ])
    def test_boost_target(self, entry, target):
        """Test boost suffixes strip to the base service."""
        assert boost_target(entry) == target


# =============================================================================
# Allocation Model Tests
# =============================================================================

class TestAllocationModels:
    """Tests for floors, rates and allocations."""

    def test_rate_window(self):
        """Test rate windows include both ends."""
        rate = make_rate("PSW", "52.50", date(2024, 4, 1), date(2025, 3, 31))
        assert rate.is_effective_on(date(2024, 4, 1))
        assert rate.is_effective_on(date(2025, 3, 31))
        assert not rate.is_effective_on(date(2025, 4, 1))
        assert not rate.is_effective_on(date(2024, 3, 31))

    def test_floor_to_dict(self):
        """Test category floors serialize their boosts."""
        floor = CategoryFloor("risk", 2.0, 3.0, CategoryUnit.UNITS, ["falls"])
        floor.cap_boosts["falls"] = CapBoost(2.0, 3.0, "IMPROVE")
        data = floor.to_dict()
        assert data["unit"] == "units"
        assert data["cap_boosts"]["falls"] == {
            "floor_add": 2.0, "recommended_add": 3.0, "level": "IMPROVE",
        }

    def test_daily_frequency(self):
        """Test daily frequencies convert to weekly visits and cost."""
        allocation = ServiceAllocation(
            service_code="PERS",
            frequency=1,
            frequency_period="day",
            duration_minutes=15,
            category="risk",
            source=AllocationSource.PRIMARY,
            cost_per_visit=Decimal("1.25"),
        )
        assert allocation.weekly_visits == 7
        assert allocation.weekly_hours == pytest.approx(1.75)
        assert allocation.weekly_cost == Decimal("8.75")

    def test_composition_totals(self):
        """Test scenario cost sums its services."""
        services = [
            ServiceAllocation("PSW", 3, 90, "personal_support", AllocationSource.FLOOR,
                              cost_per_visit=Decimal("55.00")),
            ServiceAllocation("NUR", 1, 60, "clinical_monitoring", AllocationSource.PRIMARY,
                              cost_per_visit=Decimal("110.00")),
        ]
        scenario = ScenarioComposition(axis=ScenarioAxis.BALANCED, services=services)
        assert scenario.weekly_cost == Decimal("275.00")
        assert scenario.get_service("NUR") is services[1]
        assert scenario.get_service("OT") is None
        assert ScenarioComposition(axis=ScenarioAxis.BALANCED).weekly_cost == Decimal("0.00")
