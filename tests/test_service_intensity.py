"""
Tests for CareBundle Service Intensity Resolver

Tests cover:
- Score lookups against the intensity matrix
- PT/OT split of rehab visits
- CAP recommendation adjustments and CAP-only services
- Scenario axis multipliers and matrix modifiers
- Lazy matrix loading and metadata
"""
import pytest

from carebundle.engine.service_intensity import ServiceIntensityResolver, round1
from carebundle.exceptions import DefinitionNotFoundError
from carebundle.models import RecommendationPriority
from carebundle.packs import build_intensity_matrix

from tests.conftest import make_cap_result, make_recommendation


# =============================================================================
# Fixtures
# =============================================================================

SCORES = {"personal_support": 4, "rehabilitation": 3, "chess_ca": 2}


@pytest.fixture
def resolver():
    """Resolver over the bundled intensity matrix."""
    return ServiceIntensityResolver()


# =============================================================================
# Lookup Tests
# =============================================================================

class TestLookup:
    """Tests for get_service_intensity."""

    def test_exact_score(self, resolver):
        """Test an exact score row is returned with its metadata."""
        intensity = resolver.get_service_intensity("psa_to_psw_hours", 4)
        assert intensity.hours == 14
        assert intensity.visits == 0.0
        assert intensity.label == "Moderate"
        assert intensity.source == "interrai_ca_psa"

    def test_closest_score(self, resolver):
        """Test an unmapped score uses the closest row."""
        assert resolver.get_service_intensity("psa_to_psw_hours", 9).hours == 28

    def test_unknown_mapping(self, resolver):
        """Test an unknown mapping yields an empty default."""
        intensity = resolver.get_service_intensity("no_such_mapping", 3)
        assert intensity.hours == 0.0
        assert intensity.visits == 0.0
        assert intensity.source == "default"
        assert intensity.rationale == "No mapping defined"

    def test_round1(self):
        """Test halves round up."""
        assert round1(0.75) == 0.8
        assert round1(0.25) == 0.3
        assert round1(1.04) == 1.0


# =============================================================================
# Resolve Tests
# =============================================================================

class TestResolve:
    """Tests for resolve."""

    def test_scores_map_to_services(self, resolver):
        """Test each algorithm drives its services."""
        services = resolver.resolve(SCORES)
        assert set(services) == {"PSW", "PT", "OT", "NUR"}
        assert services["PSW"].hours == 14
        assert services["NUR"].visits == 1

    def test_rehab_split(self, resolver):
        """Test rehab visits split evenly with therapy hours."""
        services = resolver.resolve({"rehabilitation": 3})
        assert services["PT"].visits == 1.0
        assert services["OT"].visits == 1.0
        assert services["PT"].hours == 0.8
        assert services["PT"].rationale == "Weekly PT and OT (PT portion)"
        assert services["OT"].rationale == "Weekly PT and OT (OT portion)"

    def test_missing_scores_skipped(self, resolver):
        """Test absent or None scores produce no services."""
        services = resolver.resolve({"personal_support": None, "chess_ca": 3})
        assert set(services) == {"NUR"}

    def test_cap_multiplier_on_existing_service(self, resolver):
        """Test a CAP recommendation scales an existing service."""
        caps = {
            "adl": make_cap_result(
                "adl", recommendations=[make_recommendation("PSW", frequency_multiplier=1.5, focus="bathing")]
            )
        }
        psw = resolver.resolve({"personal_support": 4}, caps)["PSW"]
        assert psw.hours == 21
        assert psw.cap_triggered is True
        assert psw.focus == "bathing"
        assert psw.rationale.endswith(" | CAP: adl (core)")

    @pytest.mark.parametrize("priority,hours,visits", [
        (RecommendationPriority.CORE, 2.0, 2.0),
        (RecommendationPriority.RECOMMENDED, 1.0, 1.0),
        (RecommendationPriority.OPTIONAL, 0.5, 0.0),
    ])
    def test_cap_only_service_baseline(self, resolver, priority, hours, visits):
        """Test services only a CAP recommends get a priority baseline."""
        caps = {"falls": make_cap_result("falls", recommendations=[make_recommendation("PERS", priority)])}
        pers = resolver.resolve({}, caps)["PERS"]
        assert (pers.hours, pers.visits) == (hours, visits)
        assert pers.source == "cap_trigger"
        assert pers.priority == priority.value
        assert pers.rationale == f"CAP: falls ({priority.value})"


# =============================================================================
# Scenario Modifier Tests
# =============================================================================

class TestScenarioModifiers:
    """Tests for axis multipliers and matrix modifiers."""

    def test_recovery_rehab(self, resolver):
        """Test PT gets the axis multiplier and the rehab matrix modifier."""
        services = resolver.resolve(SCORES, scenario_axis="recovery_rehab")
        assert services["PT"].visits == 1.6
        assert services["PT"].hours == 1.2
        assert services["PT"].scenario_modifier == 1.3
        assert services["PT"].scenario_axis == "recovery_rehab"
        assert services["OT"].visits == 1.3
        assert services["PSW"].hours == 14

    def test_safety_stability(self, resolver):
        """Test PSW and NUR are raised for safety."""
        services = resolver.resolve(SCORES, scenario_axis="safety_stability")
        assert services["PSW"].hours == 16.9
        assert services["NUR"].visits == 1.2

    def test_tech_enabled(self, resolver):
        """Test in-person services are reduced for tech-enabled care."""
        services = resolver.resolve(SCORES, scenario_axis="tech_enabled")
        assert services["PSW"].hours == 12.6
        assert services["NUR"].visits == 0.6

    def test_no_axis(self, resolver):
        """Test no axis leaves intensities untouched."""
        services = resolver.resolve(SCORES)
        assert services["PSW"].scenario_modifier is None

    def test_unknown_axis(self, resolver):
        """Test an unknown axis is rejected."""
        with pytest.raises(ValueError):
            resolver.resolve(SCORES, scenario_axis="luxury")


# =============================================================================
# Matrix Loading Tests
# =============================================================================

class TestMatrixLoading:
    """Tests for lazy matrix loading."""

    def test_meta(self, resolver):
        """Test matrix metadata lists the mappings."""
        meta = resolver.get_matrix_meta()
        assert meta["version"] == "1.2"
        assert meta["review_status"] == "approved"
        assert set(meta["available_mappings"]) == {
            "psa_to_psw_hours", "rehab_to_therapy_visits", "chess_to_nursing_visits",
        }

    def test_loaded_once(self, resolver):
        """Test the matrix is cached after first use."""
        assert resolver.load_matrix() is resolver.load_matrix()

    def test_missing_file(self, tmp_path):
        """Test a missing matrix raises when first needed."""
        resolver = ServiceIntensityResolver(matrix_path=tmp_path / "missing.json")
        with pytest.raises(DefinitionNotFoundError):
            resolver.resolve(SCORES)

    def test_supplied_matrix(self):
        """Test an injected matrix is used without reading files."""
        matrix = build_intensity_matrix({
            "psa_to_psw_hours": {"mappings": {"1": {"hours": 5}}},
        })
        resolver = ServiceIntensityResolver(matrix=matrix)
        services = resolver.resolve({"personal_support": 3})
        assert services["PSW"].hours == 5
        assert services["PSW"].source == "matrix"
