"""
Unit tests for the sizing heuristic.

Run tests with: pytest tests/test_sizing.py -v
"""

import pytest

from potential_model.core.profile import build_profile
from potential_model.core.sizing import (
    BUILDING_TYPE_DEFAULTS,
    SizingCandidate,
    SizingDefaults,
    defaults_for_building_type,
    recommend_sizing,
    round_half_up,
)
from potential_model.exceptions import ConfigurationError

from site_data import hourly_readings


class TestRecommendSizing:
    """Tests for the first-pass recommendation."""

    def test_reference_scenario(self, reference_profile):
        """1.2 GWh / 300 kW at 1200 kWh/kWp -> 1000 kW PV, 600 kWh / 90 kW battery."""
        candidate = recommend_sizing(reference_profile)

        assert candidate.pv_size_kw == 1000
        assert candidate.batt_energy_kwh == 600
        assert candidate.batt_power_kw == 90
        assert candidate.demand_shaving_setpoint_kw == 255

    def test_specific_yield_is_configurable(self, reference_profile):
        candidate = recommend_sizing(reference_profile, SizingDefaults(specific_yield_kwh_per_kwp=1000.0))

        assert candidate.pv_size_kw == 1200

    def test_max_pv_caps_size(self, reference_profile):
        candidate = recommend_sizing(reference_profile, SizingDefaults(max_pv_kw=400.0))

        assert candidate.pv_size_kw == 400
        assert candidate.batt_energy_kwh == 600

    def test_zero_consumption_gives_zero_candidate(self):
        """No division by zero: a zero-sized, infeasible candidate is returned."""
        profile = build_profile(hourly_readings([0.0] * 8760))
        candidate = recommend_sizing(profile)

        assert candidate.is_zero
        assert candidate.pv_size_kw == 0
        assert candidate.batt_energy_kwh == 0
        assert candidate.batt_power_kw == 0

    def test_building_type_changes_battery(self, reference_profile):
        """Industrial loads get a 4 h battery at 20% of peak."""
        candidate = recommend_sizing(reference_profile, building_type="industrial")

        assert candidate.pv_size_kw == 1000
        assert candidate.batt_energy_kwh == 1200
        assert candidate.batt_power_kw == 60

    def test_unknown_building_type(self, reference_profile):
        with pytest.raises(ConfigurationError, match="Unknown building type"):
            recommend_sizing(reference_profile, building_type="stadium")


class TestSizingDefaults:
    """Tests for parameter validation and building-type overrides."""

    def test_invalid_yield(self):
        with pytest.raises(ConfigurationError, match="specific_yield"):
            SizingDefaults(specific_yield_kwh_per_kwp=0.0)

    def test_invalid_fractions(self):
        with pytest.raises(ConfigurationError, match="shaving_fraction"):
            SizingDefaults(shaving_fraction=1.5)
        with pytest.raises(ConfigurationError, match="target_reduction"):
            SizingDefaults(target_reduction=1.0)

    def test_building_type_keeps_other_parameters(self):
        base = SizingDefaults(specific_yield_kwh_per_kwp=1100.0)
        adjusted = defaults_for_building_type("Cold Warehouse", base)

        assert adjusted.specific_yield_kwh_per_kwp == 1100.0
        assert adjusted.discharge_hours == BUILDING_TYPE_DEFAULTS["cold_warehouse"]["discharge_hours"]


class TestSizingCandidate:
    """Tests for candidate helpers."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.4999) == 2

    def test_is_zero(self):
        assert SizingCandidate.zero().is_zero
        assert not SizingCandidate(0, 100, 50, 0).is_zero
        assert not SizingCandidate(10, 0, 0, 0).is_zero

    def test_sort_key_and_label(self):
        candidate = SizingCandidate(500, 200, 100, 255)

        assert candidate.sort_key == (500, 200, 100)
        assert candidate.label == "500kW PV + 200kWh"
        assert SizingCandidate(500, 0, 0, 0).label == "500kW solar only"
