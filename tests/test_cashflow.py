"""
Unit tests for the cash-flow projector.

Tests cover:
    1. Series layout and the cumulative invariant
    2. Escalation, degradation, O&M, surplus and battery replacement lines
    3. Re-derivation from summarized records

Run tests with: pytest tests/test_cashflow.py -v
"""

import pytest

from potential_model.core.cashflow import (
    CashflowAssumptions,
    CashflowEntry,
    cashflow_values,
    project_cashflows,
    rebuild_cashflows,
)
from potential_model.exceptions import ConfigurationError


def assert_cumulative_invariant(entries):
    assert entries[0].cumulative == entries[0].net_cashflow
    for prev, cur in zip(entries, entries[1:]):
        assert cur.cumulative == pytest.approx(prev.cumulative + cur.net_cashflow)


class TestProjectCashflows:
    """Tests for the year-by-year projection."""

    def test_length_and_year_zero(self):
        entries = project_cashflows(1_000_000.0, 150_000.0, CashflowAssumptions(horizon_years=25))

        assert len(entries) == 26
        assert entries[0].year == 0
        assert entries[-1].year == 25
        assert entries[0].net_cashflow == -1_000_000.0

    def test_flat_savings_by_default(self):
        entries = project_cashflows(500.0, 100.0, CashflowAssumptions(horizon_years=10))

        assert all(e.net_cashflow == 100.0 for e in entries[1:])
        assert entries[-1].cumulative == pytest.approx(500.0)
        assert_cumulative_invariant(entries)

    def test_cumulative_monotonic_with_positive_savings(self):
        entries = project_cashflows(1000.0, 50.0, CashflowAssumptions(horizon_years=30))

        cumulative = [e.cumulative for e in entries]
        assert cumulative == sorted(cumulative)

    def test_negative_capex_rejected(self):
        with pytest.raises(ValueError, match="capex_net"):
            project_cashflows(-1.0, 100.0, CashflowAssumptions())

    def test_inflation_and_degradation(self):
        assumptions = CashflowAssumptions(horizon_years=3, inflation_rate=0.05, degradation_rate=0.01)
        entries = project_cashflows(0.0, 100.0, assumptions)

        assert entries[1].net_cashflow == pytest.approx(100.0)
        assert entries[3].net_cashflow == pytest.approx(100.0 * 1.05**2 * 0.99**2)

    def test_opex_and_surplus_start(self):
        assumptions = CashflowAssumptions(
            horizon_years=4,
            opex_year1=10.0,
            om_escalation=0.10,
            annual_surplus_revenue=20.0,
            surplus_start_year=3,
        )
        entries = project_cashflows(0.0, 100.0, assumptions)

        assert entries[1].net_cashflow == pytest.approx(90.0)
        assert entries[2].net_cashflow == pytest.approx(89.0)
        assert entries[3].net_cashflow == pytest.approx(100.0 + 20.0 - 12.1)

    def test_battery_replacement(self):
        assumptions = CashflowAssumptions(
            horizon_years=12,
            battery_replacement_cost=1000.0,
            battery_replacement_years=(10,),
            battery_price_decline_rate=0.05,
        )
        entries = project_cashflows(0.0, 100.0, assumptions)

        assert entries[9].net_cashflow == pytest.approx(100.0)
        assert entries[10].net_cashflow == pytest.approx(100.0 - 1000.0 * 0.95**10)
        assert_cumulative_invariant(entries)

    def test_invalid_assumptions(self):
        with pytest.raises(ConfigurationError, match="horizon_years"):
            CashflowAssumptions(horizon_years=0)
        with pytest.raises(ConfigurationError, match="degradation_rate"):
            CashflowAssumptions(degradation_rate=1.0)

    def test_cashflow_values(self):
        entries = project_cashflows(100.0, 30.0, CashflowAssumptions(horizon_years=2))

        assert cashflow_values(entries) == [-100.0, 30.0, 30.0]

    def test_to_dict_uses_camel_case(self):
        entry = CashflowEntry(year=1, net_cashflow=5.0, cumulative=-95.0)

        assert entry.to_dict() == {"year": 1, "netCashflow": 5.0, "cumulative": -95.0}


class TestRebuildCashflows:
    """Tests for re-deriving cumulative values from summarized records."""

    def test_inconsistent_cumulative_is_recomputed(self):
        summary = [
            {"year": 0, "netCashflow": -100.0, "cumulative": -100.0},
            {"year": 1, "netCashflow": 40.0, "cumulative": 999.0},
            {"year": 2, "netCashflow": 40.0, "cumulative": 0.0},
        ]
        entries = rebuild_cashflows(summary)

        assert [e.cumulative for e in entries] == [-100.0, -60.0, -20.0]
        assert_cumulative_invariant(entries)

    def test_unsorted_records_and_snake_case(self):
        summary = [
            {"year": 2, "net_cashflow": 10.0},
            {"year": 0, "net_cashflow": -30.0},
            {"year": 1, "net_cashflow": 10.0},
        ]
        entries = rebuild_cashflows(summary)

        assert [e.year for e in entries] == [0, 1, 2]
        assert entries[-1].cumulative == pytest.approx(-10.0)

    def test_net_derived_from_cumulative(self):
        summary = [
            {"year": 0, "cumulative": -100.0},
            {"year": 1, "cumulative": -70.0},
            {"year": 2, "cumulative": -35.0},
        ]
        entries = rebuild_cashflows(summary)

        assert cashflow_values(entries) == pytest.approx([-100.0, 30.0, 35.0])

    def test_entries_are_accepted(self):
        original = project_cashflows(100.0, 25.0, CashflowAssumptions(horizon_years=5))

        assert rebuild_cashflows(original) == original

    def test_duplicate_years_rejected(self):
        with pytest.raises(ValueError, match="Duplicate years"):
            rebuild_cashflows([{"year": 0, "netCashflow": -1.0}, {"year": 0, "netCashflow": 2.0}])

    def test_record_without_values_rejected(self):
        with pytest.raises(ValueError, match="no value"):
            rebuild_cashflows([{"year": 0}])
