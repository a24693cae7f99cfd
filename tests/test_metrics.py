"""
Unit tests for NPV, IRR, payback and LCOE.

Tests cover:
    1. NPV discounting (year 0 undiscounted)
    2. IRR: known roots, multiple roots, undefined and solver-failure cases,
       escalated series
    3. Simple payback and the never-reached state
    4. LCOE
    5. Reporting horizons, including horizons without an IRR
    6. NPV and payback monotonic in savings

Run tests with: pytest tests/test_metrics.py -v
"""

import math

import pytest

from potential_model.core.cashflow import CashflowAssumptions, cashflow_values, project_cashflows
from potential_model.core.metrics import (
    PAYBACK_NEVER_REACHED,
    compute_financial_metrics,
    horizon_metrics,
    irr,
    lcoe,
    npv,
    simple_payback_years,
)
from potential_model.exceptions import NumericConvergenceError


class TestNPV:
    """Tests for net present value."""

    def test_year_zero_undiscounted(self):
        assert npv([-100.0], 0.5) == -100.0

    def test_known_value(self):
        assert npv([-100.0, 110.0], 0.10) == pytest.approx(0.0)
        assert npv([-100.0, 50.0, 50.0], 0.0) == pytest.approx(0.0)

    def test_accepts_entries(self):
        entries = project_cashflows(100.0, 60.0, CashflowAssumptions(horizon_years=2))

        assert npv(entries, 0.05) == pytest.approx(npv(cashflow_values(entries), 0.05))

    def test_invalid_rate(self):
        with pytest.raises(ValueError, match="Discount rate"):
            npv([-1.0, 2.0], -1.0)


class TestIRR:
    """Tests for the numeric IRR solver."""

    def test_single_period(self):
        assert irr([-100.0, 110.0]) == pytest.approx(0.10, abs=1e-9)

    def test_npv_at_irr_is_zero(self):
        values = cashflow_values(project_cashflows(1_000_000.0, 150_000.0, CashflowAssumptions(horizon_years=25)))
        rate = irr(values)

        assert rate is not None
        assert npv(values, rate) == pytest.approx(0.0, abs=1e-3)

    def test_multiple_roots_use_guess(self):
        """-100, 230, -132 has roots at 10% and 20%."""
        values = [-100.0, 230.0, -132.0]

        assert irr(values, guess=0.10) == pytest.approx(0.10, abs=1e-9)
        assert irr(values, guess=0.25) == pytest.approx(0.20, abs=1e-9)

    def test_no_sign_change_is_undefined(self):
        assert irr([100.0, 50.0, 50.0]) is None
        assert irr([-100.0, -50.0]) is None

    def test_zero_capex_is_undefined(self):
        """A free system has no investment to earn a return on."""
        values = cashflow_values(project_cashflows(0.0, 100.0, CashflowAssumptions(horizon_years=10)))

        assert irr(values) is None

    def test_single_value_is_undefined(self):
        assert irr([-100.0]) is None
        assert irr([]) is None

    def test_root_outside_bounds_is_undefined(self):
        """A 99,900% return has no NPV sign change on the scanned range."""
        assert irr([-1.0, 1000.0]) is None

    def test_sign_change_without_real_root_is_undefined(self):
        """-100, 250, -200 changes sign but NPV stays negative at every rate."""
        assert irr([-100.0, 250.0, -200.0]) is None

    def test_solver_failure_raises(self, monkeypatch):
        def failing_brentq(*args, **kwargs):
            raise RuntimeError("failed to converge")

        monkeypatch.setattr("potential_model.core.metrics.brentq", failing_brentq)

        with pytest.raises(NumericConvergenceError, match="solver failed"):
            irr([-100.0, 110.0])

    def test_escalated_series_beats_level_series(self):
        """The IRR follows the actual flows, not the level-annuity shortcut."""
        level = cashflow_values(project_cashflows(1000.0, 150.0, CashflowAssumptions(horizon_years=25)))
        escalated = cashflow_values(
            project_cashflows(1000.0, 150.0, CashflowAssumptions(horizon_years=25, inflation_rate=0.04))
        )

        level_irr = irr(level)
        escalated_irr = irr(escalated)

        assert escalated_irr > level_irr
        assert npv(escalated, escalated_irr) == pytest.approx(0.0, abs=1e-6)
        assert npv(escalated, level_irr) > 0


class TestPayback:
    """Tests for simple payback."""

    def test_exact_year(self):
        entries = project_cashflows(100.0, 25.0, CashflowAssumptions(horizon_years=10))

        assert simple_payback_years(entries) == 4.0

    def test_never_reached(self):
        entries = project_cashflows(1000.0, 10.0, CashflowAssumptions(horizon_years=10))

        assert simple_payback_years(entries) == PAYBACK_NEVER_REACHED
        assert math.isinf(simple_payback_years(entries))

    def test_zero_capex_pays_back_immediately(self):
        entries = project_cashflows(0.0, 10.0, CashflowAssumptions(horizon_years=5))

        assert simple_payback_years(entries) == 0.0


class TestLCOE:
    """Tests for levelized cost of energy."""

    def test_undiscounted(self):
        assert lcoe(100.0, [0.0, 0.0], [10.0, 10.0], 0.0) == pytest.approx(5.0)

    def test_opex_included(self):
        assert lcoe(100.0, [10.0, 10.0], [10.0, 10.0], 0.0) == pytest.approx(6.0)

    def test_no_production(self):
        assert lcoe(100.0, [], [0.0, 0.0], 0.05) == math.inf

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            lcoe(100.0, [1.0], [10.0, 10.0], 0.05)


class TestFinancialMetrics:
    """Tests for the combined metrics and reporting horizons."""

    def test_compute_financial_metrics(self):
        entries = project_cashflows(100.0, 25.0, CashflowAssumptions(horizon_years=10))
        metrics = compute_financial_metrics(entries, 0.05, production_by_year=[50.0] * 10)

        assert metrics.npv == pytest.approx(npv(entries, 0.05))
        assert metrics.irr == pytest.approx(irr(entries))
        assert metrics.simple_payback_years == 4.0
        assert metrics.payback_reached
        assert metrics.lcoe > 0

    def test_horizons_skip_beyond_series(self):
        values = cashflow_values(project_cashflows(1000.0, 150.0, CashflowAssumptions(horizon_years=25)))
        results = horizon_metrics(values, 0.07)

        assert [h.years for h in results] == [10, 20, 25]
        assert results[-1].npv == pytest.approx(npv(values, 0.07))
        assert results[0].npv < results[1].npv < results[2].npv

    def test_horizon_without_irr_is_reported(self):
        """A horizon cut on an outlay year has no IRR; later horizons still do."""
        results = horizon_metrics([-100.0, 250.0, -200.0, 100.0], 0.05, horizons=(2, 3))

        assert [h.years for h in results] == [2, 3]
        assert results[0].irr is None
        assert results[0].npv == pytest.approx(npv([-100.0, 250.0, -200.0], 0.05))
        assert results[1].irr is not None
        assert npv([-100.0, 250.0, -200.0, 100.0], results[1].irr) == pytest.approx(0.0, abs=1e-6)

    def test_horizon_solver_failure_does_not_abort(self, monkeypatch):
        def failing_brentq(*args, **kwargs):
            raise RuntimeError("failed to converge")

        monkeypatch.setattr("potential_model.core.metrics.brentq", failing_brentq)
        values = cashflow_values(project_cashflows(1000.0, 150.0, CashflowAssumptions(horizon_years=25)))

        results = horizon_metrics(values, 0.07)

        assert [h.years for h in results] == [10, 20, 25]
        assert all(h.irr is None for h in results)
        assert results[-1].npv == pytest.approx(npv(values, 0.07))


class TestMonotonicity:
    """More savings for the same net CAPEX never lowers NPV or delays payback."""

    SAVINGS = (50.0, 100.0, 150.0, 200.0, 300.0)

    @pytest.mark.parametrize(
        "assumptions",
        [
            CashflowAssumptions(horizon_years=25),
            CashflowAssumptions(horizon_years=25, inflation_rate=0.03, degradation_rate=0.005),
            CashflowAssumptions(horizon_years=25, opex_year1=40.0, om_escalation=0.03),
        ],
        ids=["flat", "escalated", "o_and_m"],
    )
    def test_npv_and_payback_follow_savings(self, assumptions):
        npvs = []
        paybacks = []
        for savings in self.SAVINGS:
            entries = project_cashflows(1000.0, savings, assumptions)
            metrics = compute_financial_metrics(entries, 0.06)
            npvs.append(metrics.npv)
            paybacks.append(metrics.simple_payback_years)

        assert all(a <= b for a, b in zip(npvs, npvs[1:]))
        assert all(a >= b for a, b in zip(paybacks, paybacks[1:]))
        assert npvs[-1] > npvs[0]
        assert math.isfinite(paybacks[-1])
