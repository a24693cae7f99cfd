"""
Unit tests for the sensitivity sweep and optimal-scenario selection.

Tests cover:
    1. Grid enumeration (full grid, reduced grid, around a recommendation)
    2. Deterministic selection and tie-breaks
    3. Thread and process pools vs serial execution
    4. Cancellation and per-point failure isolation

Run tests with: pytest tests/test_sweep.py -v
"""

import dataclasses
import pickle

import pytest

import potential_model.analysis.sweep as sweep_module
from potential_model.analysis.evaluation import evaluate_candidate
from potential_model.analysis.sweep import (
    CancellationToken,
    GridSpec,
    OptimalScenarios,
    SizeRange,
    run_sensitivity_sweep,
    select_optimal_scenarios,
)
from potential_model.config import AnalysisConfig
from potential_model.core.rate_schedule import FlatRateSchedule
from potential_model.core.sizing import SizingCandidate
from potential_model.exceptions import (
    ConfigurationError,
    NumericConvergenceError,
    SweepCancelledError,
)


@pytest.fixture
def config():
    return AnalysisConfig()


@pytest.fixture
def small_grid():
    """PV 0 / 500 / 1000 kW x battery 0 / 600 kWh at 2 h duration."""
    return GridSpec(
        pv=SizeRange(0.0, 1000.0, 500.0),
        battery_energy=SizeRange(0.0, 600.0, 600.0),
        battery_duration_hours=2.0,
        setpoint_kw=255.0,
    )


class TestGridSpec:
    """Tests for candidate enumeration."""

    def test_size_range_values(self):
        assert SizeRange(0.0, 1000.0, 250.0).values() == [0.0, 250.0, 500.0, 750.0, 1000.0]
        assert SizeRange(0.0, 900.0, 250.0).values() == [0.0, 250.0, 500.0, 750.0]
        assert SizeRange.fixed(300.0).values() == [300.0]

    def test_invalid_size_range(self):
        with pytest.raises(ConfigurationError, match="step"):
            SizeRange(0.0, 10.0, 0.0)
        with pytest.raises(ConfigurationError, match="stop"):
            SizeRange(10.0, 0.0, 1.0)

    def test_zero_point_excluded(self, small_grid):
        candidates = small_grid.candidates(setpoint_kw=255.0)

        assert all(not c.is_zero for c in candidates)
        assert len(candidates) == 5
        assert candidates[0] == SizingCandidate(0.0, 600.0, 300.0, 255.0)

    def test_grid_order(self, small_grid):
        keys = [c.sort_key for c in small_grid.candidates(setpoint_kw=255.0)]

        assert keys == sorted(keys)

    def test_reduced_grid(self):
        grid = GridSpec(
            pv=SizeRange(0.0, 200.0, 100.0),
            battery_kwh_per_pv_kw=0.5,
            battery_duration_hours=2.0,
        )
        candidates = grid.candidates(setpoint_kw=100.0)

        assert [c.sort_key for c in candidates] == [(100.0, 50.0, 25.0), (200.0, 100.0, 50.0)]
        assert all(c.demand_shaving_setpoint_kw == 100.0 for c in candidates)

    def test_full_power_grid_has_no_duplicates(self):
        grid = GridSpec(
            pv=SizeRange.fixed(100.0),
            battery_energy=SizeRange(0.0, 100.0, 100.0),
            battery_power=SizeRange(25.0, 50.0, 25.0),
        )
        keys = [c.sort_key for c in grid.candidates(setpoint_kw=80.0)]

        assert keys == [(100.0, 0.0, 0.0), (100.0, 100.0, 25.0), (100.0, 100.0, 50.0)]

    def test_exactly_one_battery_dimension(self):
        with pytest.raises(ConfigurationError, match="battery_energy"):
            GridSpec(pv=SizeRange.fixed(1.0), battery_duration_hours=2.0)
        with pytest.raises(ConfigurationError, match="battery_power"):
            GridSpec(pv=SizeRange.fixed(1.0), battery_kwh_per_pv_kw=1.0)

    def test_around_recommendation(self):
        recommended = SizingCandidate(1000.0, 600.0, 90.0, 255.0)
        grid = GridSpec.around(recommended)
        candidates = grid.candidates(setpoint_kw=0.0)

        assert grid.pv.values()[-1] == 1500.0
        assert grid.battery_energy.values()[-1] == 1200.0
        assert recommended.sort_key in {c.sort_key for c in candidates}
        assert all(c.demand_shaving_setpoint_kw == 255.0 for c in candidates)


class TestSweep:
    """Tests for running the sweep."""

    def test_results_in_grid_order(self, reference_profile, small_grid, config):
        analysis = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)

        assert [r.candidate for r in analysis.sweep_results] == small_grid.candidates(255.0)
        assert not analysis.has_failures

    def test_deterministic(self, reference_profile, small_grid, config):
        first = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)
        second = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)

        assert first == second

    def test_thread_pool_matches_serial(self, reference_profile, small_grid, config):
        serial = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)
        threaded = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=4)

        assert threaded.sweep_results == serial.sweep_results
        assert threaded.optimal_scenarios == serial.optimal_scenarios

    def test_process_pool_matches_serial(self, reference_profile, small_grid, config):
        serial = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)
        pooled = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=2, executor="process")

        assert pooled.sweep_results == serial.sweep_results
        assert pooled.optimal_scenarios == serial.optimal_scenarios

    def test_process_pool_with_rate_schedule(self, reference_profile, small_grid):
        config = AnalysisConfig(rate_schedule=FlatRateSchedule({1: 0.1, 7: 0.08}, 10.0))
        restored = pickle.loads(pickle.dumps(config))

        assert [restored.schedule().energy_rate(m) for m in (1, 2, 7)] == [0.1, 0.0, 0.08]
        assert restored.schedule().demand_rate(5) == 10.0

        serial = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)
        pooled = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=2, executor="process")

        assert pooled.sweep_results == serial.sweep_results

    def test_quebec_preset_sweep_has_no_failures(self, reference_profile):
        """Short reporting horizons without an IRR do not drop grid points."""
        grid = GridSpec.around(SizingCandidate(1000, 600, 90, 255))

        analysis = run_sensitivity_sweep(
            reference_profile, grid, AnalysisConfig.quebec_commercial(), max_workers=1
        )

        assert analysis.failures == ()
        assert len(analysis.sweep_results) == len(grid.candidates(255.0))
        assert analysis.optimal_scenarios.best_npv is not None

    def test_optimal_scenarios_are_sweep_members(self, reference_profile, small_grid, config):
        analysis = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)
        optimal = analysis.optimal_scenarios

        assert optimal.best_npv.npv == max(r.npv for r in analysis.sweep_results)
        assert optimal.max_self_sufficiency.self_sufficiency == max(
            r.self_sufficiency for r in analysis.sweep_results
        )
        for selected in optimal.as_dict().values():
            assert selected in analysis.sweep_results

    def test_invalid_executor(self, reference_profile, small_grid, config):
        with pytest.raises(ConfigurationError, match="executor"):
            run_sensitivity_sweep(reference_profile, small_grid, config, executor="gpu")
        with pytest.raises(ConfigurationError, match="max_workers"):
            run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=0)


class TestSelection:
    """Tests for objective selection and tie-breaks."""

    @pytest.fixture
    def evaluations(self, reference_profile, config):
        return [
            evaluate_candidate(reference_profile, SizingCandidate(pv, 0.0, 0.0, 255.0), config)
            for pv in (250.0, 500.0)
        ]

    def test_npv_tie_goes_to_lower_capex(self, evaluations):
        cheap, expensive = evaluations
        tied = dataclasses.replace(expensive, metrics=dataclasses.replace(expensive.metrics, npv=cheap.npv))

        assert select_optimal_scenarios([tied, cheap]).best_npv is cheap

    def test_npv_and_capex_tie_goes_to_smaller_system(self, evaluations):
        small, large = evaluations
        same = dataclasses.replace(
            large,
            capex_net=small.capex_net,
            metrics=dataclasses.replace(large.metrics, npv=small.npv),
        )

        assert select_optimal_scenarios([same, small]).best_npv is small

    def test_best_irr_excludes_zero_capex(self, evaluations):
        normal, _ = evaluations
        free = dataclasses.replace(
            normal,
            capex_net=0.0,
            metrics=dataclasses.replace(normal.metrics, irr=50.0),
        )

        assert select_optimal_scenarios([free, normal]).best_irr is normal

    def test_empty_results(self):
        optimal = select_optimal_scenarios([])

        assert optimal == OptimalScenarios()
        assert optimal.get("best_npv") is None

    def test_unknown_objective(self):
        with pytest.raises(ValueError, match="Unknown objective"):
            OptimalScenarios().get("lowest_capex")


class TestCancellationAndFailures:
    """Tests for cancellation and per-point failure isolation."""

    def test_cancelled_before_start(self, reference_profile, small_grid, config):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(SweepCancelledError):
            run_sensitivity_sweep(reference_profile, small_grid, config, cancel_token=token)

    def test_cancelled_mid_sweep(self, reference_profile, small_grid, config, monkeypatch):
        token = CancellationToken()
        calls = []

        def cancelling_evaluate(profile, candidate, cfg, year=None):
            calls.append(candidate)
            token.cancel()
            return evaluate_candidate(profile, candidate, cfg, year=year)

        monkeypatch.setattr(sweep_module, "evaluate_candidate", cancelling_evaluate)

        with pytest.raises(SweepCancelledError):
            run_sensitivity_sweep(reference_profile, small_grid, config, cancel_token=token, max_workers=1)
        assert len(calls) == 1

    def test_cancelled_thread_sweep(self, reference_profile, small_grid, config, monkeypatch):
        token = CancellationToken()

        def cancelling_evaluate(profile, candidate, cfg, year=None):
            token.cancel()
            return evaluate_candidate(profile, candidate, cfg, year=year)

        monkeypatch.setattr(sweep_module, "evaluate_candidate", cancelling_evaluate)

        with pytest.raises(SweepCancelledError):
            run_sensitivity_sweep(reference_profile, small_grid, config, cancel_token=token, max_workers=2)

    def test_convergence_failure_isolated(self, reference_profile, small_grid, config, monkeypatch):
        def failing_evaluate(profile, candidate, cfg, year=None):
            if candidate.pv_size_kw == 500.0:
                raise NumericConvergenceError("IRR solver did not converge")
            return evaluate_candidate(profile, candidate, cfg, year=year)

        monkeypatch.setattr(sweep_module, "evaluate_candidate", failing_evaluate)

        analysis = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)

        assert analysis.has_failures
        assert len(analysis.failures) == 2
        assert all(f.candidate.pv_size_kw == 500.0 for f in analysis.failures)
        assert len(analysis.sweep_results) == 3
        assert analysis.optimal_scenarios.best_npv.candidate.pv_size_kw != 500.0

    def test_other_errors_abort(self, reference_profile, small_grid, config, monkeypatch):
        def broken_evaluate(profile, candidate, cfg, year=None):
            raise ConfigurationError("bad incentive cap")

        monkeypatch.setattr(sweep_module, "evaluate_candidate", broken_evaluate)

        with pytest.raises(ConfigurationError, match="bad incentive cap"):
            run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)


class TestDataFrame:
    """Tests for the optional pandas export."""

    def test_to_dataframe(self, reference_profile, small_grid, config):
        pd = pytest.importorskip("pandas")
        analysis = run_sensitivity_sweep(reference_profile, small_grid, config, max_workers=1)

        df = analysis.to_dataframe()

        assert isinstance(df, pd.DataFrame)
        assert len(df) == len(analysis.sweep_results)
        assert df["best_npv"].sum() == 1
        assert {"pv_size_kw", "npv", "irr", "self_sufficiency"} <= set(df.columns)
