"""
Analysis pipeline: candidate evaluation, sensitivity sweep, Monte Carlo and
entry points.

Usage:
    from potential_model.analysis import run_analysis, run_sensitivity_sweep, GridSpec, SizeRange

    run = run_analysis("site-42", readings, config)

    grid = GridSpec(
        pv=SizeRange(0, 1500, 250),
        battery_kwh_per_pv_kw=0.5,
        battery_duration_hours=2.0,
    )
    what_if = run_sensitivity_sweep(run.profile, grid, config, max_workers=4)

    spread = run_monte_carlo(run.profile, run.recommended, config, MonteCarloConfig(seed=7))
"""

from potential_model.analysis.evaluation import CandidateEvaluation, evaluate_candidate
from potential_model.analysis.sweep import (
    CancellationToken,
    GridSpec,
    OptimalScenarios,
    SensitivityAnalysis,
    SizeRange,
    SweepFailure,
    run_sensitivity_sweep,
    select_optimal_scenarios,
)
from potential_model.analysis.engine import SimulationRun, merge_optimal_scenario, run_analysis
from potential_model.analysis.monte_carlo import (
    MonteCarloConfig,
    MonteCarloRanges,
    MonteCarloResult,
    MonteCarloSummary,
    run_monte_carlo,
)

__all__ = [
    'CandidateEvaluation',
    'evaluate_candidate',
    'CancellationToken',
    'GridSpec',
    'OptimalScenarios',
    'SensitivityAnalysis',
    'SizeRange',
    'SweepFailure',
    'run_sensitivity_sweep',
    'select_optimal_scenarios',
    'SimulationRun',
    'merge_optimal_scenario',
    'run_analysis',
    'MonteCarloConfig',
    'MonteCarloRanges',
    'MonteCarloResult',
    'MonteCarloSummary',
    'run_monte_carlo',
]
