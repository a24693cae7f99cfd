"""
Potential Analysis & Financial Feasibility Engine.

This package turns utility interval-consumption readings into a sized PV +
battery system and its financial case: consumption profile, sizing
recommendation, bill impact, incentive stack, multi-year cash flows, NPV / IRR /
payback / LCOE, and a sensitivity sweep selecting scenario-optimal designs.

Architecture:
    - core.readings / core.profile: Interval Profile Builder
    - core.sizing: Sizing Heuristic
    - core.rate_schedule / core.incentives: Rate & Incentive Model
    - core.cashflow: Cash-Flow Projector
    - core.metrics: Financial Metrics Calculator
    - simulation.dispatch: Hourly energy balance of a candidate
    - analysis: Candidate pipeline, sensitivity sweep, Monte Carlo, run_analysis entry point
    - config / settings / exceptions: Assumptions, constants, error taxonomy

Quick start:
    from potential_model.analysis import run_analysis, merge_optimal_scenario
    from potential_model.config import AnalysisConfig

    config = AnalysisConfig(energy_rate_per_kwh=0.073, demand_rate_per_kw_month=15.5)
    run = run_analysis("site-42", readings, config)

    print(run.recommended, run.evaluation.npv, run.evaluation.irr)
    best = run.sensitivity.optimal_scenarios.best_npv
    presented = merge_optimal_scenario(run, best, "best_npv")
"""

__version__ = "0.1.0"
