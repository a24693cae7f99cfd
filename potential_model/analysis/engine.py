"""
Entry points of the Potential Analysis engine.

run_analysis() is the primary entry point:

    readings -> profile -> recommended sizing -> evaluation (primary candidate)
             -> optional sensitivity sweep -> SimulationRun

It is deterministic: identical readings and config produce identical runs.
A zero-sized recommendation (zero consumption) yields an infeasible run with
no evaluation and no sweep.

merge_optimal_scenario() builds a NEW SimulationRun presenting one of the
sweep's optimal scenarios, with its cash flows re-derived so the cumulative
invariant holds. The base run is never modified.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from potential_model.analysis.evaluation import CandidateEvaluation, evaluate_candidate
from potential_model.analysis.sweep import (
    OBJECTIVES,
    CancellationToken,
    GridSpec,
    SensitivityAnalysis,
    run_sensitivity_sweep,
)
from potential_model.core.cashflow import rebuild_cashflows
from potential_model.core.profile import ConsumptionProfile, build_profile
from potential_model.core.readings import MeterReading
from potential_model.core.sizing import SizingCandidate, recommend_sizing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationRun:
    """
    Result of one analysis of one site.

    Attributes:
        site_id: Site the readings belong to.
        profile: Consumption profile built from the readings.
        recommended: Candidate presented by this run.
        evaluation: Financial breakdown of `recommended`; None when infeasible.
        sensitivity: Sweep results, None when no sweep was run.
        selected_objective: Objective the presented candidate was merged from,
            None for the heuristic recommendation.
    """

    site_id: str
    profile: ConsumptionProfile
    recommended: SizingCandidate
    evaluation: Optional[CandidateEvaluation] = None
    sensitivity: Optional[SensitivityAnalysis] = None
    selected_objective: Optional[str] = None

    @property
    def feasible(self) -> bool:
        return not self.recommended.is_zero and self.evaluation is not None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data export for document / CRM layers."""
        return {
            "site_id": self.site_id,
            "feasible": self.feasible,
            "selected_objective": self.selected_objective,
            "profile": dataclasses.asdict(self.profile),
            "recommended": dataclasses.asdict(self.recommended),
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "optimal_scenarios": (
                {
                    name: (ev.to_dict() if ev else None)
                    for name, ev in self.sensitivity.optimal_scenarios.as_dict().items()
                }
                if self.sensitivity
                else None
            ),
            "sweep_failures": (
                [dataclasses.asdict(f) for f in self.sensitivity.failures] if self.sensitivity else []
            ),
        }


def run_analysis(
    site_id: str,
    readings: Sequence[MeterReading],
    config,
    grid_spec: Optional[GridSpec] = None,
    run_sweep: bool = True,
    adopt_best_npv: bool = False,
    cancel_token: Optional[CancellationToken] = None,
    max_workers: Optional[int] = None,
) -> SimulationRun:
    """
    Analyze a site: profile, recommended sizing, financials and sweep.

    Args:
        site_id: Identifier of the site.
        readings: Parsed meter readings, ascending by timestamp.
        config: AnalysisConfig.
        grid_spec: Sweep grid; None centres a grid on the recommendation.
        run_sweep: Run the sensitivity sweep.
        adopt_best_npv: Present the sweep's best-NPV scenario instead of the
            recommendation when it has a higher NPV.
        cancel_token: Cancels the sweep.
        max_workers: Sweep worker count.

    Raises:
        InsufficientDataError: No or malformed readings.
        ConfigurationError: Inconsistent configuration.
        NumericConvergenceError: IRR of the primary candidate did not converge.
        SweepCancelledError: The sweep was cancelled.
    """
    profile = build_profile(readings)
    recommended = recommend_sizing(profile, config.sizing_defaults(), config.building_type)
    logger.info(
        "Site %s: annual %.0f kWh, peak %.1f kW -> %s",
        site_id, profile.annual_consumption_kwh, profile.peak_demand_kw, recommended.label,
    )

    if recommended.is_zero:
        logger.warning("Site %s: zero-sized recommendation, analysis is infeasible", site_id)
        return SimulationRun(site_id=site_id, profile=profile, recommended=recommended)

    evaluation = evaluate_candidate(profile, recommended, config)

    sensitivity = None
    if run_sweep:
        grid = grid_spec if grid_spec is not None else GridSpec.around(recommended)
        sensitivity = run_sensitivity_sweep(
            profile, grid, config, cancel_token=cancel_token, max_workers=max_workers
        )

    run = SimulationRun(
        site_id=site_id,
        profile=profile,
        recommended=recommended,
        evaluation=evaluation,
        sensitivity=sensitivity,
    )

    if adopt_best_npv and sensitivity is not None:
        best = sensitivity.optimal_scenarios.best_npv
        if best is not None and best.npv > evaluation.npv:
            logger.info("Site %s: adopting best-NPV scenario %s", site_id, best.candidate.label)
            run = merge_optimal_scenario(run, best, "best_npv")

    return run


def merge_optimal_scenario(
    run: SimulationRun,
    scenario: CandidateEvaluation,
    objective: str,
) -> SimulationRun:
    """
    Return a new run presenting an optimal scenario.

    The scenario's cash flows are re-derived from its (year, net) records so
    the cumulative invariant holds exactly. `run` is left untouched.

    Raises:
        ValueError: On an unknown objective or a missing scenario.
    """
    if objective not in OBJECTIVES:
        raise ValueError(f"Unknown objective '{objective}'. Available: {list(OBJECTIVES)}")
    if scenario is None:
        raise ValueError(f"No scenario available for objective '{objective}'")

    cashflows = tuple(rebuild_cashflows(scenario.cashflows))
    evaluation = dataclasses.replace(scenario, cashflows=cashflows)
    return dataclasses.replace(
        run,
        recommended=scenario.candidate,
        evaluation=evaluation,
        selected_objective=objective,
    )
