"""
Sensitivity Sweep & Optimal-Scenario Selector.

GRID
----
A GridSpec enumerates (PV size, battery energy, battery power) candidates:
    - full grid: one SizeRange per dimension
    - reduced grid: battery energy tied to PV (battery_kwh_per_pv_kw) and/or
      battery power tied to energy (battery_duration_hours)
GridSpec.around(candidate) builds a grid centred on the recommendation.
Zero-sized points (no PV, no battery) are excluded from the sweep.

EXECUTION
---------
Scatter / gather over immutable inputs. Candidates are submitted to a
ThreadPoolExecutor (default) or ProcessPoolExecutor and gathered in grid order,
so results never depend on completion order. max_workers == 1 runs serially.
A CancellationToken is checked before each grid point, in the workers and in
the gathering loop; cancelling raises SweepCancelledError.

A grid point whose IRR solver fails is logged, recorded as a SweepFailure and
excluded from selection. Any other error aborts the sweep.

SELECTION
---------
Per objective, with an explicit tie-break so identical inputs always select
identical candidates:

    best_npv              max npv
    best_irr              max irr among capex_net > 0 and defined irr
    max_self_sufficiency  max self_sufficiency

    ties -> lower capex_net -> smaller PV -> smaller battery energy -> smaller battery power
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from potential_model.analysis.evaluation import CandidateEvaluation, evaluate_candidate
from potential_model.core.profile import ConsumptionProfile, TypicalYear, typical_year
from potential_model.core.sizing import SizingCandidate, round_half_up
from potential_model.exceptions import (
    ConfigurationError,
    NumericConvergenceError,
    SweepCancelledError,
)

logger = logging.getLogger(__name__)

OBJECTIVES = ("best_npv", "best_irr", "max_self_sufficiency")


# ----------------------------------------------------------------------
# Grid definition
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SizeRange:
    """Inclusive range start, start + step, ..., <= stop."""

    start: float
    stop: float
    step: float = 1.0

    def __post_init__(self) -> None:
        for name in ("start", "stop", "step"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ConfigurationError(f"SizeRange.{name} must be finite, got {value}")
        if self.start < 0:
            raise ConfigurationError(f"SizeRange.start must be >= 0, got {self.start}")
        if self.stop < self.start:
            raise ConfigurationError(f"SizeRange.stop ({self.stop}) must be >= start ({self.start})")
        if self.step <= 0:
            raise ConfigurationError(f"SizeRange.step must be > 0, got {self.step}")

    @classmethod
    def fixed(cls, value: float) -> "SizeRange":
        return cls(value, value, 1.0)

    def values(self) -> List[float]:
        count = int(math.floor((self.stop - self.start) / self.step + 1e-9)) + 1
        return [float(self.start + i * self.step) for i in range(count)]


@dataclass(frozen=True)
class GridSpec:
    """
    Candidate grid of the sensitivity sweep.

    Attributes:
        pv: PV sizes [kW].
        battery_energy: Battery energies [kWh]; or None with battery_kwh_per_pv_kw.
        battery_power: Battery powers [kW]; or None with battery_duration_hours.
        battery_kwh_per_pv_kw: Reduced grid, energy = round(pv * ratio).
        battery_duration_hours: Reduced grid, power = round(energy / duration).
        setpoint_kw: Shaving setpoint of every candidate; None derives it from
            the profile peak and the configured target reduction.
    """

    pv: SizeRange
    battery_energy: Optional[SizeRange] = None
    battery_power: Optional[SizeRange] = None
    battery_kwh_per_pv_kw: Optional[float] = None
    battery_duration_hours: Optional[float] = None
    setpoint_kw: Optional[float] = None

    def __post_init__(self) -> None:
        if (self.battery_energy is None) == (self.battery_kwh_per_pv_kw is None):
            raise ConfigurationError(
                "GridSpec needs exactly one of battery_energy or battery_kwh_per_pv_kw"
            )
        if (self.battery_power is None) == (self.battery_duration_hours is None):
            raise ConfigurationError(
                "GridSpec needs exactly one of battery_power or battery_duration_hours"
            )
        if self.battery_kwh_per_pv_kw is not None and self.battery_kwh_per_pv_kw < 0:
            raise ConfigurationError(
                f"battery_kwh_per_pv_kw must be >= 0, got {self.battery_kwh_per_pv_kw}"
            )
        if self.battery_duration_hours is not None and self.battery_duration_hours <= 0:
            raise ConfigurationError(
                f"battery_duration_hours must be > 0, got {self.battery_duration_hours}"
            )

    @classmethod
    def around(
        cls,
        candidate: SizingCandidate,
        pv_steps: int = 7,
        battery_steps: int = 5,
        pv_span: float = 1.5,
        battery_span: float = 2.0,
    ) -> "GridSpec":
        """
        Grid centred on a recommendation.

        PV runs from 0 to pv_span x the recommended size, battery energy from 0
        to battery_span x the recommended energy, both in (steps - 1) equal
        steps. Battery power keeps the recommended duration.
        """
        if pv_steps < 2 or battery_steps < 2:
            raise ConfigurationError("GridSpec.around needs at least 2 steps per dimension")
        pv_max = max(candidate.pv_size_kw * pv_span, 1.0)
        energy_max = max(candidate.batt_energy_kwh * battery_span, 1.0)
        pv_step = max(round_half_up(pv_max / (pv_steps - 1)), 1)
        energy_step = max(round_half_up(energy_max / (battery_steps - 1)), 1)
        duration = 2.0
        if candidate.batt_power_kw > 0 and candidate.batt_energy_kwh > 0:
            duration = candidate.batt_energy_kwh / candidate.batt_power_kw
        return cls(
            pv=SizeRange(0.0, pv_step * (pv_steps - 1), pv_step),
            battery_energy=SizeRange(0.0, energy_step * (battery_steps - 1), energy_step),
            battery_duration_hours=duration,
            setpoint_kw=candidate.demand_shaving_setpoint_kw,
        )

    def candidates(self, setpoint_kw: float) -> List[SizingCandidate]:
        """
        Enumerate the grid in deterministic order (PV, energy, power).

        Zero-sized and duplicate points are dropped.
        """
        setpoint = self.setpoint_kw if self.setpoint_kw is not None else setpoint_kw
        seen = set()
        out = []
        for pv in self.pv.values():
            if self.battery_energy is not None:
                energies = self.battery_energy.values()
            else:
                energies = [float(round_half_up(pv * self.battery_kwh_per_pv_kw))]
            for energy in energies:
                if self.battery_power is not None:
                    powers = self.battery_power.values() if energy > 0 else [0.0]
                else:
                    powers = [float(round_half_up(energy / self.battery_duration_hours))]
                for power in powers:
                    candidate = SizingCandidate(pv, energy, power, float(setpoint))
                    if candidate.is_zero or candidate.sort_key in seen:
                        continue
                    seen.add(candidate.sort_key)
                    out.append(candidate)
        return out


# ----------------------------------------------------------------------
# Cancellation
# ----------------------------------------------------------------------

class CancellationToken:
    """Cooperative cancellation flag shared between caller and sweep."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SweepCancelledError("Sensitivity sweep cancelled")


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SweepFailure:
    """A grid point excluded from selection because its evaluation failed."""

    candidate: SizingCandidate
    error: str


@dataclass(frozen=True)
class OptimalScenarios:
    """Selected candidates per objective, held by value."""

    best_npv: Optional[CandidateEvaluation] = None
    best_irr: Optional[CandidateEvaluation] = None
    max_self_sufficiency: Optional[CandidateEvaluation] = None

    def get(self, objective: str) -> Optional[CandidateEvaluation]:
        if objective not in OBJECTIVES:
            raise ValueError(f"Unknown objective '{objective}'. Available: {list(OBJECTIVES)}")
        return getattr(self, objective)

    def as_dict(self) -> Dict[str, Optional[CandidateEvaluation]]:
        return {name: getattr(self, name) for name in OBJECTIVES}


@dataclass(frozen=True)
class SensitivityAnalysis:
    """Evaluated grid points, isolated failures and per-objective optima."""

    sweep_results: Tuple[CandidateEvaluation, ...]
    failures: Tuple[SweepFailure, ...]
    optimal_scenarios: OptimalScenarios

    @property
    def has_failures(self) -> bool:
        return len(self.failures) > 0

    def to_dataframe(self):
        """
        Sweep results as a pandas DataFrame, one row per grid point.

        Raises:
            ImportError: If pandas is not installed.
        """
        try:
            import pandas as pd
        except ImportError as exc:
            raise ImportError(
                "pandas required for to_dataframe(). Install with: pip install potential-model[dataframe]"
            ) from exc
        rows = [r.summary() for r in self.sweep_results]
        df = pd.DataFrame(rows)
        for objective, selected in self.optimal_scenarios.as_dict().items():
            key = selected.candidate.sort_key if selected is not None else None
            df[objective] = [r.candidate.sort_key == key for r in self.sweep_results]
        return df


# ----------------------------------------------------------------------
# Selection
# ----------------------------------------------------------------------

def _tie_break(objective_value: float, result: CandidateEvaluation) -> Tuple[float, ...]:
    return (-objective_value, result.capex_net) + result.candidate.sort_key


def _select(
    results: Sequence[CandidateEvaluation],
    value: Callable[[CandidateEvaluation], Optional[float]],
) -> Optional[CandidateEvaluation]:
    scored = [(value(r), r) for r in results]
    scored = [(v, r) for v, r in scored if v is not None and math.isfinite(v)]
    if not scored:
        return None
    return min(scored, key=lambda item: _tie_break(item[0], item[1]))[1]


def select_optimal_scenarios(results: Sequence[CandidateEvaluation]) -> OptimalScenarios:
    """Pick the best candidate per objective (see module docstring)."""
    return OptimalScenarios(
        best_npv=_select(results, lambda r: r.npv),
        best_irr=_select(results, lambda r: r.irr if r.capex_net > 0 else None),
        max_self_sufficiency=_select(results, lambda r: r.self_sufficiency),
    )


# ----------------------------------------------------------------------
# Sweep
# ----------------------------------------------------------------------

def _evaluate_point(
    candidate: SizingCandidate,
    profile: ConsumptionProfile,
    year: TypicalYear,
    config,
    cancel_token: Optional[CancellationToken] = None,
) -> Union[CandidateEvaluation, SweepFailure]:
    """Evaluate one grid point; convergence failures become SweepFailure."""
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()
    try:
        return evaluate_candidate(profile, candidate, config, year=year)
    except NumericConvergenceError as exc:
        return SweepFailure(candidate=candidate, error=str(exc))


def run_sensitivity_sweep(
    profile: ConsumptionProfile,
    grid_spec: GridSpec,
    config,
    cancel_token: Optional[CancellationToken] = None,
    max_workers: Optional[int] = None,
    executor: str = "thread",
) -> SensitivityAnalysis:
    """
    Evaluate every grid point and select the per-objective optima.

    Args:
        profile: Site consumption profile.
        grid_spec: Candidate grid.
        config: AnalysisConfig, resolved before the sweep starts.
        cancel_token: Optional CancellationToken checked between grid points.
        max_workers: Worker count; 1 runs serially, None uses the executor default.
        executor: 'thread' or 'process'. With 'process', profile and config
            are pickled into the workers, so a custom rate_schedule must be
            built from scalar or dict rates, or from a module-level callable.
            Lambdas and closures cannot be pickled. The cancel token is only
            checked between results in the parent process.

    Returns:
        SensitivityAnalysis

    Raises:
        SweepCancelledError: If the token is cancelled during the sweep.
        ConfigurationError: On an invalid executor or worker count.
    """
    if executor not in {"thread", "process"}:
        raise ConfigurationError(f"executor must be 'thread' or 'process', got '{executor}'")
    if max_workers is not None and max_workers < 1:
        raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")

    default_setpoint = round_half_up(profile.peak_demand_kw * (1.0 - config.target_reduction))
    candidates = grid_spec.candidates(default_setpoint)
    logger.info("Sensitivity sweep: %d candidates (%s executor)", len(candidates), executor)

    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    year = typical_year(profile)
    outcomes: List[Union[CandidateEvaluation, SweepFailure]] = []

    if max_workers == 1 or len(candidates) <= 1:
        for candidate in candidates:
            outcomes.append(_evaluate_point(candidate, profile, year, config, cancel_token))
    else:
        executor_cls = ThreadPoolExecutor if executor == "thread" else ProcessPoolExecutor
        # threading.Event does not cross process boundaries; process workers rely on the gather loop
        worker_token = cancel_token if executor == "thread" else None
        evaluate_fn = partial(
            _evaluate_point, profile=profile, year=year, config=config, cancel_token=worker_token
        )
        with executor_cls(max_workers=max_workers) as pool:
            futures = [pool.submit(evaluate_fn, candidate) for candidate in candidates]
            try:
                for future in futures:
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    outcomes.append(future.result())
            except SweepCancelledError:
                for future in futures:
                    future.cancel()
                logger.info("Sensitivity sweep cancelled after %d of %d candidates", len(outcomes), len(candidates))
                raise

    results = []
    failures = []
    for outcome in outcomes:
        if isinstance(outcome, SweepFailure):
            logger.warning("Sweep candidate %s excluded: %s", outcome.candidate.label, outcome.error)
            failures.append(outcome)
        else:
            results.append(outcome)

    optimal = select_optimal_scenarios(results)
    logger.info(
        "Sensitivity sweep done: %d evaluated, %d failed; best NPV %s",
        len(results), len(failures),
        optimal.best_npv.candidate.label if optimal.best_npv else "n/a",
    )
    return SensitivityAnalysis(
        sweep_results=tuple(results),
        failures=tuple(failures),
        optimal_scenarios=optimal,
    )
