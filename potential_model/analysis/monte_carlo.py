"""
Monte Carlo wrapper: P10 / P50 / P90 outcomes of one candidate.

Each iteration draws the uncertain assumptions uniformly from their ranges,
overrides them on the AnalysisConfig and runs the candidate through
evaluate_candidate(), i.e. the same hourly dispatch, incentive stack and
cash-flow pipeline as the main analysis.

SAMPLED VARIABLES
-----------------
    tariff_escalation   -> inflation_rate (escalates savings and surplus revenue)
    discount_rate       -> discount_rate
    specific_yield      -> specific_yield_kwh_per_kwp, multiplied by
    bifacial_boost         (1 + bifacial_boost)
    om_per_kwc          -> om_solar_percent = om_per_kwc / (solar_cost_per_w * 1000)
    solar_cost_per_w    -> solar_cost_per_w

All draws come from one numpy Generator seeded with MonteCarloConfig.seed, one
vector per variable in the order above, so a seed reproduces the run exactly.

STATISTICS
----------
Percentiles are nearest-rank on the sorted outcomes: index = floor(n * p),
capped at n - 1. P10 is the pessimistic end for NPV and IRR and the optimistic
end for payback. Undefined IRRs are left out of the IRR statistics.

An iteration whose IRR solver fails is logged and counted in `failures`.
If every iteration fails, NumericConvergenceError is raised.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from potential_model.analysis.evaluation import _finite_or_none, evaluate_candidate
from potential_model.analysis.sweep import CancellationToken
from potential_model.core.profile import ConsumptionProfile, typical_year
from potential_model.core.sizing import SizingCandidate
from potential_model.exceptions import (
    ConfigurationError,
    InfeasibleCandidateError,
    NumericConvergenceError,
    SweepCancelledError,
)

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 500

Range = Tuple[float, float]

_RANGE_ALIASES = {
    "tariffEscalation": "tariff_escalation",
    "discountRate": "discount_rate",
    "solarYield": "specific_yield",
    "bifacialBoost": "bifacial_boost",
    "omPerKwc": "om_per_kwc",
    "solarCostPerW": "solar_cost_per_w",
}


@dataclass(frozen=True)
class MonteCarloRanges:
    """
    Uniform sampling ranges (low, high) of the uncertain assumptions.

    Attributes:
        tariff_escalation: Annual tariff escalation.
        discount_rate: Discount rate (WACC).
        specific_yield: PV yield before the bifacial boost [kWh/kWp/year].
        bifacial_boost: Relative production gain of bifacial modules.
        om_per_kwc: Solar O&M cost [$/kWc/year].
        solar_cost_per_w: Installed solar cost [$/W].
    """

    tariff_escalation: Range = (0.025, 0.035)
    discount_rate: Range = (0.06, 0.08)
    specific_yield: Range = (1075.0, 1225.0)
    bifacial_boost: Range = (0.10, 0.20)
    om_per_kwc: Range = (10.0, 20.0)
    solar_cost_per_w: Range = (1.75, 2.35)

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            try:
                low, high = (float(v) for v in value)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{f.name} must be a (low, high) pair, got {value!r}") from exc
            if not (math.isfinite(low) and math.isfinite(high)):
                raise ConfigurationError(f"{f.name} bounds must be finite, got ({low}, {high})")
            if low > high:
                raise ConfigurationError(f"{f.name} low must be <= high, got ({low}, {high})")
            object.__setattr__(self, f.name, (low, high))

        if self.discount_rate[0] <= -1.0 or self.tariff_escalation[0] <= -1.0:
            raise ConfigurationError("discount_rate and tariff_escalation must stay > -1")
        if self.specific_yield[0] < 0 or self.om_per_kwc[0] < 0 or self.bifacial_boost[0] < 0:
            raise ConfigurationError("specific_yield, om_per_kwc and bifacial_boost must be >= 0")
        if self.solar_cost_per_w[0] <= 0:
            raise ConfigurationError(f"solar_cost_per_w must be > 0, got {self.solar_cost_per_w}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Sequence[float]]) -> "MonteCarloRanges":
        """Build ranges from snake_case or camelCase keys; missing keys keep defaults."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _RANGE_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown Monte Carlo variable '{key}'. Available: {sorted(known)}")
            kwargs[name] = tuple(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class MonteCarloConfig:
    """Iteration count, sampling ranges and optional seed."""

    iterations: int = DEFAULT_ITERATIONS
    ranges: MonteCarloRanges = field(default_factory=MonteCarloRanges)
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if int(self.iterations) != self.iterations or self.iterations < 1:
            raise ConfigurationError(f"iterations must be an integer >= 1, got {self.iterations}")


@dataclass(frozen=True)
class MonteCarloSummary:
    """One statistic (P10, P50, P90 or mean) of each outcome."""

    npv: float
    irr: Optional[float]
    simple_payback_years: float
    capex_net: float
    total_net_cashflow: float


@dataclass(frozen=True)
class MonteCarloResult:
    """
    Outcome distribution of a Monte Carlo run.

    Distributions are sorted ascending. irr_distribution only holds the
    iterations with a defined IRR.
    """

    p10: MonteCarloSummary
    p50: MonteCarloSummary
    p90: MonteCarloSummary
    mean: MonteCarloSummary
    iterations: int
    failures: int
    npv_distribution: Tuple[float, ...]
    irr_distribution: Tuple[float, ...]
    payback_distribution: Tuple[float, ...]
    ranges: MonteCarloRanges

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data export; a payback that is never reached becomes None."""
        return _finite_or_none(dataclasses.asdict(self))


def _percentile(values: Sequence[float], p: float) -> Optional[float]:
    if not values:
        return None
    ordered = sorted(values)
    index = min(int(math.floor(len(ordered) * p)), len(ordered) - 1)
    return float(ordered[index])


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return float(np.mean(values))


def _summarize(outcomes: Dict[str, List[float]], stat) -> MonteCarloSummary:
    return MonteCarloSummary(
        npv=stat(outcomes["npv"]),
        irr=stat(outcomes["irr"]),
        simple_payback_years=stat(outcomes["simple_payback_years"]),
        capex_net=stat(outcomes["capex_net"]),
        total_net_cashflow=stat(outcomes["total_net_cashflow"]),
    )


def _draw(ranges: MonteCarloRanges, iterations: int, seed: Optional[int]) -> Dict[str, np.ndarray]:
    rng = np.random.default_rng(seed)
    return {
        f.name: rng.uniform(*getattr(ranges, f.name), size=iterations)
        for f in dataclasses.fields(ranges)
    }


def run_monte_carlo(
    profile: ConsumptionProfile,
    candidate: SizingCandidate,
    config,
    mc_config: Optional[MonteCarloConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> MonteCarloResult:
    """
    Evaluate one candidate under sampled assumptions.

    Args:
        profile: Site consumption profile.
        candidate: System size to evaluate (must not be zero-sized).
        config: Base AnalysisConfig; sampled fields are overridden per iteration.
        mc_config: Iterations, ranges and seed. Defaults to MonteCarloConfig().
        cancel_token: Optional CancellationToken checked between iterations.

    Returns:
        MonteCarloResult

    Raises:
        InfeasibleCandidateError: If the candidate is zero-sized.
        SweepCancelledError: If the token is cancelled during the run.
        NumericConvergenceError: If every iteration fails to solve its IRR.
    """
    mc_config = mc_config or MonteCarloConfig()
    if candidate.is_zero:
        raise InfeasibleCandidateError(f"Zero-sized candidate {candidate} cannot be simulated")

    draws = _draw(mc_config.ranges, mc_config.iterations, mc_config.seed)
    year = typical_year(profile)
    logger.info(
        "Monte Carlo: %d iterations of %s (seed=%s)", mc_config.iterations, candidate.label, mc_config.seed
    )

    outcomes: Dict[str, List[float]] = {
        "npv": [], "irr": [], "simple_payback_years": [], "capex_net": [], "total_net_cashflow": [],
    }
    failures = 0
    for i in range(mc_config.iterations):
        if cancel_token is not None and cancel_token.is_cancelled:
            logger.info("Monte Carlo cancelled after %d of %d iterations", i, mc_config.iterations)
            raise SweepCancelledError(f"Monte Carlo run cancelled after {i} iterations")

        cost = float(draws["solar_cost_per_w"][i])
        varied = config.with_overrides(
            inflation_rate=float(draws["tariff_escalation"][i]),
            discount_rate=float(draws["discount_rate"][i]),
            specific_yield_kwh_per_kwp=float(draws["specific_yield"][i]) * (1.0 + float(draws["bifacial_boost"][i])),
            solar_cost_per_w=cost,
            om_solar_percent=float(draws["om_per_kwc"][i]) / (cost * 1000.0),
        )
        try:
            evaluation = evaluate_candidate(profile, candidate, varied, year=year)
        except NumericConvergenceError as exc:
            logger.warning("Monte Carlo iteration %d failed: %s", i, exc)
            failures += 1
            continue

        outcomes["npv"].append(evaluation.npv)
        if evaluation.irr is not None:
            outcomes["irr"].append(evaluation.irr)
        outcomes["simple_payback_years"].append(evaluation.simple_payback_years)
        outcomes["capex_net"].append(evaluation.capex_net)
        outcomes["total_net_cashflow"].append(sum(e.net_cashflow for e in evaluation.cashflows))

    completed = len(outcomes["npv"])
    if completed == 0:
        raise NumericConvergenceError(f"All {mc_config.iterations} Monte Carlo iterations failed")

    result = MonteCarloResult(
        p10=_summarize(outcomes, lambda v: _percentile(v, 0.10)),
        p50=_summarize(outcomes, lambda v: _percentile(v, 0.50)),
        p90=_summarize(outcomes, lambda v: _percentile(v, 0.90)),
        mean=_summarize(outcomes, _mean),
        iterations=completed,
        failures=failures,
        npv_distribution=tuple(sorted(outcomes["npv"])),
        irr_distribution=tuple(sorted(outcomes["irr"])),
        payback_distribution=tuple(sorted(outcomes["simple_payback_years"])),
        ranges=mc_config.ranges,
    )
    logger.info(
        "Monte Carlo done: %d iterations, %d failed; NPV P10/P50/P90 = %.0f / %.0f / %.0f",
        completed, failures, result.p10.npv, result.p50.npv, result.p90.npv,
    )
    return result
