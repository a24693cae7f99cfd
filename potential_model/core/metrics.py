"""
Financial Metrics Calculator: NPV, IRR, simple payback and LCOE.

NPV
---
    NPV(rate) = sum_y  net[y] / (1 + rate)^y,   y = 0..horizon

Year 0 is undiscounted (the investment happens at present time).

IRR
---
Solved numerically, never by the closed-form annuity shortcut (which is only
valid for level cash flows and breaks with escalation, degradation or
replacement outlays):

    1. No sign change in the series (e.g. zero CAPEX) -> IRR undefined -> None
    2. Scan NPV(rate) on [IRR_LOWER_BOUND, IRR_UPPER_BOUND] for sign changes;
       none found -> no real root in range -> None
    3. Keep the bracket closest to IRR_INITIAL_GUESS
    4. Refine with scipy.optimize.brentq to IRR_TOLERANCE

A series can change sign and still have no real root, e.g. a horizon cut
that ends on a battery replacement outlay. That is an undefined IRR, not a
solver failure. Only a brentq error or non-convergence on a valid bracket
raises NumericConvergenceError.

horizon_metrics() never raises for a single horizon: a horizon whose IRR
cannot be solved is reported with irr=None.

PAYBACK
-------
Smallest year whose cumulative cash flow is >= 0. When the cumulative never
turns non-negative the result is PAYBACK_NEVER_REACHED (inf), a result state
and not an exception.

LCOE
----
    LCOE = (capex_net + sum_y opex[y] / (1+r)^y) / sum_y production[y] / (1+r)^y

discounted with the same rate as NPV, summed over operating years 1..N.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np
from scipy.optimize import brentq

from potential_model.core.cashflow import CashflowEntry, cashflow_values
from potential_model.exceptions import NumericConvergenceError
from potential_model.settings import (
    IRR_INITIAL_GUESS,
    IRR_LOWER_BOUND,
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    IRR_UPPER_BOUND,
)

logger = logging.getLogger(__name__)

PAYBACK_NEVER_REACHED = math.inf

# Reporting horizons [years]
DEFAULT_HORIZONS = (10, 20, 25, 30)


@dataclass(frozen=True)
class FinancialMetrics:
    """
    Investment metrics of one cash-flow series.

    Attributes:
        npv: Net present value [$].
        irr: Internal rate of return, None when undefined.
        simple_payback_years: Payback year, PAYBACK_NEVER_REACHED if never.
        lcoe: Levelized cost of energy [$/kWh], inf without production.
    """

    npv: float
    irr: Optional[float]
    simple_payback_years: float
    lcoe: float

    @property
    def payback_reached(self) -> bool:
        return math.isfinite(self.simple_payback_years)


@dataclass(frozen=True)
class HorizonMetrics:
    """NPV / IRR truncated at a reporting horizon."""

    years: int
    npv: float
    irr: Optional[float]


def _as_array(values: Iterable[float]) -> np.ndarray:
    if isinstance(values, np.ndarray):
        return values.astype(float)
    values = list(values)
    if values and isinstance(values[0], CashflowEntry):
        values = cashflow_values(values)
    return np.asarray(values, dtype=float)


def npv(values: Sequence[float], rate: float) -> float:
    """
    Net present value of a cash-flow series (year 0 first).

    Args:
        values: Net cash flows, or CashflowEntry objects.
        rate: Discount rate per year, > -1.
    """
    if rate <= -1.0:
        raise ValueError(f"Discount rate must be > -1, got {rate}")
    cf = _as_array(values)
    if cf.size == 0:
        return 0.0
    discount = (1.0 + rate) ** -np.arange(cf.size)
    return float(np.sum(cf * discount))


def _has_sign_change(cf: np.ndarray) -> bool:
    nonzero = cf[cf != 0.0]
    return nonzero.size >= 2 and bool(np.any(nonzero > 0)) and bool(np.any(nonzero < 0))


def _scan_grid() -> np.ndarray:
    # Dense where IRRs usually are, coarser towards the upper bound
    dense = np.linspace(IRR_LOWER_BOUND, 1.0, 400)
    coarse = np.linspace(1.0, IRR_UPPER_BOUND, 181)[1:]
    return np.concatenate([dense, coarse])


def irr(values: Sequence[float], guess: float = IRR_INITIAL_GUESS) -> Optional[float]:
    """
    Internal rate of return: the rate where NPV == 0.

    Args:
        values: Net cash flows (year 0 first), or CashflowEntry objects.
        guess: Rate used to choose among several roots.

    Returns:
        The IRR, or None when undefined (fewer than two flows, no sign change
        in the flows, or no NPV sign change on the scanned rate range).

    Raises:
        NumericConvergenceError: If brentq fails or does not converge on a
            bracketed root.
    """
    cf = _as_array(values)
    if cf.size < 2 or not _has_sign_change(cf):
        return None

    def f(rate: float) -> float:
        return npv(cf, rate)

    grid = _scan_grid()
    with np.errstate(over="ignore", invalid="ignore"):
        exponents = np.arange(cf.size)
        npvs = np.array([np.sum(cf * (1.0 + r) ** -exponents) for r in grid])

    finite = np.isfinite(npvs)
    exact = np.where(finite & (npvs == 0.0))[0]
    if exact.size:
        return float(grid[exact[np.argmin(np.abs(grid[exact] - guess))]])

    brackets = [
        (grid[i], grid[i + 1])
        for i in range(grid.size - 1)
        if finite[i] and finite[i + 1] and npvs[i] * npvs[i + 1] < 0
    ]
    if not brackets:
        logger.debug(
            "No NPV sign change on [%.2f, %.2f] for %d cash flows, IRR undefined",
            IRR_LOWER_BOUND, IRR_UPPER_BOUND, cf.size,
        )
        return None
    if len(brackets) > 1:
        logger.debug("Cash flows have %d IRR brackets, using the one closest to %.2f", len(brackets), guess)
    lo, hi = min(brackets, key=lambda b: abs(0.5 * (b[0] + b[1]) - guess))

    try:
        root, result = brentq(
            f, lo, hi, xtol=IRR_TOLERANCE, maxiter=IRR_MAX_ITERATIONS, full_output=True
        )
    except (RuntimeError, ValueError) as exc:
        raise NumericConvergenceError(f"IRR solver failed on [{lo:.4f}, {hi:.4f}]: {exc}") from exc
    if not result.converged:
        raise NumericConvergenceError(
            f"IRR solver did not converge after {result.iterations} iterations: {result.flag}"
        )
    return float(root)


def simple_payback_years(entries: Sequence[CashflowEntry]) -> float:
    """Smallest year with cumulative >= 0, or PAYBACK_NEVER_REACHED."""
    for entry in entries:
        if entry.cumulative >= 0:
            return float(entry.year)
    return PAYBACK_NEVER_REACHED


def lcoe(
    capex_net: float,
    opex_by_year: Sequence[float],
    production_by_year: Sequence[float],
    rate: float,
) -> float:
    """
    Levelized cost of energy [$/kWh].

    Args:
        capex_net: Net investment at year 0 [$].
        opex_by_year: Operating cost for years 1..N [$].
        production_by_year: Energy produced in years 1..N [kWh].
        rate: Discount rate (same as NPV).

    Returns:
        LCOE, or inf when discounted production is 0.
    """
    production = np.asarray(production_by_year, dtype=float)
    opex = np.asarray(opex_by_year, dtype=float)
    if opex.size == 0:
        opex = np.zeros_like(production)
    if opex.size != production.size:
        raise ValueError(
            f"opex_by_year and production_by_year must have the same length, "
            f"got {opex.size} and {production.size}"
        )
    discount = (1.0 + rate) ** -np.arange(1, production.size + 1)
    energy = float(np.sum(production * discount))
    if energy <= 0:
        return math.inf
    cost = capex_net + float(np.sum(opex * discount))
    return cost / energy


def compute_financial_metrics(
    entries: Sequence[CashflowEntry],
    discount_rate: float,
    production_by_year: Sequence[float] = (),
    opex_by_year: Sequence[float] = (),
) -> FinancialMetrics:
    """
    NPV, IRR, simple payback and LCOE of a projected series.

    Net CAPEX is taken from year 0 (-net_cashflow[0]).
    """
    values = cashflow_values(entries)
    capex_net = -values[0] if values else 0.0
    return FinancialMetrics(
        npv=npv(values, discount_rate),
        irr=irr(values),
        simple_payback_years=simple_payback_years(entries),
        lcoe=lcoe(capex_net, opex_by_year, production_by_year, discount_rate),
    )


def horizon_metrics(
    values: Sequence[float],
    rate: float,
    horizons: Iterable[int] = DEFAULT_HORIZONS,
) -> List[HorizonMetrics]:
    """
    NPV and IRR of the series truncated at each horizon.

    Horizons longer than the series are skipped. A horizon whose IRR cannot be
    solved gets irr=None; the other horizons are still reported.
    """
    cf = _as_array(values)
    results = []
    for years in sorted(set(int(h) for h in horizons)):
        if years < 1 or years > cf.size - 1:
            continue
        head = cf[: years + 1]
        try:
            head_irr = irr(head)
        except NumericConvergenceError as exc:
            logger.warning("IRR at %d-year horizon not reported: %s", years, exc)
            head_irr = None
        results.append(HorizonMetrics(years=years, npv=npv(head, rate), irr=head_irr))
    return results
