"""
Candidate evaluation: one SizingCandidate through the full financial pipeline.

    energy balance -> bill impact -> CAPEX -> incentives -> cash flows -> metrics

evaluate_candidate() is a pure function of (profile, candidate, config), which
is what makes the sensitivity sweep trivially parallel. Zero-sized candidates
are infeasible and rejected with InfeasibleCandidateError.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from potential_model.core.cashflow import CashflowEntry, cashflow_values, project_cashflows
from potential_model.core.incentives import (
    CapexBreakdown,
    IncentiveStack,
    compute_capex,
    compute_incentive_stack,
)
from potential_model.core.metrics import (
    FinancialMetrics,
    HorizonMetrics,
    compute_financial_metrics,
    horizon_metrics,
)
from potential_model.core.profile import ConsumptionProfile, TypicalYear, typical_year
from potential_model.core.rate_schedule import BillImpact, compute_bill_impact
from potential_model.core.sizing import SizingCandidate
from potential_model.exceptions import InfeasibleCandidateError
from potential_model.simulation.dispatch import EnergyBalance, simulate_energy_balance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateEvaluation:
    """Full financial breakdown of one candidate."""

    candidate: SizingCandidate
    capex: CapexBreakdown
    incentives: IncentiveStack
    capex_net: float
    bill: BillImpact
    energy_balance: EnergyBalance
    cashflows: Tuple[CashflowEntry, ...]
    metrics: FinancialMetrics
    horizons: Tuple[HorizonMetrics, ...]
    self_sufficiency: float
    co2_avoided_tonnes_per_year: float

    @property
    def npv(self) -> float:
        return self.metrics.npv

    @property
    def irr(self) -> Optional[float]:
        return self.metrics.irr

    @property
    def simple_payback_years(self) -> float:
        return self.metrics.simple_payback_years

    @property
    def annual_savings(self) -> float:
        return self.bill.annual_savings

    def horizon(self, years: int) -> Optional[HorizonMetrics]:
        """Metrics at a reporting horizon, None if not computed."""
        for h in self.horizons:
            if h.years == years:
                return h
        return None

    def summary(self) -> Dict[str, Any]:
        """Flat row used by sweep tables."""
        c = self.candidate
        return {
            "pv_size_kw": c.pv_size_kw,
            "batt_energy_kwh": c.batt_energy_kwh,
            "batt_power_kw": c.batt_power_kw,
            "capex_gross": self.capex.capex_gross,
            "capex_net": self.capex_net,
            "annual_savings": self.annual_savings,
            "npv": self.npv,
            "irr": self.irr,
            "simple_payback_years": self.simple_payback_years,
            "lcoe": self.metrics.lcoe,
            "self_sufficiency": self.self_sufficiency,
            "co2_avoided_tonnes_per_year": self.co2_avoided_tonnes_per_year,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data export; non-finite numbers become None."""
        data = dataclasses.asdict(self)
        data["capex"]["capex_gross"] = self.capex.capex_gross
        return _finite_or_none(data)


def _finite_or_none(value):
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _finite_or_none(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite_or_none(v) for v in value]
    return value


def evaluate_candidate(
    profile: ConsumptionProfile,
    candidate: SizingCandidate,
    config,
    year: Optional[TypicalYear] = None,
) -> CandidateEvaluation:
    """
    Run one candidate through the financial pipeline.

    Args:
        profile: Site consumption profile.
        candidate: System size to evaluate (must not be zero-sized).
        config: AnalysisConfig.
        year: Typical year of the profile; built from the profile when None.
            The sweep passes it in so it is laid out once.

    Returns:
        CandidateEvaluation

    Raises:
        InfeasibleCandidateError: If the candidate is zero-sized.
        NumericConvergenceError: If the IRR solver fails.
        ConfigurationError: If the incentive parameters are inconsistent.
    """
    if candidate.is_zero:
        raise InfeasibleCandidateError(
            f"Zero-sized candidate {candidate} cannot be run through the cash-flow pipeline"
        )
    if year is None:
        year = typical_year(profile)

    balance = simulate_energy_balance(year, candidate, config.specific_yield_kwh_per_kwp)
    bill = compute_bill_impact(profile, balance, config.schedule(), config.surplus_rate_per_kwh)

    capex = compute_capex(candidate, config)
    incentives = compute_incentive_stack(candidate, capex, config)
    capex_net = max(capex.capex_gross - incentives.total, 0.0)

    assumptions = config.cashflow_assumptions(capex, bill.annual_surplus_revenue)
    entries = project_cashflows(capex_net, bill.annual_savings, assumptions)

    n = assumptions.horizon_years
    production_by_year = [
        balance.production_kwh * (1.0 - assumptions.degradation_rate) ** (y - 1) for y in range(1, n + 1)
    ]
    opex_by_year = [
        assumptions.opex_year1 * (1.0 + assumptions.om_escalation) ** (y - 1) for y in range(1, n + 1)
    ]
    metrics = compute_financial_metrics(entries, config.discount_rate, production_by_year, opex_by_year)

    # Reporting horizons may extend past the analysis horizon
    longest = max((n,) + tuple(config.reporting_horizons))
    extended = entries
    if longest > n:
        extended = project_cashflows(
            capex_net, bill.annual_savings, dataclasses.replace(assumptions, horizon_years=longest)
        )
    horizons = horizon_metrics(cashflow_values(extended), config.discount_rate, config.reporting_horizons)

    annual = profile.annual_consumption_kwh
    self_sufficiency = balance.self_consumption_kwh / annual if annual > 0 else 0.0
    co2 = balance.self_consumption_kwh * config.co2_factor_kg_per_kwh / 1000.0

    logger.debug(
        "Evaluated %s: capex_net=%.0f savings=%.0f npv=%.0f irr=%s",
        candidate.label, capex_net, bill.annual_savings, metrics.npv, metrics.irr,
    )

    return CandidateEvaluation(
        candidate=candidate,
        capex=capex,
        incentives=incentives,
        capex_net=capex_net,
        bill=bill,
        energy_balance=balance,
        cashflows=tuple(entries),
        metrics=metrics,
        horizons=tuple(horizons),
        self_sufficiency=self_sufficiency,
        co2_avoided_tonnes_per_year=co2,
    )
