"""
Cash-Flow Projector: year-by-year net cash flows over the analysis horizon.

POLICY
------
    year 0:   net = -capex_net
    year y>=1: net = savings_y + surplus_y - opex_y - replacement_y

    savings_y     = annual_savings * (1 + inflation)^(y-1) * (1 - degradation)^(y-1)
    surplus_y     = annual_surplus * (same factors)      for y >= surplus_start_year
    opex_y        = opex_year1 * (1 + om_escalation)^(y-1)
    replacement_y = replacement_cost * (1 + inflation - price_decline)^y
                    in each battery replacement year

With all optional lines at zero (the defaults) every year >= 1 carries the flat
annual savings. cumulative[0] = net[0] and cumulative[y] = cumulative[y-1] + net[y].

RE-DERIVATION
-------------
rebuild_cashflows() reconstructs a series from summarized records supplied by
an upstream scenario. It always recomputes cumulative from the first entry and
never trusts a supplied cumulative value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence, Tuple

from potential_model.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashflowEntry:
    """One year of the cash-flow series."""

    year: int
    net_cashflow: float
    cumulative: float

    def to_dict(self) -> dict:
        return {"year": self.year, "netCashflow": self.net_cashflow, "cumulative": self.cumulative}


@dataclass(frozen=True)
class CashflowAssumptions:
    """
    Projection parameters.

    Attributes:
        horizon_years: Number of operating years (series length is horizon + 1).
        inflation_rate: Annual escalation of savings and surplus revenue.
        degradation_rate: Annual production degradation applied to savings.
        opex_year1: Operation & maintenance cost in year 1 [$].
        om_escalation: Annual O&M escalation.
        annual_surplus_revenue: Export compensation in year 1 terms [$].
        surplus_start_year: First year surplus revenue is paid.
        battery_replacement_cost: Replacement outlay in today's money [$].
        battery_replacement_years: Years in which the battery is replaced.
        battery_price_decline_rate: Annual battery price decline.
    """

    horizon_years: int = 25
    inflation_rate: float = 0.0
    degradation_rate: float = 0.0
    opex_year1: float = 0.0
    om_escalation: float = 0.0
    annual_surplus_revenue: float = 0.0
    surplus_start_year: int = 1
    battery_replacement_cost: float = 0.0
    battery_replacement_years: Tuple[int, ...] = ()
    battery_price_decline_rate: float = 0.0

    def __post_init__(self) -> None:
        if int(self.horizon_years) != self.horizon_years or self.horizon_years < 1:
            raise ConfigurationError(f"horizon_years must be an integer >= 1, got {self.horizon_years}")
        if not 0.0 <= self.degradation_rate < 1.0:
            raise ConfigurationError(f"degradation_rate must be in [0, 1), got {self.degradation_rate}")
        if self.inflation_rate <= -1.0:
            raise ConfigurationError(f"inflation_rate must be > -1, got {self.inflation_rate}")
        if self.opex_year1 < 0 or self.battery_replacement_cost < 0 or self.annual_surplus_revenue < 0:
            raise ConfigurationError("opex, surplus revenue and replacement cost must be >= 0")

    def growth_factor(self, year: int) -> float:
        """Combined inflation x degradation factor for a year >= 1."""
        n = year - 1
        return (1.0 + self.inflation_rate) ** n * (1.0 - self.degradation_rate) ** n


def _accumulate(years: Sequence[int], values: Sequence[float]) -> List[CashflowEntry]:
    entries = []
    cumulative = 0.0
    for i, (year, value) in enumerate(zip(years, values)):
        cumulative = value if i == 0 else cumulative + value
        entries.append(CashflowEntry(year=int(year), net_cashflow=float(value), cumulative=cumulative))
    return entries


def project_cashflows(
    capex_net: float,
    annual_savings: float,
    assumptions: CashflowAssumptions,
) -> List[CashflowEntry]:
    """
    Build the year-by-year cash-flow series.

    Args:
        capex_net: Net investment after incentives [$], >= 0.
        annual_savings: Year-1 bill savings [$].
        assumptions: Horizon and optional escalation / O&M / surplus lines.

    Returns:
        List of horizon_years + 1 CashflowEntry, year 0 first.
    """
    if capex_net < 0:
        raise ValueError(f"capex_net must be >= 0, got {capex_net}")

    a = assumptions
    values = [-float(capex_net)]
    replacement_years = set(a.battery_replacement_years)

    for year in range(1, a.horizon_years + 1):
        growth = a.growth_factor(year)
        value = annual_savings * growth
        if a.annual_surplus_revenue and year >= a.surplus_start_year:
            value += a.annual_surplus_revenue * growth
        if a.opex_year1:
            value -= a.opex_year1 * (1.0 + a.om_escalation) ** (year - 1)
        if a.battery_replacement_cost and year in replacement_years:
            price_change = (1.0 + a.inflation_rate - a.battery_price_decline_rate) ** year
            value -= a.battery_replacement_cost * price_change
        values.append(value)

    return _accumulate(range(len(values)), values)


def cashflow_values(entries: Iterable[CashflowEntry]) -> List[float]:
    """Net cash flows of a series, in year order."""
    return [e.net_cashflow for e in entries]


def _field(record: Any, *names: str):
    for name in names:
        if isinstance(record, Mapping):
            if name in record and record[name] is not None:
                return record[name]
        elif getattr(record, name, None) is not None:
            return getattr(record, name)
    return None


def rebuild_cashflows(summary: Iterable[Any]) -> List[CashflowEntry]:
    """
    Re-derive a cash-flow series from summarized records.

    Each record is a mapping (camelCase or snake_case keys) or an object with
    `year` and `net_cashflow` / `netCashflow`. When a record has no net value
    it is derived from the supplied cumulative values. Cumulative is always
    recomputed from the first entry.

    Raises:
        ValueError: On duplicate years or records with neither net nor cumulative.
    """
    records = sorted(summary, key=lambda r: int(_field(r, "year")))
    years = [int(_field(r, "year")) for r in records]
    if len(set(years)) != len(years):
        raise ValueError(f"Duplicate years in cash-flow summary: {years}")

    values = []
    previous_supplied = None
    for record in records:
        net = _field(record, "net_cashflow", "netCashflow")
        supplied = _field(record, "cumulative")
        if net is None:
            if supplied is None:
                raise ValueError(f"Cash-flow record for year {_field(record, 'year')} has no value")
            net = supplied if previous_supplied is None else supplied - previous_supplied
        values.append(float(net))
        if supplied is not None:
            previous_supplied = float(supplied)

    entries = _accumulate(years, values)
    for record, entry in zip(records, entries):
        supplied = _field(record, "cumulative")
        if supplied is not None and abs(float(supplied) - entry.cumulative) > 1e-6 * max(1.0, abs(entry.cumulative)):
            logger.debug(
                "Year %d: supplied cumulative %.2f replaced by %.2f",
                entry.year, float(supplied), entry.cumulative,
            )
    return entries
