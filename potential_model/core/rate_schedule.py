"""
Rate schedules and bill impact.

A RateSchedule turns monthly grid energy [kWh] and monthly billed demand [kW]
into a utility cost. Schedules are pluggable: the rest of the engine only calls
energy_charge(), demand_charge() and annual_cost(), so flat, tiered or
time-of-use tariffs can be substituted without touching the pipeline.

MONTH-DEPENDENT PARAMETERS
--------------------------
Rates are functions of the calendar month (1..12). They can be given as:

1. Scalar (constant all year):
    energy_rate = 0.073

2. Dictionary (lookup table, missing months -> 0.0):
    demand_rate = {1: 17.5, 2: 17.5, ..., 12: 17.5}

3. Callable:
    energy_rate = lambda month: 0.08 if month in (12, 1, 2) else 0.07

All are normalized to callables internally.

BILL IMPACT
-----------
    cost_before = annual_cost(monthly consumption, annual peak billed each month)
    cost_after  = annual_cost(monthly grid energy, peak after shaving billed each month)
        where grid energy = consumption - self-consumption + battery grid charging
    cost_after  = max(cost_after, 0)
    savings     = cost_before - cost_after

Exported surplus is valued separately (annual_surplus_revenue) and never
reduces cost_after below zero.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

from potential_model.exceptions import ConfigurationError
from potential_model.settings import MONTHS_PER_YEAR


# Type alias for month-dependent parameters
MonthDependentValue = Union[float, Dict[int, float], Callable[[int], float]]


class _ConstantRate:
    """Month -> constant value. Picklable, so schedules can cross process pools."""

    def __init__(self, value: float) -> None:
        self.value = value

    def __call__(self, month: int) -> float:
        return self.value


class _MonthlyRateTable:
    """Month -> value lookup, 0.0 for missing months."""

    def __init__(self, table: Dict[int, float]) -> None:
        self.table = {int(k): float(v) for k, v in table.items()}

    def __call__(self, month: int) -> float:
        return self.table.get(month, 0.0)


def _normalize_month_param(param: MonthDependentValue, name: str) -> Callable[[int], float]:
    """
    Convert a month-dependent parameter to a callable.

    Args:
        param: Can be float (constant), dict (lookup table), or callable.
        name: Parameter name used in error messages.

    Returns:
        A function that maps month (1..12) -> float.
    """
    if callable(param):
        return param
    elif isinstance(param, dict):
        for month, value in param.items():
            if value < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {value} for month {month}")
        return _MonthlyRateTable(param)
    else:
        value = float(param)
        if value < 0:
            raise ConfigurationError(f"{name} must be >= 0, got {value}")
        return _ConstantRate(value)


class RateSchedule(ABC):
    """
    Base class for utility tariffs.

    Subclasses must implement: energy_charge(month, kwh).
    """

    def __init__(
        self,
        name: str,
        energy_rate: MonthDependentValue = 0.0,
        demand_rate: MonthDependentValue = 0.0,
    ) -> None:
        """
        Args:
            name:
                Human-readable identifier (e.g. tariff code).

            energy_rate:
                Energy price [$/kWh] per month. Scalar, dict or callable.

            demand_rate:
                Demand price [$/kW-month] per month. Scalar, dict or callable.
        """
        self.name = name
        self._energy_rate = _normalize_month_param(energy_rate, "energy_rate")
        self._demand_rate = _normalize_month_param(demand_rate, "demand_rate")

    def energy_rate(self, month: int) -> float:
        """Energy price [$/kWh] in a month."""
        return self._energy_rate(month)

    def demand_rate(self, month: int) -> float:
        """Demand price [$/kW-month] in a month."""
        return self._demand_rate(month)

    @abstractmethod
    def energy_charge(self, month: int, kwh: float) -> float:
        """Energy charge [$] for kwh of grid energy in a month."""
        raise NotImplementedError

    def demand_charge(self, month: int, kw: float) -> float:
        """Demand charge [$] for a billed demand kw in a month."""
        return max(kw, 0.0) * self.demand_rate(month)

    def annual_cost(
        self,
        monthly_energy_kwh: Sequence[float],
        monthly_billed_demand_kw: Sequence[float],
    ) -> float:
        """
        Sum energy and demand charges over 12 months.

        Raises:
            ValueError: If either sequence does not have 12 entries.
        """
        if len(monthly_energy_kwh) != MONTHS_PER_YEAR or len(monthly_billed_demand_kw) != MONTHS_PER_YEAR:
            raise ValueError(
                f"annual_cost expects {MONTHS_PER_YEAR} monthly values, got "
                f"{len(monthly_energy_kwh)} energy and {len(monthly_billed_demand_kw)} demand"
            )
        total = 0.0
        for m in range(MONTHS_PER_YEAR):
            month = m + 1
            total += self.energy_charge(month, monthly_energy_kwh[m])
            total += self.demand_charge(month, monthly_billed_demand_kw[m])
        return total

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class FlatRateSchedule(RateSchedule):
    """Single energy price and single demand price (optionally month-dependent)."""

    def __init__(
        self,
        energy_rate: MonthDependentValue,
        demand_rate: MonthDependentValue,
        name: str = "flat",
    ) -> None:
        super().__init__(name=name, energy_rate=energy_rate, demand_rate=demand_rate)

    def energy_charge(self, month: int, kwh: float) -> float:
        return max(kwh, 0.0) * self.energy_rate(month)


class TieredRateSchedule(RateSchedule):
    """
    Monthly block tariff.

    Each month's grid energy is billed block by block. `tiers` is a sequence
    of (block_size_kwh, rate) pairs; the last block size may be None for
    "everything above". If the last block is bounded, energy beyond it is
    billed at the last rate.

    Example (first 210,000 kWh at 0.06061, the rest at 0.04495):
        TieredRateSchedule(tiers=[(210_000, 0.06061), (None, 0.04495)], demand_rate=17.573)
    """

    def __init__(
        self,
        tiers: Sequence[Tuple[Optional[float], float]],
        demand_rate: MonthDependentValue,
        name: str = "tiered",
    ) -> None:
        if not tiers:
            raise ConfigurationError("TieredRateSchedule needs at least one tier")
        for i, (size, rate) in enumerate(tiers):
            if rate < 0:
                raise ConfigurationError(f"Tier {i} rate must be >= 0, got {rate}")
            if size is None and i != len(tiers) - 1:
                raise ConfigurationError("Only the last tier may be unbounded (size None)")
            if size is not None and size <= 0:
                raise ConfigurationError(f"Tier {i} size must be > 0, got {size}")
        self.tiers = tuple((None if s is None else float(s), float(r)) for s, r in tiers)
        first_rate = self.tiers[0][1]
        super().__init__(name=name, energy_rate=first_rate, demand_rate=demand_rate)

    def energy_charge(self, month: int, kwh: float) -> float:
        remaining = max(kwh, 0.0)
        charge = 0.0
        for size, rate in self.tiers:
            if remaining <= 0:
                break
            block = remaining if size is None else min(remaining, size)
            charge += block * rate
            remaining -= block
        if remaining > 0:
            charge += remaining * self.tiers[-1][1]
        return charge


# ----------------------------------------------------------------------
# Bill impact
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class BillImpact:
    """
    Annual utility cost before / after a candidate system.

    Invariant: annual_cost_after == annual_cost_before - annual_savings,
    with annual_cost_after >= 0.
    """

    annual_cost_before: float
    annual_cost_after: float
    annual_savings: float
    annual_surplus_revenue: float = 0.0


def compute_bill_impact(
    profile,
    energy_balance,
    schedule: RateSchedule,
    surplus_rate_per_kwh: float = 0.0,
) -> BillImpact:
    """
    Compute billed cost before and after a candidate system.

    Args:
        profile: ConsumptionProfile (peak_demand_kw).
        energy_balance: EnergyBalance of the candidate (monthly consumption,
            self-consumption, grid charging, exports, peak after shaving).
        schedule: Tariff used for both bills.
        surplus_rate_per_kwh: Compensation for exported energy [$/kWh].

    Returns:
        BillImpact
    """
    if surplus_rate_per_kwh < 0:
        raise ConfigurationError(f"surplus_rate_per_kwh must be >= 0, got {surplus_rate_per_kwh}")

    consumption = energy_balance.monthly_consumption_kwh
    billed_before = [profile.peak_demand_kw] * MONTHS_PER_YEAR
    cost_before = schedule.annual_cost(consumption, billed_before)

    grid_energy = [
        max(c - s + g, 0.0)
        for c, s, g in zip(
            consumption,
            energy_balance.monthly_self_consumption_kwh,
            energy_balance.monthly_grid_charging_kwh,
        )
    ]
    billed_after = [energy_balance.peak_after_kw] * MONTHS_PER_YEAR
    cost_after = max(schedule.annual_cost(grid_energy, billed_after), 0.0)

    return BillImpact(
        annual_cost_before=cost_before,
        annual_cost_after=cost_after,
        annual_savings=cost_before - cost_after,
        annual_surplus_revenue=energy_balance.exported_kwh * surplus_rate_per_kwh,
    )
