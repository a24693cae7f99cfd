"""
Hourly energy balance of a PV + battery candidate over a typical year.

PV PRODUCTION
-------------
Production follows a fixed diurnal / seasonal shape (no irradiance physics):

    shape(h, m) = exp(-(h - 13)^2 / 8) * (1 + 0.4 * cos((m - 6) * 2*pi / 12)),  5 <= h <= 20

normalized so that annual production = pv_size_kw * specific_yield.

BATTERY DISPATCH (rule based, one pass over 8760 hours)
-------------------------------------------------------
The battery starts at 50% state of charge. In each hour:

    1. demand > setpoint and energy stored  -> discharge min(demand - setpoint, power, soc)
    2. PV surplus (production > consumption) -> charge from surplus
    3. from 22:00, battery not full          -> charge from the grid, without
                                                pushing demand above the setpoint

Self-consumption in an hour is min(consumption, production + discharge); the
monthly total is capped at the month's production. Exports are PV energy
neither consumed nor stored.

Without a battery the balance is computed vectorized.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from potential_model.core.profile import TypicalYear
from potential_model.core.sizing import SizingCandidate
from potential_model.settings import MONTHS_PER_YEAR

logger = logging.getLogger(__name__)

INITIAL_SOC_FRACTION = 0.5
GRID_CHARGING_START_HOUR = 22
DAYLIGHT_HOURS = (5, 20)


@dataclass(frozen=True)
class EnergyBalance:
    """
    Annual energy flows of one candidate [kWh] and demand peaks [kW].

    Monthly tuples have 12 entries, index 0 = January.
    """

    annual_consumption_kwh: float
    production_kwh: float
    self_consumption_kwh: float
    exported_kwh: float
    grid_charging_kwh: float
    peak_before_kw: float
    peak_after_kw: float
    monthly_consumption_kwh: Tuple[float, ...]
    monthly_production_kwh: Tuple[float, ...]
    monthly_self_consumption_kwh: Tuple[float, ...]
    monthly_grid_charging_kwh: Tuple[float, ...]
    monthly_peak_before_kw: Tuple[float, ...]
    monthly_peak_after_kw: Tuple[float, ...]

    @property
    def self_sufficiency(self) -> float:
        """Fraction of annual consumption met on site (0..1)."""
        if self.annual_consumption_kwh <= 0:
            return 0.0
        return self.self_consumption_kwh / self.annual_consumption_kwh

    @property
    def demand_reduction_kw(self) -> float:
        return max(self.peak_before_kw - self.peak_after_kw, 0.0)


def solar_production_profile(
    year: TypicalYear,
    pv_size_kw: float,
    specific_yield_kwh_per_kwp: float,
) -> np.ndarray:
    """Hourly PV production [kWh] over the typical year."""
    if pv_size_kw <= 0:
        return np.zeros(len(year))
    hour = year.hour.astype(float)
    month = year.month.astype(float)
    bell = np.exp(-((hour - 13.0) ** 2) / 8.0)
    season = 1.0 + 0.4 * np.cos((month - 6.0) * 2.0 * math.pi / 12.0)
    daylight = (year.hour >= DAYLIGHT_HOURS[0]) & (year.hour <= DAYLIGHT_HOURS[1])
    shape = bell * season * daylight
    return shape / shape.sum() * (pv_size_kw * specific_yield_kwh_per_kwp)


def _monthly_sum(month_index: np.ndarray, values: np.ndarray) -> np.ndarray:
    return np.bincount(month_index, weights=values, minlength=MONTHS_PER_YEAR)


def _monthly_max(month_index: np.ndarray, values: np.ndarray) -> np.ndarray:
    out = np.zeros(MONTHS_PER_YEAR)
    np.maximum.at(out, month_index, values)
    return out


def _dispatch_battery(
    year: TypicalYear,
    production: np.ndarray,
    candidate: SizingCandidate,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Run the rule-based dispatch.

    Returns:
        (discharge, charge_from_pv, charge_from_grid, demand_after, self_consumption)
        as hourly arrays.
    """
    n = len(year)
    capacity = candidate.batt_energy_kwh
    power = candidate.batt_power_kw
    setpoint = candidate.demand_shaving_setpoint_kw

    consumption = year.consumption_kwh.tolist()
    demand = year.demand_kw.tolist()
    hours = year.hour.tolist()
    prod = production.tolist()

    discharge = [0.0] * n
    pv_charge = [0.0] * n
    grid_charge = [0.0] * n
    demand_after = list(demand)
    self_cons = [0.0] * n

    soc = capacity * INITIAL_SOC_FRACTION
    for i in range(n):
        c = consumption[i]
        d = demand[i]
        p = prod[i]
        out = 0.0

        if d > setpoint and soc > 0:
            out = min(d - setpoint, power, soc)
            soc -= out
            discharge[i] = out
            demand_after[i] = max(d - out, 0.0)
        elif p > c and soc < capacity:
            charge = min(p - c, power, capacity - soc)
            soc += charge
            pv_charge[i] = charge
        elif hours[i] >= GRID_CHARGING_START_HOUR and soc < capacity:
            charge = min(power, capacity - soc, max(setpoint - d, 0.0))
            if charge > 0:
                soc += charge
                grid_charge[i] = charge
                demand_after[i] = d + charge

        self_cons[i] = min(c, p + out)

    return (
        np.asarray(discharge),
        np.asarray(pv_charge),
        np.asarray(grid_charge),
        np.asarray(demand_after),
        np.asarray(self_cons),
    )


def simulate_energy_balance(
    year: TypicalYear,
    candidate: SizingCandidate,
    specific_yield_kwh_per_kwp: float,
) -> EnergyBalance:
    """
    Simulate one candidate over the typical year.

    Args:
        year: 8760-hour consumption / demand layout.
        candidate: System size and shaving setpoint.
        specific_yield_kwh_per_kwp: Annual PV yield [kWh/kWp].

    Returns:
        EnergyBalance
    """
    month_index = year.month - 1
    consumption = year.consumption_kwh
    demand = year.demand_kw
    production = solar_production_profile(year, candidate.pv_size_kw, specific_yield_kwh_per_kwp)

    if candidate.has_battery:
        _, pv_charge, grid_charge, demand_after, self_cons = _dispatch_battery(
            year, production, candidate
        )
    else:
        pv_charge = np.zeros_like(consumption)
        grid_charge = np.zeros_like(consumption)
        demand_after = demand
        self_cons = np.minimum(consumption, production)

    monthly_production = _monthly_sum(month_index, production)
    monthly_self = np.minimum(_monthly_sum(month_index, self_cons), monthly_production)
    exported = np.maximum(production - np.minimum(consumption, production) - pv_charge, 0.0)

    balance = EnergyBalance(
        annual_consumption_kwh=float(consumption.sum()),
        production_kwh=float(production.sum()),
        self_consumption_kwh=float(monthly_self.sum()),
        exported_kwh=float(exported.sum()),
        grid_charging_kwh=float(grid_charge.sum()),
        peak_before_kw=float(demand.max()) if demand.size else 0.0,
        peak_after_kw=float(demand_after.max()) if demand_after.size else 0.0,
        monthly_consumption_kwh=tuple(_monthly_sum(month_index, consumption).tolist()),
        monthly_production_kwh=tuple(monthly_production.tolist()),
        monthly_self_consumption_kwh=tuple(monthly_self.tolist()),
        monthly_grid_charging_kwh=tuple(_monthly_sum(month_index, grid_charge).tolist()),
        monthly_peak_before_kw=tuple(_monthly_max(month_index, demand).tolist()),
        monthly_peak_after_kw=tuple(_monthly_max(month_index, demand_after).tolist()),
    )
    logger.debug(
        "Energy balance %s: production %.0f kWh, self-consumption %.0f kWh, peak %.1f -> %.1f kW",
        candidate.label, balance.production_kwh, balance.self_consumption_kwh,
        balance.peak_before_kw, balance.peak_after_kw,
    )
    return balance
