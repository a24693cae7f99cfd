"""
CAPEX pricing and the incentive / tax stack.

CAPEX
-----
    capex_solar   = pv_size_kw * 1000 * solar_cost_per_w
    capex_battery = batt_energy_kwh * battery_cost_per_kwh + batt_power_kw * battery_cost_per_kw
    capex_gross   = capex_solar + capex_battery

When no solar price is configured, the size-tiered price applies (larger
arrays are cheaper per watt).

INCENTIVE STACK
---------------
Programs are applied in order, each against what remains of the gross CAPEX:

    1. HQ solar:    min(rate_per_kw * min(pv, max_eligible_kw), cap% * gross)
    2. HQ battery:  min(rate_per_kwh * batt_energy, cap% * gross)
                    (0 without PV when the program requires a solar pairing)
    3. Federal ITC: itc% * (gross - HQ)
    4. Tax shield:  tax_rate * shield_fraction * (gross - HQ - ITC)

The sum is clamped so that total incentives never exceed gross CAPEX. A
program whose cap is above 100% of CAPEX is a configuration error, not a
silent oversubsidy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from potential_model.core.sizing import SizingCandidate
from potential_model.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# (minimum PV size [kW], price [$/W]), largest tier first
SOLAR_PRICE_TIERS = (
    (3000.0, 1.70),
    (1000.0, 1.85),
    (500.0, 2.00),
    (100.0, 2.15),
    (0.0, 2.30),
)


def tiered_solar_cost_per_w(pv_size_kw: float) -> float:
    """Installed solar price [$/W] for an array size (economies of scale)."""
    for min_kw, price in SOLAR_PRICE_TIERS:
        if pv_size_kw >= min_kw:
            return price
    return SOLAR_PRICE_TIERS[-1][1]


@dataclass(frozen=True)
class CapexBreakdown:
    """Gross investment [$] split by technology."""

    capex_solar: float
    capex_battery: float

    @property
    def capex_gross(self) -> float:
        return self.capex_solar + self.capex_battery


@dataclass(frozen=True)
class IncentiveStack:
    """Incentives [$] reducing gross CAPEX to net CAPEX."""

    hq_solar: float
    hq_battery: float
    federal_itc: float
    tax_shield: float
    total: float

    @property
    def hq_total(self) -> float:
        return self.hq_solar + self.hq_battery


def compute_capex(candidate: SizingCandidate, config) -> CapexBreakdown:
    """
    Price a candidate.

    Args:
        candidate: System size.
        config: AnalysisConfig (solar_cost_per_w, battery_cost_per_kwh,
            battery_cost_per_kw).
    """
    cost_per_w = config.solar_cost_per_w
    if cost_per_w is None:
        cost_per_w = tiered_solar_cost_per_w(candidate.pv_size_kw)
    capex_solar = candidate.pv_size_kw * 1000.0 * cost_per_w
    capex_battery = (
        candidate.batt_energy_kwh * config.battery_cost_per_kwh
        + candidate.batt_power_kw * config.battery_cost_per_kw
    )
    return CapexBreakdown(capex_solar=capex_solar, capex_battery=capex_battery)


def _check_fraction(name: str, value: float) -> None:
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value}")
    if value > 1.0:
        raise ConfigurationError(
            f"{name} must not exceed 100% of CAPEX, got {value * 100:.1f}%"
        )


def validate_incentive_parameters(config) -> None:
    """
    Raise ConfigurationError for inconsistent incentive parameters.

    Checks that every percentage cap lies in [0, 1] and every rate is >= 0.
    """
    _check_fraction("hq_solar_cap_percent", config.hq_solar_cap_percent)
    _check_fraction("hq_battery_cap_percent", config.hq_battery_cap_percent)
    _check_fraction("federal_itc_percent", config.federal_itc_percent)
    _check_fraction("tax_rate * tax_shield_fraction", config.tax_rate * config.tax_shield_fraction)
    for name in ("hq_solar_rate_per_kw", "hq_battery_rate_per_kwh", "hq_solar_max_eligible_kw"):
        value = getattr(config, name)
        if value < 0:
            raise ConfigurationError(f"{name} must be >= 0, got {value}")


def compute_incentive_stack(
    candidate: SizingCandidate,
    capex: CapexBreakdown,
    config,
) -> IncentiveStack:
    """
    Apply the capped-percentage incentive stack to a priced candidate.

    Args:
        candidate: System size (capacities drive the per-kW / per-kWh rates).
        capex: Gross CAPEX breakdown of the candidate.
        config: AnalysisConfig with the program parameters.

    Returns:
        IncentiveStack with total <= capex.capex_gross.

    Raises:
        ConfigurationError: If a program cap exceeds 100% of CAPEX.
    """
    validate_incentive_parameters(config)
    gross = capex.capex_gross
    if gross <= 0:
        return IncentiveStack(0.0, 0.0, 0.0, 0.0, 0.0)

    eligible_kw = min(candidate.pv_size_kw, config.hq_solar_max_eligible_kw)
    hq_solar = min(config.hq_solar_rate_per_kw * eligible_kw, config.hq_solar_cap_percent * gross)

    hq_battery = 0.0
    paired = candidate.pv_size_kw > 0 or not config.hq_battery_requires_solar
    if candidate.batt_energy_kwh > 0 and paired:
        hq_battery = min(
            config.hq_battery_rate_per_kwh * candidate.batt_energy_kwh,
            config.hq_battery_cap_percent * gross,
            gross - hq_solar,
        )

    hq_total = hq_solar + hq_battery
    federal_itc = config.federal_itc_percent * max(gross - hq_total, 0.0)
    depreciable = max(gross - hq_total - federal_itc, 0.0)
    tax_shield = config.tax_rate * config.tax_shield_fraction * depreciable

    total = hq_total + federal_itc + tax_shield
    if total > gross:
        logger.debug("Incentives %.2f clamped to gross CAPEX %.2f", total, gross)
        total = gross

    return IncentiveStack(
        hq_solar=hq_solar,
        hq_battery=hq_battery,
        federal_itc=federal_itc,
        tax_shield=tax_shield,
        total=total,
    )
