"""
Sizing Heuristic: first-pass PV and battery recommendation.

This is policy, not physics. From the consumption profile:

    pv_size_kw                 = round(annual_consumption_kwh / specific_yield)
    batt_energy_kwh            = round(peak_demand_kw * discharge_hours)
    batt_power_kw              = round(peak_demand_kw * shaving_fraction)
    demand_shaving_setpoint_kw = round(peak_demand_kw * (1 - target_reduction))

All roundings are half-up (2.5 -> 3), not Python's round-half-to-even.

A profile with zero annual consumption yields a zero-sized candidate; callers
must treat it as infeasible and never push it into the cash-flow pipeline.

Building-type defaults adjust the battery parameters: flat loads (cold storage,
industrial) get a longer discharge at a lower shaving fraction, peaky loads
(office, retail) keep the short, high-power defaults.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from potential_model.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class SizingCandidate:
    """
    One PV + battery system size.

    Attributes:
        pv_size_kw: PV nameplate DC capacity [kW].
        batt_energy_kwh: Battery energy capacity [kWh].
        batt_power_kw: Battery power rating [kW].
        demand_shaving_setpoint_kw: Grid draw the battery tries to stay under [kW].
    """

    pv_size_kw: float
    batt_energy_kwh: float
    batt_power_kw: float
    demand_shaving_setpoint_kw: float

    @property
    def is_zero(self) -> bool:
        """True when the candidate installs neither PV nor battery."""
        return self.pv_size_kw <= 0 and self.batt_energy_kwh <= 0

    @property
    def has_battery(self) -> bool:
        return self.batt_energy_kwh > 0 and self.batt_power_kw > 0

    @property
    def sort_key(self) -> Tuple[float, float, float]:
        """Identity used for deterministic tie-breaks."""
        return (self.pv_size_kw, self.batt_energy_kwh, self.batt_power_kw)

    @property
    def label(self) -> str:
        if self.pv_size_kw > 0 and self.batt_energy_kwh > 0:
            return f"{self.pv_size_kw:g}kW PV + {self.batt_energy_kwh:g}kWh"
        if self.pv_size_kw > 0:
            return f"{self.pv_size_kw:g}kW solar only"
        if self.batt_energy_kwh > 0:
            return f"{self.batt_energy_kwh:g}kWh storage only"
        return "no system"

    @classmethod
    def zero(cls, setpoint_kw: float = 0.0) -> "SizingCandidate":
        return cls(0.0, 0.0, 0.0, float(setpoint_kw))


@dataclass(frozen=True)
class SizingDefaults:
    """
    Parameters of the sizing heuristic.

    Attributes:
        specific_yield_kwh_per_kwp: Annual PV yield of the region [kWh/kWp].
        discharge_hours: Battery energy / peak demand [h].
        shaving_fraction: Battery power / peak demand [-].
        target_reduction: Fraction of the peak to shave [-].
        max_pv_kw: Optional cap on the PV size (roof limit) [kW].
    """

    specific_yield_kwh_per_kwp: float = 1200.0
    discharge_hours: float = 2.0
    shaving_fraction: float = 0.30
    target_reduction: float = 0.15
    max_pv_kw: Optional[float] = None

    def __post_init__(self) -> None:
        if self.specific_yield_kwh_per_kwp <= 0:
            raise ConfigurationError(
                f"specific_yield_kwh_per_kwp must be > 0, got {self.specific_yield_kwh_per_kwp}"
            )
        if self.discharge_hours < 0:
            raise ConfigurationError(f"discharge_hours must be >= 0, got {self.discharge_hours}")
        if not 0.0 <= self.shaving_fraction <= 1.0:
            raise ConfigurationError(
                f"shaving_fraction must be in [0, 1], got {self.shaving_fraction}"
            )
        if not 0.0 <= self.target_reduction < 1.0:
            raise ConfigurationError(
                f"target_reduction must be in [0, 1), got {self.target_reduction}"
            )
        if self.max_pv_kw is not None and self.max_pv_kw < 0:
            raise ConfigurationError(f"max_pv_kw must be >= 0, got {self.max_pv_kw}")


# Battery parameter overrides per building type.
BUILDING_TYPE_DEFAULTS: Dict[str, Dict[str, float]] = {
    "office": {"discharge_hours": 2.0, "shaving_fraction": 0.30},
    "retail": {"discharge_hours": 2.0, "shaving_fraction": 0.30},
    "institutional": {"discharge_hours": 2.0, "shaving_fraction": 0.25},
    "warehouse": {"discharge_hours": 3.0, "shaving_fraction": 0.25},
    "light_industrial": {"discharge_hours": 3.0, "shaving_fraction": 0.25},
    "industrial": {"discharge_hours": 4.0, "shaving_fraction": 0.20},
    "cold_warehouse": {"discharge_hours": 4.0, "shaving_fraction": 0.20},
}


def defaults_for_building_type(
    building_type: Optional[str],
    base: Optional[SizingDefaults] = None,
) -> SizingDefaults:
    """
    Return sizing defaults adjusted for a building type.

    Raises:
        ConfigurationError: If the building type is unknown.
    """
    base = base or SizingDefaults()
    if building_type is None:
        return base
    key = building_type.strip().lower().replace("-", "_").replace(" ", "_")
    if key not in BUILDING_TYPE_DEFAULTS:
        raise ConfigurationError(
            f"Unknown building type '{building_type}'. "
            f"Available: {sorted(BUILDING_TYPE_DEFAULTS)}"
        )
    return replace(base, **BUILDING_TYPE_DEFAULTS[key])


def recommend_sizing(
    profile,
    defaults: Optional[SizingDefaults] = None,
    building_type: Optional[str] = None,
) -> SizingCandidate:
    """
    Derive the primary SizingCandidate from a ConsumptionProfile.

    Args:
        profile: ConsumptionProfile (annual_consumption_kwh, peak_demand_kw).
        defaults: Heuristic parameters (SizingDefaults()).
        building_type: Optional key of BUILDING_TYPE_DEFAULTS.

    Returns:
        SizingCandidate. Zero-sized when annual consumption is 0.
    """
    params = defaults_for_building_type(building_type, defaults)
    annual = profile.annual_consumption_kwh
    peak = profile.peak_demand_kw

    if annual <= 0:
        logger.warning("Zero annual consumption: returning a zero-sized candidate")
        return SizingCandidate.zero(setpoint_kw=round_half_up(peak))

    pv_kw = round_half_up(annual / params.specific_yield_kwh_per_kwp)
    if params.max_pv_kw is not None:
        pv_kw = min(pv_kw, round_half_up(params.max_pv_kw))

    candidate = SizingCandidate(
        pv_size_kw=float(pv_kw),
        batt_energy_kwh=float(round_half_up(peak * params.discharge_hours)),
        batt_power_kw=float(round_half_up(peak * params.shaving_fraction)),
        demand_shaving_setpoint_kw=float(round_half_up(peak * (1.0 - params.target_reduction))),
    )
    logger.debug("Recommended sizing: %s", candidate)
    return candidate
