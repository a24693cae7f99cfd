"""
Per-run analysis configuration.

AnalysisConfig carries every rate, incentive, sizing and financial parameter
the engine needs, resolved before any computation starts. It is a frozen
dataclass validated on construction: inconsistent values raise
ConfigurationError immediately, never halfway through a sweep.

Collaborators that store assumptions with camelCase keys can use
AnalysisConfig.from_mapping():

    config = AnalysisConfig.from_mapping({
        "energyRatePerKWh": 0.073,
        "demandRatePerKWMonth": 15.5,
        "hqSolarRatePerKW": 1000,
        "hqSolarCapPercent": 0.40,
        "federalITCPercent": 0.30,
        "discountRate": 0.07,
        "analysisHorizonYears": 25,
    })

Percentages are fractions (0.40 == 40%).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping, Optional, Tuple

from potential_model.core.cashflow import CashflowAssumptions
from potential_model.core.incentives import CapexBreakdown, validate_incentive_parameters
from potential_model.core.rate_schedule import FlatRateSchedule, RateSchedule
from potential_model.core.sizing import SizingDefaults
from potential_model.core.metrics import DEFAULT_HORIZONS
from potential_model.exceptions import ConfigurationError


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Rate, incentive, sizing and financial assumptions of one analysis run.

    Tariff:
        energy_rate_per_kwh, demand_rate_per_kw_month: flat tariff, used when
            no rate_schedule is given.
        rate_schedule: Optional pluggable RateSchedule.
        surplus_rate_per_kwh: Compensation for exported PV energy.

    Incentives:
        hq_solar_rate_per_kw, hq_solar_cap_percent, hq_solar_max_eligible_kw
        hq_battery_rate_per_kwh, hq_battery_cap_percent, hq_battery_requires_solar
        federal_itc_percent
        tax_rate, tax_shield_fraction: tax shield on the depreciable basis.

    CAPEX:
        solar_cost_per_w (None -> size-tiered price), battery_cost_per_kwh,
        battery_cost_per_kw.

    Financial:
        discount_rate, analysis_horizon_years, inflation_rate, degradation_rate,
        om_solar_percent, om_battery_percent, om_escalation, surplus_start_year,
        battery_replacement_years, battery_replacement_cost_factor,
        battery_price_decline_rate, reporting_horizons.

    Sizing:
        specific_yield_kwh_per_kwp, discharge_hours, shaving_fraction,
        target_reduction, max_pv_kw, building_type.

    Environment:
        co2_factor_kg_per_kwh: Grid emission factor for CO2 avoided.
    """

    # Tariff
    energy_rate_per_kwh: float = 0.073
    demand_rate_per_kw_month: float = 15.5
    rate_schedule: Optional[RateSchedule] = field(default=None, compare=False)
    surplus_rate_per_kwh: float = 0.0

    # Incentives
    hq_solar_rate_per_kw: float = 1000.0
    hq_solar_cap_percent: float = 0.40
    hq_solar_max_eligible_kw: float = 1000.0
    hq_battery_rate_per_kwh: float = 300.0
    hq_battery_cap_percent: float = 0.40
    hq_battery_requires_solar: bool = True
    federal_itc_percent: float = 0.30
    tax_rate: float = 0.0
    tax_shield_fraction: float = 0.90

    # CAPEX
    solar_cost_per_w: Optional[float] = None
    battery_cost_per_kwh: float = 550.0
    battery_cost_per_kw: float = 800.0

    # Financial
    discount_rate: float = 0.07
    analysis_horizon_years: int = 25
    inflation_rate: float = 0.0
    degradation_rate: float = 0.0
    om_solar_percent: float = 0.0
    om_battery_percent: float = 0.0
    om_escalation: float = 0.0
    surplus_start_year: int = 1
    battery_replacement_years: Tuple[int, ...] = ()
    battery_replacement_cost_factor: float = 0.60
    battery_price_decline_rate: float = 0.0
    reporting_horizons: Tuple[int, ...] = DEFAULT_HORIZONS

    # Sizing
    specific_yield_kwh_per_kwp: float = 1200.0
    discharge_hours: float = 2.0
    shaving_fraction: float = 0.30
    target_reduction: float = 0.15
    max_pv_kw: Optional[float] = None
    building_type: Optional[str] = None

    # Environment
    co2_factor_kg_per_kwh: float = 0.002

    def __post_init__(self) -> None:
        # Tuples keep the config hashable and immutable
        object.__setattr__(self, "battery_replacement_years", tuple(int(y) for y in self.battery_replacement_years))
        object.__setattr__(self, "reporting_horizons", tuple(int(y) for y in self.reporting_horizons))

        if self.energy_rate_per_kwh < 0 or self.demand_rate_per_kw_month < 0:
            raise ConfigurationError(
                f"Tariff rates must be >= 0, got energy={self.energy_rate_per_kwh}, "
                f"demand={self.demand_rate_per_kw_month}"
            )
        if self.surplus_rate_per_kwh < 0:
            raise ConfigurationError(f"surplus_rate_per_kwh must be >= 0, got {self.surplus_rate_per_kwh}")
        if self.discount_rate <= -1.0:
            raise ConfigurationError(f"discount_rate must be > -1, got {self.discount_rate}")
        if int(self.analysis_horizon_years) != self.analysis_horizon_years or self.analysis_horizon_years < 1:
            raise ConfigurationError(
                f"analysis_horizon_years must be an integer >= 1, got {self.analysis_horizon_years}"
            )
        if self.solar_cost_per_w is not None and self.solar_cost_per_w < 0:
            raise ConfigurationError(f"solar_cost_per_w must be >= 0, got {self.solar_cost_per_w}")
        if self.battery_cost_per_kwh < 0 or self.battery_cost_per_kw < 0:
            raise ConfigurationError("Battery costs must be >= 0")
        for name in ("om_solar_percent", "om_battery_percent", "battery_replacement_cost_factor"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {value}")
        if self.co2_factor_kg_per_kwh < 0:
            raise ConfigurationError(f"co2_factor_kg_per_kwh must be >= 0, got {self.co2_factor_kg_per_kwh}")

        validate_incentive_parameters(self)
        # Raises ConfigurationError on invalid sizing / cash-flow parameters
        self.sizing_defaults()
        CashflowAssumptions(
            horizon_years=int(self.analysis_horizon_years),
            inflation_rate=self.inflation_rate,
            degradation_rate=self.degradation_rate,
        )

    # ------------------------------------------------------------------
    # Derived objects
    # ------------------------------------------------------------------

    def schedule(self) -> RateSchedule:
        """The configured rate schedule, or the flat tariff."""
        if self.rate_schedule is not None:
            return self.rate_schedule
        return FlatRateSchedule(self.energy_rate_per_kwh, self.demand_rate_per_kw_month)

    def sizing_defaults(self) -> SizingDefaults:
        return SizingDefaults(
            specific_yield_kwh_per_kwp=self.specific_yield_kwh_per_kwp,
            discharge_hours=self.discharge_hours,
            shaving_fraction=self.shaving_fraction,
            target_reduction=self.target_reduction,
            max_pv_kw=self.max_pv_kw,
        )

    def cashflow_assumptions(
        self,
        capex: Optional[CapexBreakdown] = None,
        annual_surplus_revenue: float = 0.0,
    ) -> CashflowAssumptions:
        """
        Cash-flow projection parameters for a priced candidate.

        O&M and battery replacement are proportional to the candidate's CAPEX.
        """
        capex_solar = capex.capex_solar if capex else 0.0
        capex_battery = capex.capex_battery if capex else 0.0
        return CashflowAssumptions(
            horizon_years=int(self.analysis_horizon_years),
            inflation_rate=self.inflation_rate,
            degradation_rate=self.degradation_rate,
            opex_year1=capex_solar * self.om_solar_percent + capex_battery * self.om_battery_percent,
            om_escalation=self.om_escalation,
            annual_surplus_revenue=annual_surplus_revenue,
            surplus_start_year=self.surplus_start_year,
            battery_replacement_cost=capex_battery * self.battery_replacement_cost_factor,
            battery_replacement_years=self.battery_replacement_years,
            battery_price_decline_rate=self.battery_price_decline_rate,
        )

    def with_overrides(self, **changes: Any) -> "AnalysisConfig":
        """Return a copy with some fields replaced (re-validated)."""
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        """
        Build a config from a mapping with snake_case or camelCase keys.

        Raises:
            ConfigurationError: On unknown keys.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        unknown = []
        for key, value in data.items():
            name = _CAMEL_ALIASES.get(key) or _to_snake(key)
            if name not in known:
                unknown.append(key)
                continue
            if value is None and name not in _NULLABLE:
                continue
            kwargs[name] = value
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**kwargs)

    @classmethod
    def quebec_commercial(cls, **overrides: Any) -> "AnalysisConfig":
        """
        Assumptions of a Quebec commercial (rate M) site.

        Includes the O&M, escalation, degradation, surplus compensation and
        battery replacement lines that the plain defaults leave at zero.
        """
        preset = dict(
            energy_rate_per_kwh=0.06061,
            demand_rate_per_kw_month=17.573,
            surplus_rate_per_kwh=0.0454,
            surplus_start_year=3,
            tax_rate=0.265,
            discount_rate=0.08,
            inflation_rate=0.048,
            degradation_rate=0.005,
            om_solar_percent=0.01,
            om_battery_percent=0.005,
            om_escalation=0.025,
            battery_replacement_years=(10, 20),
            battery_replacement_cost_factor=0.60,
            battery_price_decline_rate=0.05,
            specific_yield_kwh_per_kwp=1150.0,
        )
        preset.update(overrides)
        return cls(**preset)


_NULLABLE = {"rate_schedule", "solar_cost_per_w", "max_pv_kw", "building_type"}

# camelCase keys whose acronyms do not convert mechanically
_CAMEL_ALIASES = {
    "energyRatePerKWh": "energy_rate_per_kwh",
    "demandRatePerKWMonth": "demand_rate_per_kw_month",
    "hqSolarRatePerKW": "hq_solar_rate_per_kw",
    "hqSolarCapPercent": "hq_solar_cap_percent",
    "hqSolarMaxEligibleKW": "hq_solar_max_eligible_kw",
    "hqBatteryRatePerKWh": "hq_battery_rate_per_kwh",
    "hqBatteryCapPercent": "hq_battery_cap_percent",
    "federalITCPercent": "federal_itc_percent",
    "surplusRatePerKWh": "surplus_rate_per_kwh",
    "solarCostPerW": "solar_cost_per_w",
    "batteryCostPerKWh": "battery_cost_per_kwh",
    "batteryCostPerKW": "battery_cost_per_kw",
    "specificYieldKWhPerKWp": "specific_yield_kwh_per_kwp",
    "maxPvKW": "max_pv_kw",
    "maxPVKW": "max_pv_kw",
    "co2FactorKgPerKWh": "co2_factor_kg_per_kwh",
}


def _to_snake(key: str) -> str:
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
    return key.lower()
