"""
Interval Profile Builder: raw meter readings -> annual consumption profile.

PROFILE
-------
build_profile() reduces a site's readings to a ConsumptionProfile:
    - total energy over the data span and its annualized value
    - peak demand (instantaneous extremum, never annualized)
    - average kWh / kW per hour of day (24 values)
    - a "typical day" per month (12 x 24 matrices) used to lay out a
      typical year for the hourly energy balance

Readings may mix granularities. 15-minute kWh values are quarter-hour energy
and are summed into their clock-hour bucket, never divided again. Demand of a
clock-hour bucket is the maximum kW of its readings, derived from
kWh / interval_hours when a reading carries no kW.

ANNUALIZATION
-------------
    data_span_days       = (end of last interval - start of first interval) [days]
    annualization_factor = 365 / max(data_span_days, 1)
    annual_consumption   = total_energy * annualization_factor

With this definition a full year of 8760 hourly readings spans exactly 365
days, so its factor is 1.0 and its annual consumption equals sum(kWh).

MISSING MONTHS
--------------
Months with no readings are filled, hour by hour, with the mean of the nearest
previous and next months that have data (wrapping around the year). The filled
months are reported in ConsumptionProfile.interpolated_months.

TYPICAL YEAR
------------
typical_year() lays out 8760 hours on a non-leap reference calendar, using the
monthly typical day for every day of that month. Hourly consumption is scaled
so that it sums to annual_consumption_kwh; demand keeps the monthly peaks.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from potential_model.core.readings import MeterReading
from potential_model.exceptions import InsufficientDataError
from potential_model.settings import (
    DAYS_PER_YEAR,
    HOURS_PER_DAY,
    HOURS_PER_YEAR,
    MIN_DATA_SPAN_DAYS,
    MONTHS_PER_YEAR,
    REFERENCE_YEAR,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class ConsumptionProfile:
    """
    Annual energy / demand profile of one site.

    Invariant:
        annual_consumption_kwh == total_energy_kwh * 365 / max(data_span_days, 1)
    """

    annual_consumption_kwh: float
    peak_demand_kw: float
    data_span_days: float
    annualization_factor: float
    total_energy_kwh: float
    reading_count: int
    hourly_average_kwh_by_hour: Tuple[float, ...]
    hourly_average_kw_by_hour: Tuple[float, ...]
    monthly_hourly_kwh: Tuple[Tuple[float, ...], ...]
    monthly_hourly_peak_kw: Tuple[Tuple[float, ...], ...]
    interpolated_months: Tuple[int, ...] = ()

    @property
    def monthly_peak_kw(self) -> Tuple[float, ...]:
        """Highest demand per calendar month (index 0 = January)."""
        return tuple(max(row) if row else 0.0 for row in self.monthly_hourly_peak_kw)

    @property
    def load_factor(self) -> float:
        """Average demand / peak demand, 0 when peak is 0."""
        if self.peak_demand_kw <= 0:
            return 0.0
        return self.annual_consumption_kwh / (self.peak_demand_kw * HOURS_PER_YEAR)


@dataclass(frozen=True)
class TypicalYear:
    """
    8760-hour layout of a profile on the reference calendar.

    Attributes:
        month: Calendar month (1..12) of each hour.
        hour: Hour of day (0..23) of each hour.
        consumption_kwh: Energy consumed in each hour [kWh].
        demand_kw: Demand in each hour [kW].
    """

    month: np.ndarray
    hour: np.ndarray
    consumption_kwh: np.ndarray
    demand_kw: np.ndarray

    def __len__(self) -> int:
        return int(self.consumption_kwh.shape[0])

    @property
    def annual_consumption_kwh(self) -> float:
        return float(self.consumption_kwh.sum())


# ----------------------------------------------------------------------
# Profile builder
# ----------------------------------------------------------------------

def _bucket_readings(
    readings: Iterable[MeterReading],
) -> Tuple[Dict[datetime, List[float]], datetime, datetime, float, int]:
    """
    Group readings into clock-hour buckets.

    Returns:
        (buckets, first_start, last_end, total_kwh, count) where buckets maps
        the clock-hour start to [energy_kwh, demand_kw].
    """
    buckets: Dict[datetime, List[float]] = {}
    first_start = None
    last_end = None
    total_kwh = 0.0
    count = 0

    for reading in readings:
        reading.validate()
        energy = reading.energy_kwh()
        demand = reading.demand_kw()

        total_kwh += energy
        count += 1

        if first_start is None or reading.timestamp < first_start:
            first_start = reading.timestamp
        if last_end is None or reading.end > last_end:
            last_end = reading.end

        key = reading.timestamp.replace(minute=0, second=0, microsecond=0)
        bucket = buckets.get(key)
        if bucket is None:
            buckets[key] = [energy, demand]
        else:
            bucket[0] += energy
            bucket[1] = max(bucket[1], demand)

    return buckets, first_start, last_end, total_kwh, count


def _fill_missing_months(
    kwh: np.ndarray,
    peak: np.ndarray,
    has_data: np.ndarray,
) -> List[int]:
    """Fill months without data from the nearest neighbouring months. Modifies arrays in place."""
    filled = []
    if not has_data.any():
        return filled

    months_with_data = [m for m in range(MONTHS_PER_YEAR) if has_data[m]]
    for m in range(MONTHS_PER_YEAR):
        if has_data[m]:
            continue
        # nearest previous / next month with data, wrapping around the year
        prev_m = next(
            (months_with_data[i] for i in range(len(months_with_data) - 1, -1, -1)
             if months_with_data[i] < m),
            months_with_data[-1],
        )
        next_m = next((x for x in months_with_data if x > m), months_with_data[0])
        sources = [prev_m] if prev_m == next_m else [prev_m, next_m]
        kwh[m] = kwh[sources].mean(axis=0)
        peak[m] = peak[sources].mean(axis=0)
        filled.append(m + 1)
    return filled


def build_profile(readings: Sequence[MeterReading]) -> ConsumptionProfile:
    """
    Aggregate a site's readings into a ConsumptionProfile.

    Args:
        readings: Readings for one site, ordered ascending by timestamp.
            Granularities may be mixed.

    Returns:
        ConsumptionProfile

    Raises:
        InsufficientDataError: If there are no readings, or a reading is
            malformed (neither kWh nor kW, NaN, negative).
    """
    if readings is None or len(readings) == 0:
        raise InsufficientDataError("Cannot build a profile from zero readings")

    buckets, first_start, last_end, total_kwh, count = _bucket_readings(readings)

    data_span_days = (last_end - first_start).total_seconds() / SECONDS_PER_DAY
    annualization_factor = DAYS_PER_YEAR / max(data_span_days, MIN_DATA_SPAN_DAYS)
    annual_kwh = total_kwh * annualization_factor

    # Accumulate clock-hour buckets by hour of day and by (month, hour)
    hour_kwh_sum = np.zeros(HOURS_PER_DAY)
    hour_kw_sum = np.zeros(HOURS_PER_DAY)
    hour_count = np.zeros(HOURS_PER_DAY)
    month_kwh_sum = np.zeros((MONTHS_PER_YEAR, HOURS_PER_DAY))
    month_count = np.zeros((MONTHS_PER_YEAR, HOURS_PER_DAY))
    month_peak = np.zeros((MONTHS_PER_YEAR, HOURS_PER_DAY))
    peak_kw = 0.0

    for key, (energy, demand) in buckets.items():
        h = key.hour
        m = key.month - 1
        hour_kwh_sum[h] += energy
        hour_kw_sum[h] += demand
        hour_count[h] += 1
        month_kwh_sum[m, h] += energy
        month_count[m, h] += 1
        month_peak[m, h] = max(month_peak[m, h], demand)
        peak_kw = max(peak_kw, demand)

    with np.errstate(invalid="ignore", divide="ignore"):
        hourly_kwh = np.where(hour_count > 0, hour_kwh_sum / hour_count, 0.0)
        hourly_kw = np.where(hour_count > 0, hour_kw_sum / hour_count, 0.0)
        month_kwh = np.where(month_count > 0, month_kwh_sum / month_count, 0.0)

    interpolated = _fill_missing_months(month_kwh, month_peak, month_count.sum(axis=1) > 0)
    if interpolated:
        logger.info("Interpolated months without readings: %s", interpolated)

    logger.debug(
        "Profile built: %d readings, span %.2f days, factor %.4f, annual %.1f kWh, peak %.1f kW",
        count, data_span_days, annualization_factor, annual_kwh, peak_kw,
    )

    return ConsumptionProfile(
        annual_consumption_kwh=float(annual_kwh),
        peak_demand_kw=float(peak_kw),
        data_span_days=float(data_span_days),
        annualization_factor=float(annualization_factor),
        total_energy_kwh=float(total_kwh),
        reading_count=count,
        hourly_average_kwh_by_hour=tuple(float(x) for x in hourly_kwh),
        hourly_average_kw_by_hour=tuple(float(x) for x in hourly_kw),
        monthly_hourly_kwh=tuple(tuple(float(x) for x in row) for row in month_kwh),
        monthly_hourly_peak_kw=tuple(tuple(float(x) for x in row) for row in month_peak),
        interpolated_months=tuple(interpolated),
    )


# ----------------------------------------------------------------------
# Typical year
# ----------------------------------------------------------------------

def typical_year(profile: ConsumptionProfile) -> TypicalYear:
    """
    Lay out an 8760-hour year from the profile's monthly typical days.

    Hourly consumption is scaled so it sums to profile.annual_consumption_kwh.
    A profile with zero consumption yields an all-zero year.
    """
    kwh_matrix = np.asarray(profile.monthly_hourly_kwh, dtype=float)
    peak_matrix = np.asarray(profile.monthly_hourly_peak_kw, dtype=float)

    days = np.array(
        [calendar.monthrange(REFERENCE_YEAR, m)[1] for m in range(1, MONTHS_PER_YEAR + 1)]
    )
    month_index = np.repeat(np.arange(MONTHS_PER_YEAR), days * HOURS_PER_DAY)
    hour_index = np.tile(np.arange(HOURS_PER_DAY), int(days.sum()))

    consumption = kwh_matrix[month_index, hour_index]
    demand = peak_matrix[month_index, hour_index]

    raw_total = consumption.sum()
    if raw_total > 0:
        consumption = consumption * (profile.annual_consumption_kwh / raw_total)

    return TypicalYear(
        month=month_index + 1,
        hour=hour_index,
        consumption_kwh=consumption,
        demand_kw=demand,
    )
