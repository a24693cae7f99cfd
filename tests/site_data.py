"""
Reading generators shared by the test modules.

The reference site consumes 1,200,000 kWh over a full year of hourly readings
with a single 300 kW demand peak.
"""

from datetime import datetime, timedelta

from potential_model.core.readings import Granularity, MeterReading

YEAR_START = datetime(2025, 1, 1)
ANNUAL_KWH = 1_200_000.0
PEAK_KW = 300.0


def hourly_readings(hourly_kwh, start=YEAR_START, peaks=None):
    """
    Build hourly readings from a sequence of kWh values.

    Args:
        hourly_kwh: kWh per hour.
        start: Timestamp of the first reading.
        peaks: Optional {index: kW} demand overrides; other readings carry kWh only.
    """
    peaks = peaks or {}
    return [
        MeterReading(
            timestamp=start + timedelta(hours=i),
            granularity=Granularity.HOUR,
            kwh=kwh,
            kw=peaks.get(i),
        )
        for i, kwh in enumerate(hourly_kwh)
    ]


def reference_year_readings():
    """8760 hourly readings summing to 1.2 GWh with a 300 kW peak on a July afternoon."""
    kwh = [ANNUAL_KWH / 8760] * 8760
    peak_index = (31 + 28 + 31 + 30 + 31 + 30 + 14) * 24 + 14
    return hourly_readings(kwh, peaks={peak_index: PEAK_KW})


def office_year_readings():
    """A full year with a daytime office shape (higher load 8:00-18:00 on weekdays)."""
    values = []
    peaks = {}
    for i in range(8760):
        ts = YEAR_START + timedelta(hours=i)
        working = ts.weekday() < 5 and 8 <= ts.hour < 18
        summer = 1.2 if ts.month in (6, 7, 8) else 1.0
        kwh = (220.0 if working else 80.0) * summer
        values.append(kwh)
        peaks[i] = kwh * 1.1
    return hourly_readings(values, peaks=peaks)

