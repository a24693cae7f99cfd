"""
Data loading utilities for the site analysis example.

Handles:
- Loading already-exported interval readings from a simple CSV file
- Generating a synthetic commercial load year for demos
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import List
import csv
import math
import random

from potential_model.core.readings import Granularity, MeterReading


def get_data_path() -> Path:
    """Directory holding the example CSV files."""
    return Path(__file__).parent.parent / 'data'


def load_readings(filepath: str) -> List[MeterReading]:
    """
    Load interval readings from a CSV file.

    Expected CSV format:
        timestamp,granularity,kwh,kw
        2025-01-01T00:00:00,HOUR,84.2,
        2025-01-01T01:00:00,HOUR,80.9,95.0
        ...

    Empty kwh / kw cells are read as missing values; the engine derives one
    from the other.

    Args:
        filepath: Path to the CSV file.

    Returns:
        List of MeterReading in file order.
    """
    readings = []

    with open(filepath, 'r', encoding='utf-8-sig') as f:  # utf-8-sig handles BOM
        reader = csv.DictReader(f)
        for row in reader:
            kwh = row.get('kwh', '').strip()
            kw = row.get('kw', '').strip()
            readings.append(
                MeterReading(
                    timestamp=datetime.fromisoformat(row['timestamp']),
                    granularity=Granularity.parse(row.get('granularity') or 'HOUR'),
                    kwh=float(kwh) if kwh else None,
                    kw=float(kw) if kw else None,
                )
            )

    return readings


def save_readings(readings: List[MeterReading], filepath: str) -> None:
    """Write readings in the format read by load_readings()."""
    with open(filepath, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['timestamp', 'granularity', 'kwh', 'kw'])
        for r in readings:
            writer.writerow([
                r.timestamp.isoformat(),
                r.granularity.value,
                '' if r.kwh is None else f"{r.kwh:.3f}",
                '' if r.kw is None else f"{r.kw:.3f}",
            ])


def generate_dummy_readings(
    days: int = 365,
    base_kw: float = 90.0,
    working_kw: float = 210.0,
    summer_boost: float = 0.20,
    start: datetime = datetime(2025, 1, 1),
    seed: int = 42,
) -> List[MeterReading]:
    """
    Generate a synthetic commercial load at hourly resolution.

    Creates a load with:
    - Weekday working hours (8:00-18:00) at working_kw
    - Nights and weekends at base_kw
    - A summer cooling boost
    - Random noise and occasional short demand spikes

    Args:
        days: Number of days to generate.
        base_kw: Off-hours load [kW].
        working_kw: Working-hours load [kW].
        summer_boost: Relative increase in June-August.
        start: First timestamp.
        seed: Random seed for reproducibility.

    Returns:
        List of hourly MeterReading
    """
    random.seed(seed)
    readings = []

    for i in range(days * 24):
        ts = start + timedelta(hours=i)
        working = ts.weekday() < 5 and 8 <= ts.hour < 18
        load = working_kw if working else base_kw

        # Seasonal cooling load
        season = 1.0 + summer_boost * max(math.cos((ts.month - 7) * 2 * math.pi / 12), 0.0)
        load *= season

        # Random noise
        load = max(load + random.gauss(0, load * 0.05), 0.0)

        # Occasional spikes (2% chance during working hours)
        peak = load
        if working and random.random() < 0.02:
            peak = load * 1.35

        readings.append(
            MeterReading(timestamp=ts, granularity=Granularity.HOUR, kwh=load, kw=peak)
        )

    return readings
