"""
Meter readings consumed by the profile builder.

Readings are produced by the (external) ingestion layer and are never
modified by the engine. A reading carries energy [kWh] over its interval,
demand [kW], or both.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from potential_model.exceptions import InsufficientDataError


class Granularity(Enum):
    """Interval length of a meter reading."""

    HOUR = "HOUR"
    FIFTEEN_MIN = "FIFTEEN_MIN"

    @property
    def hours(self) -> float:
        """Interval duration [h]."""
        return 1.0 if self is Granularity.HOUR else 0.25

    @property
    def duration(self) -> timedelta:
        return timedelta(hours=self.hours)

    @classmethod
    def parse(cls, value) -> "Granularity":
        """Accept an enum member or its name ('HOUR', 'FIFTEEN_MIN', '15min', 'hourly')."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        aliases = {
            "HOUR": cls.HOUR,
            "HOURLY": cls.HOUR,
            "1H": cls.HOUR,
            "FIFTEEN_MIN": cls.FIFTEEN_MIN,
            "15MIN": cls.FIFTEEN_MIN,
            "15_MIN": cls.FIFTEEN_MIN,
        }
        if key not in aliases:
            raise InsufficientDataError(f"Unknown reading granularity: {value!r}")
        return aliases[key]


@dataclass(frozen=True)
class MeterReading:
    """
    One interval reading.

    Attributes:
        timestamp: Start of the interval.
        granularity: Interval length (HOUR or FIFTEEN_MIN).
        kwh: Energy consumed during the interval [kWh]. For FIFTEEN_MIN this
            is quarter-hour energy.
        kw: Demand over the interval [kW].
    """

    timestamp: datetime
    granularity: Granularity = Granularity.HOUR
    kwh: Optional[float] = None
    kw: Optional[float] = None

    @property
    def interval_hours(self) -> float:
        return self.granularity.hours

    @property
    def end(self) -> datetime:
        return self.timestamp + self.granularity.duration

    def energy_kwh(self) -> float:
        """Interval energy, derived from demand when kWh is missing."""
        if self.kwh is not None:
            return float(self.kwh)
        return float(self.kw) * self.interval_hours

    def demand_kw(self) -> float:
        """Interval demand, derived from kWh / interval_hours when kW is missing."""
        if self.kw is not None:
            return float(self.kw)
        return float(self.kwh) / self.interval_hours

    def validate(self) -> None:
        """
        Raise InsufficientDataError if the reading cannot be used.

        A reading is malformed when it carries neither kWh nor kW, or when a
        value is NaN, infinite or negative.
        """
        if self.kwh is None and self.kw is None:
            raise InsufficientDataError(
                f"Reading at {self.timestamp.isoformat()} has neither kWh nor kW"
            )
        for label, value in (("kWh", self.kwh), ("kW", self.kw)):
            if value is None:
                continue
            if not math.isfinite(value):
                raise InsufficientDataError(
                    f"Reading at {self.timestamp.isoformat()} has non-finite {label}: {value}"
                )
            if value < 0:
                raise InsufficientDataError(
                    f"Reading at {self.timestamp.isoformat()} has negative {label}: {value}"
                )
