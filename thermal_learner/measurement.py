"""
Measurement records and plausibility validation.

A `Measurement` is produced by the external sampler roughly every five
minutes. The validator rejects physically implausible samples before they can
reach the estimator. Rejection is reported as a value, never raised.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from .thermal_constants import PhysicsConstants


class SolarSource(str, Enum):
    """Origin of a solar radiation reading."""
    PANELS = "panels"
    MET_SERVICE = "met-service"
    OPEN_METEO = "open-meteo"
    ESTIMATED = "estimated"


class RejectionReason(str, Enum):
    INVALID_TIMESTAMP = "invalid_timestamp"
    MISSING_VALUE = "missing_value"
    NON_POSITIVE_TIME_DELTA = "non_positive_time_delta"
    RATE_OF_CHANGE = "rate_of_change"
    HEATING_POWER_OUT_OF_RANGE = "heating_power_out_of_range"
    INDOOR_TEMP_OUT_OF_RANGE = "indoor_temp_out_of_range"
    OUTDOOR_TEMP_OUT_OF_RANGE = "outdoor_temp_out_of_range"
    SOLAR_OUT_OF_RANGE = "solar_out_of_range"
    INVALID_SOLAR_SOURCE = "invalid_solar_source"


@dataclass(frozen=True)
class Measurement:
    """A single sensor sample."""
    timestamp: datetime
    t_indoor: float  # °C
    t_outdoor: float  # °C
    p_heating: float  # kW thermal
    solar_radiation: Optional[float] = None  # W/m²
    solar_source: Optional[SolarSource] = None


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    detail: str


def _as_float(value: Any) -> Optional[float]:
    """Return a finite float or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _in_range(value: float, bounds: Tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def local_time(timestamp: datetime) -> datetime:
    """Wall-clock time at the building. Naive timestamps are already local."""
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone()


def _aligned(timestamp: datetime, other: datetime) -> datetime:
    # A naive timestamp is local time; give it the local offset when the
    # other side carries one.
    if timestamp.tzinfo is None and other.tzinfo is not None:
        return timestamp.astimezone()
    return timestamp


class MeasurementValidator:
    """
    Rejects samples that cannot come from a real building.

    Checks the time delta and indoor rate of change against the previous
    accepted sample, then the absolute range of every reading.
    """

    def __init__(
        self,
        max_rate_of_change: float = PhysicsConstants.MAX_RATE_OF_CHANGE,
        heating_power_range: Tuple[float, float] = PhysicsConstants.HEATING_POWER_RANGE,
        indoor_range: Tuple[float, float] = PhysicsConstants.INDOOR_TEMP_RANGE,
        outdoor_range: Tuple[float, float] = PhysicsConstants.OUTDOOR_TEMP_RANGE,
        solar_range: Tuple[float, float] = PhysicsConstants.SOLAR_RADIATION_RANGE,
    ):
        self.max_rate_of_change = max_rate_of_change
        self.heating_power_range = heating_power_range
        self.indoor_range = indoor_range
        self.outdoor_range = outdoor_range
        self.solar_range = solar_range

    @staticmethod
    def rate_of_change(
        measurement: Measurement, previous: Measurement
    ) -> Tuple[float, float]:
        """
        Time delta in hours and indoor temperature slope in °C/h.

        Naive and aware timestamps can be mixed, naive ones are read as
        local time. The slope is NaN when the time delta is not positive.
        """
        current = _aligned(measurement.timestamp, previous.timestamp)
        last = _aligned(previous.timestamp, measurement.timestamp)
        dt_hours = (current - last).total_seconds() / 3600.0
        if dt_hours <= 0:
            return dt_hours, float("nan")
        delta = float(measurement.t_indoor) - float(previous.t_indoor)
        return dt_hours, delta / dt_hours

    def validate(
        self,
        measurement: Measurement,
        previous: Optional[Measurement] = None,
    ) -> Optional[Rejection]:
        """
        Validate a measurement against the previous accepted one.

        Args:
            measurement: The incoming sample
            previous: The last accepted sample, or None for a baseline

        Returns:
            None if the sample is acceptable, otherwise a Rejection
        """
        rejection = self._check_structure(measurement)
        if rejection is not None:
            return rejection

        if previous is not None:
            try:
                dt_hours, slope = self.rate_of_change(measurement, previous)
            except (TypeError, ValueError, AttributeError, OverflowError, OSError) as e:
                return Rejection(
                    RejectionReason.INVALID_TIMESTAMP,
                    f"cannot compare timestamps: {e}",
                )
            if dt_hours <= 0:
                return Rejection(
                    RejectionReason.NON_POSITIVE_TIME_DELTA,
                    f"dt={dt_hours:.4f}h",
                )
            if not abs(slope) <= self.max_rate_of_change:
                return Rejection(
                    RejectionReason.RATE_OF_CHANGE,
                    f"dT/dt={slope:.2f}°C/h exceeds ±{self.max_rate_of_change}°C/h",
                )

        return self._check_ranges(measurement)

    def _check_structure(self, measurement: Measurement) -> Optional[Rejection]:
        if not isinstance(getattr(measurement, "timestamp", None), datetime):
            return Rejection(
                RejectionReason.INVALID_TIMESTAMP,
                f"timestamp is not a datetime: {getattr(measurement, 'timestamp', None)!r}",
            )
        for field_name in ("t_indoor", "t_outdoor", "p_heating"):
            if _as_float(getattr(measurement, field_name, None)) is None:
                return Rejection(
                    RejectionReason.MISSING_VALUE,
                    f"{field_name} is missing or not a finite number",
                )
        source = getattr(measurement, "solar_source", None)
        if source is not None:
            try:
                SolarSource(source)
            except ValueError:
                return Rejection(
                    RejectionReason.INVALID_SOLAR_SOURCE,
                    f"unknown solar source {source!r}",
                )
        return None

    def _check_ranges(self, measurement: Measurement) -> Optional[Rejection]:
        p_heating = float(measurement.p_heating)
        if not _in_range(p_heating, self.heating_power_range):
            return Rejection(
                RejectionReason.HEATING_POWER_OUT_OF_RANGE,
                f"pHeating={p_heating:.2f}kW outside {self.heating_power_range}",
            )
        t_indoor = float(measurement.t_indoor)
        if not _in_range(t_indoor, self.indoor_range):
            return Rejection(
                RejectionReason.INDOOR_TEMP_OUT_OF_RANGE,
                f"tIndoor={t_indoor:.1f}°C outside {self.indoor_range}",
            )
        t_outdoor = float(measurement.t_outdoor)
        if not _in_range(t_outdoor, self.outdoor_range):
            return Rejection(
                RejectionReason.OUTDOOR_TEMP_OUT_OF_RANGE,
                f"tOutdoor={t_outdoor:.1f}°C outside {self.outdoor_range}",
            )
        if measurement.solar_radiation is not None:
            solar = _as_float(measurement.solar_radiation)
            if solar is None or not _in_range(solar, self.solar_range):
                return Rejection(
                    RejectionReason.SOLAR_OUT_OF_RANGE,
                    f"solarRadiation={measurement.solar_radiation!r}W/m² "
                    f"outside {self.solar_range}",
                )
        logging.debug(
            "Measurement accepted: indoor=%.2f°C, outdoor=%.2f°C, heating=%.2fkW",
            t_indoor, t_outdoor, p_heating,
        )
        return None
