"""
Regressor construction for the RLS estimator.

Physical model:
    dT/dt = (1/C) * [P_heating - UA*(T_in - T_out) + g*Solar + P_int]

RLS form y = X^T * theta with
    X = [P_heating, (T_in - T_out), solar_adj, p_int_mult]
    theta = [1/C, UA/C, g/C, P_int/C]

The time-of-day internal gain shape enters as the fourth regressor so that
the estimator learns the base P_int while the daily profile is treated as
known.
"""
import logging
from dataclasses import dataclass

import numpy as np

from .building_profiles import (
    get_dynamic_p_int_multiplier,
    get_seasonal_g_multiplier,
)
from .measurement import Measurement, MeasurementValidator, SolarSource, local_time


@dataclass(frozen=True)
class RegressorSample:
    x: np.ndarray
    y: float  # dT/dt in °C/h
    dt_hours: float
    p_int_multiplier: float
    solar_multiplier: float


class InputVectorBuilder:
    """Turns a validated measurement pair into an RLS regressor sample."""

    def __init__(self, enable_dynamic_p_int: bool = True, enable_seasonal_g: bool = True):
        self.enable_dynamic_p_int = enable_dynamic_p_int
        self.enable_seasonal_g = enable_seasonal_g

    def p_int_multiplier(self, measurement: Measurement) -> float:
        if not self.enable_dynamic_p_int:
            return 1.0
        return get_dynamic_p_int_multiplier(local_time(measurement.timestamp).hour)

    def solar_multiplier(self, measurement: Measurement) -> float:
        """
        Seasonal correction for the solar reading.

        Measured or forecast sources already contain the seasonal effect, so
        only estimated or unlabelled readings are corrected.
        """
        if not self.enable_seasonal_g:
            return 1.0
        source = measurement.solar_source
        if source is not None and SolarSource(source) is not SolarSource.ESTIMATED:
            return 1.0
        return get_seasonal_g_multiplier(local_time(measurement.timestamp).month)

    def build(self, measurement: Measurement, previous: Measurement) -> RegressorSample:
        dt_hours, dt_dt = MeasurementValidator.rate_of_change(measurement, previous)

        solar = measurement.solar_radiation
        solar_multiplier = self.solar_multiplier(measurement)
        solar_adj = float(solar) * solar_multiplier if solar is not None else 0.0
        p_int_multiplier = self.p_int_multiplier(measurement)

        x = np.array(
            [
                float(measurement.p_heating),
                float(measurement.t_indoor) - float(measurement.t_outdoor),
                solar_adj,
                p_int_multiplier,
            ],
            dtype=float,
        )
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            logging.debug(
                "Regressor X=%s, y=%.3f°C/h (dt=%.1fmin, solar×%.2f, P_int×%.1f)",
                np.round(x, 3).tolist(), dt_dt, dt_hours * 60,
                solar_multiplier, p_int_multiplier,
            )
        return RegressorSample(
            x=x,
            y=dt_dt,
            dt_hours=dt_hours,
            p_int_multiplier=p_int_multiplier,
            solar_multiplier=solar_multiplier,
        )
