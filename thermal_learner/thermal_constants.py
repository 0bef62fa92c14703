"""
Physical and numerical constants for the building model learner.

Measurement plausibility limits, the RLS tuning constants and the divergence
envelope live here so that every component reads them from one place.
"""
from dataclasses import dataclass
from typing import Tuple


class PhysicsConstants:
    """Fixed limits used by validation, the RLS core and confidence."""

    # --- Measurement plausibility ---
    MAX_RATE_OF_CHANGE = 10.0  # °C/h
    HEATING_POWER_RANGE = (0.0, 20.0)  # kW
    INDOOR_TEMP_RANGE = (5.0, 30.0)  # °C
    OUTDOOR_TEMP_RANGE = (-10.0, 50.0)  # °C
    SOLAR_RADIATION_RANGE = (0.0, 1200.0)  # W/m²

    # --- Variable forgetting factor ---
    VFF_LAMBDA_STABLE = 0.9999
    VFF_LAMBDA_TRACKING = 0.995
    VFF_ERROR_SCALE = 2.0  # °C/h error mapped to err_n = 1
    VFF_SIGMOID_STEEPNESS = 5.0
    VFF_SIGMOID_CENTER = 0.25
    WARMUP_LAMBDA_START = 0.999
    WARMUP_SAMPLES = 100000

    # --- Rate limiting ---
    MAX_RELATIVE_PARAMETER_STEP = 0.05

    # --- Covariance bounding ---
    COVARIANCE_FLOOR = 1e-4
    COVARIANCE_CEILING = 1.0

    # --- Confidence ---
    CONFIDENCE_TRACE_SCALE = 500.0
    CONFIDENCE_BONUS_WEIGHT = 0.05
    MAX_SAMPLE_COVERAGE = 1.15

    # --- Restore validation ---
    MAX_RESTORED_TRACE = 400.0

    # --- Diagnostics ---
    MILESTONE_INTERVAL = 100
    MIN_SAMPLES_FOR_LEARNED = 10


# Union of all building profile extremes.
THERMAL_MASS_ENVELOPE = (5.0, 40.0)  # kWh/°C
HEAT_LOSS_ENVELOPE = (0.05, 1.0)  # kW/°C
SOLAR_GAIN_ENVELOPE = (0.2, 0.8)
INTERNAL_GAINS_ENVELOPE = (0.1, 0.6)  # kW


@dataclass(frozen=True)
class DivergenceBounds:
    """
    Acceptance window for the transformed parameter vector.

    theta = [1/C, UA/C, g/C, P_int/C]. Each component is bounded by the
    envelope value divided by the largest (lower bound) or smallest (upper
    bound) thermal mass. The ratio theta[1]/theta[0] equals UA in kW/°C.
    """
    inverse_mass: Tuple[float, float] = (
        1.0 / THERMAL_MASS_ENVELOPE[1], 1.0 / THERMAL_MASS_ENVELOPE[0]
    )
    heat_loss_over_mass: Tuple[float, float] = (
        HEAT_LOSS_ENVELOPE[0] / THERMAL_MASS_ENVELOPE[1],
        HEAT_LOSS_ENVELOPE[1] / THERMAL_MASS_ENVELOPE[0],
    )
    solar_gain_over_mass: Tuple[float, float] = (
        SOLAR_GAIN_ENVELOPE[0] / THERMAL_MASS_ENVELOPE[1],
        SOLAR_GAIN_ENVELOPE[1] / THERMAL_MASS_ENVELOPE[0],
    )
    internal_gains_over_mass: Tuple[float, float] = (
        INTERNAL_GAINS_ENVELOPE[0] / THERMAL_MASS_ENVELOPE[1],
        INTERNAL_GAINS_ENVELOPE[1] / THERMAL_MASS_ENVELOPE[0],
    )
    # Exclusive bounds
    ratio: Tuple[float, float] = (0.002, 0.8)

    def component_bounds(self) -> Tuple[Tuple[float, float], ...]:
        return (
            self.inverse_mass,
            self.heat_loss_over_mass,
            self.solar_gain_over_mass,
            self.internal_gains_over_mass,
        )


THETA_NAMES = ("1/C", "UA/C", "g/C", "P_int/C")
