"""
Export and import of the full estimator state.

The persisted layout is a JSON-compatible record:

    {
        "theta": [4 floats],
        "P": [[4 floats] x 4],
        "sampleCount": int,
        "lastMeasurement": {...} | null,
        "basePInt": float,
        "enableDynamicPInt": bool,
        "enableSeasonalG": bool
    }

Imports are validated before anything is committed. Older records that only
carry theta, P, sampleCount and lastMeasurement are accepted, with the missing
fields taken from the caller's defaults.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np

from .measurement import Measurement, SolarSource
from .thermal_constants import PhysicsConstants


class StateValidationError(ValueError):
    """Raised when a persisted state cannot be decoded or fails validation."""


@dataclass
class EstimatorState:
    """The complete mutable state of the learner."""
    theta: np.ndarray
    P: np.ndarray
    sample_count: int
    last_measurement: Optional[Measurement]
    base_p_int: float
    enable_dynamic_p_int: bool
    enable_seasonal_g: bool

    def copy(self) -> "EstimatorState":
        return EstimatorState(
            theta=np.array(self.theta, dtype=float),
            P=np.array(self.P, dtype=float),
            sample_count=self.sample_count,
            last_measurement=self.last_measurement,
            base_p_int=self.base_p_int,
            enable_dynamic_p_int=self.enable_dynamic_p_int,
            enable_seasonal_g=self.enable_seasonal_g,
        )


# --- Measurement records ---

def encode_measurement(measurement: Measurement) -> Dict[str, Any]:
    source = measurement.solar_source
    return {
        "timestamp": measurement.timestamp.isoformat(),
        "tIndoor": float(measurement.t_indoor),
        "tOutdoor": float(measurement.t_outdoor),
        "pHeating": float(measurement.p_heating),
        "solarRadiation": (
            None if measurement.solar_radiation is None
            else float(measurement.solar_radiation)
        ),
        "solarSource": None if source is None else SolarSource(source).value,
    }


def _decode_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    raise StateValidationError(f"Unsupported timestamp {value!r}")


def decode_measurement(data: Mapping[str, Any]) -> Measurement:
    try:
        solar = data.get("solarRadiation")
        source = data.get("solarSource")
        return Measurement(
            timestamp=_decode_timestamp(data["timestamp"]),
            t_indoor=float(data["tIndoor"]),
            t_outdoor=float(data["tOutdoor"]),
            p_heating=float(data["pHeating"]),
            solar_radiation=None if solar is None else float(solar),
            solar_source=None if source is None else SolarSource(source),
        )
    except StateValidationError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StateValidationError(f"Invalid lastMeasurement record: {e}") from e


# --- Estimator state ---

def encode_state(state: EstimatorState) -> Dict[str, Any]:
    """Serialize the state verbatim into plain Python types."""
    return {
        "theta": [float(v) for v in np.asarray(state.theta, dtype=float)],
        "P": np.asarray(state.P, dtype=float).tolist(),
        "sampleCount": int(state.sample_count),
        "lastMeasurement": (
            None if state.last_measurement is None
            else encode_measurement(state.last_measurement)
        ),
        "basePInt": float(state.base_p_int),
        "enableDynamicPInt": bool(state.enable_dynamic_p_int),
        "enableSeasonalG": bool(state.enable_seasonal_g),
    }


def _decode_sample_count(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise StateValidationError(f"Invalid sampleCount {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise StateValidationError(f"Invalid sampleCount {value!r}") from e
    if not math.isfinite(number) or number < 0 or number != int(number):
        raise StateValidationError(f"Invalid sampleCount {value!r}")
    return int(number)


def decode_state(
    data: Union[EstimatorState, Mapping[str, Any]],
    base_p_int: float,
    enable_dynamic_p_int: bool,
    enable_seasonal_g: bool,
) -> EstimatorState:
    """
    Build an EstimatorState from a persisted record.

    Args:
        data: An EstimatorState or a mapping in the persisted layout
        base_p_int, enable_dynamic_p_int, enable_seasonal_g: Defaults for
            fields missing from older records

    Raises:
        StateValidationError: If the record is structurally unusable
    """
    if isinstance(data, EstimatorState):
        data = encode_state(data)
    if not isinstance(data, Mapping):
        raise StateValidationError(f"State must be a mapping, got {type(data).__name__}")

    try:
        theta = np.array(data["theta"], dtype=float)
        P = np.array(data["P"], dtype=float)
    except KeyError as e:
        raise StateValidationError(f"Missing state field {e}") from e
    except (TypeError, ValueError) as e:
        raise StateValidationError(f"Non-numeric theta or P: {e}") from e

    raw_measurement = data.get("lastMeasurement")
    last_measurement = None
    if raw_measurement is not None:
        if isinstance(raw_measurement, Measurement):
            last_measurement = raw_measurement
        elif isinstance(raw_measurement, Mapping):
            last_measurement = decode_measurement(raw_measurement)
        else:
            raise StateValidationError(
                f"Invalid lastMeasurement {type(raw_measurement).__name__}"
            )

    try:
        restored_p_int = float(data.get("basePInt", base_p_int))
    except (TypeError, ValueError) as e:
        raise StateValidationError(f"Invalid basePInt: {e}") from e

    return EstimatorState(
        theta=theta,
        P=P,
        sample_count=_decode_sample_count(data.get("sampleCount")),
        last_measurement=last_measurement,
        base_p_int=restored_p_int,
        enable_dynamic_p_int=bool(data.get("enableDynamicPInt", enable_dynamic_p_int)),
        enable_seasonal_g=bool(data.get("enableSeasonalG", enable_seasonal_g)),
    )


def validate_state(state: EstimatorState) -> Optional[str]:
    """
    Physical and structural checks applied before a state is adopted.

    theta must have four finite entries with theta[0] > 0, theta[1] > 0 and
    theta[1] < theta[0]. P must be a finite 4x4 matrix whose trace lies in
    [0, 400].

    Returns:
        None if the state is valid, otherwise the reason for rejection
    """
    theta = np.asarray(state.theta, dtype=float)
    if theta.shape != (4,):
        return f"theta must have length 4, got shape {theta.shape}"
    if not np.all(np.isfinite(theta)):
        return "theta contains non-finite values"
    if theta[0] <= 0:
        return f"θ[0]={theta[0]:.6f} must be positive"
    if theta[1] <= 0:
        return f"θ[1]={theta[1]:.6f} must be positive"
    if theta[1] >= theta[0]:
        return f"θ[1]={theta[1]:.6f} must be smaller than θ[0]={theta[0]:.6f}"

    P = np.asarray(state.P, dtype=float)
    if P.shape != (4, 4):
        return f"P must be 4x4, got shape {P.shape}"
    if not np.all(np.isfinite(P)):
        return "P contains non-finite values"
    trace = float(np.trace(P))
    if not 0.0 <= trace <= PhysicsConstants.MAX_RESTORED_TRACE:
        return f"trace(P)={trace:.2f} outside [0, {PhysicsConstants.MAX_RESTORED_TRACE}]"

    if not math.isfinite(state.base_p_int):
        return "basePInt is not finite"
    return None
