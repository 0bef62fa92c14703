"""
Physical view of the learned parameters and indoor temperature prediction.

Uses the first order exponential approach to equilibrium:
    T(t) = T_eq + (T_0 - T_eq) * exp(-t / tau)
with
    T_eq = T_out + (P_heating + g * Solar + P_int) / UA
"""
import math
from dataclasses import asdict, dataclass
from typing import Dict, Sequence


@dataclass(frozen=True)
class BuildingModel:
    """Physical building parameters derived from theta. Never stored."""
    C: float  # Thermal mass (kWh/°C)
    UA: float  # Heat loss coefficient (kW/°C)
    g: float  # Solar gain factor
    p_int: float  # Internal heat gains (kW)
    tau: float  # Time constant C/UA (hours)
    confidence: float  # 0-100

    @property
    def usable(self) -> bool:
        """False while tau or UA is not a finite positive number."""
        return (
            math.isfinite(self.tau) and self.tau > 0
            and math.isfinite(self.UA) and self.UA > 0
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def model_from_theta(theta: Sequence[float], confidence: float) -> BuildingModel:
    """Convert [1/C, UA/C, g/C, P_int/C] back into physical parameters."""
    C = _safe_div(1.0, theta[0])
    UA = float(theta[1]) * C
    g = float(theta[2]) * C
    p_int = float(theta[3]) * C
    tau = _safe_div(C, UA)
    return BuildingModel(C=C, UA=UA, g=g, p_int=p_int, tau=tau, confidence=confidence)


def _safe_div(numerator: float, denominator: float) -> float:
    denominator = float(denominator)
    if denominator == 0:
        return math.inf if numerator >= 0 else -math.inf
    return numerator / denominator


def predict_temperature(
    model: BuildingModel,
    current_indoor: float,
    future_outdoor: float,
    future_solar: float,
    heating_power: float,
    hours_ahead: float,
) -> float:
    """
    Project the indoor temperature `hours_ahead` hours forward.

    Args:
        model: Current building model
        current_indoor: Indoor temperature now (°C)
        future_outdoor: Expected outdoor temperature (°C)
        future_solar: Expected solar radiation (W/m²)
        heating_power: Thermal heating power held constant (kW)
        hours_ahead: Prediction horizon in hours

    Returns:
        Predicted indoor temperature (°C). Non-finite when the model is
        not usable yet, see BuildingModel.usable.
    """
    if hours_ahead == 0:
        return float(current_indoor)
    # W/m² to kW
    heat_balance = heating_power + model.g * (future_solar / 1000.0) + model.p_int
    equilibrium = future_outdoor + _safe_div(heat_balance, model.UA)
    approach = 1.0 - math.exp(-_safe_div(hours_ahead, model.tau))
    return current_indoor + (equilibrium - current_indoor) * approach
