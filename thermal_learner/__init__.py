"""
Adaptive building thermal model learner.

Learns thermal mass (C), heat loss coefficient (UA), solar gain (g) and
internal gains (P_int) online from low-rate sensor measurements using a
guarded recursive least squares estimator.
"""
from .building_model_learner import BuildingModelLearner, EstimatorConfig
from .measurement import Measurement, SolarSource
from .prediction import BuildingModel

__all__ = [
    "BuildingModelLearner",
    "EstimatorConfig",
    "Measurement",
    "SolarSource",
    "BuildingModel",
]
