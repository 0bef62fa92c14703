"""
Confidence score for the learned building model.

Combines sample coverage (how much data has been seen relative to the
configured minimum) with covariance certainty (how small the uncertainty
matrix trace has become) into a 0..100 score.
"""
import math
from typing import Sequence

import numpy as np

from .thermal_constants import PhysicsConstants


def sample_coverage(sample_count: int, min_samples: int) -> float:
    """Coverage in [0, 1.15]; a small log bonus rewards data beyond the minimum."""
    base = min(sample_count / min_samples, 1.0)
    bonus = 0.0
    if sample_count > min_samples:
        bonus = PhysicsConstants.CONFIDENCE_BONUS_WEIGHT * math.log(
            sample_count / min_samples
        )
    return min(base + bonus, PhysicsConstants.MAX_SAMPLE_COVERAGE)


def covariance_confidence(P: Sequence[Sequence[float]]) -> float:
    trace = float(np.trace(np.asarray(P, dtype=float)))
    if not math.isfinite(trace):
        return 0.0
    return max(0.0, 1.0 - trace / PhysicsConstants.CONFIDENCE_TRACE_SCALE)


def calculate_confidence(
    sample_count: int,
    P: Sequence[Sequence[float]],
    min_samples: int,
) -> float:
    """Confidence percentage in [0, 100]."""
    confidence = (
        sample_coverage(sample_count, min_samples) * covariance_confidence(P) * 100.0
    )
    return float(min(max(confidence, 0.0), 100.0))


def confidence_level(confidence: float) -> str:
    """Traffic-light band: low below 40, medium below 70, high otherwise."""
    if confidence >= 70:
        return "high"
    if confidence >= 40:
        return "medium"
    return "low"
