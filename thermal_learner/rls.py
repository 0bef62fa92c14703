"""
Recursive Least Squares core with stability guards.

Update equations:
    K = P x / (lambda + x^T P x)          (Kalman gain)
    theta = theta + K (y - x^T theta)     (parameter update)
    P = (P - K x^T P) / lambda            (covariance update)

One accepted measurement runs the full guarded step:
  1. prediction error and variable forgetting factor
  2. Kalman gain and candidate parameter update
  3. divergence check against physical bounds (revert theta, keep P)
  4. per-component rate limiting
  5. covariance update with bounded diagonal

`RLSCore.step` is a pure function of its inputs. The caller commits the
returned theta and P together.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .thermal_constants import DivergenceBounds, PhysicsConstants, THETA_NAMES


def adaptive_forgetting_factor(
    abs_error: float,
    sample_count: int,
    configured_lambda: float,
) -> float:
    """
    Forgetting factor for one step.

    Small prediction errors keep lambda near 0.9999 (stable), large errors
    pull it towards 0.995 (fast tracking). A warmup floor that starts at
    0.999 and decays with the sample count is combined with the configured
    value, and the larger of the two candidates wins.
    """
    err_n = min(abs_error / PhysicsConstants.VFF_ERROR_SCALE, 1.0)
    if not math.isfinite(err_n):
        err_n = 1.0
    s = 1.0 / (1.0 + math.exp(
        -PhysicsConstants.VFF_SIGMOID_STEEPNESS
        * (err_n - PhysicsConstants.VFF_SIGMOID_CENTER)
    ))
    lambda_vff = PhysicsConstants.VFF_LAMBDA_STABLE - s * (
        PhysicsConstants.VFF_LAMBDA_STABLE - PhysicsConstants.VFF_LAMBDA_TRACKING
    )
    lambda_warmup = max(
        configured_lambda,
        PhysicsConstants.WARMUP_LAMBDA_START
        - sample_count / PhysicsConstants.WARMUP_SAMPLES,
    )
    return max(lambda_vff, lambda_warmup)


def check_divergence(theta: np.ndarray, bounds: DivergenceBounds) -> Optional[str]:
    """
    Validate a parameter vector against the physical envelope.

    Returns:
        None if theta is acceptable, otherwise a description of the first
        violated bound
    """
    for i, (low, high) in enumerate(bounds.component_bounds()):
        value = float(theta[i])
        if not low <= value <= high:
            return (
                f"θ[{i}] ({THETA_NAMES[i]})={value:.6f} "
                f"outside [{low:.6f}, {high:.6f}]"
            )
    ratio = float(theta[1]) / float(theta[0])
    ratio_low, ratio_high = bounds.ratio
    if not ratio_low < ratio < ratio_high:
        return (
            f"θ[1]/θ[0] (UA)={ratio:.6f} outside ({ratio_low}, {ratio_high})"
        )
    return None


def rate_limit(
    theta_new: np.ndarray,
    theta_old: np.ndarray,
    max_relative_step: float = PhysicsConstants.MAX_RELATIVE_PARAMETER_STEP,
) -> Tuple[np.ndarray, List[int]]:
    """
    Clamp each component's change to a fraction of its previous magnitude.

    Returns:
        The limited vector and the indices that were clamped
    """
    delta = theta_new - theta_old
    max_step = max_relative_step * np.abs(theta_old)
    clamped = np.abs(delta) > max_step
    limited = np.where(clamped, theta_old + np.sign(delta) * max_step, theta_new)
    return limited, [int(i) for i in np.flatnonzero(clamped)]


def bound_covariance(
    P: np.ndarray,
    floor: float = PhysicsConstants.COVARIANCE_FLOOR,
    ceiling: float = PhysicsConstants.COVARIANCE_CEILING,
) -> np.ndarray:
    """
    Clamp the diagonal of P into [floor, ceiling].

    Rows and columns are rescaled together (D P D) so the off-diagonal
    correlations follow their variances and P stays positive semi-definite.
    Clamping the diagonal alone can make x^T P x negative for the next
    regressor, after which every gain denominator is rejected.
    """
    diag = np.diag(P)
    target = np.clip(diag, floor, ceiling)
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = np.sqrt(target / diag)
    scale = np.where(np.isfinite(scale) & (diag > 0), scale, 1.0)
    bounded = P * np.outer(scale, scale)
    np.fill_diagonal(bounded, target)
    return bounded


@dataclass
class RLSStepResult:
    theta: np.ndarray
    P: np.ndarray
    forgetting_factor: float
    prediction_error: float
    reverted: bool = False
    reason: Optional[str] = None
    limited_components: List[int] = field(default_factory=list)


class RLSCore:
    """Guarded RLS update for the four-parameter building model."""

    def __init__(
        self,
        forgetting_factor: float,
        bounds: Optional[DivergenceBounds] = None,
        max_relative_step: float = PhysicsConstants.MAX_RELATIVE_PARAMETER_STEP,
        covariance_floor: float = PhysicsConstants.COVARIANCE_FLOOR,
        covariance_ceiling: float = PhysicsConstants.COVARIANCE_CEILING,
    ):
        self.forgetting_factor = forgetting_factor
        self.bounds = bounds or DivergenceBounds()
        self.max_relative_step = max_relative_step
        self.covariance_floor = covariance_floor
        self.covariance_ceiling = covariance_ceiling

    def step(
        self,
        theta: np.ndarray,
        P: np.ndarray,
        x: np.ndarray,
        y: float,
        sample_count: int,
    ) -> RLSStepResult:
        theta_old = np.array(theta, dtype=float)
        P_old = np.array(P, dtype=float)

        # Step 1: prediction error and forgetting factor
        prediction = float(x @ theta_old)
        error = y - prediction
        lam = adaptive_forgetting_factor(
            abs(error), sample_count, self.forgetting_factor
        )

        # Step 2: Kalman gain and candidate update
        Px = P_old @ x
        denominator = lam + float(x @ Px)
        if not math.isfinite(denominator) or denominator <= 0:
            return self._revert(
                theta_old, P_old, lam, error,
                f"non-positive gain denominator {denominator!r}",
            )
        K = Px / denominator
        theta_new = theta_old + K * error

        # Step 3: divergence check
        violation = check_divergence(theta_new, self.bounds)
        if violation is not None:
            return self._revert(theta_old, P_old, lam, error, violation)

        # Step 4: rate limiting
        theta_limited, limited = rate_limit(
            theta_new, theta_old, self.max_relative_step
        )
        if limited:
            # Per-component clamping can still move the UA ratio outside
            # its window.
            violation = check_divergence(theta_limited, self.bounds)
            if violation is not None:
                return self._revert(
                    theta_old, P_old, lam, error, f"after rate limiting: {violation}"
                )

        # Step 5: covariance update
        P_new = (P_old - np.outer(K, x) @ P_old) / lam
        P_new = bound_covariance(P_new, self.covariance_floor, self.covariance_ceiling)

        if logging.getLogger().isEnabledFor(logging.DEBUG):
            logging.debug(
                "RLS step: error=%+.4f°C/h, λ=%.5f, θ=%s, trace(P)=%.4f",
                error, lam, np.round(theta_limited, 6).tolist(), np.trace(P_new),
            )
        return RLSStepResult(
            theta=theta_limited,
            P=P_new,
            forgetting_factor=lam,
            prediction_error=error,
            limited_components=limited,
        )

    @staticmethod
    def _revert(
        theta_old: np.ndarray,
        P_old: np.ndarray,
        lam: float,
        error: float,
        reason: str,
    ) -> RLSStepResult:
        return RLSStepResult(
            theta=theta_old,
            P=P_old,
            forgetting_factor=lam,
            prediction_error=error,
            reverted=True,
            reason=reason,
        )
