"""
Building Model Learner with guarded Recursive Least Squares.

This module defines the adaptive thermal model estimator. It learns the
thermal mass (C), heat loss coefficient (UA), solar gain factor (g) and
internal gains (P_int) of a building from a stream of measurements taken by
an external scheduler, nominally every five minutes.

Physical model:
    dT/dt = (1/C) * [P_heating - UA*(T_in - T_out) + g*Solar + P_int]

Each accepted measurement runs validation, regressor construction and one
guarded RLS step, then commits theta, P, the sample count and the last
measurement together. Nothing in the update path raises: rejected samples,
reverted updates and corrupt persisted state are reported through the
injected DiagnosticSink and the learner keeps going from its current (or a
freshly reset) state.

The learner has a single owner. `add_measurement` and `restore_state` are
the only mutating calls and must not run concurrently; the read side
(`get_model`, `predict_temperature`, `get_state`, `get_diagnostics`) only
sees fully committed state.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np

from . import config
from .building_profiles import (
    DEFAULT_PROFILE,
    BuildingProfile,
    get_dynamic_p_int_multiplier,
    get_profile,
)
from .confidence import calculate_confidence, confidence_level
from .diagnostics import (
    DiagnosticEvent,
    DiagnosticKind,
    DiagnosticSink,
    LoggingDiagnosticSink,
    OutcomeStatus,
    UpdateOutcome,
    emit,
)
from .input_vector import InputVectorBuilder
from .measurement import Measurement, MeasurementValidator
from .prediction import BuildingModel, model_from_theta, predict_temperature
from .rls import RLSCore
from .state_codec import (
    EstimatorState,
    StateValidationError,
    decode_state,
    validate_state,
)
from .thermal_constants import DivergenceBounds, PhysicsConstants, THETA_NAMES


@dataclass(frozen=True)
class EstimatorConfig:
    """Immutable learner configuration."""
    forgetting_factor: float = 0.998
    initial_covariance: float = 100.0
    min_samples_for_confidence: int = 288
    profile: str = DEFAULT_PROFILE
    enable_dynamic_p_int: bool = True
    enable_seasonal_g: bool = True
    divergence_bounds: DivergenceBounds = field(default_factory=DivergenceBounds)

    def __post_init__(self):
        if not 0.0 < self.forgetting_factor < 1.0:
            raise ValueError(
                f"forgetting_factor must be in (0, 1), got {self.forgetting_factor}"
            )
        if not self.initial_covariance > 0:
            raise ValueError(
                f"initial_covariance must be positive, got {self.initial_covariance}"
            )
        if not self.min_samples_for_confidence > 0:
            raise ValueError(
                "min_samples_for_confidence must be positive, "
                f"got {self.min_samples_for_confidence}"
            )
        get_profile(self.profile)

    @classmethod
    def from_env(cls, **overrides: Any) -> "EstimatorConfig":
        """Build a configuration from the environment backed config module."""
        settings = {
            "forgetting_factor": config.BUILDING_MODEL_FORGETTING_FACTOR,
            "initial_covariance": config.BUILDING_MODEL_INITIAL_COVARIANCE,
            "min_samples_for_confidence": config.BUILDING_MODEL_MIN_SAMPLES,
            "profile": config.BUILDING_PROFILE,
            "enable_dynamic_p_int": config.ENABLE_DYNAMIC_PINT,
            "enable_seasonal_g": config.ENABLE_SEASONAL_G,
        }
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**settings)


class BuildingModelLearner:
    """
    Online estimator for the building thermal model.

    theta = [1/C, UA/C, g/C, P_int/C] is seeded from the configured
    building profile and refined with every accepted measurement.
    """

    def __init__(
        self,
        estimator_config: Optional[EstimatorConfig] = None,
        diagnostic_sink: Optional[DiagnosticSink] = None,
    ):
        self.config = estimator_config or EstimatorConfig()
        self.profile: BuildingProfile = get_profile(self.config.profile)
        self._sink = diagnostic_sink if diagnostic_sink is not None else LoggingDiagnosticSink()
        self._validator = MeasurementValidator()
        self._rls = RLSCore(
            forgetting_factor=self.config.forgetting_factor,
            bounds=self.config.divergence_bounds,
        )
        self._state = self._default_state()

        logging.info(
            f"🏠 BuildingModelLearner initialized with '{self.profile.name}' profile: "
            f"C={self.profile.C:.1f} kWh/°C, UA={self.profile.UA:.2f} kW/°C, "
            f"τ={self.profile.tau:.1f}h, λ={self.config.forgetting_factor}"
        )

    def _default_state(self) -> EstimatorState:
        return EstimatorState(
            theta=np.array(self.profile.to_theta(), dtype=float),
            P=np.eye(4) * self.config.initial_covariance,
            sample_count=0,
            last_measurement=None,
            base_p_int=self.profile.p_int,
            enable_dynamic_p_int=self.config.enable_dynamic_p_int,
            enable_seasonal_g=self.config.enable_seasonal_g,
        )

    @property
    def sample_count(self) -> int:
        return self._state.sample_count

    # ------------------------------------------------------------------
    # Update path
    # ------------------------------------------------------------------

    def add_measurement(self, measurement: Measurement) -> UpdateOutcome:
        """
        Add a new measurement and update the model.

        Never raises. The returned outcome describes what happened and may be
        ignored; the same information is delivered to the diagnostic sink.
        """
        try:
            return self._process_measurement(measurement)
        except Exception as e:
            logging.error(
                f"BuildingModelLearner: unexpected error processing measurement: {e}",
                exc_info=True,
            )
            self._emit(
                DiagnosticKind.MEASUREMENT_REJECTED,
                f"Internal error, measurement skipped: {e}",
                reason="internal_error",
            )
            return UpdateOutcome(OutcomeStatus.REJECTED, reason="internal_error")

    def _process_measurement(self, measurement: Measurement) -> UpdateOutcome:
        state = self._state
        previous = state.last_measurement

        rejection = self._validator.validate(measurement, previous)
        if rejection is not None:
            self._emit(
                DiagnosticKind.MEASUREMENT_REJECTED,
                f"Measurement rejected ({rejection.reason.value}): {rejection.detail}",
                reason=rejection.reason.value,
            )
            return UpdateOutcome(OutcomeStatus.REJECTED, reason=rejection.reason.value)

        if previous is None:
            # Baseline: nothing to difference against yet.
            self._commit(
                state.theta, state.P, state.sample_count + 1, measurement, state
            )
            self._emit(
                DiagnosticKind.BASELINE_STORED,
                "First measurement stored as baseline",
            )
            return UpdateOutcome(OutcomeStatus.BASELINE)

        builder = InputVectorBuilder(
            enable_dynamic_p_int=state.enable_dynamic_p_int,
            enable_seasonal_g=state.enable_seasonal_g,
        )
        sample = builder.build(measurement, previous)
        result = self._rls.step(
            state.theta, state.P, sample.x, sample.y, state.sample_count
        )
        self._commit(
            result.theta, result.P, state.sample_count + 1, measurement, state
        )

        if result.reverted:
            self._emit(
                DiagnosticKind.DIVERGENCE_REVERTED,
                f"Parameter update reverted: {result.reason}",
                reason=result.reason,
                data={"prediction_error": result.prediction_error,
                      "forgetting_factor": result.forgetting_factor},
            )
            outcome = UpdateOutcome(OutcomeStatus.REVERTED, reason=result.reason)
        else:
            rate_limited = bool(result.limited_components)
            if rate_limited:
                names = ", ".join(THETA_NAMES[i] for i in result.limited_components)
                self._emit(
                    DiagnosticKind.RATE_LIMITED,
                    f"Parameter step clamped to "
                    f"{PhysicsConstants.MAX_RELATIVE_PARAMETER_STEP:.0%} for {names}",
                    data={"components": list(result.limited_components)},
                )
            outcome = UpdateOutcome(OutcomeStatus.APPLIED, rate_limited=rate_limited)

        if self._state.sample_count % PhysicsConstants.MILESTONE_INTERVAL == 0:
            model = self.get_model()
            self._emit(
                DiagnosticKind.MILESTONE,
                f"{self._state.sample_count} samples - C={model.C:.1f} kWh/°C, "
                f"UA={model.UA:.2f} kW/°C, τ={model.tau:.1f}h, "
                f"confidence={model.confidence:.0f}%",
                data=model.to_dict(),
            )
        return outcome

    def _commit(
        self,
        theta: np.ndarray,
        P: np.ndarray,
        sample_count: int,
        measurement: Measurement,
        previous_state: EstimatorState,
    ) -> None:
        # Single assignment so readers never observe a partial update.
        self._state = EstimatorState(
            theta=np.array(theta, dtype=float),
            P=np.array(P, dtype=float),
            sample_count=sample_count,
            last_measurement=measurement,
            base_p_int=previous_state.base_p_int,
            enable_dynamic_p_int=previous_state.enable_dynamic_p_int,
            enable_seasonal_g=previous_state.enable_seasonal_g,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_model(self) -> BuildingModel:
        """Current physical parameters, time constant and confidence."""
        state = self._state
        confidence = calculate_confidence(
            state.sample_count, state.P, self.config.min_samples_for_confidence
        )
        return model_from_theta(state.theta, confidence)

    def predict_temperature(
        self,
        current_indoor: float,
        future_outdoor: float,
        future_solar: float,
        heating_power: float,
        hours_ahead: float,
    ) -> float:
        """
        Predict indoor temperature `hours_ahead` hours from now.

        Solar is in W/m², heating power in kW. Callers must treat a
        non-finite result as "model not usable yet".
        """
        return predict_temperature(
            self.get_model(),
            current_indoor,
            future_outdoor,
            future_solar,
            heating_power,
            hours_ahead,
        )

    def get_current_internal_gains(self, hour: int) -> float:
        """Learned internal gains (kW) shaped by the time-of-day profile."""
        model = self.get_model()
        if not self._state.enable_dynamic_p_int:
            return model.p_int
        return model.p_int * get_dynamic_p_int_multiplier(hour)

    def get_state(self) -> EstimatorState:
        """Snapshot of the full state for an external store."""
        return self._state.copy()

    def get_diagnostics(self) -> Dict[str, Any]:
        """
        Structured troubleshooting report of the learning state.

        Includes learning status, confidence band, physical parameters,
        the raw RLS state and realism warnings.
        """
        state = self._state
        model = self.get_model()
        p_diag = np.diag(state.P)
        p_trace = float(np.sum(p_diag))

        is_default = (
            state.sample_count < PhysicsConstants.MIN_SAMPLES_FOR_LEARNED
            or np.allclose(state.theta, self.profile.to_theta())
        )

        warnings = []
        if not 0 < model.C <= 100:
            warnings.append(
                f"⚠️ Unrealistic thermal mass C={model.C:.1f} kWh/°C (expected 0-100)"
            )
        if not 0 < model.UA <= 2:
            warnings.append(
                f"⚠️ Unrealistic heat loss UA={model.UA:.3f} kW/°C (expected 0-2)"
            )
        if model.tau < 0:
            warnings.append(
                f"🚨 CRITICAL: Negative time constant τ={model.tau:.1f}h"
            )
        elif model.tau > 500:
            warnings.append(
                f"⚠️ Unrealistic time constant τ={model.tau:.1f}h (expected 0-500)"
            )
        if p_trace > PhysicsConstants.MAX_RESTORED_TRACE:
            warnings.append("⚠️ P matrix trace abnormally high")

        return {
            "status": "learning" if is_default else "converged",
            "profile": self.profile.name,
            "learning": {
                "samples_collected": state.sample_count,
                "min_samples_for_confidence": self.config.min_samples_for_confidence,
                "confidence": model.confidence,
                "confidence_level": confidence_level(model.confidence),
                "is_default": bool(is_default),
                "dynamic_p_int": state.enable_dynamic_p_int,
                "seasonal_g": state.enable_seasonal_g,
            },
            "parameters": {
                "C": model.C,
                "UA": model.UA,
                "g": model.g,
                "p_int": model.p_int,
                "tau": model.tau,
                "base_p_int": state.base_p_int,
            },
            "rls_state": {
                "theta": [float(v) for v in state.theta],
                "P_diag": [float(v) for v in p_diag],
                "P_trace": p_trace,
            },
            "validation": {
                "parameters_realistic": not warnings,
                "warnings": warnings,
            },
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def restore_state(self, state: Union[EstimatorState, Mapping[str, Any]]) -> None:
        """
        Adopt a persisted state after validating it.

        An invalid state is never partially adopted: the learner resets to
        the configured profile defaults and reports the rejection.
        """
        try:
            candidate = decode_state(
                state,
                base_p_int=self.profile.p_int,
                enable_dynamic_p_int=self.config.enable_dynamic_p_int,
                enable_seasonal_g=self.config.enable_seasonal_g,
            )
            reason = validate_state(candidate)
        except (StateValidationError, TypeError, ValueError) as e:
            candidate, reason = None, str(e)

        if reason is None:
            self._state = candidate
            self._emit(
                DiagnosticKind.STATE_RESTORED,
                f"Restored state with {candidate.sample_count} samples",
            )
            return

        self._state = self._default_state()
        self._emit(
            DiagnosticKind.STATE_REJECTED,
            f"Persisted state rejected, reset to '{self.profile.name}' defaults: {reason}",
            reason=reason,
        )

    def _emit(
        self,
        kind: DiagnosticKind,
        message: str,
        reason: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        emit(
            self._sink,
            DiagnosticEvent(
                kind=kind,
                message=message,
                sample_count=self._state.sample_count,
                reason=reason,
                data=data or {},
            ),
        )
