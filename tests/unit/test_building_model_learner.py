import logging
import math
from datetime import datetime
from unittest.mock import patch

import numpy as np
import pytest

from thermal_learner import config
from thermal_learner.building_model_learner import BuildingModelLearner, EstimatorConfig
from thermal_learner.diagnostics import DiagnosticKind, OutcomeStatus
from thermal_learner.input_vector import InputVectorBuilder
from thermal_learner.rls import check_divergence
from thermal_learner.state_codec import encode_measurement, encode_state
from thermal_learner.thermal_constants import DivergenceBounds
from tests.factories import make_measurement

AVERAGE_THETA = np.array([1 / 15, 0.3 / 15, 0.5 / 15, 0.3 / 15])


def feed_steady(learner, count):
    """Feed `count` measurements five minutes apart, warming at 0.6°C/h."""
    return [
        learner.add_measurement(make_measurement(minutes=5 * i, t_indoor=20.0 + 0.05 * i))
        for i in range(count)
    ]


class TestEstimatorConfig:
    def test_defaults(self):
        cfg = EstimatorConfig()
        assert cfg.forgetting_factor == 0.998
        assert cfg.initial_covariance == 100.0
        assert cfg.min_samples_for_confidence == 288
        assert cfg.profile == "average"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"forgetting_factor": 1.0},
            {"forgetting_factor": 0.0},
            {"initial_covariance": 0.0},
            {"min_samples_for_confidence": 0},
            {"profile": "igloo"},
        ],
    )
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError):
            EstimatorConfig(**kwargs)

    def test_from_env_reads_config_module(self):
        with patch.object(config, "BUILDING_PROFILE", "heavy"), \
                patch.object(config, "BUILDING_MODEL_FORGETTING_FACTOR", 0.995), \
                patch.object(config, "ENABLE_SEASONAL_G", False):
            cfg = EstimatorConfig.from_env()
        assert cfg.profile == "heavy"
        assert cfg.forgetting_factor == 0.995
        assert cfg.enable_seasonal_g is False

    def test_from_env_overrides_ignore_none(self):
        with patch.object(config, "BUILDING_PROFILE", "heavy"):
            assert EstimatorConfig.from_env(profile=None).profile == "heavy"
            assert EstimatorConfig.from_env(profile="light").profile == "light"


class TestInitialState:
    def test_seeded_from_profile(self, learner):
        state = learner.get_state()
        np.testing.assert_allclose(state.theta, AVERAGE_THETA)
        np.testing.assert_array_equal(state.P, np.eye(4) * 100.0)
        assert state.sample_count == 0
        assert state.last_measurement is None
        assert state.base_p_int == 0.3

    def test_initial_model_and_confidence(self, learner):
        model = learner.get_model()
        assert model.C == pytest.approx(15.0)
        assert model.tau == pytest.approx(50.0)
        assert model.confidence == 0.0

    def test_get_state_is_a_copy(self, learner):
        state = learner.get_state()
        state.theta[0] = 99.0
        assert learner.get_state().theta[0] == pytest.approx(1 / 15)


class TestReferenceScenario:
    def test_baseline_then_first_update(self, learner, recording_sink):
        first = learner.add_measurement(
            make_measurement(minutes=0, t_indoor=20.0, t_outdoor=5.0, p_heating=3.0)
        )
        assert first.status is OutcomeStatus.BASELINE
        assert learner.sample_count == 1
        np.testing.assert_allclose(learner.get_state().theta, AVERAGE_THETA)
        assert recording_sink.of_kind(DiagnosticKind.BASELINE_STORED)

        second = learner.add_measurement(
            make_measurement(minutes=5, t_indoor=20.05, t_outdoor=5.0, p_heating=3.0)
        )
        assert second.status is OutcomeStatus.APPLIED
        assert second.accepted
        state = learner.get_state()
        assert state.sample_count == 2
        assert state.last_measurement.t_indoor == 20.05

        delta = np.abs(state.theta - AVERAGE_THETA)
        assert np.any(delta > 0)
        assert np.all(delta <= 0.05 * AVERAGE_THETA + 1e-12)
        assert second.rate_limited
        assert recording_sink.of_kind(DiagnosticKind.RATE_LIMITED)

    def test_covariance_bounded_after_update(self, learner):
        feed_steady(learner, 2)
        diag = np.diag(learner.get_state().P)
        assert np.all((diag >= 1e-4) & (diag <= 1.0))


class TestRejection:
    def test_rate_of_change_leaves_state_untouched(self, learner, recording_sink):
        feed_steady(learner, 3)
        before = learner.get_state()

        outcome = learner.add_measurement(make_measurement(minutes=15, t_indoor=22.0))

        assert outcome.status is OutcomeStatus.REJECTED
        assert outcome.reason == "rate_of_change"
        assert not outcome.accepted
        after = learner.get_state()
        np.testing.assert_array_equal(after.theta, before.theta)
        np.testing.assert_array_equal(after.P, before.P)
        assert after.sample_count == before.sample_count
        assert after.last_measurement == before.last_measurement
        assert recording_sink.of_kind(DiagnosticKind.MEASUREMENT_REJECTED)

    def test_next_sample_compared_to_last_good_baseline(self, learner):
        feed_steady(learner, 1)
        learner.add_measurement(make_measurement(minutes=5, t_indoor=25.0))
        # 0.05°C over 10 minutes relative to the stored baseline
        outcome = learner.add_measurement(make_measurement(minutes=10, t_indoor=20.05))
        assert outcome.status is OutcomeStatus.APPLIED

    def test_rejected_first_measurement_keeps_no_baseline(self, learner):
        outcome = learner.add_measurement(make_measurement(t_indoor=45.0))
        assert outcome.status is OutcomeStatus.REJECTED
        assert learner.sample_count == 0
        assert learner.get_state().last_measurement is None

    def test_garbage_input_never_raises(self, learner):
        for bad in (None, "20°C", object()):
            outcome = learner.add_measurement(bad)
            assert outcome.status is OutcomeStatus.REJECTED
        assert learner.sample_count == 0


class TestDivergence:
    def test_divergent_update_reverts_theta_but_advances_count(self, recording_sink):
        learner = BuildingModelLearner(
            EstimatorConfig(enable_dynamic_p_int=False), diagnostic_sink=recording_sink
        )
        learner.add_measurement(make_measurement(minutes=0, t_indoor=29.0, p_heating=0.0))
        before = learner.get_state()

        # -9°C/h with no heating drives UA/C negative
        outcome = learner.add_measurement(
            make_measurement(minutes=5, t_indoor=28.25, p_heating=0.0)
        )

        assert outcome.status is OutcomeStatus.REVERTED
        assert outcome.accepted
        after = learner.get_state()
        np.testing.assert_array_equal(after.theta, before.theta)
        np.testing.assert_array_equal(after.P, before.P)
        assert after.sample_count == 2
        assert after.last_measurement.t_indoor == 28.25
        events = recording_sink.of_kind(DiagnosticKind.DIVERGENCE_REVERTED)
        assert len(events) == 1
        assert events[0].reason


class TestConvergence:
    def test_simulated_building_confidence_trends_upward(self, recording_sink):
        # True building: C=6 kWh/°C, UA=0.6 kW/°C, tau=10h
        C, UA, g, p_int = 6.0, 0.6, 0.5, 0.3
        learner = BuildingModelLearner(EstimatorConfig(), diagnostic_sink=recording_sink)
        t_in = 20.0
        confidences, traces = [], []
        for i in range(400):
            hours = i * 5 / 60
            t_out = 5.0 + 3.0 * math.sin(2 * math.pi * hours / 24)
            p_heating = 8.0 + 2.0 * math.sin(2 * math.pi * hours / 6)
            learner.add_measurement(
                make_measurement(
                    minutes=5 * i, t_indoor=t_in, t_outdoor=t_out, p_heating=p_heating
                )
            )
            dT_dt = (p_heating - UA * (t_in - t_out) + p_int) / C
            t_in += dT_dt * 5 / 60

            state = learner.get_state()
            assert check_divergence(state.theta, DivergenceBounds()) is None
            confidence = learner.get_model().confidence
            assert 0.0 <= confidence <= 100.0
            confidences.append(confidence)
            traces.append(np.trace(state.P))

        assert learner.sample_count == 400
        window_means = [np.mean(confidences[k:k + 100]) for k in range(0, 400, 100)]
        assert window_means == sorted(window_means)
        assert window_means[-1] < 100.0
        assert traces[-1] <= traces[0]


class TestRestore:
    def test_round_trip(self, learner, average_config):
        feed_steady(learner, 20)
        exported = learner.get_state()

        restored = BuildingModelLearner(average_config)
        restored.restore_state(exported)

        state = restored.get_state()
        np.testing.assert_array_equal(state.theta, exported.theta)
        np.testing.assert_array_equal(state.P, exported.P)
        assert state.sample_count == exported.sample_count
        assert state.last_measurement == exported.last_measurement

    def test_round_trip_through_record(self, learner, average_config, recording_sink):
        feed_steady(learner, 20)
        exported = learner.get_state()

        restored = BuildingModelLearner(average_config, diagnostic_sink=recording_sink)
        restored.restore_state(encode_state(exported))

        assert encode_state(restored.get_state()) == encode_state(exported)
        assert recording_sink.of_kind(DiagnosticKind.STATE_RESTORED)

    def test_restored_learner_continues_from_last_measurement(self, learner, average_config):
        feed_steady(learner, 5)
        restored = BuildingModelLearner(average_config)
        restored.restore_state(learner.get_state())

        outcome = restored.add_measurement(make_measurement(minutes=25, t_indoor=20.25))
        assert outcome.accepted
        assert outcome.status is not OutcomeStatus.BASELINE
        assert restored.sample_count == 6

    def test_corrupt_import_resets_to_defaults(self, learner, recording_sink):
        feed_steady(learner, 3)
        learner.restore_state({
            "theta": [0.1, 0.2, 0.02, 0.02],
            "P": (np.eye(4) * 0.5).tolist(),
            "sampleCount": 500,
            "lastMeasurement": encode_measurement(make_measurement()),
        })

        state = learner.get_state()
        assert state.sample_count == 0
        assert state.last_measurement is None
        np.testing.assert_allclose(state.theta, AVERAGE_THETA)
        np.testing.assert_array_equal(state.P, np.eye(4) * 100.0)
        rejected = recording_sink.of_kind(DiagnosticKind.STATE_REJECTED)
        assert len(rejected) == 1
        assert "θ[1]" in rejected[0].reason

    @pytest.mark.parametrize(
        "record",
        [
            {},
            {"theta": [0.1, 0.01, 0.02, 0.02], "P": np.eye(4).tolist()},
            {"theta": [0.1, 0.01, 0.02, 0.02], "P": (np.eye(4) * 200).tolist(), "sampleCount": 5},
            {"theta": "nope", "P": np.eye(4).tolist(), "sampleCount": 5},
            "not a state",
        ],
    )
    def test_unusable_records_never_raise(self, learner, record):
        learner.restore_state(record)
        assert learner.sample_count == 0

    def test_first_measurement_after_restore_without_baseline(self, learner):
        learner.restore_state({
            "theta": AVERAGE_THETA.tolist(),
            "P": np.eye(4).tolist(),
            "sampleCount": 500,
            "lastMeasurement": None,
        })

        outcome = learner.add_measurement(make_measurement())

        assert outcome.status is OutcomeStatus.BASELINE
        assert learner.sample_count == 501

    def test_legacy_record_takes_configured_flags(self, recording_sink):
        learner = BuildingModelLearner(
            EstimatorConfig(enable_dynamic_p_int=False), diagnostic_sink=recording_sink
        )
        learner.restore_state({
            "theta": AVERAGE_THETA.tolist(),
            "P": np.eye(4).tolist(),
            "sampleCount": 12,
            "lastMeasurement": {
                "timestamp": 1736942400000,
                "tIndoor": 20.0,
                "tOutdoor": 5.0,
                "pHeating": 3.0,
            },
        })
        state = learner.get_state()
        assert state.sample_count == 12
        assert state.enable_dynamic_p_int is False
        assert state.base_p_int == 0.3

    def test_naive_stream_continues_after_epoch_millisecond_record(self, learner):
        learner.restore_state({
            "theta": AVERAGE_THETA.tolist(),
            "P": np.eye(4).tolist(),
            "sampleCount": 12,
            "lastMeasurement": {
                "timestamp": 1736942400000,
                "tIndoor": 20.0,
                "tOutdoor": 5.0,
                "pHeating": 3.0,
            },
        })
        # Same instant as the stored baseline, as local wall-clock time
        base = datetime.fromtimestamp(1736942400)

        outcomes = [
            learner.add_measurement(
                make_measurement(minutes=5 * i, t_indoor=20.0 + 0.05 * i, base_time=base)
            )
            for i in range(1, 7)
        ]

        assert all(outcome.accepted for outcome in outcomes)
        assert all(outcome.status is not OutcomeStatus.BASELINE for outcome in outcomes)
        assert learner.sample_count == 18
        assert learner.get_state().last_measurement.timestamp.tzinfo is None


class TestDiagnosticsEvents:
    def test_milestone_every_hundred_samples(self, learner, recording_sink):
        feed_steady(learner, 100)
        milestones = recording_sink.of_kind(DiagnosticKind.MILESTONE)
        assert len(milestones) == 1
        assert milestones[0].sample_count == 100
        assert "C" in milestones[0].data

    def test_failing_sink_does_not_break_learning(self):
        class ExplodingSink:
            def record(self, event):
                raise RuntimeError("sink down")

        learner = BuildingModelLearner(EstimatorConfig(), diagnostic_sink=ExplodingSink())
        outcomes = feed_steady(learner, 3)
        assert [o.status for o in outcomes] == [
            OutcomeStatus.BASELINE, OutcomeStatus.APPLIED, OutcomeStatus.APPLIED
        ]

    def test_internal_error_is_reported_not_raised(self, learner, recording_sink, caplog):
        feed_steady(learner, 1)
        before = learner.get_state()
        with patch.object(InputVectorBuilder, "build", side_effect=RuntimeError("boom")):
            with caplog.at_level(logging.ERROR):
                outcome = learner.add_measurement(make_measurement(minutes=5))

        assert outcome.status is OutcomeStatus.REJECTED
        assert outcome.reason == "internal_error"
        assert learner.sample_count == before.sample_count
        assert "boom" in caplog.text

    def test_default_sink_logs_rejections(self, caplog):
        learner = BuildingModelLearner(EstimatorConfig())
        with caplog.at_level(logging.WARNING):
            learner.add_measurement(make_measurement(t_indoor=45.0))
        assert "measurement_rejected" in caplog.text


class TestReadSide:
    def test_predict_zero_horizon(self, learner):
        assert learner.predict_temperature(21.3, 5.0, 0.0, 3.0, 0) == 21.3

    def test_predict_matches_profile_model(self, learner):
        predicted = learner.predict_temperature(20.0, 5.0, 0.0, 3.0, 10.0)
        assert predicted == pytest.approx(16.0 + 4.0 * math.exp(-0.2))

    def test_internal_gains_shaped_by_hour(self, learner):
        assert learner.get_current_internal_gains(20) == pytest.approx(0.3 * 1.8)
        assert learner.get_current_internal_gains(3) == pytest.approx(0.3 * 0.4)
        assert learner.get_current_internal_gains(12) == pytest.approx(0.3)

    def test_internal_gains_flat_when_disabled(self):
        learner = BuildingModelLearner(EstimatorConfig(enable_dynamic_p_int=False))
        assert learner.get_current_internal_gains(20) == pytest.approx(0.3)

    def test_fresh_diagnostics(self, learner):
        report = learner.get_diagnostics()
        assert report["status"] == "learning"
        assert report["profile"] == "average"
        assert report["learning"]["samples_collected"] == 0
        assert report["learning"]["confidence_level"] == "low"
        assert report["parameters"]["tau"] == pytest.approx(50.0)
        assert report["rls_state"]["P_trace"] == pytest.approx(400.0)
        assert report["validation"]["parameters_realistic"] is True

    def test_diagnostics_after_learning(self, learner):
        feed_steady(learner, 20)
        report = learner.get_diagnostics()
        assert report["status"] == "converged"
        assert report["learning"]["samples_collected"] == 20
        assert report["rls_state"]["P_trace"] <= 4.0
