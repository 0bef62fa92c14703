import pytest

from thermal_learner.building_model_learner import BuildingModelLearner, EstimatorConfig
from thermal_learner.diagnostics import RecordingDiagnosticSink


@pytest.fixture
def recording_sink():
    return RecordingDiagnosticSink()


@pytest.fixture
def average_config():
    """The reference configuration: average profile, 24h of 5 min samples."""
    return EstimatorConfig(
        forgetting_factor=0.998,
        initial_covariance=100.0,
        min_samples_for_confidence=288,
        profile="average",
    )


@pytest.fixture
def learner(average_config, recording_sink):
    return BuildingModelLearner(average_config, diagnostic_sink=recording_sink)
