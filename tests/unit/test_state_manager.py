import json
import logging
import os

import numpy as np
import pytest

from thermal_learner import state_manager
from thermal_learner.state_codec import EstimatorState
from tests.factories import make_measurement


@pytest.fixture
def state():
    return EstimatorState(
        theta=np.array([1 / 15, 0.02, 0.5 / 15, 0.02]),
        P=np.eye(4) * 0.25,
        sample_count=17,
        last_measurement=make_measurement(minutes=80),
        base_p_int=0.3,
        enable_dynamic_p_int=True,
        enable_seasonal_g=False,
    )


def test_save_and_load_state(tmp_path, state):
    """Test that a saved state can be read back as a plain record."""
    path = str(tmp_path / "state.json")

    assert state_manager.save_state(state, path) is True
    loaded = state_manager.load_state(path)

    assert loaded["sampleCount"] == 17
    assert loaded["enableSeasonalG"] is False
    assert loaded["P"][0][0] == 0.25
    assert loaded["lastMeasurement"]["tIndoor"] == 20.0


def test_save_state_creates_directory(tmp_path, state):
    path = str(tmp_path / "nested" / "dir" / "state.json")
    assert state_manager.save_state(state, path) is True
    assert os.path.exists(path)


def test_save_state_leaves_no_temp_files(tmp_path, state):
    path = tmp_path / "state.json"
    state_manager.save_state(state, str(path))
    state_manager.save_state(state, str(path))
    assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]


def test_save_state_failure(tmp_path, state, caplog):
    """Test that an error is logged, not raised, if saving fails."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with caplog.at_level(logging.ERROR):
        result = state_manager.save_state(state, str(blocker / "state.json"))

    assert result is False
    assert "Failed to save state" in caplog.text


def test_save_state_uses_configured_path(tmp_path, state, monkeypatch):
    path = str(tmp_path / "configured.json")
    monkeypatch.setattr(state_manager.config, "STATE_FILE", path)
    state_manager.save_state(state)
    assert state_manager.load_state()["sampleCount"] == 17


def test_load_state_missing_file(tmp_path, caplog):
    with caplog.at_level(logging.INFO):
        result = state_manager.load_state(str(tmp_path / "missing.json"))
    assert result is None
    assert "starting fresh" in caplog.text


def test_load_state_corrupt_file(tmp_path, caplog):
    """Test that a corrupt file yields None and a warning."""
    path = tmp_path / "state.json"
    path.write_text("{ not json")

    with caplog.at_level(logging.WARNING):
        result = state_manager.load_state(str(path))

    assert result is None
    assert "Could not load state" in caplog.text


def test_load_state_wrong_type(tmp_path, caplog):
    path = tmp_path / "state.json"
    path.write_text(json.dumps([1, 2, 3]))

    with caplog.at_level(logging.WARNING):
        result = state_manager.load_state(str(path))

    assert result is None
    assert "expected a JSON object" in caplog.text
