"""
This module handles the persistence of the learner state.

The state is the record produced by `state_codec.encode_state`: theta, the
covariance matrix, the sample count and the last accepted measurement. It is
stored as JSON so it can be inspected and survives library upgrades. Loading
never raises; the learner validates whatever is returned before adopting it.
"""
import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

from . import config
from .state_codec import EstimatorState, encode_state


def load_state(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Loads the persisted learner state from a JSON file.

    If the file doesn't exist or is corrupted, it returns None so the
    learner starts from its profile defaults.
    """
    path = path or config.STATE_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)
    except FileNotFoundError:
        logging.info("No persisted state at %s, starting fresh", path)
        return None
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logging.warning(
            "Could not load state from %s, starting fresh. Reason: %s", path, e
        )
        return None

    if not isinstance(state, dict):
        logging.warning(
            "Ignoring state in %s: expected a JSON object, got %s",
            path,
            type(state).__name__,
        )
        return None

    logging.info("Successfully loaded state from %s", path)
    return state


def save_state(state: EstimatorState, path: Optional[str] = None) -> bool:
    """
    Saves the learner state to a JSON file.

    The file is written to a temporary file in the same directory and then
    atomically moved into place to avoid corruption on power loss.

    Returns:
        True if the state was written
    """
    path = path or config.STATE_FILE
    record = encode_state(state)
    tmp_path = None
    try:
        dirpath = os.path.dirname(path) or "."
        os.makedirs(dirpath, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=dirpath, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        os.replace(tmp_path, path)
        tmp_path = None
        logging.debug(
            "Successfully saved state (%d samples) to %s", record["sampleCount"], path
        )
        return True
    except (OSError, TypeError, ValueError) as e:
        logging.error("Failed to save state to %s: %s", path, e)
        return False
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
