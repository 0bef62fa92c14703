"""
Centralized Configuration for the Building Model Learner.

Settings are read from environment variables. The `dotenv` library loads a
`.env` file if one exists so deployments can keep their settings out of the
source tree.

The configuration is organized into logical sections:
- Learner tuning (profile, forgetting factor, covariance, confidence)
- Regressor options (dynamic internal gains, seasonal solar gain)
- Scheduling and file paths
- Debug parameters
"""
import os
from dotenv import load_dotenv

# Load environment variables from a .env file if it exists.
load_dotenv()

# --- Learner Tuning ---
# BUILDING_PROFILE: Preset used to seed the parameters before any data has
#   been seen. One of light, average, heavy, passive.
# BUILDING_MODEL_FORGETTING_FACTOR: Base forgetting factor (0-1). Values of
#   0.995-0.999 let the model follow seasonal changes.
# BUILDING_MODEL_INITIAL_COVARIANCE: Initial uncertainty on the diagonal of
#   the covariance matrix. Higher means less trust in the profile.
# BUILDING_MODEL_MIN_SAMPLES: Samples required for full sample coverage in
#   the confidence score (288 = 24 hours at 5 minute intervals).
BUILDING_PROFILE: str = os.getenv("BUILDING_PROFILE", "average").strip().lower()
BUILDING_MODEL_FORGETTING_FACTOR: float = float(
    os.getenv("BUILDING_MODEL_FORGETTING_FACTOR", "0.998")
)
BUILDING_MODEL_INITIAL_COVARIANCE: float = float(
    os.getenv("BUILDING_MODEL_INITIAL_COVARIANCE", "100")
)
BUILDING_MODEL_MIN_SAMPLES: int = int(os.getenv("BUILDING_MODEL_MIN_SAMPLES", "288"))

# --- Regressor Options ---
# ENABLE_DYNAMIC_PINT: Shape internal gains by time of day (night 0.4x,
#   day 1.0x, evening 1.8x).
# ENABLE_SEASONAL_G: Apply the monthly solar multiplier to estimated solar
#   readings. Measured sources are never corrected.
ENABLE_DYNAMIC_PINT: bool = os.getenv("ENABLE_DYNAMIC_PINT", "true").lower() == "true"
ENABLE_SEASONAL_G: bool = os.getenv("ENABLE_SEASONAL_G", "true").lower() == "true"

# --- Scheduling & File Paths ---
# CYCLE_INTERVAL_MINUTES: Cadence at which the sampler feeds measurements.
# STATE_FILE: JSON file holding the persisted learner state.
CYCLE_INTERVAL_MINUTES: int = int(os.getenv("CYCLE_INTERVAL_MINUTES", "5"))
STATE_FILE: str = os.getenv("STATE_FILE", "/data/building_model_state.json")

# --- Debug ---
# DEBUG: Set to "1" to enable verbose logging for development.
DEBUG: bool = os.getenv("DEBUG", "0") == "1"
