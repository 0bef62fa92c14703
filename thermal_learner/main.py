"""
Command line entry point for the building model learner.

Restores the learner from its state file, replays a CSV of historical
measurements, saves the updated state and logs the learned model. Intended
for warming up a learner from recorded data and for troubleshooting a
persisted state.

    python -m thermal_learner.main --history measurements.csv
"""
import argparse
import json
import logging
import math
from typing import List, Optional

from dotenv import load_dotenv

from . import config
from .building_model_learner import BuildingModelLearner, EstimatorConfig
from .building_profiles import BUILDING_PROFILES
from .history import load_measurements_csv, measurements_from_dataframe, replay_history
from .state_manager import load_state, save_state


def log_model_summary(learner: BuildingModelLearner) -> None:
    model = learner.get_model()
    logging.info("=== BUILDING MODEL ===")
    logging.info(f"   Samples:           {learner.sample_count}")
    logging.info(f"   C (Thermal Mass):  {model.C:.1f} kWh/°C")
    logging.info(f"   UA (Heat Loss):    {model.UA:.3f} kW/°C")
    logging.info(f"   τ (Time Constant): {model.tau:.1f}h")
    logging.info(f"   g (Solar Gain):    {model.g:.3f}")
    logging.info(f"   P_int (Internal):  {model.p_int:.2f} kW")
    logging.info(f"   Confidence:        {model.confidence:.0f}%")


def main(args: argparse.Namespace) -> int:
    """
    Run one restore, replay, save cycle.

    Returns:
        Process exit code
    """
    load_dotenv()
    log_level = logging.DEBUG if (args.debug or config.DEBUG) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    state_file = args.state_file or config.STATE_FILE
    estimator_config = EstimatorConfig.from_env(profile=args.profile)
    learner = BuildingModelLearner(estimator_config)

    stored = load_state(state_file)
    if stored is not None:
        learner.restore_state(stored)

    if args.history:
        try:
            df = load_measurements_csv(args.history)
        except (OSError, ValueError) as e:
            logging.error(f"❌ Could not read measurement history: {e}")
            return 1
        summary = replay_history(learner, measurements_from_dataframe(df))
        logging.info(
            f"Acceptance rate: {summary.acceptance_rate:.1%} "
            f"({summary.baseline} baseline)"
        )
        if not save_state(learner.get_state(), state_file):
            return 1

    log_model_summary(learner)

    if args.predict_hours is not None:
        state = learner.get_state()
        last = state.last_measurement
        if last is None:
            logging.warning("No measurement available to predict from")
        else:
            predicted = learner.predict_temperature(
                current_indoor=last.t_indoor,
                future_outdoor=last.t_outdoor,
                future_solar=last.solar_radiation or 0.0,
                heating_power=last.p_heating,
                hours_ahead=args.predict_hours,
            )
            if math.isfinite(predicted):
                logging.info(
                    f"🔮 Predicted indoor temperature in {args.predict_hours:g}h: "
                    f"{predicted:.2f}°C (now {last.t_indoor:.2f}°C)"
                )
            else:
                logging.warning("Model not usable for prediction yet")

    if args.diagnostics:
        print(json.dumps(learner.get_diagnostics(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Adaptive building thermal model learner"
    )
    parser.add_argument(
        "--history",
        help="CSV file of measurements to replay into the learner.",
    )
    parser.add_argument(
        "--state-file",
        help=f"Path of the persisted learner state (default: {config.STATE_FILE}).",
    )
    parser.add_argument(
        "--profile",
        choices=sorted(BUILDING_PROFILES),
        help="Building profile used to seed a fresh learner.",
    )
    parser.add_argument(
        "--predict-hours",
        type=float,
        help="Predict the indoor temperature this many hours ahead from the last measurement.",
    )
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Print the learner diagnostics report as JSON.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def run(argv: Optional[List[str]] = None) -> int:
    return main(build_parser().parse_args(argv))


if __name__ == "__main__":
    raise SystemExit(run())
