"""
Historical measurement replay.

Loads recorded measurements (for example an export from the sensor database)
into a pandas DataFrame and feeds them through the learner in timestamp
order. Used to warm up a learner before it goes live and by the command line
tool.

Expected columns:
    timestamp, t_indoor, t_outdoor, p_heating[, solar_radiation, solar_source]
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

import pandas as pd

from .building_model_learner import BuildingModelLearner
from .building_profiles import estimate_solar_radiation
from .diagnostics import OutcomeStatus
from .measurement import Measurement, SolarSource, local_time

REQUIRED_COLUMNS = ("timestamp", "t_indoor", "t_outdoor", "p_heating")


@dataclass
class ReplaySummary:
    total: int = 0
    baseline: int = 0
    applied: int = 0
    rejected: int = 0
    reverted: int = 0
    rate_limited: int = 0

    @property
    def acceptance_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.total - self.rejected) / self.total


def load_measurements_csv(path: str) -> pd.DataFrame:
    """
    Read a measurement CSV into a DataFrame sorted by timestamp.

    Raises:
        ValueError: If a required column is missing
    """
    df = pd.read_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Measurement file {path} is missing columns: {missing}")
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    df = df.sort_values("timestamp").reset_index(drop=True)
    logging.info(f"Loaded {len(df)} measurements from {path}")
    return df


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def measurements_from_dataframe(
    df: pd.DataFrame, estimate_missing_solar: bool = True
) -> List[Measurement]:
    """
    Convert DataFrame rows to Measurement records.

    Rows without a solar reading get a clear-sky estimate tagged as
    `estimated` when `estimate_missing_solar` is set. Other missing values are
    passed through as NaN and rejected by the learner's validation.
    """
    has_solar = "solar_radiation" in df.columns
    has_source = "solar_source" in df.columns
    measurements = []
    for row in df.itertuples(index=False):
        timestamp = pd.Timestamp(row.timestamp).to_pydatetime()
        solar = _optional_float(row.solar_radiation) if has_solar else None
        source = None
        if solar is not None and has_source and not pd.isna(row.solar_source):
            source = str(row.solar_source).strip()
        if solar is None and estimate_missing_solar:
            solar = estimate_solar_radiation(local_time(timestamp).hour)
            source = SolarSource.ESTIMATED
        measurements.append(
            Measurement(
                timestamp=timestamp,
                t_indoor=float(row.t_indoor),
                t_outdoor=float(row.t_outdoor),
                p_heating=float(row.p_heating),
                solar_radiation=solar,
                solar_source=source,
            )
        )
    return measurements


def replay_history(
    learner: BuildingModelLearner, measurements: Iterable[Measurement]
) -> ReplaySummary:
    """Feed measurements through the learner and count the outcomes."""
    summary = ReplaySummary()
    for measurement in measurements:
        outcome = learner.add_measurement(measurement)
        summary.total += 1
        if outcome.status is OutcomeStatus.BASELINE:
            summary.baseline += 1
        elif outcome.status is OutcomeStatus.APPLIED:
            summary.applied += 1
        elif outcome.status is OutcomeStatus.REJECTED:
            summary.rejected += 1
        elif outcome.status is OutcomeStatus.REVERTED:
            summary.reverted += 1
        if outcome.rate_limited:
            summary.rate_limited += 1

    logging.info(
        f"Replay finished: {summary.total} measurements, "
        f"{summary.applied} applied, {summary.rejected} rejected, "
        f"{summary.reverted} reverted, {summary.rate_limited} rate limited"
    )
    return summary
