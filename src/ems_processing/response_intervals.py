"""
Response Interval Derivation and Plausibility Filtering

Derives three EMS durations in minutes from the eTimes timestamps:
- response_time: notified by dispatch -> arrived on scene
- on_scene_time: arrived on scene -> left scene
- back_in_service_time: left scene -> back in service

The clean view keeps only rows where all three durations are within
[0, MAX_INTERVAL_MINUTES]. A null duration fails the check. Excluded rows stay
in the unfiltered combined record.
"""
import pandas as pd

from .config import INTERVAL_DEFINITIONS, MAX_INTERVAL_MINUTES
from .logging_utils import logger
from .utils import get_minute_difference

INTERVAL_COLUMNS = [duration for duration, _, _ in INTERVAL_DEFINITIONS]


def add_response_intervals(df: pd.DataFrame, definitions=INTERVAL_DEFINITIONS) -> pd.DataFrame:
    """
    Add the duration columns (minutes, end minus start) to the combined record.

    Args:
        df (pd.DataFrame): Combined record with UTC timestamp columns
        definitions: (duration column, start column, end column) triples

    Returns:
        pd.DataFrame: New table with one float column per duration, NaN when
                      either endpoint is missing
    """
    logger.log_start("add_response_intervals")

    result = df.copy()
    for duration, start, end in definitions:
        result[duration] = get_minute_difference(result[end], result[start])

    logger.log_end("add_response_intervals")
    return result


def plausible_interval_mask(df: pd.DataFrame,
                            columns=INTERVAL_COLUMNS,
                            max_minutes: float = MAX_INTERVAL_MINUTES) -> pd.Series:
    """
    Flag rows whose durations are all within [0, max_minutes].

    NaN compares false on both bounds, so missing durations fail.

    Returns:
        pd.Series: Boolean mask aligned with df
    """
    mask = pd.Series(True, index=df.index)
    for col in columns:
        mask &= df[col].ge(0) & df[col].le(max_minutes)
    return mask


def filter_plausible_intervals(df: pd.DataFrame,
                               columns=INTERVAL_COLUMNS,
                               max_minutes: float = MAX_INTERVAL_MINUTES) -> pd.DataFrame:
    """
    Build the clean view: rows whose durations are all plausible.

    Args:
        df (pd.DataFrame): Combined record with duration columns
        columns: Duration columns to check
        max_minutes (float): Inclusive upper bound

    Returns:
        pd.DataFrame: Filtered copy with a fresh index
    """
    logger.log_start("filter_plausible_intervals")

    mask = plausible_interval_mask(df, columns, max_minutes)
    clean = df[mask].reset_index(drop=True)
    logger.info(f"Clean view keeps {len(clean)} of {len(df)} row(s)")

    logger.log_end("filter_plausible_intervals")
    return clean
