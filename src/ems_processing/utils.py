"""
Time and numeric utility functions for the EMS pipeline.

This module converts spreadsheet serial date-times to UTC timestamps, coerces
columns to numeric, and computes minute differences between timestamp series.
"""
import warnings
from typing import Iterable

import numpy as np
import pandas as pd

from .config import TIME_COLUMN_MARKER
from .errors import CoercionWarning
from .logging_utils import logger

# Spreadsheet serial-date epoch. Day 1 is 1899-12-31 and the 1900 leap-year bug
# is absorbed by starting one day earlier, so serials after 1900-02-28 line up.
EXCEL_EPOCH = pd.Timestamp("1899-12-30", tz="UTC")
SECONDS_PER_DAY = 86400
SECONDS_PER_MINUTE = 60


def excel_serial_to_timestamp(value) -> pd.Timestamp:
    """
    Convert a single spreadsheet serial date-time to a UTC timestamp.

    Args:
        value: Days since 1899-12-30 with the time of day as the fractional part

    Returns:
        pd.Timestamp: EXCEL_EPOCH + value * 86400 seconds, or NaT for null or
                      non-numeric input

    Example:
        >>> excel_serial_to_timestamp(44592.5084375)
        Timestamp('2022-01-31 12:12:09+0000', tz='UTC')
    """
    return excel_serial_to_datetime(pd.Series([value], dtype=object)).iloc[0]


def excel_serial_to_datetime(series: pd.Series) -> pd.Series:
    """
    Convert a series of spreadsheet serial date-times to UTC timestamps.

    Null and non-numeric values become NaT. Series that are already datetimes
    are returned in UTC (naive values are assumed to be UTC).

    Args:
        series (pd.Series): Serial date-time values

    Returns:
        pd.Series: datetime64[ns, UTC] series with the same index
    """
    if pd.api.types.is_datetime64_any_dtype(series):
        if series.dt.tz is None:
            return series.dt.tz_localize("UTC")
        return series.dt.tz_convert("UTC")

    days = pd.to_numeric(series, errors='coerce').astype(float)
    return EXCEL_EPOCH + pd.to_timedelta(days * SECONDS_PER_DAY, unit='s')


def find_time_columns(df: pd.DataFrame, marker: str = TIME_COLUMN_MARKER) -> list:
    """List the columns whose header contains the time-field marker."""
    return [col for col in df.columns if marker in str(col)]


def convert_time_columns(df: pd.DataFrame, marker: str = TIME_COLUMN_MARKER) -> pd.DataFrame:
    """
    Convert every serial date-time column of a table to UTC timestamps.

    Args:
        df (pd.DataFrame): Table with serial date-time columns
        marker (str): Header substring identifying time columns

    Returns:
        pd.DataFrame: New table with time columns converted; other columns untouched
    """
    logger.log_start("convert_time_columns")

    result = df.copy()
    for col in find_time_columns(result, marker):
        result[col] = excel_serial_to_datetime(result[col])

    logger.log_end("convert_time_columns")
    return result


def coerce_numeric_columns(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """
    Coerce the given columns to float, replacing non-numeric values with NaN.

    A CoercionWarning is issued once per column that had non-null values which
    could not be parsed as numbers.

    Args:
        df (pd.DataFrame): Source table
        columns (Iterable[str]): Columns expected to hold numbers

    Returns:
        pd.DataFrame: New table with the columns as float64
    """
    logger.log_start("coerce_numeric_columns")

    result = df.copy()
    for col in columns:
        original = result[col]
        coerced = pd.to_numeric(original, errors='coerce').astype(float)
        invalid_count = int((original.notna() & coerced.isna()).sum())
        if invalid_count > 0:
            message = f"{col}: {invalid_count} non-numeric value(s) replaced with null"
            logger.warning(message)
            warnings.warn(message, CoercionWarning, stacklevel=2)
        result[col] = coerced

    logger.log_end("coerce_numeric_columns")
    return result


def get_minute_difference(end: pd.Series, start: pd.Series) -> pd.Series:
    """
    Calculate the difference between two datetime series in minutes.

    Args:
        end (pd.Series): Later datetime series (minuend)
        start (pd.Series): Earlier datetime series (subtrahend)

    Returns:
        pd.Series: Difference in minutes as float, NaN where either side is null

    Example:
        >>> end = pd.Series([pd.Timestamp('2023-01-01 12:30:00')])
        >>> start = pd.Series([pd.Timestamp('2023-01-01 12:00:00')])
        >>> get_minute_difference(end, start)
        0    30.0
        dtype: float64
    """
    return ((end - start) / pd.Timedelta(minutes=1)).astype(np.float64)
