"""
Unit tests for serial date-time conversion, numeric coercion and vitals aggregation.
"""

import numpy as np
import pandas as pd
import pytest

from ems_processing.config import (
    HEART_RATE_COLUMN,
    INCIDENT_ID_COLUMN,
    RESPIRATORY_RATE_COLUMN,
    SYSTOLIC_BP_COLUMN,
    VITALS_TAKEN_COLUMN,
)
from ems_processing.errors import CoercionWarning
from ems_processing.utils import (
    coerce_numeric_columns,
    convert_time_columns,
    excel_serial_to_datetime,
    excel_serial_to_timestamp,
    get_minute_difference,
)
from ems_processing.vitals_data import aggregate_vitals, build_vitals_aggregation_sql

SPO2_COLUMN = "Vitals Pulse Oximetry (eVitals.12)"
ONE_MINUTE = 1 / 1440


def _utc(s: str) -> pd.Timestamp:
    return pd.Timestamp(s, tz="UTC")


class TestSerialDateConversion:
    """Spreadsheet serial date-time conversion."""

    def test_known_serial_value(self):
        result = excel_serial_to_timestamp(44592.508437500001)
        expected = _utc("2022-01-31 12:12:09")
        assert abs(result - expected) < pd.Timedelta(seconds=1), f"Got {result}"
        assert str(result.tz) == "UTC"

    def test_epoch_and_leap_year_quirk(self):
        """Serial 60 is Excel's phantom 1900-02-29; the 1899-12-30 epoch maps it to Feb 28."""
        assert excel_serial_to_timestamp(0) == _utc("1899-12-30")
        assert excel_serial_to_timestamp(1) == _utc("1899-12-31")
        assert excel_serial_to_timestamp(60) == _utc("1900-02-28")
        assert excel_serial_to_timestamp(61) == _utc("1900-03-01")

    def test_null_and_non_numeric_inputs_give_nat(self):
        assert excel_serial_to_timestamp(None) is pd.NaT
        assert excel_serial_to_timestamp(np.nan) is pd.NaT
        assert excel_serial_to_timestamp("not a date") is pd.NaT

    def test_largest_serial_matches_series_conversion(self):
        """Serial 2958465 is 9999-12-31, the last date a spreadsheet can hold."""
        scalar = excel_serial_to_timestamp(2958465.0)
        series = excel_serial_to_datetime(pd.Series([2958465.0]))

        assert scalar == series.iloc[0]
        assert (scalar.year, scalar.month, scalar.day) == (9999, 12, 31)

    def test_series_conversion_matches_scalar(self):
        series = pd.Series([44592.5, None, "bad", 44593.25])
        result = excel_serial_to_datetime(series)

        assert pd.api.types.is_datetime64_any_dtype(result)
        assert result.iloc[0] == _utc("2022-01-31 12:00:00")
        assert pd.isna(result.iloc[1])
        assert pd.isna(result.iloc[2])
        assert result.iloc[3] == _utc("2022-02-01 06:00:00")

    def test_series_already_datetime_is_localized(self):
        series = pd.Series(pd.to_datetime(["2022-01-01 10:00", None]))
        result = excel_serial_to_datetime(series)
        assert result.iloc[0] == _utc("2022-01-01 10:00")
        assert pd.isna(result.iloc[1])

    def test_convert_time_columns_only_touches_marked_columns(self):
        df = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A"],
            "Incident Unit Arrived On Scene Date Time (eTimes.06)": [44592.5],
            "Vitals Heart Rate (eVitals.10)": [44592.5],
        })
        result = convert_time_columns(df)

        assert result["Incident Unit Arrived On Scene Date Time (eTimes.06)"].iloc[0] == _utc("2022-01-31 12:00")
        assert result["Vitals Heart Rate (eVitals.10)"].iloc[0] == 44592.5
        # Input is not modified
        assert df["Incident Unit Arrived On Scene Date Time (eTimes.06)"].iloc[0] == 44592.5


class TestNumericHelpers:

    def test_coercion_replaces_non_numeric_with_null_and_warns(self):
        df = pd.DataFrame({"value": ["120", 95, "n/a", None]})

        with pytest.warns(CoercionWarning, match="1 non-numeric"):
            result = coerce_numeric_columns(df, ["value"])

        assert result["value"].tolist()[:2] == [120.0, 95.0]
        assert result["value"].iloc[2:].isna().all()
        assert df["value"].iloc[2] == "n/a", "Input table must not be modified"

    def test_minute_difference(self):
        end = pd.Series([_utc("2022-01-01 12:30"), pd.NaT])
        start = pd.Series([_utc("2022-01-01 12:00"), _utc("2022-01-01 12:00")])
        result = get_minute_difference(end, start)
        assert result.iloc[0] == 30.0
        assert np.isnan(result.iloc[1])


class TestVitalsAggregation:
    """Collapsing repeated vitals rows into one row per incident."""

    def setup_method(self):
        base = 44592.5
        self.vitals = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A", "A", "A", "B", "B", "C"],
            VITALS_TAKEN_COLUMN: [base + 2 * ONE_MINUTE, base, base + 5 * ONE_MINUTE,
                                  None, base + 10 * ONE_MINUTE, base + 20 * ONE_MINUTE],
            SYSTOLIC_BP_COLUMN: [120, None, 140, None, None, "110"],
            HEART_RATE_COLUMN: [80, 90, 100, 60, 70, 50],
            RESPIRATORY_RATE_COLUMN: [12, 14, 16, 18, 20, 22],
            SPO2_COLUMN: [95.0, 96.0, 97.0, None, 90.0, 99.0],
        })

    def test_one_row_per_incident_in_first_appearance_order(self):
        result = aggregate_vitals(self.vitals)
        assert result[INCIDENT_ID_COLUMN].tolist() == ["A", "B", "C"]

    def test_mean_min_max_ignore_nulls(self):
        result = aggregate_vitals(self.vitals).set_index(INCIDENT_ID_COLUMN)

        assert result.loc["A", f"{SYSTOLIC_BP_COLUMN}_mean"] == 130.0
        assert result.loc["A", f"{SYSTOLIC_BP_COLUMN}_min"] == 120.0
        assert result.loc["A", f"{SYSTOLIC_BP_COLUMN}_max"] == 140.0
        assert result.loc["C", f"{SYSTOLIC_BP_COLUMN}_mean"] == 110.0
        assert result.loc["A", f"{HEART_RATE_COLUMN}_mean"] == 90.0

    def test_all_null_group_gives_null_aggregates(self):
        result = aggregate_vitals(self.vitals).set_index(INCIDENT_ID_COLUMN)
        for stat in ("mean", "min", "max"):
            assert pd.isna(result.loc["B", f"{SYSTOLIC_BP_COLUMN}_{stat}"])

    def test_every_numeric_field_is_aggregated_except_timestamp(self):
        result = aggregate_vitals(self.vitals)

        for field in (SYSTOLIC_BP_COLUMN, HEART_RATE_COLUMN, RESPIRATORY_RATE_COLUMN, SPO2_COLUMN):
            for stat in ("mean", "min", "max"):
                assert f"{field}_{stat}" in result.columns, f"Missing {field}_{stat}"
        assert f"{VITALS_TAKEN_COLUMN}_mean" not in result.columns
        assert VITALS_TAKEN_COLUMN in result.columns

    def test_representative_time_is_first_observed_in_row_order(self):
        result = aggregate_vitals(self.vitals).set_index(INCIDENT_ID_COLUMN)

        base = _utc("2022-01-31 12:00")
        assert abs(result.loc["A", VITALS_TAKEN_COLUMN] - (base + pd.Timedelta(minutes=2))) < pd.Timedelta(seconds=1)
        # B's first row has no time, so its first observed time is used
        assert abs(result.loc["B", VITALS_TAKEN_COLUMN] - (base + pd.Timedelta(minutes=10))) < pd.Timedelta(seconds=1)

    def test_non_numeric_vitals_warn_and_become_null(self):
        vitals = self.vitals.copy()
        vitals[HEART_RATE_COLUMN] = vitals[HEART_RATE_COLUMN].astype(object)
        vitals.loc[0, HEART_RATE_COLUMN] = "unable"

        with pytest.warns(CoercionWarning):
            result = aggregate_vitals(vitals).set_index(INCIDENT_ID_COLUMN)

        assert result.loc["A", f"{HEART_RATE_COLUMN}_mean"] == 95.0

    def test_rows_without_identifier_are_dropped(self):
        vitals = self.vitals.copy()
        vitals.loc[5, INCIDENT_ID_COLUMN] = None
        result = aggregate_vitals(vitals)
        assert result[INCIDENT_ID_COLUMN].tolist() == ["A", "B"]

    def test_empty_vitals_table(self):
        result = aggregate_vitals(self.vitals.iloc[0:0])
        assert result.empty
        assert INCIDENT_ID_COLUMN in result.columns

    def test_sql_quotes_column_names(self):
        sql = build_vitals_aggregation_sql([SYSTOLIC_BP_COLUMN])
        assert f'AVG("{SYSTOLIC_BP_COLUMN}"::DOUBLE)' in sql
        assert f'GROUP BY "{INCIDENT_ID_COLUMN}"' in sql
