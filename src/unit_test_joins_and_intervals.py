"""
Unit tests for joining source tables, response intervals, the clean view and
data-quality audits.
"""

import numpy as np
import pandas as pd

from ems_processing.config import (
    ARRIVED_ON_SCENE_COLUMN,
    BACK_IN_SERVICE_COLUMN,
    BACK_IN_SERVICE_TIME_COLUMN,
    DISPATCH_NOTIFIED_COLUMN,
    INCIDENT_ID_COLUMN,
    LEFT_SCENE_COLUMN,
    ON_SCENE_TIME_COLUMN,
    RESPONSE_TIME_COLUMN,
)
from ems_processing.data_quality import (
    audit_combined_record,
    find_duplicate_identifiers,
    find_high_missing_columns,
    find_out_of_range_intervals,
)
from ems_processing.incident_data import (
    combine_incident_tables,
    expected_join_row_count,
    left_join_on_incident,
)
from ems_processing.response_intervals import (
    add_response_intervals,
    filter_plausible_intervals,
    plausible_interval_mask,
)


def _utc(s: str) -> pd.Timestamp:
    return pd.Timestamp(s, tz="UTC")


class TestIncidentJoins:

    def setup_method(self):
        self.incident_times = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A", "B", "C", None],
            "Incident Number": [1, 2, 3, 4],
        })
        self.arrest = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A", "B", "B"],
            "Arrest": ["Yes", "No", "No (duplicate)"],
        })
        self.vitals = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A", "C"],
            "HR_mean": [80.0, 90.0],
        })
        self.patient = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A", "A", "C", None],
            "Gender": ["Female", "Female", "Male", "Unknown"],
        })
        self.response = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["D"],
            "Incident Number": [99],
        })
        self.right_tables = [
            ("Cardiac Arrest", self.arrest),
            ("Aggregated Vitals", self.vitals),
            ("Patient", self.patient),
            ("Response", self.response),
        ]

    def test_no_anchor_rows_dropped_and_fan_out_counted(self):
        combined = combine_incident_tables(self.incident_times, self.right_tables)

        # A: 1 arrest x 2 patient rows = 2; B: 2 arrest rows = 2; C: 1; missing id: 1
        assert len(combined) == 6
        assert len(combined) == expected_join_row_count(self.incident_times, self.right_tables)
        assert set(self.incident_times["Incident Number"]) == set(combined["Incident Number"])

    def test_unmatched_keys_produce_nulls(self):
        combined = combine_incident_tables(self.incident_times, self.right_tables)

        row_c = combined[combined[INCIDENT_ID_COLUMN] == "C"].iloc[0]
        assert pd.isna(row_c["Arrest"])
        assert row_c["HR_mean"] == 90.0

        row_missing = combined[combined[INCIDENT_ID_COLUMN].isna()].iloc[0]
        assert pd.isna(row_missing["Gender"]), "Rows without an identifier must not match each other"

    def test_anchor_row_order_preserved(self):
        combined = combine_incident_tables(self.incident_times, self.right_tables)
        assert combined["Incident Number"].tolist() == [1, 1, 2, 2, 3, 4]

    def test_shared_column_names_get_table_suffix(self):
        combined = left_join_on_incident(self.incident_times, self.response, "Response")
        assert "Incident Number" in combined.columns
        assert "Incident Number (Response)" in combined.columns
        assert combined["Incident Number (Response)"].isna().all()


class TestResponseIntervals:

    def setup_method(self):
        t0 = _utc("2022-01-31 12:00")

        def minutes(m):
            return t0 + pd.Timedelta(minutes=m)

        self.df = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["ok", "negative", "boundary", "too_long", "missing"],
            DISPATCH_NOTIFIED_COLUMN: [t0, t0, t0, t0, t0],
            ARRIVED_ON_SCENE_COLUMN: [minutes(8), minutes(-5), minutes(1440), minutes(8), pd.NaT],
            LEFT_SCENE_COLUMN: [minutes(28), minutes(10), minutes(1450), minutes(3000), minutes(30)],
            BACK_IN_SERVICE_COLUMN: [minutes(88), minutes(40), minutes(1500), minutes(3010), minutes(60)],
        })

    def test_durations_in_minutes(self):
        result = add_response_intervals(self.df).set_index(INCIDENT_ID_COLUMN)

        assert result.loc["ok", RESPONSE_TIME_COLUMN] == 8.0
        assert result.loc["ok", ON_SCENE_TIME_COLUMN] == 20.0
        assert result.loc["ok", BACK_IN_SERVICE_TIME_COLUMN] == 60.0
        assert result.loc["negative", RESPONSE_TIME_COLUMN] == -5.0
        assert np.isnan(result.loc["missing", RESPONSE_TIME_COLUMN])
        assert np.isnan(result.loc["missing", ON_SCENE_TIME_COLUMN])

    def test_clean_view_bounds(self):
        with_intervals = add_response_intervals(self.df)
        clean = filter_plausible_intervals(with_intervals)

        assert clean[INCIDENT_ID_COLUMN].tolist() == ["ok", "boundary"]
        assert len(with_intervals) == 5, "Excluded rows remain in the unfiltered table"

    def test_mask_on_precomputed_durations(self):
        df = pd.DataFrame({
            RESPONSE_TIME_COLUMN: [-5.0, 1440.0, np.nan, 0.0, 1440.5],
            ON_SCENE_TIME_COLUMN: [10.0, 10.0, 10.0, 0.0, 10.0],
            BACK_IN_SERVICE_TIME_COLUMN: [10.0, 10.0, 10.0, 0.0, 10.0],
        })
        assert plausible_interval_mask(df).tolist() == [False, True, False, True, False]


class TestDataQuality:

    def test_duplicate_identifiers(self):
        df = pd.DataFrame({INCIDENT_ID_COLUMN: ["A", "B", "B", "B", "C", None, None]})
        finding = find_duplicate_identifiers(df, "Patient")

        assert finding is not None
        assert finding.kind == "duplicate_identifier"
        assert finding.subject == "Patient"
        assert finding.count == 2

        unique = pd.DataFrame({INCIDENT_ID_COLUMN: ["A", "B", None, None]})
        assert find_duplicate_identifiers(unique, "Patient") is None

    def test_out_of_range_intervals(self):
        df = pd.DataFrame({
            RESPONSE_TIME_COLUMN: [-5.0, 8.0, 2000.0, np.nan],
            ON_SCENE_TIME_COLUMN: [10.0, 10.0, 10.0, 10.0],
            BACK_IN_SERVICE_TIME_COLUMN: [10.0, 10.0, 10.0, 10.0],
        })
        findings = find_out_of_range_intervals(df)

        assert len(findings) == 1
        assert findings[0].subject == RESPONSE_TIME_COLUMN
        assert findings[0].count == 3
        assert "1 negative" in findings[0].detail

    def test_high_missing_columns(self):
        df = pd.DataFrame({
            "complete": [1, 2, 3, 4, 5],
            "one_missing": [1, None, 3, 4, 5],
            "two_missing": [1, None, None, 4, 5],
        })
        findings = find_high_missing_columns(df, threshold=0.2)

        assert [f.subject for f in findings] == ["two_missing"]
        assert findings[0].count == 2

    def test_audit_combines_all_checks(self):
        combined = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["A", "A"],
            RESPONSE_TIME_COLUMN: [5.0, -1.0],
            ON_SCENE_TIME_COLUMN: [5.0, 5.0],
            BACK_IN_SERVICE_TIME_COLUMN: [5.0, 5.0],
        })
        sources = {"Patient": pd.DataFrame({INCIDENT_ID_COLUMN: ["A", "A"]})}
        findings = audit_combined_record(combined, sources)

        kinds = [(f.kind, f.subject) for f in findings]
        assert kinds == [
            ("duplicate_identifier", "Patient"),
            ("duplicate_identifier", "Combined Record"),
            ("out_of_range_interval", RESPONSE_TIME_COLUMN),
        ]
