"""
Unit tests for the cardiac arrest cohort filter, tabular summaries and charts.
"""

import numpy as np
import pandas as pd

from ems_processing.config import (
    AGE_GROUP_COLUMN,
    ARREST_OCCURRENCE_COLUMN,
    BACK_IN_SERVICE_TIME_COLUMN,
    CLEANED_RACE_COLUMN,
    CPR_TYPE_COLUMN,
    DISPATCH_NOTIFIED_COLUMN,
    ON_SCENE_TIME_COLUMN,
    PATIENT_GENDER_COLUMN,
    RESPONSE_TIME_COLUMN,
)
from ems_processing.errors import DataQualityFinding
from ems_processing.patient_features import AGE_GROUP_LABELS, assign_age_groups
from ems_processing.reporting import (
    build_summary_tables,
    count_by,
    count_incidents_per_month,
    count_interventions,
    create_charts,
    filter_cardiac_arrests,
    format_summary,
    response_time_by_group,
    summarize_missingness,
    summarize_response_times,
)


class TestReporting:

    def setup_method(self):
        self.df = pd.DataFrame({
            ARREST_OCCURRENCE_COLUMN: [
                "Yes, Prior to Any EMS Arrival (includes Transport EMS & Medical First Responders)",
                "Yes, After Any EMS Arrival",
                "No",
                None,
                "Yes, After Any EMS Arrival",
            ],
            AGE_GROUP_COLUMN: assign_age_groups(pd.Series([70.0, 30.0, 50.0, np.nan, 80.0])),
            PATIENT_GENDER_COLUMN: ["Female", "Male", "Male", None, "Female"],
            CLEANED_RACE_COLUMN: ["White", "Asian", "White", "Other", "White"],
            CPR_TYPE_COLUMN: [
                "Compressions-Manual, Ventilation-Bag Valve Mask",
                "Compressions-Manual",
                None,
                None,
                "Compressions-External Band Type Device",
            ],
            DISPATCH_NOTIFIED_COLUMN: pd.to_datetime([
                "2022-01-05 10:00", "2022-01-20 11:00", "2022-02-01 09:00", None, "2022-03-15 08:00",
            ]).tz_localize("UTC"),
            RESPONSE_TIME_COLUMN: [6.0, 10.0, 8.0, np.nan, 14.0],
            ON_SCENE_TIME_COLUMN: [20.0, 25.0, 15.0, np.nan, 30.0],
            BACK_IN_SERVICE_TIME_COLUMN: [45.0, 50.0, 40.0, np.nan, 55.0],
        })

    def test_filter_cardiac_arrests(self):
        arrests = filter_cardiac_arrests(self.df)
        assert len(arrests) == 3
        assert arrests[ARREST_OCCURRENCE_COLUMN].str.startswith("Yes").all()
        assert list(arrests.index) == [0, 1, 2]

    def test_count_by_keeps_category_order_and_missing(self):
        counts = count_by(self.df, AGE_GROUP_COLUMN)

        assert counts[AGE_GROUP_COLUMN].tolist() == AGE_GROUP_LABELS + ["Missing"]
        assert counts.set_index(AGE_GROUP_COLUMN).loc["18-24", "count"] == 0
        assert counts.set_index(AGE_GROUP_COLUMN).loc["65-74", "count"] == 1
        assert counts["count"].sum() == 5
        assert counts.set_index(AGE_GROUP_COLUMN).loc["Missing", "percent"] == 20.0

    def test_count_by_sorts_plain_columns_by_count(self):
        counts = count_by(self.df, CLEANED_RACE_COLUMN)
        assert counts[CLEANED_RACE_COLUMN].iloc[0] == "White"
        assert counts["count"].iloc[0] == 3
        assert counts["percent"].iloc[0] == 60.0

    def test_count_interventions_splits_multi_values(self):
        counts = count_interventions(self.df).set_index(CPR_TYPE_COLUMN)

        assert counts.loc["Compressions-Manual", "count"] == 2
        assert counts.loc["Ventilation-Bag Valve Mask", "count"] == 1
        assert counts.loc["Compressions-External Band Type Device", "count"] == 1
        assert counts.loc["Compressions-Manual", "percent"] == 40.0

    def test_summarize_response_times(self):
        summary = summarize_response_times(self.df).set_index("interval")

        assert list(summary.index) == [RESPONSE_TIME_COLUMN, ON_SCENE_TIME_COLUMN, BACK_IN_SERVICE_TIME_COLUMN]
        assert summary.loc[RESPONSE_TIME_COLUMN, "count"] == 4
        assert summary.loc[RESPONSE_TIME_COLUMN, "mean"] == 9.5
        assert summary.loc[RESPONSE_TIME_COLUMN, "p50"] == 9.0
        assert {"p10", "p25", "p75", "p90"} <= set(summary.columns)

    def test_response_time_by_group(self):
        summary = response_time_by_group(self.df, PATIENT_GENDER_COLUMN).set_index(PATIENT_GENDER_COLUMN)

        assert summary.loc["Female", "count"] == 2
        assert summary.loc["Female", "median"] == 10.0
        assert summary.loc["Missing", "count"] == 0

    def test_summarize_missingness(self):
        summary = summarize_missingness(self.df, [PATIENT_GENDER_COLUMN, CPR_TYPE_COLUMN])
        assert summary["column"].tolist() == [CPR_TYPE_COLUMN, PATIENT_GENDER_COLUMN]
        assert summary["missing"].tolist() == [2, 1]
        assert summary["percent_missing"].tolist() == [40.0, 20.0]

    def test_count_incidents_per_month_fills_gaps(self):
        counts = count_incidents_per_month(self.df)
        assert [str(period) for period in counts.index] == ["2022-01", "2022-02", "2022-03"]
        assert counts.tolist() == [2, 1, 1]

    def test_format_summary_includes_sections_and_findings(self):
        tables = build_summary_tables(filter_cardiac_arrests(self.df), filter_cardiac_arrests(self.df))
        finding = DataQualityFinding("duplicate_identifier", "Patient", 2, "2 duplicated rows")
        text = format_summary(tables, [finding])

        assert "CARDIAC ARRESTS BY AGE GROUP" in text
        assert "RESPONSE INTERVALS (MINUTES, CLEAN VIEW)" in text
        assert "DATA QUALITY FINDINGS" in text
        assert "[duplicate_identifier] Patient: 2 duplicated rows" in text

    def test_create_charts_writes_png_files(self, tmp_path):
        arrests = filter_cardiac_arrests(self.df)
        paths = create_charts(arrests, arrests, tmp_path / "charts")

        assert len(paths) == 4
        for path in paths:
            assert path.exists(), f"Chart not written: {path}"
            assert path.suffix == ".png"
            assert path.stat().st_size > 0

    def test_create_charts_with_empty_cohort(self, tmp_path):
        empty = filter_cardiac_arrests(self.df.iloc[2:4])
        paths = create_charts(empty, empty, tmp_path)
        assert all(path.exists() for path in paths)
