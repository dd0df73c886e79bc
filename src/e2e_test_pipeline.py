import warnings
from pathlib import Path

import pandas as pd
import pytest

from ems_processing.config import (
    AGE_GROUP_COLUMN,
    ARREST_OCCURRENCE_COLUMN,
    ARRIVED_ON_SCENE_COLUMN,
    BACK_IN_SERVICE_COLUMN,
    CARDIAC_ARREST_SHEET,
    CLEANED_RACE_COLUMN,
    CPR_TYPE_COLUMN,
    DISPATCH_NOTIFIED_COLUMN,
    HEART_RATE_COLUMN,
    INCIDENT_ID_COLUMN,
    INCIDENT_TIMES_SHEET,
    LEFT_SCENE_COLUMN,
    ON_SCENE_TIME_COLUMN,
    PATIENT_AGE_COLUMN,
    PATIENT_AGE_UNITS_COLUMN,
    PATIENT_GENDER_COLUMN,
    PATIENT_RACE_COLUMN,
    PATIENT_SHEET,
    RESPIRATORY_RATE_COLUMN,
    RESPONSE_SERVICE_TYPE_COLUMN,
    RESPONSE_SHEET,
    RESPONSE_TIME_COLUMN,
    SUMMARY_REPORT_FILE,
    SYSTOLIC_BP_COLUMN,
    VITALS_SHEET,
    VITALS_TAKEN_COLUMN,
)
from ems_processing.data_setup import build_combined_record, main, run_pipeline
from ems_processing.errors import CoercionWarning, UnitConversionWarning
from ems_processing.logging_utils import logger

JAN_31_NOON = 44592.5       # 2022-01-31 12:00 UTC
FEB_08_NOON = 44600.5       # 2022-02-08 12:00 UTC
MINUTE = 1 / 1440


def _at(serial: float, minutes: float) -> float:
    return serial + minutes * MINUTE


def seed_synthetic_workbook(path: Path) -> Path:
    """
    Four incidents covering the interesting cases:
      PCR-001: complete arrest record with two vitals rows (one non-numeric heart rate)
      PCR-002: unit recorded on scene 5 minutes before dispatch notification
      PCR-003: no arrival time, no arrest
      PCR-004: February incident, duplicated in the Cardiac Arrest sheet, age in hours
    """
    incident_times = pd.DataFrame({
        INCIDENT_ID_COLUMN: ["PCR-001", "PCR-002", "PCR-003", "PCR-004"],
        DISPATCH_NOTIFIED_COLUMN: [JAN_31_NOON, _at(JAN_31_NOON, 60), _at(JAN_31_NOON, 120), FEB_08_NOON],
        ARRIVED_ON_SCENE_COLUMN: [_at(JAN_31_NOON, 8), _at(JAN_31_NOON, 55), None, _at(FEB_08_NOON, 6)],
        LEFT_SCENE_COLUMN: [_at(JAN_31_NOON, 28), _at(JAN_31_NOON, 80), _at(JAN_31_NOON, 150),
                            _at(FEB_08_NOON, 26)],
        BACK_IN_SERVICE_COLUMN: [_at(JAN_31_NOON, 88), _at(JAN_31_NOON, 120), _at(JAN_31_NOON, 180),
                                 _at(FEB_08_NOON, 70)],
    })

    cardiac_arrest = pd.DataFrame({
        INCIDENT_ID_COLUMN: ["PCR-001", "PCR-002", "PCR-003", "PCR-004", "PCR-004"],
        ARREST_OCCURRENCE_COLUMN: [
            "Yes, Prior to Any EMS Arrival (includes Transport EMS & Medical First Responders)",
            "Yes, After Any EMS Arrival",
            "No",
            "Yes, After Any EMS Arrival",
            "Yes, After Any EMS Arrival",
        ],
        CPR_TYPE_COLUMN: [
            "Compressions-Manual, Ventilation-Bag Valve Mask",
            "Compressions-Manual",
            None,
            "Compressions-External Band Type Device",
            "Compressions-External Band Type Device",
        ],
    })

    vitals = pd.DataFrame({
        INCIDENT_ID_COLUMN: ["PCR-001", "PCR-001", "PCR-002", "PCR-004"],
        VITALS_TAKEN_COLUMN: [_at(JAN_31_NOON, 10), _at(JAN_31_NOON, 15), _at(JAN_31_NOON, 60),
                              _at(FEB_08_NOON, 10)],
        SYSTOLIC_BP_COLUMN: [120, 140, 90, 100],
        HEART_RATE_COLUMN: [80, "unable", 110, 95],
        RESPIRATORY_RATE_COLUMN: [12, 16, 20, 18],
    })

    patient = pd.DataFrame({
        INCIDENT_ID_COLUMN: ["PCR-001", "PCR-002", "PCR-003", "PCR-004"],
        PATIENT_GENDER_COLUMN: ["Female", "Male", "Male", "Female"],
        PATIENT_RACE_COLUMN: ["White", "Black or African American, Hispanic or Latino", "Not Recorded", "Asian"],
        PATIENT_AGE_COLUMN: [67, 24, 730, 40],
        PATIENT_AGE_UNITS_COLUMN: ["Years", "Months", "Days", "Hours"],
    })

    response = pd.DataFrame({
        INCIDENT_ID_COLUMN: ["PCR-001", "PCR-002", "PCR-003", "PCR-004"],
        RESPONSE_SERVICE_TYPE_COLUMN: ["Emergency Response (Primary Response Area)"] * 4,
    })

    sheets = {
        INCIDENT_TIMES_SHEET: incident_times,
        CARDIAC_ARREST_SHEET: cardiac_arrest,
        VITALS_SHEET: vitals,
        PATIENT_SHEET: patient,
        RESPONSE_SHEET: response,
    }
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)
    return path


@pytest.fixture(scope="module")
def workbook(tmp_path_factory) -> Path:
    return seed_synthetic_workbook(tmp_path_factory.mktemp("workbook") / "ems_incidents.xlsx")


@pytest.fixture(scope="module")
def pipeline_run(workbook, tmp_path_factory):
    output_dir = tmp_path_factory.mktemp("outputs")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = run_pipeline(workbook, output_dir)
    return result, output_dir, [w.category for w in caught]


def test_combined_record_shape(pipeline_run):
    result, _, _ = pipeline_run
    combined = result.combined

    # PCR-004 appears twice in the Cardiac Arrest sheet
    assert len(combined) == 5, f"Unexpected combined size: {len(combined)}"
    assert combined[INCIDENT_ID_COLUMN].tolist() == ["PCR-001", "PCR-002", "PCR-003", "PCR-004", "PCR-004"]
    for col in (AGE_GROUP_COLUMN, CLEANED_RACE_COLUMN, RESPONSE_TIME_COLUMN, f"{HEART_RATE_COLUMN}_mean"):
        assert col in combined.columns, f"Missing column in combined record: {col}"


def test_times_are_utc_and_intervals_derived(pipeline_run):
    result, _, _ = pipeline_run
    combined = result.combined.set_index(INCIDENT_ID_COLUMN)

    notified = combined.loc["PCR-001", DISPATCH_NOTIFIED_COLUMN]
    assert abs(notified - pd.Timestamp("2022-01-31 12:00", tz="UTC")) < pd.Timedelta(seconds=1)
    assert combined.loc["PCR-001", RESPONSE_TIME_COLUMN] == pytest.approx(8.0, abs=0.01)
    assert combined.loc["PCR-001", ON_SCENE_TIME_COLUMN] == pytest.approx(20.0, abs=0.01)
    assert combined.loc["PCR-002", RESPONSE_TIME_COLUMN] == pytest.approx(-5.0, abs=0.01)
    assert pd.isna(combined.loc["PCR-003", RESPONSE_TIME_COLUMN])


def test_vitals_aggregated_per_incident(pipeline_run):
    result, _, categories = pipeline_run
    combined = result.combined.set_index(INCIDENT_ID_COLUMN)

    assert combined.loc["PCR-001", f"{SYSTOLIC_BP_COLUMN}_mean"] == 130.0
    assert combined.loc["PCR-001", f"{HEART_RATE_COLUMN}_mean"] == 80.0
    assert pd.isna(combined.loc["PCR-003", f"{SYSTOLIC_BP_COLUMN}_mean"])
    assert CoercionWarning in categories


def test_patient_features(pipeline_run):
    result, _, categories = pipeline_run
    combined = result.combined.drop_duplicates(INCIDENT_ID_COLUMN).set_index(INCIDENT_ID_COLUMN)

    assert combined.loc["PCR-001", AGE_GROUP_COLUMN] == "65-74"
    assert combined.loc["PCR-002", AGE_GROUP_COLUMN] == "Younger than 18"
    assert combined.loc["PCR-003", AGE_GROUP_COLUMN] == "Younger than 18"
    assert pd.isna(combined.loc["PCR-004", AGE_GROUP_COLUMN])
    assert UnitConversionWarning in categories

    assert combined[CLEANED_RACE_COLUMN].tolist() == [
        "White",
        "Black or African American and Hispanic or Latino",
        "Not Recorded/Applicable",
        "Asian",
    ]


def test_clean_view_and_cohort(pipeline_run):
    result, _, _ = pipeline_run

    assert result.clean[INCIDENT_ID_COLUMN].tolist() == ["PCR-001", "PCR-004", "PCR-004"]
    assert len(result.arrests) == 4
    assert "PCR-003" not in result.arrests[INCIDENT_ID_COLUMN].tolist()
    assert result.clean_arrests[INCIDENT_ID_COLUMN].tolist() == ["PCR-001", "PCR-004", "PCR-004"]
    assert len(result.combined) == 5, "Clean view must not shrink the combined record"


def test_data_quality_findings(pipeline_run):
    result, _, _ = pipeline_run
    found = {(f.kind, f.subject) for f in result.findings}

    assert ("duplicate_identifier", CARDIAC_ARREST_SHEET) in found
    assert ("duplicate_identifier", "Combined Record") in found
    assert ("out_of_range_interval", RESPONSE_TIME_COLUMN) in found
    assert ("duplicate_identifier", PATIENT_SHEET) not in found


def test_artifacts_written(pipeline_run):
    result, output_dir, _ = pipeline_run

    assert len(result.artifacts) == 5
    for path in result.artifacts:
        assert Path(path).exists(), f"Missing artifact: {path}"

    summary = (output_dir / SUMMARY_REPORT_FILE).read_text(encoding="utf-8")
    assert summary == result.summary_text
    assert "CARDIAC ARRESTS BY AGE GROUP" in summary
    assert "DATA QUALITY FINDINGS" in summary


def test_rerun_is_identical(workbook):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        first = build_combined_record(workbook)
        second = build_combined_record(workbook)
    pd.testing.assert_frame_equal(first, second)


def test_cli(workbook, tmp_path, capsys):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        status = main(["--workbook", str(workbook), "--output-dir", str(tmp_path), "--no-plots"])

    assert status == 0
    assert (tmp_path / SUMMARY_REPORT_FILE).exists()
    assert not list(tmp_path.glob("*.png"))
    assert "DATA QUALITY FINDINGS" in capsys.readouterr().out


def test_cli_missing_workbook(tmp_path, capsys):
    status = main(["--workbook", str(tmp_path / "missing.xlsx"), "--output-dir", str(tmp_path)])

    assert status == 1
    assert "Workbook not found" in capsys.readouterr().err
    assert logger._nesting_level == 0, "Failed run must not leave the stage log indented"
