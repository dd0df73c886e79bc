"""
Unit tests for workbook loading, header normalization, schema validation and
identifier standardization.
"""

import numpy as np
import pandas as pd
import pytest

from ems_processing.config import (
    CARDIAC_ARREST_SHEET,
    INCIDENT_ID_COLUMN,
    INCIDENT_TIMES_SHEET,
    REQUIRED_COLUMNS,
    SHEET_NAMES,
)
from ems_processing.errors import SourceReadError
from ems_processing.workbook_data import (
    load_workbook_sheets,
    normalize_all_headers,
    normalize_headers,
    prepare_source_tables,
    standardize_incident_ids,
    validate_sheet_schemas,
)


def _minimal_tables():
    """One row per sheet with exactly the required columns."""
    tables = {}
    for sheet, columns in REQUIRED_COLUMNS.items():
        row = {col: [None] for col in columns}
        row[INCIDENT_ID_COLUMN] = ["PCR-1"]
        tables[sheet] = pd.DataFrame(row)
    return tables


def _write_workbook(path, tables):
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet, df in tables.items():
            df.to_excel(writer, sheet_name=sheet, index=False)
    return path


class TestHeaderNormalization:

    def test_crlf_in_headers_replaced_with_space(self):
        df = pd.DataFrame({
            "Patient Age\r\n(ePatient.15)": [40],
            "Patient\r\nRace\r\nList (ePatient.14)": ["White"],
            INCIDENT_ID_COLUMN: ["PCR-1"],
        })
        result = normalize_headers(df)

        assert list(result.columns) == [
            "Patient Age (ePatient.15)",
            "Patient Race List (ePatient.14)",
            INCIDENT_ID_COLUMN,
        ]
        assert "Patient Age\r\n(ePatient.15)" in df.columns, "Input table must not be modified"

    def test_cell_values_untouched(self):
        df = pd.DataFrame({"Notes\r\nField": ["line one\r\nline two"]})
        result = normalize_headers(df)
        assert result["Notes Field"].iloc[0] == "line one\r\nline two"

    def test_applied_to_all_tables(self):
        tables = {"One": pd.DataFrame({"a\r\nb": [1]}), "Two": pd.DataFrame({"c\r\nd": [2]})}
        result = normalize_all_headers(tables)
        assert list(result["One"].columns) == ["a b"]
        assert list(result["Two"].columns) == ["c d"]


class TestWorkbookLoading:

    def test_loads_all_sheets_in_order(self, tmp_path):
        tables = _minimal_tables()
        tables[INCIDENT_TIMES_SHEET] = pd.DataFrame({
            INCIDENT_ID_COLUMN: ["PCR-2", "PCR-1", "PCR-3"],
            "Extra": [3, 1, 2],
        })
        path = _write_workbook(tmp_path / "ems.xlsx", tables)

        loaded = load_workbook_sheets(path)

        assert list(loaded.keys()) == list(SHEET_NAMES)
        assert loaded[INCIDENT_TIMES_SHEET][INCIDENT_ID_COLUMN].tolist() == ["PCR-2", "PCR-1", "PCR-3"]
        assert list(loaded[INCIDENT_TIMES_SHEET].columns) == [INCIDENT_ID_COLUMN, "Extra"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceReadError, match="not found"):
            load_workbook_sheets(tmp_path / "does_not_exist.xlsx")

    def test_missing_sheet_is_named(self, tmp_path):
        tables = _minimal_tables()
        del tables[CARDIAC_ARREST_SHEET]
        path = _write_workbook(tmp_path / "ems.xlsx", tables)

        with pytest.raises(SourceReadError, match=CARDIAC_ARREST_SHEET):
            load_workbook_sheets(path)

    def test_invalid_workbook(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_text("this is not a spreadsheet")

        with pytest.raises(SourceReadError, match="Failed to read workbook"):
            load_workbook_sheets(path)


class TestSchemaValidation:

    def test_valid_schema_passes(self):
        validate_sheet_schemas(_minimal_tables())

    def test_missing_required_column_is_named(self):
        tables = _minimal_tables()
        missing = REQUIRED_COLUMNS[INCIDENT_TIMES_SHEET][1]
        tables[INCIDENT_TIMES_SHEET] = tables[INCIDENT_TIMES_SHEET].drop(columns=[missing])

        with pytest.raises(SourceReadError) as exc_info:
            validate_sheet_schemas(tables)
        assert missing in str(exc_info.value)
        assert INCIDENT_TIMES_SHEET in str(exc_info.value)

    def test_header_with_line_break_validates_after_normalization(self):
        tables = _minimal_tables()
        column = REQUIRED_COLUMNS[INCIDENT_TIMES_SHEET][1]
        broken = column.replace(" Date Time", "\r\nDate Time")
        tables[INCIDENT_TIMES_SHEET] = tables[INCIDENT_TIMES_SHEET].rename(columns={column: broken})

        prepared = prepare_source_tables(tables)
        assert column in prepared[INCIDENT_TIMES_SHEET].columns


class TestIdentifierStandardization:

    def test_numeric_and_text_identifiers_align(self):
        df = pd.DataFrame({INCIDENT_ID_COLUMN: [1001.0, np.nan, " PCR-7 ", 42]}, dtype=object)
        result = standardize_incident_ids(df)
        assert result[INCIDENT_ID_COLUMN].tolist()[0] == "1001"
        assert pd.isna(result[INCIDENT_ID_COLUMN].iloc[1])
        assert result[INCIDENT_ID_COLUMN].tolist()[2:] == ["PCR-7", "42"]
