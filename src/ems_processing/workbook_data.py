"""
Workbook Loading and Schema Normalization for EMS Incident Data

This module reads the five NEMSIS export sheets from the source workbook and
prepares them for programmatic access:

1. Loading: each named sheet becomes an independent DataFrame, preserving its
   columns and row order
2. Header normalization: embedded CR+LF line breaks in headers become single spaces
3. Schema validation: each sheet is checked against the required-column manifest
4. Identifier standardization: the incident identifier becomes a stripped string
   in every table so that joins never fail on mismatched dtypes

Any failure to read the workbook, a missing sheet, or a missing required header
raises SourceReadError and aborts the run.
"""
import zipfile
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from .config import (
    HEADER_LINE_BREAK,
    INCIDENT_ID_COLUMN,
    REQUIRED_COLUMNS,
    SHEET_NAMES,
)
from .errors import SourceReadError
from .logging_utils import logger

# Engine used to read .xlsx workbooks
EXCEL_ENGINE = "openpyxl"


def load_workbook_sheets(path, sheet_names: Sequence[str] = SHEET_NAMES) -> Dict[str, pd.DataFrame]:
    """
    Load the named sheets of a workbook into independent DataFrames.

    Args:
        path: Path to the .xlsx workbook
        sheet_names (Sequence[str]): Sheets to load, in order

    Returns:
        Dict[str, pd.DataFrame]: Mapping from sheet name to its table, in the
                                 order of sheet_names

    Raises:
        SourceReadError: If the file is missing, is not a valid workbook, or
                         lacks one of the named sheets
    """
    logger.log_start("load_workbook_sheets")

    workbook_path = Path(path)
    if not workbook_path.is_file():
        raise SourceReadError(f"Workbook not found: {workbook_path}")

    try:
        excel_file = pd.ExcelFile(workbook_path, engine=EXCEL_ENGINE)
    except (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException) as e:
        raise SourceReadError(f"Failed to read workbook {workbook_path}: {e}") from e

    with excel_file:
        missing_sheets = [name for name in sheet_names if name not in excel_file.sheet_names]
        if missing_sheets:
            raise SourceReadError(
                f"Workbook {workbook_path} is missing sheet(s): {missing_sheets}"
            )

        tables = {}
        for name in sheet_names:
            tables[name] = excel_file.parse(name)
            logger.info(f"Loaded sheet '{name}' ({len(tables[name])} rows)")

    logger.log_end("load_workbook_sheets")
    return tables


def normalize_headers(df: pd.DataFrame, line_break: str = HEADER_LINE_BREAK) -> pd.DataFrame:
    """
    Replace embedded line breaks in column headers with a single space.

    Cell values are not touched; headers without a line break pass through unchanged.

    Args:
        df (pd.DataFrame): Table as loaded from the workbook
        line_break (str): Sequence to replace

    Returns:
        pd.DataFrame: Copy of the table with normalized headers
    """
    renamed = {col: col.replace(line_break, " ") for col in df.columns if isinstance(col, str)}
    return df.rename(columns=renamed)


def normalize_all_headers(tables: Mapping[str, pd.DataFrame]) -> Dict[str, pd.DataFrame]:
    """Apply normalize_headers to every table."""
    logger.log_start("normalize_all_headers")
    normalized = {name: normalize_headers(df) for name, df in tables.items()}
    logger.log_end("normalize_all_headers")
    return normalized


def find_missing_columns(df: pd.DataFrame, required: List[str]) -> List[str]:
    return [col for col in required if col not in df.columns]


def validate_sheet_schemas(tables: Mapping[str, pd.DataFrame],
                           required_columns: Mapping[str, List[str]] = REQUIRED_COLUMNS) -> None:
    """
    Check every loaded sheet against the required-column manifest.

    Args:
        tables (Mapping[str, pd.DataFrame]): Header-normalized tables keyed by sheet name
        required_columns (Mapping[str, List[str]]): Expected headers per sheet

    Raises:
        SourceReadError: Naming every sheet and header that is missing
    """
    logger.log_start("validate_sheet_schemas")

    problems = []
    for sheet_name, required in required_columns.items():
        if sheet_name not in tables:
            problems.append(f"sheet '{sheet_name}' was not loaded")
            continue
        missing = find_missing_columns(tables[sheet_name], required)
        if missing:
            problems.append(f"sheet '{sheet_name}' is missing column(s): {missing}")

    if problems:
        raise SourceReadError("Workbook schema mismatch: " + "; ".join(problems))

    logger.log_end("validate_sheet_schemas")


def _format_identifier(value):
    if pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def standardize_incident_ids(df: pd.DataFrame, id_column: str = INCIDENT_ID_COLUMN) -> pd.DataFrame:
    """
    Render the incident identifier as a stripped string.

    Numeric identifiers read as floats (because of blanks in the column) are
    written without a trailing '.0' so they match the same identifier in
    other sheets. Missing identifiers stay null.

    Args:
        df (pd.DataFrame): Table containing the identifier column
        id_column (str): Name of the identifier column

    Returns:
        pd.DataFrame: Copy of the table with a standardized identifier column
    """
    result = df.copy()
    result[id_column] = result[id_column].map(_format_identifier).astype(object)
    return result


def prepare_source_tables(tables: Mapping[str, pd.DataFrame]) -> Dict[str, pd.DataFrame]:
    """
    Normalize headers, validate the schema and standardize identifiers.

    Args:
        tables (Mapping[str, pd.DataFrame]): Raw tables keyed by sheet name

    Returns:
        Dict[str, pd.DataFrame]: Tables ready for conversion and joining
    """
    logger.log_start("prepare_source_tables")

    normalized = normalize_all_headers(tables)
    validate_sheet_schemas(normalized)
    prepared = {name: standardize_incident_ids(df) for name, df in normalized.items()}

    logger.log_end("prepare_source_tables")
    return prepared
