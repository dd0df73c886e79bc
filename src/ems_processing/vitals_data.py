"""
Vital Signs Aggregation for EMS Incidents

The Vitals sheet holds zero or more repeated measurements per incident. This
module collapses them into one summary row per incident identifier so the
vitals can be joined onto the incident-level table.

Processing steps:
- Convert the measurement date-time column from spreadsheet serials to UTC
- Coerce the configured vital-sign columns to numeric (non-numeric -> null)
- Aggregate every numeric vital field (mean, min, max) per incident in DuckDB,
  ignoring nulls; a group with only nulls yields null aggregates
- Carry the first observed measurement time per incident as its representative time
"""
from typing import List

import duckdb
import pandas as pd

from .config import (
    INCIDENT_ID_COLUMN,
    VITALS_NUMERIC_COLUMNS,
    VITALS_TAKEN_COLUMN,
)
from .logging_utils import logger
from .utils import coerce_numeric_columns, convert_time_columns

# Statistics computed for each numeric vital field, in output column order
STAT_FUNCTIONS = {
    'mean': 'AVG',
    'min': 'MIN',
    'max': 'MAX',
}

# Row position column used to keep groups in first-appearance order
ROW_ORDER_COLUMN = "_row_order"


def _quote(identifier: str) -> str:
    """Quote a column name for use in DuckDB SQL."""
    return '"' + identifier.replace('"', '""') + '"'


def get_aggregated_vital_fields(vitals: pd.DataFrame,
                                id_column: str = INCIDENT_ID_COLUMN,
                                time_column: str = VITALS_TAKEN_COLUMN) -> List[str]:
    """
    List the numeric vital-sign fields to aggregate.

    Args:
        vitals (pd.DataFrame): Vitals table after numeric coercion
        id_column (str): Incident identifier column (excluded)
        time_column (str): Measurement date-time column (excluded)

    Returns:
        List[str]: Numeric columns in sheet order
    """
    numeric_columns = vitals.select_dtypes(include=['number']).columns
    return [col for col in numeric_columns if col not in (id_column, time_column, ROW_ORDER_COLUMN)]


def build_vitals_aggregation_sql(fields: List[str], id_column: str = INCIDENT_ID_COLUMN) -> str:
    """
    Build the grouped aggregation query over the registered tmp_vitals table.

    AVG/MIN/MAX skip NULLs and return NULL for a group with no values.

    Args:
        fields (List[str]): Numeric vital fields to aggregate
        id_column (str): Incident identifier column used for grouping

    Returns:
        str: SQL query producing one row per incident in first-appearance order
    """
    select_items = [f"{_quote(id_column)} AS {_quote(id_column)}"]
    for field in fields:
        for stat, function in STAT_FUNCTIONS.items():
            select_items.append(f"{function}({_quote(field)}::DOUBLE) AS {_quote(f'{field}_{stat}')}")
    select_items.append(f"MIN({ROW_ORDER_COLUMN}) AS {ROW_ORDER_COLUMN}")

    select_clause = ",\n           ".join(select_items)
    return f"""
    SELECT {select_clause}
    FROM tmp_vitals
    GROUP BY {_quote(id_column)}
    ORDER BY {ROW_ORDER_COLUMN}
    """


def aggregate_vitals(vitals: pd.DataFrame,
                     id_column: str = INCIDENT_ID_COLUMN,
                     time_column: str = VITALS_TAKEN_COLUMN,
                     numeric_columns=VITALS_NUMERIC_COLUMNS) -> pd.DataFrame:
    """
    Collapse repeated vitals measurements into one row per incident.

    Args:
        vitals (pd.DataFrame): Raw Vitals sheet, one row per measurement
        id_column (str): Incident identifier column
        time_column (str): Measurement date-time column (serial or datetime)
        numeric_columns: Columns coerced to numeric before aggregation

    Returns:
        pd.DataFrame: One row per distinct incident identifier with columns
                      '<field>_mean', '<field>_min', '<field>_max' for each
                      numeric field, plus time_column holding the first observed
                      measurement time

    Note:
        Rows without an incident identifier cannot be joined and are dropped.
    """
    logger.log_start("aggregate_vitals")

    vitals = convert_time_columns(vitals)
    vitals = coerce_numeric_columns(vitals, [col for col in numeric_columns if col in vitals.columns])

    missing_id = vitals[id_column].isna()
    if missing_id.any():
        logger.warning(f"Vitals: dropping {int(missing_id.sum())} row(s) without {id_column}")
    vitals = vitals[~missing_id].reset_index(drop=True)

    fields = get_aggregated_vital_fields(vitals, id_column, time_column)

    if vitals.empty:
        columns = [id_column] + [f"{field}_{stat}" for field in fields for stat in STAT_FUNCTIONS]
        if time_column in vitals.columns:
            columns.append(time_column)
        logger.log_end("aggregate_vitals")
        return pd.DataFrame(columns=columns)

    # Register a narrow, typed frame: identifier, row position and float vitals
    frame = pd.DataFrame({id_column: vitals[id_column].astype(str)})
    frame[ROW_ORDER_COLUMN] = range(len(vitals))
    for field in fields:
        frame[field] = vitals[field].astype(float)

    con = duckdb.connect(database=":memory:")
    try:
        con.register("tmp_vitals", frame)
        aggregated = con.execute(build_vitals_aggregation_sql(fields, id_column)).fetchdf()
    finally:
        con.close()

    # First non-null measurement time per incident, in sheet row order
    if time_column in vitals.columns:
        first_times = vitals.groupby(id_column, sort=False)[time_column].first().reset_index()
        aggregated = aggregated.merge(first_times, on=id_column, how='left')

    aggregated = aggregated.drop(columns=[ROW_ORDER_COLUMN]).reset_index(drop=True)
    aggregated[id_column] = aggregated[id_column].astype(object)

    logger.info(f"Aggregated {len(vitals)} vitals row(s) into {len(aggregated)} incident(s)")
    logger.log_end("aggregate_vitals")
    return aggregated
