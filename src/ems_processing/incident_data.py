"""
Incident-Level Joining of EMS Source Tables

Builds the combined record by left-joining the source tables onto Incident
Times, which anchors the result: every Incident Times row is kept, unmatched
right-side columns are null, and duplicate identifiers on the right multiply
rows (standard left-join fan-out). Duplicates are reported by the data-quality
audit, never removed here.
"""
from typing import List, Tuple

import pandas as pd

from .config import (
    CARDIAC_ARREST_SHEET,
    INCIDENT_ID_COLUMN,
    PATIENT_SHEET,
    RESPONSE_SHEET,
)
from .logging_utils import logger

# Name used for the aggregated vitals table in join suffixes and reports
AGGREGATED_VITALS_TABLE = "Aggregated Vitals"

# Right-hand tables in join order
JOIN_ORDER = (
    CARDIAC_ARREST_SHEET,
    AGGREGATED_VITALS_TABLE,
    PATIENT_SHEET,
    RESPONSE_SHEET,
)


def left_join_on_incident(left: pd.DataFrame,
                          right: pd.DataFrame,
                          right_name: str,
                          id_column: str = INCIDENT_ID_COLUMN) -> pd.DataFrame:
    """
    Left-join one table onto the running combined table.

    Columns present on both sides (other than the identifier) keep their name
    on the left and get a ' (<right_name>)' suffix on the right. Right-side
    rows without an identifier never match.

    Args:
        left (pd.DataFrame): Running combined table
        right (pd.DataFrame): Table to attach
        right_name (str): Name of the right table, used for column suffixes
        id_column (str): Join key

    Returns:
        pd.DataFrame: New joined table, row order of left preserved
    """
    right = right[right[id_column].notna()]
    return left.merge(right, on=id_column, how='left', suffixes=('', f' ({right_name})'))


def combine_incident_tables(incident_times: pd.DataFrame,
                            right_tables: List[Tuple[str, pd.DataFrame]],
                            id_column: str = INCIDENT_ID_COLUMN) -> pd.DataFrame:
    """
    Left-join the right tables onto Incident Times in the given order.

    Args:
        incident_times (pd.DataFrame): Anchor table
        right_tables (List[Tuple[str, pd.DataFrame]]): (name, table) pairs in join order
        id_column (str): Join key

    Returns:
        pd.DataFrame: Wide combined table with at least as many rows as incident_times
    """
    logger.log_start("combine_incident_tables")

    combined = incident_times
    for name, table in right_tables:
        rows_before = len(combined)
        combined = left_join_on_incident(combined, table, name, id_column)
        if len(combined) > rows_before:
            logger.warning(
                f"Join with {name} multiplied rows {rows_before} -> {len(combined)} "
                f"(duplicate {id_column} values)"
            )

    combined = combined.reset_index(drop=True)
    logger.info(f"Combined record: {len(combined)} row(s), {combined.shape[1]} column(s)")
    logger.log_end("combine_incident_tables")
    return combined


def expected_join_row_count(incident_times: pd.DataFrame,
                            right_tables: List[Tuple[str, pd.DataFrame]],
                            id_column: str = INCIDENT_ID_COLUMN) -> int:
    """
    Row count a left-join chain must produce: for each anchor row, the product
    of its match counts across right tables (an unmatched table counts as 1).
    """
    multiplier = pd.Series(1, index=incident_times.index, dtype='int64')
    for _, table in right_tables:
        counts = table[id_column].value_counts()
        matches = incident_times[id_column].map(counts).fillna(1).astype('int64')
        multiplier = multiplier * matches
    return int(multiplier.sum())
