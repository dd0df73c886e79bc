"""
Data-Quality Audits for the EMS Combined Record

Findings here are reported for human review and never block the pipeline:
- duplicate incident identifiers (per source table and in the combined record)
- derived durations that are negative, longer than 24 hours, or missing
- columns missing more than MISSING_DATA_THRESHOLD of their values
"""
from typing import Dict, List, Optional

import pandas as pd

from .config import INCIDENT_ID_COLUMN, MAX_INTERVAL_MINUTES, MISSING_DATA_THRESHOLD
from .errors import DataQualityFinding
from .logging_utils import logger
from .response_intervals import INTERVAL_COLUMNS


def find_duplicate_identifiers(df: pd.DataFrame,
                               table_name: str,
                               id_column: str = INCIDENT_ID_COLUMN) -> Optional[DataQualityFinding]:
    """
    Report identifiers that occur on more than one row.

    Args:
        df (pd.DataFrame): Table to audit
        table_name (str): Name used in the finding
        id_column (str): Incident identifier column

    Returns:
        Optional[DataQualityFinding]: Finding counting the extra rows, or None
    """
    ids = df[id_column].dropna()
    duplicated = ids[ids.duplicated(keep=False)]
    if duplicated.empty:
        return None

    extra_rows = int(ids.duplicated().sum())
    examples = list(pd.unique(duplicated))[:5]
    return DataQualityFinding(
        kind='duplicate_identifier',
        subject=table_name,
        count=extra_rows,
        detail=(f"{extra_rows} duplicated {id_column} row(s) across "
                f"{len(pd.unique(duplicated))} identifier(s), e.g. {examples}"),
    )


def find_out_of_range_intervals(df: pd.DataFrame,
                                columns=INTERVAL_COLUMNS,
                                max_minutes: float = MAX_INTERVAL_MINUTES) -> List[DataQualityFinding]:
    """
    Report, per duration column, rows that would be excluded from the clean view.

    Returns:
        List[DataQualityFinding]: One finding per column with excluded rows
    """
    findings = []
    for col in columns:
        values = df[col]
        negative = int(values.lt(0).sum())
        too_long = int(values.gt(max_minutes).sum())
        missing = int(values.isna().sum())
        total = negative + too_long + missing
        if total == 0:
            continue
        findings.append(DataQualityFinding(
            kind='out_of_range_interval',
            subject=col,
            count=total,
            detail=(f"{negative} negative, {too_long} over {max_minutes} minutes, "
                    f"{missing} missing"),
        ))
    return findings


def find_high_missing_columns(df: pd.DataFrame,
                              threshold: float = MISSING_DATA_THRESHOLD) -> List[DataQualityFinding]:
    """
    Report columns whose share of missing values exceeds the threshold.

    Args:
        df (pd.DataFrame): Table to audit
        threshold (float): Missing fraction above which a column is reported

    Returns:
        List[DataQualityFinding]: One finding per column, in column order
    """
    if df.empty:
        return []

    findings = []
    missing_fraction = df.isna().mean()
    for col, fraction in missing_fraction.items():
        if fraction > threshold:
            findings.append(DataQualityFinding(
                kind='high_missingness',
                subject=str(col),
                count=int(df[col].isna().sum()),
                detail=f"{fraction:.1%} missing (threshold {threshold:.0%})",
            ))
    return findings


def audit_combined_record(combined: pd.DataFrame,
                          source_tables: Dict[str, pd.DataFrame]) -> List[DataQualityFinding]:
    """
    Run every audit and log a one-line summary of each finding.

    Args:
        combined (pd.DataFrame): Combined record with derived columns
        source_tables (Dict[str, pd.DataFrame]): Source tables keyed by name;
            repeated-measure tables such as Vitals should be omitted

    Returns:
        List[DataQualityFinding]: All findings, source-table duplicates first
    """
    logger.log_start("audit_combined_record")

    findings = []
    for name, table in source_tables.items():
        finding = find_duplicate_identifiers(table, name)
        if finding is not None:
            findings.append(finding)

    finding = find_duplicate_identifiers(combined, 'Combined Record')
    if finding is not None:
        findings.append(finding)

    findings.extend(find_out_of_range_intervals(combined))
    findings.extend(find_high_missing_columns(combined))

    for finding in findings:
        logger.info(str(finding))

    logger.log_end("audit_combined_record")
    return findings
