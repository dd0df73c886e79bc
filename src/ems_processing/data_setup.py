"""
EMS Pipeline Orchestration Module

This module runs the full analysis over one NEMSIS workbook:
1. Load the five source sheets and normalize/validate their headers
2. Aggregate repeated vitals into one row per incident
3. Left-join Cardiac Arrest, aggregated Vitals, Patient and Response onto Incident Times
4. Convert serial date-times, derive age, age group, cleaned race and response intervals
5. Build the clean view, audit data quality, and write summaries and charts

Every stage takes the previous stage's table and returns a new one; nothing is
modified in place, so re-running on the same workbook yields identical output.

File structure:
- data/ems_incidents.xlsx: default source workbook
- outputs/: summary.txt and chart PNGs
"""
import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

import pandas as pd

from .config import (
    CARDIAC_ARREST_SHEET,
    INCIDENT_TIMES_SHEET,
    OUTPUT_DIR,
    PATIENT_SHEET,
    RESPONSE_SHEET,
    VITALS_SHEET,
    WORKBOOK_PATH,
)
from .data_quality import audit_combined_record
from .errors import DataQualityFinding, SourceReadError
from .incident_data import AGGREGATED_VITALS_TABLE, combine_incident_tables
from .logging_utils import configure_logging, logger
from .patient_features import add_patient_features
from .reporting import (
    build_summary_tables,
    create_charts,
    filter_cardiac_arrests,
    format_summary,
    write_summary_report,
)
from .response_intervals import add_response_intervals, filter_plausible_intervals
from .utils import convert_time_columns
from .vitals_data import aggregate_vitals
from .workbook_data import load_workbook_sheets, prepare_source_tables


@dataclass
class PipelineResult:
    """
    Everything a pipeline run produces.

    Attributes:
        combined (pd.DataFrame): Unfiltered combined record with derived columns
        clean (pd.DataFrame): Rows of combined with plausible durations
        arrests (pd.DataFrame): Cardiac arrest rows of combined
        clean_arrests (pd.DataFrame): Cardiac arrest rows of clean
        findings (List[DataQualityFinding]): Data-quality audit results
        summary_tables (Dict[str, pd.DataFrame]): Tabular summaries by title
        summary_text (str): Rendered summary report
        artifacts (List[Path]): Files written to the output directory
    """
    combined: pd.DataFrame
    clean: pd.DataFrame
    arrests: pd.DataFrame
    clean_arrests: pd.DataFrame
    findings: List[DataQualityFinding]
    summary_tables: Dict[str, pd.DataFrame]
    summary_text: str
    artifacts: List[Path] = field(default_factory=list)


def load_source_tables(workbook_path) -> Dict[str, pd.DataFrame]:
    """Load, header-normalize and validate the five source sheets."""
    logger.log_start("load_source_tables")
    tables = prepare_source_tables(load_workbook_sheets(workbook_path))
    logger.log_end("load_source_tables")
    return tables


def combine_source_tables(tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """
    Aggregate vitals, join every table onto Incident Times and add derived columns.

    Args:
        tables (Dict[str, pd.DataFrame]): Prepared source tables keyed by sheet name

    Returns:
        pd.DataFrame: Combined record with Patient_Age_Years, Age_Group,
                      Cleaned_Race and the three duration columns
    """
    logger.log_start("combine_source_tables")

    aggregated_vitals = aggregate_vitals(tables[VITALS_SHEET])
    combined = combine_incident_tables(
        tables[INCIDENT_TIMES_SHEET],
        [
            (CARDIAC_ARREST_SHEET, tables[CARDIAC_ARREST_SHEET]),
            (AGGREGATED_VITALS_TABLE, aggregated_vitals),
            (PATIENT_SHEET, tables[PATIENT_SHEET]),
            (RESPONSE_SHEET, tables[RESPONSE_SHEET]),
        ],
    )
    combined = convert_time_columns(combined)
    combined = add_patient_features(combined)
    combined = add_response_intervals(combined)

    logger.log_end("combine_source_tables")
    return combined


def build_combined_record(workbook_path=WORKBOOK_PATH) -> pd.DataFrame:
    """
    Run the read -> clean -> join -> derive stages for one workbook.

    Args:
        workbook_path: Path to the source workbook

    Returns:
        pd.DataFrame: Unfiltered combined record

    Raises:
        SourceReadError: If the workbook, a sheet, or a required column is missing
    """
    logger.log_start("build_combined_record")
    combined = combine_source_tables(load_source_tables(workbook_path))
    logger.log_end("build_combined_record")
    return combined


def run_pipeline(workbook_path=WORKBOOK_PATH, output_dir=OUTPUT_DIR, make_plots: bool = True) -> PipelineResult:
    """
    Execute the complete analysis and write its artifacts.

    Args:
        workbook_path: Path to the source workbook
        output_dir: Directory for summary.txt and the chart PNGs
        make_plots (bool): Whether to render charts

    Returns:
        PipelineResult: Tables, findings and written artifact paths
    """
    logger.log_start("run_pipeline")

    tables = load_source_tables(workbook_path)
    combined = combine_source_tables(tables)
    clean = filter_plausible_intervals(combined)

    # Vitals hold repeated measurements per incident and are not audited for duplicates
    incident_level_tables = {name: df for name, df in tables.items() if name != VITALS_SHEET}
    findings = audit_combined_record(combined, incident_level_tables)

    arrests = filter_cardiac_arrests(combined)
    clean_arrests = filter_cardiac_arrests(clean)
    logger.info(f"Cardiac arrest cohort: {len(arrests)} row(s), {len(clean_arrests)} in clean view")

    summary_tables = build_summary_tables(arrests, clean_arrests)
    summary_text = format_summary(summary_tables, findings)

    artifacts = [write_summary_report(summary_text, output_dir)]
    if make_plots:
        artifacts.extend(create_charts(arrests, clean_arrests, output_dir))

    logger.log_end("run_pipeline")
    return PipelineResult(
        combined=combined,
        clean=clean,
        arrests=arrests,
        clean_arrests=clean_arrests,
        findings=findings,
        summary_tables=summary_tables,
        summary_text=summary_text,
        artifacts=artifacts,
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize EMS cardiac arrest incidents from a NEMSIS workbook")
    parser.add_argument('--workbook', default=WORKBOOK_PATH, help="Path to the source .xlsx workbook")
    parser.add_argument('--output-dir', default=OUTPUT_DIR, help="Directory for the summary and charts")
    parser.add_argument('--no-plots', action='store_true', help="Skip chart rendering")
    parser.add_argument('--log-level', default='INFO', help="Logging level (DEBUG, INFO, WARNING)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Command-line entry point.

    Prints the summary report; exits with status 1 when the workbook cannot be read.
    """
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        result = run_pipeline(args.workbook, args.output_dir, make_plots=not args.no_plots)
    except SourceReadError as e:
        logger.reset()
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(result.summary_text)
    for path in result.artifacts:
        print(f"Wrote {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
