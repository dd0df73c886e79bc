"""
Cardiac Arrest Summaries and Charts

Consumes the combined record and its clean view to produce the human-facing
outputs of a run:

1. Cohort selection: incidents where a cardiac arrest occurred (eArrest.01 "Yes, ...")
2. Tabular summaries: counts by age group, gender, cleaned race and CPR type,
   response-interval percentiles, median response time per demographic group,
   and column completeness
3. Charts: response-time boxplot by age group, bar chart of cleaned race counts,
   response-time histogram, and a monthly incident line chart

Duration summaries and charts use the clean view; counts use every arrest row.
"""
import re
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .config import (
    AGE_GROUP_COLUMN,
    ARREST_OCCURRENCE_COLUMN,
    CLEANED_RACE_COLUMN,
    CPR_TYPE_COLUMN,
    DISPATCH_NOTIFIED_COLUMN,
    INCIDENT_TIMESERIES_FILE,
    PATIENT_GENDER_COLUMN,
    RACE_BAR_CHART_FILE,
    RESPONSE_TIME_BOXPLOT_FILE,
    RESPONSE_TIME_COLUMN,
    RESPONSE_TIME_HISTOGRAM_FILE,
    RESPONSE_TIME_PERCENTILES,
    SUMMARY_REPORT_FILE,
)
from .errors import DataQualityFinding
from .logging_utils import logger
from .response_intervals import INTERVAL_COLUMNS

MISSING_LABEL = "Missing"
MULTI_VALUE_SEPARATORS = r"[,;|]"
FIGURE_SIZE = (10, 6)
FIGURE_DPI = 120


# ------------------------------------------------------------
# COHORT
# ------------------------------------------------------------

def filter_cardiac_arrests(df: pd.DataFrame, column: str = ARREST_OCCURRENCE_COLUMN) -> pd.DataFrame:
    """
    Keep incidents where a cardiac arrest occurred (before or after EMS arrival).

    Args:
        df (pd.DataFrame): Combined record
        column (str): Arrest occurrence column

    Returns:
        pd.DataFrame: Rows whose value starts with "Yes", with a fresh index
    """
    is_arrest = df[column].astype(str).str.strip().str.lower().str.startswith("yes")
    return df[is_arrest & df[column].notna()].reset_index(drop=True)


# ------------------------------------------------------------
# TABULAR SUMMARIES
# ------------------------------------------------------------

def count_by(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """
    Count rows per value of a column, nulls reported as "Missing".

    Categorical columns keep their category order (including empty categories);
    other columns are sorted by descending count.

    Args:
        df (pd.DataFrame): Table to summarize
        column (str): Grouping column

    Returns:
        pd.DataFrame: Columns [column, 'count', 'percent']
    """
    values = df[column].astype(object).where(df[column].notna(), MISSING_LABEL)
    counts = values.value_counts()

    if isinstance(df[column].dtype, pd.CategoricalDtype):
        order = list(df[column].cat.categories)
        if MISSING_LABEL in counts.index:
            order.append(MISSING_LABEL)
        counts = counts.reindex(order, fill_value=0)

    total = int(counts.sum())
    percent = (counts / total * 100).round(1) if total else counts.astype(float)
    return pd.DataFrame({
        column: counts.index.astype(str),
        'count': counts.values.astype(int),
        'percent': percent.values,
    })


def split_multi_value(value) -> List[str]:
    """Split a delimited multi-select cell into stripped selections."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return []
    return [part.strip() for part in re.split(MULTI_VALUE_SEPARATORS, str(value)) if part.strip()]


def count_interventions(df: pd.DataFrame, column: str = CPR_TYPE_COLUMN) -> pd.DataFrame:
    """
    Count each selection of a multi-valued intervention field.

    An incident listing two CPR types contributes to both counts; percentages
    are relative to the number of incidents.

    Returns:
        pd.DataFrame: Columns [column, 'count', 'percent'] sorted by count
    """
    if column not in df.columns or df.empty:
        return pd.DataFrame(columns=[column, 'count', 'percent'])

    selections = df[column].map(split_multi_value).explode().dropna()
    counts = selections.value_counts()
    return pd.DataFrame({
        column: counts.index.astype(str),
        'count': counts.values.astype(int),
        'percent': (counts / len(df) * 100).round(1).values,
    })


def summarize_response_times(df: pd.DataFrame,
                             columns=INTERVAL_COLUMNS,
                             percentiles=RESPONSE_TIME_PERCENTILES) -> pd.DataFrame:
    """
    Describe each duration column with its count, mean and percentiles.

    Args:
        df (pd.DataFrame): Clean view (or any table with duration columns)
        columns: Duration columns in minutes
        percentiles: Percentiles to report, 0-100

    Returns:
        pd.DataFrame: One row per duration with columns
                      ['interval', 'count', 'mean', 'p10', ..., 'p90']
    """
    rows = []
    for col in columns:
        values = df[col].dropna()
        row = {'interval': col, 'count': int(len(values)),
               'mean': float(values.mean()) if len(values) else np.nan}
        for p in percentiles:
            row[f"p{p}"] = float(values.quantile(p / 100)) if len(values) else np.nan
        rows.append(row)
    return pd.DataFrame(rows)


def response_time_by_group(df: pd.DataFrame,
                           group_column: str,
                           value_column: str = RESPONSE_TIME_COLUMN) -> pd.DataFrame:
    """
    Response time per demographic group, for reviewing disparities.

    Returns:
        pd.DataFrame: Columns [group_column, 'count', 'median', 'mean']
    """
    groups = df[group_column].astype(object).where(df[group_column].notna(), MISSING_LABEL)
    summary = df[value_column].groupby(groups).agg(['count', 'median', 'mean'])
    summary = summary.reset_index().rename(columns={'index': group_column})
    summary.columns = [group_column, 'count', 'median', 'mean']
    return summary


def summarize_missingness(df: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Missing-value count and percentage per column.

    Returns:
        pd.DataFrame: Columns ['column', 'missing', 'percent_missing'], most missing first
    """
    columns = list(df.columns) if columns is None else columns
    missing = df[columns].isna().sum()
    percent = (missing / len(df) * 100).round(1) if len(df) else missing.astype(float)
    summary = pd.DataFrame({
        'column': [str(col) for col in columns],
        'missing': missing.values.astype(int),
        'percent_missing': percent.values,
    })
    return summary.sort_values('missing', ascending=False, kind='stable').reset_index(drop=True)


def build_summary_tables(arrests: pd.DataFrame, clean_arrests: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """
    Build every tabular summary of the cardiac arrest cohort.

    Args:
        arrests (pd.DataFrame): Cardiac arrest rows of the combined record
        clean_arrests (pd.DataFrame): Cardiac arrest rows of the clean view

    Returns:
        Dict[str, pd.DataFrame]: Section title -> summary table
    """
    logger.log_start("build_summary_tables")

    tables = {
        "Cardiac arrests by age group": count_by(arrests, AGE_GROUP_COLUMN),
        "Cardiac arrests by gender": count_by(arrests, PATIENT_GENDER_COLUMN),
        "Cardiac arrests by race/ethnicity": count_by(arrests, CLEANED_RACE_COLUMN),
        "Type of CPR provided": count_interventions(arrests),
        "Response intervals (minutes, clean view)": summarize_response_times(clean_arrests),
        "Response time by age group (clean view)": response_time_by_group(clean_arrests, AGE_GROUP_COLUMN),
        "Response time by race/ethnicity (clean view)": response_time_by_group(clean_arrests, CLEANED_RACE_COLUMN),
        "Response time by gender (clean view)": response_time_by_group(clean_arrests, PATIENT_GENDER_COLUMN),
        "Completeness of cardiac arrest records": summarize_missingness(arrests),
    }

    logger.log_end("build_summary_tables")
    return tables


def format_summary(tables: Dict[str, pd.DataFrame],
                   findings: Optional[List[DataQualityFinding]] = None) -> str:
    """Render summary tables and data-quality findings as plain text."""
    lines = []
    for title, table in tables.items():
        lines.append("=" * 80)
        lines.append(title.upper())
        lines.append("=" * 80)
        lines.append(table.to_string(index=False) if not table.empty else "(no rows)")
        lines.append("")

    if findings is not None:
        lines.append("=" * 80)
        lines.append("DATA QUALITY FINDINGS")
        lines.append("=" * 80)
        lines.extend(str(finding) for finding in findings)
        if not findings:
            lines.append("(none)")
        lines.append("")

    return "\n".join(lines)


# ------------------------------------------------------------
# CHARTS
# ------------------------------------------------------------

def _save_figure(fig, path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=FIGURE_DPI)
    plt.close(fig)
    return path


def _draw_no_data(ax) -> None:
    ax.text(0.5, 0.5, "No data", ha='center', va='center', transform=ax.transAxes)


def plot_response_time_boxplot(df: pd.DataFrame, path,
                               group_column: str = AGE_GROUP_COLUMN,
                               value_column: str = RESPONSE_TIME_COLUMN) -> Path:
    """Boxplot of response time per age group."""
    fig, ax = plt.subplots(figsize=FIGURE_SIZE)
    data = df[[group_column, value_column]].dropna()
    if data.empty:
        _draw_no_data(ax)
    else:
        sns.boxplot(data=data, x=group_column, y=value_column, ax=ax, color="#4C72B0")
        ax.tick_params(axis='x', rotation=30)
    ax.set_xlabel("Age group")
    ax.set_ylabel("Response time (minutes)")
    ax.set_title("Response time by age group, cardiac arrests")
    return _save_figure(fig, path)


def plot_category_counts(counts: pd.DataFrame, column: str, path, title: str = "") -> Path:
    """Horizontal bar chart of a count_by table."""
    fig, ax = plt.subplots(figsize=FIGURE_SIZE)
    if counts.empty:
        _draw_no_data(ax)
    else:
        sns.barplot(data=counts, x='count', y=column, orient='h', ax=ax, color="#DD8452")
    ax.set_xlabel("Incidents")
    ax.set_ylabel("")
    ax.set_title(title or f"Incidents by {column}")
    return _save_figure(fig, path)


def plot_response_time_histogram(df: pd.DataFrame, path,
                                 value_column: str = RESPONSE_TIME_COLUMN,
                                 bins: int = 30) -> Path:
    """Histogram of response times."""
    fig, ax = plt.subplots(figsize=FIGURE_SIZE)
    values = df[value_column].dropna()
    if values.empty:
        _draw_no_data(ax)
    else:
        sns.histplot(x=values.astype(float), bins=bins, ax=ax, color="#55A868")
    ax.set_xlabel("Response time (minutes)")
    ax.set_ylabel("Incidents")
    ax.set_title("Distribution of response times, cardiac arrests")
    return _save_figure(fig, path)


def count_incidents_per_month(df: pd.DataFrame, time_column: str = DISPATCH_NOTIFIED_COLUMN) -> pd.Series:
    """Number of incidents per calendar month (UTC) of the dispatch time."""
    times = pd.to_datetime(df[time_column], utc=True).dropna()
    if times.empty:
        return pd.Series(dtype='int64')
    months = times.dt.tz_localize(None).dt.to_period('M')
    counts = months.value_counts().sort_index()
    full_range = pd.period_range(counts.index.min(), counts.index.max(), freq='M')
    return counts.reindex(full_range, fill_value=0)


def plot_incidents_over_time(df: pd.DataFrame, path,
                             time_column: str = DISPATCH_NOTIFIED_COLUMN) -> Path:
    """Line chart of incidents per month."""
    fig, ax = plt.subplots(figsize=FIGURE_SIZE)
    counts = count_incidents_per_month(df, time_column)
    if counts.empty:
        _draw_no_data(ax)
    else:
        ax.plot(counts.index.to_timestamp(), counts.values, marker='o')
    ax.set_xlabel("Month")
    ax.set_ylabel("Incidents")
    ax.set_title("Cardiac arrests per month")
    return _save_figure(fig, path)


def create_charts(arrests: pd.DataFrame, clean_arrests: pd.DataFrame, output_dir) -> List[Path]:
    """
    Write all chart artifacts to output_dir.

    Returns:
        List[Path]: Paths of the written PNG files
    """
    logger.log_start("create_charts")

    output_dir = Path(output_dir)
    race_counts = count_by(arrests, CLEANED_RACE_COLUMN)
    paths = [
        plot_response_time_boxplot(clean_arrests, output_dir / RESPONSE_TIME_BOXPLOT_FILE),
        plot_category_counts(race_counts, CLEANED_RACE_COLUMN, output_dir / RACE_BAR_CHART_FILE,
                             title="Cardiac arrests by race/ethnicity"),
        plot_response_time_histogram(clean_arrests, output_dir / RESPONSE_TIME_HISTOGRAM_FILE),
        plot_incidents_over_time(arrests, output_dir / INCIDENT_TIMESERIES_FILE),
    ]

    logger.log_end("create_charts")
    return paths


def write_summary_report(text: str, output_dir) -> Path:
    """Write the rendered summary to OUTPUT_DIR/summary.txt."""
    path = Path(output_dir) / SUMMARY_REPORT_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    return path
