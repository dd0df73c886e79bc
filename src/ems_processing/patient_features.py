"""
Derived Patient Features for the Combined EMS Record

This module derives the demographic analysis fields from raw Patient columns:

1. Patient_Age_Years: age converted to years from its recorded unit
   (months / 12, days / 365.25, years as-is)
2. Age_Group: one of six ordered age brackets
3. Cleaned_Race: the multi-select race list collapsed to a single label

Race normalization works on parsed tags rather than raw text. Each tag of the
delimited race list is matched against a priority-ordered list of category
detectors; the two highest-priority categories found determine the label.
Only one secondary category is ever reported, even when three or more are
present, which matches the two-category coding used in downstream reports.

Unrecognized age units are recovered locally: the age becomes null and a
UnitConversionWarning is issued.
"""
import re
import warnings
from typing import List

import numpy as np
import pandas as pd

from .config import (
    AGE_GROUP_COLUMN,
    AGE_YEARS_COLUMN,
    CLEANED_RACE_COLUMN,
    PATIENT_AGE_COLUMN,
    PATIENT_AGE_UNITS_COLUMN,
    PATIENT_RACE_COLUMN,
)
from .errors import UnitConversionWarning
from .logging_utils import logger

# Divisors converting an age in the given unit to years
AGE_UNIT_DIVISORS = {
    'years': 1.0,
    'months': 12.0,
    'days': 365.25,
}

# Age brackets: left-closed intervals [lower, upper)
AGE_GROUP_BINS = [-np.inf, 18, 25, 45, 65, 75, np.inf]
AGE_GROUP_LABELS = [
    "Younger than 18",
    "18-24",
    "25-44",
    "45-64",
    "65-74",
    "75 and older",
]

# Race categories in precedence order with their keyword detectors
WHITE = "White"
BLACK = "Black or African American"
HISPANIC = "Hispanic or Latino"
ASIAN = "Asian"
PACIFIC_ISLANDER = "Native Hawaiian or Other Pacific Islander"
AMERICAN_INDIAN = "American Indian or Alaska Native"

RACE_DETECTORS = [
    (WHITE, ("white", "caucasian")),
    (BLACK, ("black", "african american")),
    (HISPANIC, ("hispanic", "latino", "latina", "latinx")),
    (ASIAN, ("asian",)),
    (PACIFIC_ISLANDER, ("hawaiian", "pacific islander")),
    (AMERICAN_INDIAN, ("american indian", "alaska native")),
]
RACE_PRECEDENCE = [category for category, _ in RACE_DETECTORS]

# Whole-word patterns, so "caucasian" does not match "asian"
RACE_PATTERNS = [
    (category, re.compile(r"\b(?:" + "|".join(re.escape(keyword) for keyword in keywords) + r")\b"))
    for category, keywords in RACE_DETECTORS
]

# Composite labels keyed by (primary, secondary) in precedence order
RACE_PAIR_LABELS = {
    (WHITE, BLACK): "White and Black or African American",
    (WHITE, HISPANIC): "White and Hispanic or Latino",
    (WHITE, ASIAN): "White and Asian",
    (WHITE, PACIFIC_ISLANDER): "White and Native Hawaiian or Other Pacific Islander",
    (WHITE, AMERICAN_INDIAN): "White and American Indian or Alaska Native",
    (BLACK, HISPANIC): "Black or African American and Hispanic or Latino",
    (BLACK, ASIAN): "Black or African American and Asian",
    (BLACK, PACIFIC_ISLANDER): "Black or African American and Native Hawaiian or Other Pacific Islander",
    (BLACK, AMERICAN_INDIAN): "Black or African American and American Indian or Alaska Native",
    (HISPANIC, ASIAN): "Hispanic or Latino and Asian",
    (HISPANIC, PACIFIC_ISLANDER): "Hispanic or Latino and Native Hawaiian or Other Pacific Islander",
    (HISPANIC, AMERICAN_INDIAN): "Hispanic or Latino and American Indian or Alaska Native",
    (ASIAN, PACIFIC_ISLANDER): "Asian and Native Hawaiian or Other Pacific Islander",
    (ASIAN, AMERICAN_INDIAN): "Asian and American Indian or Alaska Native",
    (PACIFIC_ISLANDER, AMERICAN_INDIAN): "Native Hawaiian or Other Pacific Islander and American Indian or Alaska Native",
}

NOT_RECORDED_LABEL = "Not Recorded/Applicable"
NOT_RECORDED_KEYWORDS = ("not recorded", "not applicable")
OTHER_LABEL = "Other"

# Separators used between selections of a multi-select field
RACE_LIST_SEPARATORS = r"[,;|/]"


# ------------------------------------------------------------
# AGE
# ------------------------------------------------------------

def convert_age_to_years(age, unit) -> float:
    """
    Convert an age in the given unit to years.

    Args:
        age: Numeric age value
        unit: Age unit, case-insensitive: 'years', 'months' or 'days'

    Returns:
        float: Age in years, or NaN if the age or unit is missing or the unit
               is not recognized (a UnitConversionWarning is issued for an
               unrecognized unit)

    Example:
        >>> convert_age_to_years(24, "Months")
        2.0
    """
    number = pd.to_numeric(pd.Series([age], dtype=object), errors='coerce').iloc[0]
    if pd.isna(number) or pd.isna(unit):
        logger.debug(f"Age or age unit missing (age={age!r}, unit={unit!r})")
        return np.nan

    divisor = AGE_UNIT_DIVISORS.get(str(unit).strip().lower())
    if divisor is None:
        message = f"Unrecognized age unit {unit!r}; age set to null"
        logger.warning(message)
        warnings.warn(message, UnitConversionWarning, stacklevel=2)
        return np.nan

    return float(number) / divisor


def add_age_in_years(df: pd.DataFrame,
                     age_column: str = PATIENT_AGE_COLUMN,
                     unit_column: str = PATIENT_AGE_UNITS_COLUMN,
                     output_column: str = AGE_YEARS_COLUMN) -> pd.DataFrame:
    """
    Add the age-in-years column for every row.

    Rows with a recorded age but an unrecognized unit are counted and reported
    in a single UnitConversionWarning for the column.

    Args:
        df (pd.DataFrame): Combined record with raw age and unit columns
        age_column (str): Raw age column
        unit_column (str): Age unit column
        output_column (str): Name of the derived column

    Returns:
        pd.DataFrame: New table with output_column added (float, NaN when unknown)
    """
    logger.log_start("add_age_in_years")

    result = df.copy()
    ages = pd.to_numeric(result[age_column], errors='coerce').astype(float)
    units = result[unit_column].map(lambda unit: str(unit).strip().lower() if pd.notna(unit) else None)
    divisors = units.map(AGE_UNIT_DIVISORS).astype(float)

    unrecognized = ages.notna() & units.notna() & divisors.isna()
    if unrecognized.any():
        found_units = sorted(result.loc[unrecognized, unit_column].astype(str).unique())
        message = (f"{unit_column}: {int(unrecognized.sum())} row(s) with unrecognized unit(s) "
                   f"{found_units}; age set to null")
        logger.warning(message)
        warnings.warn(message, UnitConversionWarning, stacklevel=2)

    result[output_column] = ages / divisors

    logger.log_end("add_age_in_years")
    return result


def assign_age_groups(ages: pd.Series) -> pd.Series:
    """
    Bucket a series of ages into ordered age-group categories.

    Args:
        ages (pd.Series): Ages in years

    Returns:
        pd.Series: Ordered categorical of AGE_GROUP_LABELS, NaN for missing ages
    """
    return pd.cut(ages.astype(float), bins=AGE_GROUP_BINS, labels=AGE_GROUP_LABELS, right=False)


# ------------------------------------------------------------
# RACE / ETHNICITY
# ------------------------------------------------------------

def parse_race_list(race_text) -> List[str]:
    """
    Split a multi-select race string into lower-cased, stripped tags.

    Args:
        race_text: Delimited selections, e.g. "White, Hispanic or Latino"

    Returns:
        List[str]: Tags in their original order; empty for a missing value
    """
    if race_text is None or (not isinstance(race_text, str) and pd.isna(race_text)):
        return []
    tags = re.split(RACE_LIST_SEPARATORS, str(race_text).lower())
    return [tag.strip() for tag in tags if tag.strip()]


def detect_tag_categories(tag: str) -> List[str]:
    """Return every category with a whole-word keyword match in the tag, in precedence order."""
    return [category for category, pattern in RACE_PATTERNS if pattern.search(tag)]


def detect_race_categories(tags: List[str]) -> List[str]:
    """
    Detect the race categories present in a parsed race list.

    A single selection may name more than one category, e.g. "white hispanic".

    Args:
        tags (List[str]): Output of parse_race_list

    Returns:
        List[str]: Distinct categories found, in precedence order
    """
    found = {category for tag in tags for category in detect_tag_categories(tag)}
    return [category for category in RACE_PRECEDENCE if category in found]


def label_race_categories(tags: List[str]) -> str:
    """
    Collapse parsed race tags into a single label.

    Returns the single category, the composite label for the primary and the
    next-highest category, the not-recorded label, or "Other".
    """
    categories = detect_race_categories(tags)
    if len(categories) >= 2:
        return RACE_PAIR_LABELS[(categories[0], categories[1])]
    if len(categories) == 1:
        return categories[0]
    if not tags or any(keyword in tag for tag in tags for keyword in NOT_RECORDED_KEYWORDS):
        return NOT_RECORDED_LABEL
    return OTHER_LABEL


def clean_race_categories(race_text) -> str:
    """
    Normalize a free-text / multi-select race value to one reporting label.

    Args:
        race_text: Raw race list value

    Returns:
        str: A category label, an "A and B" composite label, "Not Recorded/Applicable"
             for missing or not-recorded values, or "Other"

    Example:
        >>> clean_race_categories("Black or African American, Hispanic or Latino")
        'Black or African American and Hispanic or Latino'
    """
    return label_race_categories(parse_race_list(race_text))


# ------------------------------------------------------------
# COMBINED
# ------------------------------------------------------------

def add_patient_features(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add Patient_Age_Years, Age_Group and Cleaned_Race to the combined record.

    Args:
        df (pd.DataFrame): Combined record with raw Patient columns

    Returns:
        pd.DataFrame: New table with the three derived columns
    """
    logger.log_start("add_patient_features")

    result = add_age_in_years(df)
    result[AGE_GROUP_COLUMN] = assign_age_groups(result[AGE_YEARS_COLUMN])
    result[CLEANED_RACE_COLUMN] = result[PATIENT_RACE_COLUMN].map(clean_race_categories)

    logger.log_end("add_patient_features")
    return result
