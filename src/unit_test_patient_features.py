"""
Unit tests for derived patient features: age in years, age groups and race normalization.
"""

import warnings

import numpy as np
import pandas as pd
import pytest

from ems_processing.config import (
    AGE_GROUP_COLUMN,
    AGE_YEARS_COLUMN,
    CLEANED_RACE_COLUMN,
    PATIENT_AGE_COLUMN,
    PATIENT_AGE_UNITS_COLUMN,
    PATIENT_RACE_COLUMN,
)
from ems_processing.errors import UnitConversionWarning
from ems_processing.patient_features import (
    AGE_GROUP_LABELS,
    RACE_PAIR_LABELS,
    RACE_PRECEDENCE,
    add_age_in_years,
    add_patient_features,
    assign_age_groups,
    clean_race_categories,
    convert_age_to_years,
    detect_race_categories,
    parse_race_list,
)


class TestAgeConversion:

    def test_unit_conversions(self):
        assert convert_age_to_years(24, "months") == 2
        assert convert_age_to_years(730, "days") == pytest.approx(730 / 365.25)
        assert convert_age_to_years(730, "days") == pytest.approx(2.0, abs=0.01)
        assert convert_age_to_years(5, "years") == 5

    def test_units_are_case_insensitive(self):
        assert convert_age_to_years(6, "Months") == 0.5
        assert convert_age_to_years(40, " YEARS ") == 40

    def test_unrecognized_unit_gives_null_with_warning(self):
        with pytest.warns(UnitConversionWarning, match="unknown"):
            result = convert_age_to_years(5, "unknown")
        assert np.isnan(result)

    def test_missing_age_or_unit_gives_null(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert np.isnan(convert_age_to_years(None, "years"))
            assert np.isnan(convert_age_to_years(5, None))
            assert np.isnan(convert_age_to_years(np.nan, "days"))

    def test_column_conversion_warns_once_for_unrecognized_units(self):
        df = pd.DataFrame({
            PATIENT_AGE_COLUMN: [24, 730, 5, 3, None],
            PATIENT_AGE_UNITS_COLUMN: ["Months", "Days", "Years", "Hours", "Years"],
        })

        with pytest.warns(UnitConversionWarning, match="1 row"):
            result = add_age_in_years(df)

        ages = result[AGE_YEARS_COLUMN]
        assert ages.iloc[0] == 2.0
        assert ages.iloc[1] == pytest.approx(1.9986, abs=1e-4)
        assert ages.iloc[2] == 5.0
        assert np.isnan(ages.iloc[3])
        assert np.isnan(ages.iloc[4])
        assert AGE_YEARS_COLUMN not in df.columns, "Input table must not be modified"


class TestAgeGroups:

    def test_bracket_boundaries(self):
        ages = pd.Series([17.999, 18.0, 24.99, 25, 45, 65, 74.9, 75.0, 0.5, 102, np.nan])
        groups = assign_age_groups(ages)

        assert list(groups.cat.categories) == AGE_GROUP_LABELS
        assert groups.cat.ordered
        assert groups.iloc[:10].astype(str).tolist() == [
            "Younger than 18", "18-24", "18-24", "25-44", "45-64",
            "65-74", "65-74", "75 and older", "Younger than 18", "75 and older",
        ]
        assert pd.isna(groups.iloc[10])


class TestRaceNormalization:

    def test_single_categories(self):
        assert clean_race_categories("White") == "White"
        assert clean_race_categories("Black or African American") == "Black or African American"
        assert clean_race_categories("Hispanic or Latino") == "Hispanic or Latino"
        assert clean_race_categories("Asian") == "Asian"
        assert clean_race_categories("Native Hawaiian or Other Pacific Islander") == \
            "Native Hawaiian or Other Pacific Islander"
        assert clean_race_categories("American Indian or Alaska Native") == \
            "American Indian or Alaska Native"

    def test_two_categories_use_pair_label(self):
        assert clean_race_categories("Black or African American, Hispanic or Latino") == \
            "Black or African American and Hispanic or Latino"
        # Order of selections does not matter, precedence does
        assert clean_race_categories("Hispanic or Latino, White") == "White and Hispanic or Latino"

    def test_three_categories_report_only_primary_and_next(self):
        text = "Asian, White, American Indian or Alaska Native"
        assert clean_race_categories(text) == "White and Asian"

    def test_not_recorded_and_other(self):
        assert clean_race_categories("Not Recorded") == "Not Recorded/Applicable"
        assert clean_race_categories("Not Applicable") == "Not Recorded/Applicable"
        assert clean_race_categories(None) == "Not Recorded/Applicable"
        assert clean_race_categories("Middle Eastern or North African") == "Other"

    def test_caucasian_is_not_detected_as_asian(self):
        assert clean_race_categories("Caucasian") == "White"
        assert clean_race_categories("Asian, Caucasian") == "White and Asian"

    def test_one_selection_naming_two_categories(self):
        assert clean_race_categories("White Hispanic") == "White and Hispanic or Latino"
        assert clean_race_categories("Black/Hispanic") == "Black or African American and Hispanic or Latino"
        assert parse_race_list("Black/Hispanic") == ["black", "hispanic"]

    def test_parse_race_list(self):
        assert parse_race_list("White, Asian|Hispanic or Latino; ") == ["white", "asian", "hispanic or latino"]
        assert parse_race_list(np.nan) == []

    def test_detected_categories_follow_precedence(self):
        categories = detect_race_categories(["american indian or alaska native", "black or african american"])
        assert categories == ["Black or African American", "American Indian or Alaska Native"]

    def test_pair_table_covers_every_ordered_pair(self):
        for i, primary in enumerate(RACE_PRECEDENCE):
            for secondary in RACE_PRECEDENCE[i + 1:]:
                assert RACE_PAIR_LABELS[(primary, secondary)] == f"{primary} and {secondary}"


class TestPatientFeatures:

    def test_add_patient_features(self):
        df = pd.DataFrame({
            PATIENT_AGE_COLUMN: [67, 24, 730],
            PATIENT_AGE_UNITS_COLUMN: ["Years", "Months", "Days"],
            PATIENT_RACE_COLUMN: ["White", "Not Recorded", "Black or African American, Asian"],
        })
        result = add_patient_features(df)

        assert result[AGE_GROUP_COLUMN].astype(str).tolist() == ["65-74", "Younger than 18", "Younger than 18"]
        assert result[CLEANED_RACE_COLUMN].tolist() == [
            "White", "Not Recorded/Applicable", "Black or African American and Asian",
        ]
