"""
Configuration Constants for the EMS Cardiac Arrest Pipeline

This module holds every constant the pipeline depends on: the workbook location,
sheet names, the exact NEMSIS header strings used for column lookups, the
required-column manifest checked at load time, and the plausibility thresholds
applied to derived fields.

Header strings are load-bearing: downstream lookups match them exactly after
line breaks in the headers have been replaced with single spaces.
"""

# Input workbook and output locations
WORKBOOK_PATH = "data/ems_incidents.xlsx"    # Default source workbook
OUTPUT_DIR = "outputs"                       # Directory for chart artifacts and summaries

# Sheet names in the source workbook
INCIDENT_TIMES_SHEET = "Incident Times"
CARDIAC_ARREST_SHEET = "Cardiac Arrest"
VITALS_SHEET = "Vitals"
PATIENT_SHEET = "Patient"
RESPONSE_SHEET = "Response"

SHEET_NAMES = (
    INCIDENT_TIMES_SHEET,
    CARDIAC_ARREST_SHEET,
    VITALS_SHEET,
    PATIENT_SHEET,
    RESPONSE_SHEET,
)

# Join key shared by every sheet
INCIDENT_ID_COLUMN = "Patient Care Report Number"

# Substring marking a column as a spreadsheet serial date-time
TIME_COLUMN_MARKER = "Date Time"

# Header line break replaced during schema normalization
HEADER_LINE_BREAK = "\r\n"

# Incident Times (eTimes)
DISPATCH_NOTIFIED_COLUMN = "Incident Unit Notified By Dispatch Date Time (eTimes.03)"
ARRIVED_ON_SCENE_COLUMN = "Incident Unit Arrived On Scene Date Time (eTimes.06)"
LEFT_SCENE_COLUMN = "Incident Unit Left Scene Date Time (eTimes.09)"
BACK_IN_SERVICE_COLUMN = "Incident Unit Back In Service Date Time (eTimes.13)"

# Cardiac Arrest (eArrest)
ARREST_OCCURRENCE_COLUMN = "Cardiac Arrest During EMS Event (eArrest.01)"
ARREST_ETIOLOGY_COLUMN = "Cardiac Arrest Etiology (eArrest.02)"
RESUSCITATION_ATTEMPTED_COLUMN = "Cardiac Arrest Resuscitation Attempted By EMS (eArrest.03)"
CPR_TYPE_COLUMN = "Cardiac Arrest Type Of CPR Provided (eArrest.09)"
ROSC_COLUMN = "Cardiac Arrest Any Return Of Spontaneous Circulation (eArrest.12)"

# Vitals (eVitals)
VITALS_TAKEN_COLUMN = "Vitals Signs Taken Date Time (eVitals.01)"
SYSTOLIC_BP_COLUMN = "Vitals Systolic Blood Pressure SBP (eVitals.06)"
HEART_RATE_COLUMN = "Vitals Heart Rate (eVitals.10)"
RESPIRATORY_RATE_COLUMN = "Vitals Respiratory Rate (eVitals.14)"

# Vital-sign fields coerced to numeric before aggregation
VITALS_NUMERIC_COLUMNS = (
    SYSTOLIC_BP_COLUMN,
    HEART_RATE_COLUMN,
    RESPIRATORY_RATE_COLUMN,
)

# Patient (ePatient)
PATIENT_GENDER_COLUMN = "Patient Gender (ePatient.13)"
PATIENT_RACE_COLUMN = "Patient Race List (ePatient.14)"
PATIENT_AGE_COLUMN = "Patient Age (ePatient.15)"
PATIENT_AGE_UNITS_COLUMN = "Patient Age Units (ePatient.16)"

# Response (eResponse)
RESPONSE_SERVICE_TYPE_COLUMN = "Response Type Of Service Requested (eResponse.05)"

# Derived columns added to the combined record
AGE_YEARS_COLUMN = "Patient_Age_Years"
AGE_GROUP_COLUMN = "Age_Group"
CLEANED_RACE_COLUMN = "Cleaned_Race"
RESPONSE_TIME_COLUMN = "response_time"
ON_SCENE_TIME_COLUMN = "on_scene_time"
BACK_IN_SERVICE_TIME_COLUMN = "back_in_service_time"

# (duration column, start timestamp, end timestamp)
INTERVAL_DEFINITIONS = (
    (RESPONSE_TIME_COLUMN, DISPATCH_NOTIFIED_COLUMN, ARRIVED_ON_SCENE_COLUMN),
    (ON_SCENE_TIME_COLUMN, ARRIVED_ON_SCENE_COLUMN, LEFT_SCENE_COLUMN),
    (BACK_IN_SERVICE_TIME_COLUMN, LEFT_SCENE_COLUMN, BACK_IN_SERVICE_COLUMN),
)

# Headers that must exist in each sheet after header normalization
REQUIRED_COLUMNS = {
    INCIDENT_TIMES_SHEET: [
        INCIDENT_ID_COLUMN,
        DISPATCH_NOTIFIED_COLUMN,
        ARRIVED_ON_SCENE_COLUMN,
        LEFT_SCENE_COLUMN,
        BACK_IN_SERVICE_COLUMN,
    ],
    CARDIAC_ARREST_SHEET: [
        INCIDENT_ID_COLUMN,
        ARREST_OCCURRENCE_COLUMN,
    ],
    VITALS_SHEET: [
        INCIDENT_ID_COLUMN,
        VITALS_TAKEN_COLUMN,
        *VITALS_NUMERIC_COLUMNS,
    ],
    PATIENT_SHEET: [
        INCIDENT_ID_COLUMN,
        PATIENT_GENDER_COLUMN,
        PATIENT_RACE_COLUMN,
        PATIENT_AGE_COLUMN,
        PATIENT_AGE_UNITS_COLUMN,
    ],
    RESPONSE_SHEET: [
        INCIDENT_ID_COLUMN,
    ],
}

# Plausibility and reporting thresholds
MAX_INTERVAL_MINUTES = 1440              # 24 hours - upper bound for any derived duration
MISSING_DATA_THRESHOLD = 0.20            # Columns missing more than 20% of values are reported
RESPONSE_TIME_PERCENTILES = (10, 25, 50, 75, 90)

# Chart file names written to OUTPUT_DIR
RESPONSE_TIME_BOXPLOT_FILE = "response_time_by_age_group.png"
RACE_BAR_CHART_FILE = "cardiac_arrests_by_race.png"
RESPONSE_TIME_HISTOGRAM_FILE = "response_time_histogram.png"
INCIDENT_TIMESERIES_FILE = "cardiac_arrests_per_month.png"
SUMMARY_REPORT_FILE = "summary.txt"
