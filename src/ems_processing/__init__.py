"""
EMS Incident Processing Module for Cardiac Arrest Analysis

This module turns a multi-sheet NEMSIS workbook export of EMS incidents into an
incident-level analysis table and descriptive summaries of cardiac arrest cases.

The module is organized into several components:
- Workbook loading, header normalization and schema validation
- Spreadsheet serial date-time conversion and numeric coercion
- Vital-sign aggregation per incident
- Left-joining the source tables onto Incident Times
- Derived patient features (age in years, age group, cleaned race/ethnicity)
- Response interval derivation and plausibility filtering
- Data-quality audits, summaries and charts

Main workflow:
1. Load the Incident Times, Cardiac Arrest, Vitals, Patient and Response sheets
2. Aggregate vitals and join every table on the Patient Care Report Number
3. Derive analytic fields and build the clean view of plausible durations
4. Audit data quality and report on the cardiac arrest cohort
"""
