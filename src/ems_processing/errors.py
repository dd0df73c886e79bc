"""
Error and Finding Types for the EMS Pipeline

- SourceReadError: fatal, the workbook or one of its sheets/columns is unusable
- UnitConversionWarning / CoercionWarning: recovered locally, value becomes null
- DataQualityFinding: reported for human review, never raised
"""
from dataclasses import dataclass


class SourceReadError(Exception):
    """The source workbook is missing, malformed, or lacks a required sheet or column."""


class UnitConversionWarning(UserWarning):
    """An age unit was missing or not recognized; the derived age is null."""


class CoercionWarning(UserWarning):
    """A non-numeric value was found in a numeric field and replaced with null."""


@dataclass(frozen=True)
class DataQualityFinding:
    """
    A data-quality observation surfaced in the summary output.

    Attributes:
        kind (str): Finding category, e.g. 'duplicate_identifier', 'out_of_range_interval',
                    'high_missingness'
        subject (str): Table or column the finding refers to
        count (int): Number of affected rows
        detail (str): Human-readable description
    """
    kind: str
    subject: str
    count: int
    detail: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.subject}: {self.detail}"
