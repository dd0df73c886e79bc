"""
Logging Utilities for the EMS Incident Pipeline

This module provides hierarchical logging to follow the read -> clean -> join ->
derive -> summarize flow of a pipeline run.

The NestedLogger class indents each message by the current call depth so the
stage structure is visible in the console, and writes through the standard
library logger named "ems_processing" so that log level and formatting are
controlled in one place.

Features:
- Automatic indentation based on stage nesting depth
- Millisecond timestamps for locating slow stages
- Simple start/end logging pattern for stage functions
- info/warning passthrough that keeps the current indentation
"""
import logging
from datetime import datetime

LOGGER_NAME = "ems_processing"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class NestedLogger:
    """
    A logger that indents messages according to pipeline stage nesting.

    Each log_start increases the indentation and each log_end decreases it, so
    nested stages (e.g. the vitals aggregation inside building the combined
    record) appear as a tree in the output.

    Attributes:
        _nesting_level (int): Current indentation level (0 = no indentation)
        _logger (logging.Logger): Underlying standard library logger
    """

    def __init__(self, name: str = LOGGER_NAME):
        """Initialize the logger with zero nesting level."""
        self._nesting_level = 0
        self._logger = logging.getLogger(name)

    def _get_timestamp(self) -> str:
        """
        Get formatted timestamp with millisecond precision.

        Returns:
            str: Timestamp in format 'HH:MM:SS.mmm'
        """
        return datetime.now().strftime('%H:%M:%S.%f')[:-3]

    def _get_indent(self) -> str:
        """Four spaces per nesting level."""
        return "    " * self._nesting_level

    def log_start(self, function_name: str) -> None:
        """
        Log the start of a stage and increase the nesting level.

        Args:
            function_name (str): Name of the stage being started

        Example output:
            10:30:45.123 Started build_combined_record
                10:30:45.124 Started load_workbook_sheets
        """
        self._logger.info(f"{self._get_indent()}{self._get_timestamp()} Started {function_name}")
        self._nesting_level += 1

    def log_end(self, function_name: str) -> None:
        """
        Decrease the nesting level and log the end of a stage.

        Args:
            function_name (str): Name of the stage being completed
        """
        if self._nesting_level > 0:
            self._nesting_level -= 1
        self._logger.info(f"{self._get_indent()}{self._get_timestamp()} Finished {function_name}")

    def info(self, message: str) -> None:
        self._logger.info(f"{self._get_indent()}{message}")

    def warning(self, message: str) -> None:
        self._logger.warning(f"{self._get_indent()}{message}")

    def debug(self, message: str) -> None:
        self._logger.debug(f"{self._get_indent()}{message}")

    def reset(self) -> None:
        """Drop back to zero indentation, e.g. after a stage aborted with an exception."""
        self._nesting_level = 0


def configure_logging(level: str = "INFO") -> None:
    """
    Install the console format used by command-line runs.

    Args:
        level (str): Logging level name, e.g. 'INFO' or 'DEBUG'
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


# Global logger instance shared by all pipeline modules
logger = NestedLogger()
