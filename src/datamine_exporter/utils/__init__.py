"""Utilities package for the datamine exporter.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from datamine_exporter.utils.exceptions import (
    CellError,
    DatamineError,
    DatasetError,
    ErrorCode,
    SpreadsheetError,
    TransportError,
)
from datamine_exporter.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Exceptions
    "CellError",
    "DatamineError",
    "DatasetError",
    "ErrorCode",
    "SpreadsheetError",
    "TransportError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
