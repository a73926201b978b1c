"""Centralized exception classes for the datamine exporter.

This module provides a hierarchy of custom exceptions with error codes and
structured error details, so every failure that reaches the command line can
be reported with the sheet, row or field it concerns.

Exception Hierarchy:
    DatamineError (base)
    ├── SpreadsheetError
    │   ├── InvalidSpreadsheetFormatError
    │   ├── NoGridDataError
    │   ├── NoColumnTitlesError
    │   └── MissingColumnTitleError
    ├── CellError
    │   ├── UnsupportedFormulaError
    │   └── UnsupportedCellTypeError
    ├── DatasetError
    │   ├── SheetNotFoundError
    │   └── FieldMissingError
    ├── TransportError
    │   ├── DownloadError
    │   ├── CacheError
    │   ├── ExportError
    │   └── ImageDownloadError
    └── ConfigurationError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: Spreadsheet structure errors
    - E2xxx: Cell errors
    - E3xxx: Dataset errors
    - E4xxx: Transport and output errors
    - E9xxx: Internal/unexpected errors
    """

    # Spreadsheet structure errors (E1xxx)
    INVALID_SPREADSHEET_FORMAT = "E1001"
    NO_GRID_DATA = "E1002"
    NO_COLUMN_TITLES = "E1003"
    MISSING_COLUMN_TITLE = "E1004"

    # Cell errors (E2xxx)
    UNSUPPORTED_FORMULA = "E2001"
    UNSUPPORTED_CELL_TYPE = "E2002"

    # Dataset errors (E3xxx)
    SHEET_NOT_FOUND = "E3001"
    FIELD_MISSING = "E3002"

    # Transport and output errors (E4xxx)
    DOWNLOAD_FAILED = "E4001"
    CACHE_ERROR = "E4002"
    EXPORT_FAILED = "E4003"
    IMAGE_DOWNLOAD_FAILED = "E4004"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"


class DatamineError(Exception):
    """Base exception for all datamine exporter errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Dictionary with additional error details (sheet, row, field).
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def with_context(self, **context: Any) -> "DatamineError":
        """Annotate the error with where it happened.

        Keys already present are kept, so the innermost annotation wins.

        Returns:
            The same exception, for use in ``raise exc.with_context(...)``.
        """
        for key, value in context.items():
            self.details.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for reporting.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# Spreadsheet Structure Errors (E1xxx)
# =============================================================================


class SpreadsheetError(DatamineError):
    """Base class for errors in the shape of the spreadsheet document."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_SPREADSHEET_FORMAT,
        sheet_title: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if sheet_title is not None:
            details["sheet"] = sheet_title
        super().__init__(message, error_code, details)
        self.sheet_title = sheet_title


class InvalidSpreadsheetFormatError(SpreadsheetError):
    """Raised when the API response cannot be parsed as a spreadsheet."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with parser errors.

        Args:
            message: Main error message.
            errors: Individual parse/validation errors.
            details: Additional details.
        """
        details = details or {}
        if errors:
            details["parse_errors"] = errors
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_SPREADSHEET_FORMAT,
            details=details,
        )
        self.errors = errors or []


class NoGridDataError(SpreadsheetError):
    """Raised when a sheet carries no grid payload at all."""

    def __init__(self, sheet_title: str) -> None:
        super().__init__(
            message=f"Sheet '{sheet_title}' has no grid data",
            error_code=ErrorCode.NO_GRID_DATA,
            sheet_title=sheet_title,
        )


class NoColumnTitlesError(SpreadsheetError):
    """Raised when a sheet's grid has no rows, hence no header row."""

    def __init__(self, sheet_title: str) -> None:
        super().__init__(
            message=f"Sheet '{sheet_title}' has no column titles",
            error_code=ErrorCode.NO_COLUMN_TITLES,
            sheet_title=sheet_title,
        )


class MissingColumnTitleError(SpreadsheetError):
    """Raised when a header cell resolves to nothing."""

    def __init__(self, sheet_title: str, column_index: int) -> None:
        """Initialize with the blank header position.

        Args:
            sheet_title: Sheet containing the header row.
            column_index: Zero-based index of the blank header cell.
        """
        super().__init__(
            message=(
                f"Sheet '{sheet_title}' has an empty column title "
                f"at column {column_index}"
            ),
            error_code=ErrorCode.MISSING_COLUMN_TITLE,
            sheet_title=sheet_title,
            details={"column": column_index},
        )
        self.column_index = column_index


# =============================================================================
# Cell Errors (E2xxx)
# =============================================================================


class CellError(DatamineError):
    """Base class for cells whose content cannot be resolved."""


class UnsupportedFormulaError(CellError):
    """Raised when an as-entered formula is not an IMAGE("<url>") formula."""

    def __init__(
        self,
        formula: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the offending formula.

        Args:
            formula: Verbatim formula text.
            details: Additional details.
        """
        details = details or {}
        details["formula"] = formula
        super().__init__(
            message=f"Unsupported formula: {formula}",
            error_code=ErrorCode.UNSUPPORTED_FORMULA,
            details=details,
        )
        self.formula = formula


class UnsupportedCellTypeError(CellError):
    """Raised when a cell value variant has no defined string form."""

    def __init__(
        self,
        variant: str,
        slot: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the unhandled variant.

        Args:
            variant: Name of the value variant (e.g. "BoolValue").
            slot: Which cell slot held it ("computed" or "as_entered").
            details: Additional details.
        """
        details = details or {}
        details["variant"] = variant
        details["slot"] = slot
        super().__init__(
            message=f"Unsupported {slot} cell value type: {variant}",
            error_code=ErrorCode.UNSUPPORTED_CELL_TYPE,
            details=details,
        )
        self.variant = variant
        self.slot = slot


# =============================================================================
# Dataset Errors (E3xxx)
# =============================================================================


class DatasetError(DatamineError):
    """Base class for errors while working across built sheets."""


class SheetNotFoundError(DatasetError):
    """Raised when a sheet title is not present in the dataset."""

    def __init__(
        self,
        sheet_title: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["sheet"] = sheet_title
        super().__init__(
            message=f"Sheet not found: {sheet_title}",
            error_code=ErrorCode.SHEET_NOT_FOUND,
            details=details,
        )
        self.sheet_title = sheet_title


class FieldMissingError(DatasetError):
    """Raised when a record lacks a field, or holds a non-string in it."""

    def __init__(
        self,
        field: str,
        sheet_title: str | None = None,
        record_index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the record location.

        Args:
            field: Name of the missing field.
            sheet_title: Sheet the record belongs to.
            record_index: Position of the record within its sheet.
            details: Additional details.
        """
        details = details or {}
        details["field"] = field
        if sheet_title is not None:
            details["sheet"] = sheet_title
        if record_index is not None:
            details["record"] = record_index
        location = f" in sheet '{sheet_title}'" if sheet_title is not None else ""
        super().__init__(
            message=f"Missing or non-string field '{field}'{location}",
            error_code=ErrorCode.FIELD_MISSING,
            details=details,
        )
        self.field = field
        self.sheet_title = sheet_title
        self.record_index = record_index


# =============================================================================
# Transport and Output Errors (E4xxx)
# =============================================================================


class TransportError(DatamineError):
    """Base class for download, cache and file output errors."""


class DownloadError(TransportError):
    """Raised when the spreadsheet API request fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message=message,
            error_code=ErrorCode.DOWNLOAD_FAILED,
            details=details,
        )
        self.status_code = status_code


class CacheError(TransportError):
    """Raised when the on-disk spreadsheet cache cannot be read or written."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.CACHE_ERROR,
            details={"path": path} if path else None,
        )
        self.path = path


class ExportError(TransportError):
    """Raised when a sheet cannot be validated or written as JSON."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the output location.

        Args:
            message: Error message.
            path: File that was being written.
            errors: Schema validation errors, if any.
            details: Additional details.
        """
        details = details or {}
        if path:
            details["path"] = path
        if errors:
            details["validation_errors"] = errors
        super().__init__(
            message=message,
            error_code=ErrorCode.EXPORT_FAILED,
            details=details,
        )
        self.path = path
        self.errors = errors or []


class ImageDownloadError(TransportError):
    """Raised after all image tasks finish if any of them failed."""

    def __init__(self, failures: dict[str, str], total: int) -> None:
        """Initialize with every failed image.

        Args:
            failures: Mapping of image filename to failure description.
            total: Number of image tasks that ran.
        """
        super().__init__(
            message=f"{len(failures)} of {total} image downloads failed",
            error_code=ErrorCode.IMAGE_DOWNLOAD_FAILED,
            details={"failures": failures, "total": total},
        )
        self.failures = failures
        self.total = total


# =============================================================================
# Internal Errors (E9xxx)
# =============================================================================


class ConfigurationError(DatamineError):
    """Raised when settings are missing or inconsistent."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details={"setting": setting} if setting else None,
        )
        self.setting = setting
