"""Output generation for exported datasets.

This module writes each sheet's records as validated JSON and the unique
entry id listing.
"""

from datamine_exporter.output.json_generator import (
    JsonGenerator,
    ValidationResult,
    normalize_filename,
)
from datamine_exporter.output.output_service import (
    ExportSummary,
    OutputService,
    SheetExport,
    render_unique_entry_ids,
)

__all__ = [
    "ExportSummary",
    "JsonGenerator",
    "OutputService",
    "SheetExport",
    "ValidationResult",
    "normalize_filename",
    "render_unique_entry_ids",
]
