"""JSON output generator with schema validation.

Each sheet is written as a JSON array of flat objects. Before anything is
written, the records are validated against RECORDS_SCHEMA so that a bug in
record building can never produce a file downstream consumers choke on.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from jsonschema import Draft7Validator

from datamine_exporter.spreadsheet_document import Record

logger = logging.getLogger(__name__)

RECORDS_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Sheet records",
    "type": "array",
    "items": {
        "type": "object",
        "additionalProperties": {
            "anyOf": [
                {"type": "string"},
                {"type": "null"},
                {"type": "array", "items": {"type": "string"}},
            ]
        },
    },
}


def normalize_filename(name: str) -> str:
    """Turn a sheet title or entry name into a safe, lowercase file stem.

    ASCII letters, digits, ``_`` and ``.`` are kept, spaces become ``_`` and
    every other character is dropped. Applying it twice changes nothing.
    """
    kept = []
    for char in name:
        if char == " ":
            kept.append("_")
        elif char.isascii() and (char.isalnum() or char in "_."):
            kept.append(char.lower())
    return "".join(kept)


@dataclass
class ValidationResult:
    """Result of validating records against RECORDS_SCHEMA."""

    is_valid: bool
    """Whether the records are valid against the schema."""

    errors: list[str] = field(default_factory=list)
    """List of validation error messages."""

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": self.errors}


class JsonGenerator:
    """Validates and renders sheet records as pretty-printed JSON."""

    def __init__(self, indent: int = 2) -> None:
        """Initialize the JSON generator.

        Args:
            indent: Indentation used when rendering.
        """
        self.indent = indent
        self._validator = Draft7Validator(RECORDS_SCHEMA)

    def validate(self, records: list[Record]) -> ValidationResult:
        """Validate records against RECORDS_SCHEMA.

        Args:
            records: Records of one sheet.

        Returns:
            ValidationResult with validation status and errors.
        """
        errors = []
        for error in self._validator.iter_errors(records):
            path = ".".join(str(p) for p in error.absolute_path)
            errors.append(f"{path}: {error.message}" if path else error.message)

        if errors:
            logger.debug(f"Record validation found {len(errors)} errors")

        return ValidationResult(is_valid=not errors, errors=errors)

    def render(self, records: list[Record]) -> str:
        """Render records as JSON, keys in column order, non-ASCII kept."""
        return json.dumps(records, indent=self.indent, ensure_ascii=False) + "\n"
